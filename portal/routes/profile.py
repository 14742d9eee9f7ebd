import logging

from flask import Blueprint, redirect, url_for, flash, jsonify
from google.api_core.exceptions import GoogleAPICallError

from portal import firestore_dao as dao
from portal.decorators import auth_required, get_current_user, role_required
from portal.forms import ProfileForm, TeacherProfileForm

logger = logging.getLogger(__name__)

bp = Blueprint('profile', __name__, url_prefix='/Profile')

UPDATERS = {
    'student': dao.update_student,
    'teacher': dao.update_teacher,
    'hr': dao.update_user,
}


def _save(user, form):
    if not form.validate_on_submit():
        return jsonify({'success': False, 'errors': form.errors}), 400

    profile = form.apply_to(user.profile)
    try:
        UPDATERS.get(user.role, dao.update_user)(profile)
    except GoogleAPICallError:
        logger.exception('Failed to update profile %s', user.uid)
        flash('Could not update your profile. Please try again.', 'danger')
        return redirect(url_for('profile.view'))

    flash('Profile updated.', 'success')
    return redirect(url_for('profile.view'))


@bp.route('/')
@auth_required
def view():
    user = get_current_user()
    return jsonify({'role': user.role, 'profile': user.profile})


@bp.route('/Update', methods=['POST'])
@auth_required
def update():
    return _save(get_current_user(), ProfileForm())


@bp.route('/UpdateTeacher', methods=['POST'])
@role_required('teacher')
def update_teacher():
    return _save(get_current_user(), TeacherProfileForm())
