from flask import Blueprint, redirect, url_for, jsonify, request

from portal.decorators import get_current_user

bp = Blueprint('main', __name__)

DASHBOARDS = {
    'hr': 'hr.dashboard',
    'teacher': 'teacher.dashboard',
    'student': 'profile.view',
}


@bp.route('/health')
def health():
    return jsonify({'status': 'ok'}), 200


@bp.route('/')
def index():
    if request.args.get('health') == '1':
        return 'OK', 200
    user = get_current_user()
    if user.is_authenticated:
        return redirect(url_for(DASHBOARDS.get(user.role, 'profile.view')))
    return jsonify({'authenticated': False, 'next': request.args.get('next')})
