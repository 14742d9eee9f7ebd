import logging
from datetime import datetime, timezone

from flask import Blueprint, current_app, redirect, url_for, flash, request, jsonify
from google.api_core.exceptions import GoogleAPICallError

from portal import firestore_dao as dao
from portal import reports
from portal.decorators import role_required
from portal.errors import NotFoundError, ValidationError
from portal.firestore_models import SchoolClass, StudentProfile, TeacherProfile
from portal.forms import AssignStudentForm, AssignTeacherForm, ClassForm, StudentForm, TeacherForm

logger = logging.getLogger(__name__)

bp = Blueprint('hr', __name__, url_prefix='/HR')

COUNTERS = {
    'students': dao.count_students,
    'teachers': dao.count_teachers,
    'classes': dao.count_classes,
    'hr': dao.count_hr,
}


def _page_args():
    return dict(
        sort_by=request.args.get('sortBy', 'name'),
        page=request.args.get('page', 1, type=int),
        page_size=request.args.get('pageSize', current_app.config['DEFAULT_PAGE_SIZE'], type=int),
    )


def _term_args():
    term = request.args.get('term', 'First')
    year = request.args.get('year', datetime.now(timezone.utc).year, type=int)
    return term, year


def _form_errors(form):
    return jsonify({'success': False, 'errors': form.errors}), 400


# ========================================================================
# Dashboard & statistics
# ========================================================================

@bp.route('/')
@bp.route('/Dashboard')
@role_required('hr')
def dashboard():
    return jsonify(reports.hr_dashboard())


@bp.route('/Statistics')
@role_required('hr')
def statistics():
    return jsonify(reports.statistics_report())


@bp.route('/api/stats')
@role_required('hr')
def api_stats():
    stats = reports.statistics_report()
    return jsonify({'success': 'error' not in stats, 'stats': stats})


@bp.route('/api/counts/<kind>')
@role_required('hr')
def api_count(kind):
    counter = COUNTERS.get(kind)
    if counter is None:
        raise NotFoundError(f'Unknown counter: {kind}')
    return jsonify({'count': counter()})


# ========================================================================
# Students
# ========================================================================

@bp.route('/Students')
@role_required('hr')
def students():
    page = reports.paginate_students(
        dao.list_students(),
        search=request.args.get('search'),
        grade_level=request.args.get('gradeLevel'),
        **_page_args(),
    )
    return jsonify(page)


@bp.route('/Students/<student_id>')
@role_required('hr')
def view_student(student_id):
    return jsonify(reports.student_detail(student_id))


@bp.route('/Students/<student_id>/Report')
@role_required('hr')
def student_report(student_id):
    term, year = _term_args()
    return jsonify(reports.student_report(student_id, term, year))


@bp.route('/Students/Add', methods=['POST'])
@role_required('hr')
def add_student():
    form = StudentForm()
    if not form.validate_on_submit():
        return _form_errors(form)

    student = form.apply_to(StudentProfile())
    class_id, student.class_id = student.class_id, ''
    try:
        dao.create_student(student)
        if class_id:
            dao.assign_student_to_class(student.id, class_id)
    except GoogleAPICallError:
        logger.exception('Failed to add student %s', student.email)
        flash('Could not save the student. Please try again.', 'danger')
        return redirect(url_for('hr.students'))

    flash(f'Student {student.full_name} added.', 'success')
    return redirect(url_for('hr.view_student', student_id=student.id))


@bp.route('/Students/<student_id>/Edit', methods=['POST'])
@role_required('hr')
def edit_student(student_id):
    student = dao.get_student(student_id)
    if student is None:
        raise NotFoundError(f'Student {student_id} not found')

    form = StudentForm()
    if not form.validate_on_submit():
        return _form_errors(form)

    previous_class = student.class_id
    form.apply_to(student)
    new_class, student.class_id = student.class_id, previous_class
    try:
        dao.update_student(student)
        if new_class and new_class != previous_class:
            dao.assign_student_to_class(student.id, new_class)
    except GoogleAPICallError:
        logger.exception('Failed to update student %s', student_id)
        flash('Could not update the student. Please try again.', 'danger')
        return redirect(url_for('hr.view_student', student_id=student_id))

    flash('Student updated.', 'success')
    return redirect(url_for('hr.view_student', student_id=student_id))


@bp.route('/Users/<uid>/Delete', methods=['POST'])
@role_required('hr')
def delete_user(uid):
    try:
        removed_from = dao.delete_user(uid)
    except GoogleAPICallError:
        logger.exception('Failed to delete user %s', uid)
        flash('Could not delete the user. Please try again.', 'danger')
        return redirect(url_for('hr.dashboard'))

    if removed_from is None:
        flash('User not found.', 'warning')
        return redirect(url_for('hr.dashboard'))
    flash('User deleted.', 'success')
    return redirect(url_for('hr.teachers' if removed_from == dao.TEACHERS else 'hr.students'))


# ========================================================================
# Teachers
# ========================================================================

@bp.route('/Teachers')
@role_required('hr')
def teachers():
    page = reports.paginate_teachers(
        dao.list_teachers(),
        search=request.args.get('search'),
        department=request.args.get('department'),
        **_page_args(),
    )
    return jsonify(page)


@bp.route('/Teachers/<teacher_id>')
@role_required('hr')
def view_teacher(teacher_id):
    teacher = dao.get_teacher(teacher_id)
    if teacher is None:
        raise NotFoundError(f'Teacher {teacher_id} not found')
    return jsonify({
        'teacher': teacher,
        'assignments': dao.get_assignments_by_teacher(teacher_id),
        'passRate': reports.teacher_pass_rate(teacher_id),
    })


@bp.route('/Teachers/Add', methods=['POST'])
@role_required('hr')
def add_teacher():
    form = TeacherForm()
    if not form.validate_on_submit():
        return _form_errors(form)

    teacher = form.apply_to(TeacherProfile())
    try:
        dao.create_teacher(teacher)
    except GoogleAPICallError:
        logger.exception('Failed to add teacher %s', teacher.email)
        flash('Could not save the teacher. Please try again.', 'danger')
        return redirect(url_for('hr.teachers'))

    flash(f'Teacher {teacher.full_name} added.', 'success')
    return redirect(url_for('hr.view_teacher', teacher_id=teacher.id))


@bp.route('/Teachers/<teacher_id>/Edit', methods=['POST'])
@role_required('hr')
def edit_teacher(teacher_id):
    teacher = dao.get_teacher(teacher_id)
    if teacher is None:
        raise NotFoundError(f'Teacher {teacher_id} not found')

    form = TeacherForm()
    if not form.validate_on_submit():
        return _form_errors(form)

    form.apply_to(teacher)
    try:
        dao.update_teacher(teacher)
    except GoogleAPICallError:
        logger.exception('Failed to update teacher %s', teacher_id)
        flash('Could not update the teacher. Please try again.', 'danger')
        return redirect(url_for('hr.view_teacher', teacher_id=teacher_id))

    flash('Teacher updated.', 'success')
    return redirect(url_for('hr.view_teacher', teacher_id=teacher_id))


@bp.route('/Teachers/Assign', methods=['POST'])
@role_required('hr')
def assign_teacher():
    form = AssignTeacherForm()
    if not form.validate_on_submit():
        return _form_errors(form)

    class_ids = form.class_ids.data or []
    unknown = [c for c in class_ids if dao.get_class(c) is None]
    if unknown:
        raise ValidationError(f'Unknown classes: {", ".join(unknown)}')
    try:
        dao.assign_teacher_to_classes(form.teacher_id.data, class_ids, form.subjects.data or [])
    except GoogleAPICallError:
        logger.exception('Failed to assign teacher %s', form.teacher_id.data)
        flash('Could not save the assignment. Please try again.', 'danger')
        return redirect(url_for('hr.teachers'))

    flash('Teacher assigned to classes.', 'success')
    return redirect(url_for('hr.view_teacher', teacher_id=form.teacher_id.data))


# ========================================================================
# Classes
# ========================================================================

@bp.route('/Classes')
@role_required('hr')
def classes():
    return jsonify(sorted(dao.list_classes(), key=lambda c: c.name.lower()))


def _class_teacher_name(form):
    if not form.teacher_id.data:
        return ''
    teacher = dao.get_teacher(form.teacher_id.data)
    if teacher is None:
        raise ValidationError(f'Teacher {form.teacher_id.data} not found')
    return teacher.full_name


@bp.route('/Classes/Add', methods=['POST'])
@role_required('hr')
def add_class():
    form = ClassForm()
    if not form.validate_on_submit():
        return _form_errors(form)

    school_class = form.apply_to(SchoolClass(id=form.class_id.data or None), _class_teacher_name(form))
    try:
        dao.create_class(school_class)
    except GoogleAPICallError:
        logger.exception('Failed to add class %s', school_class.name)
        flash('Could not save the class. Please try again.', 'danger')
        return redirect(url_for('hr.classes'))

    flash(f'Class {school_class.name} created.', 'success')
    return redirect(url_for('hr.classes'))


@bp.route('/Classes/<class_id>/Edit', methods=['POST'])
@role_required('hr')
def edit_class(class_id):
    school_class = dao.get_class(class_id)
    if school_class is None:
        raise NotFoundError(f'Class {class_id} not found')
    form = ClassForm()
    if not form.validate_on_submit():
        return _form_errors(form)

    form.apply_to(school_class, _class_teacher_name(form))
    try:
        dao.update_class(school_class)
    except GoogleAPICallError:
        logger.exception('Failed to update class %s', class_id)
        flash('Could not save the class. Please try again.', 'danger')
        return redirect(url_for('hr.classes'))

    flash(f'Class {school_class.name} updated.', 'success')
    return redirect(url_for('hr.classes'))


@bp.route('/Classes/AssignStudent', methods=['POST'])
@role_required('hr')
def assign_student():
    form = AssignStudentForm()
    if not form.validate_on_submit():
        return _form_errors(form)

    try:
        dao.assign_student_to_class(form.student_id.data, form.class_id.data)
    except GoogleAPICallError:
        logger.exception('Failed to assign student %s', form.student_id.data)
        flash('Could not assign the student. Please try again.', 'danger')
        return redirect(url_for('hr.classes'))

    flash('Student assigned to class.', 'success')
    return redirect(url_for('hr.view_student', student_id=form.student_id.data))


# ========================================================================
# Reports
# ========================================================================

@bp.route('/Reports/Grades/<class_id>')
@role_required('hr')
def grade_report(class_id):
    term, year = _term_args()
    grades = reports.grade_report(class_id, term, year)
    return jsonify({'classId': class_id, 'term': term, 'year': year,
                    'averageScore': reports.average_score(grades), 'grades': grades})


@bp.route('/Reports/ClassPerformance/<class_id>')
@role_required('hr')
def class_performance(class_id):
    term, year = _term_args()
    report = reports.class_performance_report(
        class_id, term, year,
        subject=request.args.get('subject') or None,
        include_attendance=request.args.get('includeAttendance', 'true').lower() != 'false',
        include_recommendations=request.args.get('includeRecommendations', 'true').lower() != 'false',
    )
    return jsonify(report)
