import logging
from datetime import datetime, timezone

from flask import Blueprint, current_app, redirect, url_for, flash, request, jsonify, g
from google.api_core.exceptions import GoogleAPICallError

from portal import firestore_dao as dao
from portal import reports
from portal.decorators import teacher_scope
from portal.firestore_models import Attendance, Grade, WeightedGrade
from portal.forms import (
    AttendanceForm,
    AttendanceUpdateForm,
    ClassAttendanceForm,
    GradeForm,
    GradeScoresForm,
    WeightedGradeForm,
    WeightedScoresForm,
)

logger = logging.getLogger(__name__)

bp = Blueprint('teacher', __name__, url_prefix='/Teacher')


def _deny(message='You do not have access to this student.'):
    logger.warning('Teacher %s denied: %s (%s)', g.teacher.id, message, request.path)
    flash(message, 'danger')
    return redirect(url_for('teacher.my_students'))


def _visible_student(student_id):
    """Return (student, None) or (None, redirect response)."""
    student = dao.get_student(student_id)
    if student is None:
        flash('Student not found.', 'warning')
        return None, redirect(url_for('teacher.my_students'))
    if not reports.can_view_student(g.teacher, student):
        return None, _deny()
    return student, None


def _owns_class(class_id):
    return class_id in (g.teacher.classes or [])


def _term_args():
    term = request.args.get('term', 'First')
    year = request.args.get('year', datetime.now(timezone.utc).year, type=int)
    return term, year


def _form_errors(form):
    return jsonify({'success': False, 'errors': form.errors}), 400


# ========================================================================
# Dashboard
# ========================================================================

@bp.route('/')
@bp.route('/Dashboard')
@teacher_scope
def dashboard():
    return jsonify(reports.teacher_dashboard(g.teacher))


@bp.route('/api/dashboard')
@teacher_scope
def api_dashboard():
    board = reports.teacher_dashboard(g.teacher)
    return jsonify({'success': True, 'data': board})


@bp.route('/api/current')
@teacher_scope
def api_current():
    return jsonify({'success': True, 'teacher': g.teacher})


@bp.route('/api/pass-rate')
@teacher_scope
def api_pass_rate():
    return jsonify({'success': True, 'passRate': reports.teacher_pass_rate(g.teacher.id)})


# ========================================================================
# Students
# ========================================================================

@bp.route('/MyStudents')
@teacher_scope
def my_students():
    students = reports.visible_students(g.teacher, dao.list_students())
    page = reports.paginate_students(
        students,
        search=request.args.get('search'),
        grade_level=request.args.get('gradeLevel'),
        sort_by=request.args.get('sortBy', 'name'),
        page=request.args.get('page', 1, type=int),
        page_size=request.args.get('pageSize', current_app.config['DEFAULT_PAGE_SIZE'], type=int),
    )
    return jsonify(page)


@bp.route('/Students/<student_id>')
@teacher_scope
def view_student(student_id):
    student, denied = _visible_student(student_id)
    if denied:
        return denied
    return jsonify(reports.student_detail(student.id))


@bp.route('/Students/<student_id>/Report')
@teacher_scope
def student_report(student_id):
    student, denied = _visible_student(student_id)
    if denied:
        return denied
    term, year = _term_args()
    return jsonify(reports.student_report(student.id, term, year))


# ========================================================================
# Grades
# ========================================================================

def _own_grade(grade_id):
    """Return (grade, None) or (None, redirect response)."""
    grade = dao.get_grade(grade_id)
    if grade is None:
        flash('Grade not found.', 'warning')
        return None, redirect(url_for('teacher.my_grades'))
    if grade.teacher_id != g.teacher.id:
        return None, _deny('You can only change grades you recorded.')
    _, denied = _visible_student(grade.student_id)
    if denied:
        return None, denied
    return grade, None


@bp.route('/Grades')
@teacher_scope
def my_grades():
    grades = dao.get_grades_by_teacher(g.teacher.id)
    return jsonify({'grades': grades, 'degraded': grades.failed})


@bp.route('/Grades/Add', methods=['POST'])
@teacher_scope
def add_grade():
    form = GradeForm()
    if not form.validate_on_submit():
        return _form_errors(form)

    student, denied = _visible_student(form.student_id.data)
    if denied:
        return denied

    grade = form.apply_to(Grade(
        student_id=student.id,
        student_name=student.full_name,
        teacher_id=g.teacher.id,
        subject=form.subject.data,
        term=form.term.data,
        year=form.year.data,
    ))
    try:
        dao.create_grade(grade)
    except GoogleAPICallError:
        logger.exception('Failed to save grade for %s', student.id)
        flash('Could not save the grade. Please try again.', 'danger')
        return redirect(url_for('teacher.view_student', student_id=student.id))

    flash(f'Grade saved: {grade.total_score} ({grade.grade_letter}).', 'success')
    return redirect(url_for('teacher.view_student', student_id=student.id))


@bp.route('/Grades/AddWeighted', methods=['POST'])
@teacher_scope
def add_weighted_grade():
    form = WeightedGradeForm()
    if not form.validate_on_submit():
        return _form_errors(form)

    student, denied = _visible_student(form.student_id.data)
    if denied:
        return denied

    weighted = form.apply_to(WeightedGrade(
        student_id=student.id,
        student_name=student.full_name,
        teacher_id=g.teacher.id,
        subject=form.subject.data,
        term=form.term.data,
        year=form.year.data,
    ))
    try:
        dao.create_weighted_grade(weighted)
    except GoogleAPICallError:
        logger.exception('Failed to save weighted grade for %s', student.id)
        flash('Could not save the grade. Please try again.', 'danger')
        return redirect(url_for('teacher.view_student', student_id=student.id))

    flash(f'Grade saved: {weighted.total_score} ({weighted.grade_letter}).', 'success')
    return redirect(url_for('teacher.view_student', student_id=student.id))


@bp.route('/Grades/<grade_id>/Edit', methods=['POST'])
@teacher_scope
def edit_grade(grade_id):
    grade, denied = _own_grade(grade_id)
    if denied:
        return denied

    form = WeightedScoresForm() if isinstance(grade, WeightedGrade) else GradeScoresForm()
    if not form.validate_on_submit():
        return _form_errors(form)

    form.apply_to(grade)
    try:
        dao.update_grade(grade)
    except GoogleAPICallError:
        logger.exception('Failed to update grade %s', grade_id)
        flash('Could not save the grade. Please try again.', 'danger')
        return redirect(url_for('teacher.view_student', student_id=grade.student_id))

    flash(f'Grade updated: {grade.total_score} ({grade.grade_letter}).', 'success')
    return redirect(url_for('teacher.view_student', student_id=grade.student_id))


@bp.route('/Grades/<grade_id>/Delete', methods=['POST'])
@teacher_scope
def delete_grade(grade_id):
    grade, denied = _own_grade(grade_id)
    if denied:
        return denied

    try:
        dao.delete_grade(grade_id)
    except GoogleAPICallError:
        logger.exception('Failed to delete grade %s', grade_id)
        flash('Could not delete the grade. Please try again.', 'danger')
        return redirect(url_for('teacher.view_student', student_id=grade.student_id))

    flash(f'{grade.subject} grade deleted.', 'success')
    return redirect(url_for('teacher.view_student', student_id=grade.student_id))


# ========================================================================
# Attendance
# ========================================================================

def _recorded_by():
    return f'{g.teacher.full_name} ({g.teacher.id})'


def _class_name(class_id):
    school_class = dao.get_class(class_id)
    return school_class.name if school_class else f'Grade {class_id}'


def _as_day(value):
    if not value:
        return None
    return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)


@bp.route('/Attendance/Record', methods=['POST'])
@teacher_scope
def record_attendance():
    form = AttendanceForm()
    if not form.validate_on_submit():
        return _form_errors(form)

    student, denied = _visible_student(form.student_id.data)
    if denied:
        return denied

    class_id = student.class_id
    if form.class_id.data and form.class_id.data != class_id:
        return _deny(f'{student.full_name} is not in class {form.class_id.data}.')
    if not _owns_class(class_id):
        return _deny('You are not assigned to that class.')

    attendance = Attendance(
        student_id=student.id,
        student_name=student.full_name,
        class_id=class_id,
        class_name=_class_name(class_id),
        date=_as_day(form.date.data),
        status=form.status.data or 'Present',
        remarks=form.remarks.data or '',
        recorded_by=_recorded_by(),
    )
    try:
        dao.record_attendance(attendance)
    except GoogleAPICallError:
        logger.exception('Failed to record attendance for %s', student.id)
        flash('Could not record attendance. Please try again.', 'danger')
        return redirect(url_for('teacher.view_student', student_id=student.id))

    flash(f'Attendance recorded: {student.full_name} {attendance.status}.', 'success')
    return redirect(url_for('teacher.view_student', student_id=student.id))


@bp.route('/Attendance/Roster')
@bp.route('/Attendance/Roster/<class_id>')
@teacher_scope
def attendance_roster(class_id=None):
    """One Present row per student in the class, ready to be edited and posted back."""
    classes = g.teacher.classes or []
    if class_id is None:
        if not classes:
            flash('No classes assigned to you.', 'warning')
            return jsonify({'classId': None, 'availableClasses': [], 'roster': []})
        class_id = classes[0]
    if not _owns_class(class_id):
        return _deny('You are not assigned to that class.')

    class_name = _class_name(class_id)
    today = datetime.now(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
    students = sorted(dao.get_students_by_class(class_id), key=lambda s: s.full_name.lower())
    roster = [
        Attendance(
            student_id=student.id,
            student_name=student.full_name,
            class_id=class_id,
            class_name=class_name,
            date=today,
            status='Present',
        )
        for student in students
    ]
    return jsonify({'classId': class_id, 'availableClasses': classes, 'roster': roster})


@bp.route('/Attendance/Roster/<class_id>', methods=['POST'])
@teacher_scope
def record_class_attendance(class_id):
    if not _owns_class(class_id):
        return _deny('You are not assigned to that class.')

    form = ClassAttendanceForm()
    if not form.validate_on_submit():
        return _form_errors(form)
    rows = form.valid_rows()
    if not rows:
        flash('No attendance data provided.', 'warning')
        return redirect(url_for('teacher.attendance_roster', class_id=class_id))

    class_name = _class_name(class_id)
    day = _as_day(form.date.data)
    saved = skipped = 0
    for row in rows:
        student = dao.get_student(row.student_id.data)
        if student is None or student.class_id != class_id or not reports.can_view_student(g.teacher, student):
            logger.warning('Teacher %s: skipped attendance row for %s in %s',
                           g.teacher.id, row.student_id.data, class_id)
            skipped += 1
            continue
        attendance = Attendance(
            student_id=student.id,
            student_name=student.full_name,
            class_id=class_id,
            class_name=class_name,
            date=day,
            status=row.status.data,
            remarks=row.remarks.data or '',
            recorded_by=_recorded_by(),
        )
        try:
            dao.record_attendance(attendance)
        except GoogleAPICallError:
            logger.exception('Failed to record attendance for %s', student.id)
            skipped += 1
            continue
        saved += 1

    if not saved:
        flash('Failed to record attendance.', 'danger')
        return redirect(url_for('teacher.attendance_roster', class_id=class_id))

    message = f'Attendance recorded for {saved} student(s).'
    if skipped:
        message += f' {skipped} row(s) skipped.'
    flash(message, 'success')
    return redirect(url_for('teacher.dashboard'))


@bp.route('/Attendance/<attendance_id>/Edit', methods=['POST'])
@teacher_scope
def edit_attendance(attendance_id):
    record = dao.get_attendance(attendance_id)
    if record is None:
        flash('Attendance record not found.', 'warning')
        return redirect(url_for('teacher.dashboard'))
    if not _owns_class(record.class_id):
        return _deny('You are not assigned to that class.')

    form = AttendanceUpdateForm()
    if not form.validate_on_submit():
        return _form_errors(form)

    record.status = form.status.data
    record.remarks = form.remarks.data or ''
    record.recorded_by = _recorded_by()
    try:
        dao.update_attendance(record)
    except GoogleAPICallError:
        logger.exception('Failed to update attendance %s', attendance_id)
        flash('Could not update attendance. Please try again.', 'danger')
        return redirect(url_for('teacher.class_attendance', class_id=record.class_id))

    flash(f'Attendance updated: {record.student_name} {record.status}.', 'success')
    return redirect(url_for('teacher.class_attendance', class_id=record.class_id))


@bp.route('/Attendance/Class/<class_id>')
@teacher_scope
def class_attendance(class_id):
    if not _owns_class(class_id):
        return _deny('You are not assigned to that class.')
    day = None
    if request.args.get('date'):
        try:
            day = datetime.strptime(request.args['date'], '%Y-%m-%d').date()
        except ValueError:
            flash('Dates must look like YYYY-MM-DD.', 'warning')
            return redirect(url_for('teacher.dashboard'))
    return jsonify({'classId': class_id, 'records': dao.get_class_attendance(class_id, day)})


# ========================================================================
# Reports
# ========================================================================

@bp.route('/Reports/Class/<class_id>')
@teacher_scope
def class_report(class_id):
    if not _owns_class(class_id):
        return _deny('You are not assigned to that class.')
    term, year = _term_args()
    report = reports.class_performance_report(
        class_id, term, year,
        subject=request.args.get('subject') or None,
        include_attendance=request.args.get('includeAttendance', 'true').lower() != 'false',
    )
    return jsonify(report)
