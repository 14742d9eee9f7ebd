"""
Aggregate report builder.

Listing helpers (search, filter, sort, paginate), rollups (averages and pass
rates), the teacher visibility predicate, and the dashboard / report
builders. Builders fetch through ``portal.firestore_dao`` and never fail as
a whole: a student whose grades or attendance cannot be read is logged and
left out of that aggregate.
"""

import logging
import math
from collections import OrderedDict, defaultdict
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime, timedelta, timezone

from flask import current_app, has_app_context

from portal import firestore_dao as dao
from portal.errors import NotFoundError, QueryResult
from portal.grading import (
    GPA_PASS_THRESHOLD,
    GRADE_WEIGHTS,
    LETTERS,
    SCORE_PASS_THRESHOLD,
    attendance_status,
    concern_level,
    gpa_from_score,
    letter_grade,
    performance_level,
)
from portal.view_models import (
    AssessmentAnalysis,
    AssessmentComponent,
    AssessmentScore,
    AttendanceAnalysis,
    ClassPerformanceReport,
    GradeDistribution,
    HRDashboard,
    MonthlyAttendance,
    Page,
    StudentAttendanceRecord,
    StudentDetail,
    StudentRanking,
    StudentReport,
    SubjectGrade,
    SubjectPerformance,
    TeacherDashboard,
)

logger = logging.getLogger(__name__)

REPORT_PERIOD_DAYS = 30

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _config(key, default):
    if has_app_context():
        return current_app.config.get(key, default)
    return default


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------

def _matches(search, *values):
    needle = search.lower()
    return any(needle in (v or '').lower() for v in values)


def _date_desc(value):
    # records without a date sort last
    return (value is not None, value or _EPOCH)


def paginate(items, page=1, page_size=20):
    """Slice ``items`` into the 1-based ``page``; a page past the end is empty."""
    page = max(int(page or 1), 1)
    page_size = max(int(page_size or 1), 1)
    total = len(items)
    start = (page - 1) * page_size
    return Page(
        items=list(items[start:start + page_size]),
        total=total,
        page=page,
        page_size=page_size,
        total_pages=math.ceil(total / page_size),
    )


STUDENT_SORTS = {
    'name': (lambda s: (s.full_name or '').lower(), False),
    'gpa': (lambda s: s.gpa, True),
    'attendance': (lambda s: s.attendance_percentage, True),
    'enrollment': (lambda s: _date_desc(s.enrollment_date), True),
}

TEACHER_SORTS = {
    'name': (lambda t: (t.full_name or '').lower(), False),
    'department': (lambda t: ((t.department or '').lower(), (t.full_name or '').lower()), False),
    'hireDate': (lambda t: _date_desc(t.hire_date), True),
}


def _sorted(items, sorts, sort_by):
    key, reverse = sorts.get(sort_by) or sorts['name']
    return sorted(items, key=key, reverse=reverse)


def paginate_students(students, search=None, grade_level=None, sort_by='name',
                      page=1, page_size=20):
    items = list(students)
    if search:
        items = [s for s in items
                 if _matches(search, s.full_name, s.id, s.student_id, s.email)]
    if grade_level:
        items = [s for s in items if s.grade_level == grade_level]
    return paginate(_sorted(items, STUDENT_SORTS, sort_by), page, page_size)


def paginate_teachers(teachers, search=None, department=None, sort_by='name',
                      page=1, page_size=20):
    items = list(teachers)
    if search:
        items = [t for t in items
                 if _matches(search, t.full_name, t.id, t.teacher_id, t.email)]
    if department:
        items = [t for t in items if t.department == department]
    return paginate(_sorted(items, TEACHER_SORTS, sort_by), page, page_size)


# ---------------------------------------------------------------------------
# Rollups
# ---------------------------------------------------------------------------

def _mean(values):
    values = list(values)
    return sum(values) / len(values) if values else None


def average_gpa(students):
    avg = _mean(s.gpa for s in students)
    return 0.0 if avg is None else round(avg, 2)


def average_attendance(students):
    """Mean attendance percentage; no students counts as full attendance."""
    avg = _mean(s.attendance_percentage for s in students)
    return 100 if avg is None else int(round(avg))


def average_score(grades):
    avg = _mean(g.total_score for g in grades)
    return 0.0 if avg is None else round(avg, 2)


def _rate(passing, total):
    return round(passing / total * 100, 2) if total else 0.0


def gpa_pass_rate(students):
    """Percent of students at or above the GPA pass gate (4.0 scale)."""
    students = list(students)
    return _rate(sum(1 for s in students if s.gpa >= GPA_PASS_THRESHOLD), len(students))


def score_pass_rate(averages):
    """Percent of average scores at or above the score pass gate (100 scale)."""
    averages = list(averages)
    return _rate(sum(1 for a in averages if a >= SCORE_PASS_THRESHOLD), len(averages))


# ---------------------------------------------------------------------------
# Teacher visibility
# ---------------------------------------------------------------------------

def can_view_student(teacher, student):
    if teacher is None or student is None or not student.class_id:
        return False
    return student.class_id in (teacher.classes or [])


def visible_students(teacher, students):
    """Students whose class is one of the teacher's assigned classes."""
    return [s for s in students if can_view_student(teacher, s)]


# ---------------------------------------------------------------------------
# Fan-out
# ---------------------------------------------------------------------------

def _failed(result):
    return isinstance(result, QueryResult) and result.failed


def fan_out(fn, items, max_workers=None):
    """Call ``fn(item)`` for every item and return ``[(item, result), ...]``
    in input order.

    An item whose call raises or returns a failed QueryResult is logged and
    left out. With more than one worker the calls run on a thread pool.
    """
    items = list(items)
    workers = max_workers or _config('REPORT_FANOUT_WORKERS', 1)
    results = [None] * len(items)
    ok = [False] * len(items)

    def record(i, result):
        if _failed(result):
            logger.warning('Skipping %r: %s', items[i], result.error)
            return
        results[i] = result
        ok[i] = True

    if workers <= 1 or len(items) <= 1:
        for i, item in enumerate(items):
            try:
                record(i, fn(item))
            except Exception:
                logger.exception('Report fan-out failed for %r', item)
    else:
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = {executor.submit(fn, item): i for i, item in enumerate(items)}
            for future in as_completed(futures):
                i = futures[future]
                try:
                    record(i, future.result())
                except Exception:
                    logger.exception('Report fan-out failed for %r', items[i])

    return [(item, results[i]) for i, item in enumerate(items) if ok[i]]


def _student_grades(student):
    return dao.get_student_grades(student.id)


def _student_attendance(student):
    return dao.get_student_attendance(student.id)


def _in_term(grade, term, year, subject=None):
    if term and grade.term != term:
        return False
    if year and grade.year != int(year):
        return False
    if subject and grade.subject != subject:
        return False
    return True


# ---------------------------------------------------------------------------
# Dashboards
# ---------------------------------------------------------------------------

def _degraded(**results):
    return [name for name, result in results.items() if _failed(result)]


def statistics_report(students=None, teachers=None, classes=None, hr_users=None):
    """School-wide counts for the last 30 days."""
    now = datetime.now(timezone.utc)
    try:
        students = dao.list_students() if students is None else students
        teachers = dao.list_teachers() if teachers is None else teachers
        classes = dao.list_classes() if classes is None else classes
        hr_users = dao.list_hr_users() if hr_users is None else hr_users
        stats = {
            'studentCount': len(students),
            'teacherCount': len(teachers),
            'classCount': len(classes),
            'hrCount': len(hr_users),
            'totalUsers': len(students) + len(teachers) + len(hr_users),
            'reportGeneratedAt': now.isoformat(),
            'reportPeriod': f'Last {REPORT_PERIOD_DAYS} days',
            'periodStart': (now - timedelta(days=REPORT_PERIOD_DAYS)).isoformat(),
            'periodEnd': now.isoformat(),
        }
        incomplete = _degraded(students=students, teachers=teachers,
                               classes=classes, users=hr_users)
        if incomplete:
            stats['incomplete'] = incomplete
        return stats
    except Exception as exc:
        logger.exception('Error building statistics report')
        return {'error': str(exc), 'reportGeneratedAt': now.isoformat()}


def hr_dashboard():
    students = dao.list_students()
    teachers = dao.list_teachers()
    classes = dao.list_classes()
    hr_users = dao.list_hr_users()

    recent = sorted(students, key=lambda s: _date_desc(s.created_at), reverse=True)
    return HRDashboard(
        student_count=len(students),
        teacher_count=len(teachers),
        class_count=len(classes),
        hr_count=len(hr_users),
        recent_students=recent[:_config('RECENT_STUDENTS_LIMIT', 5)],
        average_student_gpa=average_gpa(students),
        average_student_attendance=average_attendance(students),
        gpa_pass_rate=gpa_pass_rate(students),
        statistics=statistics_report(students, teachers, classes, hr_users),
        degraded=_degraded(students=students, teachers=teachers,
                           classes=classes, users=hr_users),
    )


def teacher_dashboard(teacher):
    all_students = dao.list_students()
    all_classes = dao.list_classes()
    assigned = set(teacher.classes or [])

    students = visible_students(teacher, all_students)
    classes = [c for c in all_classes if c.id in assigned]
    return TeacherDashboard(
        teacher=teacher,
        student_count=len(students),
        class_count=len(teacher.classes or []),
        subject_count=len(teacher.subjects or []),
        teacher_classes=classes,
        teacher_students=students,
        average_student_gpa=average_gpa(students),
        average_student_attendance=average_attendance(students),
        degraded=_degraded(students=all_students, classes=all_classes),
    )


# ---------------------------------------------------------------------------
# Grade reports
# ---------------------------------------------------------------------------

def grade_report(class_id, term=None, year=None):
    """Every grade of every student in the class for the term, flattened."""
    students = dao.get_students_by_class(class_id)
    grades = []
    for _, student_grades in fan_out(_student_grades, students):
        grades.extend(g for g in student_grades if _in_term(g, term, year))
    return grades


def teacher_pass_rate(teacher_id):
    """Percent of the teacher's students whose average score passes."""
    teacher = dao.get_teacher(teacher_id)
    if teacher is None:
        return 0.0
    students = visible_students(teacher, dao.list_students())
    averages = [average_score(grades)
                for _, grades in fan_out(_student_grades, students) if grades]
    return score_pass_rate(averages)


def student_detail(student_id):
    """A student with their grades, attendance and a GPA derived from grades."""
    student = dao.get_student(student_id)
    if student is None:
        raise NotFoundError(f'Student {student_id} not found')
    grades = dao.get_student_grades(student_id)
    return StudentDetail(
        student=student,
        grades=list(grades),
        attendance=list(dao.get_student_attendance(student_id)),
        computed_gpa=gpa_from_score(average_score(grades)) if grades else None,
    )


def _subject_averages(grades):
    by_subject = OrderedDict()
    for grade in grades:
        by_subject.setdefault(grade.subject, []).append(grade)
    return by_subject


def _term_average(grades):
    """Mean of per-subject averages, or None with no grades."""
    return _mean(average_score(gs) for gs in _subject_averages(grades).values())


def _assessments(grade):
    if grade.grade_type != 'standard':
        return [AssessmentScore('Weighted Total', grade.total_score, 100, grade.total_score)]
    return [
        AssessmentScore(name, score, GRADE_WEIGHTS[key], round(score * GRADE_WEIGHTS[key] / 100, 2))
        for name, key, score in (
            ('Test 1', 'test1', grade.test1),
            ('Test 2', 'test2', grade.test2),
            ('Exam', 'exam', grade.exam),
            ('Assignment', 'assignment', grade.assignment),
        )
    ]


def _attendance_rate(records):
    """Percent of records marked Present or Late, or None with no records."""
    if not records:
        return None
    attended = sum(1 for r in records if r.status in ('Present', 'Late'))
    return round(attended / len(records) * 100, 2)


def student_report(student_id, term, year):
    student = dao.get_student(student_id)
    if student is None:
        raise NotFoundError(f'Student {student_id} not found')

    all_grades = dao.get_student_grades(student_id)
    term_grades = [g for g in all_grades if _in_term(g, term, year)]

    subject_grades = []
    for subject, grades in sorted(_subject_averages(term_grades).items()):
        score = average_score(grades)
        latest = grades[0]
        subject_grades.append(SubjectGrade(
            subject=subject,
            score=score,
            grade=letter_grade(score),
            teacher_id=latest.teacher_id,
            comments=latest.remarks,
            assessments=[a for g in grades for a in _assessments(g)],
        ))

    subject_scores = [sg.score for sg in subject_grades]
    term_average = _term_average(term_grades)
    passed = sum(1 for s in subject_scores if s >= SCORE_PASS_THRESHOLD)

    attendance = dao.get_student_attendance(student_id)
    rate = _attendance_rate(attendance)

    rank, class_size = _rank_in_class(student, term, year, term_average)

    return StudentReport(
        student_id=student.id,
        student_name=student.full_name,
        class_id=student.class_id,
        grade_level=student.grade_level,
        term=term,
        year=int(year),
        report_date=datetime.now(timezone.utc),
        term_gpa=gpa_from_score(term_average) if term_average is not None else 0.0,
        cumulative_gpa=gpa_from_score(average_score(all_grades)) if all_grades else 0.0,
        attendance_percentage=int(round(rate)) if rate is not None else student.attendance_percentage,
        overall_grade=letter_grade(term_average) if term_average is not None else 'F',
        subject_grades=subject_grades,
        total_subjects=len(subject_grades),
        passed_subjects=passed,
        pass_rate=_rate(passed, len(subject_grades)),
        rank_in_class=rank,
        total_students_in_class=class_size,
    )


def _rank_in_class(student, term, year, own_average):
    if not student.class_id or own_average is None:
        return 'N/A', 0
    classmates = dao.get_students_by_class(student.class_id)
    averages = []
    for classmate, grades in fan_out(_student_grades, classmates):
        term_grades = [g for g in grades if _in_term(g, term, year)]
        if term_grades:
            averages.append((classmate.id, _term_average(term_grades)))
    averages.sort(key=lambda pair: pair[1], reverse=True)
    for position, (sid, _) in enumerate(averages, start=1):
        if sid == student.id:
            return f'{position} of {len(averages)}', len(classmates)
    return 'N/A', len(classmates)


# ---------------------------------------------------------------------------
# Class performance report
# ---------------------------------------------------------------------------

def _grade_distribution(grades):
    counts = dict.fromkeys(LETTERS, 0)
    for grade in grades:
        counts[letter_grade(grade.total_score)] += 1
    return GradeDistribution.from_counts(counts)


def _subject_performances(graded):
    """``graded`` is ``[(student, [grade, ...]), ...]`` for one term."""
    per_subject = OrderedDict()
    for student, grades in graded:
        for subject, subject_grades in _subject_averages(grades).items():
            per_subject.setdefault(subject, []).append((student, subject_grades))

    performances = []
    for subject, entries in per_subject.items():
        scores = [g.total_score for _, grades in entries for g in grades]
        student_averages = [average_score(grades) for _, grades in entries]
        passing = sum(1 for a in student_averages if a >= SCORE_PASS_THRESHOLD)
        avg = round(_mean(scores), 2)
        level = performance_level(avg)
        performances.append(SubjectPerformance(
            subject=subject,
            average_score=avg,
            highest_score=max(scores),
            lowest_score=min(scores),
            pass_rate=_rate(passing, len(entries)),
            total_students=len(entries),
            passing_students=passing,
            failing_students=len(entries) - passing,
            performance_level=level,
            remarks=f'{level} performance in {subject}',
        ))
    return performances


def _trend(grades):
    dated = sorted((g for g in grades if g.date_recorded), key=lambda g: g.date_recorded)
    if len(dated) < 2:
        return 'Stable'
    change = dated[-1].total_score - dated[0].total_score
    if change >= 5:
        return 'Improving'
    if change <= -5:
        return 'Declining'
    return 'Stable'


def _rankings(graded, attendance_by_student):
    rankings = []
    for student, grades in graded:
        if not grades:
            continue
        avg = average_score(grades)
        subjects = {s: average_score(gs) for s, gs in _subject_averages(grades).items()}
        rate = _attendance_rate(attendance_by_student.get(student.id))
        rankings.append(StudentRanking(
            student_id=student.id,
            student_name=student.full_name,
            average_score=avg,
            gpa=gpa_from_score(avg),
            attendance_percentage=int(round(rate)) if rate is not None else student.attendance_percentage,
            performance_trend=_trend(grades),
            strengths=[s for s, a in subjects.items() if a >= 80],
            areas_to_improve=[s for s, a in subjects.items() if a < SCORE_PASS_THRESHOLD],
        ))
    # sorted() is stable, so equal averages keep roster order
    rankings = sorted(rankings, key=lambda r: r.average_score, reverse=True)
    for position, ranking in enumerate(rankings, start=1):
        ranking.rank = str(position)
    return rankings


ASSESSMENT_COMPONENTS = (
    ('Test 1', 'test1'),
    ('Test 2', 'test2'),
    ('Exam', 'exam'),
    ('Assignment', 'assignment'),
)


def _assessment_analysis(grades):
    standard = [g for g in grades if g.grade_type == 'standard']
    if not standard:
        return AssessmentAnalysis()

    components = []
    for name, attr in ASSESSMENT_COMPONENTS:
        avg = round(_mean(getattr(g, attr) for g in standard), 2)
        components.append(AssessmentComponent(
            component_name=name,
            weight=GRADE_WEIGHTS[attr],
            average_score=avg,
            percentage_achieved=avg,
            performance=performance_level(avg),
        ))
    by_name = {c.component_name: c.average_score for c in components}
    weakest = min(components, key=lambda c: c.percentage_achieved)
    strongest = max(components, key=lambda c: c.percentage_achieved)
    return AssessmentAnalysis(
        components=components,
        average_test_score=round((by_name['Test 1'] + by_name['Test 2']) / 2, 2),
        average_exam_score=by_name['Exam'],
        average_assignment_score=by_name['Assignment'],
        weakest_component=weakest.component_name,
        strongest_component=strongest.component_name,
    )


def consecutive_absences(records):
    """Longest run of Absent records, in date order."""
    longest = run = 0
    for record in sorted(records, key=lambda r: r.date or _EPOCH):
        if record.status == 'Absent':
            run += 1
            longest = max(longest, run)
        else:
            run = 0
    return longest


def _monthly_attendance(records):
    months = defaultdict(list)
    for record in records:
        if record.date is not None:
            months[(record.date.year, record.date.month)].append(record)

    monthly = []
    previous = None
    for year, month in sorted(months):
        month_records = months[(year, month)]
        rate = _attendance_rate(month_records)
        trend = 'Stable'
        if previous is not None:
            if rate > previous + 1:
                trend = 'Improving'
            elif rate < previous - 1:
                trend = 'Declining'
        monthly.append(MonthlyAttendance(
            month=f'{year}-{month:02d}',
            attendance_rate=rate,
            present_days=sum(1 for r in month_records if r.status in ('Present', 'Late')),
            absent_days=sum(1 for r in month_records if r.is_absent),
            trend=trend,
        ))
        previous = rate
    return monthly


def _attendance_analysis(students, attendance_by_student):
    all_records = [r for s in students for r in attendance_by_student.get(s.id, [])]

    student_records = []
    for student in students:
        records = attendance_by_student.get(student.id)
        if records is None:
            continue
        rate = _attendance_rate(records)
        pct = rate if rate is not None else float(student.attendance_percentage)
        consecutive = consecutive_absences(records)
        level = concern_level(pct, consecutive)
        student_records.append(StudentAttendanceRecord(
            student_id=student.id,
            student_name=student.full_name,
            attendance_percentage=pct,
            total_absences=sum(1 for r in records if r.is_absent),
            consecutive_absences=consecutive,
            has_attendance_concern=level != 'Normal',
            concern_level=level,
        ))

    overall = _attendance_rate(all_records)
    if overall is None:
        overall = 100.0
    absent = sum(1 for r in all_records if r.status == 'Absent')
    excused = sum(1 for r in all_records if r.status == 'Excused')
    return AttendanceAnalysis(
        overall_attendance_rate=overall,
        total_absences=absent + excused,
        total_tardies=sum(1 for r in all_records if r.status == 'Late'),
        total_excused_absences=excused,
        total_unexcused_absences=absent,
        attendance_status=attendance_status(overall),
        monthly_attendance=_monthly_attendance(all_records),
        student_records=student_records,
        attendance_concerns=[r for r in student_records if r.has_attendance_concern],
    )


def _recommendations(report):
    recs = []
    if report.rankings and report.pass_rate < 70:
        recs.append(f'Only {report.pass_rate}% of students are passing; schedule remedial sessions.')
    for perf in report.subject_performances:
        if perf.performance_level == 'Poor':
            recs.append(f'Review the teaching approach for {perf.subject} '
                        f'(average {perf.average_score}).')
    analysis = report.assessment_analysis
    weakest = next((c for c in analysis.components
                    if c.component_name == analysis.weakest_component), None)
    if weakest is not None and weakest.performance in ('Poor', 'Average'):
        recs.append(f'Give students more practice on {weakest.component_name.lower()} work.')
    if report.grade_distribution.f_percentage > 20:
        recs.append(f'{report.grade_distribution.f_percentage}% of grades are failing; '
                    'consider one-to-one tutoring.')
    attendance = report.attendance_analysis
    if attendance is not None:
        if attendance.attendance_concerns:
            recs.append(f'Follow up with {len(attendance.attendance_concerns)} '
                        'student(s) with attendance concerns.')
        if attendance.overall_attendance_rate < 90:
            recs.append('Class attendance is below 90%; contact parents of frequently absent students.')
    if not recs:
        recs.append('Class is performing well; maintain the current approach.')
    return recs


def _overall_remarks(report):
    if not report.rankings:
        return 'No grades recorded for this period.'
    level = performance_level(report.average_score)
    return (f'{level} overall performance: average score {report.average_score}, '
            f'pass rate {report.pass_rate}%. Grades: {report.grade_distribution.summary()}.')


def class_performance_report(class_id, term, year, subject=None,
                             include_attendance=True, include_recommendations=True):
    school_class = dao.get_class(class_id)
    if school_class is None:
        raise NotFoundError(f'Class {class_id} not found')

    students = dao.get_students_by_class(class_id)
    fetched = fan_out(_student_grades, students)
    graded = [(s, [g for g in grades if _in_term(g, term, year, subject)])
              for s, grades in fetched]
    grades = [g for _, gs in graded for g in gs]
    skipped = {s.id for s in students} - {s.id for s, _ in fetched}

    attendance_by_student = {}
    if include_attendance:
        fetched_attendance = fan_out(_student_attendance, students)
        attendance_by_student = {s.id: records for s, records in fetched_attendance}
        skipped |= {s.id for s in students} - set(attendance_by_student)

    rankings = _rankings(graded, attendance_by_student)
    averages = [r.average_score for r in rankings]
    pass_rate = score_pass_rate(averages)
    top_n = _config('TOP_PERFORMERS_LIMIT', 5)

    report = ClassPerformanceReport(
        class_id=class_id,
        class_name=school_class.name,
        teacher_id=school_class.teacher_id,
        teacher_name=school_class.teacher_name,
        subject=subject or school_class.subject,
        term=term,
        year=int(year),
        report_date=datetime.now(timezone.utc),
        total_students=len(students),
        average_gpa=average_gpa(students),
        average_score=round(_mean(averages), 2) if averages else 0.0,
        pass_rate=pass_rate,
        fail_rate=round(100 - pass_rate, 2) if averages else 0.0,
        grade_distribution=_grade_distribution(grades),
        subject_performances=_subject_performances(graded),
        rankings=rankings,
        top_performers=rankings[:top_n],
        need_improvement=sorted(
            (r for r in rankings if r.average_score < SCORE_PASS_THRESHOLD),
            key=lambda r: r.average_score),
        assessment_analysis=_assessment_analysis(grades),
        skipped_students=[s.id for s in students if s.id in skipped],
    )

    if include_attendance:
        analysis = _attendance_analysis(students, attendance_by_student)
        report.attendance_analysis = analysis
        report.attendance_rate = analysis.overall_attendance_rate
        for records in attendance_by_student.values():
            if records:
                # newest first from the DAO
                if records[0].is_absent:
                    report.absent_students += 1
                else:
                    report.present_students += 1

    if include_recommendations:
        report.recommendations = _recommendations(report)
    report.overall_remarks = _overall_remarks(report)
    logger.info('Built performance report for class %s (%s %s): %d students, %d grades',
                class_id, term, year, len(students), len(grades))
    return report
