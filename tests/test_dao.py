from datetime import datetime, timezone, timedelta

import pytest

from portal import firestore_dao as dao
from portal.errors import FETCH_TRANSPORT, NotFoundError, ValidationError
from portal.firestore_models import Grade, StudentProfile, UserProfile, WeightedGrade


def test_create_and_get_student(make, db):
    make.student('s1', full_name='Amy Lee', gpa=3.5)

    stored = db.raw('students', 's1')
    assert stored['fullName'] == 'Amy Lee'
    assert stored['role'] == 'student'
    assert stored['studentId'] == 's1'
    assert stored['createdAt'] is not None

    student = dao.get_student('s1')
    assert student.full_name == 'Amy Lee'
    assert student.gpa == 3.5


def test_create_generates_an_id_when_missing(db):
    student = dao.create_student(StudentProfile(full_name='No Id'))
    assert student.id
    assert db.raw('students', student.id)['fullName'] == 'No Id'


def test_get_missing_document_is_none(db):
    assert dao.get_student('nobody') is None
    assert dao.get_student('') is None


def test_get_failure_is_none(db, make):
    make.student('s1')
    db.failing.add('students')
    assert dao.get_student('s1') is None


def test_list_failure_is_empty_but_marked(db, make):
    make.student('s1')
    db.failing.add('students')

    students = dao.list_students()
    assert students == []
    assert students.failed
    assert students.error.kind == FETCH_TRANSPORT
    assert students.error.collection == 'students'


def test_unparseable_documents_are_skipped(db, make):
    make.student('s1')
    db.data['students']['bad'] = {'fullName': 'Bad', 'enrolledSubjects': 5}

    students = dao.list_students()
    assert [s.id for s in students] == ['s1']
    assert not students.failed


def test_update_stamps_updated_at_and_patches_only_the_mask(db, make):
    student = make.student('s1', full_name='Amy', student_id='S-1')
    before = db.raw('students', 's1')['updatedAt']
    db.data['students']['s1']['extra'] = 'kept'

    student.full_name = 'Amy Lee'
    student.student_id = 'changed'
    dao.update_student(student)

    stored = db.raw('students', 's1')
    assert stored['fullName'] == 'Amy Lee'
    assert stored['studentId'] == 'S-1'
    assert stored['extra'] == 'kept'
    assert stored['updatedAt'] >= before


def test_update_without_id_raises(db):
    with pytest.raises(NotFoundError):
        dao.update_student(StudentProfile())


def test_assign_student_moves_both_sides_of_membership(db, make):
    make.school_class('10A')
    make.school_class('10B')
    make.student('s1', class_id='10A')

    assert db.raw('classes', '10A')['studentIds'] == ['s1']

    dao.assign_student_to_class('s1', '10B')

    assert db.raw('students', 's1')['classId'] == '10B'
    assert db.raw('classes', '10A')['studentIds'] == []
    assert db.raw('classes', '10B')['studentIds'] == ['s1']
    assert [s.id for s in dao.get_students_by_class('10B')] == ['s1']


def test_assign_student_to_unknown_class(db, make):
    make.student('s1')
    with pytest.raises(NotFoundError):
        dao.assign_student_to_class('s1', 'nope')
    assert db.raw('students', 's1')['classId'] == ''


def test_assign_teacher_records_the_assignment(db, make):
    make.teacher('t1')

    assignment = dao.assign_teacher_to_classes('t1', ['10A', '10B'], ['Mathematics'])

    assert db.raw('teachers', 't1')['classes'] == ['10A', '10B']
    assert db.raw('teachers', 't1')['subjects'] == ['Mathematics']
    stored = db.raw('teacher_assignments', assignment.id)
    assert stored['assignedBy'] == 'HR'
    assert stored['classIds'] == ['10A', '10B']
    assert [a.id for a in dao.get_assignments_by_teacher('t1')] == [assignment.id]


def test_delete_user_checks_students_first(db, make):
    make.school_class('10A')
    make.student('u1', class_id='10A')
    make.teacher('u2')
    make.hr('u3')

    assert dao.delete_user('u1') == 'students'
    assert db.raw('students', 'u1') is None
    assert db.raw('classes', '10A')['studentIds'] == []

    assert dao.delete_user('u2') == 'teachers'
    assert dao.delete_user('u3') == 'users'
    assert dao.delete_user('missing') is None


def test_hr_users_are_queried_by_role(db, make):
    make.hr('h1')
    dao.create_user(UserProfile(id='x', role='student', full_name='Not HR'))

    assert [u.id for u in dao.list_hr_users()] == ['h1']
    assert dao.count_hr() == 1


def test_get_profile_by_role(db, make):
    make.student('s1')
    make.teacher('t1')
    make.hr('h1')

    assert isinstance(dao.get_profile('s1', 'student'), StudentProfile)
    assert dao.get_profile('t1', 'teacher').role == 'teacher'
    assert dao.get_profile('h1', 'hr').role == 'hr'


def test_create_grade_computes_total(db):
    grade = dao.create_grade(Grade(student_id='s1', subject='Mathematics',
                                   test1=80, test2=90, exam=70, assignment=100))

    stored = db.raw('grades', grade.id)
    assert stored['totalScore'] == 80.5
    assert stored['gradeLetter'] == 'B'
    assert stored['dateRecorded'] is not None


def test_student_grades_are_newest_first(db):
    base = datetime(2024, 1, 1, tzinfo=timezone.utc)
    for day, subject in enumerate(['A', 'B', 'C']):
        dao.create_grade(Grade(student_id='s1', subject=subject,
                               date_recorded=base + timedelta(days=day)))
    dao.create_grade(Grade(student_id='other', subject='X'))

    assert [g.subject for g in dao.get_student_grades('s1')] == ['C', 'B', 'A']


def test_class_attendance_for_one_day(db, make):
    day = datetime(2024, 5, 6, 9, tzinfo=timezone.utc)
    make.attendance('s1', '10A', day)
    make.attendance('s2', '10A', day + timedelta(hours=3), status='Late')
    make.attendance('s1', '10A', day - timedelta(days=1), status='Absent')
    make.attendance('s3', '10B', day)

    records = dao.get_class_attendance('10A', day.date())
    assert sorted(r.student_id for r in records) == ['s1', 's2']
    assert len(dao.get_class_attendance('10A')) == 3


def test_record_attendance_defaults(db):
    record = dao.record_attendance(dao.Attendance(student_id='s1', class_id='10A'))
    stored = db.raw('attendance', record.id)
    assert stored['status'] == 'Present'
    assert stored['date'] == stored['recordedAt']


def test_user_documents_without_a_role_load_as_hr(db):
    db.data.setdefault('users', {})['h9'] = {'fullName': 'Hana Park', 'email': 'hana@school.org'}

    assert dao.get_user('h9').role == 'hr'
    assert dao.get_profile('h9', 'hr').is_hr()


def test_update_class_patches_the_mask(db, make):
    make.school_class('10A', name='Grade 10A')
    school_class = dao.get_class('10A')
    school_class.room_number = 'B-204'
    school_class.academic_year = '1999'
    dao.update_class(school_class)

    stored = db.raw('classes', '10A')
    assert stored['roomNumber'] == 'B-204'
    assert stored['academicYear'] != '1999'


def test_update_grade_recomputes_the_total(db):
    grade = dao.create_grade(Grade(student_id='s1', subject='Mathematics',
                                   test1=80, test2=90, exam=70, assignment=100))
    loaded = dao.get_grade(grade.id)
    loaded.exam = 100
    dao.update_grade(loaded)

    stored = db.raw('grades', grade.id)
    assert stored['totalScore'] == 92.5
    assert stored['gradeLetter'] == 'A'


def test_weighted_grade_keeps_its_scores_through_an_update(db):
    scores = dict(test1=90, test2=90, midterm=90, final_exam=90, project=90,
                  class_participation=90, homework=90)
    dao.create_weighted_grade(WeightedGrade(id='w1', student_id='s1', subject='Art', **scores))

    loaded = dao.get_grade('w1')
    assert isinstance(loaded, WeightedGrade)
    loaded.remarks = 'reviewed'
    dao.update_grade(loaded)

    stored = db.raw('grades', 'w1')
    assert stored['totalScore'] == 90.0
    assert stored['gradeLetter'] == 'A-'
    assert stored['remarks'] == 'reviewed'
    assert 'exam' not in stored


def test_weighted_grade_read_as_a_flat_grade_is_not_written_back(db):
    dao.create_weighted_grade(WeightedGrade(id='w1', student_id='s1', subject='Art', test1=90))
    flat = dao.get_student_grades('s1')[0]
    assert flat.grade_type == 'weighted'

    with pytest.raises(ValidationError):
        dao.update_grade(flat)


def test_grades_by_teacher_and_delete(db):
    dao.create_grade(Grade(id='g1', student_id='s1', teacher_id='t1', subject='Mathematics'))
    dao.create_weighted_grade(WeightedGrade(id='w1', student_id='s1', teacher_id='t1', subject='Art'))
    dao.create_grade(Grade(id='g2', student_id='s1', teacher_id='t2', subject='History'))

    mine = {g.id: type(g) for g in dao.get_grades_by_teacher('t1')}
    assert mine == {'g1': Grade, 'w1': WeightedGrade}

    dao.delete_grade('g1')
    assert db.raw('grades', 'g1') is None


def test_update_attendance_changes_status(db):
    record = dao.record_attendance(dao.Attendance(student_id='s1', class_id='10A'))
    record.status = 'Late'
    record.remarks = 'Bus delay'
    dao.update_attendance(record)
    assert dao.get_attendance(record.id).status == 'Late'

    stored = db.raw('attendance', record.id)
    assert stored['status'] == 'Late'
    assert stored['remarks'] == 'Bus delay'
