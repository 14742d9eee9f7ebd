from dataclasses import replace
from datetime import datetime, timezone, timedelta

import pytest

from portal.firestore_models import (
    DEFAULT_AVATAR_URL,
    Attendance,
    Grade,
    GradeRecord,
    HRProfile,
    SchoolClass,
    StudentProfile,
    TeacherAssignment,
    TeacherProfile,
    UserProfile,
    WeightedGrade,
)
from tests.conftest import FakeSnapshot

STAMP = datetime(2024, 3, 1, 8, 30, 15, 123456, tzinfo=timezone.utc)
STAMP_MS = STAMP.replace(microsecond=123000)


def test_student_round_trip_truncates_timestamps_to_milliseconds():
    student = StudentProfile(
        id='s1', email='amy@example.com', full_name='Amy Lee', phone='555-0101',
        student_id='S0001', grade_level='11', class_id='10A',
        enrolled_subjects=['Mathematics', 'Science'], gpa=3.456,
        attendance_percentage=97, created_at=STAMP, enrollment_date=STAMP,
    )
    back = StudentProfile.from_dict(student.to_dict(), 's1')

    assert back == replace(student, gpa=3.46, created_at=STAMP_MS, enrollment_date=STAMP_MS)
    assert back.created_at.tzinfo is not None


CUSTOM_WEIGHTS = {'test1': 10.0, 'test2': 10.0, 'midterm': 20.0, 'finalExam': 30.0,
                  'project': 10.0, 'classParticipation': 5.0, 'homework': 15.0}

ROUND_TRIP_RECORDS = [
    UserProfile(id='u1', email='u@example.com', full_name='Uma', phone='555-0100',
                address='1 Main St', date_of_birth=STAMP, created_at=STAMP, updated_at=STAMP,
                is_active=False),
    HRProfile(id='h1', email='hana@example.com', full_name='Hana Park', created_at=STAMP),
    StudentProfile(id='s1', email='amy@example.com', full_name='Amy Lee', student_id='S0001',
                   grade_level='11', class_id='10A', parent_name='Pat Lee',
                   parent_email='pat@example.com', parent_phone='555-0102',
                   emergency_contact='Pat', enrolled_subjects=['Mathematics', 'Science'],
                   gpa=3.45, attendance_percentage=97, enrollment_date=STAMP, created_at=STAMP),
    TeacherProfile(id='t1', email='tom@example.com', full_name='Tom Baker', teacher_id='T01',
                   department='Science', subjects=['Physics'], classes=['10A', '10B'],
                   hire_date=STAMP, qualification='MSc', specialization='Optics',
                   employee_id='E-7', is_head_of_department=True, created_at=STAMP),
    SchoolClass(id='10A', name='Grade 10A', code='G10A', grade_level='10', teacher_id='t1',
                teacher_name='Tom Baker', subject='Physics', room_number='B-204',
                schedule='Mon 9:00', student_ids=['s1', 's2'], academic_year='2024',
                term='Second', max_capacity=25, is_active=False, created_at=STAMP, updated_at=STAMP),
    Grade(id='g1', student_id='s1', student_name='Amy Lee', teacher_id='t1', subject='Physics',
          term='Second', year=2024, test1=80.5, test2=90.25, exam=70.75, assignment=100.0,
          total_score=81.33, grade_letter='B', remarks='Solid', date_recorded=STAMP,
          updated_at=STAMP),
    WeightedGrade(id='w1', student_id='s1', student_name='Amy Lee', teacher_id='t1', subject='Art',
                  term='Third', year=2024, test1=90.0, test2=85.5, midterm=70.0, final_exam=88.0,
                  project=95.0, class_participation=100.0, homework=60.0,
                  weights=dict(CUSTOM_WEIGHTS), total_score=82.8, grade_letter='B',
                  remarks='Custom weights', date_recorded=STAMP, updated_at=STAMP),
    Attendance(id='a1', student_id='s1', student_name='Amy Lee', class_id='10A',
               class_name='Grade 10A', date=STAMP, status='Excused', remarks='Doctor',
               recorded_by='Tom Baker (t1)', recorded_at=STAMP),
    TeacherAssignment(id='ta1', teacher_id='t1', teacher_name='Tom Baker', class_ids=['10A'],
                      subjects=['Physics'], assigned_date=STAMP, assigned_by='HR', is_active=False),
]


def _truncated(record):
    stamps = {name: STAMP_MS for name, value in vars(record).items() if value == STAMP}
    return replace(record, **stamps)


@pytest.mark.parametrize('record', ROUND_TRIP_RECORDS, ids=lambda r: type(r).__name__)
def test_every_record_type_round_trips(record):
    back = type(record).from_dict(record.to_dict(), record.id)
    assert back == _truncated(record)


@pytest.mark.parametrize('record', [r for r in ROUND_TRIP_RECORDS if isinstance(r, (Grade, WeightedGrade))],
                         ids=lambda r: type(r).__name__)
def test_grade_documents_load_as_their_stored_kind(record):
    back = GradeRecord.from_snapshot(FakeSnapshot(record.id, record.to_dict()))
    assert back == _truncated(record)


def test_naive_and_offset_timestamps_are_stored_as_utc():
    naive = datetime(2024, 3, 1, 8, 30)
    seoul = datetime(2024, 3, 1, 17, 30, tzinfo=timezone(timedelta(hours=9)))

    assert UserProfile(created_at=naive).to_dict()['createdAt'] == naive.replace(tzinfo=timezone.utc)
    assert UserProfile(created_at=seoul).to_dict()['createdAt'] == naive.replace(tzinfo=timezone.utc)


def test_iso_strings_are_parsed():
    user = UserProfile.from_dict({'createdAt': '2024-03-01T08:30:15.123Z'}, 'u1')
    assert user.created_at == STAMP_MS


def test_missing_fields_fall_back_to_defaults():
    student = StudentProfile.from_dict({'fullName': 'Bo'}, 's2')

    assert student.grade_level == '10'
    assert student.avatar_url == DEFAULT_AVATAR_URL
    assert student.is_active is True
    assert student.attendance_percentage == 100
    assert student.role == 'student'
    assert student.enrolled_subjects == []


def test_teacher_defaults_to_teacher_role():
    teacher = TeacherProfile.from_dict({'classes': ['10A', '10B']}, 't1')
    assert teacher.role == 'teacher'
    assert teacher.classes == ['10A', '10B']
    assert TeacherProfile.from_dict(teacher.to_dict(), 't1') == teacher


def test_missing_or_empty_snapshot_is_none():
    assert StudentProfile.from_snapshot(FakeSnapshot('x', None)) is None
    assert StudentProfile.from_snapshot(FakeSnapshot('x', {})) is None
    assert StudentProfile.from_snapshot(None) is None

    student = StudentProfile.from_snapshot(FakeSnapshot('s3', {'fullName': 'Cy'}))
    assert student.id == 's3'
    assert student.full_name == 'Cy'


def test_class_student_count_is_derived_and_not_stored():
    school_class = SchoolClass(id='10A', name='Grade 10A', student_ids=['a', 'b', 'c'])

    assert school_class.student_count == 3
    assert 'studentCount' not in school_class.to_dict()
    assert SchoolClass.from_dict(school_class.to_dict(), '10A') == school_class


def test_update_fields_is_the_patch_mask():
    student = StudentProfile(id='s1', full_name='Amy', student_id='S1', gpa=3.0)
    fields = student.update_fields()

    assert fields['fullName'] == 'Amy'
    assert fields['gpa'] == 3.0
    assert 'studentId' not in fields
    assert 'createdAt' not in fields


def test_grade_total_and_letter():
    grade = Grade(test1=80, test2=90, exam=70, assignment=100)
    assert grade.calculate_total() == 80.5
    assert grade.grade_letter == 'B'

    stored = grade.to_dict()
    assert stored['totalScore'] == 80.5
    assert stored['gradeType'] == 'standard'


def test_weighted_grade_uses_its_own_ladder():
    weighted = WeightedGrade(test1=90, test2=90, midterm=90, final_exam=90,
                             project=90, class_participation=90, homework=90)
    assert weighted.weights_total == 100
    assert weighted.calculate_weighted_total() == 90.0
    assert weighted.grade_letter == 'A-'

    back = WeightedGrade.from_dict(weighted.to_dict(), 'w1')
    assert back.final_exam == 90
    assert back.weights['finalExam'] == 30


def test_weighted_grade_reads_as_grade():
    weighted = WeightedGrade(student_id='s1', subject='Art', test1=80, test2=70)
    weighted.calculate_weighted_total()

    as_grade = Grade.from_dict(weighted.to_dict(), 'w1')
    assert as_grade.grade_type == 'weighted'
    assert as_grade.total_score == weighted.total_score
    assert as_grade.exam == 0


def test_attendance_absence_statuses():
    assert Attendance(status='Absent').is_absent
    assert Attendance(status='Excused').is_absent
    assert not Attendance(status='Late').is_absent
    assert Attendance.from_dict({}, 'a1').status == 'Present'
