"""
Firestore Data Access Object (DAO) layer.

Route handlers and report builders call functions from this module instead
of touching the database directly. Every function speaks in the typed
records from ``portal.firestore_models``.

Failure policy:
  - Single-document reads return None on a miss *or* a failure.
  - Collection reads and queries return a ``QueryResult`` (a list); on
    failure it is empty and carries a ``FetchFailed`` in ``.error``.
  - Writes raise; the caller decides what the user sees.
All swallowed failures are logged here with the collection and document id.
"""

import logging
import uuid
from datetime import datetime, timezone

from firebase_admin import firestore
from google.cloud.firestore_v1 import FieldFilter

from portal.errors import (
    FETCH_PARSE,
    FETCH_TRANSPORT,
    FetchFailed,
    NotFoundError,
    QueryResult,
    ValidationError,
)
from portal.firebase_init import get_db
from portal.firestore_models import (
    Attendance,
    Grade,
    GradeRecord,
    HRProfile,
    SchoolClass,
    StudentProfile,
    TeacherAssignment,
    TeacherProfile,
    WeightedGrade,
)

logger = logging.getLogger(__name__)

STUDENTS = 'students'
TEACHERS = 'teachers'
USERS = 'users'
CLASSES = 'classes'
GRADES = 'grades'
ATTENDANCE = 'attendance'
TEACHER_ASSIGNMENTS = 'teacher_assignments'

# Collections searched, in order, when deleting a user profile.
PROFILE_COLLECTIONS = (STUDENTS, TEACHERS, USERS)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _now():
    return datetime.now(timezone.utc)


def _new_id():
    return str(uuid.uuid4())


def _doc_ref(collection, doc_id):
    return get_db().collection(collection).document(doc_id)


def _get_record(collection, doc_id, model):
    """Fetch one document and parse it. Returns a record or None."""
    if not doc_id:
        return None
    try:
        snapshot = _doc_ref(collection, doc_id).get()
    except Exception:
        logger.exception('Error getting %s/%s', collection, doc_id)
        return None
    try:
        record = model.from_snapshot(snapshot)
    except Exception:
        logger.exception('Error parsing %s/%s', collection, doc_id)
        return None
    if record is None:
        logger.warning('%s/%s not found', collection, doc_id)
    return record


def _stream_records(collection, model, build_query=None):
    """Run a query (or read the whole collection) and parse every document.

    Returns a QueryResult. Documents that fail to parse are skipped and
    logged; a transport failure yields an empty result with ``.error`` set.
    """
    try:
        query = build_query() if build_query else get_db().collection(collection)
        snapshots = list(query.stream())
    except Exception as exc:
        logger.exception('Error reading %s', collection)
        return QueryResult.failure(FetchFailed(FETCH_TRANSPORT, collection, str(exc)))

    records = []
    parse_error = None
    for snapshot in snapshots:
        try:
            record = model.from_snapshot(snapshot)
        except Exception as exc:
            logger.warning('Failed to parse %s/%s', collection, snapshot.id, exc_info=True)
            parse_error = FetchFailed(FETCH_PARSE, collection, str(exc), snapshot.id)
            continue
        if record is not None:
            records.append(record)

    logger.debug('Fetched %d %s documents', len(records), collection)
    result = QueryResult(records)
    if parse_error is not None and not records:
        result.error = parse_error
    return result


def _query_records(collection, model, field, value, order_by=None, descending=False):
    """Equality filter on one field plus an optional single-field ordering."""
    def build():
        q = get_db().collection(collection).where(filter=FieldFilter(field, '==', value))
        if order_by:
            q = q.order_by(order_by, direction='DESCENDING' if descending else 'ASCENDING')
        return q
    return _stream_records(collection, model, build)


def _create_record(collection, record):
    if not record.id:
        record.id = _new_id()
    _doc_ref(collection, record.id).set(record.to_dict())
    logger.info('Created %s/%s', collection, record.id)
    return record


def _update_record(collection, record):
    """PATCH the record's updatable fields, always stamping updatedAt."""
    if not record.id:
        raise NotFoundError(f'Cannot update a {collection} record without an id')
    now = _now()
    if hasattr(record, 'updated_at'):
        record.updated_at = now
    payload = record.update_fields()
    payload['updatedAt'] = record.to_dict().get('updatedAt') or now
    _doc_ref(collection, record.id).update(payload)
    logger.info('Updated %s/%s (%s)', collection, record.id, ', '.join(sorted(payload)))
    return record


def _delete_record(collection, doc_id):
    _doc_ref(collection, doc_id).delete()
    logger.info('Deleted %s/%s', collection, doc_id)


# ========================================================================
# Students  (collection: students)
# ========================================================================

def get_student(student_id):
    """Get a student profile by UID. Returns StudentProfile or None."""
    return _get_record(STUDENTS, student_id, StudentProfile)


def list_students():
    """All student profiles. Empty (with .error) when the read fails."""
    return _stream_records(STUDENTS, StudentProfile)


def get_students_by_class(class_id):
    """Students whose classId equals class_id."""
    return _query_records(STUDENTS, StudentProfile, 'classId', class_id)


def create_student(student):
    """Create a student profile. The document id is the student's UID."""
    student.role = 'student'
    if not student.id:
        student.id = _new_id()
    if not student.student_id:
        student.student_id = student.id
    student.created_at = student.created_at or _now()
    student.updated_at = student.updated_at or student.created_at
    student.enrollment_date = student.enrollment_date or student.created_at
    return _create_record(STUDENTS, student)


def update_student(student):
    return _update_record(STUDENTS, student)


def count_students():
    return len(list_students())


# ========================================================================
# Teachers  (collection: teachers)
# ========================================================================

def get_teacher(teacher_id):
    """Get a teacher profile by UID. Returns TeacherProfile or None."""
    return _get_record(TEACHERS, teacher_id, TeacherProfile)


def list_teachers():
    return _stream_records(TEACHERS, TeacherProfile)


def create_teacher(teacher):
    teacher.role = 'teacher'
    teacher.created_at = teacher.created_at or _now()
    teacher.updated_at = teacher.updated_at or teacher.created_at
    teacher.hire_date = teacher.hire_date or teacher.created_at
    return _create_record(TEACHERS, teacher)


def update_teacher(teacher):
    return _update_record(TEACHERS, teacher)


def count_teachers():
    return len(list_teachers())


# ========================================================================
# Users  (collection: users) -- HR accounts have no specialised profile
# ========================================================================

def get_user(uid):
    return _get_record(USERS, uid, HRProfile)


def list_hr_users():
    return _query_records(USERS, HRProfile, 'role', 'hr')


def create_user(user):
    user.role = user.role or 'hr'
    user.created_at = user.created_at or _now()
    user.updated_at = user.updated_at or user.created_at
    return _create_record(USERS, user)


def update_user(user):
    return _update_record(USERS, user)


def count_hr():
    return len(list_hr_users())


def get_profile(uid, role):
    """Load the role-specific profile for a signed-in user."""
    if role == 'student':
        return get_student(uid)
    if role == 'teacher':
        return get_teacher(uid)
    return get_user(uid)


def delete_user(uid):
    """Delete a user's profile document.

    Students, teachers and HR users live in separate collections; the first
    collection holding a document with this id wins. A deleted student is
    also removed from its class roster in the same batch. Returns the
    collection name the document was removed from, or None.
    """
    db = get_db()
    for collection in PROFILE_COLLECTIONS:
        ref = db.collection(collection).document(uid)
        snapshot = ref.get()
        if not snapshot.exists:
            continue
        batch = db.batch()
        if collection == STUDENTS:
            class_id = (snapshot.to_dict() or {}).get('classId')
            if class_id and db.collection(CLASSES).document(class_id).get().exists:
                batch.update(db.collection(CLASSES).document(class_id), {
                    'studentIds': firestore.ArrayRemove([uid]),
                    'updatedAt': _now(),
                })
        batch.delete(ref)
        batch.commit()
        logger.info('Deleted user %s from %s', uid, collection)
        return collection
    logger.warning('delete_user: no profile found for %s', uid)
    return None


# ========================================================================
# Classes  (collection: classes)
# ========================================================================

def get_class(class_id):
    return _get_record(CLASSES, class_id, SchoolClass)


def list_classes():
    return _stream_records(CLASSES, SchoolClass)


def get_classes_by_teacher(teacher_id):
    """Classes whose denormalised teacherId matches, ordered by name."""
    return _query_records(CLASSES, SchoolClass, 'teacherId', teacher_id, order_by='name')


def create_class(school_class):
    school_class.created_at = school_class.created_at or _now()
    school_class.updated_at = school_class.updated_at or school_class.created_at
    return _create_record(CLASSES, school_class)


def update_class(school_class):
    return _update_record(CLASSES, school_class)


def count_classes():
    return len(list_classes())


def assign_student_to_class(student_id, class_id):
    """Move a student into a class, keeping both sides of the membership
    (students/{id}.classId and classes/{id}.studentIds) in one batch."""
    student = get_student(student_id)
    if student is None:
        raise NotFoundError(f'Student {student_id} not found')
    target = get_class(class_id)
    if target is None:
        raise NotFoundError(f'Class {class_id} not found')

    db = get_db()
    now = _now()
    batch = db.batch()
    previous = student.class_id
    if previous and previous != class_id and get_class(previous) is not None:
        batch.update(db.collection(CLASSES).document(previous), {
            'studentIds': firestore.ArrayRemove([student_id]),
            'updatedAt': now,
        })
    batch.update(db.collection(CLASSES).document(class_id), {
        'studentIds': firestore.ArrayUnion([student_id]),
        'updatedAt': now,
    })
    batch.update(db.collection(STUDENTS).document(student_id), {
        'classId': class_id,
        'updatedAt': now,
    })
    batch.commit()
    logger.info('Assigned student %s to class %s (was %s)', student_id, class_id, previous or '-')

    student.class_id = class_id
    student.updated_at = now
    return student


# ========================================================================
# Teacher assignments  (collection: teacher_assignments)
# ========================================================================

def assign_teacher_to_classes(teacher_id, class_ids, subjects, assigned_by='HR'):
    """Replace a teacher's classes and subjects and record the assignment."""
    teacher = get_teacher(teacher_id)
    if teacher is None:
        raise NotFoundError(f'Teacher {teacher_id} not found')

    now = _now()
    teacher.classes = list(class_ids)
    teacher.subjects = list(subjects)
    teacher.updated_at = now

    assignment = TeacherAssignment(
        id=_new_id(),
        teacher_id=teacher_id,
        teacher_name=teacher.full_name,
        class_ids=list(class_ids),
        subjects=list(subjects),
        assigned_date=now,
        assigned_by=assigned_by,
        is_active=True,
    )

    db = get_db()
    batch = db.batch()
    payload = teacher.update_fields()
    payload['updatedAt'] = now
    batch.update(db.collection(TEACHERS).document(teacher_id), payload)
    batch.set(db.collection(TEACHER_ASSIGNMENTS).document(assignment.id), assignment.to_dict())
    batch.commit()
    logger.info('Assigned teacher %s to classes %s', teacher_id, class_ids)
    return assignment


def get_assignments_by_teacher(teacher_id):
    return _query_records(TEACHER_ASSIGNMENTS, TeacherAssignment, 'teacherId', teacher_id,
                          order_by='assignedDate', descending=True)


# ========================================================================
# Grades  (collection: grades)
# ========================================================================

def get_grade(grade_id):
    """One grade, as a WeightedGrade when it was stored as one."""
    return _get_record(GRADES, grade_id, GradeRecord)


def create_grade(grade):
    """Store a grade; the total and letter are recomputed from components."""
    grade.calculate_total()
    grade.date_recorded = grade.date_recorded or _now()
    grade.updated_at = grade.updated_at or grade.date_recorded
    return _create_record(GRADES, grade)


def create_weighted_grade(weighted):
    """Store a weighted grade alongside regular grades (gradeType=weighted)."""
    weighted.calculate_weighted_total()
    weighted.date_recorded = weighted.date_recorded or _now()
    weighted.updated_at = weighted.updated_at or weighted.date_recorded
    return _create_record(GRADES, weighted)


def update_grade(grade):
    """Recompute the derived total and PATCH the grade's updatable fields.

    A weighted document read through the flat Grade view has no weights or
    weighted components to recompute from, so it is refused.
    """
    if isinstance(grade, WeightedGrade):
        grade.calculate_weighted_total()
    elif grade.grade_type == 'weighted':
        raise ValidationError(f'Grade {grade.id} is weighted; load it with get_grade to update it')
    else:
        grade.calculate_total()
    return _update_record(GRADES, grade)


def delete_grade(grade_id):
    _delete_record(GRADES, grade_id)


def get_student_grades(student_id):
    """All grades for a student, newest first."""
    return _query_records(GRADES, Grade, 'studentId', student_id,
                          order_by='dateRecorded', descending=True)


def get_grades_by_teacher(teacher_id):
    return _query_records(GRADES, GradeRecord, 'teacherId', teacher_id,
                          order_by='dateRecorded', descending=True)


# ========================================================================
# Attendance  (collection: attendance)
# ========================================================================

def get_attendance(attendance_id):
    return _get_record(ATTENDANCE, attendance_id, Attendance)


def record_attendance(attendance):
    attendance.recorded_at = _now()
    attendance.date = attendance.date or attendance.recorded_at
    return _create_record(ATTENDANCE, attendance)


def update_attendance(attendance):
    return _update_record(ATTENDANCE, attendance)


def get_student_attendance(student_id):
    """All attendance records for a student, most recent date first."""
    return _query_records(ATTENDANCE, Attendance, 'studentId', student_id,
                          order_by='date', descending=True)


def get_class_attendance(class_id, day=None):
    """Attendance for a class, optionally narrowed to one calendar day (UTC)."""
    records = _query_records(ATTENDANCE, Attendance, 'classId', class_id, order_by='date')
    if day is None or records.failed:
        return records
    target = day.date() if isinstance(day, datetime) else day
    return QueryResult(r for r in records if r.date is not None and r.date.date() == target)
