"""
Firestore document models using Python dataclasses.

Each model includes:
  - An `id` field for the Firestore document ID (equal to the Firebase Auth
    UID for user-rooted documents)
  - A `to_dict()` instance method producing the stored field mapping
  - A `from_dict(data, doc_id)` classmethod for deserialization
  - A `from_snapshot(snapshot)` classmethod that returns None for a missing
    or empty document
  - Sensible defaults for every field that may be absent in storage

Field names are stored in camelCase. The Firestore SDK does the value
tagging; timestamps are written as timezone-aware UTC truncated to
milliseconds and scores as doubles rounded to two places.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, ClassVar, Dict, List, Optional, Tuple

from portal.grading import (
    GRADE_WEIGHTS,
    DEFAULT_WEIGHTED_WEIGHTS,
    letter_grade,
    weighted_letter_grade,
)

DEFAULT_AVATAR_URL = "/images/default-avatar.png"
DEFAULT_GRADE_LEVEL = "10"
DEFAULT_ATTENDANCE_PERCENTAGE = 100

ROLES = ("student", "teacher", "hr")
TERMS = ("First", "Second", "Third", "Final")
ATTENDANCE_STATUSES = ("Present", "Absent", "Late", "Excused")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _to_utc_ms(value: Optional[datetime]) -> Optional[datetime]:
    """Normalise a datetime to aware UTC with millisecond precision."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    else:
        value = value.astimezone(timezone.utc)
    return value.replace(microsecond=(value.microsecond // 1000) * 1000)


def _parse_datetime(value) -> Optional[datetime]:
    """Convert a value to datetime. Accepts datetime objects, ISO-format
    strings, and Firestore DatetimeWithNanoseconds objects."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return _to_utc_ms(value)
    if isinstance(value, str):
        value = value.replace("Z", "+00:00")
        try:
            return _to_utc_ms(datetime.fromisoformat(value))
        except (ValueError, TypeError):
            return None
    return None


def _score(value) -> float:
    try:
        return round(float(value or 0), 2)
    except (TypeError, ValueError):
        return 0.0


def _int(value, default: int = 0) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _str_list(value) -> List[str]:
    if not value:
        return []
    return [str(v) for v in value]


def _now() -> datetime:
    return _to_utc_ms(datetime.now(timezone.utc))


def _current_year() -> int:
    return datetime.now(timezone.utc).year


class _Document:
    """Shared snapshot handling for all document models."""

    # Fields a PATCH may touch; updatedAt is always added by the DAO.
    UPDATE_FIELDS: ClassVar[Tuple[str, ...]] = ()

    @classmethod
    def from_snapshot(cls, snapshot):
        if snapshot is None or not snapshot.exists:
            return None
        data = snapshot.to_dict()
        if not data:
            return None
        return cls.from_dict(data, snapshot.id)

    def update_fields(self) -> Dict[str, Any]:
        data = self.to_dict()
        return {name: data[name] for name in self.UPDATE_FIELDS}


# ===========================================================================
# 1. UserProfile
# ===========================================================================

@dataclass
class UserProfile(_Document):
    id: Optional[str] = None
    email: str = ""
    full_name: str = ""
    phone: str = ""
    role: str = "student"
    avatar_url: str = DEFAULT_AVATAR_URL
    date_of_birth: Optional[datetime] = None
    address: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    is_active: bool = True

    DEFAULT_ROLE: ClassVar[str] = "student"
    UPDATE_FIELDS: ClassVar[Tuple[str, ...]] = (
        "email", "fullName", "phone", "avatarUrl", "dateOfBirth",
        "address", "isActive",
    )

    # -- Role helpers --------------------------------------------------------

    def is_student(self) -> bool:
        return self.role == "student"

    def is_teacher(self) -> bool:
        return self.role == "teacher"

    def is_hr(self) -> bool:
        return self.role == "hr"

    # -- Serialization -------------------------------------------------------

    def _base_dict(self) -> Dict[str, Any]:
        return {
            "email": self.email,
            "fullName": self.full_name,
            "phone": self.phone or "",
            "role": self.role,
            "avatarUrl": self.avatar_url or DEFAULT_AVATAR_URL,
            "dateOfBirth": _to_utc_ms(self.date_of_birth),
            "address": self.address or "",
            "createdAt": _to_utc_ms(self.created_at),
            "updatedAt": _to_utc_ms(self.updated_at),
            "isActive": self.is_active,
        }

    @classmethod
    def _base_kwargs(cls, data: Dict[str, Any], doc_id: Optional[str]) -> Dict[str, Any]:
        return dict(
            id=doc_id,
            email=data.get("email", ""),
            full_name=data.get("fullName", ""),
            phone=data.get("phone", ""),
            role=data.get("role") or cls.DEFAULT_ROLE,
            avatar_url=data.get("avatarUrl") or DEFAULT_AVATAR_URL,
            date_of_birth=_parse_datetime(data.get("dateOfBirth")),
            address=data.get("address", ""),
            created_at=_parse_datetime(data.get("createdAt")),
            updated_at=_parse_datetime(data.get("updatedAt")),
            is_active=data.get("isActive", True),
        )

    def to_dict(self) -> Dict[str, Any]:
        return self._base_dict()

    @classmethod
    def from_dict(cls, data: Dict[str, Any], doc_id: Optional[str] = None) -> UserProfile:
        return cls(**cls._base_kwargs(data, doc_id))


@dataclass
class HRProfile(UserProfile):
    """Profile stored in the `users` collection, which only holds HR staff."""
    role: str = "hr"

    DEFAULT_ROLE: ClassVar[str] = "hr"


# ===========================================================================
# 2. StudentProfile
# ===========================================================================

@dataclass
class StudentProfile(UserProfile):
    student_id: str = ""
    grade_level: str = DEFAULT_GRADE_LEVEL
    parent_name: str = ""
    parent_email: str = ""
    parent_phone: str = ""
    enrolled_subjects: List[str] = field(default_factory=list)
    class_id: str = ""
    emergency_contact: str = ""
    gpa: float = 0.0
    attendance_percentage: int = DEFAULT_ATTENDANCE_PERCENTAGE
    enrollment_date: Optional[datetime] = None

    DEFAULT_ROLE: ClassVar[str] = "student"
    UPDATE_FIELDS: ClassVar[Tuple[str, ...]] = UserProfile.UPDATE_FIELDS + (
        "gradeLevel", "parentName", "parentEmail", "parentPhone", "classId",
        "emergencyContact", "gpa", "attendancePercentage", "enrolledSubjects",
    )

    def to_dict(self) -> Dict[str, Any]:
        data = self._base_dict()
        data.update({
            "studentId": self.student_id or "",
            "gradeLevel": self.grade_level or DEFAULT_GRADE_LEVEL,
            "parentName": self.parent_name or "",
            "parentEmail": self.parent_email or "",
            "parentPhone": self.parent_phone or "",
            "enrolledSubjects": list(self.enrolled_subjects or []),
            "classId": self.class_id or "",
            "emergencyContact": self.emergency_contact or "",
            "gpa": _score(self.gpa),
            "attendancePercentage": _int(self.attendance_percentage, DEFAULT_ATTENDANCE_PERCENTAGE),
            "enrollmentDate": _to_utc_ms(self.enrollment_date),
        })
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any], doc_id: Optional[str] = None) -> StudentProfile:
        return cls(
            **cls._base_kwargs(data, doc_id),
            student_id=data.get("studentId", ""),
            grade_level=data.get("gradeLevel") or DEFAULT_GRADE_LEVEL,
            parent_name=data.get("parentName", ""),
            parent_email=data.get("parentEmail", ""),
            parent_phone=data.get("parentPhone", ""),
            enrolled_subjects=_str_list(data.get("enrolledSubjects")),
            class_id=data.get("classId", ""),
            emergency_contact=data.get("emergencyContact", ""),
            gpa=_score(data.get("gpa")),
            attendance_percentage=_int(data.get("attendancePercentage"), DEFAULT_ATTENDANCE_PERCENTAGE),
            enrollment_date=_parse_datetime(data.get("enrollmentDate")),
        )


# ===========================================================================
# 3. TeacherProfile
# ===========================================================================

@dataclass
class TeacherProfile(UserProfile):
    role: str = "teacher"
    teacher_id: str = ""
    department: str = ""
    subjects: List[str] = field(default_factory=list)
    # Class ids this teacher may see; the access boundary for teacher reads.
    classes: List[str] = field(default_factory=list)
    hire_date: Optional[datetime] = None
    qualification: str = ""
    specialization: str = ""
    employee_id: str = ""
    is_head_of_department: bool = False

    DEFAULT_ROLE: ClassVar[str] = "teacher"
    UPDATE_FIELDS: ClassVar[Tuple[str, ...]] = UserProfile.UPDATE_FIELDS + (
        "department", "subjects", "classes", "qualification",
        "specialization", "isHeadOfDepartment",
    )

    def to_dict(self) -> Dict[str, Any]:
        data = self._base_dict()
        data.update({
            "teacherId": self.teacher_id or "",
            "department": self.department or "",
            "subjects": list(self.subjects or []),
            "classes": list(self.classes or []),
            "hireDate": _to_utc_ms(self.hire_date),
            "qualification": self.qualification or "",
            "specialization": self.specialization or "",
            "employeeId": self.employee_id or "",
            "isHeadOfDepartment": self.is_head_of_department,
        })
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any], doc_id: Optional[str] = None) -> TeacherProfile:
        return cls(
            **cls._base_kwargs(data, doc_id),
            teacher_id=data.get("teacherId", ""),
            department=data.get("department", ""),
            subjects=_str_list(data.get("subjects")),
            classes=_str_list(data.get("classes")),
            hire_date=_parse_datetime(data.get("hireDate")),
            qualification=data.get("qualification", ""),
            specialization=data.get("specialization", ""),
            employee_id=data.get("employeeId", ""),
            is_head_of_department=data.get("isHeadOfDepartment", False),
        )


# ===========================================================================
# 4. SchoolClass
# ===========================================================================

@dataclass
class SchoolClass(_Document):
    id: Optional[str] = None
    name: str = ""
    code: str = ""
    grade_level: str = ""
    teacher_id: str = ""
    teacher_name: str = ""
    subject: str = ""
    room_number: str = ""
    schedule: str = ""
    student_ids: List[str] = field(default_factory=list)
    academic_year: str = field(default_factory=lambda: str(_current_year()))
    term: str = "First"
    max_capacity: int = 30
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    UPDATE_FIELDS: ClassVar[Tuple[str, ...]] = (
        "name", "code", "gradeLevel", "teacherId", "teacherName", "subject",
        "schedule", "roomNumber", "studentIds", "term", "maxCapacity", "isActive",
    )

    @property
    def student_count(self) -> int:
        return len(self.student_ids or [])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "code": self.code or "",
            "gradeLevel": self.grade_level or "",
            "teacherId": self.teacher_id or "",
            "teacherName": self.teacher_name or "",
            "subject": self.subject or "",
            "roomNumber": self.room_number or "",
            "schedule": self.schedule or "",
            "studentIds": list(self.student_ids or []),
            "academicYear": self.academic_year,
            "term": self.term or "First",
            "maxCapacity": self.max_capacity,
            "isActive": self.is_active,
            "createdAt": _to_utc_ms(self.created_at),
            "updatedAt": _to_utc_ms(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], doc_id: Optional[str] = None) -> SchoolClass:
        return cls(
            id=doc_id,
            name=data.get("name", ""),
            code=data.get("code", ""),
            grade_level=data.get("gradeLevel", ""),
            teacher_id=data.get("teacherId", ""),
            teacher_name=data.get("teacherName", ""),
            subject=data.get("subject", ""),
            room_number=data.get("roomNumber", ""),
            schedule=data.get("schedule", ""),
            student_ids=_str_list(data.get("studentIds")),
            academic_year=data.get("academicYear") or str(_current_year()),
            term=data.get("term") or "First",
            max_capacity=_int(data.get("maxCapacity"), 30),
            is_active=data.get("isActive", True),
            created_at=_parse_datetime(data.get("createdAt")),
            updated_at=_parse_datetime(data.get("updatedAt")),
        )


# ===========================================================================
# 5. Grade
# ===========================================================================

@dataclass
class Grade(_Document):
    id: Optional[str] = None
    student_id: str = ""
    student_name: str = ""
    teacher_id: str = ""
    subject: str = ""
    term: str = "First"
    year: int = field(default_factory=_current_year)
    test1: float = 0.0
    test2: float = 0.0
    exam: float = 0.0
    assignment: float = 0.0
    total_score: float = 0.0
    grade_letter: str = "F"
    remarks: str = ""
    grade_type: str = "standard"
    date_recorded: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    UPDATE_FIELDS: ClassVar[Tuple[str, ...]] = (
        "test1", "test2", "exam", "assignment", "totalScore",
        "gradeLetter", "remarks",
    )

    def calculate_total(self) -> float:
        """Weighted total of the four components (each scored 0-100)."""
        total = (
            self.test1 * GRADE_WEIGHTS["test1"]
            + self.test2 * GRADE_WEIGHTS["test2"]
            + self.exam * GRADE_WEIGHTS["exam"]
            + self.assignment * GRADE_WEIGHTS["assignment"]
        ) / 100
        self.total_score = round(total, 2)
        self.grade_letter = letter_grade(self.total_score)
        return self.total_score

    def to_dict(self) -> Dict[str, Any]:
        return {
            "studentId": self.student_id,
            "studentName": self.student_name or "",
            "teacherId": self.teacher_id or "",
            "subject": self.subject,
            "term": self.term or "First",
            "year": _int(self.year, _current_year()),
            "test1": _score(self.test1),
            "test2": _score(self.test2),
            "exam": _score(self.exam),
            "assignment": _score(self.assignment),
            "totalScore": _score(self.total_score),
            "gradeLetter": self.grade_letter or "F",
            "remarks": self.remarks or "",
            "gradeType": self.grade_type,
            "dateRecorded": _to_utc_ms(self.date_recorded),
            "updatedAt": _to_utc_ms(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], doc_id: Optional[str] = None) -> Grade:
        return cls(
            id=doc_id,
            student_id=data.get("studentId", ""),
            student_name=data.get("studentName", ""),
            teacher_id=data.get("teacherId", ""),
            subject=data.get("subject", ""),
            term=data.get("term") or "First",
            year=_int(data.get("year"), _current_year()),
            test1=_score(data.get("test1")),
            test2=_score(data.get("test2")),
            exam=_score(data.get("exam")),
            assignment=_score(data.get("assignment")),
            total_score=_score(data.get("totalScore")),
            grade_letter=data.get("gradeLetter") or "F",
            remarks=data.get("remarks", ""),
            grade_type=data.get("gradeType") or "standard",
            date_recorded=_parse_datetime(data.get("dateRecorded")),
            updated_at=_parse_datetime(data.get("updatedAt")),
        )


# ===========================================================================
# 6. WeightedGrade
# ===========================================================================

@dataclass
class WeightedGrade(_Document):
    id: Optional[str] = None
    student_id: str = ""
    student_name: str = ""
    teacher_id: str = ""
    subject: str = ""
    term: str = "First"
    year: int = field(default_factory=_current_year)

    test1: float = 0.0
    test2: float = 0.0
    midterm: float = 0.0
    final_exam: float = 0.0
    project: float = 0.0
    class_participation: float = 0.0
    homework: float = 0.0

    # Percent weights; they should add up to 100.
    weights: Dict[str, float] = field(default_factory=lambda: dict(DEFAULT_WEIGHTED_WEIGHTS))

    total_score: float = 0.0
    grade_letter: str = "F"
    remarks: str = ""
    date_recorded: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    COMPONENTS: ClassVar[Tuple[Tuple[str, str], ...]] = (
        ("test1", "test1"),
        ("test2", "test2"),
        ("midterm", "midterm"),
        ("finalExam", "final_exam"),
        ("project", "project"),
        ("classParticipation", "class_participation"),
        ("homework", "homework"),
    )
    UPDATE_FIELDS: ClassVar[Tuple[str, ...]] = (
        "test1", "test2", "midterm", "finalExam", "project",
        "classParticipation", "homework", "weights", "totalScore",
        "gradeLetter", "remarks",
    )

    @property
    def weights_total(self) -> float:
        return round(sum(float(self.weights.get(key, 0)) for key, _ in self.COMPONENTS), 2)

    def calculate_weighted_total(self) -> float:
        total = sum(
            getattr(self, attr) * float(self.weights.get(key, 0)) / 100
            for key, attr in self.COMPONENTS
        )
        self.total_score = round(total, 2)
        self.grade_letter = weighted_letter_grade(self.total_score)
        return self.total_score

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "studentId": self.student_id,
            "studentName": self.student_name or "",
            "teacherId": self.teacher_id or "",
            "subject": self.subject,
            "term": self.term or "First",
            "year": _int(self.year, _current_year()),
            "weights": {key: float(self.weights.get(key, 0)) for key, _ in self.COMPONENTS},
            "totalScore": _score(self.total_score),
            "gradeLetter": self.grade_letter or "F",
            "remarks": self.remarks or "",
            "gradeType": "weighted",
            "dateRecorded": _to_utc_ms(self.date_recorded),
            "updatedAt": _to_utc_ms(self.updated_at),
        }
        for key, attr in self.COMPONENTS:
            data[key] = _score(getattr(self, attr))
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any], doc_id: Optional[str] = None) -> WeightedGrade:
        weights = dict(DEFAULT_WEIGHTED_WEIGHTS)
        weights.update(data.get("weights") or {})
        kwargs = dict(
            id=doc_id,
            student_id=data.get("studentId", ""),
            student_name=data.get("studentName", ""),
            teacher_id=data.get("teacherId", ""),
            subject=data.get("subject", ""),
            term=data.get("term") or "First",
            year=_int(data.get("year"), _current_year()),
            weights=weights,
            total_score=_score(data.get("totalScore")),
            grade_letter=data.get("gradeLetter") or "F",
            remarks=data.get("remarks", ""),
            date_recorded=_parse_datetime(data.get("dateRecorded")),
            updated_at=_parse_datetime(data.get("updatedAt")),
        )
        for key, attr in cls.COMPONENTS:
            kwargs[attr] = _score(data.get(key))
        return cls(**kwargs)


class GradeRecord(_Document):
    """Reads a `grades` document as Grade or WeightedGrade by its gradeType.

    Report code uses the flat Grade view for every document; anything that
    writes a grade back must load it through here.
    """

    @classmethod
    def from_dict(cls, data: Dict[str, Any], doc_id: Optional[str] = None):
        if data.get("gradeType") == "weighted":
            return WeightedGrade.from_dict(data, doc_id)
        return Grade.from_dict(data, doc_id)


# ===========================================================================
# 7. Attendance
# ===========================================================================

@dataclass
class Attendance(_Document):
    id: Optional[str] = None
    student_id: str = ""
    student_name: str = ""
    class_id: str = ""
    class_name: str = ""
    date: Optional[datetime] = None
    status: str = "Present"
    remarks: str = ""
    recorded_by: str = ""
    recorded_at: Optional[datetime] = None

    UPDATE_FIELDS: ClassVar[Tuple[str, ...]] = ("status", "remarks", "recordedBy")

    @property
    def is_absent(self) -> bool:
        return self.status in ("Absent", "Excused")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "studentId": self.student_id,
            "studentName": self.student_name or "",
            "classId": self.class_id or "",
            "className": self.class_name or "",
            "date": _to_utc_ms(self.date),
            "status": self.status or "Present",
            "remarks": self.remarks or "",
            "recordedBy": self.recorded_by or "",
            "recordedAt": _to_utc_ms(self.recorded_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], doc_id: Optional[str] = None) -> Attendance:
        return cls(
            id=doc_id,
            student_id=data.get("studentId", ""),
            student_name=data.get("studentName", ""),
            class_id=data.get("classId", ""),
            class_name=data.get("className", ""),
            date=_parse_datetime(data.get("date")),
            status=data.get("status") or "Present",
            remarks=data.get("remarks", ""),
            recorded_by=data.get("recordedBy", ""),
            recorded_at=_parse_datetime(data.get("recordedAt")),
        )


# ===========================================================================
# 8. TeacherAssignment
# ===========================================================================

@dataclass
class TeacherAssignment(_Document):
    id: Optional[str] = None
    teacher_id: str = ""
    teacher_name: str = ""
    class_ids: List[str] = field(default_factory=list)
    subjects: List[str] = field(default_factory=list)
    assigned_date: Optional[datetime] = None
    assigned_by: str = ""
    is_active: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "teacherId": self.teacher_id,
            "teacherName": self.teacher_name or "",
            "classIds": list(self.class_ids or []),
            "subjects": list(self.subjects or []),
            "assignedDate": _to_utc_ms(self.assigned_date),
            "assignedBy": self.assigned_by or "",
            "isActive": self.is_active,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], doc_id: Optional[str] = None) -> TeacherAssignment:
        return cls(
            id=doc_id,
            teacher_id=data.get("teacherId", ""),
            teacher_name=data.get("teacherName", ""),
            class_ids=_str_list(data.get("classIds")),
            subjects=_str_list(data.get("subjects")),
            assigned_date=_parse_datetime(data.get("assignedDate")),
            assigned_by=data.get("assignedBy", ""),
            is_active=data.get("isActive", True),
        )
