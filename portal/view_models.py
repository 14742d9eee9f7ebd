"""
Typed view models returned by the report builders.

Everything a page needs is a field here, computed when the model is built,
so ``jsonify`` (which serialises dataclasses) sees the same values a
template would.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from portal.firestore_models import Grade, SchoolClass, StudentProfile, TeacherProfile


def _pct(part, whole):
    return round(part / whole * 100, 2) if whole else 0.0


@dataclass
class Page:
    items: List[Any]
    total: int
    page: int
    page_size: int
    total_pages: int

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_prev(self) -> bool:
        return self.page > 1


# -- Dashboards -------------------------------------------------------------

@dataclass
class HRDashboard:
    student_count: int = 0
    teacher_count: int = 0
    class_count: int = 0
    hr_count: int = 0
    recent_students: List[StudentProfile] = field(default_factory=list)
    average_student_gpa: float = 0.0
    average_student_attendance: int = 100
    gpa_pass_rate: float = 0.0
    statistics: Dict[str, Any] = field(default_factory=dict)
    # Collections whose read failed; the numbers above are partial.
    degraded: List[str] = field(default_factory=list)


@dataclass
class TeacherDashboard:
    teacher: TeacherProfile
    student_count: int = 0
    class_count: int = 0
    subject_count: int = 0
    teacher_classes: List[SchoolClass] = field(default_factory=list)
    teacher_students: List[StudentProfile] = field(default_factory=list)
    average_student_gpa: float = 0.0
    average_student_attendance: int = 100
    degraded: List[str] = field(default_factory=list)


# -- Class performance report -----------------------------------------------

@dataclass
class GradeDistribution:
    a_count: int = 0
    b_count: int = 0
    c_count: int = 0
    d_count: int = 0
    f_count: int = 0
    total: int = 0
    a_percentage: float = 0.0
    b_percentage: float = 0.0
    c_percentage: float = 0.0
    d_percentage: float = 0.0
    f_percentage: float = 0.0

    @classmethod
    def from_counts(cls, counts: Dict[str, int]) -> GradeDistribution:
        total = sum(counts.get(letter, 0) for letter in 'ABCDF')
        return cls(
            a_count=counts.get('A', 0),
            b_count=counts.get('B', 0),
            c_count=counts.get('C', 0),
            d_count=counts.get('D', 0),
            f_count=counts.get('F', 0),
            total=total,
            a_percentage=_pct(counts.get('A', 0), total),
            b_percentage=_pct(counts.get('B', 0), total),
            c_percentage=_pct(counts.get('C', 0), total),
            d_percentage=_pct(counts.get('D', 0), total),
            f_percentage=_pct(counts.get('F', 0), total),
        )

    def summary(self) -> str:
        return (f'A: {self.a_percentage}%, B: {self.b_percentage}%, C: {self.c_percentage}%, '
                f'D: {self.d_percentage}%, F: {self.f_percentage}%')


@dataclass
class SubjectPerformance:
    subject: str
    average_score: float = 0.0
    highest_score: float = 0.0
    lowest_score: float = 0.0
    pass_rate: float = 0.0
    total_students: int = 0
    passing_students: int = 0
    failing_students: int = 0
    performance_level: str = 'Average'
    remarks: str = ''


@dataclass
class StudentRanking:
    student_id: str
    student_name: str
    average_score: float = 0.0
    gpa: float = 0.0
    attendance_percentage: int = 100
    rank: str = 'N/A'
    performance_trend: str = 'Stable'
    strengths: List[str] = field(default_factory=list)
    areas_to_improve: List[str] = field(default_factory=list)


@dataclass
class AssessmentComponent:
    component_name: str
    weight: float
    average_score: float = 0.0
    max_possible_score: float = 100.0
    percentage_achieved: float = 0.0
    performance: str = 'Average'


@dataclass
class AssessmentAnalysis:
    components: List[AssessmentComponent] = field(default_factory=list)
    average_test_score: float = 0.0
    average_exam_score: float = 0.0
    average_assignment_score: float = 0.0
    weakest_component: str = 'N/A'
    strongest_component: str = 'N/A'


@dataclass
class MonthlyAttendance:
    month: str
    attendance_rate: float = 0.0
    present_days: int = 0
    absent_days: int = 0
    trend: str = 'Stable'


@dataclass
class StudentAttendanceRecord:
    student_id: str
    student_name: str
    attendance_percentage: float = 100.0
    total_absences: int = 0
    consecutive_absences: int = 0
    has_attendance_concern: bool = False
    concern_level: str = 'Normal'


@dataclass
class AttendanceAnalysis:
    overall_attendance_rate: float = 100.0
    total_absences: int = 0
    total_tardies: int = 0
    total_excused_absences: int = 0
    total_unexcused_absences: int = 0
    attendance_status: str = 'Excellent'
    monthly_attendance: List[MonthlyAttendance] = field(default_factory=list)
    student_records: List[StudentAttendanceRecord] = field(default_factory=list)
    attendance_concerns: List[StudentAttendanceRecord] = field(default_factory=list)


@dataclass
class ClassPerformanceReport:
    class_id: str
    class_name: str = ''
    teacher_id: str = ''
    teacher_name: str = ''
    subject: str = ''
    term: str = ''
    year: int = 0
    report_date: Optional[datetime] = None

    total_students: int = 0
    present_students: int = 0
    absent_students: int = 0
    attendance_rate: float = 100.0
    average_gpa: float = 0.0
    average_score: float = 0.0
    pass_rate: float = 0.0
    fail_rate: float = 0.0

    grade_distribution: GradeDistribution = field(default_factory=GradeDistribution)
    subject_performances: List[SubjectPerformance] = field(default_factory=list)
    rankings: List[StudentRanking] = field(default_factory=list)
    top_performers: List[StudentRanking] = field(default_factory=list)
    need_improvement: List[StudentRanking] = field(default_factory=list)
    assessment_analysis: AssessmentAnalysis = field(default_factory=AssessmentAnalysis)
    attendance_analysis: Optional[AttendanceAnalysis] = None

    recommendations: List[str] = field(default_factory=list)
    overall_remarks: str = ''
    # Students whose grades or attendance could not be fetched.
    skipped_students: List[str] = field(default_factory=list)


# -- Student report card ----------------------------------------------------

@dataclass
class AssessmentScore:
    assessment_type: str
    score: float
    weight: float
    weighted_score: float


@dataclass
class SubjectGrade:
    subject: str
    score: float = 0.0
    grade: str = 'F'
    teacher_id: str = ''
    comments: str = ''
    assessments: List[AssessmentScore] = field(default_factory=list)


@dataclass
class StudentReport:
    student_id: str
    student_name: str = ''
    class_id: str = ''
    grade_level: str = ''
    term: str = ''
    year: int = 0
    report_date: Optional[datetime] = None

    term_gpa: float = 0.0
    cumulative_gpa: float = 0.0
    attendance_percentage: int = 100
    overall_grade: str = 'F'

    subject_grades: List[SubjectGrade] = field(default_factory=list)

    total_subjects: int = 0
    passed_subjects: int = 0
    pass_rate: float = 0.0
    rank_in_class: str = 'N/A'
    total_students_in_class: int = 0


@dataclass
class StudentDetail:
    """Student with the records shown on the detail page."""
    student: StudentProfile
    grades: List[Grade] = field(default_factory=list)
    attendance: List[Any] = field(default_factory=list)
    computed_gpa: Optional[float] = None
