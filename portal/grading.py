"""Grading scales, weights and the thresholds the reports classify against."""

# Fixed weights for the four Grade components, in percent.
GRADE_WEIGHTS = {
    'test1': 25,
    'test2': 25,
    'exam': 40,
    'assignment': 10,
}

# Default weights for WeightedGrade components, in percent.
DEFAULT_WEIGHTED_WEIGHTS = {
    'test1': 15,
    'test2': 15,
    'midterm': 20,
    'finalExam': 30,
    'project': 10,
    'classParticipation': 5,
    'homework': 5,
}

# Pass gates. They apply to different metrics on different scales and are
# not interchangeable.
GPA_PASS_THRESHOLD = 2.0      # 4.0 scale
SCORE_PASS_THRESHOLD = 60     # 100 scale

LETTER_SCALE = (
    (90, 'A'),
    (80, 'B'),
    (70, 'C'),
    (60, 'D'),
)

WEIGHTED_LETTER_SCALE = (
    (93, 'A'),
    (90, 'A-'),
    (87, 'B+'),
    (83, 'B'),
    (80, 'B-'),
    (77, 'C+'),
    (73, 'C'),
    (70, 'C-'),
    (67, 'D+'),
    (63, 'D'),
    (60, 'D-'),
)

LETTERS = ('A', 'B', 'C', 'D', 'F')


def _ladder(score, scale):
    for cutoff, letter in scale:
        if score >= cutoff:
            return letter
    return 'F'


def letter_grade(score):
    """Five-bucket letter used by Grade (A/B/C/D/F at 90/80/70/60)."""
    return _ladder(score, LETTER_SCALE)


def weighted_letter_grade(score):
    """Plus/minus letter used by WeightedGrade."""
    return _ladder(score, WEIGHTED_LETTER_SCALE)


def gpa_from_score(score):
    """Map a 0-100 average onto the 4.0 GPA scale."""
    return round(score / 100 * 4, 2)


def performance_level(average_score):
    if average_score >= 85:
        return 'Excellent'
    if average_score >= 75:
        return 'Good'
    if average_score >= SCORE_PASS_THRESHOLD:
        return 'Average'
    return 'Poor'


def attendance_status(rate):
    if rate >= 95:
        return 'Excellent'
    if rate >= 90:
        return 'Good'
    if rate >= 85:
        return 'Satisfactory'
    if rate >= 80:
        return 'Needs Improvement'
    return 'Poor'


def concern_level(attendance_percentage, consecutive_absences):
    if attendance_percentage < 70 or consecutive_absences >= 5:
        return 'Critical'
    if attendance_percentage < 80 or consecutive_absences >= 3:
        return 'Warning'
    return 'Normal'
