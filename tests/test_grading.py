import pytest

from portal.grading import (
    attendance_status,
    concern_level,
    gpa_from_score,
    letter_grade,
    performance_level,
    weighted_letter_grade,
)


@pytest.mark.parametrize('score, letter', [
    (100, 'A'), (90, 'A'), (89.99, 'B'), (80, 'B'), (79.99, 'C'),
    (70, 'C'), (60, 'D'), (59.99, 'F'), (0, 'F'),
])
def test_letter_grade_boundaries_resolve_upward(score, letter):
    assert letter_grade(score) == letter


@pytest.mark.parametrize('score, letter', [
    (93, 'A'), (92.99, 'A-'), (90, 'A-'), (87, 'B+'), (83, 'B'), (80, 'B-'),
    (77, 'C+'), (73, 'C'), (70, 'C-'), (67, 'D+'), (63, 'D'), (60, 'D-'), (59.9, 'F'),
])
def test_weighted_letter_grade(score, letter):
    assert weighted_letter_grade(score) == letter


def test_gpa_from_score():
    assert gpa_from_score(80.5) == 3.22
    assert gpa_from_score(100) == 4.0
    assert gpa_from_score(0) == 0.0


def test_performance_level():
    assert performance_level(85) == 'Excellent'
    assert performance_level(75) == 'Good'
    assert performance_level(60) == 'Average'
    assert performance_level(59.5) == 'Poor'


def test_attendance_status_ladder():
    assert attendance_status(95) == 'Excellent'
    assert attendance_status(90) == 'Good'
    assert attendance_status(85) == 'Satisfactory'
    assert attendance_status(80) == 'Needs Improvement'
    assert attendance_status(79) == 'Poor'


@pytest.mark.parametrize('pct, consecutive, level', [
    (69, 0, 'Critical'),
    (95, 5, 'Critical'),
    (79, 0, 'Warning'),
    (95, 3, 'Warning'),
    (80, 2, 'Normal'),
])
def test_concern_level(pct, consecutive, level):
    assert concern_level(pct, consecutive) == level
