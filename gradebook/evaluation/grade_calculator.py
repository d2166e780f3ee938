"""
Grade Calculator - Computes one student's course grade from graded
assignment submissions and best quiz attempts.

Two modes:
  - unweighted: total earned points over total possible points
  - weighted:   per-category percentages blended by the course's weights,
                normalised by the weights of categories that have graded work

Items that have not been graded yet are left out of both the numerator and
the denominator. Percentages are rounded half-up to a whole number before
the letter grade is looked up.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from gradebook.config import get_config
from gradebook.evaluation.records import (
    UNCATEGORIZED,
    AssignmentItem,
    CourseGrading,
    GradeResult,
    QuizAttemptRecord,
    QuizItem,
    ScaleBand,
    SubmissionRecord,
)
from gradebook.utils.logger import get_logger

log = get_logger(__name__)

_ZERO = Decimal("0")
_HUNDRED = Decimal("100")

# (category, earned, possible)
_Item = Tuple[str, Decimal, Decimal]


def _to_decimal(value: Any) -> Decimal:
    """Convert a score to Decimal; missing, negative and non-finite values become zero."""
    if value is None:
        return _ZERO
    number = value if isinstance(value, Decimal) else Decimal(str(value))
    if not number.is_finite() or number < 0:
        return _ZERO
    return number


def round_half_up(value: Any) -> int:
    """Round to the nearest whole number, halves away from zero (89.5 -> 90)."""
    number = value if isinstance(value, Decimal) else Decimal(str(value))
    return int(number.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def default_scale() -> List[ScaleBand]:
    """Letter scale from configuration (A/B/C/D/F at 90/80/70/60 unless overridden)."""
    return [ScaleBand(label=b["label"], min=b["min"]) for b in get_config().GRADE_SCALE]


def letter_grade(percentage: float, scale: Optional[Sequence[ScaleBand]] = None) -> str:
    """
    Map a percentage to a letter grade.

    Args:
        percentage: Rounded course percentage (0-100).
        scale: Optional course scale. Defaults to the configured scale.

    Returns:
        The label of the highest band whose minimum is met, or the lowest
        band's label when none is.
    """
    bands = sorted(scale or default_scale(), key=lambda b: b.min, reverse=True)

    for band in bands:
        if percentage >= band.min:
            return band.label

    return bands[-1].label


def best_attempt_points(attempts: Iterable[QuizAttemptRecord]) -> Optional[float]:
    """Highest non-null ``points_earned`` among a quiz's attempts."""
    scores = [a.points_earned for a in attempts if a.points_earned is not None]
    return max(scores) if scores else None


def _graded_items(
    assignments: Sequence[AssignmentItem],
    quizzes: Sequence[QuizItem],
    submissions: Iterable[SubmissionRecord],
    quiz_attempts: Iterable[QuizAttemptRecord],
    quiz_max_points: Mapping[Any, float],
) -> List[_Item]:
    """Collect every item that counts toward the grade, in course order."""
    grades: Dict[Any, float] = {}
    for sub in submissions:
        if sub.grade is not None:
            grades.setdefault(sub.assignment_id, sub.grade)

    attempts_by_quiz: Dict[Any, List[QuizAttemptRecord]] = {}
    for attempt in quiz_attempts:
        attempts_by_quiz.setdefault(attempt.quiz_id, []).append(attempt)

    items: List[_Item] = []

    for assignment in assignments:
        if assignment.id not in grades:
            continue
        possible = _to_decimal(assignment.max_points)
        if possible == 0:
            continue
        items.append((
            assignment.grade_category or UNCATEGORIZED,
            _to_decimal(grades[assignment.id]),
            possible,
        ))

    for quiz in quizzes:
        best = best_attempt_points(attempts_by_quiz.get(quiz.id, ()))
        if best is None:
            continue
        possible = _to_decimal(quiz_max_points.get(quiz.id))
        if possible == 0:
            log.debug("Quiz %s has no max points - left out of the grade", quiz.id)
            continue
        items.append((quiz.grade_category or UNCATEGORIZED, _to_decimal(best), possible))

    return items


def _unweighted_fraction(items: List[_Item]) -> Tuple[Decimal, List[_Item]]:
    possible = sum((i[2] for i in items), _ZERO)
    if possible == 0:
        return _ZERO, items
    earned = sum((i[1] for i in items), _ZERO)
    return earned / possible, items


def _weighted_fraction(
    items: List[_Item], weights: Mapping[str, float]
) -> Tuple[Decimal, List[_Item]]:
    per_category: Dict[str, List[Decimal]] = {}
    for category, earned, possible in items:
        totals = per_category.setdefault(category, [_ZERO, _ZERO])
        totals[0] += earned
        totals[1] += possible

    weighted_sum = _ZERO
    weight_total = _ZERO
    contributing = set()
    for category, weight in weights.items():
        if category not in per_category:
            continue  # nothing graded in this category yet
        w = _to_decimal(weight)
        if w == 0:
            continue
        earned, possible = per_category[category]
        weighted_sum += earned / possible * w
        weight_total += w
        contributing.add(category)

    dropped = sorted(set(per_category) - contributing)
    if dropped:
        log.debug("Categories without a usable weight left out of the grade: %s", dropped)

    included = [i for i in items if i[0] in contributing]
    if weight_total == 0:
        return _ZERO, included
    return weighted_sum / weight_total, included


def calculate_grade(
    course: CourseGrading,
    assignments: Sequence[AssignmentItem] = (),
    quizzes: Sequence[QuizItem] = (),
    submissions: Iterable[SubmissionRecord] = (),
    quiz_attempts: Iterable[QuizAttemptRecord] = (),
    quiz_max_points: Optional[Mapping[Any, float]] = None,
) -> GradeResult:
    """
    Compute one student's grade in one course.

    Args:
        course: The course's weights, optional letter scale and weighting flag.
        assignments: Assignments belonging to the course.
        quizzes: Quizzes belonging to the course.
        submissions: The student's submissions; ``grade=None`` means ungraded.
        quiz_attempts: The student's quiz attempts, any number per quiz.
        quiz_max_points: Quiz id -> total points of that quiz's questions.

    Returns:
        :class:`GradeResult` with a whole-number percentage in 0-100.
        Nothing here raises for missing or ungraded data; an ungraded course
        is simply 0%.
    """
    items = _graded_items(
        assignments, quizzes, submissions, quiz_attempts, quiz_max_points or {}
    )

    is_weighted = course.uses_weighting and bool(assignments or quizzes)
    if is_weighted:
        fraction, counted = _weighted_fraction(items, course.weights)
    else:
        fraction, counted = _unweighted_fraction(items)

    percentage = min(max(round_half_up(fraction * _HUNDRED), 0), 100)

    return GradeResult(
        percentage=percentage,
        letter_grade=letter_grade(percentage, course.scale),
        is_weighted=is_weighted,
        earned_points=float(sum((i[1] for i in counted), _ZERO)),
        total_points=float(sum((i[2] for i in counted), _ZERO)),
    )
