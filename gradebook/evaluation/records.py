"""
Read-only records consumed and produced by the grade aggregator.

The persistence layer converts ORM rows into these before grading, so the
aggregator never touches a database session.
"""

from dataclasses import dataclass, field, asdict
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

UNCATEGORIZED = "Uncategorized"


@dataclass(frozen=True)
class ScaleBand:
    """One letter-grade band: percentages >= ``min`` earn ``label``."""

    label: str
    min: float


@dataclass(frozen=True)
class CourseGrading:
    """
    A course's grading configuration.

    ``weights`` maps category name to weight fraction. ``weighted`` can force
    weighting off; when left as ``None`` it is inferred from ``weights``.
    """

    weights: Optional[Mapping[str, float]] = None
    scale: Optional[Sequence[ScaleBand]] = None
    weighted: Optional[bool] = None

    @property
    def uses_weighting(self) -> bool:
        if self.weighted is False:
            return False
        return bool(self.weights)


@dataclass(frozen=True)
class AssignmentItem:
    id: Any
    max_points: float
    grade_category: Optional[str] = None
    title: str = ""


@dataclass(frozen=True)
class QuizItem:
    id: Any
    grade_category: Optional[str] = None
    title: str = ""


@dataclass(frozen=True)
class SubmissionRecord:
    assignment_id: Any
    grade: Optional[float] = None
    status: str = "graded"


@dataclass(frozen=True)
class QuizAttemptRecord:
    quiz_id: Any
    points_earned: Optional[float] = None


@dataclass(frozen=True)
class GradeResult:
    """Final grade for one student in one course."""

    percentage: int
    letter_grade: str
    is_weighted: bool
    earned_points: float = 0.0
    total_points: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class StudentRecords:
    """One roster row's raw inputs for the gradebook."""

    student_id: Any
    name: str = ""
    submissions: Tuple[SubmissionRecord, ...] = field(default_factory=tuple)
    quiz_attempts: Tuple[QuizAttemptRecord, ...] = field(default_factory=tuple)
