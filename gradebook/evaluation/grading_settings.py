"""
Grading settings - validation and parsing of a course's category weights
and letter-grade scale as they are stored on the course row.
"""

import math
from typing import Any, Dict, List, Mapping, Optional, Sequence

from gradebook.evaluation.records import CourseGrading, ScaleBand
from gradebook.exceptions import InvalidGradingSettingsError
from gradebook.utils.logger import get_logger

log = get_logger(__name__)

_WEIGHT_TOLERANCE = 0.001


def _is_number(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def validate_grading_settings(
    weights: Optional[Mapping[str, Any]],
    scale: Optional[Sequence[Mapping[str, Any]]],
) -> List[str]:
    """
    Check category weights and a letter scale before they are saved.

    Args:
        weights: ``{category: fraction}``, e.g. ``{"Homework": 0.4}``.
        scale: ``[{"label": "A", "min": 90}, ...]``.

    Returns:
        Warnings that do not block saving (weights not totalling 100%).

    Raises:
        InvalidGradingSettingsError: listing every hard problem found.
    """
    errors: List[str] = []
    warnings: List[str] = []

    if weights:
        total = 0.0
        for category, weight in weights.items():
            if not str(category).strip():
                errors.append("Category names cannot be blank.")
            if not _is_number(weight):
                errors.append(f"Weight for '{category}' must be a number.")
            elif weight < 0:
                errors.append(f"Weight for '{category}' cannot be negative.")
            else:
                total += weight
        if not errors and abs(total - 1.0) > _WEIGHT_TOLERANCE:
            warnings.append(f"Total weights sum to {total * 100:g}%, not 100%.")

    if scale:
        seen = set()
        for band in scale:
            label = str(band.get("label") or "").strip()
            minimum = band.get("min")
            if not label:
                errors.append("Scale labels cannot be blank.")
            elif label in seen:
                errors.append(f"Scale label '{label}' appears more than once.")
            seen.add(label)
            if not _is_number(minimum) or not 0 <= minimum <= 100:
                errors.append(f"Minimum for '{label}' must be between 0 and 100.")

    if errors:
        raise InvalidGradingSettingsError(
            "; ".join(errors),
            error_code="invalid_grading_settings",
            details={"errors": errors},
        )

    for w in warnings:
        log.warning(w)
    return warnings


def parse_course_grading(
    weights: Optional[Mapping[str, Any]],
    scale: Optional[Sequence[Mapping[str, Any]]],
    weighted: Optional[bool] = None,
) -> CourseGrading:
    """Build a :class:`CourseGrading` from the JSON stored on a course."""
    parsed_weights: Optional[Dict[str, float]] = None
    if weights:
        parsed_weights = {str(k): float(v) for k, v in weights.items()}

    parsed_scale: Optional[List[ScaleBand]] = None
    if scale:
        parsed_scale = [ScaleBand(label=b["label"], min=float(b["min"])) for b in scale]

    return CourseGrading(weights=parsed_weights, scale=parsed_scale, weighted=weighted)
