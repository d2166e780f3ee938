"""
Custom exceptions for the Gradebook service.

The grade aggregator never raises for data conditions; these are raised by
the persistence layer and the grading-settings validator.
"""

from typing import Optional, Any, Dict


class GradebookError(Exception):
    """Base exception for all Gradebook errors."""

    def __init__(self, message: str, error_code: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}


class CourseNotFoundError(GradebookError):
    """Raised when a requested course does not exist."""
    pass


class StudentNotFoundError(GradebookError):
    """Raised when a requested student does not exist."""
    pass


class InvalidGradingSettingsError(GradebookError):
    """Raised when category weights or a grading scale fail validation."""
    pass


class InvalidGradeUpdateError(GradebookError):
    """Raised when a batch grade update names students or assignments outside the course."""
    pass
