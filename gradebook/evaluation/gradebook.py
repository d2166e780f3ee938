"""
Gradebook builder - grades every enrolled student of a course and lays the
results out as a student × item matrix for the instructor view.

Uses threading for concurrent grading of large rosters; row order always
follows the roster.
"""

from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

import numpy as np

from gradebook.config import get_config
from gradebook.evaluation.grade_calculator import best_attempt_points, calculate_grade
from gradebook.evaluation.records import (
    AssignmentItem,
    CourseGrading,
    GradeResult,
    QuizItem,
    StudentRecords,
    SubmissionRecord,
)
from gradebook.utils.logger import get_logger

log = get_logger(__name__)

PASSING_PERCENTAGE = 60


@dataclass(frozen=True)
class GradebookColumn:
    kind: str  # "assignment" | "quiz"
    item_id: Any
    title: str
    max_points: float
    grade_category: Optional[str] = None


@dataclass(frozen=True)
class GradebookCell:
    score: Optional[float]
    status: str  # "graded" | "submitted" | "missing" | "excluded"


@dataclass
class GradebookRow:
    student_id: Any
    name: str
    cells: List[GradebookCell] = field(default_factory=list)
    result: Optional[GradeResult] = None
    error: Optional[str] = None


@dataclass
class Gradebook:
    columns: List[GradebookColumn]
    rows: List[GradebookRow]
    course_code: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "course_code": self.course_code,
            "columns": [vars(c) for c in self.columns],
            "rows": [
                {
                    "student_id": r.student_id,
                    "name": r.name,
                    "cells": [vars(c) for c in r.cells],
                    "result": r.result.to_dict() if r.result else None,
                    "error": r.error,
                }
                for r in self.rows
            ],
        }


def build_columns(
    assignments: Sequence[AssignmentItem],
    quizzes: Sequence[QuizItem],
    quiz_max_points: Mapping[Any, float],
) -> List[GradebookColumn]:
    """Assignments first, then quizzes, each in course order."""
    columns = [
        GradebookColumn("assignment", a.id, a.title, a.max_points, a.grade_category)
        for a in assignments
    ]
    columns += [
        GradebookColumn("quiz", q.id, q.title, quiz_max_points.get(q.id, 0), q.grade_category)
        for q in quizzes
    ]
    return columns


def _scored_cell(score: float, col: GradebookColumn) -> GradebookCell:
    # items worth no points are left out of the grade
    if not col.max_points or col.max_points <= 0:
        return GradebookCell(score, "excluded")
    return GradebookCell(score, "graded")


def _build_row(
    student: StudentRecords,
    course: CourseGrading,
    assignments: Sequence[AssignmentItem],
    quizzes: Sequence[QuizItem],
    quiz_max_points: Mapping[Any, float],
    columns: List[GradebookColumn],
) -> GradebookRow:
    # The first graded submission is the one the grade uses; otherwise show
    # the latest pending one.
    graded: Dict[Any, SubmissionRecord] = {}
    pending: Dict[Any, SubmissionRecord] = {}
    for sub in student.submissions:
        if sub.status == "graded" and sub.grade is not None:
            graded.setdefault(sub.assignment_id, sub)
        else:
            pending[sub.assignment_id] = sub

    cells: List[GradebookCell] = []
    for col in columns:
        if col.kind == "assignment":
            sub = graded.get(col.item_id)
            if sub is not None:
                cells.append(_scored_cell(sub.grade, col))
            elif col.item_id in pending:
                cells.append(GradebookCell(pending[col.item_id].grade, "submitted"))
            else:
                cells.append(GradebookCell(None, "missing"))
        else:
            attempts = [a for a in student.quiz_attempts if a.quiz_id == col.item_id]
            best = best_attempt_points(attempts)
            if best is not None:
                cells.append(_scored_cell(best, col))
            else:
                cells.append(GradebookCell(None, "submitted" if attempts else "missing"))

    result = calculate_grade(
        course,
        assignments,
        quizzes,
        [s for s in student.submissions if s.status == "graded"],
        student.quiz_attempts,
        quiz_max_points,
    )
    return GradebookRow(student.student_id, student.name, cells, result)


def build_gradebook(
    course: CourseGrading,
    assignments: Sequence[AssignmentItem],
    quizzes: Sequence[QuizItem],
    quiz_max_points: Mapping[Any, float],
    roster: Sequence[StudentRecords],
    max_workers: Optional[int] = None,
    course_code: str = "",
) -> Gradebook:
    """
    Grade every student on the roster.

    Args:
        course: Grading configuration shared by all rows.
        assignments: Course assignments (columns, in order).
        quizzes: Course quizzes (columns after the assignments).
        quiz_max_points: Quiz id -> total question points.
        roster: One :class:`StudentRecords` per enrolled student.
        max_workers: Thread count; defaults to ``MAX_THREADS`` from config.
            ``1`` grades sequentially.
        course_code: Label carried through to reports.

    Returns:
        :class:`Gradebook` whose rows follow roster order.
    """
    if max_workers is None:
        max_workers = get_config().MAX_THREADS

    columns = build_columns(assignments, quizzes, quiz_max_points)
    args = (course, assignments, quizzes, quiz_max_points, columns)

    log.info(
        "Building gradebook %s: %d students, %d items",
        course_code or "-", len(roster), len(columns),
    )

    if max_workers > 1 and len(roster) > 1:
        rows = _grade_concurrent(roster, args, max_workers)
    else:
        rows = _grade_sequential(roster, args)

    return Gradebook(columns=columns, rows=rows, course_code=course_code)


def _failed_row(student: StudentRecords, exc: Exception) -> GradebookRow:
    log.error("Grading failed for student %s: %s", student.student_id, exc)
    return GradebookRow(student.student_id, student.name, error=str(exc))


def _grade_concurrent(roster, args, max_workers) -> List[GradebookRow]:
    """Grade students concurrently."""
    rows: List[Optional[GradebookRow]] = [None] * len(roster)

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = {
            executor.submit(_build_row, student, *args): idx
            for idx, student in enumerate(roster)
        }
        for future in as_completed(futures):
            idx = futures[future]
            try:
                rows[idx] = future.result()
            except Exception as exc:
                rows[idx] = _failed_row(roster[idx], exc)

    return rows


def _grade_sequential(roster, args) -> List[GradebookRow]:
    """Grade students sequentially."""
    rows: List[GradebookRow] = []
    for student in roster:
        try:
            rows.append(_build_row(student, *args))
        except Exception as exc:
            rows.append(_failed_row(student, exc))
    return rows


def calculate_course_statistics(results: Sequence[GradeResult]) -> Dict[str, Any]:
    """
    Calculate aggregate statistics for a course.

    Args:
        results: One :class:`GradeResult` per graded student.

    Returns:
        Course statistics dict.
    """
    if not results:
        return {
            "total_students": 0, "mean_percentage": 0, "median_percentage": 0,
            "std_deviation": 0, "highest": 0, "lowest": 0, "pass_rate": 0,
            "grade_distribution": {},
        }

    percentages = [r.percentage for r in results]

    grade_distribution: Dict[str, int] = {}
    for r in results:
        grade_distribution[r.letter_grade] = grade_distribution.get(r.letter_grade, 0) + 1

    passing = sum(1 for p in percentages if p >= PASSING_PERCENTAGE)

    return {
        "total_students": len(results),
        "mean_percentage": round(float(np.mean(percentages)), 1),
        "median_percentage": round(float(np.median(percentages)), 1),
        "std_deviation": round(float(np.std(percentages)), 1),
        "highest": max(percentages),
        "lowest": min(percentages),
        "pass_rate": round(passing / len(results) * 100, 1),
        "grade_distribution": grade_distribution,
    }
