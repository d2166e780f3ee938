"""
Database manager - CRUD operations, grading input loaders, gradebook
assembly and Excel export.

Uses SQLAlchemy sessions scoped to each public function so the module
is safe to call from multiple threads.
"""

from __future__ import annotations

import io
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import create_engine, func
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from gradebook.config import get_config
from gradebook.database.models import (
    Assignment,
    AssignmentSubmission,
    Base,
    Course,
    Enrollment,
    GradeAuditLog,
    Quiz,
    QuizAttempt,
    QuizQuestion,
    Student,
)
from gradebook.evaluation.grade_calculator import calculate_grade
from gradebook.evaluation.gradebook import (
    Gradebook,
    build_gradebook,
    calculate_course_statistics,
)
from gradebook.evaluation.grading_settings import (
    parse_course_grading,
    validate_grading_settings,
)
from gradebook.evaluation.records import (
    AssignmentItem,
    CourseGrading,
    GradeResult,
    QuizAttemptRecord,
    QuizItem,
    StudentRecords,
    SubmissionRecord,
)
from gradebook.exceptions import (
    CourseNotFoundError,
    InvalidGradeUpdateError,
    StudentNotFoundError,
)
from gradebook.utils.logger import get_logger
from gradebook.utils.report_generator import generate_gradebook_report

log = get_logger(__name__)

CourseInputs = Tuple[CourseGrading, List[AssignmentItem], List[QuizItem], Dict[int, float]]

# ---------------------------------------------------------------------------
# Engine & session factory (module-level singletons)
# ---------------------------------------------------------------------------
_engine = None
_SessionFactory = None


def configure(database_url: Optional[str] = None) -> None:
    """(Re)bind the module to *database_url*, defaulting to ``DATABASE_URL``."""
    global _engine, _SessionFactory
    url = database_url or get_config().DATABASE_URL

    kwargs: Dict[str, Any] = {}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool  # one shared in-memory database

    _engine = create_engine(url, echo=False, future=True, **kwargs)
    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)


configure()


def _session() -> Session:
    return _SessionFactory()


# ---------------------------------------------------------------------------
# Initialization
# ---------------------------------------------------------------------------

def init_db() -> None:
    """Create all tables if they do not exist."""
    Base.metadata.create_all(_engine)
    log.info("Database initialised at %s", _engine.url)


# ---------------------------------------------------------------------------
# Course & roster helpers
# ---------------------------------------------------------------------------

def get_or_create_course(course_code: str, course_name: Optional[str] = None) -> Course:
    """Return existing course or insert a new one."""
    with _session() as s:
        course = s.query(Course).filter_by(course_code=course_code).first()
        if course is None:
            course = Course(course_code=course_code, course_name=course_name)
            s.add(course)
            s.commit()
            log.info("Created course %s", course_code)
        elif course_name and course.course_name != course_name:
            course.course_name = course_name
            s.commit()
        return course


def get_course(course_id: int) -> Course:
    """Return course *course_id* or raise :class:`CourseNotFoundError`."""
    with _session() as s:
        return _require_course(s, course_id)


def get_all_courses() -> List[Dict[str, Any]]:
    """Return every course with its roster size."""
    with _session() as s:
        rows = (
            s.query(Course, func.count(Enrollment.id))
            .outerjoin(Enrollment, Enrollment.course_id == Course.id)
            .group_by(Course.id)
            .order_by(Course.course_code)
            .all()
        )
        return [
            {
                "id": c.id,
                "course_code": c.course_code,
                "course_name": c.course_name,
                "is_weighted": bool(c.grading_weights) and c.is_weighted is not False,
                "students": n,
            }
            for c, n in rows
        ]


def add_student(
    student_number: str,
    first_name: str,
    last_name: str,
    email: Optional[str] = None,
) -> Student:
    """Return existing student by number or insert a new one."""
    with _session() as s:
        student = s.query(Student).filter_by(student_number=student_number).first()
        if student is None:
            student = Student(
                student_number=student_number,
                first_name=first_name,
                last_name=last_name,
                email=email,
            )
            s.add(student)
            s.commit()
            log.info("Created student %s", student_number)
        return student


def enroll_student(course_id: int, student_id: int) -> None:
    """Put a student on a course roster (no-op if already enrolled)."""
    with _session() as s:
        _require_course(s, course_id)
        _require_student(s, student_id)
        exists = s.query(Enrollment).filter_by(course_id=course_id, student_id=student_id).first()
        if exists is None:
            s.add(Enrollment(course_id=course_id, student_id=student_id))
            s.commit()


def update_grading_settings(
    course_id: int,
    weights: Optional[Dict[str, float]] = None,
    scale: Optional[List[Dict[str, Any]]] = None,
    is_weighted: Optional[bool] = None,
) -> List[str]:
    """
    Validate and store a course's category weights and letter scale.

    Empty weights or scale clear the stored value.

    Returns:
        Validation warnings (e.g. weights not totalling 100%).

    Raises:
        CourseNotFoundError, InvalidGradingSettingsError
    """
    warnings = validate_grading_settings(weights, scale)
    with _session() as s:
        course = _require_course(s, course_id)
        course.grading_weights = dict(weights) if weights else None
        course.grading_scale = [dict(b) for b in scale] if scale else None
        course.is_weighted = is_weighted
        course.updated_at = datetime.utcnow()
        s.commit()
        log.info("Updated grading settings for %s", course.course_code)
    return warnings


# ---------------------------------------------------------------------------
# Gradable items & scores
# ---------------------------------------------------------------------------

def add_assignment(
    course_id: int,
    title: str,
    max_points: float = 100,
    grade_category: Optional[str] = None,
    due_date: Optional[datetime] = None,
) -> Assignment:
    with _session() as s:
        _require_course(s, course_id)
        assignment = Assignment(
            course_id=course_id,
            title=title,
            max_points=max_points,
            grade_category=grade_category,
            due_date=due_date,
        )
        s.add(assignment)
        s.commit()
        return assignment


def add_quiz(
    course_id: int,
    title: str,
    question_points: Sequence[float] = (),
    grade_category: Optional[str] = None,
    is_published: bool = True,
) -> Quiz:
    """Insert a quiz with one question per entry of *question_points*."""
    with _session() as s:
        _require_course(s, course_id)
        quiz = Quiz(
            course_id=course_id,
            title=title,
            grade_category=grade_category,
            is_published=is_published,
        )
        quiz.questions = [QuizQuestion(points=p) for p in question_points]
        s.add(quiz)
        s.commit()
        return quiz


def record_submission(
    assignment_id: int,
    student_id: int,
    grade: Optional[float] = None,
    status: Optional[str] = None,
) -> AssignmentSubmission:
    """
    Upsert a student's submission (keyed on assignment + student).

    ``status`` defaults to ``graded`` when a grade is given and
    ``submitted`` otherwise.
    """
    status = status or ("graded" if grade is not None else "submitted")
    with _session() as s:
        sub = s.query(AssignmentSubmission).filter_by(
            assignment_id=assignment_id, student_id=student_id
        ).first()
        if sub is None:
            sub = AssignmentSubmission(assignment_id=assignment_id, student_id=student_id)
            s.add(sub)
        sub.grade = grade
        sub.status = status
        sub.graded_at = datetime.utcnow() if status == "graded" else None
        s.commit()
        return sub


def record_quiz_attempt(
    quiz_id: int,
    student_id: int,
    points_earned: Optional[float],
) -> QuizAttempt:
    with _session() as s:
        attempt = QuizAttempt(quiz_id=quiz_id, student_id=student_id, points_earned=points_earned)
        s.add(attempt)
        s.commit()
        return attempt


def batch_update_grades(
    course_id: int,
    grades: Dict[int, Dict[int, Optional[float]]],
    changed_by: Optional[str] = None,
) -> int:
    """
    Apply ``{student_id: {assignment_id: grade}}`` to a course in one transaction.

    A changed grade updates the existing submission, or creates a graded one
    when none exists. Every change writes a :class:`GradeAuditLog` row; grades
    equal to the stored value are skipped. ``None`` clears a grade and keeps
    the submission's status.

    Returns:
        Number of grades changed.

    Raises:
        CourseNotFoundError, InvalidGradeUpdateError
    """
    with _session() as s:
        _require_course(s, course_id)

        enrolled = {
            sid for (sid,) in s.query(Enrollment.student_id).filter_by(course_id=course_id)
        }
        assignment_ids = {
            aid for (aid,) in s.query(Assignment.id).filter_by(course_id=course_id)
        }
        errors = [f"Student {sid} is not enrolled in course {course_id}"
                  for sid in grades if sid not in enrolled]
        errors += [
            f"Assignment {aid} does not belong to course {course_id}"
            for row in grades.values() for aid in row if aid not in assignment_ids
        ]
        if errors:
            raise InvalidGradeUpdateError(
                "; ".join(errors), error_code="invalid_grade_update", details={"errors": errors}
            )

        changed = 0
        now = datetime.utcnow()
        for student_id, row in grades.items():
            for assignment_id, new_grade in row.items():
                sub = s.query(AssignmentSubmission).filter_by(
                    assignment_id=assignment_id, student_id=student_id
                ).first()
                if sub is None:
                    if new_grade is None:
                        continue
                    sub = AssignmentSubmission(
                        assignment_id=assignment_id, student_id=student_id, status="submitted"
                    )
                    s.add(sub)
                elif sub.grade == new_grade:
                    continue

                old_grade = sub.grade
                sub.grade = new_grade
                if new_grade is not None:
                    sub.status = "graded"
                    sub.graded_at = now
                s.flush()  # assigns sub.id for new rows

                s.add(GradeAuditLog(
                    submission_id=sub.id,
                    student_id=student_id,
                    course_id=course_id,
                    field_changed="grade",
                    old_value=_grade_text(old_grade),
                    new_value=_grade_text(new_grade),
                    changed_by=changed_by,
                ))
                changed += 1

        s.commit()

    log.info("Batch grade update for course %s: %d change(s) by %s",
             course_id, changed, changed_by or "unknown")
    return changed


def get_grade_audit_log(course_id: int) -> List[Dict[str, Any]]:
    """Return a course's grade changes, oldest first."""
    with _session() as s:
        _require_course(s, course_id)
        entries = (
            s.query(GradeAuditLog, AssignmentSubmission.assignment_id)
            .join(AssignmentSubmission, GradeAuditLog.submission_id == AssignmentSubmission.id)
            .filter(GradeAuditLog.course_id == course_id)
            .order_by(GradeAuditLog.id)
            .all()
        )
        return [
            {
                "submission_id": e.submission_id,
                "assignment_id": assignment_id,
                "student_id": e.student_id,
                "field_changed": e.field_changed,
                "old_value": e.old_value,
                "new_value": e.new_value,
                "changed_by": e.changed_by,
                "changed_at": e.changed_at.isoformat() if e.changed_at else None,
            }
            for e, assignment_id in entries
        ]


# ---------------------------------------------------------------------------
# Grading input loaders
# ---------------------------------------------------------------------------

def load_course_inputs(course_id: int) -> CourseInputs:
    """
    Load everything the aggregator needs that is shared by all students.

    Returns:
        ``(course_grading, assignments, quizzes, quiz_max_points)``. Only
        published quizzes are included; a quiz's max points is the sum of
        its question points.
    """
    with _session() as s:
        return _course_inputs(s, _require_course(s, course_id))


def load_student_records(
    course_id: int, student_id: int
) -> Tuple[List[SubmissionRecord], List[QuizAttemptRecord]]:
    """Return one student's graded submissions and quiz attempts for a course."""
    with _session() as s:
        _require_course(s, course_id)
        subs = (
            s.query(AssignmentSubmission)
            .join(Assignment)
            .filter(
                Assignment.course_id == course_id,
                AssignmentSubmission.student_id == student_id,
                AssignmentSubmission.status == "graded",
            )
            .all()
        )
        attempts = (
            s.query(QuizAttempt)
            .join(Quiz)
            .filter(Quiz.course_id == course_id, QuizAttempt.student_id == student_id)
            .order_by(QuizAttempt.id)
            .all()
        )
        return [_submission_record(x) for x in subs], [_attempt_record(x) for x in attempts]


def calculate_student_grade(student_id: int, course_id: int) -> GradeResult:
    """
    Grade one student in one course from the stored records.

    Raises:
        CourseNotFoundError, StudentNotFoundError
    """
    with _session() as s:
        _require_student(s, student_id)

    course, assignments, quizzes, quiz_max_points = load_course_inputs(course_id)
    submissions, attempts = load_student_records(course_id, student_id)
    result = calculate_grade(course, assignments, quizzes, submissions, attempts, quiz_max_points)
    log.info(
        "Graded student %s in course %s → %d%% %s",
        student_id, course_id, result.percentage, result.letter_grade,
    )
    return result


def get_course_gradebook(course_id: int, max_workers: Optional[int] = None) -> Gradebook:
    """Build the instructor gradebook for every enrolled student."""
    with _session() as s:
        course_row = _require_course(s, course_id)
        course, assignments, quizzes, quiz_max_points = _course_inputs(s, course_row)

        students = (
            s.query(Student)
            .join(Enrollment)
            .filter(Enrollment.course_id == course_id)
            .order_by(Student.last_name, Student.first_name, Student.id)
            .all()
        )

        # Fetch all scores for the course in two queries, then bucket per student.
        subs_by_student: Dict[int, List[SubmissionRecord]] = {}
        for sub in (
            s.query(AssignmentSubmission)
            .join(Assignment)
            .filter(Assignment.course_id == course_id)
            .all()
        ):
            subs_by_student.setdefault(sub.student_id, []).append(_submission_record(sub))

        attempts_by_student: Dict[int, List[QuizAttemptRecord]] = {}
        for att in (
            s.query(QuizAttempt)
            .join(Quiz)
            .filter(Quiz.course_id == course_id)
            .order_by(QuizAttempt.id)
            .all()
        ):
            attempts_by_student.setdefault(att.student_id, []).append(_attempt_record(att))

        roster = [
            StudentRecords(
                student_id=st.id,
                name=st.full_name,
                submissions=tuple(subs_by_student.get(st.id, ())),
                quiz_attempts=tuple(attempts_by_student.get(st.id, ())),
            )
            for st in students
        ]
        course_code = course_row.course_code

    return build_gradebook(
        course, assignments, quizzes, quiz_max_points, roster,
        max_workers=max_workers, course_code=course_code,
    )


def get_course_stats(gradebook: Gradebook) -> Dict[str, Any]:
    """Aggregate statistics over a gradebook's successfully graded rows."""
    return calculate_course_statistics([r.result for r in gradebook.rows if r.result])


# ---------------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------------

def export_to_excel(course_id: int) -> io.BytesIO:
    """Generate Excel report for *course_id*, returned as ``BytesIO``."""
    gradebook = get_course_gradebook(course_id)
    return generate_gradebook_report(gradebook, get_course_stats(gradebook))


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _require_course(s: Session, course_id: int) -> Course:
    course = s.get(Course, course_id)
    if course is None:
        raise CourseNotFoundError(f"Course {course_id} not found", error_code="course_not_found")
    return course


def _require_student(s: Session, student_id: int) -> Student:
    student = s.get(Student, student_id)
    if student is None:
        raise StudentNotFoundError(f"Student {student_id} not found", error_code="student_not_found")
    return student


def _course_inputs(s: Session, course: Course) -> CourseInputs:
    grading = parse_course_grading(course.grading_weights, course.grading_scale, course.is_weighted)

    assignments = [
        AssignmentItem(id=a.id, max_points=a.max_points, grade_category=a.grade_category, title=a.title)
        for a in s.query(Assignment).filter_by(course_id=course.id)
        .order_by(Assignment.due_date, Assignment.id).all()
    ]
    quizzes = [
        QuizItem(id=q.id, grade_category=q.grade_category, title=q.title)
        for q in s.query(Quiz).filter_by(course_id=course.id, is_published=True)
        .order_by(Quiz.id).all()
    ]

    quiz_max_points: Dict[int, float] = {}
    if quizzes:
        rows = (
            s.query(QuizQuestion.quiz_id, func.sum(QuizQuestion.points))
            .filter(QuizQuestion.quiz_id.in_([q.id for q in quizzes]))
            .group_by(QuizQuestion.quiz_id)
            .all()
        )
        quiz_max_points = {quiz_id: float(total or 0) for quiz_id, total in rows}

    return grading, assignments, quizzes, quiz_max_points


def _submission_record(sub: AssignmentSubmission) -> SubmissionRecord:
    return SubmissionRecord(assignment_id=sub.assignment_id, grade=sub.grade, status=sub.status)


def _attempt_record(att: QuizAttempt) -> QuizAttemptRecord:
    return QuizAttemptRecord(quiz_id=att.quiz_id, points_earned=att.points_earned)


def _grade_text(grade: Optional[float]) -> Optional[str]:
    return None if grade is None else f"{grade:g}"
