"""
SQLAlchemy ORM models for the Gradebook database.

Tables
------
- courses: one row per course, with its grading configuration
- students: one row per student
- enrollments: student × course roster
- assignments: gradable assignments of a course
- quizzes: quizzes of a course
- quiz_questions: questions of a quiz (their points sum to the quiz max)
- assignment_submissions: one row per student × assignment
- quiz_attempts: zero or more rows per student × quiz
- grade_audit_log: one row per changed grade (old value, new value, who)
"""

from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, relationship


class Base(DeclarativeBase):
    """Shared declarative base for all models."""
    pass


class Course(Base):
    """A course and how it is graded."""

    __tablename__ = "courses"

    id = Column(Integer, primary_key=True, autoincrement=True)
    course_code = Column(String(32), unique=True, nullable=False, index=True)
    course_name = Column(String(256), nullable=True)
    grading_weights = Column(JSON, nullable=True)  # {"Homework": 0.4, "Exams": 0.6}
    grading_scale = Column(JSON, nullable=True)  # [{"label": "A", "min": 90}, ...]
    is_weighted = Column(Boolean, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # relationships
    enrollments = relationship("Enrollment", back_populates="course", cascade="all, delete-orphan")
    assignments = relationship("Assignment", back_populates="course", cascade="all, delete-orphan")
    quizzes = relationship("Quiz", back_populates="course", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"<Course {self.course_code}>"


class Student(Base):
    """A student who can be enrolled in courses."""

    __tablename__ = "students"

    id = Column(Integer, primary_key=True, autoincrement=True)
    student_number = Column(String(64), unique=True, nullable=False, index=True)
    first_name = Column(String(128), nullable=False)
    last_name = Column(String(128), nullable=False)
    email = Column(String(256), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    enrollments = relationship("Enrollment", back_populates="student", cascade="all, delete-orphan")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def __repr__(self) -> str:
        return f"<Student {self.student_number}>"


class Enrollment(Base):
    """Places a student on a course roster."""

    __tablename__ = "enrollments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    course_id = Column(Integer, ForeignKey("courses.id"), nullable=False)
    student_id = Column(Integer, ForeignKey("students.id"), nullable=False)
    enrolled_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (UniqueConstraint("course_id", "student_id", name="uq_enrollment"),)

    course = relationship("Course", back_populates="enrollments")
    student = relationship("Student", back_populates="enrollments")


class Assignment(Base):
    """A gradable assignment."""

    __tablename__ = "assignments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    course_id = Column(Integer, ForeignKey("courses.id"), nullable=False, index=True)
    title = Column(String(256), nullable=False)
    description = Column(Text, nullable=True)
    max_points = Column(Float, nullable=False, default=100)
    grade_category = Column(String(64), nullable=True)
    due_date = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    course = relationship("Course", back_populates="assignments")
    submissions = relationship(
        "AssignmentSubmission", back_populates="assignment", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Assignment {self.title} /{self.max_points}>"


class Quiz(Base):
    """A quiz; its maximum score is the sum of its question points."""

    __tablename__ = "quizzes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    course_id = Column(Integer, ForeignKey("courses.id"), nullable=False, index=True)
    title = Column(String(256), nullable=False)
    grade_category = Column(String(64), nullable=True)
    is_published = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    course = relationship("Course", back_populates="quizzes")
    questions = relationship("QuizQuestion", back_populates="quiz", cascade="all, delete-orphan")
    attempts = relationship("QuizAttempt", back_populates="quiz", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"<Quiz {self.title}>"


class QuizQuestion(Base):
    __tablename__ = "quiz_questions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    quiz_id = Column(Integer, ForeignKey("quizzes.id"), nullable=False, index=True)
    prompt = Column(Text, nullable=True)
    points = Column(Float, nullable=False, default=1)

    quiz = relationship("Quiz", back_populates="questions")


class AssignmentSubmission(Base):
    """A student's submission; only ``graded`` rows count toward the grade."""

    __tablename__ = "assignment_submissions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    assignment_id = Column(Integer, ForeignKey("assignments.id"), nullable=False)
    student_id = Column(Integer, ForeignKey("students.id"), nullable=False, index=True)
    status = Column(String(16), nullable=False, default="submitted")  # submitted / graded
    grade = Column(Float, nullable=True)
    feedback = Column(Text, nullable=True)
    submitted_at = Column(DateTime, default=datetime.utcnow)
    graded_at = Column(DateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint("assignment_id", "student_id", name="uq_submission_student"),
    )

    assignment = relationship("Assignment", back_populates="submissions")

    def __repr__(self) -> str:
        return f"<AssignmentSubmission {self.assignment_id}/{self.student_id} {self.grade}>"


class QuizAttempt(Base):
    __tablename__ = "quiz_attempts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    quiz_id = Column(Integer, ForeignKey("quizzes.id"), nullable=False)
    student_id = Column(Integer, ForeignKey("students.id"), nullable=False, index=True)
    points_earned = Column(Float, nullable=True)
    submitted_at = Column(DateTime, default=datetime.utcnow)

    quiz = relationship("Quiz", back_populates="attempts")

    def __repr__(self) -> str:
        return f"<QuizAttempt {self.quiz_id}/{self.student_id} {self.points_earned}>"


class GradeAuditLog(Base):
    """One grade change made through a batch update."""

    __tablename__ = "grade_audit_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    submission_id = Column(Integer, ForeignKey("assignment_submissions.id"), nullable=False)
    student_id = Column(Integer, ForeignKey("students.id"), nullable=False, index=True)
    course_id = Column(Integer, ForeignKey("courses.id"), nullable=False, index=True)
    field_changed = Column(String(32), nullable=False, default="grade")
    old_value = Column(String(64), nullable=True)
    new_value = Column(String(64), nullable=True)
    changed_by = Column(String(128), nullable=True)
    changed_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<GradeAuditLog {self.submission_id} {self.old_value}->{self.new_value}>"
