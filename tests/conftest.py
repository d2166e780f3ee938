import pytest

from gradebook.database import db_manager


@pytest.fixture
def db():
    """Fresh in-memory database bound to the db_manager module."""
    db_manager.configure("sqlite://")
    db_manager.init_db()
    yield db_manager


@pytest.fixture
def course(db):
    """
    SCI101 with two students:
      - Ada: essay 80/100 (graded), lab pending, quiz best 40/50 -> 80% B
      - Ben: nothing graded -> 0% F
    """
    course = db.get_or_create_course("SCI101", "General Science")
    ada = db.add_student("S-001", "Ada", "Lovelace", "ada@example.edu")
    ben = db.add_student("S-002", "Ben", "Ashby")
    db.enroll_student(course.id, ada.id)
    db.enroll_student(course.id, ben.id)

    essay = db.add_assignment(course.id, "Essay", 100, "Homework")
    lab = db.add_assignment(course.id, "Lab Report", 100, "Homework")
    quiz = db.add_quiz(course.id, "Quiz 1", [10, 20, 20], "Exams")
    db.add_quiz(course.id, "Draft Quiz", [100], "Exams", is_published=False)

    db.record_submission(essay.id, ada.id, 80)
    db.record_submission(lab.id, ada.id, None)
    db.record_quiz_attempt(quiz.id, ada.id, 20)
    db.record_quiz_attempt(quiz.id, ada.id, 40)

    return {
        "course": course, "ada": ada, "ben": ben,
        "essay": essay, "lab": lab, "quiz": quiz,
    }
