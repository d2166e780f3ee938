from openpyxl import load_workbook
import pytest

from gradebook.exceptions import (
    CourseNotFoundError,
    InvalidGradeUpdateError,
    InvalidGradingSettingsError,
    StudentNotFoundError,
)


def test_quiz_max_points_are_summed_from_questions(db, course):
    grading, assignments, quizzes, max_points = db.load_course_inputs(course["course"].id)
    assert grading.uses_weighting is False
    assert [a.title for a in assignments] == ["Essay", "Lab Report"]
    assert [q.title for q in quizzes] == ["Quiz 1"]  # draft quiz is not published
    assert max_points == {course["quiz"].id: 50.0}


def test_only_graded_submissions_are_loaded(db, course):
    submissions, attempts = db.load_student_records(course["course"].id, course["ada"].id)
    assert [(s.assignment_id, s.grade) for s in submissions] == [(course["essay"].id, 80.0)]
    assert [a.points_earned for a in attempts] == [20.0, 40.0]


def test_calculate_student_grade(db, course):
    result = db.calculate_student_grade(course["ada"].id, course["course"].id)
    assert result.percentage == 80
    assert result.letter_grade == "B"
    assert result.is_weighted is False


def test_student_with_nothing_graded(db, course):
    result = db.calculate_student_grade(course["ben"].id, course["course"].id)
    assert result.percentage == 0
    assert result.letter_grade == "F"


def test_regrading_a_submission_updates_the_grade(db, course):
    db.record_submission(course["lab"].id, course["ada"].id, 100)
    result = db.calculate_student_grade(course["ada"].id, course["course"].id)
    # (80 + 100 + 40) / 250
    assert result.percentage == 88


def test_quiz_without_questions_is_left_out(db, course):
    empty = db.add_quiz(course["course"].id, "No Questions", [])
    db.record_quiz_attempt(empty.id, course["ada"].id, 5)
    result = db.calculate_student_grade(course["ada"].id, course["course"].id)
    assert result.percentage == 80


def test_weighted_settings_are_applied(db, course):
    warnings = db.update_grading_settings(
        course["course"].id, {"Homework": 0.5, "Exams": 0.5}, None
    )
    assert warnings == []
    db.record_quiz_attempt(course["quiz"].id, course["ada"].id, 30)
    result = db.calculate_student_grade(course["ada"].id, course["course"].id)
    # Homework 80%, Exams best 40/50 = 80%
    assert result.is_weighted is True
    assert result.percentage == 80


def test_custom_scale_is_applied(db, course):
    db.update_grading_settings(
        course["course"].id, None, [{"label": "Pass", "min": 75}, {"label": "Fail", "min": 0}]
    )
    result = db.calculate_student_grade(course["ada"].id, course["course"].id)
    assert result.letter_grade == "Pass"


def test_invalid_settings_are_rejected(db, course):
    with pytest.raises(InvalidGradingSettingsError):
        db.update_grading_settings(course["course"].id, {"Homework": -1}, None)
    grading, *_ = db.load_course_inputs(course["course"].id)
    assert grading.weights is None


def test_unknown_course_and_student(db, course):
    with pytest.raises(CourseNotFoundError):
        db.calculate_student_grade(course["ada"].id, 999)
    with pytest.raises(StudentNotFoundError):
        db.calculate_student_grade(999, course["course"].id)


def test_course_gradebook(db, course):
    book = db.get_course_gradebook(course["course"].id, max_workers=2)
    assert book.course_code == "SCI101"
    assert [r.name for r in book.rows] == ["Ben Ashby", "Ada Lovelace"]
    ada = book.rows[1]
    assert [(c.score, c.status) for c in ada.cells] == [
        (80.0, "graded"),
        (None, "submitted"),
        (40.0, "graded"),
    ]
    assert ada.result.percentage == 80

    stats = db.get_course_stats(book)
    assert stats["total_students"] == 2
    assert stats["grade_distribution"] == {"B": 1, "F": 1}


def test_get_all_courses(db, course):
    courses = db.get_all_courses()
    assert courses == [{
        "id": course["course"].id,
        "course_code": "SCI101",
        "course_name": "General Science",
        "is_weighted": False,
        "students": 2,
    }]


def test_export_to_excel(db, course):
    buf = db.export_to_excel(course["course"].id)
    wb = load_workbook(buf)
    assert wb.sheetnames == ["Summary", "Item Scores", "Statistics"]
    summary = wb["Summary"]
    rows = list(summary.iter_rows(min_row=2, values_only=True))
    assert rows[1][0] == "Ada Lovelace"
    assert rows[1][3] == 80
    assert rows[1][4] == "B"
    items = wb["Item Scores"]
    assert items.cell(row=1, column=2).value == "Essay (100 pts)"


def test_batch_update_grades_logs_only_changes(db, course):
    c, ada, ben = course["course"], course["ada"], course["ben"]
    essay, lab = course["essay"], course["lab"]

    changed = db.batch_update_grades(
        c.id,
        {ada.id: {essay.id: 80, lab.id: 90}, ben.id: {essay.id: 70}},
        changed_by="t.nguyen",
    )
    assert changed == 2

    log = db.get_grade_audit_log(c.id)
    assert [(e["student_id"], e["assignment_id"], e["old_value"], e["new_value"]) for e in log] == [
        (ada.id, lab.id, None, "90"),
        (ben.id, essay.id, None, "70"),
    ]
    assert {e["changed_by"] for e in log} == {"t.nguyen"}

    # (80 + 90 + 40) / 250
    assert db.calculate_student_grade(ada.id, c.id).percentage == 84
    assert db.calculate_student_grade(ben.id, c.id).percentage == 70


def test_batch_update_clearing_a_grade(db, course):
    c, ada, essay = course["course"], course["ada"], course["essay"]

    assert db.batch_update_grades(c.id, {ada.id: {essay.id: None}}) == 1
    entry = db.get_grade_audit_log(c.id)[0]
    assert (entry["old_value"], entry["new_value"]) == ("80", None)
    # only the quiz is left: 40 / 50
    assert db.calculate_student_grade(ada.id, c.id).percentage == 80
    assert db.calculate_student_grade(ada.id, c.id).total_points == 50.0


def test_batch_update_skips_clearing_a_missing_submission(db, course):
    c, ben, essay = course["course"], course["ben"], course["essay"]
    assert db.batch_update_grades(c.id, {ben.id: {essay.id: None}}) == 0
    assert db.get_grade_audit_log(c.id) == []


def test_batch_update_rejects_items_outside_the_course(db, course):
    c, ada, lab = course["course"], course["ada"], course["lab"]
    other = db.get_or_create_course("ART200")
    stray = db.add_assignment(other.id, "Sketch", 10)

    with pytest.raises(InvalidGradeUpdateError) as excinfo:
        db.batch_update_grades(c.id, {ada.id: {lab.id: 95, stray.id: 10}, 999: {lab.id: 50}})
    assert len(excinfo.value.details["errors"]) == 2

    assert db.get_grade_audit_log(c.id) == []
    assert db.calculate_student_grade(ada.id, c.id).percentage == 80

    with pytest.raises(CourseNotFoundError):
        db.batch_update_grades(999, {})
