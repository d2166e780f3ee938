import pytest

from gradebook.evaluation.grade_calculator import (
    best_attempt_points,
    calculate_grade,
    letter_grade,
    round_half_up,
)
from gradebook.evaluation.records import (
    AssignmentItem,
    CourseGrading,
    GradeResult,
    QuizAttemptRecord,
    QuizItem,
    ScaleBand,
    SubmissionRecord,
)

UNWEIGHTED = CourseGrading()


def _basic_inputs():
    assignments = [AssignmentItem("a1", 100)]
    quizzes = [QuizItem("q1")]
    submissions = [SubmissionRecord("a1", 80)]
    attempts = [QuizAttemptRecord("q1", 40)]
    return assignments, quizzes, submissions, attempts, {"q1": 50}


def test_empty_course_is_zero_f():
    result = calculate_grade(UNWEIGHTED, [], [], [], [], {})
    assert result == GradeResult(percentage=0, letter_grade="F", is_weighted=False)


def test_empty_course_with_weights_is_not_weighted():
    result = calculate_grade(CourseGrading(weights={"Homework": 1.0}), [], [], [], [], {})
    assert result.percentage == 0
    assert result.letter_grade == "F"
    assert result.is_weighted is False


def test_unweighted_fully_graded():
    result = calculate_grade(UNWEIGHTED, *_basic_inputs())
    assert result.percentage == 80
    assert result.letter_grade == "B"
    assert result.is_weighted is False
    assert result.earned_points == 120
    assert result.total_points == 150


def test_same_inputs_give_same_result():
    first = calculate_grade(UNWEIGHTED, *_basic_inputs())
    second = calculate_grade(UNWEIGHTED, *_basic_inputs())
    assert first == second


def test_inputs_are_not_modified():
    assignments, quizzes, submissions, attempts, max_points = _basic_inputs()
    calculate_grade(UNWEIGHTED, assignments, quizzes, submissions, attempts, max_points)
    assert assignments == [AssignmentItem("a1", 100)]
    assert attempts == [QuizAttemptRecord("q1", 40)]
    assert max_points == {"q1": 50}


def test_ungraded_assignment_does_not_dilute():
    assignments, quizzes, submissions, attempts, max_points = _basic_inputs()
    assignments.append(AssignmentItem("a2", 100))
    submissions.append(SubmissionRecord("a2", None))
    result = calculate_grade(UNWEIGHTED, assignments, quizzes, submissions, attempts, max_points)
    assert result.percentage == 80
    assert result.total_points == 150


def test_assignment_without_submission_is_excluded():
    assignments, quizzes, submissions, attempts, max_points = _basic_inputs()
    assignments.append(AssignmentItem("a2", 100))
    result = calculate_grade(UNWEIGHTED, assignments, quizzes, submissions, attempts, max_points)
    assert result.percentage == 80


def test_best_attempt_counts():
    attempts = [QuizAttemptRecord("q1", p) for p in (20, 45, 30)]
    result = calculate_grade(UNWEIGHTED, [], [QuizItem("q1")], [], attempts, {"q1": 50})
    assert result.earned_points == 45
    assert result.percentage == 90
    assert result.letter_grade == "A"


def test_null_attempts_are_ignored_when_picking_best():
    attempts = [QuizAttemptRecord("q1", None), QuizAttemptRecord("q1", 25)]
    assert best_attempt_points(attempts) == 25


def test_quiz_with_only_null_attempts_is_excluded():
    assignments, quizzes, submissions, _, max_points = _basic_inputs()
    attempts = [QuizAttemptRecord("q1", None), QuizAttemptRecord("q1", None)]
    result = calculate_grade(UNWEIGHTED, assignments, quizzes, submissions, attempts, max_points)
    assert result.percentage == 80
    assert result.total_points == 100


def test_quiz_missing_from_max_points_map_is_excluded():
    assignments, quizzes, submissions, attempts, _ = _basic_inputs()
    result = calculate_grade(UNWEIGHTED, assignments, quizzes, submissions, attempts, {})
    assert result.percentage == 80
    assert result.total_points == 100


def test_only_quiz_missing_from_map_gives_zero():
    result = calculate_grade(
        UNWEIGHTED, [], [QuizItem("q1")], [], [QuizAttemptRecord("q1", 10)], {}
    )
    assert result.percentage == 0
    assert result.letter_grade == "F"


def test_orphan_records_are_ignored():
    assignments, quizzes, submissions, attempts, max_points = _basic_inputs()
    submissions.append(SubmissionRecord("gone", 100))
    attempts.append(QuizAttemptRecord("gone-quiz", 50))
    result = calculate_grade(UNWEIGHTED, assignments, quizzes, submissions, attempts, max_points)
    assert result.percentage == 80


def test_weighted_aggregation():
    course = CourseGrading(weights={"Homework": 0.4, "Exams": 0.6})
    assignments = [
        AssignmentItem("hw1", 50, "Homework"),
        AssignmentItem("ex1", 100, "Exams"),
    ]
    quizzes = [QuizItem("hq", "Homework")]
    submissions = [SubmissionRecord("hw1", 45), SubmissionRecord("ex1", 70)]
    attempts = [QuizAttemptRecord("hq", 9)]
    result = calculate_grade(course, assignments, quizzes, submissions, attempts, {"hq": 10})
    # Homework (45 + 9) / 60 = 90%, Exams 70% -> 0.4 * 90 + 0.6 * 70
    assert result.percentage == 78
    assert result.letter_grade == "C"
    assert result.is_weighted is True


def test_weighted_category_without_graded_work_is_not_penalised():
    course = CourseGrading(weights={"Homework": 0.4, "Exams": 0.4, "Final": 0.2})
    assignments = [
        AssignmentItem("hw1", 100, "Homework"),
        AssignmentItem("ex1", 100, "Exams"),
        AssignmentItem("fin", 100, "Final"),
    ]
    submissions = [
        SubmissionRecord("hw1", 90),
        SubmissionRecord("ex1", 70),
        SubmissionRecord("fin", None),
    ]
    result = calculate_grade(course, assignments, [], submissions, [], {})
    # (0.4 * 90 + 0.4 * 70) / 0.8
    assert result.percentage == 80
    assert result.letter_grade == "B"


def test_weights_need_not_sum_to_one():
    course = CourseGrading(weights={"Homework": 2, "Exams": 2})
    assignments = [AssignmentItem("hw1", 100, "Homework"), AssignmentItem("ex1", 100, "Exams")]
    submissions = [SubmissionRecord("hw1", 100), SubmissionRecord("ex1", 60)]
    result = calculate_grade(course, assignments, [], submissions, [], {})
    assert result.percentage == 80


def test_uncategorized_work_is_dropped_under_weighting():
    course = CourseGrading(weights={"Exams": 1.0})
    assignments = [AssignmentItem("ex1", 100, "Exams"), AssignmentItem("misc", 100)]
    submissions = [SubmissionRecord("ex1", 70), SubmissionRecord("misc", 100)]
    result = calculate_grade(course, assignments, [], submissions, [], {})
    assert result.percentage == 70
    assert result.total_points == 100


def test_uncategorized_bucket_counts_when_weighted_explicitly():
    course = CourseGrading(weights={"Exams": 0.5, "Uncategorized": 0.5})
    assignments = [AssignmentItem("ex1", 100, "Exams"), AssignmentItem("misc", 100)]
    submissions = [SubmissionRecord("ex1", 70), SubmissionRecord("misc", 100)]
    result = calculate_grade(course, assignments, [], submissions, [], {})
    assert result.percentage == 85


def test_weighted_with_nothing_graded_is_zero():
    course = CourseGrading(weights={"Exams": 1.0})
    assignments = [AssignmentItem("ex1", 100, "Exams")]
    result = calculate_grade(course, assignments, [], [SubmissionRecord("ex1", None)], [], {})
    assert result.percentage == 0
    assert result.letter_grade == "F"
    assert result.is_weighted is True


def test_weighting_can_be_switched_off():
    course = CourseGrading(weights={"Homework": 0.9, "Exams": 0.1}, weighted=False)
    assignments = [AssignmentItem("hw1", 100, "Homework"), AssignmentItem("ex1", 300, "Exams")]
    submissions = [SubmissionRecord("hw1", 100), SubmissionRecord("ex1", 100)]
    result = calculate_grade(course, assignments, [], submissions, [], {})
    assert result.is_weighted is False
    assert result.percentage == 50


def test_negative_values_are_clamped_to_zero():
    assignments = [AssignmentItem("a1", 100), AssignmentItem("a2", 100)]
    submissions = [SubmissionRecord("a1", -10), SubmissionRecord("a2", 80)]
    attempts = [QuizAttemptRecord("q1", -5)]
    result = calculate_grade(
        UNWEIGHTED, assignments, [QuizItem("q1")], submissions, attempts, {"q1": 10}
    )
    # (0 + 80 + 0) / (100 + 100 + 10)
    assert result.earned_points == 80
    assert result.total_points == 210
    assert result.percentage == 38


def test_item_with_no_possible_points_is_excluded():
    assignments = [AssignmentItem("a1", 0), AssignmentItem("a2", 100)]
    submissions = [SubmissionRecord("a1", 5), SubmissionRecord("a2", 75)]
    result = calculate_grade(UNWEIGHTED, assignments, [], submissions, [], {})
    assert result.percentage == 75


def test_percentage_is_capped_at_100():
    result = calculate_grade(
        UNWEIGHTED, [AssignmentItem("a1", 100)], [], [SubmissionRecord("a1", 120)], [], {}
    )
    assert result.percentage == 100
    assert result.letter_grade == "A"


@pytest.mark.parametrize(
    "raw,rounded,letter",
    [
        (59.5, 60, "D"),
        (69.5, 70, "C"),
        (79.5, 80, "B"),
        (89.5, 90, "A"),
        (89.4, 89, "B"),
        (59.4, 59, "F"),
    ],
)
def test_round_half_up_at_letter_boundaries(raw, rounded, letter):
    assert round_half_up(raw) == rounded
    assert letter_grade(round_half_up(raw)) == letter


@pytest.mark.parametrize("earned,letter", [(179, "A"), (159, "B"), (139, "C"), (119, "D")])
def test_half_point_boundaries_end_to_end(earned, letter):
    # earned / 200 lands exactly on x9.5%
    result = calculate_grade(
        UNWEIGHTED, [AssignmentItem("a1", 200)], [], [SubmissionRecord("a1", earned)], [], {}
    )
    assert result.letter_grade == letter


def test_course_scale_overrides_default():
    course = CourseGrading(scale=[ScaleBand("Pass", 50), ScaleBand("Fail", 0)])
    result = calculate_grade(
        course, [AssignmentItem("a1", 100)], [], [SubmissionRecord("a1", 55)], [], {}
    )
    assert result.letter_grade == "Pass"


def test_below_every_band_gets_lowest_label():
    scale = [ScaleBand("A", 90), ScaleBand("B", 80)]
    assert letter_grade(50, scale) == "B"


@pytest.mark.parametrize("weight", [0, -0.5])
def test_zero_weight_category_reports_no_points(weight):
    course = CourseGrading(weights={"Homework": weight, "Exams": 1.0})
    assignments = [AssignmentItem("hw1", 100, "Homework"), AssignmentItem("ex1", 50, "Exams")]
    submissions = [SubmissionRecord("hw1", 90), SubmissionRecord("ex1", 35)]
    result = calculate_grade(course, assignments, [], submissions, [], {})
    assert result.percentage == 70
    assert (result.earned_points, result.total_points) == (35.0, 50.0)


def test_only_zero_weight_categories_graded():
    course = CourseGrading(weights={"Homework": 0})
    assignments = [AssignmentItem("hw1", 100, "Homework")]
    result = calculate_grade(course, assignments, [], [SubmissionRecord("hw1", 90)], [], {})
    assert result.percentage == 0
    assert (result.earned_points, result.total_points) == (0.0, 0.0)
