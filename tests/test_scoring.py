import re
from datetime import datetime, timedelta, timezone

from exam_session.engine.scoring import (
    PASS_PERCENTAGE,
    generate_result_id,
    minutes_between,
    score_attempt,
)
from exam_session.models import Question, QuestionRef, ResultStatus


def _question(question_id: str, correct) -> Question:
    return Question(id=question_id, options=["a", "b", "c"], correct_answer=correct)


QUESTIONS = {"q1": _question("q1", 1), "q2": _question("q2", 0), "q3": _question("q3", 2)}


def test_two_question_example() -> None:
    refs = [QuestionRef(question_id="q1", order=1, marks=2), QuestionRef(question_id="q2", order=2, marks=3)]
    card = score_attempt({"q1": 1, "q2": 2}, refs, QUESTIONS)
    assert card.score == 2
    assert card.total_marks == 5
    assert card.percentage == 40
    assert card.status == ResultStatus.passed


def test_unanswered_and_wrong_earn_nothing() -> None:
    refs = [QuestionRef(question_id=q, marks=4) for q in ("q1", "q2", "q3")]
    card = score_attempt({"q2": 1}, refs, QUESTIONS)
    assert card.score == 0
    assert card.total_marks == 12
    assert card.status == ResultStatus.failed


def test_correct_answers_earn_exactly_their_marks() -> None:
    refs = [QuestionRef(question_id="q1", marks=7), QuestionRef(question_id="q3", marks=1)]
    assert score_attempt({"q1": 1, "q3": 2}, refs, QUESTIONS).score == 8


def test_zero_total_gives_zero_percentage() -> None:
    card = score_attempt({"q1": 1}, [QuestionRef(question_id="q1", marks=0)], QUESTIONS)
    assert card.percentage == 0
    assert card.status == ResultStatus.failed

    empty = score_attempt({}, [], {})
    assert empty.percentage == 0
    assert empty.total_marks == 0


def test_scoring_is_repeatable() -> None:
    refs = [QuestionRef(question_id="q1", marks=2), QuestionRef(question_id="q2", marks=3)]
    answers = {"q1": 1, "q2": 0}
    assert score_attempt(answers, refs, QUESTIONS) == score_attempt(answers, refs, QUESTIONS)
    assert answers == {"q1": 1, "q2": 0}


def test_missing_or_unkeyed_questions_still_count_towards_total() -> None:
    questions = {"q1": _question("q1", None)}
    refs = [QuestionRef(question_id="q1", marks=2), QuestionRef(question_id="gone", marks=3)]
    card = score_attempt({"q1": 1, "gone": 0}, refs, questions)
    assert card.score == 0
    assert card.total_marks == 5


def test_pass_threshold_is_inclusive() -> None:
    refs = [QuestionRef(question_id="q1", marks=3), QuestionRef(question_id="q2", marks=7)]
    card = score_attempt({"q1": 1}, refs, QUESTIONS)
    assert card.percentage == PASS_PERCENTAGE
    assert card.status == ResultStatus.passed


def test_minutes_between_rounds_half_up() -> None:
    start = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)
    assert minutes_between(start, start + timedelta(seconds=89)) == 1
    assert minutes_between(start, start + timedelta(seconds=90)) == 2
    assert minutes_between(start, start + timedelta(minutes=45, seconds=10)) == 45
    assert minutes_between(start, start) == 0


def test_result_id_format() -> None:
    result_id = generate_result_id("exam-0123456789abcdef", "student-0123456789")
    assert len(result_id) <= 36
    assert result_id.startswith("res_exam-01234_student-01_")
    assert re.fullmatch(r"res_[\w-]+_[\w-]+_[0-9a-z]+(_[0-9a-z]*)?", result_id)
