from __future__ import annotations

import pytest

from quizcore.models.assessment import (
    ESSAY,
    MULTIPLE_CHOICE,
    SHORT_ANSWER,
    TRUE_FALSE,
    Option,
    Question,
)
from quizcore.services.errors import InvalidAnswerValue
from quizcore.services.grading import grade, is_correct

MC = Question.new(
    type=MULTIPLE_CHOICE,
    prompt="2 + 2?",
    points=5,
    options=(Option("3"), Option("4", is_correct=True)),
)
TF_WITH_ANSWER = Question.new(type=TRUE_FALSE, prompt="Water is wet", correct_answer="True")
TF_BY_OPTION = Question.new(
    type=TRUE_FALSE,
    prompt="Fire is cold",
    options=(Option("True"), Option("False", is_correct=True)),
)
SHORT = Question.new(type=SHORT_ANSWER, prompt="Capital of France", correct_answer="Paris")
ESSAY_Q = Question.new(type=ESSAY, prompt="Discuss", points=20)


def test_multiple_choice_matches_flagged_option() -> None:
    assert is_correct(MC, "4") is True
    assert is_correct(MC, "3") is False


def test_multiple_choice_unknown_text_is_wrong() -> None:
    assert is_correct(MC, "five") is False


def test_true_false_compares_with_correct_answer() -> None:
    assert is_correct(TF_WITH_ANSWER, "True") is True
    assert is_correct(TF_WITH_ANSWER, "False") is False


def test_true_false_accepts_booleans() -> None:
    assert is_correct(TF_WITH_ANSWER, True) is True
    assert is_correct(TF_WITH_ANSWER, False) is False


def test_true_false_falls_back_to_option_flag() -> None:
    assert is_correct(TF_BY_OPTION, "False") is True
    assert is_correct(TF_BY_OPTION, False) is True
    assert is_correct(TF_BY_OPTION, "True") is False


def test_short_answer_is_trimmed_and_case_insensitive() -> None:
    assert is_correct(SHORT, "  paris ") is True
    assert is_correct(SHORT, "PARIS") is True
    assert is_correct(SHORT, "Lyon") is False


def test_short_answer_without_key_is_never_correct() -> None:
    q = Question.new(type=SHORT_ANSWER, prompt="Anything")
    assert is_correct(q, "x") is False


def test_essay_always_full_points() -> None:
    _, correct, points = grade(ESSAY_Q, "a few words")
    assert correct is True
    assert points == 20


def test_grade_awards_zero_points_when_wrong() -> None:
    normalized, correct, points = grade(MC, "3")
    assert normalized == "3"
    assert correct is False
    assert points == 0


@pytest.mark.parametrize("question", [MC, SHORT, ESSAY_Q])
def test_boolean_rejected_outside_true_false(question: Question) -> None:
    with pytest.raises(InvalidAnswerValue):
        grade(question, True)


@pytest.mark.parametrize("value", [3, 1.5, None, ["4"], {"text": "4"}])
def test_non_text_values_rejected(value: object) -> None:
    with pytest.raises(InvalidAnswerValue):
        grade(MC, value)


def test_invalid_answer_is_a_value_error() -> None:
    with pytest.raises(ValueError):
        grade(MC, 4)
