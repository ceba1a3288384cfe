from __future__ import annotations

from dataclasses import replace

import pytest

from quizcore.models.assessment import (
    MULTIPLE_CHOICE,
    AssessmentDefinition,
    AssessmentSettings,
    Option,
    Question,
)
from quizcore.models.attempt import Attempt
from quizcore.services.errors import ReviewNotAllowed
from quizcore.services.presentation import presented_questions, review_attempt
from tests.conftest import START, two_question_quiz


def _many_questions() -> tuple[Question, ...]:
    return tuple(
        Question.new(
            type=MULTIPLE_CHOICE,
            prompt=f"Question {i}",
            options=tuple(Option(t, is_correct=(t == "a")) for t in "abcdef"),
        )
        for i in range(12)
    )


def _attempt(definition: AssessmentDefinition, number: int = 1, **kw) -> Attempt:
    return Attempt(
        assessment_id=definition.id,
        student_id="learner-1",
        attempt_number=number,
        started_at=START,
        **kw,
    )


def test_unshuffled_keeps_authored_order() -> None:
    quiz = two_question_quiz()
    views = presented_questions(quiz, _attempt(quiz))
    assert [v.question.id for v in views] == [q.id for q in quiz.questions]
    assert views[0].option_texts == ("A", "B", "C")


def test_shuffle_is_stable_for_the_same_attempt() -> None:
    quiz = two_question_quiz(
        questions=_many_questions(),
        settings=AssessmentSettings(shuffle_questions=True, shuffle_options=True),
    )
    first = presented_questions(quiz, _attempt(quiz))
    again = presented_questions(quiz, _attempt(quiz))
    assert first == again


def test_shuffle_is_a_permutation() -> None:
    quiz = two_question_quiz(
        questions=_many_questions(),
        settings=AssessmentSettings(shuffle_questions=True, shuffle_options=True),
    )
    views = presented_questions(quiz, _attempt(quiz))
    assert sorted(v.question.prompt for v in views) == sorted(q.prompt for q in quiz.questions)
    for v in views:
        assert sorted(v.option_texts) == list("abcdef")


def test_new_attempt_gets_a_different_order() -> None:
    quiz = two_question_quiz(
        questions=_many_questions(), settings=AssessmentSettings(shuffle_questions=True)
    )
    orders = {
        tuple(v.question.id for v in presented_questions(quiz, _attempt(quiz, n)))
        for n in range(1, 6)
    }
    assert len(orders) > 1


def test_review_reveals_answers_by_default() -> None:
    quiz = two_question_quiz()
    attempt = _attempt(quiz, submitted_at=START, score=0, percentage=0)
    items = review_attempt(quiz, attempt)

    assert items[0].correct_answer == "B"
    assert items[0].explanation == "B is the one."
    assert items[1].correct_answer == "True"
    assert items[0].answer is None
    assert items[0].submitted_value is None


def test_review_hides_what_settings_hide() -> None:
    quiz = two_question_quiz(
        settings=AssessmentSettings(show_correct_answers=False, show_explanations=False)
    )
    items = review_attempt(quiz, _attempt(quiz, submitted_at=START))
    assert all(i.correct_answer is None and i.explanation is None for i in items)


def test_review_of_open_attempt_not_allowed() -> None:
    quiz = two_question_quiz()
    with pytest.raises(ReviewNotAllowed):
        review_attempt(quiz, _attempt(quiz))


def test_review_disabled() -> None:
    quiz = replace(two_question_quiz(), settings=AssessmentSettings(allow_review=False))
    with pytest.raises(ReviewNotAllowed):
        review_attempt(quiz, _attempt(quiz, submitted_at=START))
