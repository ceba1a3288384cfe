"""Answer grading, applied when the answer is submitted.

| type            | correct when                                             |
|-----------------|----------------------------------------------------------|
| multiple-choice | the option whose text equals the value is marked correct |
| true-false      | value == correct_answer, or else the matched option flag |
| short-answer    | trimmed, case-insensitive equality with correct_answer   |
| essay           | always (full points; human regrading happens elsewhere)  |
"""

from __future__ import annotations

from quizcore.models.assessment import (
    ESSAY,
    MULTIPLE_CHOICE,
    SHORT_ANSWER,
    TRUE_FALSE,
    Question,
)
from quizcore.models.attempt import AnswerValue
from quizcore.services.errors import InvalidAnswerValue


def normalize_value(question: Question, value: object) -> AnswerValue:
    """Reject values that cannot be an answer to ``question``.

    Booleans are only meaningful for true-false questions.
    """
    if isinstance(value, bool):
        if question.type != TRUE_FALSE:
            raise InvalidAnswerValue(
                f"a {question.type} question needs a text answer, got a boolean"
            )
        return value
    if not isinstance(value, str):
        raise InvalidAnswerValue(
            f"answer must be text or a boolean, got {type(value).__name__}"
        )
    return value


def is_correct(question: Question, value: AnswerValue) -> bool:
    if question.type == MULTIPLE_CHOICE:
        option = question.find_option(value)  # type: ignore[arg-type]
        return option is not None and option.is_correct

    if question.type == TRUE_FALSE:
        text = str(value) if isinstance(value, bool) else value
        if question.correct_answer is not None:
            return text == question.correct_answer
        option = question.find_option(text)
        return option is not None and option.is_correct

    if question.type == SHORT_ANSWER:
        if question.correct_answer is None:
            return False
        return value.strip().lower() == question.correct_answer.strip().lower()  # type: ignore[union-attr]

    if question.type == ESSAY:
        return True

    raise ValueError(f"unknown question type {question.type!r}")


def grade(question: Question, value: object) -> tuple[AnswerValue, bool, int]:
    """Return (normalized value, is_correct, points_awarded)."""
    normalized = normalize_value(question, value)
    correct = is_correct(question, normalized)
    return normalized, correct, question.points if correct else 0
