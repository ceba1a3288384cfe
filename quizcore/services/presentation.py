"""What a learner sees: questions while the attempt is open, review after.

Shuffling is a deterministic permutation seeded by the attempt key, so a
reload (or a second device) shows the same order for the same attempt
and a new attempt gets a fresh one.
"""

from __future__ import annotations

import random
from dataclasses import dataclass

from quizcore.models.assessment import AssessmentDefinition, Question
from quizcore.models.attempt import Answer, AnswerValue, Attempt
from quizcore.services.errors import ReviewNotAllowed


@dataclass(frozen=True, slots=True)
class QuestionView:
    question: Question
    option_texts: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class ReviewItem:
    question: Question
    answer: Answer | None
    correct_answer: str | None = None
    explanation: str | None = None

    @property
    def submitted_value(self) -> AnswerValue | None:
        return self.answer.value if self.answer is not None else None


def _rng(attempt: Attempt, salt: str) -> random.Random:
    seed = f"{attempt.assessment_id}:{attempt.student_id}:{attempt.attempt_number}:{salt}"
    return random.Random(seed)


def presented_questions(
    definition: AssessmentDefinition, attempt: Attempt
) -> list[QuestionView]:
    questions = list(definition.questions)
    if definition.settings.shuffle_questions:
        _rng(attempt, "questions").shuffle(questions)

    views = []
    for q in questions:
        texts = [o.text for o in q.options]
        if definition.settings.shuffle_options:
            _rng(attempt, str(q.id)).shuffle(texts)
        views.append(QuestionView(question=q, option_texts=tuple(texts)))
    return views


def _correct_answer_text(question: Question) -> str | None:
    if question.correct_answer is not None:
        return question.correct_answer
    option = question.correct_option()
    return option.text if option is not None else None


def review_attempt(definition: AssessmentDefinition, attempt: Attempt) -> list[ReviewItem]:
    settings = definition.settings
    if not settings.allow_review:
        raise ReviewNotAllowed("review is disabled for this assessment")
    if attempt.is_open:
        raise ReviewNotAllowed("attempt has not been submitted")

    items = []
    for q in definition.questions:
        items.append(
            ReviewItem(
                question=q,
                answer=attempt.answer_for(q.id),
                correct_answer=(
                    _correct_answer_text(q) if settings.show_correct_answers else None
                ),
                explanation=q.explanation if settings.show_explanations else None,
            )
        )
    return items
