from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from uuid import UUID

AnswerValue = str | bool


@dataclass(frozen=True, slots=True)
class Answer:
    question_id: UUID
    value: AnswerValue
    is_correct: bool
    points_awarded: int
    answered_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class Attempt:
    """One learner's pass through an assessment.

    Keyed by (assessment_id, student_id, attempt_number). ``submitted_at``
    of None means the attempt is still open. ``version`` is bumped on every
    stored write and used for compare-and-swap.
    """

    assessment_id: UUID
    student_id: str
    attempt_number: int
    started_at: datetime
    assessment_version: int = 1
    answers: tuple[Answer, ...] = ()
    submitted_at: datetime | None = None
    score: int | None = None
    percentage: int | None = None
    time_spent_minutes: int | None = None
    version: int = 1

    @property
    def is_open(self) -> bool:
        return self.submitted_at is None

    @property
    def status(self) -> str:
        return "open" if self.is_open else "submitted"

    @property
    def key(self) -> tuple[UUID, str, int]:
        return (self.assessment_id, self.student_id, self.attempt_number)

    def answer_for(self, question_id: UUID) -> Answer | None:
        for a in self.answers:
            if a.question_id == question_id:
                return a
        return None

    def with_answer(self, answer: Answer) -> Attempt:
        """Upsert by question id: a later answer replaces the earlier one in place."""
        answers = list(self.answers)
        for i, existing in enumerate(answers):
            if existing.question_id == answer.question_id:
                answers[i] = answer
                break
        else:
            answers.append(answer)
        return replace(self, answers=tuple(answers))
