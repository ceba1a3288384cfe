from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID, uuid4

MULTIPLE_CHOICE = "multiple-choice"
TRUE_FALSE = "true-false"
SHORT_ANSWER = "short-answer"
ESSAY = "essay"

QUESTION_TYPES = (MULTIPLE_CHOICE, TRUE_FALSE, SHORT_ANSWER, ESSAY)


@dataclass(frozen=True, slots=True)
class Option:
    text: str
    is_correct: bool = False

    @staticmethod
    def normalize(raw: str | dict | Option) -> Option:
        """Accept a bare option string or a ``{text, isCorrect}`` mapping.

        A bare string never marks the correct choice.
        """
        if isinstance(raw, Option):
            return raw
        if isinstance(raw, str):
            return Option(text=raw.strip())
        if isinstance(raw, dict):
            text = raw.get("text")
            if not isinstance(text, str):
                raise ValueError("option text must be a string")
            flag = raw.get("is_correct", raw.get("isCorrect", False))
            return Option(text=text.strip(), is_correct=bool(flag))
        raise ValueError(f"unsupported option shape: {type(raw).__name__}")


@dataclass(frozen=True, slots=True)
class Question:
    id: UUID
    type: str  # multiple-choice|true-false|short-answer|essay
    prompt: str
    points: int
    options: tuple[Option, ...] = ()
    correct_answer: str | None = None
    explanation: str | None = None

    def __post_init__(self) -> None:
        if self.type not in QUESTION_TYPES:
            raise ValueError(f"unknown question type {self.type!r}")
        if self.points <= 0:
            raise ValueError("question points must be positive")

    def find_option(self, text: str) -> Option | None:
        for option in self.options:
            if option.text == text:
                return option
        return None

    def correct_option(self) -> Option | None:
        for option in self.options:
            if option.is_correct:
                return option
        return None

    @staticmethod
    def new(
        *,
        type: str,
        prompt: str,
        points: int = 1,
        options: tuple[Option, ...] = (),
        correct_answer: str | None = None,
        explanation: str | None = None,
    ) -> Question:
        return Question(
            id=uuid4(),
            type=type,
            prompt=prompt,
            points=points,
            options=options,
            correct_answer=correct_answer,
            explanation=explanation,
        )


@dataclass(frozen=True, slots=True)
class AssessmentSettings:
    shuffle_questions: bool = False
    shuffle_options: bool = False
    show_correct_answers: bool = True
    show_explanations: bool = True
    allow_review: bool = True


@dataclass(frozen=True, slots=True)
class AssessmentStatistics:
    """Aggregate over every submitted attempt.

    Recomputed in full on each finalization; ``revision`` is the
    compare-and-swap counter for that write.
    """

    attempt_count: int = 0
    average_score: float = 0.0
    average_percentage: float = 0.0
    average_time_minutes: float = 0.0
    revision: int = 0


@dataclass(frozen=True, slots=True)
class AssessmentDefinition:
    id: UUID
    course_id: UUID
    title: str
    questions: tuple[Question, ...]
    available_from: datetime | None = None
    available_until: datetime | None = None
    max_attempts: int = 1
    time_limit_minutes: int = 30
    xp_reward: int = 30
    bonus_xp: int = 20
    status: str = "published"  # draft|published|closed
    version: int = 1
    settings: AssessmentSettings = field(default_factory=AssessmentSettings)
    statistics: AssessmentStatistics = field(default_factory=AssessmentStatistics)

    @property
    def total_points(self) -> int:
        return sum(q.points for q in self.questions)

    def question(self, question_id: UUID) -> Question | None:
        for q in self.questions:
            if q.id == question_id:
                return q
        return None

    def is_open_at(self, now: datetime) -> bool:
        if self.status != "published":
            return False
        if self.available_from is not None and now < self.available_from:
            return False
        if self.available_until is not None and now > self.available_until:
            return False
        return True

    @staticmethod
    def new(
        *,
        course_id: UUID,
        title: str,
        questions: tuple[Question, ...],
        available_from: datetime | None = None,
        available_until: datetime | None = None,
        max_attempts: int = 1,
        time_limit_minutes: int = 30,
        xp_reward: int = 30,
        bonus_xp: int = 20,
        settings: AssessmentSettings | None = None,
    ) -> AssessmentDefinition:
        return AssessmentDefinition(
            id=uuid4(),
            course_id=course_id,
            title=title,
            questions=questions,
            available_from=available_from,
            available_until=available_until,
            max_attempts=max_attempts,
            time_limit_minutes=time_limit_minutes,
            xp_reward=xp_reward,
            bonus_xp=bonus_xp,
            settings=settings or AssessmentSettings(),
        )
