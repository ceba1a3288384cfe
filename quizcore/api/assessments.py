"""Assessment authoring endpoints (instructors and admins).

Options are normalized here, at the boundary: a bare string becomes an
option that is not the correct one, an object may spell the flag either
``is_correct`` or ``isCorrect``. Past this module grading only ever sees
``Option`` values.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Annotated, Literal
from uuid import UUID, uuid4

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.concurrency import run_in_threadpool
from pydantic import AliasChoices, BaseModel, Field, field_validator

from quizcore.api.dependencies import get_services, require_any_role, require_user
from quizcore.api.ratelimit import require_rate_limit
from quizcore.models.assessment import (
    AssessmentDefinition,
    AssessmentSettings,
    Option,
    Question,
)
from quizcore.models.principal import Principal
from quizcore.services.container import Services

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/assessments", tags=["assessments"])

_AUTHORS = {"instructor", "admin"}


class OptionIn(BaseModel):
    text: str
    is_correct: bool = Field(
        default=False, validation_alias=AliasChoices("is_correct", "isCorrect")
    )


class QuestionIn(BaseModel):
    id: UUID | None = None
    type: Literal["multiple-choice", "true-false", "short-answer", "essay"]
    prompt: str = Field(min_length=1)
    points: int = Field(default=1, gt=0)
    options: list[str | OptionIn] = Field(default_factory=list)
    correct_answer: str | None = None
    explanation: str | None = None

    def to_question(self) -> Question:
        options = tuple(
            Option.normalize(o if isinstance(o, str) else o.model_dump())
            for o in self.options
        )
        return Question(
            id=self.id or uuid4(),
            type=self.type,
            prompt=self.prompt,
            points=self.points,
            options=options,
            correct_answer=self.correct_answer,
            explanation=self.explanation,
        )


class SettingsIn(BaseModel):
    shuffle_questions: bool = False
    shuffle_options: bool = False
    show_correct_answers: bool = True
    show_explanations: bool = True
    allow_review: bool = True


class AssessmentIn(BaseModel):
    course_id: UUID
    title: str = Field(min_length=1, max_length=500)
    questions: list[QuestionIn] = Field(min_length=1)
    available_from: datetime | None = None
    available_until: datetime | None = None
    max_attempts: int = Field(default=1, ge=1)
    time_limit_minutes: int = Field(default=30, ge=1)
    xp_reward: int = Field(default=30, ge=0)
    bonus_xp: int = Field(default=20, ge=0)
    status: Literal["draft", "published", "closed"] = "published"
    settings: SettingsIn = Field(default_factory=SettingsIn)

    @field_validator("available_from", "available_until")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value

    def to_definition(self, assessment_id: UUID) -> AssessmentDefinition:
        return AssessmentDefinition(
            id=assessment_id,
            course_id=self.course_id,
            title=self.title,
            questions=tuple(q.to_question() for q in self.questions),
            available_from=self.available_from,
            available_until=self.available_until,
            max_attempts=self.max_attempts,
            time_limit_minutes=self.time_limit_minutes,
            xp_reward=self.xp_reward,
            bonus_xp=self.bonus_xp,
            status=self.status,
            settings=AssessmentSettings(**self.settings.model_dump()),
        )


class AssessmentOut(BaseModel):
    id: UUID
    course_id: UUID
    title: str
    status: str
    version: int
    question_count: int
    total_points: int
    max_attempts: int
    time_limit_minutes: int
    xp_reward: int
    bonus_xp: int
    available_from: datetime | None
    available_until: datetime | None

    @classmethod
    def from_definition(cls, d: AssessmentDefinition) -> AssessmentOut:
        return cls(
            id=d.id,
            course_id=d.course_id,
            title=d.title,
            status=d.status,
            version=d.version,
            question_count=len(d.questions),
            total_points=d.total_points,
            max_attempts=d.max_attempts,
            time_limit_minutes=d.time_limit_minutes,
            xp_reward=d.xp_reward,
            bonus_xp=d.bonus_xp,
            available_from=d.available_from,
            available_until=d.available_until,
        )


class StatisticsOut(BaseModel):
    attempt_count: int
    average_score: float
    average_percentage: float
    average_time_minutes: float


@router.post(
    "",
    response_model=AssessmentOut,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_rate_limit())],
)
async def publish_assessment(
    body: AssessmentIn,
    principal: Annotated[Principal, Depends(require_any_role(_AUTHORS))],
    services: Annotated[Services, Depends(get_services)],
) -> AssessmentOut:
    try:
        definition = await run_in_threadpool(
            services.catalog.publish, body.to_definition(uuid4())
        )
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)
        ) from None
    logger.info(
        "Assessment published by user=%s",
        principal.user_id,
        extra={"assessment_id": str(definition.id), "user_id": principal.user_id},
    )
    return AssessmentOut.from_definition(definition)


@router.put(
    "/{assessment_id}",
    response_model=AssessmentOut,
    dependencies=[Depends(require_rate_limit())],
)
async def revise_assessment(
    assessment_id: UUID,
    body: AssessmentIn,
    _principal: Annotated[Principal, Depends(require_any_role(_AUTHORS))],
    services: Annotated[Services, Depends(get_services)],
) -> AssessmentOut:
    definition = await run_in_threadpool(
        services.catalog.revise, body.to_definition(assessment_id)
    )
    return AssessmentOut.from_definition(definition)


@router.get("/{assessment_id}", response_model=AssessmentOut)
def get_assessment(
    assessment_id: UUID,
    _principal: Annotated[Principal, Depends(require_user)],
    services: Annotated[Services, Depends(get_services)],
) -> AssessmentOut:
    return AssessmentOut.from_definition(services.attempts.load_definition(assessment_id))


@router.get("/{assessment_id}/statistics", response_model=StatisticsOut)
def get_statistics(
    assessment_id: UUID,
    _principal: Annotated[Principal, Depends(require_any_role(_AUTHORS))],
    services: Annotated[Services, Depends(get_services)],
) -> StatisticsOut:
    stats = services.attempts.load_definition(assessment_id).statistics
    return StatisticsOut(
        attempt_count=stats.attempt_count,
        average_score=stats.average_score,
        average_percentage=stats.average_percentage,
        average_time_minutes=stats.average_time_minutes,
    )
