"""Attempt endpoints.

Every route but one acts on the caller's own attempts (X-User-ID is the
student id). The exception is ``/all``, the results view for instructors.
The core operations block on locks and stores, so the async routes hand
them to the threadpool and keep the event loop for queue I/O.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Annotated, Any
from uuid import UUID

from fastapi import APIRouter, Depends, status
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel, Field

from quizcore.api.dependencies import (
    get_services,
    get_task_queue,
    require_any_role,
    require_user,
)
from quizcore.api.ratelimit import require_rate_limit
from quizcore.models.attempt import Answer, Attempt
from quizcore.models.principal import Principal
from quizcore.services.container import Services
from quizcore.services.errors import AttemptNotFound
from quizcore.services.presentation import presented_questions, review_attempt
from quizcore.services.task_queue import (
    LEVEL_UP_QUEUE,
    QUIZ_REWARD_QUEUE,
    STATISTICS_REFRESH_QUEUE,
    TaskQueue,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/assessments/{assessment_id}/attempts", tags=["attempts"])

_INSTRUCTORS = {"instructor", "admin"}


class AnswerOut(BaseModel):
    question_id: UUID
    value: str | bool
    is_correct: bool
    points_awarded: int
    answered_at: datetime | None = None

    @classmethod
    def from_answer(cls, a: Answer) -> AnswerOut:
        return cls(
            question_id=a.question_id,
            value=a.value,
            is_correct=a.is_correct,
            points_awarded=a.points_awarded,
            answered_at=a.answered_at,
        )


class AttemptOut(BaseModel):
    assessment_id: UUID
    student_id: str
    attempt_number: int
    status: str
    started_at: datetime
    submitted_at: datetime | None
    score: int | None
    percentage: int | None
    time_spent_minutes: int | None
    answers: list[AnswerOut]

    @classmethod
    def from_attempt(cls, a: Attempt) -> AttemptOut:
        return cls(
            assessment_id=a.assessment_id,
            student_id=a.student_id,
            attempt_number=a.attempt_number,
            status=a.status,
            started_at=a.started_at,
            submitted_at=a.submitted_at,
            score=a.score,
            percentage=a.percentage,
            time_spent_minutes=a.time_spent_minutes,
            answers=[AnswerOut.from_answer(x) for x in a.answers],
        )


class QuestionOut(BaseModel):
    id: UUID
    type: str
    prompt: str
    points: int
    options: list[str]


class AnswerIn(BaseModel):
    # Shape is checked by grading so a wrong type gets the domain error code
    value: Any


class BatchAnswerIn(BaseModel):
    question_id: UUID
    value: Any


class SubmitIn(BaseModel):
    answers: list[BatchAnswerIn] = Field(default_factory=list)


class CompletionOut(BaseModel):
    attempt: AttemptOut
    score: int
    percentage: int
    # Reward fields are null while a deferred reward waits for the worker
    reward_applied: bool
    xp_gained: int | None
    total_xp: int | None
    leveled_up: bool | None
    new_level: int | None
    statistics_refreshed: bool


class ReviewItemOut(BaseModel):
    question_id: UUID
    prompt: str
    points: int
    submitted_value: str | bool | None
    is_correct: bool
    points_awarded: int
    correct_answer: str | None
    explanation: str | None


@router.post(
    "",
    response_model=AttemptOut,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_rate_limit())],
)
async def start_attempt(
    assessment_id: UUID,
    principal: Annotated[Principal, Depends(require_user)],
    services: Annotated[Services, Depends(get_services)],
) -> AttemptOut:
    attempt = await run_in_threadpool(
        services.attempts.start_attempt, principal.user_id, assessment_id
    )
    return AttemptOut.from_attempt(attempt)


@router.get("", response_model=list[AttemptOut])
def list_attempts(
    assessment_id: UUID,
    principal: Annotated[Principal, Depends(require_user)],
    services: Annotated[Services, Depends(get_services)],
) -> list[AttemptOut]:
    attempts = services.attempts.list_attempts(principal.user_id, assessment_id)
    return [AttemptOut.from_attempt(a) for a in attempts]


@router.get("/all", response_model=list[AttemptOut])
def list_all_attempts(
    assessment_id: UUID,
    _principal: Annotated[Principal, Depends(require_any_role(_INSTRUCTORS))],
    services: Annotated[Services, Depends(get_services)],
) -> list[AttemptOut]:
    attempts = services.attempts.list_all_attempts(assessment_id)
    return [AttemptOut.from_attempt(a) for a in attempts]


@router.get("/current", response_model=AttemptOut)
def get_current_attempt(
    assessment_id: UUID,
    principal: Annotated[Principal, Depends(require_user)],
    services: Annotated[Services, Depends(get_services)],
) -> AttemptOut:
    attempt = services.attempts.get_attempt(principal.user_id, assessment_id)
    if attempt is None:
        raise AttemptNotFound("no attempt for this assessment yet")
    return AttemptOut.from_attempt(attempt)


@router.get("/current/questions", response_model=list[QuestionOut])
def get_current_questions(
    assessment_id: UUID,
    principal: Annotated[Principal, Depends(require_user)],
    services: Annotated[Services, Depends(get_services)],
) -> list[QuestionOut]:
    definition = services.attempts.load_definition(assessment_id)
    attempt = services.attempts.get_open_attempt(principal.user_id, assessment_id)
    return [
        QuestionOut(
            id=view.question.id,
            type=view.question.type,
            prompt=view.question.prompt,
            points=view.question.points,
            options=list(view.option_texts),
        )
        for view in presented_questions(definition, attempt)
    ]


@router.put(
    "/current/answers/{question_id}",
    response_model=AnswerOut,
    dependencies=[Depends(require_rate_limit())],
)
async def submit_answer(
    assessment_id: UUID,
    question_id: UUID,
    body: AnswerIn,
    principal: Annotated[Principal, Depends(require_user)],
    services: Annotated[Services, Depends(get_services)],
) -> AnswerOut:
    answer = await run_in_threadpool(
        services.attempts.submit_answer,
        principal.user_id,
        assessment_id,
        question_id,
        body.value,
    )
    return AnswerOut.from_answer(answer)


@router.post(
    "/current/submit",
    response_model=CompletionOut,
    dependencies=[Depends(require_rate_limit())],
)
async def submit_attempt(
    assessment_id: UUID,
    principal: Annotated[Principal, Depends(require_user)],
    services: Annotated[Services, Depends(get_services)],
    queue: Annotated[TaskQueue, Depends(get_task_queue)],
    body: SubmitIn | None = None,
) -> CompletionOut:
    answers = [(a.question_id, a.value) for a in body.answers] if body else []
    result = await run_in_threadpool(
        services.completion.complete_attempt, principal.user_id, assessment_id, answers
    )

    if not result.statistics_refreshed:
        await queue.enqueue(
            STATISTICS_REFRESH_QUEUE, {"assessment_id": str(assessment_id)}
        )
    award = result.award
    if award is None:
        await queue.enqueue(QUIZ_REWARD_QUEUE, result.reward_task_payload())
    elif award.level_up is not None:
        event = award.level_up
        await queue.enqueue(
            LEVEL_UP_QUEUE,
            {
                "learner_id": event.learner_id,
                "old_level": event.old_level,
                "new_level": event.new_level,
            },
        )

    return CompletionOut(
        attempt=AttemptOut.from_attempt(result.attempt),
        score=result.score,
        percentage=result.percentage,
        reward_applied=result.reward_applied,
        xp_gained=award.xp_gained if award else None,
        total_xp=award.total_xp if award else None,
        leveled_up=award.leveled_up if award else None,
        new_level=award.new_level if award else None,
        statistics_refreshed=result.statistics_refreshed,
    )


@router.get("/{attempt_number}/review", response_model=list[ReviewItemOut])
def get_review(
    assessment_id: UUID,
    attempt_number: int,
    principal: Annotated[Principal, Depends(require_user)],
    services: Annotated[Services, Depends(get_services)],
) -> list[ReviewItemOut]:
    definition = services.attempts.load_definition(assessment_id)
    attempt = services.attempts.attempt_by_number(
        principal.user_id, assessment_id, attempt_number
    )
    return [
        ReviewItemOut(
            question_id=item.question.id,
            prompt=item.question.prompt,
            points=item.question.points,
            submitted_value=item.submitted_value,
            is_correct=item.answer.is_correct if item.answer else False,
            points_awarded=item.answer.points_awarded if item.answer else 0,
            correct_answer=item.correct_answer,
            explanation=item.explanation,
        )
        for item in review_attempt(definition, attempt)
    ]
