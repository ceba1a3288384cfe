"""Progression ledger endpoints.

Learners read their own record. Awarding XP outside of quiz completion is
an admin action; streak bookkeeping is done by admins or by the services
that detect qualifying activity (role ``service``).
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Response, status
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel

from quizcore.api.dependencies import (
    get_services,
    get_task_queue,
    require_any_role,
    require_role,
    require_user,
)
from quizcore.api.ratelimit import require_rate_limit
from quizcore.models.principal import Principal
from quizcore.models.progression import ProgressionRecord
from quizcore.services.container import Services
from quizcore.services.task_queue import LEVEL_UP_QUEUE, TaskQueue

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/progression", tags=["progression"])


class ProgressionOut(BaseModel):
    learner_id: str
    total_xp: int
    current_level: int
    xp_to_next_level: int
    stats: dict[str, int]
    streaks: dict[str, int]

    @classmethod
    def from_record(cls, r: ProgressionRecord) -> ProgressionOut:
        return cls(
            learner_id=r.learner_id,
            total_xp=r.total_xp,
            current_level=r.current_level,
            xp_to_next_level=r.xp_to_next_level,
            stats=dict(r.stats),
            streaks=dict(r.streaks),
        )


class ActivityOut(BaseModel):
    action: str
    xp_delta: int
    description: str
    timestamp: datetime


class XPIn(BaseModel):
    # Validated by the ledger so 5.0 or "5" is rejected as InvalidXPAmount
    amount: Any
    reason: str | None = None


class XPAwardOut(BaseModel):
    leveled_up: bool
    new_level: int
    xp_gained: int
    total_xp: int


class StreakOut(BaseModel):
    streak: str
    count: int


@router.get("/me", response_model=ProgressionOut)
def get_my_progression(
    principal: Annotated[Principal, Depends(require_user)],
    services: Annotated[Services, Depends(get_services)],
) -> ProgressionOut:
    return ProgressionOut.from_record(services.ledger.get_record(principal.user_id))


@router.get("/me/activity", response_model=list[ActivityOut])
def get_my_activity(
    principal: Annotated[Principal, Depends(require_user)],
    services: Annotated[Services, Depends(get_services)],
) -> list[ActivityOut]:
    record = services.ledger.get_record(principal.user_id)
    return [
        ActivityOut(
            action=e.action,
            xp_delta=e.xp_delta,
            description=e.description,
            timestamp=e.timestamp,
        )
        for e in record.recent_activity
    ]


@router.post(
    "/{learner_id}/xp",
    response_model=XPAwardOut,
    dependencies=[Depends(require_rate_limit())],
)
async def award_xp(
    learner_id: str,
    body: XPIn,
    principal: Annotated[Principal, Depends(require_role("admin"))],
    services: Annotated[Services, Depends(get_services)],
    queue: Annotated[TaskQueue, Depends(get_task_queue)],
) -> XPAwardOut:
    award = await run_in_threadpool(
        services.ledger.award_xp, learner_id, body.amount, body.reason or "Admin reward"
    )
    logger.info(
        "Admin %s awarded %d XP",
        principal.user_id,
        award.xp_gained,
        extra={"learner_id": learner_id, "user_id": principal.user_id},
    )
    if award.level_up is not None:
        await queue.enqueue(
            LEVEL_UP_QUEUE,
            {
                "learner_id": learner_id,
                "old_level": award.level_up.old_level,
                "new_level": award.level_up.new_level,
            },
        )
    return XPAwardOut(
        leveled_up=award.leveled_up,
        new_level=award.new_level,
        xp_gained=award.xp_gained,
        total_xp=award.total_xp,
    )


@router.post("/{learner_id}/streaks/{streak_name}", response_model=StreakOut)
def increment_streak(
    learner_id: str,
    streak_name: str,
    _principal: Annotated[Principal, Depends(require_any_role({"admin", "service"}))],
    services: Annotated[Services, Depends(get_services)],
) -> StreakOut:
    count = services.ledger.update_streak(learner_id, streak_name)
    return StreakOut(streak=streak_name, count=count)


@router.delete(
    "/{learner_id}/streaks/{streak_name}", status_code=status.HTTP_204_NO_CONTENT
)
def reset_streak(
    learner_id: str,
    streak_name: str,
    _principal: Annotated[Principal, Depends(require_any_role({"admin", "service"}))],
    services: Annotated[Services, Depends(get_services)],
) -> Response:
    services.ledger.reset_streak(learner_id, streak_name)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
