"""Health and readiness endpoints.

  /health  liveness plus per-dependency status. Always 200; a degraded
           dependency shows up in the body, not in the status code.
  /ready   503 when the configured database cannot be reached. Redis is
           optional (in-memory fallbacks exist) and never blocks readiness.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Request, Response, status
from fastapi.concurrency import run_in_threadpool
from sqlalchemy import text

from quizcore.db import engine as db_engine
from quizcore.db.redis import redis_pool
from quizcore.services.task_queue import (
    LEVEL_UP_QUEUE,
    QUIZ_REWARD_QUEUE,
    STATISTICS_REFRESH_QUEUE,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


def _database_ok() -> bool:
    if db_engine.engine is None:
        return True
    try:
        with db_engine.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception:
        logger.exception("Database health check failed")
        return False
    return True


@router.get("/health")
async def health(request: Request) -> dict:
    checks: dict[str, str] = {}
    overall = "ok"

    if redis_pool is not None:
        try:
            await redis_pool.ping()  # type: ignore[misc]
            checks["redis"] = "ok"
        except Exception:
            logger.exception("Redis health check failed")
            checks["redis"] = "degraded"
            overall = "degraded"
    else:
        checks["redis"] = "not_configured"

    if db_engine.engine is None:
        checks["database"] = "not_configured"
    elif await run_in_threadpool(_database_ok):
        checks["database"] = "ok"
    else:
        checks["database"] = "degraded"
        overall = "degraded"

    queue_depths = {}
    task_queue = request.app.state.task_queue
    for name in (STATISTICS_REFRESH_QUEUE, LEVEL_UP_QUEUE, QUIZ_REWARD_QUEUE):
        queue_depths[name] = await task_queue.queue_length(name)

    return {"status": overall, "checks": checks, "queues": queue_depths}


@router.get("/ready")
async def ready() -> Response:
    if not await run_in_threadpool(_database_ok):
        return Response(status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
    return Response(status_code=status.HTTP_200_OK)
