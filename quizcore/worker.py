"""Background worker process.

RUN:  python -m quizcore.worker

Same image as the API, different command:
  api:    uvicorn quizcore.main:app --host 0.0.0.0 --port 8000
  worker: python -m quizcore.worker

Queues handled:
  statistics_refresh       recompute an assessment's aggregate that could
                           not be written when an attempt was finalized
  level_up_notifications   hand level-up events to the notification
                           collaborator (delivery itself lives elsewhere)
  quiz_reward              credit the XP of a submitted attempt whose
                           ledger write failed during submit

A task that loses its compare-and-swap every time goes back on its queue.
Any other failure is logged and the task dropped.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from typing import Any
from uuid import UUID

from quizcore.core.config import SETTINGS
from quizcore.core.logging import setup_logging
from quizcore.services.container import Services
from quizcore.services.errors import ConcurrentUpdateFailed
from quizcore.services.task_queue import (
    LEVEL_UP_QUEUE,
    QUIZ_REWARD_QUEUE,
    STATISTICS_REFRESH_QUEUE,
    TaskQueue,
)

TaskHandler = Callable[[Services, dict], Coroutine[Any, Any, None]]

logger = logging.getLogger("worker")

HANDLERS: dict[str, TaskHandler] = {}


def register_handler(queue: str):
    """Decorator: register a coroutine as the handler for a queue."""

    def decorator(func):
        HANDLERS[queue] = func
        return func

    return decorator


@register_handler(STATISTICS_REFRESH_QUEUE)
async def handle_statistics_refresh(services: Services, payload: dict) -> None:
    assessment_id = UUID(payload["assessment_id"])
    stats = await asyncio.to_thread(services.statistics.refresh, assessment_id)
    logger.info(
        "Statistics refreshed attempts=%d",
        stats.attempt_count,
        extra={"assessment_id": str(assessment_id)},
    )


@register_handler(LEVEL_UP_QUEUE)
async def handle_level_up(services: Services, payload: dict) -> None:
    logger.info(
        "Level-up notification handed off: %s -> %s",
        payload.get("old_level"),
        payload.get("new_level"),
        extra={"learner_id": payload.get("learner_id")},
    )


@register_handler(QUIZ_REWARD_QUEUE)
async def handle_quiz_reward(services: Services, payload: dict) -> None:
    learner_id = payload["learner_id"]
    assessment_id = UUID(payload["assessment_id"])
    award = await asyncio.to_thread(
        services.completion.apply_reward,
        learner_id,
        assessment_id,
        int(payload["attempt_number"]),
    )
    logger.info(
        "Deferred quiz reward applied xp=%d total=%d",
        award.xp_gained,
        award.total_xp,
        extra={"assessment_id": str(assessment_id), "learner_id": learner_id},
    )


async def process_one(
    services: Services, queue: TaskQueue, queue_name: str, timeout: int = 1
) -> bool:
    """Take one task off ``queue_name`` and run it; False when the queue was empty."""
    task = await queue.dequeue(queue_name, timeout=timeout)
    if task is None:
        return False

    handler = HANDLERS[queue_name]
    try:
        await handler(services, task.payload)
        logger.info("Task %s on [%s] completed", task.id, queue_name)
    except ConcurrentUpdateFailed:
        logger.warning("Task %s on [%s] lost its write; requeued", task.id, queue_name)
        await queue.enqueue(queue_name, task.payload)
    except Exception:
        logger.exception("Task %s on [%s] failed", task.id, queue_name)
    return True


async def run_worker(services: Services, queue: TaskQueue) -> None:
    """Poll all registered queues round-robin, forever."""
    queues = list(HANDLERS.keys())
    logger.info("Worker started, listening on queues: %s", queues)

    while True:
        handled = False
        for queue_name in queues:
            handled = await process_one(services, queue, queue_name) or handled
        if not handled:
            # The in-memory queue returns at once instead of blocking
            await asyncio.sleep(0.5)


def main() -> None:
    from quizcore.db import engine as db_engine
    from quizcore.db.redis import redis_pool
    from quizcore.services.container import build_services
    from quizcore.services.task_queue import InMemoryTaskQueue, RedisTaskQueue

    setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)
    if redis_pool is None:
        # An in-memory queue is private to this process, so nothing would arrive
        logger.warning("No REDIS_URL configured; the worker will only see its own tasks")
        queue: TaskQueue = InMemoryTaskQueue()
    else:
        queue = RedisTaskQueue(redis_pool)

    if db_engine.engine is not None:
        db_engine.create_schema(db_engine.engine)
    services = build_services(SETTINGS, session_factory=db_engine.session_factory)
    asyncio.run(run_worker(services, queue))


if __name__ == "__main__":
    main()
