"""Hand-off queue between the API process and the background worker.

Three queues are used:

  statistics_refresh       an assessment whose aggregate could not be
                           written during finalization; the worker
                           recomputes it.
  level_up_notifications   level-up events for the notification
                           collaborator, which lives outside this service.
  quiz_reward              a submitted attempt whose XP reward could not
                           be written to the ledger; the worker credits it.

The Redis implementation is LPUSH on enqueue and BRPOP on dequeue, so
tasks leave in arrival order. Delivery is at-most-once: a worker that
dies mid-task loses that task. For statistics that is harmless, since
the next finalization recomputes the aggregate from scratch.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from quizcore.core.metrics import QUEUE_DEPTH

STATISTICS_REFRESH_QUEUE = "statistics_refresh"
LEVEL_UP_QUEUE = "level_up_notifications"
QUIZ_REWARD_QUEUE = "quiz_reward"


@dataclass(frozen=True, slots=True)
class Task:
    id: str
    queue: str
    payload: dict


@runtime_checkable
class TaskQueue(Protocol):
    async def enqueue(self, queue: str, payload: dict) -> Task: ...
    async def dequeue(self, queue: str, timeout: int = 0) -> Task | None: ...
    async def queue_length(self, queue: str) -> int: ...


class InMemoryTaskQueue:
    def __init__(self) -> None:
        self._queues: dict[str, list[Task]] = {}

    async def enqueue(self, queue: str, payload: dict) -> Task:
        task = Task(id=str(uuid.uuid4()), queue=queue, payload=payload)
        pending = self._queues.setdefault(queue, [])
        pending.append(task)
        QUEUE_DEPTH.labels(queue_name=queue).set(len(pending))
        return task

    async def dequeue(self, queue: str, timeout: int = 0) -> Task | None:
        pending = self._queues.get(queue, [])
        if not pending:
            return None
        task = pending.pop(0)
        QUEUE_DEPTH.labels(queue_name=queue).set(len(pending))
        return task

    async def queue_length(self, queue: str) -> int:
        return len(self._queues.get(queue, []))


class RedisTaskQueue:
    _PREFIX = "tasks:"

    def __init__(self, redis_client) -> None:
        self._redis = redis_client

    async def enqueue(self, queue: str, payload: dict) -> Task:
        task = Task(id=str(uuid.uuid4()), queue=queue, payload=payload)
        body = json.dumps({"id": task.id, "queue": task.queue, "payload": task.payload})
        depth = await self._redis.lpush(f"{self._PREFIX}{queue}", body)
        QUEUE_DEPTH.labels(queue_name=queue).set(depth)
        return task

    async def dequeue(self, queue: str, timeout: int = 5) -> Task | None:
        # BRPOP blocks up to `timeout` seconds and returns None when nothing arrived
        result = await self._redis.brpop(f"{self._PREFIX}{queue}", timeout=timeout)
        if result is None:
            return None
        _, body = result
        return Task(**json.loads(body))

    async def queue_length(self, queue: str) -> int:
        return await self._redis.llen(f"{self._PREFIX}{queue}")
