from __future__ import annotations

import asyncio

from prometheus_client import REGISTRY

from quizcore.services.task_queue import InMemoryTaskQueue, Task


def test_tasks_leave_in_arrival_order() -> None:
    queue = InMemoryTaskQueue()

    async def _run() -> list[Task | None]:
        await queue.enqueue("q-order", {"n": 1})
        await queue.enqueue("q-order", {"n": 2})
        return [await queue.dequeue("q-order") for _ in range(3)]

    first, second, empty = asyncio.run(_run())
    assert first.payload == {"n": 1}
    assert second.payload == {"n": 2}
    assert empty is None


def test_queue_length_and_depth_gauge() -> None:
    queue = InMemoryTaskQueue()

    async def _run() -> int:
        for i in range(3):
            await queue.enqueue("q-depth", {"n": i})
        await queue.dequeue("q-depth")
        return await queue.queue_length("q-depth")

    assert asyncio.run(_run()) == 2
    assert REGISTRY.get_sample_value("task_queue_depth", {"queue_name": "q-depth"}) == 2


def test_queues_are_independent() -> None:
    queue = InMemoryTaskQueue()
    asyncio.run(queue.enqueue("q-a", {}))
    assert asyncio.run(queue.queue_length("q-b")) == 0
    assert asyncio.run(queue.dequeue("q-b")) is None
