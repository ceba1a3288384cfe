"""Per-key serialization and bounded compare-and-swap retries.

Two layers protect every contended write:

  1. KeyedLocks linearizes callers inside one process that touch the
     same key, e.g. (assessment_id, student_id) or a learner id.
  2. The stores accept a write only when the stored version still
     matches the version the caller read. Across processes that is the
     only guard, so the read-modify-write is retried a bounded number
     of times before ConcurrentUpdateFailed reaches the caller.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Hashable, Iterator
from contextlib import contextmanager
from typing import TypeVar

from quizcore.core.metrics import CAS_CONFLICTS
from quizcore.services.errors import ConcurrentUpdateFailed

logger = logging.getLogger(__name__)

T = TypeVar("T")


class KeyedLocks:
    """One mutex per key, created on demand and dropped by the last holder."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        # key -> [lock, number of threads holding or waiting]
        self._entries: dict[Hashable, list] = {}

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = [threading.Lock(), 0]
                self._entries[key] = entry
            entry[1] += 1

        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._entries[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)


def retry_on_conflict(
    operation: Callable[[], T | None],
    *,
    resource: str,
    max_attempts: int,
) -> T:
    """Run ``operation`` until it returns a value other than None.

    ``operation`` re-reads its inputs on every call and returns None when
    its conditional write lost the race.
    """
    for attempt in range(1, max_attempts + 1):
        result = operation()
        if result is not None:
            return result
        CAS_CONFLICTS.labels(resource=resource).inc()
        logger.warning(
            "CAS conflict on %s (try %d/%d)", resource, attempt, max_attempts
        )

    logger.error("Giving up on %s after %d conflicting writes", resource, max_attempts)
    raise ConcurrentUpdateFailed(
        f"{resource} was modified concurrently {max_attempts} times; try again"
    )
