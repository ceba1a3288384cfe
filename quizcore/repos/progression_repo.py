from __future__ import annotations

import threading
from typing import Protocol

from quizcore.models.progression import ProgressionRecord


class ProgressionRepo(Protocol):
    def get(self, learner_id: str) -> ProgressionRecord | None: ...
    def save(self, record: ProgressionRecord, expected_version: int) -> bool: ...


class InMemoryProgressionRepo:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._store: dict[str, ProgressionRecord] = {}

    def get(self, learner_id: str) -> ProgressionRecord | None:
        return self._store.get(learner_id)

    def save(self, record: ProgressionRecord, expected_version: int) -> bool:
        """Conditional write; ``expected_version`` 0 means "must not exist yet"."""
        with self._lock:
            current = self._store.get(record.learner_id)
            stored_version = current.version if current is not None else 0
            if stored_version != expected_version:
                return False
            self._store[record.learner_id] = record
            return True
