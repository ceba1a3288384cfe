from __future__ import annotations

import threading
from typing import Protocol
from uuid import UUID

from quizcore.models.attempt import Attempt

AttemptKey = tuple[UUID, str, int]


class AttemptRepo(Protocol):
    def get(
        self, assessment_id: UUID, student_id: str, attempt_number: int
    ) -> Attempt | None: ...
    def list_for_student(self, assessment_id: UUID, student_id: str) -> list[Attempt]: ...
    def list_for_assessment(self, assessment_id: UUID) -> list[Attempt]: ...
    def list_submitted(self, assessment_id: UUID) -> list[Attempt]: ...
    def count_for_assessment(self, assessment_id: UUID) -> int: ...
    def insert(self, attempt: Attempt) -> bool: ...
    def save(self, attempt: Attempt, expected_version: int) -> bool: ...


class InMemoryAttemptRepo:
    """Attempts keyed by (assessment, student, attempt number).

    ``insert`` refuses an existing key. A new attempt is always numbered
    submitted-count + 1, which is also the number of any attempt still
    open for the pair, so a racing second start collides on the key
    instead of opening a second attempt.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._store: dict[AttemptKey, Attempt] = {}

    def get(
        self, assessment_id: UUID, student_id: str, attempt_number: int
    ) -> Attempt | None:
        return self._store.get((assessment_id, student_id, attempt_number))

    def list_for_student(self, assessment_id: UUID, student_id: str) -> list[Attempt]:
        with self._lock:
            found = [
                a
                for (aid, sid, _), a in self._store.items()
                if aid == assessment_id and sid == student_id
            ]
        return sorted(found, key=lambda a: a.attempt_number)

    def list_for_assessment(self, assessment_id: UUID) -> list[Attempt]:
        with self._lock:
            found = [a for a in self._store.values() if a.assessment_id == assessment_id]
        return sorted(found, key=lambda a: (a.student_id, a.attempt_number))

    def list_submitted(self, assessment_id: UUID) -> list[Attempt]:
        with self._lock:
            return [
                a
                for a in self._store.values()
                if a.assessment_id == assessment_id and not a.is_open
            ]

    def count_for_assessment(self, assessment_id: UUID) -> int:
        with self._lock:
            return sum(1 for a in self._store.values() if a.assessment_id == assessment_id)

    def insert(self, attempt: Attempt) -> bool:
        with self._lock:
            if attempt.key in self._store:
                return False
            self._store[attempt.key] = attempt
            return True

    def save(self, attempt: Attempt, expected_version: int) -> bool:
        with self._lock:
            current = self._store.get(attempt.key)
            if current is None or current.version != expected_version:
                return False
            self._store[attempt.key] = attempt
            return True
