from __future__ import annotations

from typing import Protocol
from uuid import UUID


class EnrollmentChecker(Protocol):
    def is_enrolled(self, student_id: str, course_id: UUID) -> bool: ...


class InMemoryEnrollmentRepo:
    def __init__(self) -> None:
        self._pairs: set[tuple[str, UUID]] = set()

    def is_enrolled(self, student_id: str, course_id: UUID) -> bool:
        return (student_id, course_id) in self._pairs

    def enroll(self, student_id: str, course_id: UUID) -> None:
        self._pairs.add((student_id, course_id))

    def unenroll(self, student_id: str, course_id: UUID) -> bool:
        try:
            self._pairs.remove((student_id, course_id))
        except KeyError:
            return False
        return True
