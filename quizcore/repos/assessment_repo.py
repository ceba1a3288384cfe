from __future__ import annotations

import threading
from dataclasses import replace
from typing import Protocol
from uuid import UUID

from quizcore.models.assessment import AssessmentDefinition, AssessmentStatistics


class AssessmentRepo(Protocol):
    def get(self, assessment_id: UUID) -> AssessmentDefinition | None: ...
    def add(self, definition: AssessmentDefinition) -> None: ...
    def replace_content(self, definition: AssessmentDefinition) -> None: ...
    def save_statistics(
        self,
        assessment_id: UUID,
        statistics: AssessmentStatistics,
        expected_revision: int,
    ) -> bool: ...


class InMemoryAssessmentRepo:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._by_id: dict[UUID, AssessmentDefinition] = {}

    def get(self, assessment_id: UUID) -> AssessmentDefinition | None:
        return self._by_id.get(assessment_id)

    def add(self, definition: AssessmentDefinition) -> None:
        with self._lock:
            if definition.id in self._by_id:
                raise ValueError("assessment already exists")
            self._by_id[definition.id] = definition

    def replace_content(self, definition: AssessmentDefinition) -> None:
        """Swap the authored content; the stored statistics are kept."""
        with self._lock:
            current = self._by_id.get(definition.id)
            if current is None:
                raise KeyError("assessment not found")
            self._by_id[definition.id] = replace(
                definition, statistics=current.statistics
            )

    def save_statistics(
        self,
        assessment_id: UUID,
        statistics: AssessmentStatistics,
        expected_revision: int,
    ) -> bool:
        with self._lock:
            current = self._by_id.get(assessment_id)
            if current is None:
                raise KeyError("assessment not found")
            if current.statistics.revision != expected_revision:
                return False
            self._by_id[assessment_id] = replace(current, statistics=statistics)
            return True
