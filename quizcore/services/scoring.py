"""Score arithmetic and the per-assessment statistics aggregate.

The aggregate is recomputed from the full set of submitted attempts every
time one is added. That makes a refresh O(attempts so far), but the
attempt list stays the only source of truth and a refresh that was
skipped (see StatisticsService) is repaired by the next one.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from uuid import UUID

from quizcore.models.assessment import AssessmentStatistics
from quizcore.models.attempt import Attempt
from quizcore.repos.assessment_repo import AssessmentRepo
from quizcore.repos.attempt_repo import AttemptRepo
from quizcore.services.concurrency import KeyedLocks, retry_on_conflict
from quizcore.services.errors import AssessmentNotFound

logger = logging.getLogger(__name__)


def round_half_up(value: float) -> int:
    # Python's round() is banker's rounding: round(12.5) == 12
    return math.floor(value + 0.5)


def percentage(score: int, total_points: int) -> int:
    if total_points <= 0:
        return 0
    return round_half_up(score / total_points * 100)


def compute_statistics(
    submitted: Sequence[Attempt], *, revision: int
) -> AssessmentStatistics:
    if not submitted:
        return AssessmentStatistics(revision=revision)
    n = len(submitted)
    return AssessmentStatistics(
        attempt_count=n,
        average_score=sum(a.score or 0 for a in submitted) / n,
        average_percentage=sum(a.percentage or 0 for a in submitted) / n,
        average_time_minutes=sum(a.time_spent_minutes or 0 for a in submitted) / n,
        revision=revision,
    )


class StatisticsService:
    """Serialized read-modify-write of AssessmentDefinition.statistics."""

    def __init__(
        self,
        assessments: AssessmentRepo,
        attempts: AttemptRepo,
        *,
        max_retries: int = 5,
        locks: KeyedLocks | None = None,
    ) -> None:
        self._assessments = assessments
        self._attempts = attempts
        self._max_retries = max_retries
        self._locks = locks or KeyedLocks()

    def refresh(self, assessment_id: UUID) -> AssessmentStatistics:
        with self._locks.hold(assessment_id):
            return retry_on_conflict(
                lambda: self._try_refresh(assessment_id),
                resource="statistics",
                max_attempts=self._max_retries,
            )

    def _try_refresh(self, assessment_id: UUID) -> AssessmentStatistics | None:
        definition = self._assessments.get(assessment_id)
        if definition is None:
            raise AssessmentNotFound(f"assessment {assessment_id} not found")

        expected = definition.statistics.revision
        stats = compute_statistics(
            self._attempts.list_submitted(assessment_id), revision=expected + 1
        )
        if not self._assessments.save_statistics(assessment_id, stats, expected):
            return None

        logger.debug(
            "Statistics refreshed attempts=%d avg_score=%.2f",
            stats.attempt_count,
            stats.average_score,
            extra={"assessment_id": str(assessment_id)},
        )
        return stats
