"""Progression ledger: XP, derived level, activity counters and streaks.

Every mutation is a read-modify-write of the learner's whole record, run
under the learner's keyed lock and committed with a versioned
compare-and-swap. Two awards arriving together therefore both land, and
the level is re-derived from the summed total every time.

Streaks never decay on their own; whoever detects a gap in the
qualifying activity calls ``reset_streak``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import replace

from quizcore.core.metrics import LEVEL_UPS, XP_AWARDED
from quizcore.models.assessment import AssessmentDefinition
from quizcore.models.attempt import Attempt
from quizcore.models.progression import LevelUpEvent, ProgressionRecord, XPAward
from quizcore.repos.progression_repo import ProgressionRepo
from quizcore.services.clock import Clock, SystemClock
from quizcore.services.concurrency import KeyedLocks, retry_on_conflict
from quizcore.services.errors import InvalidCounter, InvalidXPAmount

logger = logging.getLogger(__name__)

LevelUpListener = Callable[[LevelUpEvent], None]

BONUS_THRESHOLD_PERCENT = 90


def quiz_xp_reward(definition: AssessmentDefinition, attempt: Attempt) -> int:
    """Base reward, plus the bonus for a percentage of 90 or more."""
    xp = definition.xp_reward
    if (attempt.percentage or 0) >= BONUS_THRESHOLD_PERCENT:
        xp += definition.bonus_xp
    return xp


class ProgressionLedger:
    def __init__(
        self,
        repo: ProgressionRepo,
        *,
        clock: Clock | None = None,
        max_retries: int = 5,
        locks: KeyedLocks | None = None,
        listeners: list[LevelUpListener] | None = None,
    ) -> None:
        self._repo = repo
        self._clock = clock or SystemClock()
        self._max_retries = max_retries
        self._locks = locks or KeyedLocks()
        self._listeners: list[LevelUpListener] = list(listeners or [])

    def add_listener(self, listener: LevelUpListener) -> None:
        self._listeners.append(listener)

    def get_record(self, learner_id: str) -> ProgressionRecord:
        """Stored record, or an unsaved default for a learner with no activity."""
        record = self._repo.get(learner_id)
        if record is None:
            return ProgressionRecord(learner_id=learner_id)
        return record

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def award_xp(self, learner_id: str, amount: int, reason: str | None = None) -> XPAward:
        _check_amount(amount)
        description = reason or "XP earned"

        def _change(record: ProgressionRecord) -> ProgressionRecord:
            return record.with_xp(amount, description, self._clock.now())

        before, after = self._mutate(learner_id, _change)
        return self._settle_award(learner_id, amount, before, after)

    def record_quiz_completion(
        self, learner_id: str, definition: AssessmentDefinition, attempt: Attempt
    ) -> XPAward:
        """Reward a just-finalized attempt and count it, as one write."""
        amount = quiz_xp_reward(definition, attempt)
        description = f"Completed quiz: {definition.title}"

        def _change(record: ProgressionRecord) -> ProgressionRecord:
            updated = record.with_xp(amount, description, self._clock.now())
            updated = updated.with_stat("quizzes_taken")
            if attempt.percentage == 100:
                updated = updated.with_stat("perfect_scores")
            return updated.with_streak("quiz")

        before, after = self._mutate(learner_id, _change)
        return self._settle_award(learner_id, amount, before, after)

    def update_streak(self, learner_id: str, streak_name: str) -> int:
        _check_name(streak_name)
        _, after = self._mutate(learner_id, lambda r: r.with_streak(streak_name))
        return after.streaks[streak_name]

    def reset_streak(self, learner_id: str, streak_name: str) -> None:
        _check_name(streak_name)
        self._mutate(learner_id, lambda r: r.with_streak(streak_name, value=0))
        logger.info(
            "Streak %s reset", streak_name, extra={"learner_id": learner_id}
        )

    def increment_stat(self, learner_id: str, stat_name: str, by: int = 1) -> int:
        _check_name(stat_name)
        if by < 0:
            raise InvalidCounter("stat counters only go up")
        _, after = self._mutate(learner_id, lambda r: r.with_stat(stat_name, by))
        return after.stats[stat_name]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _mutate(
        self,
        learner_id: str,
        change: Callable[[ProgressionRecord], ProgressionRecord],
    ) -> tuple[ProgressionRecord, ProgressionRecord]:
        def _try() -> tuple[ProgressionRecord, ProgressionRecord] | None:
            current = self.get_record(learner_id)
            updated = replace(change(current), version=current.version + 1)
            if not self._repo.save(updated, expected_version=current.version):
                return None
            return current, updated

        with self._locks.hold(learner_id):
            return retry_on_conflict(
                _try, resource="progression", max_attempts=self._max_retries
            )

    def _settle_award(
        self,
        learner_id: str,
        amount: int,
        before: ProgressionRecord,
        after: ProgressionRecord,
    ) -> XPAward:
        XP_AWARDED.inc(amount)
        leveled_up = after.current_level > before.current_level
        event = None
        if leveled_up:
            event = LevelUpEvent(
                learner_id=learner_id,
                old_level=before.current_level,
                new_level=after.current_level,
            )
            LEVEL_UPS.inc()
            logger.info(
                "Level up %d -> %d",
                event.old_level,
                event.new_level,
                extra={"learner_id": learner_id},
            )
            # The award is already committed; a listener must not turn it into an error.
            for listener in self._listeners:
                try:
                    listener(event)
                except Exception:
                    logger.exception(
                        "Level-up listener %r failed",
                        listener,
                        extra={"learner_id": learner_id},
                    )

        logger.debug(
            "Awarded %d XP total=%d", amount, after.total_xp, extra={"learner_id": learner_id}
        )
        return XPAward(
            leveled_up=leveled_up,
            new_level=after.current_level,
            xp_gained=amount,
            total_xp=after.total_xp,
            level_up=event,
        )


def _check_amount(amount: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidXPAmount(f"XP amount must be an integer (got {amount!r})")
    if amount < 0:
        raise InvalidXPAmount(f"XP amount must not be negative (got {amount})")


def _check_name(name: str) -> None:
    if not name or not name.strip():
        raise InvalidCounter("counter name must be non-empty")
