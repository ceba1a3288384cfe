from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from datetime import datetime

RECENT_ACTIVITY_LIMIT = 50
XP_PER_LEVEL_UNIT = 100

DEFAULT_STATS = (
    "assignments_completed",
    "quizzes_taken",
    "perfect_scores",
    "days_active",
    "messages_posted",
    "courses_completed",
)
DEFAULT_STREAKS = ("daily", "weekly", "assignment", "quiz")


def level_for_xp(total_xp: int) -> int:
    """floor(sqrt(total_xp / 100)) + 1, in exact integer arithmetic."""
    return math.isqrt(total_xp // XP_PER_LEVEL_UNIT) + 1


def xp_to_next_level(total_xp: int) -> int:
    level = level_for_xp(total_xp)
    return level * level * XP_PER_LEVEL_UNIT - total_xp


@dataclass(frozen=True, slots=True)
class ActivityEntry:
    action: str  # xp_earned
    xp_delta: int
    description: str
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class LevelUpEvent:
    learner_id: str
    old_level: int
    new_level: int


@dataclass(frozen=True, slots=True)
class XPAward:
    leveled_up: bool
    new_level: int
    xp_gained: int
    total_xp: int
    level_up: LevelUpEvent | None = None


@dataclass(frozen=True, slots=True)
class ProgressionRecord:
    """Per-learner XP ledger. ``current_level`` and ``xp_to_next_level`` are
    always derived from ``total_xp``; never set them independently.

    ``version`` 0 means the record has not been stored yet.
    """

    learner_id: str
    total_xp: int = 0
    current_level: int = 1
    xp_to_next_level: int = 100
    stats: dict[str, int] = field(
        default_factory=lambda: {name: 0 for name in DEFAULT_STATS}
    )
    streaks: dict[str, int] = field(
        default_factory=lambda: {name: 0 for name in DEFAULT_STREAKS}
    )
    recent_activity: tuple[ActivityEntry, ...] = ()
    version: int = 0

    def with_xp(self, amount: int, description: str, at: datetime) -> ProgressionRecord:
        total = self.total_xp + amount
        entry = ActivityEntry(
            action="xp_earned", xp_delta=amount, description=description, timestamp=at
        )
        activity = (entry, *self.recent_activity)[:RECENT_ACTIVITY_LIMIT]
        return replace(
            self,
            total_xp=total,
            current_level=level_for_xp(total),
            xp_to_next_level=xp_to_next_level(total),
            recent_activity=activity,
        )

    def with_stat(self, name: str, by: int = 1) -> ProgressionRecord:
        stats = dict(self.stats)
        stats[name] = stats.get(name, 0) + by
        return replace(self, stats=stats)

    def with_streak(self, name: str, value: int | None = None) -> ProgressionRecord:
        """Increment the named streak, or set it to ``value`` when given."""
        streaks = dict(self.streaks)
        streaks[name] = streaks.get(name, 0) + 1 if value is None else value
        return replace(self, streaks=streaks)
