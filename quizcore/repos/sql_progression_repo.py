"""SQL implementation of ProgressionRepo."""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from quizcore.db.tables import ProgressionRow
from quizcore.models.progression import ActivityEntry, ProgressionRecord


class SqlProgressionRepo:
    def __init__(self, sessions: sessionmaker[Session]) -> None:
        self._sessions = sessions

    def get(self, learner_id: str) -> ProgressionRecord | None:
        with self._sessions() as session:
            row = session.get(ProgressionRow, learner_id)
            if row is None:
                return None
            return _row_to_record(row)

    def save(self, record: ProgressionRecord, expected_version: int) -> bool:
        if expected_version == 0:
            try:
                with self._sessions.begin() as session:
                    session.add(ProgressionRow(learner_id=record.learner_id, **_values(record)))
            except IntegrityError:
                return False
            return True

        stmt = (
            update(ProgressionRow)
            .where(
                ProgressionRow.learner_id == record.learner_id,
                ProgressionRow.version == expected_version,
            )
            .values(**_values(record))
        )
        with self._sessions.begin() as session:
            return session.execute(stmt).rowcount == 1


def _values(record: ProgressionRecord) -> dict:
    return {
        "total_xp": record.total_xp,
        "current_level": record.current_level,
        "xp_to_next_level": record.xp_to_next_level,
        "stats": dict(record.stats),
        "streaks": dict(record.streaks),
        "recent_activity": [
            {
                "action": e.action,
                "xp_delta": e.xp_delta,
                "description": e.description,
                "timestamp": e.timestamp.isoformat(),
            }
            for e in record.recent_activity
        ],
        "version": record.version,
    }


def _parse_ts(raw: str) -> datetime:
    ts = datetime.fromisoformat(raw)
    return ts if ts.tzinfo is not None else ts.replace(tzinfo=UTC)


def _row_to_record(row: ProgressionRow) -> ProgressionRecord:
    return ProgressionRecord(
        learner_id=row.learner_id,
        total_xp=row.total_xp,
        current_level=row.current_level,
        xp_to_next_level=row.xp_to_next_level,
        stats=dict(row.stats),
        streaks=dict(row.streaks),
        recent_activity=tuple(
            ActivityEntry(
                action=e["action"],
                xp_delta=e["xp_delta"],
                description=e["description"],
                timestamp=_parse_ts(e["timestamp"]),
            )
            for e in row.recent_activity
        ),
        version=row.version,
    )
