"""SQL implementation of AssessmentRepo."""

from __future__ import annotations

from dataclasses import asdict
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from quizcore.db.tables import AssessmentRow
from quizcore.models.assessment import (
    AssessmentDefinition,
    AssessmentSettings,
    AssessmentStatistics,
    Option,
    Question,
)


class SqlAssessmentRepo:
    """Satisfies the AssessmentRepo Protocol via SQLAlchemy."""

    def __init__(self, sessions: sessionmaker[Session]) -> None:
        self._sessions = sessions

    def get(self, assessment_id: UUID) -> AssessmentDefinition | None:
        with self._sessions() as session:
            row = session.get(AssessmentRow, assessment_id)
            if row is None:
                return None
            return _row_to_definition(row)

    def add(self, definition: AssessmentDefinition) -> None:
        try:
            with self._sessions.begin() as session:
                session.add(_definition_to_row(definition))
        except IntegrityError:
            raise ValueError("assessment already exists") from None

    def replace_content(self, definition: AssessmentDefinition) -> None:
        stmt = (
            update(AssessmentRow)
            .where(AssessmentRow.id == definition.id)
            .values(**_content_values(definition))
        )
        with self._sessions.begin() as session:
            if session.execute(stmt).rowcount == 0:
                raise KeyError("assessment not found")

    def save_statistics(
        self,
        assessment_id: UUID,
        statistics: AssessmentStatistics,
        expected_revision: int,
    ) -> bool:
        stmt = (
            update(AssessmentRow)
            .where(
                AssessmentRow.id == assessment_id,
                AssessmentRow.stat_revision == expected_revision,
            )
            .values(
                stat_attempt_count=statistics.attempt_count,
                stat_average_score=statistics.average_score,
                stat_average_percentage=statistics.average_percentage,
                stat_average_time_minutes=statistics.average_time_minutes,
                stat_revision=statistics.revision,
            )
        )
        with self._sessions.begin() as session:
            return session.execute(stmt).rowcount == 1


def _utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes even for timezone=True columns
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def _question_to_json(q: Question) -> dict:
    return {
        "id": str(q.id),
        "type": q.type,
        "prompt": q.prompt,
        "points": q.points,
        "options": [{"text": o.text, "is_correct": o.is_correct} for o in q.options],
        "correct_answer": q.correct_answer,
        "explanation": q.explanation,
    }


def _question_from_json(data: dict) -> Question:
    return Question(
        id=UUID(data["id"]),
        type=data["type"],
        prompt=data["prompt"],
        points=data["points"],
        options=tuple(Option.normalize(o) for o in data.get("options", [])),
        correct_answer=data.get("correct_answer"),
        explanation=data.get("explanation"),
    )


def _content_values(d: AssessmentDefinition) -> dict:
    return {
        "course_id": d.course_id,
        "title": d.title,
        "status": d.status,
        "version": d.version,
        "max_attempts": d.max_attempts,
        "time_limit_minutes": d.time_limit_minutes,
        "xp_reward": d.xp_reward,
        "bonus_xp": d.bonus_xp,
        "available_from": d.available_from,
        "available_until": d.available_until,
        "settings": asdict(d.settings),
        "questions": [_question_to_json(q) for q in d.questions],
    }


def _definition_to_row(d: AssessmentDefinition) -> AssessmentRow:
    s = d.statistics
    return AssessmentRow(
        id=d.id,
        stat_attempt_count=s.attempt_count,
        stat_average_score=s.average_score,
        stat_average_percentage=s.average_percentage,
        stat_average_time_minutes=s.average_time_minutes,
        stat_revision=s.revision,
        **_content_values(d),
    )


def _row_to_definition(row: AssessmentRow) -> AssessmentDefinition:
    return AssessmentDefinition(
        id=row.id,
        course_id=row.course_id,
        title=row.title,
        questions=tuple(_question_from_json(q) for q in row.questions),
        available_from=_utc(row.available_from),
        available_until=_utc(row.available_until),
        max_attempts=row.max_attempts,
        time_limit_minutes=row.time_limit_minutes,
        xp_reward=row.xp_reward,
        bonus_xp=row.bonus_xp,
        status=row.status,
        version=row.version,
        settings=AssessmentSettings(**row.settings),
        statistics=AssessmentStatistics(
            attempt_count=row.stat_attempt_count,
            average_score=row.stat_average_score,
            average_percentage=row.stat_average_percentage,
            average_time_minutes=row.stat_average_time_minutes,
            revision=row.stat_revision,
        ),
    )
