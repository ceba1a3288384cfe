"""SQL implementation of AttemptRepo.

Writes are conditional UPDATEs on the version column; a rowcount of 0
means another writer got there first and the caller re-reads.
"""

from __future__ import annotations

from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from quizcore.db.tables import AttemptRow
from quizcore.models.attempt import Answer, Attempt


class SqlAttemptRepo:
    def __init__(self, sessions: sessionmaker[Session]) -> None:
        self._sessions = sessions

    def get(
        self, assessment_id: UUID, student_id: str, attempt_number: int
    ) -> Attempt | None:
        with self._sessions() as session:
            row = session.get(AttemptRow, (assessment_id, student_id, attempt_number))
            if row is None:
                return None
            return _row_to_attempt(row)

    def list_for_student(self, assessment_id: UUID, student_id: str) -> list[Attempt]:
        stmt = (
            select(AttemptRow)
            .where(
                AttemptRow.assessment_id == assessment_id,
                AttemptRow.student_id == student_id,
            )
            .order_by(AttemptRow.attempt_number)
        )
        with self._sessions() as session:
            return [_row_to_attempt(r) for r in session.execute(stmt).scalars()]

    def list_for_assessment(self, assessment_id: UUID) -> list[Attempt]:
        stmt = (
            select(AttemptRow)
            .where(AttemptRow.assessment_id == assessment_id)
            .order_by(AttemptRow.student_id, AttemptRow.attempt_number)
        )
        with self._sessions() as session:
            return [_row_to_attempt(r) for r in session.execute(stmt).scalars()]

    def list_submitted(self, assessment_id: UUID) -> list[Attempt]:
        stmt = select(AttemptRow).where(
            AttemptRow.assessment_id == assessment_id,
            AttemptRow.submitted_at.is_not(None),
        )
        with self._sessions() as session:
            return [_row_to_attempt(r) for r in session.execute(stmt).scalars()]

    def count_for_assessment(self, assessment_id: UUID) -> int:
        stmt = (
            select(func.count())
            .select_from(AttemptRow)
            .where(AttemptRow.assessment_id == assessment_id)
        )
        with self._sessions() as session:
            return session.execute(stmt).scalar_one()

    def insert(self, attempt: Attempt) -> bool:
        try:
            with self._sessions.begin() as session:
                session.add(_attempt_to_row(attempt))
        except IntegrityError:
            return False
        return True

    def save(self, attempt: Attempt, expected_version: int) -> bool:
        stmt = (
            update(AttemptRow)
            .where(
                AttemptRow.assessment_id == attempt.assessment_id,
                AttemptRow.student_id == attempt.student_id,
                AttemptRow.attempt_number == attempt.attempt_number,
                AttemptRow.version == expected_version,
            )
            .values(
                answers=[_answer_to_json(a) for a in attempt.answers],
                submitted_at=attempt.submitted_at,
                score=attempt.score,
                percentage=attempt.percentage,
                time_spent_minutes=attempt.time_spent_minutes,
                version=attempt.version,
            )
        )
        with self._sessions.begin() as session:
            return session.execute(stmt).rowcount == 1


def _utc(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def _answer_to_json(a: Answer) -> dict:
    return {
        "question_id": str(a.question_id),
        "value": a.value,
        "is_correct": a.is_correct,
        "points_awarded": a.points_awarded,
        "answered_at": a.answered_at.isoformat() if a.answered_at else None,
    }


def _answer_from_json(data: dict) -> Answer:
    answered_at = data.get("answered_at")
    return Answer(
        question_id=UUID(data["question_id"]),
        value=data["value"],
        is_correct=data["is_correct"],
        points_awarded=data["points_awarded"],
        answered_at=datetime.fromisoformat(answered_at) if answered_at else None,
    )


def _attempt_to_row(attempt: Attempt) -> AttemptRow:
    return AttemptRow(
        assessment_id=attempt.assessment_id,
        student_id=attempt.student_id,
        attempt_number=attempt.attempt_number,
        assessment_version=attempt.assessment_version,
        started_at=attempt.started_at,
        submitted_at=attempt.submitted_at,
        answers=[_answer_to_json(a) for a in attempt.answers],
        score=attempt.score,
        percentage=attempt.percentage,
        time_spent_minutes=attempt.time_spent_minutes,
        version=attempt.version,
    )


def _row_to_attempt(row: AttemptRow) -> Attempt:
    return Attempt(
        assessment_id=row.assessment_id,
        student_id=row.student_id,
        attempt_number=row.attempt_number,
        started_at=_utc(row.started_at),  # type: ignore[arg-type]
        assessment_version=row.assessment_version,
        answers=tuple(_answer_from_json(a) for a in row.answers),
        submitted_at=_utc(row.submitted_at),
        score=row.score,
        percentage=row.percentage,
        time_spent_minutes=row.time_spent_minutes,
        version=row.version,
    )
