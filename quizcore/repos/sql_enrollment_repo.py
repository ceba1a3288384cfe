from __future__ import annotations

from uuid import UUID

from sqlalchemy import delete
from sqlalchemy.orm import Session, sessionmaker

from quizcore.db.tables import EnrollmentRow


class SqlEnrollmentRepo:
    """Enrollment predicate backed by the course_enrollments table.

    The rows are written by whatever owns course membership; enroll and
    unenroll exist for seeding and tests.
    """

    def __init__(self, sessions: sessionmaker[Session]) -> None:
        self._sessions = sessions

    def is_enrolled(self, student_id: str, course_id: UUID) -> bool:
        with self._sessions() as session:
            return session.get(EnrollmentRow, (student_id, course_id)) is not None

    def enroll(self, student_id: str, course_id: UUID) -> None:
        with self._sessions.begin() as session:
            session.merge(EnrollmentRow(student_id=student_id, course_id=course_id))

    def unenroll(self, student_id: str, course_id: UUID) -> bool:
        stmt = delete(EnrollmentRow).where(
            EnrollmentRow.student_id == student_id,
            EnrollmentRow.course_id == course_id,
        )
        with self._sessions.begin() as session:
            return session.execute(stmt).rowcount > 0
