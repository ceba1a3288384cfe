"""SQLAlchemy table definitions.

The frozen dataclasses in quizcore/models stay the domain types; these
rows are only the persistence shape. Repos convert between the two.
Column types are the portable ones (Uuid, JSON) so the same tables work on
PostgreSQL and on SQLite in tests.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from quizcore.db.engine import Base


class AssessmentRow(Base):
    __tablename__ = "assessments"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    course_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    status: Mapped[str] = mapped_column(
        String(32), nullable=False, default="published"
    )  # draft|published|closed
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    max_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    time_limit_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=30)
    xp_reward: Mapped[int] = mapped_column(Integer, nullable=False, default=30)
    bonus_xp: Mapped[int] = mapped_column(Integer, nullable=False, default=20)
    available_from: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    available_until: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    settings: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    questions: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    # Aggregate over submitted attempts; stat_revision is the CAS counter
    stat_attempt_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    stat_average_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    stat_average_percentage: Mapped[float] = mapped_column(
        Float, nullable=False, default=0.0
    )
    stat_average_time_minutes: Mapped[float] = mapped_column(
        Float, nullable=False, default=0.0
    )
    stat_revision: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class AttemptRow(Base):
    __tablename__ = "assessment_attempts"

    # The composite key is what keeps a second open attempt from being inserted
    assessment_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("assessments.id"), primary_key=True
    )
    student_id: Mapped[str] = mapped_column(String(320), primary_key=True)
    attempt_number: Mapped[int] = mapped_column(Integer, primary_key=True)

    assessment_version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    submitted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    answers: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    percentage: Mapped[int | None] = mapped_column(Integer, nullable=True)
    time_spent_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)


class ProgressionRow(Base):
    __tablename__ = "progression_records"

    learner_id: Mapped[str] = mapped_column(String(320), primary_key=True)
    total_xp: Mapped[int] = mapped_column(Integer, nullable=False, default=0, index=True)
    current_level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    xp_to_next_level: Mapped[int] = mapped_column(Integer, nullable=False, default=100)
    stats: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    streaks: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    recent_activity: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)


class EnrollmentRow(Base):
    __tablename__ = "course_enrollments"

    student_id: Mapped[str] = mapped_column(String(320), primary_key=True)
    course_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
