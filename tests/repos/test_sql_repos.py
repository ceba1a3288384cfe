"""SQL repositories against in-memory SQLite.

Same conditional-write contract as the in-memory stores: a write with a
stale version is refused, a duplicate insert returns False.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import UTC

import pytest
from sqlalchemy.orm import Session, sessionmaker

from quizcore.core.config import SETTINGS
from quizcore.db.engine import create_schema, make_engine, make_session_factory
from quizcore.models.assessment import AssessmentSettings, AssessmentStatistics
from quizcore.models.attempt import Answer, Attempt
from quizcore.models.progression import ProgressionRecord
from quizcore.repos.sql_assessment_repo import SqlAssessmentRepo
from quizcore.repos.sql_attempt_repo import SqlAttemptRepo
from quizcore.repos.sql_enrollment_repo import SqlEnrollmentRepo
from quizcore.repos.sql_progression_repo import SqlProgressionRepo
from quizcore.services.container import build_services
from tests.conftest import COURSE_ID, START, FakeClock, two_question_quiz


@pytest.fixture
def sessions() -> sessionmaker[Session]:
    engine = make_engine("sqlite:///:memory:")
    create_schema(engine)
    return make_session_factory(engine)


# ---- assessments ----


def test_definition_round_trip(sessions: sessionmaker[Session]) -> None:
    repo = SqlAssessmentRepo(sessions)
    definition = two_question_quiz(
        available_from=START,
        settings=AssessmentSettings(shuffle_options=True, show_explanations=False),
    )
    repo.add(definition)

    loaded = repo.get(definition.id)
    assert loaded == definition
    assert loaded.available_from.tzinfo is not None
    assert loaded.questions[0].options[1].is_correct is True


def test_duplicate_definition_rejected(sessions: sessionmaker[Session]) -> None:
    repo = SqlAssessmentRepo(sessions)
    definition = two_question_quiz()
    repo.add(definition)
    with pytest.raises(ValueError):
        repo.add(definition)


def test_statistics_cas(sessions: sessionmaker[Session]) -> None:
    repo = SqlAssessmentRepo(sessions)
    definition = two_question_quiz()
    repo.add(definition)
    stats = AssessmentStatistics(attempt_count=2, average_score=15.0, revision=1)

    assert repo.save_statistics(definition.id, stats, expected_revision=0) is True
    assert repo.save_statistics(definition.id, stats, expected_revision=0) is False
    assert repo.get(definition.id).statistics == stats


def test_replace_content_keeps_statistics(sessions: sessionmaker[Session]) -> None:
    repo = SqlAssessmentRepo(sessions)
    definition = two_question_quiz()
    repo.add(definition)
    stats = AssessmentStatistics(attempt_count=1, revision=1)
    repo.save_statistics(definition.id, stats, expected_revision=0)

    repo.replace_content(replace(definition, title="Renamed", version=2))

    loaded = repo.get(definition.id)
    assert loaded.title == "Renamed"
    assert loaded.version == 2
    assert loaded.statistics == stats


def test_replace_content_of_missing_assessment(sessions: sessionmaker[Session]) -> None:
    with pytest.raises(KeyError):
        SqlAssessmentRepo(sessions).replace_content(two_question_quiz())


# ---- attempts ----


def _attempt(definition_id, number: int = 1) -> Attempt:
    return Attempt(
        assessment_id=definition_id,
        student_id="learner-1",
        attempt_number=number,
        started_at=START,
    )


def test_attempt_insert_is_unique_per_number(sessions: sessionmaker[Session]) -> None:
    definition = two_question_quiz()
    SqlAssessmentRepo(sessions).add(definition)
    repo = SqlAttemptRepo(sessions)

    assert repo.insert(_attempt(definition.id)) is True
    assert repo.insert(_attempt(definition.id)) is False
    assert repo.count_for_assessment(definition.id) == 1


def test_attempt_save_round_trip_and_cas(sessions: sessionmaker[Session]) -> None:
    definition = two_question_quiz()
    SqlAssessmentRepo(sessions).add(definition)
    repo = SqlAttemptRepo(sessions)
    attempt = _attempt(definition.id)
    repo.insert(attempt)

    answer = Answer(
        question_id=definition.questions[1].id,
        value=True,
        is_correct=True,
        points_awarded=10,
        answered_at=START,
    )
    updated = replace(attempt.with_answer(answer), version=2)
    assert repo.save(updated, expected_version=1) is True
    assert repo.save(replace(updated, version=3), expected_version=1) is False

    loaded = repo.get(definition.id, "learner-1", 1)
    assert loaded == updated
    assert loaded.answers[0].value is True
    assert loaded.started_at.tzinfo == UTC


def test_attempt_listing(sessions: sessionmaker[Session]) -> None:
    definition = two_question_quiz(max_attempts=3)
    SqlAssessmentRepo(sessions).add(definition)
    repo = SqlAttemptRepo(sessions)
    first = replace(_attempt(definition.id, 1), submitted_at=START, score=10, percentage=50)
    repo.insert(_attempt(definition.id, 2))
    repo.insert(first)

    assert [a.attempt_number for a in repo.list_for_student(definition.id, "learner-1")] == [1, 2]
    assert [a.attempt_number for a in repo.list_submitted(definition.id)] == [1]


def test_attempts_listed_for_whole_assessment(sessions: sessionmaker[Session]) -> None:
    definition = two_question_quiz(max_attempts=3)
    SqlAssessmentRepo(sessions).add(definition)
    repo = SqlAttemptRepo(sessions)
    repo.insert(replace(_attempt(definition.id, 1), student_id="learner-2"))
    repo.insert(_attempt(definition.id, 2))
    repo.insert(_attempt(definition.id, 1))
    other = two_question_quiz()
    SqlAssessmentRepo(sessions).add(other)
    repo.insert(_attempt(other.id, 1))

    listed = repo.list_for_assessment(definition.id)
    assert [(a.student_id, a.attempt_number) for a in listed] == [
        ("learner-1", 1),
        ("learner-1", 2),
        ("learner-2", 1),
    ]


# ---- progression ----


def test_progression_first_save_inserts(sessions: sessionmaker[Session]) -> None:
    repo = SqlProgressionRepo(sessions)
    record = ProgressionRecord(learner_id="learner-1").with_xp(100, "first", START)
    record = replace(record, version=1)

    assert repo.save(record, expected_version=0) is True
    assert repo.save(record, expected_version=0) is False

    loaded = repo.get("learner-1")
    assert loaded == record
    assert loaded.recent_activity[0].timestamp == START


def test_progression_update_cas(sessions: sessionmaker[Session]) -> None:
    repo = SqlProgressionRepo(sessions)
    first = replace(ProgressionRecord(learner_id="learner-1"), version=1)
    repo.save(first, expected_version=0)

    second = replace(first.with_streak("daily"), version=2)
    assert repo.save(second, expected_version=1) is True
    assert repo.save(replace(second, version=3), expected_version=1) is False
    assert repo.get("learner-1").streaks["daily"] == 1


def test_unknown_learner(sessions: sessionmaker[Session]) -> None:
    assert SqlProgressionRepo(sessions).get("nobody") is None


# ---- enrollment ----


def test_enrollment(sessions: sessionmaker[Session]) -> None:
    repo = SqlEnrollmentRepo(sessions)
    assert repo.is_enrolled("learner-1", COURSE_ID) is False
    repo.enroll("learner-1", COURSE_ID)
    repo.enroll("learner-1", COURSE_ID)
    assert repo.is_enrolled("learner-1", COURSE_ID) is True
    assert repo.unenroll("learner-1", COURSE_ID) is True
    assert repo.unenroll("learner-1", COURSE_ID) is False


# ---- whole lifecycle on SQL ----


def test_attempt_lifecycle_on_sql(sessions: sessionmaker[Session], clock: FakeClock) -> None:
    services = build_services(SETTINGS, clock=clock, session_factory=sessions)
    quiz = two_question_quiz()
    mc, tf = quiz.questions
    services.catalog.publish(quiz)
    services.enrollment.enroll("learner-1", COURSE_ID)

    services.attempts.start_attempt("learner-1", quiz.id)
    clock.advance(minutes=2)
    result = services.completion.complete_attempt(
        "learner-1", quiz.id, [(mc.id, "B"), (tf.id, "True")]
    )

    assert result.percentage == 100
    assert result.statistics_refreshed is True
    assert services.attempts.load_definition(quiz.id).statistics.attempt_count == 1
    record = services.ledger.get_record("learner-1")
    assert record.total_xp == 50
    assert record.stats["quizzes_taken"] == 1
