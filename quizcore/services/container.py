"""Wires repositories and services together for one application instance.

The API and the worker both build a ``Services`` at startup and keep it
on their own state object; nothing here is a module-level singleton, so
each test gets a fresh, isolated set of stores.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.orm import Session, sessionmaker

from quizcore.core.config import SETTINGS, Settings
from quizcore.repos.assessment_repo import AssessmentRepo, InMemoryAssessmentRepo
from quizcore.repos.attempt_repo import AttemptRepo, InMemoryAttemptRepo
from quizcore.repos.enrollment_repo import InMemoryEnrollmentRepo
from quizcore.repos.progression_repo import InMemoryProgressionRepo, ProgressionRepo
from quizcore.repos.sql_assessment_repo import SqlAssessmentRepo
from quizcore.repos.sql_attempt_repo import SqlAttemptRepo
from quizcore.repos.sql_enrollment_repo import SqlEnrollmentRepo
from quizcore.repos.sql_progression_repo import SqlProgressionRepo
from quizcore.services.attempt_service import AttemptService
from quizcore.services.catalog import AssessmentCatalog
from quizcore.services.clock import Clock, SystemClock
from quizcore.services.completion import CompletionService
from quizcore.services.concurrency import KeyedLocks
from quizcore.services.progression_service import ProgressionLedger
from quizcore.services.scoring import StatisticsService

logger = logging.getLogger(__name__)


@dataclass
class Services:
    assessments: AssessmentRepo
    attempt_store: AttemptRepo
    progression_store: ProgressionRepo
    enrollment: InMemoryEnrollmentRepo | SqlEnrollmentRepo
    catalog: AssessmentCatalog
    statistics: StatisticsService
    attempts: AttemptService
    ledger: ProgressionLedger
    completion: CompletionService
    clock: Clock


def build_services(
    settings: Settings = SETTINGS,
    *,
    clock: Clock | None = None,
    session_factory: sessionmaker[Session] | None = None,
) -> Services:
    """Assemble the object graph.

    With a session factory the SQL repositories are used, otherwise the
    in-memory ones. Each concern gets its own KeyedLocks. The only nesting
    is a start holding the per-assessment definition lock (shared with the
    catalog) around the per-learner attempt lock.
    """
    clock = clock or SystemClock()
    retries = settings.cas_max_retries

    if session_factory is not None:
        assessments: AssessmentRepo = SqlAssessmentRepo(session_factory)
        attempt_store: AttemptRepo = SqlAttemptRepo(session_factory)
        progression_store: ProgressionRepo = SqlProgressionRepo(session_factory)
        enrollment: InMemoryEnrollmentRepo | SqlEnrollmentRepo = SqlEnrollmentRepo(
            session_factory
        )
        backend = "sql"
    else:
        assessments = InMemoryAssessmentRepo()
        attempt_store = InMemoryAttemptRepo()
        progression_store = InMemoryProgressionRepo()
        enrollment = InMemoryEnrollmentRepo()
        backend = "memory"

    statistics = StatisticsService(
        assessments, attempt_store, max_retries=retries, locks=KeyedLocks()
    )
    definition_locks = KeyedLocks()
    attempts = AttemptService(
        assessments,
        attempt_store,
        enrollment,
        statistics,
        clock=clock,
        max_retries=retries,
        locks=KeyedLocks(),
        definition_locks=definition_locks,
    )
    ledger = ProgressionLedger(
        progression_store, clock=clock, max_retries=retries, locks=KeyedLocks()
    )

    logger.info("Services built backend=%s cas_max_retries=%d", backend, retries)
    return Services(
        assessments=assessments,
        attempt_store=attempt_store,
        progression_store=progression_store,
        enrollment=enrollment,
        catalog=AssessmentCatalog(assessments, attempt_store, locks=definition_locks),
        statistics=statistics,
        attempts=attempts,
        ledger=ledger,
        completion=CompletionService(attempts, ledger),
        clock=clock,
    )
