"""Assessment attempt lifecycle: NotStarted -> Open -> Submitted.

Every operation on one (assessment, student) pair runs under that pair's
keyed lock, and every write is a versioned compare-and-swap, so two
answers sent from two devices at once are both kept. There is no expiry:
an attempt that is never finalized stays open and blocks new ones.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from uuid import UUID

from quizcore.core.metrics import (
    ANSWERS_GRADED,
    ATTEMPT_PERCENTAGE,
    ATTEMPTS_FINALIZED,
    ATTEMPTS_STARTED,
    STATISTICS_REFRESH_FAILURES,
)
from quizcore.models.assessment import AssessmentDefinition, AssessmentStatistics
from quizcore.models.attempt import Answer, Attempt
from quizcore.repos.assessment_repo import AssessmentRepo
from quizcore.repos.attempt_repo import AttemptRepo
from quizcore.repos.enrollment_repo import EnrollmentChecker
from quizcore.services.clock import Clock, SystemClock
from quizcore.services.concurrency import KeyedLocks, retry_on_conflict
from quizcore.services.errors import (
    AssessmentNotFound,
    AttemptLimitExceeded,
    AttemptNotFound,
    ConcurrentUpdateFailed,
    NoActiveAttempt,
    NotAvailable,
    NotEnrolled,
    QuestionNotFound,
)
from quizcore.services.grading import grade
from quizcore.services.scoring import StatisticsService, percentage, round_half_up

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class FinalizedAttempt:
    """The submitted attempt plus the refreshed aggregate.

    ``statistics`` is None when the aggregate could not be written; the
    attempt itself is stored regardless.
    """

    attempt: Attempt
    definition: AssessmentDefinition
    statistics: AssessmentStatistics | None

    @property
    def statistics_refreshed(self) -> bool:
        return self.statistics is not None


class AttemptService:
    def __init__(
        self,
        assessments: AssessmentRepo,
        attempts: AttemptRepo,
        enrollment: EnrollmentChecker,
        statistics: StatisticsService,
        *,
        clock: Clock | None = None,
        max_retries: int = 5,
        locks: KeyedLocks | None = None,
        definition_locks: KeyedLocks | None = None,
    ) -> None:
        self._assessments = assessments
        self._attempts = attempts
        self._enrollment = enrollment
        self._statistics = statistics
        self._clock = clock or SystemClock()
        self._max_retries = max_retries
        self._locks = locks or KeyedLocks()
        # Shared with AssessmentCatalog so a revision never interleaves with a start
        self._definition_locks = definition_locks or KeyedLocks()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def load_definition(self, assessment_id: UUID) -> AssessmentDefinition:
        definition = self._assessments.get(assessment_id)
        if definition is None:
            raise AssessmentNotFound(f"assessment {assessment_id} not found")
        return definition

    def get_attempt(self, student_id: str, assessment_id: UUID) -> Attempt | None:
        """Latest attempt for the pair, open or submitted."""
        attempts = self._attempts.list_for_student(assessment_id, student_id)
        return attempts[-1] if attempts else None

    def list_attempts(self, student_id: str, assessment_id: UUID) -> list[Attempt]:
        return self._attempts.list_for_student(assessment_id, student_id)

    def list_all_attempts(self, assessment_id: UUID) -> list[Attempt]:
        """Every learner's attempts at one assessment, for its instructors."""
        self.load_definition(assessment_id)
        return self._attempts.list_for_assessment(assessment_id)

    def attempt_by_number(
        self, student_id: str, assessment_id: UUID, attempt_number: int
    ) -> Attempt:
        attempt = self._attempts.get(assessment_id, student_id, attempt_number)
        if attempt is None:
            raise AttemptNotFound(f"attempt {attempt_number} not found")
        return attempt

    def get_open_attempt(self, student_id: str, assessment_id: UUID) -> Attempt:
        for attempt in self._attempts.list_for_student(assessment_id, student_id):
            if attempt.is_open:
                return attempt
        raise NoActiveAttempt("no active attempt found")

    # ------------------------------------------------------------------
    # StartAttempt
    # ------------------------------------------------------------------

    def start_attempt(self, student_id: str, assessment_id: UUID) -> Attempt:
        with self._definition_locks.hold(assessment_id):
            return self._start_attempt(student_id, assessment_id)

    def _start_attempt(self, student_id: str, assessment_id: UUID) -> Attempt:
        # Loaded under the definition lock: the recorded version is the live one
        definition = self.load_definition(assessment_id)
        now = self._clock.now()
        log_ctx = {"assessment_id": str(assessment_id), "learner_id": student_id}

        if not definition.is_open_at(now):
            logger.warning(
                "Start rejected: assessment not available status=%s",
                definition.status,
                extra=log_ctx,
            )
            raise NotAvailable("assessment is not currently available")

        if not self._enrollment.is_enrolled(student_id, definition.course_id):
            logger.warning("Start rejected: student not enrolled", extra=log_ctx)
            raise NotEnrolled("not enrolled in this course")

        def _try_start() -> tuple[Attempt, bool] | None:
            existing = self._attempts.list_for_student(assessment_id, student_id)
            for attempt in existing:
                if attempt.is_open:
                    return attempt, False

            submitted = len(existing)
            if submitted >= definition.max_attempts:
                logger.warning(
                    "Start rejected: %d of %d attempts used",
                    submitted,
                    definition.max_attempts,
                    extra=log_ctx,
                )
                raise AttemptLimitExceeded("maximum attempts reached")

            attempt = Attempt(
                assessment_id=assessment_id,
                student_id=student_id,
                attempt_number=submitted + 1,
                started_at=now,
                assessment_version=definition.version,
            )
            if not self._attempts.insert(attempt):
                return None
            return attempt, True

        with self._locks.hold((assessment_id, student_id)):
            attempt, created = retry_on_conflict(
                _try_start, resource="attempt", max_attempts=self._max_retries
            )

        if created:
            ATTEMPTS_STARTED.inc()
            logger.info("Attempt %d started", attempt.attempt_number, extra=log_ctx)
        return attempt

    # ------------------------------------------------------------------
    # SubmitAnswer
    # ------------------------------------------------------------------

    def submit_answer(
        self,
        student_id: str,
        assessment_id: UUID,
        question_id: UUID,
        value: object,
    ) -> Answer:
        definition = self.load_definition(assessment_id)

        def _try_answer() -> Answer | None:
            attempt = self.get_open_attempt(student_id, assessment_id)
            question = definition.question(question_id)
            if question is None:
                raise QuestionNotFound(f"question {question_id} not found")

            normalized, correct, points = grade(question, value)
            answer = Answer(
                question_id=question_id,
                value=normalized,
                is_correct=correct,
                points_awarded=points,
                answered_at=self._clock.now(),
            )
            updated = replace(attempt.with_answer(answer), version=attempt.version + 1)
            if not self._attempts.save(updated, expected_version=attempt.version):
                return None
            return answer

        with self._locks.hold((assessment_id, student_id)):
            answer = retry_on_conflict(
                _try_answer, resource="attempt", max_attempts=self._max_retries
            )

        question_type = definition.question(question_id).type  # type: ignore[union-attr]
        ANSWERS_GRADED.labels(
            question_type=question_type,
            result="correct" if answer.is_correct else "incorrect",
        ).inc()
        return answer

    # ------------------------------------------------------------------
    # FinalizeAttempt
    # ------------------------------------------------------------------

    def finalize_attempt(self, student_id: str, assessment_id: UUID) -> FinalizedAttempt:
        definition = self.load_definition(assessment_id)
        total_points = definition.total_points

        def _try_finalize() -> Attempt | None:
            attempt = self.get_open_attempt(student_id, assessment_id)
            now = self._clock.now()
            score = sum(a.points_awarded for a in attempt.answers)
            elapsed = (now - attempt.started_at).total_seconds()
            finalized = replace(
                attempt,
                submitted_at=now,
                score=score,
                percentage=percentage(score, total_points),
                time_spent_minutes=round_half_up(elapsed / 60),
                version=attempt.version + 1,
            )
            if not self._attempts.save(finalized, expected_version=attempt.version):
                return None
            return finalized

        with self._locks.hold((assessment_id, student_id)):
            finalized = retry_on_conflict(
                _try_finalize, resource="attempt", max_attempts=self._max_retries
            )

        log_ctx = {"assessment_id": str(assessment_id), "learner_id": student_id}
        ATTEMPTS_FINALIZED.inc()
        ATTEMPT_PERCENTAGE.observe(finalized.percentage or 0)
        logger.info(
            "Attempt %d submitted score=%d/%d (%d%%) time=%dmin",
            finalized.attempt_number,
            finalized.score,
            total_points,
            finalized.percentage,
            finalized.time_spent_minutes,
            extra=log_ctx,
        )

        # The attempt is already stored; a failed aggregate write must not undo it.
        try:
            statistics = self._statistics.refresh(assessment_id)
        except ConcurrentUpdateFailed:
            STATISTICS_REFRESH_FAILURES.inc()
            logger.error("Statistics refresh deferred after finalization", extra=log_ctx)
            statistics = None

        return FinalizedAttempt(
            attempt=finalized, definition=definition, statistics=statistics
        )
