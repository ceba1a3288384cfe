"""Submit-and-reward: the path a learner's "Submit quiz" click takes."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from uuid import UUID

from quizcore.core.metrics import QUIZ_REWARDS_DEFERRED
from quizcore.models.attempt import Attempt
from quizcore.models.progression import XPAward
from quizcore.services.attempt_service import AttemptService
from quizcore.services.errors import ConcurrentUpdateFailed, QuizCoreError
from quizcore.services.progression_service import ProgressionLedger

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CompletionResult:
    """Outcome of a submit.

    ``award`` is None when the ledger write could not be committed. The
    attempt is stored either way; the caller hands the reward to the
    worker with ``reward_task_payload``.
    """

    attempt: Attempt
    award: XPAward | None
    statistics_refreshed: bool

    @property
    def score(self) -> int:
        return self.attempt.score or 0

    @property
    def percentage(self) -> int:
        return self.attempt.percentage or 0

    @property
    def reward_applied(self) -> bool:
        return self.award is not None

    def reward_task_payload(self) -> dict:
        return {
            "learner_id": self.attempt.student_id,
            "assessment_id": str(self.attempt.assessment_id),
            "attempt_number": self.attempt.attempt_number,
        }


class CompletionService:
    def __init__(self, attempts: AttemptService, ledger: ProgressionLedger) -> None:
        self._attempts = attempts
        self._ledger = ledger

    def complete_attempt(
        self,
        student_id: str,
        assessment_id: UUID,
        answers: Iterable[tuple[UUID, object]] = (),
    ) -> CompletionResult:
        """Apply any last answers, finalize, then credit the ledger.

        An answer that fails validation aborts the whole call before the
        attempt is finalized, so the learner can correct it and resubmit.
        Once finalized the attempt cannot be submitted again, so a ledger
        write that keeps losing its compare-and-swap is reported in the
        result instead of raised.
        """
        for question_id, value in answers:
            self._attempts.submit_answer(student_id, assessment_id, question_id, value)

        finalized = self._attempts.finalize_attempt(student_id, assessment_id)
        try:
            award = self._ledger.record_quiz_completion(
                student_id, finalized.definition, finalized.attempt
            )
        except ConcurrentUpdateFailed:
            QUIZ_REWARDS_DEFERRED.inc()
            logger.error(
                "Quiz reward deferred for attempt %d",
                finalized.attempt.attempt_number,
                extra={"assessment_id": str(assessment_id), "learner_id": student_id},
            )
            award = None

        return CompletionResult(
            attempt=finalized.attempt,
            award=award,
            statistics_refreshed=finalized.statistics_refreshed,
        )

    def apply_reward(
        self, student_id: str, assessment_id: UUID, attempt_number: int
    ) -> XPAward:
        """Credit a submitted attempt whose reward was deferred."""
        definition = self._attempts.load_definition(assessment_id)
        attempt = self._attempts.attempt_by_number(student_id, assessment_id, attempt_number)
        if attempt.is_open:
            raise QuizCoreError(f"attempt {attempt_number} has not been submitted")
        return self._ledger.record_quiz_completion(student_id, definition, attempt)
