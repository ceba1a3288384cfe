from __future__ import annotations

import logging
from dataclasses import replace

from quizcore.models.assessment import AssessmentDefinition
from quizcore.repos.assessment_repo import AssessmentRepo
from quizcore.repos.attempt_repo import AttemptRepo
from quizcore.services.concurrency import KeyedLocks
from quizcore.services.errors import AssessmentNotFound, DefinitionLocked

logger = logging.getLogger(__name__)


class AssessmentCatalog:
    """Authoring seam: publish definitions, revise them until someone attempts one.

    Grading and totals always read the live definition, so content that an
    attempt already references is frozen rather than versioned. A revision
    holds the per-assessment lock that AttemptService.start_attempt takes,
    so no attempt can begin between the attempt count and the write.
    """

    def __init__(
        self,
        assessments: AssessmentRepo,
        attempts: AttemptRepo,
        *,
        locks: KeyedLocks | None = None,
    ) -> None:
        self._assessments = assessments
        self._attempts = attempts
        self._locks = locks or KeyedLocks()

    def publish(self, definition: AssessmentDefinition) -> AssessmentDefinition:
        if not definition.questions:
            raise ValueError("an assessment needs at least one question")
        if definition.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._assessments.add(definition)
        logger.info(
            "Published assessment %r with %d questions",
            definition.title,
            len(definition.questions),
            extra={"assessment_id": str(definition.id)},
        )
        return definition

    def revise(self, definition: AssessmentDefinition) -> AssessmentDefinition:
        with self._locks.hold(definition.id):
            return self._revise(definition)

    def _revise(self, definition: AssessmentDefinition) -> AssessmentDefinition:
        current = self._assessments.get(definition.id)
        if current is None:
            raise AssessmentNotFound(f"assessment {definition.id} not found")

        referenced = self._attempts.count_for_assessment(definition.id)
        if referenced:
            logger.warning(
                "Revision rejected: %d attempts reference this assessment",
                referenced,
                extra={"assessment_id": str(definition.id)},
            )
            raise DefinitionLocked("assessment already has attempts")

        revised = replace(
            definition, version=current.version + 1, statistics=current.statistics
        )
        self._assessments.replace_content(revised)
        logger.info(
            "Assessment revised to version %d",
            revised.version,
            extra={"assessment_id": str(definition.id)},
        )
        return revised
