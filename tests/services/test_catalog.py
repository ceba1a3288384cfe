from __future__ import annotations

import threading
from dataclasses import replace
from uuid import uuid4

import pytest

from quizcore.models.assessment import AssessmentDefinition
from quizcore.services.container import Services
from quizcore.services.errors import AssessmentNotFound, DefinitionLocked
from tests.conftest import two_question_quiz


def test_publish_then_load(services: Services) -> None:
    definition = two_question_quiz()
    services.catalog.publish(definition)
    assert services.attempts.load_definition(definition.id) == definition


def test_publish_rejects_empty_assessment(services: Services) -> None:
    with pytest.raises(ValueError):
        services.catalog.publish(two_question_quiz(questions=()))


def test_publish_rejects_duplicate_id(services: Services) -> None:
    definition = two_question_quiz()
    services.catalog.publish(definition)
    with pytest.raises(ValueError):
        services.catalog.publish(definition)


def test_revise_bumps_version_and_keeps_statistics(
    services: Services, quiz: AssessmentDefinition
) -> None:
    services.statistics.refresh(quiz.id)
    revised = services.catalog.revise(replace(quiz, title="Week 1 quiz (fixed)"))

    stored = services.attempts.load_definition(quiz.id)
    assert revised.version == quiz.version + 1
    assert stored.title == "Week 1 quiz (fixed)"
    assert stored.statistics.revision == 1


def test_revise_unknown_assessment(services: Services) -> None:
    with pytest.raises(AssessmentNotFound):
        services.catalog.revise(replace(two_question_quiz(), id=uuid4()))


def test_revise_locked_once_attempted(services: Services, quiz: AssessmentDefinition) -> None:
    services.attempts.start_attempt("learner-1", quiz.id)
    with pytest.raises(DefinitionLocked):
        services.catalog.revise(replace(quiz, title="changed"))
    assert services.attempts.load_definition(quiz.id).title == quiz.title


def test_attempt_records_content_version(services: Services, quiz: AssessmentDefinition) -> None:
    services.catalog.revise(replace(quiz, max_attempts=2))
    attempt = services.attempts.start_attempt("learner-1", quiz.id)
    assert attempt.assessment_version == 2


def test_start_waits_for_a_revision_in_progress(
    services: Services, quiz: AssessmentDefinition, monkeypatch: pytest.MonkeyPatch
) -> None:
    count = services.attempt_store.count_for_assessment
    started = []
    racers: list[threading.Thread] = []
    blocked = []

    def _start() -> None:
        started.append(services.attempts.start_attempt("learner-1", quiz.id))

    def _count_then_start(assessment_id):
        seen = count(assessment_id)
        racer = threading.Thread(target=_start)
        racer.start()
        racer.join(timeout=0.2)
        blocked.append(racer.is_alive())
        racers.append(racer)
        return seen

    monkeypatch.setattr(services.attempt_store, "count_for_assessment", _count_then_start)
    revised = services.catalog.revise(replace(quiz, title="changed"))
    racers[0].join()

    assert blocked == [True]
    assert len(started) == 1
    assert started[0].assessment_version == revised.version == 2
    assert services.attempts.load_definition(quiz.id).version == 2
