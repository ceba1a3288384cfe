from __future__ import annotations

from uuid import uuid4

import pytest

from quizcore.models.assessment import AssessmentDefinition
from quizcore.services.container import Services
from quizcore.services.errors import (
    InvalidAnswerValue,
    NoActiveAttempt,
    QuestionNotFound,
    QuizCoreError,
)


def test_perfect_submission_earns_bonus(services: Services, quiz: AssessmentDefinition) -> None:
    mc, tf = quiz.questions
    services.attempts.start_attempt("learner-1", quiz.id)

    result = services.completion.complete_attempt(
        "learner-1", quiz.id, [(mc.id, "B"), (tf.id, True)]
    )

    assert result.score == 20
    assert result.percentage == 100
    assert result.award is not None
    assert result.award.xp_gained == quiz.xp_reward + quiz.bonus_xp
    assert result.statistics_refreshed is True
    record = services.ledger.get_record("learner-1")
    assert record.stats["perfect_scores"] == 1
    assert record.streaks["quiz"] == 1


def test_half_marks_earn_base_reward_only(services: Services, quiz: AssessmentDefinition) -> None:
    mc, tf = quiz.questions
    services.attempts.start_attempt("learner-1", quiz.id)
    result = services.completion.complete_attempt(
        "learner-1", quiz.id, [(mc.id, "B"), (tf.id, "False")]
    )
    assert result.percentage == 50
    assert result.award is not None
    assert result.award.xp_gained == quiz.xp_reward
    assert result.award.leveled_up is False


def test_answers_already_submitted_are_kept(services: Services, quiz: AssessmentDefinition) -> None:
    mc, _ = quiz.questions
    services.attempts.start_attempt("learner-1", quiz.id)
    services.attempts.submit_answer("learner-1", quiz.id, mc.id, "B")
    result = services.completion.complete_attempt("learner-1", quiz.id)
    assert result.score == 10


def test_invalid_answer_aborts_before_finalizing(
    services: Services, quiz: AssessmentDefinition
) -> None:
    mc, _ = quiz.questions
    services.attempts.start_attempt("learner-1", quiz.id)

    with pytest.raises(InvalidAnswerValue):
        services.completion.complete_attempt("learner-1", quiz.id, [(mc.id, 42)])

    attempt = services.attempts.get_attempt("learner-1", quiz.id)
    assert attempt is not None
    assert attempt.is_open
    assert services.ledger.get_record("learner-1").total_xp == 0


def test_unknown_question_in_batch_propagates(
    services: Services, quiz: AssessmentDefinition
) -> None:
    services.attempts.start_attempt("learner-1", quiz.id)
    with pytest.raises(QuestionNotFound):
        services.completion.complete_attempt("learner-1", quiz.id, [(uuid4(), "B")])


def test_complete_without_open_attempt(services: Services, quiz: AssessmentDefinition) -> None:
    with pytest.raises(NoActiveAttempt):
        services.completion.complete_attempt("learner-1", quiz.id)


def test_ledger_failure_defers_reward_instead_of_raising(
    services: Services, quiz: AssessmentDefinition, monkeypatch: pytest.MonkeyPatch
) -> None:
    mc, tf = quiz.questions
    services.attempts.start_attempt("learner-1", quiz.id)
    monkeypatch.setattr(
        services.progression_store, "save", lambda record, expected_version: False
    )

    result = services.completion.complete_attempt(
        "learner-1", quiz.id, [(mc.id, "B"), (tf.id, True)]
    )

    assert result.award is None
    assert result.reward_applied is False
    assert result.attempt.status == "submitted"
    assert result.percentage == 100
    assert result.reward_task_payload() == {
        "learner_id": "learner-1",
        "assessment_id": str(quiz.id),
        "attempt_number": 1,
    }
    assert services.ledger.get_record("learner-1").total_xp == 0


def test_deferred_reward_can_be_applied_later(
    services: Services, quiz: AssessmentDefinition, monkeypatch: pytest.MonkeyPatch
) -> None:
    mc, tf = quiz.questions
    services.attempts.start_attempt("learner-1", quiz.id)
    monkeypatch.setattr(
        services.progression_store, "save", lambda record, expected_version: False
    )
    services.completion.complete_attempt("learner-1", quiz.id, [(mc.id, "B"), (tf.id, True)])
    monkeypatch.undo()

    award = services.completion.apply_reward("learner-1", quiz.id, 1)

    assert award.xp_gained == 50
    record = services.ledger.get_record("learner-1")
    assert record.total_xp == 50
    assert record.stats["quizzes_taken"] == 1
    assert record.stats["perfect_scores"] == 1


def test_reward_for_open_attempt_refused(services: Services, quiz: AssessmentDefinition) -> None:
    services.attempts.start_attempt("learner-1", quiz.id)
    with pytest.raises(QuizCoreError):
        services.completion.apply_reward("learner-1", quiz.id, 1)
    assert services.ledger.get_record("learner-1").total_xp == 0
