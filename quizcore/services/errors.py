"""Domain errors raised by the attempt lifecycle and the progression ledger.

Each error carries the HTTP status the API layer answers with and a
stable machine-readable ``code``. The core never swallows them.
"""

from __future__ import annotations


class QuizCoreError(Exception):
    status_code = 400
    code = "quizcore_error"


class AssessmentNotFound(QuizCoreError):
    status_code = 404
    code = "assessment_not_found"


class NotAvailable(QuizCoreError):
    status_code = 400
    code = "not_available"


class NotEnrolled(QuizCoreError):
    status_code = 403
    code = "not_enrolled"


class AttemptLimitExceeded(QuizCoreError):
    status_code = 409
    code = "attempt_limit_exceeded"


class NoActiveAttempt(QuizCoreError):
    status_code = 409
    code = "no_active_attempt"


class AttemptNotFound(QuizCoreError):
    status_code = 404
    code = "attempt_not_found"


class QuestionNotFound(QuizCoreError):
    status_code = 404
    code = "question_not_found"


class InvalidAnswerValue(QuizCoreError, ValueError):
    status_code = 422
    code = "invalid_answer_value"


class ReviewNotAllowed(QuizCoreError):
    status_code = 403
    code = "review_not_allowed"


class DefinitionLocked(QuizCoreError):
    status_code = 409
    code = "definition_locked"


class InvalidXPAmount(QuizCoreError, ValueError):
    status_code = 422
    code = "invalid_xp_amount"


class ConcurrentUpdateFailed(QuizCoreError):
    status_code = 503
    code = "concurrent_update_failed"


class InvalidCounter(QuizCoreError, ValueError):
    status_code = 422
    code = "invalid_counter"
