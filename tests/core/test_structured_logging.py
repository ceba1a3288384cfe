"""JSON log lines carry request and domain context as top-level keys."""

from __future__ import annotations

import json
import logging
import sys

from quizcore.core.logging import _ContainerFormatter, _JsonFormatter


def _record(msg: str = "Attempt %d submitted", args: tuple = (1,), **kw) -> logging.LogRecord:
    return logging.LogRecord(
        name=kw.pop("name", "quizcore.services.attempt_service"),
        level=kw.pop("level", logging.INFO),
        pathname="attempt_service.py",
        lineno=42,
        msg=msg,
        args=args,
        exc_info=kw.pop("exc_info", None),
    )


def test_json_formatter_produces_valid_json() -> None:
    parsed = json.loads(_JsonFormatter().format(_record()))
    assert parsed["level"] == "INFO"
    assert parsed["logger"] == "quizcore.services.attempt_service"
    assert parsed["message"] == "Attempt 1 submitted"
    assert "timestamp" in parsed


def test_json_formatter_includes_request_fields() -> None:
    record = _record()
    record.request_id = "abc-123"  # type: ignore[attr-defined]
    record.method = "POST"  # type: ignore[attr-defined]
    record.path = "/v1/assessments/x/attempts/current/submit"  # type: ignore[attr-defined]
    record.duration_ms = 12.5  # type: ignore[attr-defined]
    record.user_id = "learner-1"  # type: ignore[attr-defined]

    parsed = json.loads(_JsonFormatter().format(record))
    assert parsed["request_id"] == "abc-123"
    assert parsed["method"] == "POST"
    assert parsed["duration_ms"] == 12.5
    assert parsed["user_id"] == "learner-1"


def test_json_formatter_includes_domain_fields() -> None:
    record = _record()
    record.assessment_id = "2b0c0d53-5c61-4f3e-9a57-3f6f7d1f0a11"  # type: ignore[attr-defined]
    record.learner_id = "learner-7"  # type: ignore[attr-defined]

    parsed = json.loads(_JsonFormatter().format(record))
    assert parsed["assessment_id"] == "2b0c0d53-5c61-4f3e-9a57-3f6f7d1f0a11"
    assert parsed["learner_id"] == "learner-7"


def test_json_formatter_omits_absent_context() -> None:
    parsed = json.loads(_JsonFormatter().format(_record()))
    assert "assessment_id" not in parsed
    assert "request_id" not in parsed


def test_json_formatter_includes_exception_info() -> None:
    try:
        raise ValueError("statistics write lost")
    except ValueError:
        record = _record(
            msg="Statistics refresh failed", args=(), level=logging.ERROR, exc_info=sys.exc_info()
        )
        output = _JsonFormatter().format(record)

    parsed = json.loads(output)
    assert "ValueError: statistics write lost" in parsed["exception"]


def test_container_formatter_is_plain_text() -> None:
    output = _ContainerFormatter().format(_record(name="quizcore.main", msg="server started", args=()))
    assert "INFO" in output
    assert "quizcore.main" in output
    assert "server started" in output
    assert not output.lstrip().startswith("{")
