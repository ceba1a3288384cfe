from __future__ import annotations

import logging

from quizcore.core.logging import _ContainerFormatter, setup_logging


def test_setup_logging_sets_root_level() -> None:
    setup_logging("debug")
    assert logging.getLogger().level == logging.DEBUG

    setup_logging("warning")
    assert logging.getLogger().level == logging.WARNING


def test_setup_logging_defaults_to_info_for_unknown_level() -> None:
    setup_logging("nonexistent")
    assert logging.getLogger().level == logging.INFO


def test_setup_logging_quiets_uvicorn_at_debug() -> None:
    setup_logging("debug")
    assert logging.getLogger("uvicorn").level == logging.WARNING


def test_setup_logging_allows_uvicorn_at_error() -> None:
    setup_logging("error")
    assert logging.getLogger("uvicorn").level == logging.ERROR


def test_formatter_excludes_location_for_info() -> None:
    fmt = _ContainerFormatter()
    record = logging.LogRecord(
        name="quizcore.services.scoring",
        level=logging.INFO,
        pathname="test.py",
        lineno=1,
        msg="hello",
        args=(),
        exc_info=None,
    )
    output = fmt.format(record)
    assert "hello" in output
    assert "[test.py:" not in output


def test_formatter_includes_location_for_warning() -> None:
    fmt = _ContainerFormatter()
    record = logging.LogRecord(
        name="quizcore.services.scoring",
        level=logging.WARNING,
        pathname="test.py",
        lineno=42,
        msg="Start rejected: student not enrolled",
        args=(),
        exc_info=None,
    )
    output = fmt.format(record)
    assert "not enrolled" in output
    assert "[test.py:42]" in output


def test_formatter_includes_location_for_error() -> None:
    fmt = _ContainerFormatter()
    record = logging.LogRecord(
        name="quizcore.services.scoring",
        level=logging.ERROR,
        pathname="scoring.py",
        lineno=99,
        msg="Statistics refresh failed",
        args=(),
        exc_info=None,
    )
    output = fmt.format(record)
    assert "[scoring.py:99]" in output


def test_setup_logging_quiets_sqlalchemy_engine() -> None:
    setup_logging("debug")
    assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING


def test_setup_logging_json_handler() -> None:
    setup_logging("info", json_format=True)
    handlers = logging.getLogger().handlers
    assert len(handlers) == 1
    assert type(handlers[0].formatter).__name__ == "_JsonFormatter"
    setup_logging("info")
