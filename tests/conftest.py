from __future__ import annotations

import sys
from datetime import UTC, datetime, timedelta
from pathlib import Path
from uuid import UUID

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

# Ensure repo root is on sys.path so `import quizcore` works under pytest.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from quizcore.core.config import SETTINGS  # noqa: E402
from quizcore.main import create_app  # noqa: E402
from quizcore.models.assessment import (  # noqa: E402
    MULTIPLE_CHOICE,
    TRUE_FALSE,
    AssessmentDefinition,
    AssessmentSettings,
    Option,
    Question,
)
from quizcore.services.container import Services, build_services  # noqa: E402
from quizcore.services.rate_limiter import InMemoryRateLimiter  # noqa: E402
from quizcore.services.task_queue import InMemoryTaskQueue  # noqa: E402

COURSE_ID = UUID("00000000-0000-0000-0000-0000000000c1")
START = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)


class FakeClock:
    """Clock that only moves when a test says so."""

    def __init__(self, start: datetime = START) -> None:
        self._now = start

    def now(self) -> datetime:
        return self._now

    def advance(self, **kwargs: float) -> None:
        self._now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def services(clock: FakeClock) -> Services:
    return build_services(SETTINGS, clock=clock)


@pytest.fixture
def task_queue() -> InMemoryTaskQueue:
    return InMemoryTaskQueue()


@pytest.fixture
def rate_limiter() -> InMemoryRateLimiter:
    return InMemoryRateLimiter()


@pytest.fixture
def app(
    services: Services,
    rate_limiter: InMemoryRateLimiter,
    task_queue: InMemoryTaskQueue,
) -> FastAPI:
    return create_app(services, rate_limiter=rate_limiter, task_queue=task_queue)


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    return TestClient(app)


def identity(user_id: str = "learner-1", *roles: str) -> dict[str, str]:
    """Gateway identity headers for a test request."""
    headers = {"X-User-ID": user_id}
    if roles:
        headers["X-User-Roles"] = ",".join(roles)
    return headers


def two_question_quiz(**overrides) -> AssessmentDefinition:
    """Multiple-choice (correct "B") plus true-false (correct "True"), 10 points each."""
    mc = Question.new(
        type=MULTIPLE_CHOICE,
        prompt="Pick B",
        points=10,
        options=(Option("A"), Option("B", is_correct=True), Option("C")),
        explanation="B is the one.",
    )
    tf = Question.new(
        type=TRUE_FALSE,
        prompt="The sky is blue",
        points=10,
        options=(Option("True", is_correct=True), Option("False")),
        correct_answer="True",
    )
    fields = {
        "course_id": COURSE_ID,
        "title": "Week 1 quiz",
        "questions": (mc, tf),
        "settings": AssessmentSettings(),
    }
    fields.update(overrides)
    return AssessmentDefinition.new(**fields)


@pytest.fixture
def quiz(services: Services) -> AssessmentDefinition:
    """A published two-question quiz with learner-1 enrolled in its course."""
    definition = two_question_quiz()
    services.catalog.publish(definition)
    services.enrollment.enroll("learner-1", COURSE_ID)
    return definition
