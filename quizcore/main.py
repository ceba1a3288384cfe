from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from quizcore.api.assessments import router as assessments_router
from quizcore.api.attempts import router as attempts_router
from quizcore.api.health import router as health_router
from quizcore.api.metrics_endpoint import router as metrics_router
from quizcore.api.progression import router as progression_router
from quizcore.core.config import SETTINGS
from quizcore.core.logging import setup_logging
from quizcore.db import engine as db_engine
from quizcore.db.engine import lifespan_db
from quizcore.db.redis import lifespan_redis, redis_pool
from quizcore.middleware.metrics import MetricsMiddleware
from quizcore.middleware.request_context import RequestContextMiddleware
from quizcore.services.container import Services, build_services
from quizcore.services.errors import QuizCoreError
from quizcore.services.rate_limiter import (
    InMemoryRateLimiter,
    RateLimiter,
    RedisRateLimiter,
)
from quizcore.services.task_queue import InMemoryTaskQueue, RedisTaskQueue, TaskQueue

# Configure logging before anything else runs.
setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    # Nested so teardown runs in reverse order even if one fails
    async with lifespan_db():
        async with lifespan_redis():
            yield


async def _quizcore_error_handler(request: Request, exc: QuizCoreError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", exc.code, request.method, request.url.path, exc)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": str(exc), "code": exc.code},
    )


def create_app(
    services: Services | None = None,
    *,
    rate_limiter: RateLimiter | None = None,
    task_queue: TaskQueue | None = None,
) -> FastAPI:
    """Build the application with its stores attached to ``app.state``.

    Anything not passed in is chosen from the settings: SQL repositories
    when DATABASE_URL is set, Redis-backed limiter and queue when
    REDIS_URL is set, in-memory otherwise.
    """
    if services is None:
        services = build_services(SETTINGS, session_factory=db_engine.session_factory)
    if rate_limiter is None:
        rate_limiter = (
            RedisRateLimiter(redis_pool) if redis_pool is not None else InMemoryRateLimiter()
        )
    if task_queue is None:
        task_queue = (
            RedisTaskQueue(redis_pool) if redis_pool is not None else InMemoryTaskQueue()
        )

    app = FastAPI(
        title="quizcore",
        lifespan=lifespan,
        docs_url="/docs" if SETTINGS.is_dev else None,
        redoc_url="/redoc" if SETTINGS.is_dev else None,
    )
    app.state.services = services
    app.state.rate_limiter = rate_limiter
    app.state.task_queue = task_queue

    app.add_exception_handler(QuizCoreError, _quizcore_error_handler)  # type: ignore[arg-type]

    # Last-added runs first: RequestContext (outermost) -> Metrics -> route
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestContextMiddleware)

    app.include_router(metrics_router)
    app.include_router(health_router)
    app.include_router(assessments_router)
    app.include_router(attempts_router)
    app.include_router(progression_router)
    return app


app = create_app()

logger.info(
    "quizcore started  env=%s log_level=%s port=%d docs=%s",
    SETTINGS.app_env,
    SETTINGS.log_level,
    SETTINGS.port,
    "on" if SETTINGS.is_dev else "off",
)
