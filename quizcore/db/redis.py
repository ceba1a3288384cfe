"""Redis connection pool.

Mirrors engine.py: with REDIS_URL set, the rate limiter and the task
queue share this pool across API instances; without it, ``redis_pool`` is
None and both fall back to per-process in-memory implementations.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import redis.asyncio as aioredis

from quizcore.core.config import SETTINGS

logger = logging.getLogger(__name__)

if SETTINGS.redis_url:
    redis_pool: aioredis.Redis | None = aioredis.from_url(  # type: ignore[type-arg]
        SETTINGS.redis_url,
        decode_responses=True,
        max_connections=20,
    )
else:
    redis_pool = None


@asynccontextmanager
async def lifespan_redis():
    """Verify connectivity on startup and close the pool on shutdown.

    An unreachable Redis is logged, not fatal: the process keeps serving.
    """
    if redis_pool is None:
        logger.info("No REDIS_URL configured, Redis features use in-memory fallbacks")
        yield
        return

    try:
        await redis_pool.ping()  # type: ignore[misc]
        logger.info("Redis connected")
    except Exception:
        logger.exception("Redis connection failed on startup")
        yield
        return

    yield

    await redis_pool.aclose()
    logger.info("Redis connection pool closed")
