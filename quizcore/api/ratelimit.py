"""Rate limiting dependency for FastAPI routes.

A dependency rather than a middleware, so each route opts in with its
own bucket size and /health, /ready and /metrics are never limited.

Buckets are keyed by caller id when the X-User-ID header is present and
by client IP otherwise. The limiter itself lives on ``app.state`` and is
chosen at startup (Redis when configured, in-memory otherwise).
"""

from __future__ import annotations

import logging

from fastapi import HTTPException, Request, status

from quizcore.core.config import SETTINGS
from quizcore.core.metrics import RATE_LIMIT_HITS
from quizcore.services.rate_limiter import RateLimitConfig, RateLimiter, RateLimitResult

logger = logging.getLogger(__name__)

_DEFAULT_CONFIG = RateLimitConfig(
    capacity=SETTINGS.rate_limit_capacity,
    refill_rate=SETTINGS.rate_limit_refill_rate,
)


def require_rate_limit(config: RateLimitConfig = _DEFAULT_CONFIG):
    """Dependency factory: enforce rate limits on a route.

    @router.post("/...", dependencies=[Depends(require_rate_limit())])
    """

    async def _check(request: Request) -> None:
        limiter: RateLimiter = request.app.state.rate_limiter
        key = _build_key(request)
        result: RateLimitResult = await limiter.check(key, config)

        request.state.rate_limit_headers = {
            "X-RateLimit-Limit": str(result.limit),
            "X-RateLimit-Remaining": str(result.remaining),
        }

        if not result.allowed:
            RATE_LIMIT_HITS.labels(
                key_type="user" if key.startswith("user:") else "ip"
            ).inc()
            logger.warning("Rate limit exceeded key=%s", key)
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail="Rate limit exceeded",
                headers={
                    "Retry-After": str(int(result.retry_after) + 1),
                    "X-RateLimit-Limit": str(result.limit),
                    "X-RateLimit-Remaining": "0",
                },
            )

    return _check


def _build_key(request: Request) -> str:
    user_id = request.headers.get("x-user-id", "").strip()
    if user_id:
        return f"user:{user_id}"
    client_ip = request.client.host if request.client else "unknown"
    return f"ip:{client_ip}"
