"""Token-bucket rate limiting keyed by caller identity.

A bucket holds ``capacity`` tokens and refills at ``refill_rate`` tokens
per second; each request spends one. Bursts up to the capacity pass, the
long-run rate is the refill rate.

The store is an explicit object handed to the application at startup
(``app.state.rate_limiter``), never a module global. The in-memory store
drops buckets that have been idle long enough to be full again; keeping
them would change nothing but memory use.
"""

from __future__ import annotations

import math
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@dataclass(frozen=True, slots=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    limit: int
    retry_after: float  # seconds until the next token, 0 when allowed


@dataclass(frozen=True, slots=True)
class RateLimitConfig:
    capacity: int = 60
    refill_rate: float = 1.0

    @property
    def idle_ttl(self) -> float:
        """Seconds after which an untouched bucket is full again."""
        return self.capacity / self.refill_rate


@runtime_checkable
class RateLimiter(Protocol):
    async def check(self, key: str, config: RateLimitConfig) -> RateLimitResult: ...
    async def reset(self, key: str) -> None: ...


class InMemoryRateLimiter:
    """Per-process buckets; fine for one instance, use Redis behind a balancer."""

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.monotonic,
        purge_every: int = 1000,
    ) -> None:
        self._clock = clock
        self._purge_every = purge_every
        self._checks = 0
        self._lock = threading.Lock()
        # key -> (tokens_remaining, last_refill, idle_ttl)
        self._buckets: dict[str, tuple[float, float, float]] = {}

    def __len__(self) -> int:
        return len(self._buckets)

    async def check(self, key: str, config: RateLimitConfig) -> RateLimitResult:
        now = self._clock()
        with self._lock:
            self._checks += 1
            if self._checks % self._purge_every == 0:
                self._purge_locked(now)

            tokens, last_refill, _ = self._buckets.get(
                key, (float(config.capacity), now, config.idle_ttl)
            )
            tokens = min(config.capacity, tokens + (now - last_refill) * config.refill_rate)

            if tokens >= 1:
                tokens -= 1
                self._buckets[key] = (tokens, now, config.idle_ttl)
                return RateLimitResult(
                    allowed=True,
                    remaining=int(tokens),
                    limit=config.capacity,
                    retry_after=0,
                )

            self._buckets[key] = (tokens, now, config.idle_ttl)
            return RateLimitResult(
                allowed=False,
                remaining=0,
                limit=config.capacity,
                retry_after=(1 - tokens) / config.refill_rate,
            )

    async def reset(self, key: str) -> None:
        with self._lock:
            self._buckets.pop(key, None)

    def purge_expired(self) -> int:
        """Drop every bucket idle past its TTL; returns how many went."""
        with self._lock:
            return self._purge_locked(self._clock())

    def _purge_locked(self, now: float) -> int:
        stale = [
            key
            for key, (_, last_refill, ttl) in self._buckets.items()
            if now - last_refill >= ttl
        ]
        for key in stale:
            del self._buckets[key]
        return len(stale)


class RedisRateLimiter:
    """Shared buckets; the refill-and-spend step runs atomically as a Lua script.

    Redis expires idle buckets itself, which is the same cleanup the
    in-memory store does with ``purge_expired``.
    """

    # KEYS[1] bucket key; ARGV: capacity, refill_rate, now, ttl_seconds
    # Returns {allowed (0/1), remaining, retry_after_ms}
    _LUA_SCRIPT = """
    local capacity = tonumber(ARGV[1])
    local refill_rate = tonumber(ARGV[2])
    local now = tonumber(ARGV[3])
    local ttl = tonumber(ARGV[4])

    local bucket = redis.call('HMGET', KEYS[1], 'tokens', 'last_refill')
    local tokens = tonumber(bucket[1]) or capacity
    local last_refill = tonumber(bucket[2]) or now

    tokens = math.min(capacity, tokens + (now - last_refill) * refill_rate)

    local allowed = 0
    local retry_after_ms = 0
    if tokens >= 1 then
        tokens = tokens - 1
        allowed = 1
    else
        retry_after_ms = math.ceil((1 - tokens) / refill_rate * 1000)
    end

    redis.call('HSET', KEYS[1], 'tokens', tokens, 'last_refill', now)
    redis.call('EXPIRE', KEYS[1], ttl)
    return {allowed, math.floor(tokens), retry_after_ms}
    """

    _PREFIX = "ratelimit:"

    def __init__(self, redis_client) -> None:
        self._redis = redis_client
        self._script = None

    def _get_script(self):
        if self._script is None:
            self._script = self._redis.register_script(self._LUA_SCRIPT)
        return self._script

    async def check(self, key: str, config: RateLimitConfig) -> RateLimitResult:
        script = self._get_script()
        allowed, remaining, retry_after_ms = await script(
            keys=[f"{self._PREFIX}{key}"],
            args=[
                config.capacity,
                config.refill_rate,
                time.time(),
                math.ceil(config.idle_ttl) + 60,
            ],
        )
        return RateLimitResult(
            allowed=bool(allowed),
            remaining=max(int(remaining), 0),
            limit=config.capacity,
            retry_after=retry_after_ms / 1000,
        )

    async def reset(self, key: str) -> None:
        await self._redis.delete(f"{self._PREFIX}{key}")
