from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Literal

AppEnv = Literal["dev", "test", "prod"]
LogLevel = Literal["debug", "info", "warning", "error"]


def _getenv(name: str, default: str) -> str:
    return os.environ.get(name, default).strip()


def _getenv_bool(name: str, default: bool) -> bool:
    raw = _getenv(name, "true" if default else "false").lower()
    if raw in ("1", "true", "yes", "on"):
        return True
    if raw in ("0", "false", "no", "off", ""):
        return False
    raise ValueError(f"{name} must be a boolean (got {raw!r})")


@dataclass(frozen=True)
class Settings:
    app_env: AppEnv
    log_level: LogLevel
    log_json: bool
    port: int
    database_url: str | None
    redis_url: str | None
    # Bounded compare-and-swap retries before ConcurrentUpdateFailed
    cas_max_retries: int = 5
    rate_limit_capacity: int = 60
    rate_limit_refill_rate: float = 1.0

    @property
    def is_dev(self) -> bool:
        return self.app_env == "dev"

    @property
    def is_test(self) -> bool:
        return self.app_env == "test"

    @property
    def is_prod(self) -> bool:
        return self.app_env == "prod"


def load_settings() -> Settings:
    app_env_raw = _getenv("APP_ENV", "dev").lower()
    log_level_raw = _getenv("LOG_LEVEL", "info").lower()
    port_raw = _getenv("PORT", "8000")
    retries_raw = _getenv("CAS_MAX_RETRIES", "5")
    capacity_raw = _getenv("RATE_LIMIT_CAPACITY", "60")
    refill_raw = _getenv("RATE_LIMIT_REFILL_RATE", "1.0")

    if app_env_raw not in ("dev", "test", "prod"):
        raise ValueError(f"APP_ENV must be dev|test|prod (got {app_env_raw!r})")

    if log_level_raw not in ("debug", "info", "warning", "error"):
        raise ValueError(
            f"LOG_LEVEL must be debug|info|warning|error (got {log_level_raw!r})"
        )

    try:
        port = int(port_raw)
    except ValueError:
        raise ValueError(f"PORT must be an integer (got {port_raw!r})") from None

    try:
        cas_max_retries = int(retries_raw)
    except ValueError:
        raise ValueError(
            f"CAS_MAX_RETRIES must be an integer (got {retries_raw!r})"
        ) from None
    if cas_max_retries < 1:
        raise ValueError(f"CAS_MAX_RETRIES must be >= 1 (got {cas_max_retries})")

    try:
        rate_limit_capacity = int(capacity_raw)
        rate_limit_refill_rate = float(refill_raw)
    except ValueError:
        raise ValueError(
            "RATE_LIMIT_CAPACITY must be an integer and "
            "RATE_LIMIT_REFILL_RATE a number "
            f"(got {capacity_raw!r}, {refill_raw!r})"
        ) from None

    database_url = _getenv("DATABASE_URL", "") or None
    redis_url = _getenv("REDIS_URL", "") or None

    return Settings(  # type: ignore[arg-type]
        app_env=app_env_raw,
        log_level=log_level_raw,
        log_json=_getenv_bool("LOG_JSON", False),
        port=port,
        database_url=database_url,
        redis_url=redis_url,
        cas_max_retries=cas_max_retries,
        rate_limit_capacity=rate_limit_capacity,
        rate_limit_refill_rate=rate_limit_refill_rate,
    )


SETTINGS = load_settings()
