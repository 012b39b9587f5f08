"""
Engine configuration -- defaults for every session, loaded from environment.

Configuration via environment:
  COLLAB_COST_CAP_USD=0.50           default per-session dollar cap
  COLLAB_MAX_SECONDS=120             default per-session wall-clock cap
  COLLAB_DEFAULT_CONCURRENCY=3       slots for providers without their own limit
  COLLAB_MAX_RETRIES=2               retries per agent call
  COLLAB_RETRY_BASE_MS=1000          backoff base
  COLLAB_RETRY_MAX_MS=30000          backoff cap
  COLLAB_IGNORE_FAILING_MODELS=false
  CORS_ORIGINS=http://localhost:3000,http://localhost:8000
  RATE_LIMIT_PER_MINUTE=60

Invalid values are logged and replaced by the default; a bad variable never
stops the service from starting.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Callable, TypeVar

from .resilience.retry import (
    DEFAULT_MAX_RETRIES,
    RETRY_BASE_DELAY_MS,
    RETRY_MAX_DELAY_MS,
    RetryPolicy,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_COST_CAP_USD = 0.50
DEFAULT_MAX_SECONDS = 120.0
DEFAULT_CONCURRENCY = 3
DEFAULT_RATE_LIMIT = 60
DEFAULT_CORS_ORIGINS = ["http://localhost:3000", "http://localhost:8000"]

TRUE_VALUES = ("true", "1", "yes", "on")
FALSE_VALUES = ("false", "0", "no", "off", "")


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in TRUE_VALUES:
        return True
    if lowered in FALSE_VALUES:
        return False
    raise ValueError(f"not a boolean: {value!r}")


def _positive(parse: Callable[[str], T]) -> Callable[[str], T]:
    def _parse(value: str) -> T:
        parsed = parse(value)
        if parsed <= 0:
            raise ValueError(f"must be positive, got {value!r}")
        return parsed

    return _parse


def _non_negative_int(value: str) -> int:
    parsed = int(value)
    if parsed < 0:
        raise ValueError(f"must not be negative, got {value!r}")
    return parsed


def _env(name: str, parse: Callable[[str], T], default: T) -> T:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return parse(raw)
    except ValueError as e:
        logger.warning(f"[Config] Invalid {name}={raw!r} ({e}); using default {default!r}")
        return default


def _origins(value: str) -> list[str]:
    origins = [o.strip() for o in value.split(",") if o.strip()]
    if not origins:
        raise ValueError("no origins listed")
    return origins


@dataclass
class EngineConfig:
    """Process-wide defaults. A session request may override the per-session ones."""

    cost_cap_usd: float = DEFAULT_COST_CAP_USD
    max_seconds: float = DEFAULT_MAX_SECONDS
    default_concurrency: int = DEFAULT_CONCURRENCY
    max_retries: int = DEFAULT_MAX_RETRIES
    retry_base_ms: float = RETRY_BASE_DELAY_MS
    retry_max_ms: float = RETRY_MAX_DELAY_MS
    ignore_failing_models: bool = False
    cors_origins: list[str] = field(default_factory=lambda: list(DEFAULT_CORS_ORIGINS))
    rate_limit_per_minute: int = DEFAULT_RATE_LIMIT

    @property
    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_retries=self.max_retries,
            base_delay_ms=self.retry_base_ms,
            max_delay_ms=self.retry_max_ms,
        )

    @classmethod
    def from_env(cls) -> "EngineConfig":
        return cls(
            cost_cap_usd=_env("COLLAB_COST_CAP_USD", _positive(float), DEFAULT_COST_CAP_USD),
            max_seconds=_env("COLLAB_MAX_SECONDS", _positive(float), DEFAULT_MAX_SECONDS),
            default_concurrency=_env(
                "COLLAB_DEFAULT_CONCURRENCY", _positive(int), DEFAULT_CONCURRENCY
            ),
            max_retries=_env("COLLAB_MAX_RETRIES", _non_negative_int, DEFAULT_MAX_RETRIES),
            retry_base_ms=_env("COLLAB_RETRY_BASE_MS", _positive(float), RETRY_BASE_DELAY_MS),
            retry_max_ms=_env("COLLAB_RETRY_MAX_MS", _positive(float), RETRY_MAX_DELAY_MS),
            ignore_failing_models=_env("COLLAB_IGNORE_FAILING_MODELS", _parse_bool, False),
            cors_origins=_env("CORS_ORIGINS", _origins, list(DEFAULT_CORS_ORIGINS)),
            rate_limit_per_minute=_env(
                "RATE_LIMIT_PER_MINUTE", _positive(int), DEFAULT_RATE_LIMIT
            ),
        )
