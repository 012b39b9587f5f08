"""
Retry with exponential backoff and jitter.

    delay_ms = min(base * 2**attempt + random(0, 1000), cap)

Classification (is_retryable) is deliberately lenient about where the
signal comes from: an explicit `retryable` attribute, an HTTP status on the
exception (SDK errors carry `status_code`), the exception type name, or the
message text. Session-terminal errors are never retried.
"""

import asyncio
import inspect
import logging
import random
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

from ..cancellation import CancellationToken
from ..errors import CostLimitExceededError, GlobalDeadlineError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_RETRIES = 2
RETRY_BASE_DELAY_MS = 1000
RETRY_MAX_DELAY_MS = 30_000
MAX_JITTER_MS = 1000

RETRYABLE_STATUS_CODES = {408, 429, 500, 502, 503, 504}

RETRYABLE_TYPE_NAMES = {
    "RateLimitError",
    "APITimeoutError",
    "InternalServerError",
    "ServiceUnavailableError",
    "APIConnectionError",
    "Timeout",
    "TimeoutError",
    "ConnectError",
    "ReadTimeout",
    "ConnectTimeout",
    "RemoteProtocolError",
    "CallTimeoutError",
    "TransientNetworkError",
}

RETRYABLE_MESSAGE_PATTERNS = [
    r"timeouterror",
    r"connectionerror",
    r"networkerror",
    r"econnreset",
    r"etimedout",
    r"socket hang up",
    r"network error",
    r"connection (?:closed|reset)",
]


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry settings for one kind of call."""

    max_retries: int = DEFAULT_MAX_RETRIES
    base_delay_ms: float = RETRY_BASE_DELAY_MS
    max_delay_ms: float = RETRY_MAX_DELAY_MS


def _status_of(error: BaseException) -> int | None:
    for attr in ("status_code", "status"):
        value = getattr(error, attr, None)
        if isinstance(value, int):
            return value
    response = getattr(error, "response", None)
    value = getattr(response, "status_code", None)
    return value if isinstance(value, int) else None


def is_retryable(error: BaseException) -> bool:
    """Decide whether an error is transient and worth another attempt."""
    if isinstance(error, (GlobalDeadlineError, CostLimitExceededError)):
        return False
    if isinstance(error, asyncio.CancelledError):
        return False

    explicit = getattr(error, "retryable", None)
    if isinstance(explicit, bool):
        return explicit

    status = _status_of(error)
    if status is not None:
        return status in RETRYABLE_STATUS_CODES

    if isinstance(error, (TimeoutError, asyncio.TimeoutError, ConnectionError)):
        return True
    if type(error).__name__ in RETRYABLE_TYPE_NAMES:
        return True

    text = f"{type(error).__name__}: {error}".lower()
    return any(re.search(p, text) for p in RETRYABLE_MESSAGE_PATTERNS)


def backoff_delay(
    attempt: int,
    base_ms: float = RETRY_BASE_DELAY_MS,
    cap_ms: float = RETRY_MAX_DELAY_MS,
    jitter_ms: float | None = None,
) -> float:
    """Delay in milliseconds before retry number `attempt` (0-based)."""
    if jitter_ms is None:
        jitter_ms = random.uniform(0, MAX_JITTER_MS)
    try:
        exponential = base_ms * (2 ** max(attempt, 0))
    except OverflowError:
        return cap_ms
    return min(exponential + jitter_ms, cap_ms)


async def with_retry(
    fn: Callable[[int], Awaitable[T]],
    *,
    max_retries: int = 3,
    base_delay_ms: float = RETRY_BASE_DELAY_MS,
    max_delay_ms: float = RETRY_MAX_DELAY_MS,
    retry_condition: Callable[[BaseException], bool] = is_retryable,
    on_retry: Callable[[BaseException, int, float], Any] | None = None,
    token: CancellationToken | None = None,
) -> T:
    """
    Call fn(attempt) until it succeeds, fails permanently, or retries run out.

    max_retries counts retries, so fn runs at most max_retries + 1 times.
    on_retry(error, next_attempt, delay_ms) may be sync or async. When a
    token is given, a cancellation during the backoff sleep ends the loop
    with the token's error.
    """
    attempt = 0
    while True:
        try:
            return await fn(attempt)
        except Exception as e:
            if attempt >= max_retries or not retry_condition(e):
                raise

            delay = backoff_delay(attempt, base_delay_ms, max_delay_ms)
            logger.warning(
                f"[Retry] Attempt {attempt + 1}/{max_retries + 1} failed: "
                f"{type(e).__name__}. Retrying in {delay / 1000:.1f}s"
            )
            if on_retry is not None:
                outcome = on_retry(e, attempt + 1, delay)
                if inspect.isawaitable(outcome):
                    await outcome

            if token is not None:
                await token.sleep(delay / 1000)
            else:
                await asyncio.sleep(delay / 1000)
            attempt += 1
