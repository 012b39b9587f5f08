"""
Resilience Evals -- retry classification, backoff, and failure wording.

Tests the behaviours a flaky provider exercises:
- transient errors are retried, terminal ones are not
- backoff grows with the attempt number and never passes its cap
- failures are described the same way everywhere they are shown
"""

import asyncio

import pytest
from hypothesis import given
from hypothesis import strategies as st

from collabengine.errors import (
    CallTimeoutError,
    CostLimitExceededError,
    GlobalDeadlineError,
    TransientNetworkError,
    error_kind,
)
from collabengine.models import Failure
from collabengine.resilience import (
    backoff_delay,
    describe_failure,
    failure_placeholder,
    is_retryable,
    with_retry,
)
from collabengine.resilience.retry import MAX_JITTER_MS


class _StatusError(Exception):
    def __init__(self, status_code: int):
        super().__init__(f"HTTP {status_code}")
        self.status_code = status_code


class RateLimitError(Exception):
    """Named like the SDK error so classification by type name kicks in."""


class TestRetryClassification:
    """Eval: Only transient failures are retried."""

    @pytest.mark.parametrize("status", [408, 429, 500, 502, 503, 504])
    def test_retryable_status_codes(self, status):
        assert is_retryable(_StatusError(status))

    @pytest.mark.parametrize("status", [400, 401, 403, 404, 422])
    def test_client_errors_not_retried(self, status):
        assert not is_retryable(_StatusError(status))

    def test_terminal_errors_never_retried(self):
        assert not is_retryable(GlobalDeadlineError("session deadline"))
        assert not is_retryable(CostLimitExceededError(spent_usd=1, cap_usd=0.5))

    def test_timeouts_and_resets_retried(self):
        assert is_retryable(CallTimeoutError("call timed out"))
        assert is_retryable(TransientNetworkError("connection reset"))
        assert is_retryable(asyncio.TimeoutError())
        assert is_retryable(ConnectionResetError("ECONNRESET"))
        assert is_retryable(RateLimitError("slow down"))
        assert is_retryable(RuntimeError("socket hang up"))

    def test_plain_errors_not_retried(self):
        assert not is_retryable(ValueError("bad input"))
        assert not is_retryable(RuntimeError("boom"))


class TestBackoff:
    """Eval: delay = min(base * 2^attempt + jitter, cap)."""

    def test_exact_without_jitter(self):
        assert backoff_delay(0, 1000, 30_000, jitter_ms=0) == 1000
        assert backoff_delay(1, 1000, 30_000, jitter_ms=0) == 2000
        assert backoff_delay(3, 1000, 30_000, jitter_ms=0) == 8000
        assert backoff_delay(10, 1000, 30_000, jitter_ms=0) == 30_000

    @given(attempt=st.integers(min_value=0, max_value=64))
    def test_never_exceeds_cap(self, attempt):
        assert backoff_delay(attempt, 1000, 30_000) <= 30_000

    @given(attempt=st.integers(min_value=0, max_value=30))
    def test_monotone_in_attempt(self, attempt):
        """With fixed jitter, a later attempt never waits less."""
        assert backoff_delay(attempt + 1, 500, 60_000, jitter_ms=250) >= backoff_delay(
            attempt, 500, 60_000, jitter_ms=250
        )

    @given(attempt=st.integers(min_value=0, max_value=5))
    def test_jitter_bounded(self, attempt):
        base = 100 * 2**attempt
        delay = backoff_delay(attempt, 100, 1_000_000)
        assert base <= delay <= base + MAX_JITTER_MS

    def test_huge_attempt_returns_cap(self):
        assert backoff_delay(10_000, 1000, 30_000, jitter_ms=0) == 30_000


class TestWithRetry:
    """Eval: with_retry runs fn at most max_retries + 1 times."""

    @pytest.mark.asyncio
    async def test_succeeds_after_transient_failures(self, no_backoff):
        attempts = []

        async def flaky(attempt):
            attempts.append(attempt)
            if attempt < 2:
                raise TransientNetworkError("connection reset")
            return "ok"

        assert await with_retry(flaky, max_retries=3) == "ok"
        assert attempts == [0, 1, 2]

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self, no_backoff):
        calls = []

        async def always_fails(attempt):
            calls.append(attempt)
            raise CallTimeoutError("timed out")

        with pytest.raises(CallTimeoutError):
            await with_retry(always_fails, max_retries=2)
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_non_retryable_raises_immediately(self):
        calls = []

        async def fails(attempt):
            calls.append(attempt)
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await with_retry(fails, max_retries=5)
        assert calls == [0]

    @pytest.mark.asyncio
    async def test_on_retry_called_with_next_attempt(self, no_backoff):
        seen = []

        async def flaky(attempt):
            if attempt == 0:
                raise TransientNetworkError("reset")
            return attempt

        async def on_retry(error, next_attempt, delay_ms):
            seen.append((type(error).__name__, next_attempt, delay_ms))

        assert await with_retry(flaky, max_retries=2, on_retry=on_retry) == 1
        assert seen == [("TransientNetworkError", 1, 0.0)]

    @pytest.mark.asyncio
    async def test_cancelled_token_stops_backoff(self):
        """A session abort during the backoff sleep ends the retry loop."""
        from collabengine.cancellation import CancellationToken

        token = CancellationToken(name="session:test")

        async def flaky(attempt):
            token.cancel("user requested")
            raise TransientNetworkError("reset")

        with pytest.raises(GlobalDeadlineError):
            await with_retry(flaky, max_retries=3, base_delay_ms=5000, token=token)


class TestFailureDescriptions:
    """Eval: Failures read the same in prompts, rationale and provenance."""

    def test_error_kinds(self):
        assert error_kind(CallTimeoutError("x")) == "timeout"
        assert error_kind(GlobalDeadlineError("x")) == "global_deadline"
        assert error_kind(CostLimitExceededError()) == "cost"
        assert error_kind(TimeoutError()) == "timeout"
        assert error_kind(ConnectionRefusedError("refused")) == "network"
        assert error_kind(ValueError("nope")) == "unclassified"

    def test_describe_failure_from_records_and_errors(self):
        assert describe_failure(CallTimeoutError("x")) == "request timed out"
        assert describe_failure(GlobalDeadlineError("x")) == "operation was aborted"
        assert describe_failure(CostLimitExceededError()) == "cost limit was exceeded"
        failure = Failure(agent="grok", error_kind="timeout", message="timed out")
        assert describe_failure(failure) == "request timed out"
        other = Failure(agent="grok", error_kind="unclassified", message="HTTP 400")
        assert describe_failure(other) == "error: HTTP 400"

    def test_placeholder_wording(self):
        assert (
            failure_placeholder("grok", "draft", "request timed out")
            == "[grok was unable to provide a draft - request timed out]"
        )
        assert failure_placeholder("llama", "sequential_critique_2", "error: x").startswith(
            "[llama was unable to provide a refinement"
        )
