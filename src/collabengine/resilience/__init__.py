"""Retry/backoff policy and failure recovery helpers."""
from .recovery import describe_failure, failure_placeholder
from .retry import RetryPolicy, backoff_delay, is_retryable, with_retry
