"""Concurrency control -- per-provider slots and phase fan-out."""
from .fanout import (
    CRITIQUE_MAX_CONCURRENT,
    DRAFT_MAX_CONCURRENT,
    VOTE_MAX_CONCURRENT,
    run_bounded,
)
from .limiter import DEFAULT_CONCURRENCY, PROVIDER_CONCURRENCY, ProviderLimiter, SlotToken
