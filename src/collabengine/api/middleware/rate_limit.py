"""
Rate limiting -- a collaboration fans out to several paid model calls, so
one client must not be able to start sessions without bound.

In-memory sliding window per client IP, owned by the app (app.state.rate_limiter).
For production with multiple replicas, replace with a shared store.

Configuration via environment:
  RATE_LIMIT_PER_MINUTE=60  (default: 60 requests per minute per IP)
"""

import logging
import time
from collections import defaultdict, deque

from fastapi import HTTPException, Request

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60.0


class SlidingWindowLimiter:
    """Allows `limit` requests per client in any WINDOW_SECONDS window."""

    def __init__(self, limit: int, window_seconds: float = WINDOW_SECONDS):
        self.limit = limit
        self.window_seconds = window_seconds
        self._requests: dict[str, deque[float]] = defaultdict(deque)

    def _cleanup(self, client_id: str, now: float) -> deque[float]:
        timestamps = self._requests[client_id]
        cutoff = now - self.window_seconds
        while timestamps and timestamps[0] <= cutoff:
            timestamps.popleft()
        return timestamps

    def allow(self, client_id: str, now: float | None = None) -> bool:
        now = time.time() if now is None else now
        timestamps = self._cleanup(client_id, now)
        if len(timestamps) >= self.limit:
            return False
        timestamps.append(now)
        return True


async def check_rate_limit(request: Request) -> None:
    """
    Check if the client has exceeded the rate limit.

    Call this as a dependency in routes that need rate limiting.
    Raises HTTP 429 if the limit is exceeded.
    """
    limiter: SlidingWindowLimiter = request.app.state.rate_limiter
    client_ip = request.client.host if request.client else "unknown"

    if not limiter.allow(client_ip):
        logger.warning(f"[RateLimit] Client {client_ip} exceeded {limiter.limit}/min")
        raise HTTPException(
            status_code=429,
            detail=f"Rate limit exceeded ({limiter.limit} requests per minute)",
            headers={"Retry-After": str(int(limiter.window_seconds))},
        )
