"""
Per-provider concurrency limiter with FIFO hand-off.

Each provider has an active-call count and a queue of waiting callers. A
caller that finds the provider at its limit parks a future in the queue;
release() hands the freed slot straight to the oldest waiter instead of
decrementing the count, so a slot is never lost or double-counted between
release and wake-up.

The limiter is owned by the per-process CollaborationService and shared by
every session, which is what makes the limits provider-scoped rather than
session-scoped.
"""

import asyncio
import logging
import time
from collections import deque
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Mapping

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 3
PROVIDER_CONCURRENCY: dict[str, int] = {
    "claude": 2,
    "gemini": 2,
    "chatgpt": 2,
    "grok": 1,
    "deepseek": 1,
    "llama": 1,
}


@dataclass
class SlotToken:
    """Proof of one acquired slot. Releasing twice is a no-op."""

    provider: str
    acquired_at: float = field(default_factory=time.monotonic)
    waited_seconds: float = 0.0
    _limiter: "ProviderLimiter | None" = field(default=None, repr=False)
    _released: bool = field(default=False, repr=False)

    def release(self) -> None:
        if self._released or self._limiter is None:
            return
        self._released = True
        self._limiter.release(self.provider)


@dataclass
class _ProviderState:
    limit: int
    active: int = 0
    waiters: deque = field(default_factory=deque)


class ProviderLimiter:
    """
    Bounds simultaneous in-flight calls per provider.

    Usage:
        limiter = ProviderLimiter()
        async with limiter.slot("claude"):
            await client.invoke(...)
    """

    def __init__(
        self,
        limits: Mapping[str, int] | None = None,
        default_limit: int = DEFAULT_CONCURRENCY,
    ):
        self._limits = {k.lower(): v for k, v in (limits or PROVIDER_CONCURRENCY).items()}
        self._default_limit = max(1, default_limit)
        self._states: dict[str, _ProviderState] = {}

    def limit_for(self, provider: str) -> int:
        return max(1, self._limits.get(provider.lower(), self._default_limit))

    def _state(self, provider: str) -> _ProviderState:
        key = provider.lower()
        state = self._states.get(key)
        if state is None:
            state = _ProviderState(limit=self.limit_for(key))
            self._states[key] = state
        return state

    def active(self, provider: str) -> int:
        return self._state(provider).active

    def waiting(self, provider: str) -> int:
        return sum(1 for w in self._state(provider).waiters if not w.done())

    def snapshot(self) -> dict[str, dict[str, int]]:
        return {
            name: {
                "limit": s.limit,
                "active": s.active,
                "waiting": sum(1 for w in s.waiters if not w.done()),
            }
            for name, s in self._states.items()
        }

    async def acquire(self, provider: str) -> SlotToken:
        """Wait for a slot. Callers are served in arrival order."""
        key = provider.lower()
        state = self._state(key)
        start = time.monotonic()

        if state.active < state.limit and not state.waiters:
            state.active += 1
            return SlotToken(provider=key, _limiter=self)

        waiter = asyncio.get_running_loop().create_future()
        state.waiters.append(waiter)
        logger.debug(
            f"[Limiter] {key} at limit ({state.active}/{state.limit}), "
            f"{len(state.waiters)} waiting"
        )
        try:
            await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                # Slot was handed over just before cancellation; pass it on.
                self.release(key)
            else:
                try:
                    state.waiters.remove(waiter)
                except ValueError:
                    pass
            raise

        return SlotToken(
            provider=key, _limiter=self, waited_seconds=time.monotonic() - start
        )

    def release(self, provider: str) -> None:
        """Free one slot, handing it directly to the next waiter if any."""
        state = self._state(provider)
        while state.waiters:
            waiter = state.waiters.popleft()
            if not waiter.done():
                waiter.set_result(None)
                return

        if state.active <= 0:
            logger.warning(f"[Limiter] release() on idle provider {provider}")
            state.active = 0
            return
        state.active -= 1

    @asynccontextmanager
    async def slot(self, provider: str) -> AsyncIterator[SlotToken]:
        token = await self.acquire(provider)
        try:
            yield token
        finally:
            token.release()
