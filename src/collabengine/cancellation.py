"""
Cancellation tokens -- one type for both per-call deadlines and session aborts.

A session owns a root token whose deadline is the wall-clock cap. Every
provider call gets a child token with its own per-call deadline. Cancelling
(or expiring) a parent cancels every child; expiring a child only affects
that call.

    session = CancellationToken(timeout=120, name="session:abc")
    call = session.child(timeout=180, name="claude")
    try:
        text = await call.guard(client.invoke(...))
    finally:
        call.close()

guard() raises CallTimeoutError when the call's own deadline fired and
GlobalDeadlineError when the session was cancelled, so the retry policy can
tell a retryable timeout from a terminal abort. A session cancelled with
reason "cost" raises CostLimitExceededError instead, so calls still in
flight when the budget is breached stop with the same error the budget
check would have raised.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, TypeVar

from .errors import CallTimeoutError, CostLimitExceededError, GlobalDeadlineError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEADLINE_REASON = "deadline"
COST_REASON = "cost"


class CancellationToken:
    """Composable cancellation signal with an optional deadline and parent."""

    def __init__(
        self,
        timeout: float | None = None,
        parent: "CancellationToken | None" = None,
        name: str = "",
    ):
        self.name = name
        self._parent = parent
        self._event = asyncio.Event()
        self._children: set[CancellationToken] = set()
        self._reason: str | None = None
        self._expired = False
        self._timer: asyncio.TimerHandle | None = None
        self.timeout = timeout
        self.deadline: float | None = None

        if timeout is not None:
            loop = asyncio.get_running_loop()
            self.deadline = time.monotonic() + timeout
            self._timer = loop.call_later(max(timeout, 0), self._expire)

        if parent is not None:
            parent._children.add(self)
            if parent.cancelled:
                self._event.set()

    # -- state ---------------------------------------------------------------

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self._parent is not None and self._parent.cancelled

    @property
    def expired(self) -> bool:
        """True when this token's own deadline fired (not a parent's)."""
        return self._expired

    @property
    def reason(self) -> str | None:
        if self._reason is not None:
            return self._reason
        if self._parent is not None:
            return self._parent.reason
        return None

    def remaining(self) -> float | None:
        """Seconds until the nearest deadline in the chain, or None."""
        candidates = []
        if self.deadline is not None:
            candidates.append(self.deadline - time.monotonic())
        if self._parent is not None:
            parent_remaining = self._parent.remaining()
            if parent_remaining is not None:
                candidates.append(parent_remaining)
        return max(min(candidates), 0.0) if candidates else None

    # -- transitions ---------------------------------------------------------

    def cancel(self, reason: str = "cancelled") -> None:
        if self._event.is_set():
            return
        self._reason = reason
        self._event.set()
        self._cancel_timer()
        for child in list(self._children):
            child._propagate()
        logger.debug(f"[Cancel] {self.name or 'token'} cancelled ({reason})")

    def _propagate(self) -> None:
        if self._event.is_set():
            return
        self._event.set()
        self._cancel_timer()
        for child in list(self._children):
            child._propagate()

    def _expire(self) -> None:
        self._timer = None
        if self._event.is_set():
            return
        self._expired = True
        self.cancel(reason=DEADLINE_REASON)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def child(self, timeout: float | None = None, name: str = "") -> "CancellationToken":
        return CancellationToken(timeout=timeout, parent=self, name=name)

    def close(self) -> None:
        """Release the timer and detach from the parent. Does not cancel."""
        self._cancel_timer()
        if self._parent is not None:
            self._parent._children.discard(self)

    # -- awaiting ------------------------------------------------------------

    def error(self) -> Exception:
        """The exception that describes why this token fired."""
        if self._expired and (self._parent is None or not self._parent.cancelled):
            if self._parent is None:
                return GlobalDeadlineError(
                    f"{self.name or 'session'} exceeded its {self.timeout}s deadline"
                )
            return CallTimeoutError(
                f"{self.name or 'call'} timed out after {self.timeout}s"
            )
        if self._parent is not None and self._parent.cancelled:
            return self._parent.error()
        if self._reason == COST_REASON:
            return CostLimitExceededError(
                f"{self.name or 'session'} was stopped because the cost limit was reached"
            )
        return GlobalDeadlineError(
            f"{self.name or 'session'} was cancelled ({self.reason or 'cancelled'})"
        )

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise self.error()

    async def wait(self) -> None:
        await self._event.wait()

    async def sleep(self, seconds: float) -> None:
        """Sleep, waking early with this token's error if it fires."""
        self.raise_if_cancelled()
        try:
            await asyncio.wait_for(self._event.wait(), timeout=max(seconds, 0))
        except asyncio.TimeoutError:
            return
        raise self.error()

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """Run an awaitable, cancelling it if this token fires first."""
        self.raise_if_cancelled()
        task: asyncio.Future[Any] = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait(
                {task, waiter}, return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()

        if task in done:
            return task.result()

        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        raise self.error()
