"""
Event stream -- the orchestrator publishes, the UI layer consumes.

Events are plain dicts with a `type` and an ISO `timestamp`:

  phase_start            {phase}
  agent_thinking         {agent, phase}
  agent_thought          {agent, phase, chunk}
  agent_retry            {agent, phase, attempt, max_attempts}
  agent_status           {agent, state, message}
  collaboration_result   {answer, rationale, lead_agent, summarizer_agent, ...}
  collaboration_complete {}

Publishing is fire-and-forget: a slow or missing consumer never blocks or
fails an orchestration.
"""

import asyncio
import logging
from collections import OrderedDict, defaultdict, deque
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

TERMINAL_EVENT = "collaboration_complete"
DEFAULT_HISTORY = 500
DEFAULT_QUEUE_SIZE = 1000
DEFAULT_MAX_CHANNELS = 1000


def make_event(event_type: str, **fields: Any) -> dict:
    return {
        "type": event_type,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        **fields,
    }


@runtime_checkable
class EventPublisher(Protocol):
    """Anything with publish(channel_id, event) can receive events."""

    def publish(self, channel_id: str, event: dict) -> None: ...


class NullPublisher:
    """Drops every event."""

    def publish(self, channel_id: str, event: dict) -> None:
        return None


class QueueEventPublisher:
    """
    In-process pub/sub over asyncio queues, one queue per subscriber.

    A bounded history per channel lets a subscriber that connects after the
    session started replay what it missed. At most max_channels channels are
    retained; the least recently published channel without a live subscriber
    is forgotten first.

    Usage:
        publisher = QueueEventPublisher()
        async for event in publisher.subscribe("collab:abc"):
            render(event)
    """

    def __init__(
        self,
        history: int = DEFAULT_HISTORY,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        max_channels: int = DEFAULT_MAX_CHANNELS,
    ):
        self._history_size = history
        self._queue_size = queue_size
        self._max_channels = max(1, max_channels)
        self._history: OrderedDict[str, deque] = OrderedDict()
        self._subscribers: dict[str, set[asyncio.Queue]] = defaultdict(set)
        self._closed: set[str] = set()

    @property
    def channels(self) -> int:
        return len(self._history)

    def publish(self, channel_id: str, event: dict) -> None:
        if channel_id not in self._history:
            self._history[channel_id] = deque(maxlen=self._history_size)
        self._history.move_to_end(channel_id)
        self._history[channel_id].append(event)
        for queue in list(self._subscribers.get(channel_id, ())):
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning(f"[Events] Subscriber queue full on {channel_id}, dropping event")
        if event.get("type") == TERMINAL_EVENT:
            self._closed.add(channel_id)
        self._evict()

    def _evict(self) -> None:
        """Forget least recently published channels beyond max_channels."""
        excess = len(self._history) - self._max_channels
        if excess <= 0:
            return
        for channel_id in list(self._history):
            if excess <= 0:
                break
            if self._subscribers.get(channel_id):
                continue
            logger.debug(f"[Events] Evicting channel {channel_id}")
            self.forget(channel_id)
            excess -= 1

    def history(self, channel_id: str) -> list[dict]:
        return list(self._history.get(channel_id, ()))

    def is_closed(self, channel_id: str) -> bool:
        return channel_id in self._closed

    async def subscribe(
        self, channel_id: str, replay: bool = True
    ) -> AsyncIterator[dict]:
        """Yield events until the channel's terminal event."""
        if replay and self.is_closed(channel_id):
            for event in self.history(channel_id):
                yield event
            return

        queue: asyncio.Queue = asyncio.Queue(maxsize=self._queue_size)
        if replay:
            for event in self.history(channel_id):
                queue.put_nowait(event)
        self._subscribers[channel_id].add(queue)
        try:
            while True:
                event = await queue.get()
                yield event
                if event.get("type") == TERMINAL_EVENT:
                    return
        finally:
            subscribers = self._subscribers.get(channel_id)
            if subscribers is not None:
                subscribers.discard(queue)
                if not subscribers:
                    self._subscribers.pop(channel_id, None)

    def forget(self, channel_id: str) -> None:
        """Drop history for a finished channel."""
        self._history.pop(channel_id, None)
        self._closed.discard(channel_id)
        if not self._subscribers.get(channel_id):
            self._subscribers.pop(channel_id, None)


def safe_publish(publisher: EventPublisher | None, channel_id: str, event: dict) -> None:
    """Publish without letting a broken consumer break the orchestration."""
    if publisher is None:
        return
    try:
        publisher.publish(channel_id, event)
    except Exception as e:
        logger.warning(f"[Events] Publish of {event.get('type')} to {channel_id} failed: {e}")
