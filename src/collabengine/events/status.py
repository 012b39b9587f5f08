"""
Per-agent status reporting.

Wraps the caller's on_status(agent, state, message) callback and mirrors
every update onto the event stream as an `agent_status` event. The reporter
remembers each agent's last state so finalize() can guarantee that every
agent ends in `completed` or `failed`, even when a session is aborted
half-way through a phase.
"""

import asyncio
import inspect
import logging
from enum import Enum
from typing import Any, Callable, Iterable

from .publisher import EventPublisher, make_event, safe_publish

logger = logging.getLogger(__name__)


class AgentState(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    PHASE_CHANGE = "phase_change"


TERMINAL_STATES = {AgentState.COMPLETED, AgentState.FAILED}

StatusCallback = Callable[[str, str, str], Any]


class StatusReporter:
    def __init__(
        self,
        callback: StatusCallback | None = None,
        publisher: EventPublisher | None = None,
        channel_id: str = "",
    ):
        self._callback = callback
        self._publisher = publisher
        self._channel_id = channel_id
        self._last: dict[str, AgentState] = {}
        self._pending_callbacks: set[asyncio.Future] = set()

    def update(self, agent: str, state: AgentState | str, message: str = "") -> None:
        state = AgentState(state)
        if state is not AgentState.PHASE_CHANGE:
            self._last[agent] = state

        safe_publish(
            self._publisher,
            self._channel_id,
            make_event("agent_status", agent=agent, state=state.value, message=message),
        )
        if self._callback is None:
            return
        try:
            outcome = self._callback(agent, state.value, message)
            if inspect.isawaitable(outcome):
                future = asyncio.ensure_future(outcome)
                self._pending_callbacks.add(future)
                future.add_done_callback(self._pending_callbacks.discard)
        except Exception as e:
            logger.warning(f"[Status] on_status callback failed for {agent}: {e}")

    def phase_change(self, agents: Iterable[str], label: str) -> None:
        for agent in agents:
            self.update(agent, AgentState.PHASE_CHANGE, label)

    def processing(self, agent: str, message: str) -> None:
        self.update(agent, AgentState.PROCESSING, message)

    def completed(self, agent: str, message: str) -> None:
        self.update(agent, AgentState.COMPLETED, message)

    def failed(self, agent: str, message: str) -> None:
        self.update(agent, AgentState.FAILED, message)

    def last_state(self, agent: str) -> AgentState | None:
        return self._last.get(agent)

    def finalize(self, agents: Iterable[str], message: str = "Collaboration complete") -> None:
        """Send a terminal state to every agent that does not have one yet."""
        for agent in agents:
            if self._last.get(agent) not in TERMINAL_STATES:
                self.completed(agent, message)
