"""Event stream and per-agent status reporting (the orchestrator only publishes)."""
from .publisher import (
    EventPublisher,
    NullPublisher,
    QueueEventPublisher,
    make_event,
    safe_publish,
)
from .status import AgentState, StatusCallback, StatusReporter
