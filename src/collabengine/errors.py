"""
Error taxonomy for collaboration sessions.

Every error the engine raises on purpose derives from CollaborationError and
carries the agent/provider and phase it happened in, so a failure can be
turned into a Failure record (models.py) or an ErrorResponse
(API surfaces) without losing context.

  CallTimeoutError          -- one provider call hit its per-call deadline (retryable)
  GlobalDeadlineError       -- the session wall-clock cap fired (terminal)
  CostLimitExceededError    -- the session budget was breached (terminal)
  ContextLimitExceededError -- content too large even after truncation
  TransientNetworkError     -- resets, 5xx, rate limits (retryable)
  UnclassifiedError         -- anything else, wrapped with context
  AgentFailureError         -- an essential agent failed under strict policy
  AllAgentsFailedError      -- a phase produced no successful result
"""

import re
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any

TIMEOUT_PATTERNS = [
    r"timeout",
    r"timed out",
    r"deadline exceeded",
    r"operation (?:was )?(?:cancelled|canceled|aborted)",
    r"request aborted",
]


class CollaborationError(Exception):
    """Base class for all engine errors."""

    kind = "unclassified"
    retryable = False

    def __init__(
        self,
        message: str = "",
        *,
        agent: str | None = None,
        phase: str | None = None,
        provider: str | None = None,
        partial: Any = None,
    ):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__
        self.agent = agent
        self.phase = phase
        self.provider = provider or agent
        self.partial = partial


class CallTimeoutError(CollaborationError):
    """A single provider call exceeded its per-call deadline."""

    kind = "timeout"
    retryable = True


class GlobalDeadlineError(CollaborationError):
    """The session-wide wall-clock cap fired. Never retried."""

    kind = "global_deadline"


class CostLimitExceededError(CollaborationError):
    """The session's dollar budget was breached."""

    kind = "cost"

    def __init__(
        self,
        message: str = "",
        *,
        spent_usd: float = 0.0,
        cap_usd: float = 0.0,
        **kwargs,
    ):
        super().__init__(
            message or f"Cost limit exceeded: ${spent_usd:.4f} spent of ${cap_usd:.2f} cap",
            **kwargs,
        )
        self.spent_usd = spent_usd
        self.cap_usd = cap_usd


class ContextLimitExceededError(CollaborationError):
    kind = "context"

    def __init__(self, message: str = "", *, length: int = 0, limit: int = 0, **kwargs):
        super().__init__(
            message or f"Content of {length} chars exceeds context limit of {limit}",
            **kwargs,
        )
        self.length = length
        self.limit = limit


class TransientNetworkError(CollaborationError):
    kind = "network"
    retryable = True


class UnclassifiedError(CollaborationError):
    """Wraps an unexpected exception with agent/phase context."""

    kind = "unclassified"

    def __init__(self, message: str = "", *, cause: BaseException | None = None, **kwargs):
        if cause is not None and not message:
            message = f"{type(cause).__name__}: {cause}"
        super().__init__(message, **kwargs)
        self.cause = cause


class AgentFailureError(CollaborationError):
    """An agent the protocol could not do without has failed."""

    kind = "agent_failed"


class AllAgentsFailedError(AgentFailureError):
    kind = "all_failed"


# =============================================================================
# CLASSIFICATION
# =============================================================================


def is_timeout_or_abort(error: BaseException) -> bool:
    """Check whether an error looks like a timeout or an aborted request."""
    if isinstance(error, (CallTimeoutError, GlobalDeadlineError, TimeoutError)):
        return True
    text = f"{type(error).__name__} {error}".lower()
    return any(re.search(p, text) for p in TIMEOUT_PATTERNS)


def error_kind(error: BaseException) -> str:
    """Map any exception to a short kind string used in Failure records."""
    if isinstance(error, CollaborationError):
        return error.kind
    if is_timeout_or_abort(error):
        return "timeout"
    if isinstance(error, ConnectionError):
        return "network"
    return "unclassified"


# =============================================================================
# ERROR RESPONSE RECORD
# =============================================================================


@dataclass
class ErrorResponse:
    """User-facing error record. Never contains a stack trace."""

    error: bool = True
    error_type: str = "unknown"  # timeout | cost | context | unknown
    message: str = ""
    provider: str | None = None
    phase: str | None = None
    timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    def to_dict(self) -> dict:
        return asdict(self)


def create_error_response(
    error: BaseException,
    provider: str | None = None,
    phase: str | None = None,
) -> ErrorResponse:
    if isinstance(error, CollaborationError):
        provider = provider or error.provider
        phase = phase or error.phase

    if isinstance(error, CostLimitExceededError):
        error_type = "cost"
        message = "The collaboration was stopped because the cost limit was exceeded."
    elif isinstance(error, ContextLimitExceededError):
        error_type = "context"
        message = "The content was too large for the model's context window."
    elif is_timeout_or_abort(error):
        error_type = "timeout"
        message = "The request timed out or was aborted."
    else:
        error_type = "unknown"
        message = str(error) or type(error).__name__

    return ErrorResponse(
        error_type=error_type, message=message, provider=provider, phase=phase
    )
