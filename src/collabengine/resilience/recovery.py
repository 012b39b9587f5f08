"""
Failure descriptions and placeholder text for agents that dropped out.

When an agent fails a phase, later prompts and the final provenance still
mention it -- these helpers produce the short, human-readable wording used
for that, e.g. "[grok was unable to provide a draft - request timed out]".
"""

from typing import Any

from ..errors import (
    CostLimitExceededError,
    GlobalDeadlineError,
    is_timeout_or_abort,
)

PHASE_NOUNS = {
    "draft": "a draft",
    "critique": "a critique",
    "vote": "a vote",
    "critique_vote": "a critique and vote",
    "synthesis": "a synthesis",
}


KIND_DESCRIPTIONS = {
    "cost": "cost limit was exceeded",
    "global_deadline": "operation was aborted",
    "timeout": "request timed out",
}


def describe_failure(error: Any) -> str:
    """One-phrase description of why a call failed (exception, Failure or text)."""
    if isinstance(error, str):
        return f"error: {error}"
    kind = getattr(error, "error_kind", None)
    if kind is not None:
        return KIND_DESCRIPTIONS.get(kind, f"error: {error.message}")
    if isinstance(error, CostLimitExceededError):
        return "cost limit was exceeded"
    if isinstance(error, GlobalDeadlineError):
        return "operation was aborted"
    if is_timeout_or_abort(error):
        return "request timed out"
    return f"error: {error}"


def failure_placeholder(agent: str, phase: str, description: str) -> str:
    if phase.startswith("sequential"):
        noun = "a refinement"
    else:
        noun = PHASE_NOUNS.get(phase, "a response")
    return f"[{agent} was unable to provide {noun} - {description}]"
