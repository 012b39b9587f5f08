"""
Pydantic response models -- what the API returns.

Mirrors CollaborationResult with camelCase field names on the wire.
"""

from pydantic import Field

from ...errors import ErrorResponse
from ...models import CollaborationResult, Critique, Draft, Iteration, Vote
from .requests import CamelModel


# =============================================================================
# PROVENANCE RECORDS
# =============================================================================


class DraftResponse(CamelModel):
    agent: str
    content: str = ""
    error: str | None = None
    message: str = ""

    @classmethod
    def from_record(cls, draft: Draft) -> "DraftResponse":
        return cls(agent=draft.agent, content=draft.content, error=draft.error, message=draft.message)


class CritiqueResponse(CamelModel):
    agent: str
    content: str = ""
    targets: list[str] = Field(default_factory=list)
    error: str | None = None
    message: str = ""

    @classmethod
    def from_record(cls, critique: Critique) -> "CritiqueResponse":
        return cls(
            agent=critique.agent,
            content=critique.content,
            targets=list(critique.targets),
            error=critique.error,
            message=critique.message,
        )


class VoteResponse(CamelModel):
    agent: str
    voted_for: str | None = None
    reasoning: str = ""
    error: str | None = None
    message: str = ""

    @classmethod
    def from_record(cls, vote: Vote) -> "VoteResponse":
        return cls(
            agent=vote.agent,
            voted_for=vote.voted_for,
            reasoning=vote.reasoning,
            error=vote.error,
            message=vote.message,
        )


class IterationResponse(CamelModel):
    agent: str
    position: str
    content: str = ""
    error: str | None = None
    fallback: bool = False

    @classmethod
    def from_record(cls, step: Iteration) -> "IterationResponse":
        return cls(
            agent=step.agent,
            position=step.position,
            content=step.content,
            error=step.error,
            fallback=step.fallback,
        )


# =============================================================================
# COLLABORATION RESULT
# =============================================================================


class CollaborationResultResponse(CamelModel):
    """Complete collaboration output returned to the client."""

    session_id: str
    status: str = "completed"  # completed | partial | refused
    answer: str
    rationale: str = ""
    mode: str
    lead_agent: str | None = None
    summarizer_agent: str | None = None
    spent_usd: float = Field(0.0, alias="spentUSD")
    drafts: list[DraftResponse] = Field(default_factory=list)
    critiques: list[CritiqueResponse] = Field(default_factory=list)
    votes: list[VoteResponse] = Field(default_factory=list)
    iterations: list[IterationResponse] = Field(default_factory=list)
    vote_counts: dict[str, int] = Field(default_factory=dict)
    truncated: bool = False
    aborted: bool = False
    fallback: bool = False
    refused: bool = False
    note: str = ""
    duration_seconds: float = 0.0

    @classmethod
    def from_result(cls, result: CollaborationResult) -> "CollaborationResultResponse":
        if result.refused:
            status = "refused"
        elif result.partial:
            status = "partial"
        else:
            status = "completed"
        return cls(
            session_id=result.session_id,
            status=status,
            answer=result.answer,
            rationale=result.rationale,
            mode=result.mode,
            lead_agent=result.lead_agent,
            summarizer_agent=result.summarizer_agent,
            spent_usd=result.spent_usd,
            drafts=[DraftResponse.from_record(d) for d in result.drafts],
            critiques=[CritiqueResponse.from_record(c) for c in result.critiques],
            votes=[VoteResponse.from_record(v) for v in result.votes],
            iterations=[IterationResponse.from_record(i) for i in result.iterations],
            vote_counts=dict(result.vote_counts),
            truncated=result.truncated,
            aborted=result.aborted,
            fallback=result.fallback,
            refused=result.refused,
            note=result.note,
            duration_seconds=result.duration_seconds,
        )


class EstimateResponse(CamelModel):
    estimated_cost_usd: float = Field(..., alias="estimatedCostUSD")
    cost_cap_usd: float = Field(..., alias="costCapUSD")
    within_budget: bool
    agents: list[str]
    mode: str


class ErrorBody(CamelModel):
    """ErrorResponse on the wire, with the partial result when there is one."""

    error: bool = True
    error_type: str = "unknown"
    message: str = ""
    provider: str | None = None
    phase: str | None = None
    timestamp: str
    partial: CollaborationResultResponse | None = None

    @classmethod
    def from_error(
        cls, error: ErrorResponse, partial: CollaborationResult | None = None
    ) -> "ErrorBody":
        return cls(
            error_type=error.error_type,
            message=error.message,
            provider=error.provider,
            phase=error.phase,
            timestamp=error.timestamp,
            partial=CollaborationResultResponse.from_result(partial) if partial else None,
        )


# =============================================================================
# HEALTH & METRICS
# =============================================================================


class HealthResponse(CamelModel):
    status: str = "healthy"
    uptime_seconds: float = 0.0
    active_sessions: int = 0
    providers_configured: list[str] = Field(default_factory=list)


class MetricsResponse(CamelModel):
    sessions_started: int = 0
    sessions_completed: int = 0
    sessions_failed: int = 0
    sessions_refused: int = 0
    sessions_aborted: int = 0
    active_sessions: int = 0
    total_spent_usd: float = Field(0.0, alias="totalSpentUSD")
    total_agent_calls: int = 0
    average_duration_seconds: float = 0.0
    limiter: dict[str, dict[str, int]] = Field(default_factory=dict)
