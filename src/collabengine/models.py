"""
Data models shared by the invoker, the protocols and the API.

Phase records (Draft, Critique, Vote, Iteration) are frozen: each is created
once per agent per phase and appended to the session's provenance.
"""

import uuid
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Union

from .providers import DEFAULT_MODELS, provider_for


class CollaborationMode(str, Enum):
    ROUND_TABLE = "round_table"
    SEQUENTIAL_CRITIQUE_CHAIN = "sequential_critique_chain"
    SMALL_TEAM = "small_team"
    INDIVIDUAL = "individual"


# =============================================================================
# AGENTS AND SESSIONS
# =============================================================================


def channel_for(session_id: str) -> str:
    """Event channel a session publishes on."""
    return f"collab:{session_id}"


@dataclass(frozen=True)
class Agent:
    """One named participant. Concurrency is scoped by provider."""

    id: str
    provider: str
    model_id: str | None = None

    @property
    def resolved_model(self) -> str:
        return self.model_id or DEFAULT_MODELS.get(self.provider, "")

    @classmethod
    def from_id(cls, agent_id: str, model_id: str | None = None) -> "Agent":
        return cls(id=agent_id, provider=provider_for(agent_id), model_id=model_id)


@dataclass
class Session:
    """Input to one orchestration call."""

    prompt: str
    agents: list[str]
    mode: CollaborationMode = CollaborationMode.ROUND_TABLE
    id: str = field(default_factory=lambda: f"session_{uuid.uuid4().hex[:12]}")
    cost_cap_usd: float = 0.50
    max_seconds: float = 120.0
    models: dict[str, list[str]] = field(default_factory=dict)
    ignore_failing_models: bool = False
    continue_with_available_models: bool = True
    sequential_style: str = "balanced"
    shuffle_order: bool = False
    strict: bool = False
    lead_agent: str | None = None

    def __post_init__(self):
        self.mode = CollaborationMode(self.mode)
        seen: set[str] = set()
        ordered = []
        for agent in self.agents:
            if agent not in seen:
                seen.add(agent)
                ordered.append(agent)
        self.agents = ordered

    @property
    def channel_id(self) -> str:
        return channel_for(self.id)

    @property
    def lead(self) -> str:
        if self.lead_agent and self.lead_agent in self.agents:
            return self.lead_agent
        return self.agents[0]

    def model_for(self, agent_id: str) -> str | None:
        model_ids = self.models.get(agent_id) or []
        return model_ids[0] if model_ids else None

    def agent(self, agent_id: str) -> Agent:
        return Agent.from_id(agent_id, self.model_for(agent_id))


# =============================================================================
# PHASE TASK RESULTS
# =============================================================================


@dataclass(frozen=True)
class Success:
    agent: str
    content: str

    ok = True


@dataclass(frozen=True)
class Failure:
    agent: str
    error_kind: str
    message: str
    retryable: bool = False
    phase: str = ""

    ok = False


PhaseTaskResult = Union[Success, Failure]


@dataclass(frozen=True)
class Draft:
    agent: str
    content: str = ""
    error: str | None = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class Critique:
    agent: str
    content: str = ""
    targets: tuple[str, ...] = ()
    error: str | None = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class Vote:
    agent: str
    voted_for: str | None = None
    reasoning: str = ""
    error: str | None = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class Iteration:
    """One step of a sequential critique chain."""

    agent: str
    position: str
    content: str = ""
    error: str | None = None
    fallback: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None


# =============================================================================
# RESULT
# =============================================================================


@dataclass
class CollaborationResult:
    """Final answer plus full provenance."""

    session_id: str
    answer: str
    rationale: str = ""
    mode: str = CollaborationMode.ROUND_TABLE.value
    lead_agent: str | None = None
    summarizer_agent: str | None = None
    spent_usd: float = 0.0
    drafts: list[Draft] = field(default_factory=list)
    critiques: list[Critique] = field(default_factory=list)
    votes: list[Vote] = field(default_factory=list)
    iterations: list[Iteration] = field(default_factory=list)
    vote_counts: dict[str, int] = field(default_factory=dict)
    truncated: bool = False
    aborted: bool = False
    fallback: bool = False
    refused: bool = False
    note: str = ""
    duration_seconds: float = 0.0

    @property
    def successful_agents(self) -> list[str]:
        return [d.agent for d in self.drafts if d.ok]

    @property
    def partial(self) -> bool:
        return self.aborted or self.truncated or self.fallback

    def to_dict(self) -> dict:
        return asdict(self)
