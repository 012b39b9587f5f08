"""
Pydantic request models -- the API contract for starting a collaboration.

Field names are snake_case in Python and camelCase on the wire; both
spellings are accepted (`costCapUSD` or `cost_cap_usd`).
"""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ...config import EngineConfig
from ...models import CollaborationMode, Session
from ...orchestration.styles import SequentialStyle
from ...security import validate_agents, validate_identifier

MAX_PROMPT_SIZE = 500_000


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# COLLABORATION SUBMISSION
# =============================================================================


class CollaborationRequest(CamelModel):
    """Run one collaboration session."""

    prompt: str = Field(..., min_length=1, max_length=MAX_PROMPT_SIZE)
    agents: list[str] = Field(..., min_length=1, description="Agent ids in order")
    mode: CollaborationMode = CollaborationMode.ROUND_TABLE
    session_id: str | None = Field(
        None, description="Client-chosen id, so the event stream can be opened first"
    )
    cost_cap_usd: float | None = Field(None, alias="costCapUSD", gt=0)
    max_seconds: float | None = Field(None, gt=0)
    models: dict[str, list[str]] = Field(default_factory=dict)
    ignore_failing_models: bool | None = None
    continue_with_available_models: bool = True
    sequential_style: SequentialStyle = SequentialStyle.BALANCED
    shuffle_order: bool = False
    lead_agent: str | None = None

    def to_session(self, config: EngineConfig) -> Session:
        """Build a Session, filling unset budgets and flags from config."""
        agents = validate_agents(self.agents)
        fields = {}
        if self.session_id:
            fields["id"] = validate_identifier(self.session_id, "sessionId")
        return Session(
            prompt=self.prompt,
            agents=agents,
            mode=self.mode,
            cost_cap_usd=self.cost_cap_usd or config.cost_cap_usd,
            max_seconds=self.max_seconds or config.max_seconds,
            models=self.models,
            ignore_failing_models=(
                config.ignore_failing_models
                if self.ignore_failing_models is None
                else self.ignore_failing_models
            ),
            continue_with_available_models=self.continue_with_available_models,
            sequential_style=self.sequential_style.value,
            shuffle_order=self.shuffle_order,
            lead_agent=self.lead_agent,
            **fields,
        )


class EstimateRequest(CamelModel):
    """Pre-call cost estimate; no model is called."""

    prompt: str = Field(..., min_length=1, max_length=MAX_PROMPT_SIZE)
    agents: list[str] = Field(..., min_length=1)
    mode: CollaborationMode = CollaborationMode.ROUND_TABLE
    models: dict[str, list[str]] = Field(default_factory=dict)
    cost_cap_usd: float | None = Field(None, alias="costCapUSD", gt=0)
