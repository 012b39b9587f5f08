"""
Shared machinery for collaboration protocols.

A protocol is a class with one public coroutine, run(), that walks its
phases in order and returns a CollaborationResult. Everything a protocol
needs from the outside world arrives in a ProtocolContext:

    ctx = ProtocolContext(session, invoker, token, status, publisher)
    result = await RoundTableProtocol(ctx).run()

Rules every protocol follows:
  - one task per agent per phase, results correlated by agent id
  - the session token is checked at every phase boundary; once it has fired
    no new calls are made and the best partial result is returned
  - a cost breach raises CostLimitExceededError carrying the partial result
  - a phase with no successes either raises AllAgentsFailedError or is
    replaced by an explicit fallback, never left silently empty
"""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping, Sequence

from ..billing.ledger import CostLedger
from ..cancellation import COST_REASON, CancellationToken
from ..concurrency.fanout import run_bounded
from ..errors import (
    CollaborationError,
    CostLimitExceededError,
    GlobalDeadlineError,
    error_kind,
)
from ..events.publisher import EventPublisher, make_event, safe_publish
from ..events.status import StatusReporter
from ..llm.client import AgentPrompt
from ..llm.invoker import AgentInvoker
from ..models import (
    Agent,
    CollaborationResult,
    Draft,
    Failure,
    PhaseTaskResult,
    Session,
    Vote,
)
from ..providers import max_context_size
from ..resilience.recovery import describe_failure, failure_placeholder
from ..resilience.retry import RetryPolicy
from .parsing import tally_votes

logger = logging.getLogger(__name__)

PREFERRED_SUMMARIZERS = ("gemini", "claude")

ABORTED_NOTE = (
    "Collaboration was aborted {when} due to time constraints. "
    "This represents the best available draft."
)
NO_RESULT_NOTE = "The collaboration was aborted before any agent produced a usable answer."


# =============================================================================
# CONTEXT
# =============================================================================


@dataclass
class ProtocolContext:
    """Per-session collaborators handed to a protocol."""

    session: Session
    invoker: AgentInvoker
    token: CancellationToken
    status: StatusReporter
    publisher: EventPublisher | None = None

    @property
    def ledger(self) -> CostLedger:
        return self.invoker.ledger

    @property
    def channel_id(self) -> str:
        return self.session.channel_id

    def agent(self, agent_id: str) -> Agent:
        return self.session.agent(agent_id)

    def publish(self, event_type: str, **fields: Any) -> None:
        safe_publish(self.publisher, self.channel_id, make_event(event_type, **fields))


# =============================================================================
# BASE PROTOCOL
# =============================================================================


class CollaborationProtocol(ABC):
    """Base class with the phase helpers shared by every protocol."""

    name = "protocol"
    log_prefix = "[Protocol]"
    retry_policy: RetryPolicy | None = None
    timeouts: Mapping[str, float] | None = None
    default_timeout: float | None = None

    def __init__(self, ctx: ProtocolContext):
        self.ctx = ctx
        self.session = ctx.session
        self.status = ctx.status
        self._start = time.monotonic()

    @abstractmethod
    async def run(self) -> CollaborationResult:
        """Walk every phase and return the session result."""

    # -- calls ---------------------------------------------------------------

    async def call(self, agent_id: str, prompt: AgentPrompt, phase: str) -> PhaseTaskResult:
        """
        One agent call. Per-agent errors come back as Failure records; a
        session abort inside the call becomes a Failure too so the rest of
        the phase can settle. Cost breaches (and strict-mode errors) raise.
        """
        agent = self.ctx.agent(agent_id)
        try:
            return await self.ctx.invoker.invoke(
                agent,
                prompt,
                phase,
                self.ctx.token,
                strict=self.session.strict,
                retry_policy=self.retry_policy,
                timeouts=self.timeouts,
                default_timeout=self.default_timeout,
            )
        except GlobalDeadlineError as e:
            return Failure(
                agent=agent_id,
                error_kind=e.kind,
                message=str(e),
                retryable=False,
                phase=phase,
            )

    async def run_phase(
        self,
        factories: Sequence[Callable[[], Awaitable[Any]]],
        max_concurrent: int,
    ) -> list[Any]:
        # A cost breach cancels the session token, so sibling calls stop on
        # their own and settle as cost failures.
        fail_fast: tuple[type[BaseException], ...] = ()
        if self.session.strict:
            fail_fast = (CollaborationError,)
        results = await run_bounded(factories, max_concurrent, fail_fast=fail_fast)
        for r in results:
            if isinstance(r, BaseException):
                logger.error(f"{self.log_prefix} Phase task raised {type(r).__name__}: {r}")
        return results

    # -- phase boundaries ----------------------------------------------------

    def start_phase(self, phase: str, label: str, agents: Sequence[str]) -> None:
        logger.info(f"{self.log_prefix} {label} ({len(agents)} agents)")
        self.ctx.publish("phase_start", phase=phase)
        self.status.phase_change(agents, label)

    @property
    def aborted(self) -> bool:
        """Deadline or caller cancel. A cost stop is reported by check_budget."""
        token = self.ctx.token
        return token.cancelled and token.reason != COST_REASON

    def check_budget(self, partial: CollaborationResult | None = None) -> None:
        ledger = self.ctx.ledger
        if ledger.should_abort():
            raise CostLimitExceededError(
                spent_usd=ledger.total_spent(),
                cap_usd=ledger.cap_usd,
                partial=partial,
            )

    # -- records -------------------------------------------------------------

    def draft_failure(self, result: Failure) -> Draft:
        return Draft(
            agent=result.agent,
            error=result.error_kind,
            message=failure_placeholder(result.agent, "draft", describe_failure(result)),
        )

    def report(self, result: PhaseTaskResult, done: str, failed: str) -> None:
        if result.ok:
            self.status.completed(result.agent, done)
        else:
            self.status.failed(result.agent, f"{failed}: {result.message}")

    def new_result(self, **fields: Any) -> CollaborationResult:
        fields.setdefault("lead_agent", self.session.lead)
        return CollaborationResult(
            session_id=self.session.id,
            mode=self.session.mode.value,
            **fields,
        )

    def finish(self, result: CollaborationResult) -> CollaborationResult:
        result.spent_usd = self.ctx.ledger.total_spent()
        result.duration_seconds = round(time.monotonic() - self._start, 3)
        return result


# =============================================================================
# SELECTION HELPERS
# =============================================================================


def choose_summarizer(successful: Sequence[str], lead: str) -> str:
    """
    Preferred provider among agents with a successful draft, else the agent
    with the largest context window, else the lead.
    """
    for preferred in PREFERRED_SUMMARIZERS:
        for agent_id in successful:
            if Agent.from_id(agent_id).provider == preferred:
                return agent_id
    if successful:
        return max(successful, key=lambda a: max_context_size(Agent.from_id(a).provider))
    return lead


def pick_winner(
    drafts: Sequence[Draft], votes: Sequence[Vote], lead: str
) -> tuple[Draft | None, dict[str, int]]:
    """Most-voted successful draft; without votes the lead's, else the first."""
    successful = {d.agent: d for d in drafts if d.ok}
    winner, counts = tally_votes(votes)
    if winner in successful:
        return successful[winner], counts
    if lead in successful:
        return successful[lead], counts
    first = next(iter(successful.values()), None)
    return first, counts


def aborted_result(
    protocol: CollaborationProtocol,
    when: str,
    drafts: Sequence[Draft],
    votes: Sequence[Vote] = (),
    **fields: Any,
) -> CollaborationResult:
    """Best partial result once the session deadline has fired."""
    winner, counts = pick_winner(drafts, votes, protocol.session.lead)
    logger.warning(f"{protocol.log_prefix} Aborted {when}")
    if winner is None:
        return protocol.new_result(
            answer=NO_RESULT_NOTE,
            rationale=NO_RESULT_NOTE,
            drafts=list(drafts),
            votes=list(votes),
            aborted=True,
            fallback=True,
            note=NO_RESULT_NOTE,
            **fields,
        )

    note = ABORTED_NOTE.format(when=when)
    if counts.get(winner.agent):
        note = (
            f"Collaboration was aborted {when}. The draft from {winner.agent} "
            f"received the most votes ({counts[winner.agent]})."
        )
    return protocol.new_result(
        answer=winner.content,
        rationale=note,
        summarizer_agent=winner.agent,
        drafts=list(drafts),
        votes=list(votes),
        vote_counts=counts,
        aborted=True,
        truncated=True,
        note=note,
        **fields,
    )


def settle(agent_id: str, outcome: Any, phase: str) -> PhaseTaskResult:
    """Turn an exception left in a phase result slot into a Failure."""
    if isinstance(outcome, BaseException):
        return Failure(
            agent=agent_id,
            error_kind=error_kind(outcome),
            message=str(outcome) or type(outcome).__name__,
            phase=phase,
        )
    return outcome
