"""
Collaboration Orchestrator - the single entry point for running a session.

    orchestrator = CollaborationOrchestrator(client, service=service, publisher=events)
    result = await orchestrator.run(Session(prompt="...", agents=["claude", "gemini"]))

One run():
  1. validates and sanitizes the prompt
  2. estimates the cost once and refuses the session if it is over the cap
     (no provider is called, spent_usd is 0)
  3. builds the per-session ledger, deadline token, invoker and status reporter
  4. dispatches to the protocol for the session's mode
  5. publishes the result, gives every agent a terminal status and closes
     the event channel, whatever happened
"""

import logging
import random
from dataclasses import replace
from typing import Callable

from ..billing.ledger import CostLedger, estimate_cost
from ..cancellation import CancellationToken
from ..config import EngineConfig
from ..errors import AgentFailureError, CostLimitExceededError, GlobalDeadlineError
from ..events.publisher import EventPublisher, make_event, safe_publish
from ..events.status import StatusCallback, StatusReporter
from ..llm.client import ModelClient
from ..llm.invoker import AgentInvoker
from ..models import CollaborationMode, CollaborationResult, Session
from ..resilience.recovery import describe_failure
from ..security import detect_injection_attempt, sanitize_for_prompt
from ..service import CollaborationService
from .base import CollaborationProtocol, ProtocolContext
from .individual import IndividualResponses
from .round_table import RoundTableProtocol
from .sequential_chain import SequentialCritiqueChain
from .small_team import SmallTeamProtocol

logger = logging.getLogger(__name__)

PROTOCOLS: dict[CollaborationMode, type[CollaborationProtocol]] = {
    CollaborationMode.ROUND_TABLE: RoundTableProtocol,
    CollaborationMode.SEQUENTIAL_CRITIQUE_CHAIN: SequentialCritiqueChain,
    CollaborationMode.SMALL_TEAM: SmallTeamProtocol,
    CollaborationMode.INDIVIDUAL: IndividualResponses,
}

REFUSED_ANSWER = "Collaboration aborted: estimated cost exceeds budget cap."
ALL_FAILED_ANSWER = "All AI models encountered errors. Please check API status and try again."

Estimator = Callable[..., float]


class CollaborationOrchestrator:
    """
    Runs collaboration sessions against one model client.

    The service (limiter + session registry) is shared by every orchestrator
    in the process; the ledger, token and status reporter are per session.
    """

    def __init__(
        self,
        client: ModelClient,
        *,
        service: CollaborationService | None = None,
        publisher: EventPublisher | None = None,
        config: EngineConfig | None = None,
        estimator: Estimator = estimate_cost,
        rng: random.Random | None = None,
    ):
        self.client = client
        self.config = config or (service.config if service is not None else EngineConfig())
        self.service = service or CollaborationService(self.config)
        self.publisher = publisher
        self.estimator = estimator
        self.rng = rng

    # -- public --------------------------------------------------------------

    def estimate(self, session: Session) -> float:
        """Pre-call cost estimate for the whole session, in USD."""
        return self.estimator(
            session.agents, len(session.prompt), session.mode, session.models
        )

    async def run(
        self, session: Session, on_status: StatusCallback | None = None
    ) -> CollaborationResult:
        session = self._prepare(session)
        protocol_cls = PROTOCOLS.get(session.mode)
        if protocol_cls is None:
            raise ValueError(f"Unknown collaboration mode: {session.mode}")

        estimate = self.estimate(session)
        if estimate > session.cost_cap_usd:
            return self._refuse(session, estimate)

        logger.info(
            f"[Orchestrator] Session {session.id}: mode={session.mode.value}, "
            f"agents={session.agents}, prompt={len(session.prompt)} chars, "
            f"estimate=${estimate:.4f} of ${session.cost_cap_usd:.2f}"
        )

        ledger = CostLedger(cap_usd=session.cost_cap_usd, session_id=session.id)
        token = CancellationToken(timeout=session.max_seconds, name=f"session:{session.id}")
        invoker = AgentInvoker(
            self.client,
            self.service.limiter,
            ledger,
            publisher=self.publisher,
            channel_id=session.channel_id,
            retry_policy=self.config.retry_policy,
        )
        status = StatusReporter(on_status, self.publisher, session.channel_id)
        ctx = ProtocolContext(session, invoker, token, status, self.publisher)
        self.service.register(session.id, token)

        try:
            try:
                result = await self._build_protocol(protocol_cls, ctx).run()
            except CostLimitExceededError as e:
                logger.error(f"[Orchestrator] Session {session.id} stopped: {e}")
                if isinstance(e.partial, CollaborationResult):
                    e.partial.spent_usd = ledger.total_spent()
                self.service.record_failure(ledger.total_spent(), invoker.calls)
                raise
            except AgentFailureError as e:
                if not session.ignore_failing_models:
                    logger.error(f"[Orchestrator] Session {session.id} failed: {e}")
                    self.service.record_failure(ledger.total_spent(), invoker.calls)
                    raise
                logger.warning(f"[Orchestrator] Session {session.id} failed, returning fallback: {e}")
                result = self._failure_result(session, e)

            result.spent_usd = ledger.total_spent()
            if session.strict and result.aborted and result.fallback:
                self.service.record_failure(result.spent_usd, invoker.calls)
                raise GlobalDeadlineError(
                    f"Session {session.id} was aborted before producing an answer",
                    partial=result,
                )

            self.service.record_result(result, invoker.calls)
            self._publish(session, "collaboration_result", **_result_event(result))
            logger.info(
                f"[Orchestrator] Session {session.id} complete: spent=${result.spent_usd:.4f}, "
                f"calls={invoker.calls}, aborted={result.aborted}, fallback={result.fallback}"
            )
            return result
        finally:
            token.close()
            status.finalize(session.agents)
            self._publish(session, "collaboration_complete")
            self.service.unregister(session.id)

    # -- steps ---------------------------------------------------------------

    def _prepare(self, session: Session) -> Session:
        if not session.agents:
            raise ValueError("At least one agent is required")
        if not session.prompt or not session.prompt.strip():
            raise ValueError("Prompt cannot be empty")

        prompt = sanitize_for_prompt(session.prompt)
        detect_injection_attempt(prompt)
        if prompt != session.prompt:
            session = replace(session, prompt=prompt)
        return session

    def _build_protocol(
        self, protocol_cls: type[CollaborationProtocol], ctx: ProtocolContext
    ) -> CollaborationProtocol:
        if protocol_cls is SequentialCritiqueChain:
            return SequentialCritiqueChain(ctx, rng=self.rng)
        return protocol_cls(ctx)

    def _refuse(self, session: Session, estimate: float) -> CollaborationResult:
        logger.warning(
            f"[Orchestrator] Session {session.id} refused: estimate ${estimate:.4f} "
            f"exceeds cap ${session.cost_cap_usd:.2f}"
        )
        rationale = (
            f"The estimated cost (${estimate:.4f}) exceeds the budget cap "
            f"(${session.cost_cap_usd:.2f}). No model was called."
        )
        result = CollaborationResult(
            session_id=session.id,
            answer=REFUSED_ANSWER,
            rationale=rationale,
            mode=session.mode.value,
            lead_agent=session.lead,
            spent_usd=0.0,
            refused=True,
            note=rationale,
        )
        self.service.record_result(result)
        self._publish(session, "collaboration_result", **_result_event(result))
        self._publish(session, "collaboration_complete")
        return result

    def _failure_result(self, session: Session, error: AgentFailureError) -> CollaborationResult:
        """Explained fallback when failing models are to be ignored."""
        partial = error.partial if isinstance(error.partial, CollaborationResult) else None
        reason = describe_failure(error)
        rationale = (
            f"The collaboration could not complete ({reason}). "
            "This may indicate API quota issues or connectivity problems."
        )
        if partial is not None and partial.answer and not partial.fallback:
            return replace(partial, rationale=rationale, fallback=True, note=rationale)

        return CollaborationResult(
            session_id=session.id,
            answer=ALL_FAILED_ANSWER,
            rationale=rationale,
            mode=session.mode.value,
            lead_agent=session.lead,
            summarizer_agent=session.lead,
            drafts=list(partial.drafts) if partial else [],
            iterations=list(partial.iterations) if partial else [],
            fallback=True,
            note=rationale,
            duration_seconds=partial.duration_seconds if partial else 0.0,
        )

    def _publish(self, session: Session, event_type: str, **fields) -> None:
        safe_publish(self.publisher, session.channel_id, make_event(event_type, **fields))


def _result_event(result: CollaborationResult) -> dict:
    return {
        "session_id": result.session_id,
        "answer": result.answer,
        "rationale": result.rationale,
        "lead_agent": result.lead_agent,
        "summarizer_agent": result.summarizer_agent,
        "mode": result.mode,
        "spent_usd": result.spent_usd,
        "aborted": result.aborted,
        "fallback": result.fallback,
        "refused": result.refused,
        "truncated": result.truncated,
    }
