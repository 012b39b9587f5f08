"""
Agent invoker -- run one prompt against one agent, safely.

Each attempt:
  1. stops early if the session was cancelled (GlobalDeadlineError, terminal)
     or the budget is spent (CostLimitExceededError, terminal)
  2. waits for a slot on the agent's provider, giving up if the session
     is cancelled while it queues
  3. calls the model client under a child token with the per-call timeout
  4. releases the slot and the child token whatever happened

Transient failures (timeouts, resets, 429/5xx) are retried with backoff.
When retries run out the caller gets a Failure record instead of an
exception, so one bad agent never tears down a phase. Strict callers get
the exception instead.
"""

import logging
import math
from typing import Any, Mapping

from ..billing.ledger import CostLedger
from ..billing.pricing import estimate_tokens
from ..cancellation import COST_REASON, CancellationToken
from ..concurrency.limiter import ProviderLimiter
from ..errors import (
    CollaborationError,
    CostLimitExceededError,
    GlobalDeadlineError,
    UnclassifiedError,
    error_kind,
)
from ..events.publisher import EventPublisher, make_event, safe_publish
from ..models import Agent, Failure, PhaseTaskResult, Success
from ..resilience.retry import RetryPolicy, is_retryable, with_retry
from ..truncation.limits import fit_prompt, truncate_model_response
from .client import AgentPrompt, ModelClient, ModelReply, StreamingModelClient
from .timeouts import DEFAULT_TIMEOUT_SECONDS, timeout_for_model

logger = logging.getLogger(__name__)


class EmptyResponseError(CollaborationError):
    """The model answered with nothing usable."""

    kind = "empty_response"


class AgentInvoker:
    """
    Executes agent calls with concurrency limits, timeouts, retries and
    cost accounting.

    Usage:
        invoker = AgentInvoker(client, limiter, ledger, publisher=events,
                               channel_id=session.channel_id)
        result = await invoker.invoke(agent, prompt, "draft", session_token)
        if result.ok:
            print(result.content)
    """

    def __init__(
        self,
        client: ModelClient,
        limiter: ProviderLimiter,
        ledger: CostLedger,
        publisher: EventPublisher | None = None,
        channel_id: str = "",
        retry_policy: RetryPolicy | None = None,
        timeouts: Mapping[str, float] | None = None,
        default_timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        self._client = client
        self._limiter = limiter
        self._ledger = ledger
        self._publisher = publisher
        self._channel_id = channel_id
        self._retry_policy = retry_policy or RetryPolicy()
        self._timeouts = dict(timeouts) if timeouts is not None else None
        self._default_timeout = default_timeout
        self.calls = 0

    @property
    def ledger(self) -> CostLedger:
        return self._ledger

    def timeout_for(
        self,
        agent: Agent,
        timeouts: Mapping[str, float] | None = None,
        default: float | None = None,
    ) -> float:
        table = timeouts if timeouts is not None else self._timeouts
        return timeout_for_model(
            agent.resolved_model,
            dict(table) if table is not None else None,
            default if default is not None else self._default_timeout,
        )

    async def invoke(
        self,
        agent: Agent,
        prompt: AgentPrompt,
        phase: str,
        session_token: CancellationToken,
        *,
        strict: bool = False,
        retry_policy: RetryPolicy | None = None,
        timeouts: Mapping[str, float] | None = None,
        default_timeout: float | None = None,
    ) -> PhaseTaskResult:
        policy = retry_policy or self._retry_policy
        call_timeout = self.timeout_for(agent, timeouts, default_timeout)
        system_prompt, user_prompt = fit_prompt(
            prompt.system_prompt, prompt.user_prompt, agent.provider
        )
        prompt = AgentPrompt(system_prompt=system_prompt, user_prompt=user_prompt)

        safe_publish(
            self._publisher,
            self._channel_id,
            make_event("agent_thinking", agent=agent.id, phase=phase),
        )

        async def _attempt(attempt: int) -> str:
            session_token.raise_if_cancelled()
            self._check_budget(agent, phase)

            slot = await session_token.guard(self._limiter.acquire(agent.provider))
            try:
                session_token.raise_if_cancelled()
                call_token = session_token.child(
                    timeout=call_timeout, name=f"{agent.id}:{phase}"
                )
                try:
                    self.calls += 1
                    reply = await call_token.guard(self._call(agent, prompt, phase, call_token))
                finally:
                    call_token.close()
            finally:
                slot.release()

            return self._settle(agent, prompt, phase, reply, session_token)

        async def _on_retry(error: BaseException, next_attempt: int, delay_ms: float) -> None:
            safe_publish(
                self._publisher,
                self._channel_id,
                make_event(
                    "agent_retry",
                    agent=agent.id,
                    phase=phase,
                    attempt=next_attempt + 1,
                    max_attempts=policy.max_retries + 1,
                    delay_ms=round(delay_ms),
                    error=type(error).__name__,
                ),
            )

        try:
            content = await with_retry(
                _attempt,
                max_retries=policy.max_retries,
                base_delay_ms=policy.base_delay_ms,
                max_delay_ms=policy.max_delay_ms,
                on_retry=_on_retry,
                token=session_token,
            )
            return Success(agent=agent.id, content=content)
        except (GlobalDeadlineError, CostLimitExceededError) as e:
            if e.agent is None:
                e.agent, e.provider, e.phase = agent.id, agent.provider, phase
            if isinstance(e, CostLimitExceededError) and not e.cap_usd:
                e.spent_usd, e.cap_usd = self._ledger.total_spent(), self._ledger.cap_usd
            raise
        except Exception as e:
            logger.error(f"[Invoker] {agent.id} failed in {phase}: {type(e).__name__}: {e}")
            if strict:
                if isinstance(e, CollaborationError):
                    raise
                raise UnclassifiedError(
                    cause=e, agent=agent.id, phase=phase, provider=agent.provider
                ) from e
            return Failure(
                agent=agent.id,
                error_kind=error_kind(e),
                message=str(e) or type(e).__name__,
                retryable=is_retryable(e),
                phase=phase,
            )

    def _check_budget(self, agent: Agent, phase: str) -> None:
        if self._ledger.should_abort():
            raise CostLimitExceededError(
                spent_usd=self._ledger.total_spent(),
                cap_usd=self._ledger.cap_usd,
                agent=agent.id,
                phase=phase,
                provider=agent.provider,
            )

    async def _call(
        self,
        agent: Agent,
        prompt: AgentPrompt,
        phase: str,
        token: CancellationToken,
    ) -> Any:
        if self._publisher is not None and isinstance(self._client, StreamingModelClient):
            chunks = []
            async for chunk in self._client.stream(agent.id, agent.model_id, prompt, token):
                chunks.append(chunk)
                safe_publish(
                    self._publisher,
                    self._channel_id,
                    make_event("agent_thought", agent=agent.id, phase=phase, chunk=chunk),
                )
            return "".join(chunks)
        return await self._client.invoke(agent.id, agent.model_id, prompt, token)

    def _settle(
        self,
        agent: Agent,
        prompt: AgentPrompt,
        phase: str,
        reply: Any,
        session_token: CancellationToken,
    ) -> str:
        """
        Record usage, trim the text, and reject empty answers. The call that
        breaches the budget keeps its answer but cancels the session, so the
        other calls still in flight stop with CostLimitExceededError.
        """
        if isinstance(reply, ModelReply):
            text = reply.text or ""
            input_tokens = reply.input_tokens
            output_tokens = reply.output_tokens
        else:
            text = "" if reply is None else str(reply)
            input_tokens = output_tokens = None

        if input_tokens is None:
            input_tokens = estimate_tokens(prompt.system_prompt) + estimate_tokens(prompt.user_prompt)
        if output_tokens is None:
            output_tokens = math.ceil(len(text) / 4)

        self._ledger.add_cost(
            agent.id, input_tokens, output_tokens,
            provider=agent.provider, model=agent.resolved_model,
        )
        if self._ledger.should_abort() and not session_token.cancelled:
            logger.warning(
                f"[Invoker] Cost limit reached after {agent.id} in {phase}, "
                f"stopping calls in flight"
            )
            session_token.cancel(COST_REASON)

        if not text.strip():
            raise EmptyResponseError(
                f"{agent.id} returned an empty response",
                agent=agent.id, phase=phase, provider=agent.provider,
            )
        return truncate_model_response(text, agent.provider, phase)
