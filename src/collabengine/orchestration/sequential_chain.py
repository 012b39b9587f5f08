"""
Sequential Critique Chain - agents refine one running answer in turn.

    agent 1 (initial) -> agent 2 (refine) -> ... -> agent N (final polish)

The style (balanced / contrasting / harmonious) picks the instruction text
for each position. A failing agent is recorded and skipped when policy
allows; the running answer is carried forward unchanged, so the final
answer is always the last one some agent successfully produced.
"""

import logging

from ..errors import AgentFailureError, CostLimitExceededError
from ..models import CollaborationResult, Iteration
from ..resilience.recovery import describe_failure, failure_placeholder
from . import prompts
from .base import CollaborationProtocol
from .styles import INITIAL, agent_order, instruction_for, position_for, resolve_style

logger = logging.getLogger(__name__)


class SequentialCritiqueChain(CollaborationProtocol):
    """
    Ordered chain of refinements.

    Usage:
        result = await SequentialCritiqueChain(ctx).run()
        for step in result.iterations:
            print(step.agent, step.position, step.ok)
    """

    name = "sequential_critique_chain"
    log_prefix = "[Sequential]"

    def __init__(self, ctx, rng=None):
        super().__init__(ctx)
        self.style = resolve_style(self.session.sequential_style)
        self.order = agent_order(self.session.agents, self.session.shuffle_order, rng)
        self.iterations: list[Iteration] = []
        self.current_answer: str | None = None
        self.current_agent: str | None = None

    async def run(self) -> CollaborationResult:
        logger.info(
            f"[Sequential] Chain of {len(self.order)} agents, style={self.style.value}: "
            f"{' -> '.join(self.order)}"
        )
        if len(self.order) < 2:
            logger.warning("[Sequential] Fewer than 2 agents -- the chain is a single answer")

        try:
            next_index = await self._initial()
            self.check_budget()
            if self.aborted:
                return self.finish(self._result(aborted=True))

            for index in range(next_index, len(self.order)):
                await self._refine(index)
                self.check_budget()
                if self.aborted:
                    self._skip_remaining(index + 1, "Aborted (chain terminated early)")
                    return self.finish(self._result(aborted=True))
        except CostLimitExceededError as e:
            if e.partial is None:
                e.partial = self.finish(self._result(aborted=True))
            raise

        return self.finish(self._result())

    # -- steps ---------------------------------------------------------------

    async def _initial(self) -> int:
        """Run the opening answer; returns the index the refinements start at."""
        first = self.order[0]
        self.start_phase("sequential_initial", "Phase 1: Initial Draft", [first])
        for waiting_index, waiting in enumerate(self.order[1:], start=2):
            self.status.update(waiting, "pending", f"Waiting for turn (position {waiting_index})")

        instruction = instruction_for(self.style, position_for(0, len(self.order)))
        prompt = prompts.construct_prompt(self.session.prompt, first, instruction)

        self.status.processing(first, "Creating initial draft")
        result = await self.call(first, prompt, "sequential_initial")
        if result.ok:
            self._accept(first, INITIAL, result.content)
            self.status.completed(first, "Initial draft completed")
            return 1

        self._reject(first, INITIAL, result)
        if not self.session.ignore_failing_models:
            raise AgentFailureError(
                f"Initial agent {first} failed to respond: {result.message}",
                agent=first,
                phase="sequential_initial",
                partial=self.finish(self._result()),
            )
        if len(self.order) < 2 or not self.session.continue_with_available_models:
            raise AgentFailureError(
                f"Initial agent {first} failed and no fallback options are available",
                agent=first,
                phase="sequential_initial",
                partial=self.finish(self._result()),
            )
        if self.aborted:
            return len(self.order)

        fallback = self.order[1]
        logger.info(f"[Sequential] {first} failed -- {fallback} writes the initial draft")
        self.status.update(fallback, "phase_change", "Phase 1: Initial Draft (Fallback)")
        self.status.processing(fallback, "Creating initial draft as fallback")
        result = await self.call(fallback, prompt, "sequential_initial_fallback")
        if not result.ok:
            self._reject(fallback, INITIAL, result)
            raise AgentFailureError(
                f"Both initial agent {first} and fallback agent {fallback} failed to respond",
                agent=fallback,
                phase="sequential_initial_fallback",
                partial=self.finish(self._result()),
            )
        self._accept(fallback, INITIAL, result.content, fallback=True)
        self.status.completed(fallback, "Initial draft completed (as fallback)")
        return 2

    async def _refine(self, index: int) -> None:
        agent_id = self.order[index]
        position = position_for(index, len(self.order))
        phase = f"sequential_critique_{index}"

        self.start_phase(phase, f"Phase {index + 1}: Critique & Refinement", [agent_id])
        self.status.processing(agent_id, "Reviewing and enhancing previous work")

        prompt = prompts.refine_prompt(
            self.session.prompt,
            agent_id,
            self.current_answer or "",
            instruction_for(self.style, position),
        )
        result = await self.call(agent_id, prompt, phase)
        progress = round((index + 1) / len(self.order) * 100)
        if result.ok:
            self._accept(agent_id, position, result.content)
            self.status.completed(agent_id, f"Critique completed ({progress}% chain progress)")
            return

        self._reject(agent_id, position, result)
        if self.aborted:
            return
        if not self.session.ignore_failing_models and not self.session.continue_with_available_models:
            raise AgentFailureError(
                f"Agent {agent_id} failed at position {index + 1} in the sequential chain",
                agent=agent_id,
                phase=phase,
                partial=self.finish(self._result()),
            )
        logger.info(f"[Sequential] Skipping {agent_id}; running answer carried forward")

    def _accept(self, agent_id: str, position: str, content: str, fallback: bool = False) -> None:
        self.current_answer = content
        self.current_agent = agent_id
        self.iterations.append(
            Iteration(agent=agent_id, position=position, content=content, fallback=fallback)
        )

    def _reject(self, agent_id: str, position: str, result) -> None:
        logger.error(f"[Sequential] {agent_id} failed ({position}): {result.message}")
        self.status.failed(agent_id, f"Failed: {result.message}")
        self.iterations.append(
            Iteration(
                agent=agent_id,
                position=position,
                content=failure_placeholder(
                    agent_id, "sequential", describe_failure(result)
                ),
                error=result.error_kind,
            )
        )

    def _skip_remaining(self, start: int, message: str) -> None:
        for agent_id in self.order[start:]:
            self.status.completed(agent_id, message)

    def _result(self, aborted: bool = False) -> CollaborationResult:
        final_agent = self.current_agent or self.order[0]
        if self.current_answer is None:
            answer = "The sequential chain did not produce an answer."
            note = answer
        else:
            answer = self.current_answer
            note = "Chain terminated early; this is the latest refined answer." if aborted else ""
        contributors = [i.agent for i in self.iterations if i.ok]
        return self.new_result(
            answer=answer,
            rationale=note
            or f"Refined sequentially by {', '.join(contributors)} ({self.style.value} style).",
            lead_agent=final_agent,
            summarizer_agent=final_agent,
            iterations=list(self.iterations),
            aborted=aborted,
            truncated=aborted,
            fallback=self.current_answer is None,
            note=note,
        )
