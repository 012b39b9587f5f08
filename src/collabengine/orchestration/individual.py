"""
Individual Responses - every agent answers on its own, no collaboration.

One phase: all agents respond to the prompt in parallel. There is no
critique, vote or synthesis; the answer lists each successful response
under the agent's name, and the full texts stay in the drafts.
"""

import logging

from ..concurrency.fanout import DRAFT_MAX_CONCURRENT
from ..errors import AllAgentsFailedError, CostLimitExceededError
from ..models import CollaborationResult, Draft
from . import prompts
from .base import CollaborationProtocol, aborted_result, settle

logger = logging.getLogger(__name__)

PHASE = "individual_response"
PREVIEW_CHARS = 300

INDIVIDUAL_RATIONALE = (
    "Each AI has provided an independent response with no collaboration between models."
)


class IndividualResponses(CollaborationProtocol):
    """
    Parallel, independent answers.

    Usage:
        result = await IndividualResponses(ctx).run()
        for draft in result.drafts:
            print(draft.agent, draft.content)
    """

    name = "individual"
    log_prefix = "[Individual]"

    def __init__(self, ctx):
        super().__init__(ctx)
        self.drafts: list[Draft] = []

    async def run(self) -> CollaborationResult:
        agents = self.session.agents
        logger.info(f"[Individual] Collecting {len(agents)} independent responses")

        try:
            self.drafts = await self._phase_respond(agents)
            if self.aborted:
                return self.finish(aborted_result(self, "while collecting responses", self.drafts))
            self.check_budget()
        except CostLimitExceededError as e:
            if e.partial is None:
                e.partial = self.finish(
                    aborted_result(self, "when the cost limit was reached", self.drafts)
                )
            raise

        successful = [d for d in self.drafts if d.ok]
        if not successful:
            failures = "; ".join(f"{d.agent}: {d.message}" for d in self.drafts)
            raise AllAgentsFailedError(
                f"All agents failed to respond ({failures})",
                phase=PHASE,
                partial=self.finish(self.new_result(answer="", drafts=list(self.drafts))),
            )

        logger.info(f"[Individual] Complete: {len(successful)}/{len(self.drafts)} responses")
        return self.finish(
            self.new_result(
                answer=compile_answer(successful),
                rationale=INDIVIDUAL_RATIONALE,
                drafts=list(self.drafts),
            )
        )

    async def _phase_respond(self, agents: list[str]) -> list[Draft]:
        self.start_phase(PHASE, "Individual responses", agents)

        async def _respond(agent_id: str) -> Draft:
            self.status.processing(agent_id, "Writing response")
            result = await self.call(
                agent_id, prompts.individual_prompt(self.session.prompt, agent_id), PHASE
            )
            self.report(result, "Response completed", "Failed to respond")
            if result.ok:
                return Draft(agent=agent_id, content=result.content)
            return self.draft_failure(result)

        outcomes = await self.run_phase(
            [lambda a=a: _respond(a) for a in agents], DRAFT_MAX_CONCURRENT
        )
        drafts = []
        for agent_id, outcome in zip(agents, outcomes):
            outcome = settle(agent_id, outcome, PHASE)
            drafts.append(outcome if isinstance(outcome, Draft) else self.draft_failure(outcome))
        return drafts


def compile_answer(drafts: list[Draft]) -> str:
    """One section per agent, each response cut to a short preview."""
    sections = ["Individual responses from each AI model:"]
    for draft in drafts:
        preview = draft.content
        if len(preview) > PREVIEW_CHARS:
            preview = preview[:PREVIEW_CHARS] + "..."
        sections.append(f"## {draft.agent.upper()}'S RESPONSE:\n{preview}")
    return "\n\n".join(sections)
