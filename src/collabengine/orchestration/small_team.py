"""
Small Team Protocol - round table tuned for 3-4 agents.

Phase 1: DRAFT          -- serial, with extended timeouts and more retries
Phase 2: CRITIQUE+VOTE  -- one combined call per agent (fewer calls overall)
Phase 3: SYNTHESIS      -- improve the winning draft using its critiques

Calls run one at a time: small teams are usually the slow, rate-limited
models, and serial calls trade wall-clock time for reliability.
"""

import logging

from ..errors import AllAgentsFailedError, CostLimitExceededError
from ..llm.timeouts import SMALL_TEAM_DEFAULT_TIMEOUT_SECONDS, SMALL_TEAM_TIMEOUTS
from ..models import CollaborationResult, Critique, Draft, Vote
from ..resilience.recovery import describe_failure, failure_placeholder
from ..resilience.retry import RetryPolicy
from . import prompts
from .base import CollaborationProtocol, aborted_result, choose_summarizer, pick_winner
from .parsing import parse_critique_vote, parse_synthesis, parse_vote

logger = logging.getLogger(__name__)

SMALL_TEAM_RETRY_POLICY = RetryPolicy(max_retries=3, base_delay_ms=2000)

ONE_DRAFT_RATIONALE = (
    "Only one AI model was able to provide a successful draft. "
    "Collaboration phases were skipped."
)
NO_DRAFTS_ANSWER = "All AI models encountered errors. Please check API status and try again."
NO_DRAFTS_RATIONALE = (
    "No successful drafts were produced. This may indicate API quota issues "
    "or connectivity problems."
)


class SmallTeamProtocol(CollaborationProtocol):
    """
    Serial draft -> combined critique/vote -> synthesis.

    Usage:
        result = await SmallTeamProtocol(ctx).run()
    """

    name = "small_team"
    log_prefix = "[SmallTeam]"
    retry_policy = SMALL_TEAM_RETRY_POLICY
    timeouts = SMALL_TEAM_TIMEOUTS
    default_timeout = SMALL_TEAM_DEFAULT_TIMEOUT_SECONDS

    def __init__(self, ctx):
        super().__init__(ctx)
        self.drafts: list[Draft] = []
        self.critiques: list[Critique] = []
        self.votes: list[Vote] = []

    async def run(self) -> CollaborationResult:
        agents = self.session.agents
        logger.info(f"[SmallTeam] Starting with {len(agents)} agents")
        if not 3 <= len(agents) <= 4:
            logger.warning(f"[SmallTeam] Tuned for 3-4 agents, got {len(agents)}")

        try:
            # Phase 1: Drafts (SERIAL)
            await self._phase_draft(agents)
            if self.aborted:
                return self.finish(self._aborted("during the draft phase"))
            self.check_budget()

            successful = [d for d in self.drafts if d.ok]
            if len(successful) < 2:
                return self.finish(self._too_few_drafts(successful))

            # Phase 2: Combined critique + vote (SERIAL)
            await self._phase_critique_vote(successful)
            if self.aborted:
                return self.finish(self._aborted("after critique and voting"))
            self.check_budget()

            # Phase 3: Synthesis
            result = await self._phase_synthesis(successful)
        except CostLimitExceededError as e:
            if e.partial is None:
                e.partial = self.finish(self._aborted("when the cost limit was reached"))
            raise

        logger.info(f"[SmallTeam] Complete: summarizer={result.summarizer_agent}")
        return self.finish(result)

    def _aborted(self, when: str) -> CollaborationResult:
        return aborted_result(
            self, when, self.drafts, self.votes, critiques=list(self.critiques)
        )

    def _too_few_drafts(self, successful: list[Draft]) -> CollaborationResult:
        if len(successful) == 1:
            only = successful[0]
            logger.warning(f"[SmallTeam] Only {only.agent} produced a draft -- skipping collaboration")
            return self.new_result(
                answer=only.content,
                rationale=ONE_DRAFT_RATIONALE,
                summarizer_agent=only.agent,
                drafts=list(self.drafts),
                note=ONE_DRAFT_RATIONALE,
            )

        failures = "; ".join(f"{d.agent}: {d.message}" for d in self.drafts)
        if not self.session.ignore_failing_models:
            raise AllAgentsFailedError(
                f"Not enough successful drafts (0) to continue ({failures})",
                phase="draft",
                partial=self.finish(self.new_result(answer="", drafts=list(self.drafts))),
            )
        return self.new_result(
            answer=NO_DRAFTS_ANSWER,
            rationale=NO_DRAFTS_RATIONALE,
            summarizer_agent=self.session.lead,
            drafts=list(self.drafts),
            fallback=True,
            note=NO_DRAFTS_RATIONALE,
        )

    # -- phase 1 -------------------------------------------------------------

    async def _phase_draft(self, agents: list[str]) -> None:
        self.start_phase("draft", "Phase 1/3: Initial Drafts", agents)
        for agent_id in agents:
            if self.aborted:
                self.status.completed(agent_id, "Skipped (collaboration aborted)")
                continue
            self.status.processing(agent_id, "Writing initial draft")
            result = await self.call(
                agent_id,
                prompts.small_team_draft_prompt(self.session.prompt, agent_id, len(agents)),
                "draft",
            )
            self.report(result, "Initial draft completed", "Failed to create draft")
            if result.ok:
                self.drafts.append(Draft(agent=agent_id, content=result.content))
            else:
                self.drafts.append(self.draft_failure(result))

    # -- phase 2 -------------------------------------------------------------

    async def _phase_critique_vote(self, successful: list[Draft]) -> None:
        voters = [d.agent for d in successful]
        self.start_phase("critique_vote", "Phase 2/3: Combined Critique & Vote", voters)

        for agent_id in voters:
            if self.aborted:
                self.status.completed(agent_id, "Skipped (collaboration aborted)")
                continue
            others = [d for d in successful if d.agent != agent_id]
            targets = tuple(d.agent for d in others)
            self.status.processing(agent_id, "Critiquing and voting")

            result = await self.call(
                agent_id,
                prompts.critique_vote_prompt(
                    self.session.prompt,
                    agent_id,
                    prompts.format_drafts(others),
                    len(self.session.agents),
                ),
                "critique_vote",
            )
            self.report(result, "Critique and vote completed", "Failed critique/vote")
            if not result.ok:
                placeholder = failure_placeholder(
                    agent_id, "critique_vote", describe_failure(result)
                )
                self.critiques.append(
                    Critique(agent=agent_id, targets=targets, error=result.error_kind, message=placeholder)
                )
                self.votes.append(Vote(agent=agent_id, error=result.error_kind, message=placeholder))
                continue

            parts = parse_critique_vote(result.content)
            candidates = [d.agent for d in successful]
            voted_for = (
                parse_vote(parts.vote, candidates)
                or parse_vote(result.content, candidates)
                or (targets[0] if targets else agent_id)
            )
            logger.info(f"[SmallTeam] {agent_id} voted for {voted_for}")
            self.critiques.append(
                Critique(agent=agent_id, content=parts.critiques or result.content, targets=targets)
            )
            self.votes.append(
                Vote(agent=agent_id, voted_for=voted_for, reasoning=parts.reason or result.content)
            )

    # -- phase 3 -------------------------------------------------------------

    async def _phase_synthesis(self, successful: list[Draft]) -> CollaborationResult:
        winner, counts = pick_winner(self.drafts, self.votes, self.session.lead)
        summarizer = choose_summarizer([d.agent for d in successful], self.session.lead)
        self.start_phase(
            "synthesis", f"Phase 3/3: Synthesis (by {summarizer})", self.session.agents
        )

        critiques_of_winner = "\n\n".join(
            f"{c.agent.upper()}'s CRITIQUE:\n{c.content}"
            for c in self.critiques
            if c.ok and c.agent != winner.agent
        )
        self.status.processing(summarizer, "Creating final summary")
        result = await self.call(
            summarizer,
            prompts.small_team_synthesis_prompt(
                self.session.prompt, summarizer, winner.agent, winner.content, critiques_of_winner
            ),
            "synthesis",
        )

        if not result.ok:
            if self.aborted:
                return self._aborted("before synthesis could complete")
            logger.error(f"[SmallTeam] Synthesis by {summarizer} failed: {result.message}")
            self.status.failed(summarizer, f"Failed synthesis: {result.message}")
            rationale = (
                f"This is the original draft from {winner.agent} which received the most "
                f"votes. Synthesis failed: {describe_failure(result)}"
            )
            return self.new_result(
                answer=winner.content,
                rationale=rationale,
                summarizer_agent=winner.agent,
                drafts=list(self.drafts),
                critiques=list(self.critiques),
                votes=list(self.votes),
                vote_counts=counts,
                fallback=True,
                note=rationale,
            )

        self.status.completed(summarizer, "Summarization completed")
        parts = parse_synthesis(result.content)
        return self.new_result(
            answer=parts.answer,
            rationale=parts.rationale
            or f"Synthesized from multiple AI perspectives with {len(self.session.agents)} contributors.",
            summarizer_agent=summarizer,
            drafts=list(self.drafts),
            critiques=list(self.critiques),
            votes=list(self.votes),
            vote_counts=counts,
        )
