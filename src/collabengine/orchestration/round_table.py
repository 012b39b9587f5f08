"""
Round Table Protocol - parallel multi-agent collaboration in 4 phases.

Phase 1: DRAFT     -- every agent answers independently, in parallel
Phase 2: CRITIQUE  -- agents with a draft critique every OTHER successful draft
Phase 3: VOTE      -- the same agents pick the best draft as a starting point
Phase 4: SYNTHESIS -- one summarizer merges drafts + votes into answer/rationale

Degradation rules:
- A failed draft stays in the provenance (marked failed) and drops out of
  later phases; the session carries on with the survivors
- No successful draft at all -> AllAgentsFailedError
- Summarizer fails -> every other successful agent is tried in turn
- All synthesis attempts fail -> the most-voted draft, verbatim, annotated
  with why it was chosen and what critics said about it
- Session deadline -> stop issuing calls, return the best draft so far
"""

import logging
from dataclasses import replace

from ..concurrency.fanout import (
    CRITIQUE_MAX_CONCURRENT,
    DRAFT_MAX_CONCURRENT,
    VOTE_MAX_CONCURRENT,
)
from ..errors import AgentFailureError, AllAgentsFailedError, CostLimitExceededError
from ..models import CollaborationResult, Critique, Draft, Vote
from ..resilience.recovery import describe_failure, failure_placeholder
from ..truncation import ContentType, truncate, truncate_collection
from ..truncation.limits import MAX_COLLECTION_LENGTH
from . import prompts
from .base import (
    CollaborationProtocol,
    aborted_result,
    choose_summarizer,
    pick_winner,
    settle,
)
from .parsing import parse_synthesis, resolve_vote

logger = logging.getLogger(__name__)

BRIEF_REASON_CHARS = 200
MAX_REASONS_QUOTED = 2


class RoundTableProtocol(CollaborationProtocol):
    """
    Parallel draft -> critique -> vote -> synthesis.

    Usage:
        result = await RoundTableProtocol(ctx).run()
        print(result.answer, result.vote_counts)
    """

    name = "round_table"
    log_prefix = "[RoundTable]"

    def __init__(self, ctx):
        super().__init__(ctx)
        self.drafts: list[Draft] = []
        self.critiques: list[Critique] = []
        self.votes: list[Vote] = []

    async def run(self) -> CollaborationResult:
        """Execute the full 4-phase round table protocol."""
        agents = self.session.agents
        logger.info(f"[RoundTable] Starting with {len(agents)} agents, lead={self.session.lead}")

        try:
            # Phase 1: Drafts (PARALLEL)
            self.drafts = await self._phase_draft(agents)
            successful = [d for d in self.drafts if d.ok]
            if self.aborted:
                return self.finish(self._aborted("after the draft phase"))
            self.check_budget()
            self._require_drafts(successful)

            # Phase 2: Critique
            self.critiques = await self._phase_critique(successful)
            if self.aborted:
                return self.finish(self._aborted("after the critique phase"))
            self.check_budget()

            # Phase 3: Vote
            self.votes = await self._phase_vote(successful)
            if self.aborted:
                return self.finish(self._aborted("after voting but before synthesis"))
            self.check_budget()

            # Phase 4: Synthesis
            result = await self._phase_synthesis(successful)
        except CostLimitExceededError as e:
            if e.partial is None:
                e.partial = self.finish(self._aborted("when the cost limit was reached"))
            raise

        logger.info(
            f"[RoundTable] Complete: summarizer={result.summarizer_agent}, "
            f"votes={result.vote_counts}, fallback={result.fallback}"
        )
        return self.finish(result)

    def _require_drafts(self, successful: list[Draft]) -> None:
        if not successful:
            failures = "; ".join(f"{d.agent}: {d.message}" for d in self.drafts)
            raise AllAgentsFailedError(
                f"All agents failed to provide drafts ({failures})",
                phase="draft",
                partial=self.finish(self._base_result()),
            )
        failed = [d.agent for d in self.drafts if not d.ok]
        if (
            failed
            and not self.session.continue_with_available_models
            and not self.session.ignore_failing_models
        ):
            raise AgentFailureError(
                f"Draft failed for {', '.join(failed)} and continuing without them is disabled",
                agent=failed[0],
                phase="draft",
                partial=self.finish(self._base_result()),
            )

    def _base_result(self, **fields) -> CollaborationResult:
        return self.new_result(
            answer=fields.pop("answer", ""),
            drafts=list(self.drafts),
            critiques=list(self.critiques),
            votes=list(self.votes),
            **fields,
        )

    def _aborted(self, when: str) -> CollaborationResult:
        return aborted_result(
            self, when, self.drafts, self.votes, critiques=list(self.critiques)
        )

    # -- phase 1 -------------------------------------------------------------

    async def _phase_draft(self, agents: list[str]) -> list[Draft]:
        """All agents draft independently and in PARALLEL."""
        self.start_phase("draft", "Phase 1/4: Initial Drafts", agents)

        async def _draft(agent_id: str) -> Draft:
            self.status.processing(agent_id, "Writing initial draft")
            result = await self.call(agent_id, prompts.draft_prompt(self.session.prompt, agent_id), "draft")
            self.report(result, "Initial draft completed", "Failed to create draft")
            if result.ok:
                logger.info(f"[RoundTable] {agent_id} draft complete ({len(result.content)} chars)")
                return Draft(agent=agent_id, content=result.content)
            return self.draft_failure(result)

        outcomes = await self.run_phase(
            [lambda a=a: _draft(a) for a in agents], DRAFT_MAX_CONCURRENT
        )
        drafts = []
        for agent_id, outcome in zip(agents, outcomes):
            outcome = settle(agent_id, outcome, "draft")
            drafts.append(outcome if isinstance(outcome, Draft) else self.draft_failure(outcome))

        ok = sum(1 for d in drafts if d.ok)
        logger.info(f"[RoundTable] Successful drafts: {ok}/{len(drafts)}")
        return drafts

    # -- phase 2 -------------------------------------------------------------

    async def _phase_critique(self, successful: list[Draft]) -> list[Critique]:
        """Each agent critiques every other successful draft."""
        critics = [d.agent for d in successful] if len(successful) > 1 else []
        self.start_phase("critique", "Phase 2/4: Critique", critics)
        if not critics:
            logger.info("[RoundTable] Single successful draft -- nothing to critique")
            return []

        async def _critique(agent_id: str) -> Critique:
            others = [d for d in successful if d.agent != agent_id]
            targets = tuple(d.agent for d in others)
            drafts_text = prompts.format_drafts(self._fit(others))
            self.status.processing(agent_id, "Critiquing drafts")
            result = await self.call(
                agent_id,
                prompts.critique_prompt(self.session.prompt, agent_id, drafts_text),
                "critique",
            )
            self.report(result, "Critique completed", "Failed to create critique")
            if result.ok:
                return Critique(agent=agent_id, content=result.content, targets=targets)
            return Critique(
                agent=agent_id,
                targets=targets,
                error=result.error_kind,
                message=failure_placeholder(agent_id, "critique", describe_failure(result)),
            )

        outcomes = await self.run_phase(
            [lambda a=a: _critique(a) for a in critics], CRITIQUE_MAX_CONCURRENT
        )
        critiques = []
        for agent_id, outcome in zip(critics, outcomes):
            if isinstance(outcome, BaseException):
                outcome = Critique(
                    agent=agent_id,
                    error=settle(agent_id, outcome, "critique").error_kind,
                    message=failure_placeholder(agent_id, "critique", describe_failure(outcome)),
                )
            critiques.append(outcome)

        if not any(c.ok for c in critiques):
            logger.warning("[RoundTable] No critiques succeeded -- voting on drafts alone")
        return critiques

    # -- phase 3 -------------------------------------------------------------

    async def _phase_vote(self, successful: list[Draft]) -> list[Vote]:
        """Agents with a successful draft vote for the best starting point."""
        voters = [d.agent for d in successful]
        candidates = [d.agent for d in successful]
        self.start_phase("vote", "Phase 3/4: Voting", voters)

        drafts_text = prompts.format_drafts(self._fit(successful))
        critiques_text = prompts.format_critiques(
            self._fit([c for c in self.critiques if c.ok], MAX_COLLECTION_LENGTH // 2)
        )

        async def _vote(agent_id: str) -> Vote:
            self.status.processing(agent_id, "Voting")
            result = await self.call(
                agent_id,
                prompts.vote_prompt(self.session.prompt, agent_id, drafts_text, critiques_text),
                "vote",
            )
            self.report(result, "Voting completed", "Failed to vote")
            if not result.ok:
                return Vote(
                    agent=agent_id,
                    error=result.error_kind,
                    message=failure_placeholder(agent_id, "vote", describe_failure(result)),
                )
            voted_for = resolve_vote(result.content, candidates, agent_id)
            logger.info(f"[RoundTable] {agent_id} voted for {voted_for}")
            return Vote(agent=agent_id, voted_for=voted_for, reasoning=result.content)

        outcomes = await self.run_phase(
            [lambda a=a: _vote(a) for a in voters], VOTE_MAX_CONCURRENT
        )
        votes = []
        for agent_id, outcome in zip(voters, outcomes):
            if isinstance(outcome, BaseException):
                outcome = Vote(
                    agent=agent_id,
                    error=settle(agent_id, outcome, "vote").error_kind,
                    message=failure_placeholder(agent_id, "vote", describe_failure(outcome)),
                )
            votes.append(outcome)

        if not any(v.ok for v in votes):
            logger.warning("[RoundTable] No votes succeeded -- lead's draft becomes the default")
        return votes

    # -- phase 4 -------------------------------------------------------------

    async def _phase_synthesis(self, successful: list[Draft]) -> CollaborationResult:
        """Summarizer merges everything; other agents stand in if it fails."""
        successful_ids = [d.agent for d in successful]
        summarizer = choose_summarizer(successful_ids, self.session.lead)
        self.start_phase(
            "synthesis", f"Phase 4/4: Synthesis (by {summarizer})", self.session.agents
        )

        winner, counts = pick_winner(self.drafts, self.votes, self.session.lead)
        valid_votes = [v for v in self.votes if v.ok]
        drafts_text = prompts.format_drafts(self._fit(successful))
        votes_text = prompts.format_votes(valid_votes)

        attempts = [summarizer] + [a for a in successful_ids if a != summarizer]
        for position, agent_id in enumerate(attempts):
            if self.aborted:
                return self._aborted("before synthesis could complete")
            label = "Creating final summary" if position == 0 else "Creating final summary (fallback)"
            self.status.processing(agent_id, label)

            result = await self.call(
                agent_id,
                prompts.synthesis_prompt(self.session.prompt, agent_id, drafts_text, votes_text),
                "synthesis",
            )
            if result.ok:
                self.status.completed(agent_id, "Summarization completed")
                parts = parse_synthesis(result.content)
                return self._base_result(
                    answer=parts.answer,
                    rationale=parts.rationale
                    or f"Synthesized from multiple AI perspectives with {len(valid_votes)} votes.",
                    summarizer_agent=agent_id,
                    vote_counts=counts,
                )
            logger.error(f"[RoundTable] Synthesis by {agent_id} failed: {result.message}")
            self.status.failed(agent_id, f"Failed to create summary: {result.message}")

        if self.aborted:
            return self._aborted("before synthesis could complete")
        return self._synthesis_fallback(winner, counts)

    def _synthesis_fallback(self, winner: Draft, counts: dict[str, int]) -> CollaborationResult:
        """Most-voted draft verbatim, annotated with vote reasons and critiques."""
        logger.warning(f"[RoundTable] All synthesis attempts failed -- using {winner.agent}'s draft")
        return self._base_result(
            answer=winner.content,
            rationale=self._fallback_rationale(winner, counts),
            summarizer_agent=winner.agent,
            vote_counts=counts,
            fallback=True,
            note="Synthesis failed; the most-voted draft is returned without improvements.",
        )

    def _fallback_rationale(self, winner: Draft, counts: dict[str, int]) -> str:
        votes_for = [v for v in self.votes if v.ok and v.voted_for == winner.agent]
        critiques_of = [c for c in self.critiques if c.ok and winner.agent in c.targets]

        if counts.get(winner.agent):
            lines = [
                f"This draft from {winner.agent} received the most votes "
                f"({counts[winner.agent]}) from the collaboration. The synthesis phase "
                f"failed, so this is the most preferred draft without improvements."
            ]
        else:
            lines = [
                f"This answer uses {winner.agent}'s draft as a fallback since synthesis "
                f"failed and there was no clear winner in the voting."
            ]
        if votes_for:
            lines.append("Key reasons this draft was selected:")
            lines.extend(
                f"- {v.agent} voted for this draft because: {_brief(v.reasoning)}"
                for v in votes_for[:MAX_REASONS_QUOTED]
            )
        if critiques_of:
            lines.append("Points that could have been improved:")
            lines.extend(
                f"- {c.agent} noted: {_brief(c.content)}" for c in critiques_of[:MAX_REASONS_QUOTED]
            )
        return "\n\n".join(lines)

    def _fit(self, records, max_total: int = MAX_COLLECTION_LENGTH):
        """Shrink draft/critique contents proportionally before embedding them."""
        contents = truncate_collection([r.content for r in records], max_total, ContentType.DRAFT)
        return [replace(r, content=content) for r, content in zip(records, contents)]


def _brief(text: str) -> str:
    return truncate(" ".join(text.splitlines()[:2]), BRIEF_REASON_CHARS)
