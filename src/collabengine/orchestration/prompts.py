"""
Prompt construction for every collaboration phase.

All prompts share one stable system prompt (so providers that cache system
blocks reuse it across phases) and put the phase instruction plus the
material under discussion in the user prompt.
"""

from typing import Iterable

from ..llm.client import AgentPrompt
from ..models import Critique, Draft, Vote

SYSTEM_PROMPT = "You are an AI assistant participating in a multi-model collaboration."

DRAFT_INSTRUCTION = (
    "Independently draft a response to the given prompt. BE CONCISE AND DIRECT - "
    "focus on a clear, efficient solution without unnecessary explanation. "
    "Keep your response focused and to the point."
)

CRITIQUE_INSTRUCTION = (
    "Critique these drafts BRIEFLY AND PRECISELY. Focus on the 2-3 most important "
    "strengths and weaknesses of each draft. Give short, targeted feedback rather "
    "than a comprehensive analysis."
)

VOTE_INSTRUCTION = (
    "Based on all drafts and critiques, vote for the draft that offers the best "
    "starting point for a final answer. State the name of your chosen draft on the "
    "FIRST LINE, then give 2-3 short bullet points explaining your choice. "
    "Keep the whole vote under 500 words."
)

SYNTHESIS_INSTRUCTION = (
    "As the summarizer, synthesize the best content from all drafts while addressing "
    "the key critiques. Be direct and focused. Split your response into:\n"
    "1) FINAL ANSWER: a clear, concise, direct answer\n"
    "2) RATIONALE: a brief explanation of your synthesis approach "
    "(2-3 paragraphs at most)"
)

INDIVIDUAL_INSTRUCTION = "Provide a helpful, comprehensive response to the query."

SMALL_TEAM_DRAFT_INSTRUCTION = (
    "Independently draft a response to the given prompt. You are part of a small team "
    "of {team_size} AI models, so your draft should be COMPREHENSIVE yet CONCISE: cover "
    "every key point without unnecessary verbosity. Your draft may be used as the final "
    "answer if later phases time out, so make sure it is complete."
)

CRITIQUE_VOTE_INSTRUCTION = """You are part of a small team of {team_size} AI models. You need to:
1. BRIEFLY critique the drafts from the other models (1-2 sentences per draft on strengths and weaknesses)
2. VOTE for the draft you think is the best starting point for the final answer
3. Give a very brief reason for your vote (1-2 sentences)

FORMAT YOUR RESPONSE EXACTLY LIKE THIS:
CRITIQUES:
[brief critique of the first model]
[brief critique of the second model]

VOTE: [name of the model you are voting for]
REASON: [1-2 sentence reason for your vote]"""

SMALL_TEAM_SYNTHESIS_INSTRUCTION = """You are writing the final synthesized answer. The draft from {winner} received the most votes and is your starting point.

Your task:
1. Improve the winning draft by addressing the critiques
2. Keep the final answer comprehensive yet concise
3. Format your response as:
   FINAL ANSWER: [your improved version of the winning draft]

   RATIONALE: [brief explanation of how you improved the draft]"""


def construct_prompt(user_prompt: str, agent: str, instruction: str) -> AgentPrompt:
    """Wrap the material for one agent call with its phase instruction."""
    return AgentPrompt(
        system_prompt=SYSTEM_PROMPT,
        user_prompt=f"{instruction}\n\n{user_prompt}",
    )


def format_drafts(drafts: Iterable[Draft]) -> str:
    return "\n".join(f"{d.agent.upper()}'s DRAFT:\n{d.content}\n" for d in drafts)


def format_critiques(critiques: Iterable[Critique]) -> str:
    return "\n".join(f"{c.agent.upper()}'s CRITIQUE:\n{c.content}\n" for c in critiques)


def format_votes(votes: Iterable[Vote]) -> str:
    return "\n".join(
        f"{v.agent.upper()}'s VOTE: {v.voted_for or 'Unclear'}\nReasoning: {v.reasoning}\n"
        for v in votes
    )


# =============================================================================
# PHASE PROMPTS
# =============================================================================


def draft_prompt(prompt: str, agent: str) -> AgentPrompt:
    return construct_prompt(prompt, agent, DRAFT_INSTRUCTION)


def individual_prompt(prompt: str, agent: str) -> AgentPrompt:
    return construct_prompt(prompt, agent, INDIVIDUAL_INSTRUCTION)


def critique_prompt(prompt: str, agent: str, drafts_text: str) -> AgentPrompt:
    return construct_prompt(
        f"{prompt}\n\nHere are drafts from other participants:\n\n{drafts_text}",
        agent,
        CRITIQUE_INSTRUCTION,
    )


def vote_prompt(prompt: str, agent: str, drafts_text: str, critiques_text: str) -> AgentPrompt:
    return construct_prompt(
        f"{prompt}\n\nDRAFTS:\n{drafts_text}\n\nCRITIQUES:\n{critiques_text}",
        agent,
        VOTE_INSTRUCTION,
    )


def synthesis_prompt(prompt: str, agent: str, drafts_text: str, votes_text: str) -> AgentPrompt:
    return construct_prompt(
        f"{prompt}\n\nDRAFTS:\n{drafts_text}\n\nVOTES:\n{votes_text}",
        agent,
        SYNTHESIS_INSTRUCTION,
    )


def refine_prompt(prompt: str, agent: str, previous: str, instruction: str) -> AgentPrompt:
    """Sequential chain step: improve the running answer."""
    return construct_prompt(
        f"ORIGINAL PROMPT: {prompt}\n\nPREVIOUS RESPONSE:\n{previous}",
        agent,
        instruction,
    )


def small_team_draft_prompt(prompt: str, agent: str, team_size: int) -> AgentPrompt:
    return construct_prompt(
        prompt, agent, SMALL_TEAM_DRAFT_INSTRUCTION.format(team_size=team_size)
    )


def critique_vote_prompt(prompt: str, agent: str, drafts_text: str, team_size: int) -> AgentPrompt:
    return construct_prompt(
        f"{prompt}\n\nOTHER DRAFTS:\n{drafts_text}",
        agent,
        CRITIQUE_VOTE_INSTRUCTION.format(team_size=team_size),
    )


def small_team_synthesis_prompt(
    prompt: str, agent: str, winner: str, winning_draft: str, critiques_text: str
) -> AgentPrompt:
    return construct_prompt(
        f"{prompt}\n\nWINNING DRAFT:\n{winning_draft}"
        f"\n\nCRITIQUES OF WINNING DRAFT:\n{critiques_text}",
        agent,
        SMALL_TEAM_SYNTHESIS_INSTRUCTION.format(winner=winner),
    )
