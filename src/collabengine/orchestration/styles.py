"""
Style options for the sequential critique chain.

A style decides how each position in the chain treats the running answer:

  balanced     -- neutral, fill gaps, keep direction
  contrasting  -- deliberately add other perspectives and productive tension
  harmonious   -- build consensus, one unified voice
"""

import logging
import random
from enum import Enum
from typing import Sequence

logger = logging.getLogger(__name__)


class SequentialStyle(str, Enum):
    BALANCED = "balanced"
    CONTRASTING = "contrasting"
    HARMONIOUS = "harmonious"


INITIAL = "initial"
MIDDLE = "middle"
FINAL = "final"

STYLE_INSTRUCTIONS: dict[SequentialStyle, dict[str, str]] = {
    SequentialStyle.BALANCED: {
        INITIAL: (
            "Write an initial answer to the prompt. Aim for a balanced, comprehensive "
            "response that represents the mainstream view. Stick to facts and note "
            "where reasonable experts might differ. Give later contributors a neutral, "
            "unbiased foundation."
        ),
        MIDDLE: (
            "Review the previous response and build on it with more depth, nuance or "
            "examples where needed. Keep the balanced approach: neither challenge it "
            "strongly nor simply echo it. Fill gaps while preserving its overall "
            "direction, improving clarity and accuracy."
        ),
        FINAL: (
            "You are the last contributor. Refine the accumulated response into a "
            "polished, well-structured answer where every key point is developed and "
            "the argument flows logically. Keep a balanced perspective and present the "
            "most widely accepted understanding while acknowledging legitimate debate."
        ),
    },
    SequentialStyle.CONTRASTING: {
        INITIAL: (
            "Write an initial answer to the prompt. Stay factual and informative, but "
            "highlight where reasonable experts disagree. Consider several perspectives "
            "and flag areas of controversy, giving a nuanced starting point that "
            "acknowledges competing viewpoints."
        ),
        MIDDLE: (
            "Review the previous response and improve it by taking a somewhat different "
            "perspective. Respectfully challenge assumptions, add alternative viewpoints "
            "or contrasting evidence. Enrich the answer with productive tension rather "
            "than contradicting it, and keep a collegial tone."
        ),
        FINAL: (
            "You are the last contributor. Synthesize the perspectives gathered so far "
            "into a coherent answer. Keep the productive tensions: integrate them so the "
            "answer shows both consensus and reasonable disagreement, and explain the "
            "trade-offs behind each valid position."
        ),
    },
    SequentialStyle.HARMONIOUS: {
        INITIAL: (
            "Write an initial answer to the prompt. Focus on widely accepted facts and "
            "perspectives with broad consensus. Give a clear, straightforward foundation "
            "that later contributors can build on."
        ),
        MIDDLE: (
            "Review the previous response and build on it in a complementary way. Fill "
            "gaps, sharpen clarity or add supporting evidence instead of introducing "
            "contrary perspectives. Add depth without changing direction."
        ),
        FINAL: (
            "You are the last contributor. Polish the cumulative response into a "
            "seamless, unified answer with consistent terminology and tone, as if written "
            "by a single authoritative voice, while keeping the depth every contributor "
            "added."
        ),
    },
}


def resolve_style(style: "SequentialStyle | str | None") -> SequentialStyle:
    try:
        return SequentialStyle(style or SequentialStyle.BALANCED)
    except ValueError:
        logger.warning(f"[Sequential] Unknown style '{style}', using balanced")
        return SequentialStyle.BALANCED


def position_for(index: int, total: int) -> str:
    if index == 0:
        return INITIAL
    if index == total - 1:
        return FINAL
    return MIDDLE


def instruction_for(style: "SequentialStyle | str | None", position: str) -> str:
    instructions = STYLE_INSTRUCTIONS[resolve_style(style)]
    return instructions.get(position, instructions[MIDDLE])


def agent_order(
    agents: Sequence[str], shuffle: bool = False, rng: random.Random | None = None
) -> list[str]:
    """Chain order: as given, or a uniform shuffle of a copy."""
    ordered = list(agents)
    if shuffle:
        (rng or random).shuffle(ordered)
    return ordered
