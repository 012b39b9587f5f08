"""
Provider and phase budgets for model output and prompt size.

Responses are trimmed per provider and phase as soon as they arrive, and
collections of drafts/critiques are trimmed proportionally before being
embedded into the next phase's prompt.
"""

import logging
from typing import Sequence

from ..errors import ContextLimitExceededError
from ..providers import max_context_size
from .engine import ContentType, truncate

logger = logging.getLogger(__name__)

RESPONSE_LIMITS: dict[str, dict[str, int]] = {
    "default": {"draft": 25_000, "critique": 15_000, "vote": 5_000, "synthesis": 40_000},
    "claude": {"draft": 50_000, "critique": 30_000, "vote": 8_000, "synthesis": 80_000},
    "gemini": {"draft": 40_000, "critique": 25_000, "vote": 7_000, "synthesis": 60_000},
    "chatgpt": {"draft": 35_000, "critique": 20_000, "vote": 6_000, "synthesis": 50_000},
    "grok": {"draft": 25_000, "critique": 15_000, "vote": 5_000, "synthesis": 40_000},
    "deepseek": {"draft": 30_000, "critique": 18_000, "vote": 5_000, "synthesis": 45_000},
    "llama": {"draft": 20_000, "critique": 12_000, "vote": 4_000, "synthesis": 35_000},
}

MAX_COLLECTION_LENGTH = 80_000
MAX_ANSWER_LENGTH = 50_000
MAX_RATIONALE_LENGTH = 25_000


def phase_category(phase: str) -> str:
    """Map a concrete phase id (e.g. 'sequential_critique_3') to a budget row."""
    phase = phase.lower()
    if phase == "vote":
        return "vote"
    if phase.startswith("sequential") or phase.startswith("synthesis"):
        return "synthesis"
    if phase.startswith("critique"):
        return "critique"
    return "draft"


def response_limit(provider: str, phase: str) -> int:
    row = RESPONSE_LIMITS.get(provider.lower(), RESPONSE_LIMITS["default"])
    return row[phase_category(phase)]


def truncate_model_response(text: str, provider: str, phase: str = "draft") -> str:
    category = phase_category(phase)
    content_type = ContentType.VOTE if category == "vote" else ContentType.DRAFT
    limit = response_limit(provider, phase)
    if len(text) > limit:
        logger.info(
            f"[Truncation] {provider} {phase} response {len(text)} chars > {limit}, truncating"
        )
    return truncate(text, limit, content_type)


def truncate_collection(
    texts: Sequence[str],
    max_total: int = MAX_COLLECTION_LENGTH,
    content_type: ContentType | str = ContentType.DRAFT,
) -> list[str]:
    """Shrink each text in proportion to its size so the sum fits max_total."""
    total = sum(len(t) for t in texts)
    if total <= max_total:
        return list(texts)
    logger.info(
        f"[Truncation] Collection of {len(texts)} items ({total} chars) "
        f"over {max_total}, truncating proportionally"
    )
    return [truncate(t, len(t) * max_total // total, content_type) for t in texts]


def check_context(system_prompt: str, user_prompt: str, provider: str) -> None:
    limit = max_context_size(provider)
    length = len(system_prompt) + len(user_prompt)
    if length > limit:
        raise ContextLimitExceededError(length=length, limit=limit, provider=provider)


def fit_prompt(system_prompt: str, user_prompt: str, provider: str) -> tuple[str, str]:
    """Trim the user prompt (then the system prompt) to the provider's window."""
    try:
        check_context(system_prompt, user_prompt, provider)
        return system_prompt, user_prompt
    except ContextLimitExceededError as e:
        logger.info(f"[Truncation] {e.message} -- fitting prompt for {provider}")

    limit = max_context_size(provider)
    system_prompt = truncate(system_prompt, limit // 4, ContentType.GENERIC)
    user_prompt = truncate(user_prompt, limit - len(system_prompt), ContentType.DRAFT)
    return system_prompt, user_prompt
