"""
Content-aware truncation entry point.

    truncate(text, 25_000, "draft")

Guarantees, for every content type:
  - text that already fits is returned unchanged (so truncation is idempotent)
  - the result is never longer than max_length
  - the same input and budget always give the same output
"""

import logging
from enum import Enum
from typing import Callable

from .generic import truncate_generic
from .structured import truncate_code, truncate_draft, truncate_qa, truncate_vote

logger = logging.getLogger(__name__)


class ContentType(str, Enum):
    GENERIC = "generic"
    CODE = "code"
    DRAFT = "draft"
    VOTE = "vote"
    QA = "qa"


STRATEGIES: dict[ContentType, Callable[[str, int], str]] = {
    ContentType.GENERIC: truncate_generic,
    ContentType.CODE: truncate_code,
    ContentType.DRAFT: truncate_draft,
    ContentType.VOTE: truncate_vote,
    ContentType.QA: truncate_qa,
}


def truncate(
    text: str | None,
    max_length: int,
    content_type: ContentType | str = ContentType.GENERIC,
) -> str:
    if not text:
        return ""
    if len(text) <= max_length:
        return text

    try:
        ctype = ContentType(content_type)
    except ValueError:
        logger.warning(f"[Truncation] Unknown content type {content_type!r}, using generic")
        ctype = ContentType.GENERIC

    result = STRATEGIES[ctype](text, max_length)
    if len(result) > max_length:
        logger.debug(
            f"[Truncation] {ctype.value} strategy overshot "
            f"({len(result)} > {max_length}), falling back to generic"
        )
        result = truncate_generic(text, max_length)

    logger.debug(
        f"[Truncation] {ctype.value}: {len(text)} -> {len(result)} chars"
    )
    return result
