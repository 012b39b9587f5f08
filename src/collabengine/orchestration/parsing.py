"""
Lenient parsers for free-text model output.

Models are asked for a fixed shape ("name your vote on the first line",
"FINAL ANSWER: ... RATIONALE: ...") but do not always comply. Everything
that reads structure out of model text lives here, behind four narrow
functions, so a structured-output contract can replace it without touching
the protocols:

    parse_vote(text, candidates)          -> agent id | None
    resolve_vote(text, candidates, voter) -> agent id (never None)
    parse_synthesis(text)                 -> SynthesisParts(answer, rationale)
    parse_critique_vote(text)             -> CritiqueVoteParts(critiques, vote, reason)

The heuristics can mis-extract on unusual phrasing; evals/tasks/
test_parsing_evals.py pins the cases that matter.
"""

import re
from dataclasses import dataclass
from typing import Iterable, Sequence

from ..models import Vote
from ..truncation import MAX_ANSWER_LENGTH, MAX_RATIONALE_LENGTH, ContentType, truncate

VOTE_KEYWORDS = ("vote", "choose", "select", "prefer", "pick")
KEYWORD_WINDOW = 50

VOTE_SECTION = re.compile(r"VOTE\s*:(.*?)(?=REASON\s*:|$)", re.IGNORECASE | re.DOTALL)
CRITIQUES_SECTION = re.compile(r"CRITIQUES\s*:(.*?)(?=VOTE\s*:|$)", re.IGNORECASE | re.DOTALL)
REASON_SECTION = re.compile(r"REASON\s*:(.*)", re.IGNORECASE | re.DOTALL)

FINAL_ANSWER_LABEL = re.compile(r"^[\s*#>]*(?:\d[.)]\s*)?FINAL ANSWER[*\s]*:?[*\s]*", re.IGNORECASE)
# Rationale header at the start of a line ("RATIONALE:", "2) BRIEF RATIONALE", "**Reasoning**").
RATIONALE_HEADER = re.compile(
    r"^[ \t*#>]*(?:\d[.)][ \t]*)?(?:BRIEF[ \t]+)?(?:RATIONALE|REASONING)\b[*: \t]*",
    re.IGNORECASE | re.MULTILINE,
)
RATIONALE_INLINE = re.compile(r"(?:RATIONALE|REASONING)\b[*: \t]*")


def _mention(candidate: str) -> re.Pattern:
    return re.compile(rf"(?<![\w-]){re.escape(candidate)}(?![\w-])", re.IGNORECASE)


def _earliest_mention(text: str, candidates: Sequence[str]) -> str | None:
    """Candidate mentioned first in text (longest name wins at the same offset)."""
    best: tuple[int, int] | None = None
    found = None
    for candidate in candidates:
        match = _mention(candidate).search(text)
        if match is None:
            continue
        rank = (match.start(), -len(candidate))
        if best is None or rank < best:
            best, found = rank, candidate
    return found


# =============================================================================
# VOTES
# =============================================================================


def parse_vote(text: str, candidates: Sequence[str]) -> str | None:
    """
    Extract the agent a vote is for.

    Tries, in order: a candidate named on the first non-empty line; a
    "VOTE:" section; a candidate within 50 characters after a voting keyword
    (vote/choose/select/prefer/pick); the first candidate mentioned anywhere.
    """
    if not text or not candidates:
        return None

    first_line = next((line for line in text.splitlines() if line.strip()), "")
    voted = _earliest_mention(first_line, candidates)
    if voted:
        return voted

    section = VOTE_SECTION.search(text)
    if section:
        voted = _earliest_mention(section.group(1), candidates)
        if voted:
            return voted

    lowered = text.lower()
    for keyword in VOTE_KEYWORDS:
        index = lowered.find(keyword)
        if index == -1:
            continue
        window = text[index:index + len(keyword) + KEYWORD_WINDOW]
        voted = _earliest_mention(window, candidates)
        if voted:
            return voted

    return _earliest_mention(text, candidates)


def resolve_vote(text: str, candidates: Sequence[str], voter: str) -> str:
    """parse_vote, falling back to the first other candidate (or the voter itself)."""
    voted = parse_vote(text, candidates)
    if voted:
        return voted
    others = [c for c in candidates if c != voter]
    return others[0] if others else voter


def tally_votes(votes: Iterable[Vote]) -> tuple[str | None, dict[str, int]]:
    """
    Count valid votes. Returns (winner, counts).

    counts keeps first-vote order; the winner is the first agent in that
    order with the highest count, so a tie goes to the agent whose first
    vote arrived earliest.
    """
    counts: dict[str, int] = {}
    for vote in votes:
        if vote.ok and vote.voted_for:
            counts[vote.voted_for] = counts.get(vote.voted_for, 0) + 1

    winner = None
    highest = 0
    for agent, count in counts.items():
        if count > highest:
            winner, highest = agent, count
    return winner, counts


# =============================================================================
# SYNTHESIS
# =============================================================================


@dataclass(frozen=True)
class SynthesisParts:
    answer: str
    rationale: str = ""

    @property
    def has_rationale(self) -> bool:
        return bool(self.rationale)


def parse_synthesis(text: str) -> SynthesisParts:
    """
    Split a synthesis into answer and rationale.

    Only text carrying a "FINAL ANSWER" label is split; anything else is
    taken whole as the answer with an empty rationale. Both parts are capped
    (answer 50000, rationale 25000 characters).
    """
    text = (text or "").strip()
    if "FINAL ANSWER" not in text.upper():
        return SynthesisParts(answer=_cap(text, MAX_ANSWER_LENGTH, ContentType.DRAFT))

    header = RATIONALE_HEADER.search(text) or RATIONALE_INLINE.search(text)
    if header:
        answer_part, rationale = text[:header.start()], text[header.end():]
    else:
        answer_part, rationale = text, ""

    answer_part = answer_part.strip()
    label = FINAL_ANSWER_LABEL.match(answer_part)
    if label:
        answer_part = answer_part[label.end():]
    else:
        answer_part = re.sub(r"FINAL ANSWER\s*:?", "", answer_part, count=1, flags=re.IGNORECASE)

    return SynthesisParts(
        answer=_cap(answer_part.strip(), MAX_ANSWER_LENGTH, ContentType.DRAFT),
        rationale=_cap(rationale.strip(), MAX_RATIONALE_LENGTH, ContentType.GENERIC),
    )


def _cap(text: str, limit: int, content_type: ContentType) -> str:
    return truncate(text, limit, content_type) if len(text) > limit else text


# =============================================================================
# COMBINED CRITIQUE + VOTE (small team)
# =============================================================================


@dataclass(frozen=True)
class CritiqueVoteParts:
    critiques: str
    vote: str
    reason: str


def parse_critique_vote(text: str) -> CritiqueVoteParts:
    """Read the CRITIQUES / VOTE / REASON sections of a combined reply."""
    text = text or ""
    critiques = CRITIQUES_SECTION.search(text)
    vote = VOTE_SECTION.search(text)
    reason = REASON_SECTION.search(text)
    return CritiqueVoteParts(
        critiques=critiques.group(1).strip() if critiques else "",
        vote=vote.group(1).strip() if vote else "",
        reason=reason.group(1).strip() if reason else "",
    )
