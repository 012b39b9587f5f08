"""
Structure-preserving truncation strategies.

  truncate_code  -- keeps whole code blocks, sacrifices prose around them
  truncate_draft -- code, heading sections, or long lists, else head/tail
  truncate_vote  -- keeps the decision line, trims the reasoning
  truncate_qa    -- keeps every question, trims answers

Each strategy aims to stay within max_length on its own; engine.truncate()
still checks and falls back to head/tail if a strategy overshoots.
"""

import re

from .generic import (
    allocate_fairly,
    allocate_proportionally,
    truncate_generic,
)

FENCED_BLOCK = re.compile(r"```[\s\S]*?```")
CODE_CONSTRUCT = re.compile(
    r"(?m)^[ \t]*(?:(?:async[ \t]+)?def|function|class)[ \t]+\w+[^\n]*"
    r"(?:\n(?:[ \t]+[^\n]*|[ \t]*(?=\n[ \t])))*"
    r"(?:\n\}[^\n]*)?"
)
FUNCTION_HINT = re.compile(r"function\s+\w+\s*\(")
CLASS_OR_DEF_HINT = re.compile(r"(?m)^[ \t]*(?:class|def)[ \t]+\w+")
HEADING = re.compile(r"(?m)^#{1,3}[ \t]+\S[^\n]*$")
LIST_ITEM = re.compile(r"^[ \t]*(?:[-*+]|\d+[.)])[ \t]+")
QA_PAIR = re.compile(
    r"(?ms)^[ \t]*Q(?:uestion)?[ \t]*\d*[ \t]*[.:][ \t]*(?P<q>.*?)\n"
    r"[ \t]*A(?:nswer)?[ \t]*\d*[ \t]*[.:][ \t]*(?P<a>.*?)"
    r"(?=^[ \t]*Q(?:uestion)?[ \t]*\d*[ \t]*[.:]|\Z)"
)

PROSE_OMITTED = "\n\n[...non-code content omitted...]\n\n"
REASONING_TRUNCATED = "\n[...additional reasoning truncated...]"
CODE_SHARE_THRESHOLD = 0.8
INTRO_MAX = 500
OUTRO_MAX = 300
MAX_LIST_ITEMS = 10
SECTION_SEPARATOR = "\n\n"


def _list_items_omitted(count: int) -> str:
    return f"[...{count} more list items omitted...]"


def _qa_pairs_omitted(count: int) -> str:
    return f"[...{count} more Q&A pairs omitted...]"


# =============================================================================
# CODE
# =============================================================================


def find_code_blocks(text: str) -> list[re.Match]:
    blocks = list(FENCED_BLOCK.finditer(text))
    if not blocks:
        blocks = [m for m in CODE_CONSTRUCT.finditer(text) if m.group(0).strip()]
    return blocks


def truncate_code(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text

    blocks = find_code_blocks(text)
    if not blocks:
        return truncate_generic(text, max_length)

    code_total = sum(len(m.group(0)) for m in blocks)
    if code_total > CODE_SHARE_THRESHOLD * max_length:
        return _keep_blocks(text, blocks, max_length)
    return _shrink_prose(text, blocks, max_length, code_total)


def _keep_blocks(text: str, blocks: list[re.Match], max_length: int) -> str:
    kept: list[str] = []
    used = 0
    for m in blocks:
        block = m.group(0)
        cost = len(block) + (len(PROSE_OMITTED) if kept else 0)
        if used + cost <= max_length:
            kept.append(block)
            used += cost

    if not kept:
        return truncate_generic(text, max_length, head_ratio=0.6)

    body = PROSE_OMITTED.join(kept)

    intro = text[: blocks[0].start()].strip()
    room = max_length - len(body) - len(SECTION_SEPARATOR)
    if intro and room > 0:
        body = truncate_generic(intro, min(INTRO_MAX, room)) + SECTION_SEPARATOR + body

    outro = text[blocks[-1].end():].strip()
    room = max_length - len(body) - len(SECTION_SEPARATOR)
    if outro and room > 0:
        body = body + SECTION_SEPARATOR + truncate_generic(outro, min(OUTRO_MAX, room))

    return body


def _shrink_prose(
    text: str, blocks: list[re.Match], max_length: int, code_total: int
) -> str:
    segments: list[tuple[bool, str]] = []
    cursor = 0
    for m in blocks:
        if m.start() > cursor:
            segments.append((False, text[cursor: m.start()]))
        segments.append((True, m.group(0)))
        cursor = m.end()
    if cursor < len(text):
        segments.append((False, text[cursor:]))

    prose_sizes = [len(s) for is_code, s in segments if not is_code]
    budgets = iter(allocate_proportionally(prose_sizes, max_length - code_total))

    parts = []
    for is_code, segment in segments:
        if is_code:
            parts.append(segment)
        else:
            parts.append(truncate_generic(segment, next(budgets), head_ratio=0.5))
    return "".join(parts)


# =============================================================================
# DRAFT
# =============================================================================


def is_code_like(text: str) -> bool:
    return (
        text.count("```") >= 2
        or FUNCTION_HINT.search(text) is not None
        or CLASS_OR_DEF_HINT.search(text) is not None
    )


def truncate_draft(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    if is_code_like(text):
        return truncate_code(text, max_length)

    headings = list(HEADING.finditer(text))
    if len(headings) >= 2:
        return _truncate_sections(text, headings, max_length)

    lines = text.splitlines()
    if sum(1 for line in lines if LIST_ITEM.match(line)) > 5:
        return _truncate_list(text, lines, max_length)

    return truncate_generic(text, max_length)


def _truncate_sections(text: str, headings: list[re.Match], max_length: int) -> str:
    sections: list[tuple[str, str]] = []
    preamble = text[: headings[0].start()].strip("\n")
    if preamble.strip():
        sections.append(("", preamble))
    for i, m in enumerate(headings):
        end = headings[i + 1].start() if i + 1 < len(headings) else len(text)
        sections.append((m.group(0), text[m.end(): end].strip("\n")))

    available = max_length - len(SECTION_SEPARATOR) * (len(sections) - 1)
    natural = [
        len(h) + (1 + len(b) if h and b else len(b)) for h, b in sections
    ]
    budgets = allocate_fairly(natural, available)

    parts = []
    for (heading, body), budget in zip(sections, budgets):
        if not heading:
            parts.append(truncate_generic(body, budget))
            continue
        room = budget - len(heading) - 1
        if body and room > 0:
            parts.append(heading + "\n" + truncate_generic(body, room))
        else:
            parts.append(heading)
    return SECTION_SEPARATOR.join(p for p in parts if p)


def _truncate_list(text: str, lines: list[str], max_length: int) -> str:
    item_rows = [i for i, line in enumerate(lines) if LIST_ITEM.match(line)]
    first, last = item_rows[0], item_rows[-1]

    items: list[str] = []
    for line in lines[first: last + 1]:
        if LIST_ITEM.match(line) or not items:
            items.append(line)
        elif line.strip():
            items[-1] += "\n" + line

    intro = truncate_generic("\n".join(lines[:first]).strip(), int(max_length * 0.3))
    closing = truncate_generic("\n".join(lines[last + 1:]).strip(), int(max_length * 0.15))

    for keep in range(min(MAX_LIST_ITEMS, len(items)), 0, -1):
        parts = [intro] if intro else []
        parts.append("\n".join(items[:keep]))
        if len(items) > keep:
            parts.append(_list_items_omitted(len(items) - keep))
        if closing:
            parts.append(closing)
        candidate = SECTION_SEPARATOR.join(parts)
        if len(candidate) <= max_length:
            return candidate

    return truncate_generic(text, max_length)


# =============================================================================
# VOTE
# =============================================================================


def truncate_vote(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text

    stripped = text.strip()
    decision = stripped.split("\n", 1)[0]
    if len(decision) > max_length:
        sentence = re.match(r"[\s\S]*?[.!?](?=\s|$)", stripped)
        if sentence and len(sentence.group(0)) <= max_length:
            decision = sentence.group(0)
        else:
            return truncate_generic(text, max_length)

    reasoning = stripped[len(decision):].strip()
    if not reasoning:
        return decision
    if len(decision) + 1 + len(reasoning) <= max_length:
        return decision + "\n" + reasoning

    room = max_length - len(decision) - 1 - len(REASONING_TRUNCATED)
    if room <= 0:
        return decision
    return decision + "\n" + reasoning[:room].rstrip() + REASONING_TRUNCATED


# =============================================================================
# Q&A
# =============================================================================


def truncate_qa(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text

    pairs = [(m.group("q").strip(), m.group("a").strip()) for m in QA_PAIR.finditer(text)]
    if not pairs:
        return truncate_generic(text, max_length)

    question_lines = [f"Q: {q}\nA: " for q, _ in pairs]
    fixed = sum(len(q) for q in question_lines) + len(SECTION_SEPARATOR) * (len(pairs) - 1)

    if fixed > max_length:
        # Not even the questions fit: keep leading pairs and say how many were dropped.
        kept: list[str] = []
        for count, line in enumerate(question_lines):
            note = _qa_pairs_omitted(len(pairs) - count - 1)
            candidate = SECTION_SEPARATOR.join(kept + [line.rstrip(), note])
            if len(candidate) > max_length:
                break
            kept.append(line.rstrip())
        omitted = len(pairs) - len(kept)
        return SECTION_SEPARATOR.join(kept + [_qa_pairs_omitted(omitted)])

    answers = [a for _, a in pairs]
    budgets = allocate_proportionally([len(a) for a in answers], max_length - fixed)
    blocks = [
        line + truncate_generic(answer, budget)
        for line, answer, budget in zip(question_lines, answers, budgets)
    ]
    return SECTION_SEPARATOR.join(blocks)
