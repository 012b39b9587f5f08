"""Head/tail truncation with an exact omitted-character marker."""


def truncation_marker(omitted: int) -> str:
    return f"\n\n[...content truncated ({omitted} characters)...]\n\n"


def truncate_generic(text: str, max_length: int, head_ratio: float = 0.3) -> str:
    """
    Keep the first head_ratio of the budget and fill the rest from the tail.

    The marker is paid for out of max_length, so the result never exceeds
    it. Budgets too small to hold a marker get a plain prefix cut.
    """
    if len(text) <= max_length:
        return text
    if max_length <= 0:
        return ""

    head_ratio = min(max(head_ratio, 0.0), 1.0)
    reserve = len(truncation_marker(len(text)))
    budget = max_length - reserve
    if budget <= 0:
        return text[:max_length]

    head = int(budget * head_ratio)
    tail = budget - head
    omitted = len(text) - head - tail
    tail_text = text[len(text) - tail:] if tail else ""
    return text[:head] + truncation_marker(omitted) + tail_text


def allocate_proportionally(sizes: list[int], budget: int) -> list[int]:
    """Split budget across items in proportion to their size (floors)."""
    total = sum(sizes)
    if total <= budget:
        return list(sizes)
    if budget <= 0 or total == 0:
        return [0] * len(sizes)
    return [size * budget // total for size in sizes]


def allocate_fairly(sizes: list[int], budget: int) -> list[int]:
    """
    Water-filling split: small items keep everything, large items share
    what is left equally.
    """
    allocation = [0] * len(sizes)
    remaining = max(budget, 0)
    order = sorted(range(len(sizes)), key=lambda i: sizes[i])
    for position, i in enumerate(order):
        share = remaining // (len(order) - position)
        allocation[i] = min(sizes[i], share)
        remaining -= allocation[i]
    return allocation
