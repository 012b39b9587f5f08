"""
Per-call timeouts derived from model identity.

Keys are matched as case-insensitive substrings of the model id; the longest
match wins. Small-team sessions use a more generous table.
"""

DEFAULT_TIMEOUT_SECONDS = 120.0

MODEL_TIMEOUTS: dict[str, float] = {
    "claude-3-5-sonnet": 180.0,
    "claude-3-opus": 240.0,
    "gemini-2.5-pro-preview": 180.0,
    "gpt-4o": 180.0,
    "llama-4-maverick": 240.0,
    "deepseek": 180.0,
}

SMALL_TEAM_DEFAULT_TIMEOUT_SECONDS = 180.0

SMALL_TEAM_TIMEOUTS: dict[str, float] = {
    "claude-3-5-sonnet": 240.0,
    "claude-3-opus": 300.0,
    "gemini-2.5-pro-preview": 240.0,
    "gpt-4o": 240.0,
    "llama-4-maverick": 300.0,
    "deepseek": 240.0,
}


def timeout_for_model(
    model_id: str | None,
    table: dict[str, float] | None = None,
    default: float = DEFAULT_TIMEOUT_SECONDS,
) -> float:
    if not model_id:
        return default
    table = MODEL_TIMEOUTS if table is None else table
    model_lower = model_id.lower()
    matches = [key for key in table if key.lower() in model_lower]
    if not matches:
        return default
    return table[max(matches, key=len)]
