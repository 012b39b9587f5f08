"""Known providers, default models, and agent-id -> provider resolution."""

KNOWN_PROVIDERS = ("claude", "gemini", "chatgpt", "grok", "deepseek", "llama")

DEFAULT_MODELS: dict[str, str] = {
    "claude": "claude-sonnet-4-20250514",
    "gemini": "gemini-2.5-pro-preview-05-06",
    "chatgpt": "gpt-4.1",
    "grok": "grok-3-mini",
    "deepseek": "deepseek-chat",
    "llama": "Llama-4-Maverick-17B-128E-Instruct-FP8",
}

# Context window (chars) used to pick a summarizer and to size prompts.
MAX_CONTEXT_SIZE: dict[str, int] = {
    "claude": 200_000,
    "gemini": 180_000,
    "chatgpt": 120_000,
    "grok": 80_000,
    "deepseek": 100_000,
    "llama": 60_000,
}
DEFAULT_CONTEXT_SIZE = 50_000


def provider_for(agent_id: str) -> str:
    """
    Resolve the provider behind an agent id.

    "claude", "Claude" and "claude-reviewer" all resolve to "claude"; an id
    that names no known provider is its own provider.
    """
    key = agent_id.strip().lower()
    if key in KNOWN_PROVIDERS:
        return key
    for provider in KNOWN_PROVIDERS:
        if key.startswith(provider):
            return provider
    return key


def max_context_size(provider: str) -> int:
    return MAX_CONTEXT_SIZE.get(provider.lower(), DEFAULT_CONTEXT_SIZE)
