"""
Price tables -- USD per million tokens.

Provider rows are the fallback; model rows override them when the agent's
model id contains the model key (longest key wins). Unknown providers are
priced as chatgpt.
"""

import math
from dataclasses import dataclass


@dataclass(frozen=True)
class ModelPrice:
    input_per_million: float
    output_per_million: float
    context_window: int | None = None

    def cost(self, input_tokens: int, output_tokens: int) -> float:
        return (
            input_tokens / 1_000_000 * self.input_per_million
            + output_tokens / 1_000_000 * self.output_per_million
        )


FALLBACK_PROVIDER = "chatgpt"

PROVIDER_PRICES: dict[str, ModelPrice] = {
    "claude": ModelPrice(8.0, 24.0),
    "gemini": ModelPrice(3.5, 10.5),
    "chatgpt": ModelPrice(10.0, 30.0),
    "grok": ModelPrice(2.0, 6.0),
    "deepseek": ModelPrice(0.27, 1.10),
    "llama": ModelPrice(1.0, 3.0),
}

MODEL_PRICES: dict[str, ModelPrice] = {
    "claude-4-sonnet": ModelPrice(3.0, 15.0, 200_000),
    "claude-sonnet-4": ModelPrice(3.0, 15.0, 200_000),
    "claude-3-7-sonnet": ModelPrice(3.0, 15.0, 200_000),
    "claude-3-5-sonnet": ModelPrice(3.0, 15.0, 200_000),
    "claude-3-opus": ModelPrice(15.0, 75.0, 200_000),
    "claude-3-haiku": ModelPrice(0.25, 1.25, 200_000),
    "gpt-4o-mini": ModelPrice(0.15, 0.60, 128_000),
    "gpt-4o": ModelPrice(2.5, 10.0, 128_000),
    "gpt-4.1": ModelPrice(2.0, 8.0, 1_000_000),
    "gemini-2.5-pro-preview": ModelPrice(8.0, 24.0, 1_000_000),
    "gemini-2.5-flash": ModelPrice(0.15, 0.60, 1_000_000),
    "gemini-2.0-flash": ModelPrice(0.10, 0.40, 1_000_000),
    "deepseek-chat": ModelPrice(0.27, 1.10, 65_536),
    "deepseek-reasoner": ModelPrice(0.55, 2.19, 65_536),
    "grok-3-mini": ModelPrice(0.30, 0.50, 131_072),
    "grok-3": ModelPrice(3.0, 15.0, 131_072),
    "llama-4-maverick": ModelPrice(0.27, 0.85, 1_000_000),
}

# Rough multiplier on prompt tokens for how much a protocol re-sends.
MODE_TOKEN_MULTIPLIERS: dict[str, float] = {
    "round_table": 2.5,
    "sequential_critique_chain": 2.0,
    "small_team": 2.0,
    "individual": 1.0,
}
DEFAULT_MODE_MULTIPLIER = 2.0
OUTPUT_TO_INPUT_RATIO = 3


def estimate_tokens(text: str) -> int:
    """~4 characters per token."""
    return math.ceil(len(text) / 4) if text else 0


def price_for(provider: str, model: str | None = None) -> ModelPrice:
    if model:
        model_lower = model.lower()
        matches = [k for k in MODEL_PRICES if k in model_lower]
        if matches:
            return MODEL_PRICES[max(matches, key=len)]
    return PROVIDER_PRICES.get(provider.lower(), PROVIDER_PRICES[FALLBACK_PROVIDER])
