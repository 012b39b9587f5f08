"""
Cost ledger and budget guard for one collaboration session.

Entries are append-only; the running total is updated under the same lock
so parallel phase tasks (and SDK calls pushed to worker threads) never lose
an increment. should_abort() is monotonic: once the total reaches the cap
it stays true for the rest of the session.
"""

import logging
import math
import threading
from dataclasses import dataclass
from typing import Iterable

from ..providers import provider_for
from .pricing import (
    DEFAULT_MODE_MULTIPLIER,
    MODE_TOKEN_MULTIPLIERS,
    OUTPUT_TO_INPUT_RATIO,
    price_for,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LedgerEntry:
    agent: str
    input_tokens: int
    output_tokens: int
    cost_usd: float
    provider: str = ""
    model: str | None = None


class CostLedger:
    """
    Running token/dollar record for a session.

    Usage:
        ledger = CostLedger(cap_usd=0.50)
        ledger.add_cost("claude", input_tokens=1200, output_tokens=800)
        if ledger.should_abort():
            ...
    """

    def __init__(self, cap_usd: float = 1.0, session_id: str = ""):
        self.cap_usd = cap_usd
        self.session_id = session_id
        self._entries: list[LedgerEntry] = []
        self._total = 0.0
        self._lock = threading.Lock()

    def add_cost(
        self,
        agent: str,
        input_tokens: int,
        output_tokens: int,
        provider: str | None = None,
        model: str | None = None,
    ) -> LedgerEntry:
        provider = provider or provider_for(agent)
        input_tokens = max(0, int(input_tokens))
        output_tokens = max(0, int(output_tokens))
        cost = price_for(provider, model).cost(input_tokens, output_tokens)
        entry = LedgerEntry(
            agent=agent,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost_usd=cost,
            provider=provider,
            model=model,
        )
        with self._lock:
            self._entries.append(entry)
            self._total += cost
            total = self._total

        logger.debug(
            f"[Ledger] {self.session_id or '-'} {agent}: "
            f"{input_tokens}in + {output_tokens}out = ${cost:.6f} "
            f"(total ${total:.4f} / ${self.cap_usd:.2f})"
        )
        return entry

    def total_spent(self) -> float:
        with self._lock:
            return self._total

    def remaining(self) -> float:
        return max(self.cap_usd - self.total_spent(), 0.0)

    def should_abort(self) -> bool:
        return self.total_spent() >= self.cap_usd

    @property
    def entries(self) -> list[LedgerEntry]:
        with self._lock:
            return list(self._entries)

    def usage_details(self) -> dict:
        """Per-agent token and cost totals plus the session summary."""
        usage: dict[str, dict] = {}
        for e in self.entries:
            row = usage.setdefault(
                e.agent, {"input_tokens": 0, "output_tokens": 0, "cost_usd": 0.0, "calls": 0}
            )
            row["input_tokens"] += e.input_tokens
            row["output_tokens"] += e.output_tokens
            row["cost_usd"] += e.cost_usd
            row["calls"] += 1
        total = self.total_spent()
        return {
            "session_id": self.session_id,
            "usage": usage,
            "total_cost": round(total, 6),
            "cap_usd": self.cap_usd,
            "remaining": round(max(self.cap_usd - total, 0.0), 6),
        }


def estimate_cost(
    agents: Iterable[str],
    prompt_length: int,
    mode: str = "round_table",
    models: dict[str, list[str]] | None = None,
) -> float:
    """
    Naive pre-call estimate for a whole session.

    Each agent is assumed to read ceil(len/4) * mode-multiplier tokens and
    write three times as much.
    """
    multiplier = MODE_TOKEN_MULTIPLIERS.get(
        getattr(mode, "value", mode), DEFAULT_MODE_MULTIPLIER
    )
    per_agent_input = math.ceil(max(prompt_length, 0) / 4) * multiplier
    per_agent_output = per_agent_input * OUTPUT_TO_INPUT_RATIO
    models = models or {}

    total = 0.0
    for agent in agents:
        model_ids = models.get(agent) or []
        model = model_ids[0] if model_ids else None
        total += price_for(provider_for(agent), model).cost(
            int(per_agent_input), int(per_agent_output)
        )
    return round(total, 6)
