"""
Billing Evals -- ledger accounting, price lookup and pre-call estimates.
"""

import asyncio

import pytest
from hypothesis import given
from hypothesis import strategies as st

from collabengine.billing import CostLedger, estimate_cost, estimate_tokens, price_for
from collabengine.models import CollaborationMode


class TestPricing:
    """Eval: Model rows override provider rows; unknown providers price as chatgpt."""

    def test_provider_fallback(self):
        assert price_for("claude").input_per_million == 8.0
        assert price_for("mistral") == price_for("chatgpt")

    def test_model_substring_match(self):
        price = price_for("claude", "claude-sonnet-4-20250514")
        assert (price.input_per_million, price.output_per_million) == (3.0, 15.0)

    def test_longest_model_key_wins(self):
        assert price_for("chatgpt", "gpt-4o-mini-2024").input_per_million == 0.15
        assert price_for("chatgpt", "gpt-4o-2024").input_per_million == 2.5

    def test_cost_formula(self):
        price = price_for("claude", "claude-3-opus")
        assert price.cost(1_000_000, 1_000_000) == pytest.approx(90.0)

    def test_estimate_tokens(self):
        assert estimate_tokens("") == 0
        assert estimate_tokens("abcd") == 1
        assert estimate_tokens("abcde") == 2


class TestCostLedger:
    """Eval: The ledger only grows and aborts at the cap."""

    def test_accumulates(self):
        ledger = CostLedger(cap_usd=1.0, session_id="s1")
        ledger.add_cost("claude", 1000, 1000, model="claude-sonnet-4")
        ledger.add_cost("gemini", 1000, 0)
        assert ledger.total_spent() == pytest.approx(0.003 + 0.015 + 0.0035)
        assert len(ledger.entries) == 2

    def test_should_abort_at_cap(self):
        ledger = CostLedger(cap_usd=0.01)
        assert not ledger.should_abort()
        ledger.add_cost("chatgpt", 2000, 0)
        assert ledger.should_abort()
        assert ledger.remaining() == 0.0

    @given(costs=st.lists(st.tuples(st.integers(0, 50_000), st.integers(0, 50_000)), max_size=20))
    def test_total_is_monotone(self, costs):
        ledger = CostLedger(cap_usd=1.0)
        previous = 0.0
        for input_tokens, output_tokens in costs:
            ledger.add_cost("grok", input_tokens, output_tokens)
            assert ledger.total_spent() >= previous
            previous = ledger.total_spent()

    def test_negative_tokens_clamped(self):
        ledger = CostLedger(cap_usd=1.0)
        entry = ledger.add_cost("claude", -5, -5)
        assert entry.cost_usd == 0.0

    @pytest.mark.asyncio
    async def test_parallel_adds_not_lost(self):
        """Concurrent phase tasks (including worker threads) never drop an entry."""
        ledger = CostLedger(cap_usd=100.0)

        def add():
            for _ in range(100):
                ledger.add_cost("deepseek", 1000, 1000)

        await asyncio.gather(*(asyncio.to_thread(add) for _ in range(8)))
        assert len(ledger.entries) == 800
        assert ledger.total_spent() == pytest.approx(800 * (0.00027 + 0.0011))

    def test_usage_details_per_agent(self):
        ledger = CostLedger(cap_usd=1.0, session_id="s1")
        ledger.add_cost("claude", 100, 50)
        ledger.add_cost("claude", 100, 50)
        ledger.add_cost("grok", 10, 10)
        details = ledger.usage_details()
        assert details["usage"]["claude"]["calls"] == 2
        assert details["usage"]["claude"]["input_tokens"] == 200
        assert details["session_id"] == "s1"


class TestEstimate:
    """Eval: ceil(len/4) * mode multiplier in, three times that out."""

    def test_round_table_estimate(self):
        assert estimate_cost(["claude"], 400, "round_table") == pytest.approx(0.02)

    def test_sequential_uses_lower_multiplier(self):
        assert estimate_cost(["claude"], 400, CollaborationMode.SEQUENTIAL_CRITIQUE_CHAIN) == pytest.approx(0.016)

    def test_individual_reads_the_prompt_once(self):
        assert estimate_cost(["claude"], 400, CollaborationMode.INDIVIDUAL) == pytest.approx(0.008)

    def test_model_override(self):
        cost = estimate_cost(["claude"], 400, "round_table", {"claude": ["claude-sonnet-4-20250514"]})
        assert cost == pytest.approx(0.012)

    def test_scales_with_agents(self):
        one = estimate_cost(["grok"], 10_000)
        assert estimate_cost(["grok", "grok-2"], 10_000) == pytest.approx(2 * one)

    def test_empty_prompt_costs_nothing(self):
        assert estimate_cost(["claude", "gemini"], 0) == 0.0
