"""
Truncation Evals -- content-aware shrinking of prompts and responses.

Every strategy shares three guarantees that the property tests pin down:
the result never exceeds its budget, text that fits is returned unchanged,
and truncating twice is the same as truncating once. The example tests
check what each strategy keeps: whole code blocks, vote decisions,
headings, questions.
"""

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from collabengine.truncation import (
    ContentType,
    fit_prompt,
    response_limit,
    truncate,
    truncate_collection,
    truncate_generic,
    truncate_model_response,
)
from collabengine.truncation.structured import PROSE_OMITTED, REASONING_TRUNCATED

CONTENT_TYPES = st.sampled_from(list(ContentType))
PROSE = st.text(alphabet="abcdefgh ijklmnop\nqrstu.,#-*1", min_size=0, max_size=3000)


class TestTruncationGuarantees:
    """Eval: Length bound, identity when it fits, idempotence."""

    @given(text=st.text(max_size=4000), max_length=st.integers(min_value=0, max_value=2000), ctype=CONTENT_TYPES)
    @settings(max_examples=200, deadline=None)
    def test_never_exceeds_budget(self, text, max_length, ctype):
        assert len(truncate(text, max_length, ctype)) <= max_length

    @given(text=PROSE, max_length=st.integers(min_value=1, max_value=2000), ctype=CONTENT_TYPES)
    @settings(max_examples=200, deadline=None)
    def test_idempotent(self, text, max_length, ctype):
        once = truncate(text, max_length, ctype)
        assert truncate(once, max_length, ctype) == once

    @given(text=st.text(max_size=500), ctype=CONTENT_TYPES)
    def test_fitting_text_unchanged(self, text, ctype):
        assert truncate(text, 500, ctype) == text

    def test_deterministic(self):
        text = "word " * 5000
        assert truncate(text, 1000, "draft") == truncate(text, 1000, "draft")

    def test_empty_and_none(self):
        assert truncate("", 10) == ""
        assert truncate(None, 10) == ""

    def test_unknown_type_falls_back_to_generic(self):
        text = "x" * 500
        assert truncate(text, 100, "poetry") == truncate_generic(text, 100)


class TestCodeTruncation:
    """Eval: Fenced code blocks survive whole."""

    @given(
        before=st.text(alphabet="abcdef \n", min_size=200, max_size=3000),
        after=st.text(alphabet="abcdef \n", min_size=0, max_size=3000),
        code=st.text(alphabet="xyz(){}=;\n ", min_size=10, max_size=400),
    )
    @settings(max_examples=100, deadline=None)
    def test_code_block_preserved(self, before, after, code):
        block = f"```python\n{code}\n```"
        text = before + "\n" + block + "\n" + after
        max_length = len(block) + 100
        result = truncate(text, max_length, ContentType.CODE)
        assert len(result) <= max_length
        assert block in result

    def test_prose_dropped_between_blocks(self):
        first = "```\n" + "a = 1\n" * 40 + "```"
        second = "```\n" + "b = 2\n" * 40 + "```"
        text = "intro " * 100 + first + " prose " * 300 + second
        result = truncate(text, len(first) + len(second) + len(PROSE_OMITTED) + 20, "code")
        assert first in result and second in result
        assert PROSE_OMITTED in result

    def test_draft_with_code_uses_code_strategy(self):
        block = "```js\nfunction add(a, b) { return a + b; }\n```"
        text = "Explanation. " * 400 + block
        assert block in truncate(text, 600, ContentType.DRAFT)


class TestStructuredTruncation:
    """Eval: Votes keep their decision, drafts keep their headings."""

    def test_vote_keeps_first_line(self):
        text = "gemini\n" + "- it is the clearest starting point\n" * 50
        result = truncate(text, 150, ContentType.VOTE)
        assert result.startswith("gemini\n")
        assert result.endswith(REASONING_TRUNCATED)
        assert len(result) <= 150

    def test_sections_keep_headings(self):
        text = "\n\n".join(f"## Section {i}\n" + f"body {i} " * 400 for i in range(3))
        result = truncate(text, 1500, ContentType.DRAFT)
        assert len(result) <= 1500
        for i in range(3):
            assert f"## Section {i}" in result

    def test_long_list_reports_omitted_items(self):
        text = "Steps:\n" + "\n".join(f"- step number {i} " + "detail " * 20 for i in range(30))
        result = truncate(text, 2000, ContentType.DRAFT)
        assert len(result) <= 2000
        assert "more list items omitted" in result

    def test_qa_keeps_questions(self):
        text = "\n".join(f"Q: question {i}?\nA: " + "answer " * 200 for i in range(4))
        result = truncate(text, 1200, ContentType.QA)
        assert len(result) <= 1200
        for i in range(4):
            assert f"question {i}?" in result

    def test_generic_keeps_head_and_tail(self):
        text = "HEAD" + "m" * 5000 + "TAIL"
        result = truncate_generic(text, 300)
        assert result.startswith("HEAD")
        assert result.endswith("TAIL")
        assert "content truncated" in result


class TestBudgets:
    """Eval: Provider/phase budgets and collection trimming."""

    def test_response_limits_by_provider_and_phase(self):
        assert response_limit("claude", "draft") == 50_000
        assert response_limit("claude", "vote") == 8_000
        assert response_limit("llama", "sequential_critique_3") == 35_000
        assert response_limit("unknown", "critique") == 15_000

    def test_model_response_trimmed_to_limit(self):
        text = "z" * 60_000
        assert len(truncate_model_response(text, "claude", "draft")) <= 50_000

    @given(sizes=st.lists(st.integers(min_value=0, max_value=5000), min_size=1, max_size=8))
    @settings(max_examples=50, deadline=None)
    def test_collection_fits_total(self, sizes):
        texts = ["w" * n for n in sizes]
        trimmed = truncate_collection(texts, 4000)
        assert len(trimmed) == len(texts)
        assert sum(len(t) for t in trimmed) <= max(4000, 0)

    def test_collection_under_budget_unchanged(self):
        texts = ["short", "also short"]
        assert truncate_collection(texts, 1000) == texts

    def test_fit_prompt_respects_context_window(self):
        system, user = fit_prompt("system " * 10, "u" * 100_000, "llama")
        assert len(system) + len(user) <= 60_000

    @pytest.mark.parametrize("provider", ["claude", "gemini", "chatgpt"])
    def test_fit_prompt_leaves_small_prompts_alone(self, provider):
        assert fit_prompt("sys", "hello", provider) == ("sys", "hello")
