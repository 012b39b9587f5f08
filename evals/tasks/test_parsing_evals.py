"""
Parsing Evals -- reading votes and syntheses out of free-text replies.

Models rarely follow the requested format exactly; these cases pin how
lenient the parsers are and which rule wins when several apply.
"""

import pytest

from collabengine.models import Vote
from collabengine.orchestration import (
    parse_critique_vote,
    parse_synthesis,
    parse_vote,
    resolve_vote,
    tally_votes,
)

CANDIDATES = ["claude", "gemini", "chatgpt"]


class TestParseVote:
    """Eval: First line, then VOTE section, then keyword proximity, then any mention."""

    def test_first_line_wins(self):
        text = "gemini\n- I prefer this over claude's draft"
        assert parse_vote(text, CANDIDATES) == "gemini"

    def test_first_line_case_insensitive(self):
        assert parse_vote("**Gemini** is my choice", CANDIDATES) == "gemini"

    def test_vote_section(self):
        text = "I considered every draft.\nVOTE: chatgpt\nREASON: clearest"
        assert parse_vote(text, CANDIDATES) == "chatgpt"

    def test_keyword_proximity(self):
        text = "All drafts were solid.\nAfter some thought I choose the one by claude, though gemini was close."
        assert parse_vote(text, CANDIDATES) == "claude"

    def test_earliest_mention_fallback(self):
        text = "Overall\nthe draft from chatgpt is stronger than gemini."
        assert parse_vote(text, CANDIDATES) == "chatgpt"

    def test_no_candidate(self):
        assert parse_vote("None of them.", CANDIDATES) is None
        assert parse_vote("", CANDIDATES) is None

    def test_whole_word_match(self):
        """'claude-reviewer' is not a vote for 'claude'."""
        candidates = ["claude", "claude-reviewer"]
        assert parse_vote("claude-reviewer\nbest structure", candidates) == "claude-reviewer"


class TestResolveVote:
    """Eval: A vote always lands on a candidate."""

    def test_unparseable_falls_back_to_another_agent(self):
        assert resolve_vote("no idea", CANDIDATES, voter="claude") == "gemini"

    def test_single_candidate_votes_for_itself(self):
        assert resolve_vote("hmm", ["claude"], voter="claude") == "claude"


class TestTally:
    """Eval: Most votes wins; ties go to the earliest first vote."""

    def test_majority(self):
        votes = [
            Vote(agent="claude", voted_for="gemini"),
            Vote(agent="gemini", voted_for="gemini"),
            Vote(agent="chatgpt", voted_for="claude"),
        ]
        winner, counts = tally_votes(votes)
        assert winner == "gemini"
        assert counts == {"gemini": 2, "claude": 1}

    def test_tie_goes_to_earliest(self):
        votes = [
            Vote(agent="claude", voted_for="chatgpt"),
            Vote(agent="gemini", voted_for="claude"),
        ]
        assert tally_votes(votes)[0] == "chatgpt"

    def test_failed_votes_ignored(self):
        votes = [Vote(agent="claude", error="timeout"), Vote(agent="gemini", voted_for="claude")]
        winner, counts = tally_votes(votes)
        assert winner == "claude"
        assert counts == {"claude": 1}

    def test_no_votes(self):
        assert tally_votes([]) == (None, {})


class TestParseSynthesis:
    """Eval: FINAL ANSWER / RATIONALE split."""

    def test_labelled_sections(self):
        parts = parse_synthesis("FINAL ANSWER: 42.\n\nRATIONALE: Everyone agreed.")
        assert parts.answer == "42."
        assert parts.rationale == "Everyone agreed."

    @pytest.mark.parametrize(
        "text",
        [
            "1) FINAL ANSWER: 42.\n2) RATIONALE: Everyone agreed.",
            "**FINAL ANSWER:** 42.\n\n**Rationale:** Everyone agreed.",
            "## Final Answer\n42.\n\n## Reasoning\nEveryone agreed.",
            "FINAL ANSWER: 42.\n\nBRIEF RATIONALE\nEveryone agreed.",
        ],
    )
    def test_format_variants(self, text):
        parts = parse_synthesis(text)
        assert parts.answer.strip("* \n") == "42."
        assert parts.rationale.strip("* \n") == "Everyone agreed."

    def test_unlabelled_text_is_the_answer(self):
        parts = parse_synthesis("Just the answer, no labels.")
        assert parts.answer == "Just the answer, no labels."
        assert parts.rationale == ""
        assert not parts.has_rationale

    def test_answer_without_rationale(self):
        parts = parse_synthesis("FINAL ANSWER: 42.")
        assert parts.answer == "42."
        assert parts.rationale == ""

    def test_answer_is_capped(self):
        parts = parse_synthesis("FINAL ANSWER: " + "x" * 60_000 + "\nRATIONALE: ok")
        assert len(parts.answer) <= 50_000
        assert parts.rationale == "ok"


class TestParseCritiqueVote:
    """Eval: Combined small-team reply splits into its three sections."""

    def test_sections(self):
        text = "CRITIQUES:\nclaude: thorough.\ngemini: terse.\n\nVOTE: claude\nREASON: Most complete."
        parts = parse_critique_vote(text)
        assert parts.critiques == "claude: thorough.\ngemini: terse."
        assert parts.vote == "claude"
        assert parts.reason == "Most complete."

    def test_missing_sections(self):
        parts = parse_critique_vote("I like claude best.")
        assert (parts.critiques, parts.vote, parts.reason) == ("", "", "")
