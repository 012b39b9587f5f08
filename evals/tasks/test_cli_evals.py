"""
CLI Evals -- `collabengine estimate` and `collabengine run` exit codes and output.
"""

import pytest
from typer.testing import CliRunner

from collabengine.cli import app
from evals.fakes import ScriptedClient

runner = CliRunner()


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("COLLAB_COST_CAP_USD", "COLLAB_MAX_SECONDS", "COLLAB_IGNORE_FAILING_MODELS"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("COLLAB_MAX_RETRIES", "0")


@pytest.fixture
def scripted_cli(monkeypatch):
    client = ScriptedClient()
    monkeypatch.setattr("collabengine.cli.create_model_client", lambda: client)
    return client


class TestEstimateCommand:
    """Eval: Exit 0 within budget, 1 over budget, 2 on bad input."""

    def test_within_budget(self):
        result = runner.invoke(app, ["estimate", "x" * 400, "--agent", "claude"])
        assert result.exit_code == 0
        assert "$0.0200" in result.output
        assert "Within budget" in result.output

    def test_over_budget(self):
        result = runner.invoke(
            app, ["estimate", "x" * 400, "--agent", "claude", "--cost-cap", "0.001"]
        )
        assert result.exit_code == 1
        assert "Over budget" in result.output

    def test_invalid_agent_id(self):
        result = runner.invoke(app, ["estimate", "hi", "--agent", "1bad"])
        assert result.exit_code == 2

    def test_cap_from_environment(self, monkeypatch):
        monkeypatch.setenv("COLLAB_COST_CAP_USD", "0.001")
        result = runner.invoke(app, ["estimate", "x" * 400, "--agent", "claude"])
        assert result.exit_code == 1


class TestRunCommand:
    """Eval: A run prints the answer and streams agent status."""

    def test_round_table(self, scripted_cli):
        result = runner.invoke(
            app, ["run", "What is 6 x 7?", "-a", "claude", "-a", "gemini", "-a", "chatgpt"]
        )

        assert result.exit_code == 0
        assert "The answer is 42." in result.output
        assert "Summarizer:" in result.output
        assert len(scripted_cli.agents_called("draft")) == 3

    def test_sequential_mode(self, scripted_cli):
        result = runner.invoke(
            app,
            ["run", "What is 6 x 7?", "-a", "claude", "-a", "gemini", "--mode", "sequential_critique_chain"],
        )
        assert result.exit_code == 0
        assert "Refined by gemini." in result.output

    def test_refused_exits_nonzero(self, scripted_cli):
        result = runner.invoke(
            app, ["run", "x" * 400, "-a", "claude", "--cost-cap", "0.001"]
        )
        assert result.exit_code == 1
        assert "Refused" in result.output
        assert scripted_cli.calls == []

    def test_all_failed_exits_nonzero(self, monkeypatch):
        client = ScriptedClient({"claude": RuntimeError("down")})
        monkeypatch.setattr("collabengine.cli.create_model_client", lambda: client)

        result = runner.invoke(app, ["run", "hi", "-a", "claude"])

        assert result.exit_code == 1
        assert "Collaboration failed" in result.output
