"""Shared eval fixtures -- mock clients, recording publisher, session factories."""

from unittest.mock import AsyncMock

import pytest

from collabengine.config import EngineConfig
from collabengine.llm.client import ModelReply
from collabengine.models import Session
from collabengine.orchestration import CollaborationOrchestrator
from collabengine.service import CollaborationService
from evals.fakes import RecordingPublisher, ScriptedClient, StatusLog


@pytest.fixture
def mock_llm():
    """AsyncMock model client that returns a fixed reply without API calls."""
    client = AsyncMock()
    client.invoke.return_value = ModelReply(
        text="Mock answer.", input_tokens=100, output_tokens=50, model="mock-model"
    )
    return client


@pytest.fixture
def scripted():
    """A ScriptedClient with default replies; tests add to .script as needed."""
    return ScriptedClient()


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def status_log():
    return StatusLog()


@pytest.fixture
def engine_config():
    """No retries and no backoff wait, so evals stay fast and deterministic."""
    return EngineConfig(max_retries=0, retry_base_ms=1, retry_max_ms=1)


@pytest.fixture
def service(engine_config):
    return CollaborationService(engine_config)


@pytest.fixture
def make_orchestrator(engine_config, service, publisher):
    def _make(client, **kwargs):
        kwargs.setdefault("service", service)
        kwargs.setdefault("publisher", publisher)
        kwargs.setdefault("config", engine_config)
        return CollaborationOrchestrator(client, **kwargs)

    return _make


@pytest.fixture
def make_session():
    def _make(agents, **kwargs):
        kwargs.setdefault("prompt", "What is the answer to everything?")
        return Session(agents=list(agents), **kwargs)

    return _make


@pytest.fixture
def no_backoff(monkeypatch):
    """Retry immediately instead of sleeping for the backoff delay."""
    monkeypatch.setattr(
        "collabengine.resilience.retry.backoff_delay", lambda *args, **kwargs: 0.0
    )
