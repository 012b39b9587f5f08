"""
API Evals -- the HTTP surface over the orchestrator.

Runs the FastAPI app in-process with a ScriptedClient, so nothing here
touches a real provider.
"""

import pytest
from fastapi.testclient import TestClient

from collabengine.api.gateway import create_app
from collabengine.config import EngineConfig
from evals.fakes import ScriptedClient

TRIO = ["claude", "gemini", "chatgpt"]
URL = "/api/v1/collaborations"


def api_config(**overrides):
    fields = {"max_retries": 0, "retry_base_ms": 1, "retry_max_ms": 1}
    fields.update(overrides)
    return EngineConfig(**fields)


@pytest.fixture
def make_api():
    clients = []

    def _make(model_client=None, **config_overrides):
        app = create_app(client=model_client or ScriptedClient(), config=api_config(**config_overrides))
        http = TestClient(app)
        http.__enter__()
        clients.append(http)
        return http

    yield _make
    for http in clients:
        http.__exit__(None, None, None)


@pytest.fixture
def api(make_api):
    return make_api()


class TestRunCollaboration:
    """Eval: POST runs a session and answers in camelCase."""

    def test_round_table(self, api):
        response = api.post(URL, json={"prompt": "What is 6 x 7?", "agents": TRIO, "sessionId": "s-api-1"})

        assert response.status_code == 200
        body = response.json()
        assert body["sessionId"] == "s-api-1"
        assert body["status"] == "completed"
        assert body["answer"] == "The answer is 42."
        assert body["summarizerAgent"] == "gemini"
        assert body["spentUSD"] > 0
        assert [d["agent"] for d in body["drafts"]] == TRIO
        assert len(body["votes"]) == 3

    def test_snake_case_accepted(self, api):
        response = api.post(
            URL,
            json={
                "prompt": "What is 6 x 7?",
                "agents": TRIO,
                "mode": "sequential_critique_chain",
                "sequential_style": "harmonious",
            },
        )
        assert response.status_code == 200
        assert response.json()["answer"] == "Refined by chatgpt."

    def test_result_cached(self, api):
        api.post(URL, json={"prompt": "What is 6 x 7?", "agents": ["claude"], "sessionId": "s-cache"})

        response = api.get(f"{URL}/s-cache")

        assert response.status_code == 200
        assert response.json()["answer"] == "The answer is 42."

    def test_refusal_is_a_result(self, api):
        response = api.post(URL, json={"prompt": "x" * 400, "agents": ["claude"], "costCapUSD": 0.001})

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "refused"
        assert body["refused"] is True
        assert body["spentUSD"] == 0.0

    def test_events_replayed_after_completion(self, api):
        api.post(URL, json={"prompt": "What is 6 x 7?", "agents": ["claude"], "sessionId": "s-events"})

        response = api.get(f"{URL}/s-events/events")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert "event: phase_start" in response.text
        assert response.text.rstrip().split("\n\n")[-1].startswith("event: collaboration_complete")


class TestErrorMapping:
    """Eval: Each failure class maps to its own status code."""

    @pytest.mark.parametrize(
        "payload",
        [
            {"agents": ["claude"]},
            {"prompt": "", "agents": ["claude"]},
            {"prompt": "hi", "agents": []},
            {"prompt": "hi", "agents": ["claude"], "mode": "debate"},
            {"prompt": "hi", "agents": ["claude"], "costCapUSD": -1},
        ],
    )
    def test_malformed_request_is_400(self, api, payload):
        assert api.post(URL, json=payload).status_code == 400

    def test_bad_agent_id_is_400(self, api):
        response = api.post(URL, json={"prompt": "hi", "agents": ["claude; rm -rf /"]})
        assert response.status_code == 400
        assert "agents entry" in response.json()["detail"]

    def test_cost_breach_is_402_with_partial(self, make_api):
        api = make_api(ScriptedClient({"deepseek": "long draft " * 1000}))

        response = api.post(
            URL, json={"prompt": "hi", "agents": ["deepseek"], "costCapUSD": 0.0001, "sessionId": "s-cost"}
        )

        assert response.status_code == 402
        body = response.json()
        assert body["errorType"] == "cost"
        assert body["partial"]["spentUSD"] > 0.0001
        assert api.get(f"{URL}/s-cost").status_code == 200

    def test_all_agents_failed_is_502(self, make_api):
        api = make_api(ScriptedClient({agent: RuntimeError("down") for agent in TRIO}))
        response = api.post(URL, json={"prompt": "hi", "agents": TRIO})
        assert response.status_code == 502
        assert response.json()["error"] is True

    def test_ignore_failing_models_is_200(self, make_api):
        api = make_api(ScriptedClient({agent: RuntimeError("down") for agent in TRIO}))
        response = api.post(URL, json={"prompt": "hi", "agents": TRIO, "ignoreFailingModels": True})
        assert response.status_code == 200
        assert response.json()["fallback"] is True

    def test_no_model_client_is_503(self, monkeypatch):
        def no_client():
            raise RuntimeError("no SDK")

        monkeypatch.setattr("collabengine.api.gateway.create_model_client", no_client)
        with TestClient(create_app(config=api_config())) as http:
            response = http.post(URL, json={"prompt": "hi", "agents": ["claude"]})
            health = http.get("/health")

        assert response.status_code == 503
        assert health.json()["status"] == "degraded"

    def test_unknown_session(self, api):
        assert api.get(f"{URL}/s-missing").status_code == 404
        assert api.delete(f"{URL}/s-missing").status_code == 404

    def test_rate_limited(self, make_api):
        api = make_api(rate_limit_per_minute=2)
        payload = {"prompt": "hi", "agents": ["claude"]}

        codes = [api.post(f"{URL}/estimate", json=payload).status_code for _ in range(3)]

        assert codes == [200, 200, 429]


class TestEstimateEndpoint:
    """Eval: Estimates never call a model."""

    def test_within_budget(self):
        client = ScriptedClient()
        with TestClient(create_app(client=client, config=api_config())) as http:
            response = http.post(f"{URL}/estimate", json={"prompt": "x" * 400, "agents": ["claude"]})

        body = response.json()
        assert response.status_code == 200
        assert body["estimatedCostUSD"] == pytest.approx(0.02)
        assert body["costCapUSD"] == 0.50
        assert body["withinBudget"] is True
        assert body["mode"] == "round_table"
        assert client.calls == []

    def test_over_budget(self, api):
        response = api.post(
            f"{URL}/estimate", json={"prompt": "x" * 400, "agents": ["claude"], "costCapUSD": 0.01}
        )
        assert response.json()["withinBudget"] is False


class TestHealthAndMetrics:
    """Eval: Health and metrics report process state and session totals."""

    def test_health(self, api):
        body = api.get("/health").json()
        assert body["status"] == "healthy"
        assert body["activeSessions"] == 0

    def test_metrics_count_sessions(self, api):
        api.post(URL, json={"prompt": "hi", "agents": ["claude", "grok"]})

        body = api.get("/metrics").json()

        assert body["sessionsStarted"] == 1
        assert body["sessionsCompleted"] == 1
        assert body["totalSpentUSD"] > 0
        assert body["limiter"]["grok"]["limit"] == 1
        assert body["limiter"]["grok"]["active"] == 0
