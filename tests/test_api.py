"""Tests for the FastAPI application (api/main.py, api/routes.py, api/models.py).

The lifespan is not entered; each test wires the routes to an in-memory
corpus through init_search_engine().
"""

import pytest
from fastapi.testclient import TestClient

from papercenter.api import routes
from papercenter.api.main import app
from papercenter.corpus.provider import InMemoryCorpusProvider
from corpus_factory import FailingProvider


@pytest.fixture
def client(tmp_path, corpus):
    routes.init_search_engine(
        provider=InMemoryCorpusProvider(corpus),
        preferences_path=str(tmp_path / "prefs.json"),
    )
    yield TestClient(app)
    routes.shutdown_search_engine()


@pytest.fixture
def failing_client(tmp_path):
    routes.init_search_engine(provider=FailingProvider(), preferences_path=str(tmp_path / "prefs.json"))
    yield TestClient(app)
    routes.shutdown_search_engine()


class TestSearchEndpoint:
    """Tests for POST /api/v1/search."""

    def test_search(self, client) -> None:
        response = client.post("/api/v1/search", json={"query": "revenue"})
        assert response.status_code == 200

        body = response.json()
        assert body["total"] == 3
        assert body["query"] == "revenue"
        assert body["results"][0]["id"] == "noteHit|d1|g1|p1|v2|n1"
        assert body["results"][0]["kind"] == "noteHit"
        assert body["results"][0]["matched_fields"] == ["noteTitleBody"]
        assert body["options"]["maxResults"] == 120

    def test_request_options_override_preferences(self, client) -> None:
        response = client.post("/api/v1/search", json={
            "query": "revenue",
            "result_kinds": ["ocrHit"],
            "include_historical_versions": False,
        })
        body = response.json()
        assert [r["id"] for r in body["results"]] == ["ocrHit|d1|g1|p1|v2|-"]
        assert body["options"]["includeHistoricalVersions"] is False

    def test_stored_preferences_apply(self, client) -> None:
        prefs = client.get("/api/v1/preferences").json()["options"]
        prefs["maxResults"] = 1
        client.put("/api/v1/preferences", json={"options": prefs})

        body = client.post("/api/v1/search", json={"query": "revenue"}).json()
        assert body["total"] == 1

    def test_variable_rule(self, client) -> None:
        response = client.post("/api/v1/search", json={
            "query": "",
            "result_kinds": ["page"],
            "variable_rules": [
                {"variable_id": "v-score", "operator": "eq", "value": {"type": "int", "value": 20}}
            ],
        })
        assert [r["id"] for r in response.json()["results"]] == ["page|d1|g1|p1|v2|-"]

    def test_tag_filter(self, client) -> None:
        response = client.post("/api/v1/search", json={"tag_filter": {"name_keyword": "urgent"}})
        assert [r["kind"] for r in response.json()["results"]] == ["doc", "noteHit"]

    def test_blank_query(self, client) -> None:
        body = client.post("/api/v1/search", json={}).json()
        assert body["results"] == []
        assert body["total"] == 0

    def test_invalid_rule_value(self, client) -> None:
        response = client.post("/api/v1/search", json={
            "variable_rules": [{"variable_id": "v-score", "operator": "eq", "value": {"type": "nope"}}],
        })
        assert response.status_code == 422
        assert response.json()["code"] == "INVALID_REQUEST"

    def test_invalid_field(self, client) -> None:
        response = client.post("/api/v1/search", json={"query": "x", "field_scope": ["bogus"]})
        assert response.status_code == 422

    def test_max_results_bounds(self, client) -> None:
        response = client.post("/api/v1/search", json={"query": "x", "max_results": 5000})
        assert response.status_code == 422

    def test_corpus_unavailable(self, failing_client) -> None:
        response = failing_client.post("/api/v1/search", json={"query": "revenue"})
        assert response.status_code == 503
        assert response.json()["detail"]["code"] == "CORPUS_UNAVAILABLE"

    def test_not_initialized(self, client) -> None:
        routes.shutdown_search_engine()
        response = client.post("/api/v1/search", json={"query": "revenue"})
        assert response.status_code == 503


class TestPreferencesEndpoints:
    """Tests for /api/v1/preferences."""

    def test_defaults(self, client) -> None:
        options = client.get("/api/v1/preferences").json()["options"]
        assert options["includeHistoricalVersions"] is True
        assert options["variableRules"] == []

    def test_update_and_reset(self, client) -> None:
        options = client.get("/api/v1/preferences").json()["options"]
        options["fieldScope"] = ["ocrText"]

        response = client.put("/api/v1/preferences", json={"options": options})
        assert response.status_code == 200
        assert client.get("/api/v1/preferences").json()["options"]["fieldScope"] == ["ocrText"]

        response = client.delete("/api/v1/preferences")
        assert response.status_code == 200
        assert len(response.json()["options"]["fieldScope"]) == 8

    def test_invalid_options(self, client) -> None:
        response = client.put("/api/v1/preferences", json={"options": {"fieldScope": ["docTitle"]}})
        assert response.status_code == 422


class TestInfoEndpoints:
    """Tests for stats, health and the root endpoint."""

    def test_stats(self, client) -> None:
        body = client.get("/api/v1/stats").json()
        assert body["documents"] == 2
        assert body["page_versions"] == 4
        assert body["notes"] == 3

    def test_stats_unavailable(self, failing_client) -> None:
        response = failing_client.get("/api/v1/stats")
        assert response.status_code == 503

    def test_health(self, client) -> None:
        body = client.get("/api/v1/health").json()
        assert body["status"] == "healthy"
        assert body["corpus_available"] is True

    def test_health_degraded(self, failing_client) -> None:
        body = failing_client.get("/api/v1/health").json()
        assert body["status"] == "degraded"
        assert body["corpus_available"] is False

    def test_root(self, client) -> None:
        body = client.get("/").json()
        assert body["endpoints"]["search"] == "/api/v1/search"
        assert "ocrHit" in body["result_kinds"]

    def test_unknown_path(self, client) -> None:
        response = client.get("/api/v1/nothing")
        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"
