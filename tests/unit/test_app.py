"""Unit tests for the HTTP surface."""

import pytest
from starlette.testclient import TestClient

from caselaw_search.app import create_app
from caselaw_search.config import Settings
from caselaw_search.search.persistence import save_snapshot
from caselaw_search.search.snapshot import SnapshotHandle
from caselaw_search.service_layer.search_service import SearchService


@pytest.fixture
def client(service):
    return TestClient(create_app(service=service))


@pytest.mark.unit
class TestSearchEndpoint:
    def test_search_returns_ui_shape(self, client):
        response = client.get("/search", params={"q": "equal"})

        assert response.status_code == 200
        body = response.json()
        assert body["results"] == [
            {
                "jurisdiction": "United States",
                "path": "brown-v-board",
                "matches": 1,
                "content": [{"line": 1, "text": "separate educational facilities are inherently unequal"}],
            }
        ]
        assert body["plan"] == "literal"
        assert body["partial"] is False
        assert "error" not in body

    def test_flags_and_filters(self, client):
        response = client.get(
            "/search",
            params={"q": "Adequacy", "case_sensitive": "true", "jurisdiction": "European Union"},
        )

        assert [result["path"] for result in response.json()["results"]] == ["schrems-v-facebook"]

    def test_repeated_filter_parameters(self, client):
        response = client.get(
            "/search",
            params=[("q", "e"), ("jurisdiction", "European Union"), ("jurisdiction", "United States")],
        )

        assert response.json()["total_matches"] == 2

    def test_malformed_regex_is_bad_request(self, client):
        response = client.get("/search", params={"q": "(", "regex": "1"})

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "query_error"

    def test_invalid_parameter_is_bad_request(self, client):
        response = client.get("/search", params={"q": "equal", "max_results": "many"})

        assert response.status_code == 400
        assert response.json() == {
            "error": {"code": "query_error", "message": "max_results must be an integer, got 'many'"}
        }

    def test_whole_word_flag(self, client):
        assert client.get("/search", params={"q": "equal", "whole_word": "true"}).json()["results"] == []
        body = client.get("/search", params={"q": "unequal", "whole_word": "1"}).json()
        assert [result["path"] for result in body["results"]] == ["brown-v-board"]

    def test_zero_timeout_disables_configured_deadline(self, large_corpus, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("CASELAW_SEARCH_DEFAULT_TIMEOUT_MS", "1")
        service = SearchService(SnapshotHandle(), Settings())
        service.ingest_batch(large_corpus)
        client = TestClient(create_app(service=service))

        body = client.get("/search", params={"q": "negligen.e", "regex": "true", "timeout_ms": "0"}).json()

        assert body["partial"] is False
        assert body["total_matches"] == 400

    def test_response_carries_trace_id(self, client):
        response = client.get("/search", params={"q": "equal"}, headers={"x-trace-id": "d" * 32})

        assert response.headers["x-trace-id"] == "d" * 32

    def test_empty_query(self, client):
        body = client.get("/search").json()

        assert body["results"] == []
        assert body["plan"] == "empty"


@pytest.mark.unit
class TestDocumentsEndpoint:
    def test_ingest_then_search(self, client):
        response = client.post(
            "/documents",
            json=[{"jurisdiction": "UK", "path": "donoghue-v-stevenson", "caseType": "Tort", "text": "snail"}],
        )

        assert response.status_code == 200
        assert response.json()["ingested"] == 1
        assert client.get("/search", params={"q": "snail"}).json()["results"][0]["path"] == "donoghue-v-stevenson"

    def test_rejected_documents_reported(self, client):
        response = client.post("/documents", json=[{"path": "missing-jurisdiction", "text": "x"}])

        body = response.json()
        assert body["ingested"] == 0
        assert len(body["errors"]) == 1

    def test_unencodable_document_rejected_individually(self, client):
        body = (
            b'[{"jurisdiction": "UK", "path": "bad", "text": "abc \\ud800"},'
            b' {"jurisdiction": "UK", "path": "good", "text": "snail"}]'
        )

        response = client.post("/documents", content=body, headers={"content-type": "application/json"})

        assert response.status_code == 200
        assert response.json()["ingested"] == 1
        assert "not valid UTF-8" in response.json()["errors"][0]

    def test_non_array_body_rejected(self, client):
        response = client.post("/documents", json="text")

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "ingest_error"

    def test_invalid_json_rejected(self, client):
        response = client.post("/documents", content=b"{not json", headers={"content-type": "application/json"})

        assert response.status_code == 400


@pytest.mark.unit
def test_facets_endpoint(client):
    body = client.get("/facets", params={"jurisdiction": "United States"}).json()

    assert body["facets"]["case_type"] == {"Civil": 1}
    assert body["facets"]["jurisdiction"] == {"European Union": 1, "United States": 1}


@pytest.mark.unit
def test_facets_name_filters(client):
    body = client.get("/facets", params={"jurisdiction_name": "EUROPE", "case_type_name": "civ"}).json()

    assert body["facets"] == {"jurisdiction": {"European Union": 1}, "case_type": {"Civil": 1}}


@pytest.mark.unit
def test_health_endpoint(client, service):
    body = client.get("/health").json()

    assert body == {"status": "healthy", "generation": service.handle.generation, "documents": 2}


@pytest.mark.unit
def test_metrics_endpoint(client):
    client.get("/search", params={"q": "equal"})

    response = client.get("/metrics")

    assert response.status_code == 200
    assert "caselaw_search_queries_total" in response.text


@pytest.mark.unit
def test_lifespan_restores_snapshot(handle, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    path = tmp_path / "index.clsx"
    save_snapshot(handle.current(), path)
    monkeypatch.setenv("CASELAW_SEARCH_SNAPSHOT_PATH", str(path))

    with TestClient(create_app(Settings())) as client:
        body = client.get("/search", params={"q": "protection"}).json()

    assert [result["path"] for result in body["results"]] == ["schrems-v-facebook"]


@pytest.mark.unit
def test_lifespan_ignores_corrupt_snapshot(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    path = tmp_path / "index.clsx"
    path.write_bytes(b"garbage")
    monkeypatch.setenv("CASELAW_SEARCH_SNAPSHOT_PATH", str(path))

    with TestClient(create_app(Settings())) as client:
        assert client.get("/health").json()["documents"] == 0
