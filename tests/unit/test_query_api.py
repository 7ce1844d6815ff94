"""Query API 라우트 단위 테스트 (Fake transport 주입)"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from query_engine.app import create_app
from query_engine.core.exceptions import TransportError, TransportErrorClass
from tests.fixtures import AGENT_RESPONSES, QUERY_PAYLOADS


@pytest.fixture
def api_engine(make_engine):
    return make_engine(concurrency_limit=2)


@pytest.fixture
def client(api_engine):
    app = create_app(api_engine)
    with TestClient(app) as test_client:
        yield test_client


def test_routes_registered(api_engine):
    app = create_app(api_engine)
    routes = {route.path for route in app.routes}

    assert "/api/v1/query" in routes
    assert "/api/v1/query/batch" in routes
    assert "/api/v1/query/{request_id}" in routes
    assert "/api/v1/stats" in routes
    assert "/api/v1/cache" in routes
    assert "/health" in routes


def test_submit_query(client, fake_transport):
    response = client.post("/api/v1/query", json=QUERY_PAYLOADS["simple"])

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "succeeded"
    assert body["success"] is True
    assert body["response"] == {"answer": "result for sales report"}
    assert body["attempts"] == 1
    assert fake_transport.calls == ["sales report"]


def test_submit_twice_hits_cache(client, fake_transport):
    client.post("/api/v1/query", json=QUERY_PAYLOADS["with_context"])
    body = client.post("/api/v1/query", json=QUERY_PAYLOADS["with_context"]).json()

    assert body["status"] == "cache_hit"
    assert body["served_from_cache"] is True
    assert len(fake_transport.calls) == 1


def test_submit_failure_is_structured(client, fake_transport):
    fake_transport.always_fail["sales report"] = TransportError(TransportErrorClass.UNAUTHORIZED, "bad key")

    body = client.post("/api/v1/query", json=QUERY_PAYLOADS["simple"]).json()

    assert body["success"] is False
    assert body["status"] == "failed"
    assert body["error_class"] == "unauthorized"
    assert body["error_code"] == "TRANSPORT_UNAUTHORIZED"
    assert body["attempts"] == 1


@pytest.mark.parametrize("key", ["blank", "missing_query"])
def test_submit_validation(client, key):
    response = client.post("/api/v1/query", json=QUERY_PAYLOADS[key])
    assert response.status_code == 422


def test_batch_includes_follow_ups(client, fake_transport, fake_detector):
    fake_transport.responses["pipeline summary"] = AGENT_RESPONSES["plain"]
    fake_detector.follow_ups["pipeline summary"] = ["pipeline by stage"]

    body = client.post("/api/v1/query/batch", json=QUERY_PAYLOADS["batch"]).json()

    assert body["total"] == 3
    assert body["succeeded"] == 3
    queries = [r["query"] for r in body["results"]]
    assert set(queries) == {"pipeline summary", "pipeline by stage", "open tickets"}
    child = next(r for r in body["results"] if r["query"] == "pipeline by stage")
    assert child["mode"] == "recursive"
    assert child["depth"] == 1


def test_batch_excludes_results_of_other_callers(client, api_engine, fake_transport):
    api_engine.enqueue("other query")

    body = client.post("/api/v1/query/batch", json=QUERY_PAYLOADS["batch"]).json()

    assert body["total"] == 2
    assert {r["query"] for r in body["results"]} == {"pipeline summary", "open tickets"}
    # 다른 호출자의 요청도 같은 drain에서 실행은 됨
    assert "other query" in fake_transport.calls


def test_batch_reports_duplicate_request_id(client):
    payload = {
        "queries": [
            {"query": "a", "request_id": "same"},
            {"query": "b", "request_id": "same"},
        ]
    }

    body = client.post("/api/v1/query/batch", json=payload).json()

    assert body["total"] == 2
    assert body["failed"] == 1
    rejected = next(r for r in body["results"] if not r["success"])
    assert rejected["error_code"] == "VALIDATION_ERROR"


def test_cancel_unknown_request(client):
    assert client.delete("/api/v1/query/unknown").status_code == 404


def test_stats_and_cache_invalidation(client):
    client.post("/api/v1/query", json=QUERY_PAYLOADS["simple"])

    stats = client.get("/api/v1/stats").json()
    assert stats["submitted"] == 1
    assert stats["succeeded"] == 1
    assert stats["cache_misses"] == 1

    assert client.delete("/api/v1/cache").json() == {"removed": 1}
    assert client.delete("/api/v1/cache", params={"fingerprint": "query:none"}).json() == {"removed": 0}


def test_health(client):
    body = client.get("/health").json()

    assert body["status"] == "ok"
    assert body["engine"]["healthy"] is True
    assert body["engine"]["requests"]["concurrency_limit"] == 2


def test_lifespan_closes_engine(api_engine, fake_transport):
    with TestClient(create_app(api_engine)):
        pass

    assert fake_transport.closed is True
