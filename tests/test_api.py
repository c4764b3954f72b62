import time

import pytest
from fastapi.testclient import TestClient

from api.app import create_app
from know.enrichment import EnrichmentConfig, build_runtime

ARTICLE = {
    "title": "Python asyncio",
    "content": "Python asyncio makes concurrent programming approachable. Coroutines share one event loop.",
    "category": "engineering",
}


@pytest.fixture
def client(tmp_path):
    config = EnrichmentConfig(
        database_url=f"sqlite+pysqlite:///{tmp_path / 'api.db'}",
        vector_backend="blob",
        llm_provider="local",
        embedding_dimension=256,
        worker_concurrency=2,
        shutdown_drain_seconds=1,
    )
    app = create_app(build_runtime(config))
    with TestClient(app) as test_client:
        yield test_client


def _wait_for_state(client, article_id, state, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        body = client.get(f"/articles/{article_id}").json()
        if body["state"] == state:
            return body
        time.sleep(0.02)
    raise AssertionError(f"article {article_id} never reached {state}")


def test_healthz_reports_components(client):
    body = client.get("/healthz").json()
    assert body["status"] == "ok"
    assert body["vector_index"] is True
    assert body["tag_cache"] is True
    assert body["workers"]["concurrency"] == 2


def test_created_article_is_enriched_in_the_background(client):
    response = client.post("/articles", json=ARTICLE)
    assert response.status_code == 201
    article_id = response.json()["id"]

    body = _wait_for_state(client, article_id, "embedded")

    assert "Python" in body["tags"]
    assert body["summary"]
    assert "Python" in client.get("/tags/popular").json()
    hits = client.get("/search", params={"query": "python asyncio concurrent programming"}).json()
    assert hits[0]["id"] == article_id
    assert hits[0]["distance"] < 1.0


def test_update_and_delete(client):
    article_id = client.post("/articles", json=ARTICLE).json()["id"]
    _wait_for_state(client, article_id, "embedded")

    response = client.put(
        f"/articles/{article_id}",
        json={"title": "Databases", "content": "Indexes speed up database queries. Tables hold rows."},
    )
    assert response.status_code == 200
    body = _wait_for_state(client, article_id, "embedded")
    assert "Python" not in body["tags"]
    assert "Python" not in client.get("/tags/popular").json()

    assert client.delete(f"/articles/{article_id}").status_code == 204
    assert client.get(f"/articles/{article_id}").status_code == 404
    assert client.delete(f"/articles/{article_id}").status_code == 404
    assert client.get("/search", params={"query": "database queries"}).json() == []


def test_validation_and_missing_articles(client):
    assert client.post("/articles", json={"title": "", "content": "x"}).status_code == 422
    assert client.get("/articles/999").status_code == 404
    assert client.put("/articles/999", json=ARTICLE).status_code == 404
    assert client.get("/search", params={"query": "  "}).status_code == 400


def test_admin_sweep_and_clear_all(client):
    ids = [client.post("/articles", json=ARTICLE).json()["id"] for _ in range(3)]
    for article_id in ids:
        _wait_for_state(client, article_id, "embedded")
    assert [a["id"] for a in client.get("/articles").json()] == list(reversed(ids))

    assert client.post("/admin/retag-missing").json() == {"queued": 0, "article_ids": []}

    assert client.post("/admin/clear-all").json() == {"deleted": 3}
    assert client.get("/articles").json() == []
    assert client.get("/tags/popular").json() == []
