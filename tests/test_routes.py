"""Tests for the HTTP routes."""

import asyncio
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from website_tracker import setup_tracker
from website_tracker.errors import StoreError
from website_tracker.store import SQLiteEventStore
from website_tracker.window import now_ms

SITE = "example.com"
CHROME_MAC = "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"


def _client(store) -> TestClient:
    tracker = setup_tracker(allowed_site=SITE, store=store)
    app = FastAPI()
    app.include_router(tracker.router)
    return TestClient(app)


@pytest.fixture
def store():
    store = SQLiteEventStore(":memory:")
    asyncio.run(store.initialize())
    yield store
    store.close()


class TestCollect:
    """Test POST /collect."""

    def test_accepts_event(self, store):
        client = _client(store)
        response = client.post(
            "/collect",
            json={"site": SITE, "type": "pageview", "ts": now_ms(), "visitor_id": "v1", "path": "/"},
            headers={"User-Agent": CHROME_MAC, "X-Forwarded-For": "203.0.113.9, 10.0.0.1"},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["ok"] is True
        assert body["id"].startswith("evt-")

    def test_missing_type(self, store):
        response = _client(store).post("/collect", json={"site": SITE, "ts": now_ms()})
        assert response.status_code == 400
        assert response.json() == {"ok": False, "error": "missing_type"}

    def test_site_not_allowed(self, store):
        response = _client(store).post("/collect", json={"site": "evil.example", "type": "pageview"})
        assert response.status_code == 403
        assert response.json()["error"] == "site_not_allowed"

    def test_far_future_ts(self, store):
        response = _client(store).post("/collect", json={"site": SITE, "type": "pageview", "ts": 10**17})
        assert response.status_code == 400
        assert response.json() == {"ok": False, "error": "invalid_ts"}

    def test_malformed_json(self, store):
        response = _client(store).post(
            "/collect", content=b"{not json", headers={"Content-Type": "application/json"}
        )
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_payload"

    def test_store_failure(self):
        broken = AsyncMock(spec=SQLiteEventStore)
        broken.insert.side_effect = StoreError("disk full")
        response = _client(broken).post("/collect", json={"site": SITE, "type": "pageview"})
        assert response.status_code == 500
        assert response.json() == {"ok": False, "error": "store_unavailable"}


class TestStats:
    """Test GET /stats."""

    def test_round_trip(self, store):
        client = _client(store)
        for path in ("/a", "/a", "/b"):
            client.post(
                "/collect",
                json={"site": SITE, "type": "pageview", "ts": now_ms(), "visitor_id": "v1", "path": path},
                headers={"User-Agent": CHROME_MAC},
            )

        response = client.get("/stats", params={"sinceMin": "60", "sankeyLayers": "browser,path"})

        assert response.status_code == 200
        body = response.json()
        assert body["ok"] is True
        assert body["pv"] == 3
        assert body["uv"] == 1
        assert body["sinceMin"] == 60
        assert body["topPages"][0] == {"path": "/a", "title": "", "pv": 2}
        assert body["visitors"][0]["visitor_id"] == "v1"
        assert body["deviceStats"]["deviceTypes"] == {"desktop": 3}
        assert body["userStats"]["newUsers"] == 1
        assert body["sankey"]["layers"] == ["browser", "path"]
        assert [n["label"] for n in body["sankey"]["nodes"]] == ["Chrome", "/a", "/b"]

    def test_blank_user_agent(self, store):
        client = _client(store)
        client.post(
            "/collect",
            json={"site": SITE, "type": "pageview", "visitor_id": "v1", "path": "/"},
            headers={"User-Agent": "   "},
        )

        response = client.get("/stats")

        assert response.status_code == 200
        assert response.json()["pv"] == 1
        assert response.json()["deviceStats"]["deviceTypes"] == {}

    def test_since_min_clamped(self, store):
        body = _client(store).get("/stats", params={"sinceMin": "1"}).json()
        assert body["sinceMin"] == 5

    def test_site_not_allowed(self, store):
        response = _client(store).get("/stats", params={"site": "other.com"})
        assert response.status_code == 403
        assert response.json() == {"ok": False, "error": "site_not_allowed"}

    def test_store_failure_returns_no_partial_data(self):
        broken = AsyncMock(spec=SQLiteEventStore)
        broken.max_query_params = 999
        broken.query.side_effect = StoreError("locked")
        response = _client(broken).get("/stats")
        assert response.status_code == 500
        assert response.json() == {"ok": False, "error": "stats_unavailable"}


class TestHealth:

    def test_health(self, store):
        response = _client(store).get("/health")
        assert response.status_code == 200
        assert response.text == "ok"
