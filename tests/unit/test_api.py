"""Tests for the FastAPI REST API module."""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from market_sentinel.api.app import create_app
from market_sentinel.api.deps import SECURITY_HEADERS
from market_sentinel.api.routes import summarize
from market_sentinel.core.config import (
    APIConfig,
    SchedulerConfig,
    SentinelConfig,
    StorageConfig,
)
from market_sentinel.core.exceptions import PersistenceError, SourceFetchError
from market_sentinel.core.models import RawCandidate

API_KEY = "test-secret-key"


# -- Fixtures --


def _make_config(tmp_path, api_key=None, rate_limit="1000/minute"):
    """Create a test config."""
    return SentinelConfig(
        storage=StorageConfig(sqlite_path=str(tmp_path / "test.db")),
        scheduler=SchedulerConfig(enabled=False),
        api=APIConfig(api_key=api_key, rate_limit=rate_limit),
    )


@pytest.fixture
def sources(fake_source):
    return [
        fake_source(
            "jumia",
            [
                RawCandidate(item_text="Mama Gold Rice 50kg", price_text="₦78,500"),
                RawCandidate(item_text="Golden Penny Beans 5kg", price_text="₦9,800"),
            ],
            source="jumia.com.ng",
        ),
        fake_source(
            "nnpc",
            [RawCandidate(item_text="Fuel Price (PETROL)", price_text="₦617")],
            source="nnpcgroup.com",
        ),
        fake_source("punch", error=SourceFetchError("HTTP 503 from https://punchng.com")),
    ]


@pytest.fixture
def client(tmp_path, sources):
    app = create_app(config=_make_config(tmp_path), sources=sources)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def authed_client(tmp_path, sources):
    app = create_app(config=_make_config(tmp_path, api_key=API_KEY), sources=sources)
    with TestClient(app) as c:
        yield c


# -- Health --


@pytest.mark.unit
class TestHealthEndpoint:
    def test_health_returns_ok(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "ok"
        assert data["version"] == "0.1.0"
        assert data["storage"] == "sqlite:ok"
        assert "timestamp" in data

    def test_security_headers(self, client):
        resp = client.get("/health")
        for name, value in SECURITY_HEADERS.items():
            assert resp.headers[name] == value


# -- Prices --


@pytest.mark.unit
class TestPricesEndpoint:
    def test_empty_store_triggers_refresh(self, client, sources):
        resp = client.get("/api/market/prices", params={"item": "mama gold"})
        assert resp.status_code == 200
        data = resp.json()
        assert data["success"] is True
        assert data["cached"] is False
        assert data["state"] == "empty"
        assert data["count"] == 1
        row = data["data"][0]
        assert row["item"] == "Mama Gold Rice 50kg"
        assert row["price"] == 78500.0
        assert row["currency"] == "NGN"
        assert row["source"] == "jumia.com.ng"
        assert row["location"] == "Nigeria"
        assert row["id"] is not None
        assert "updated_at" in row
        assert sources[0].calls == 1

    def test_item_filter_is_plain_substring(self, client):
        # "Fuel Price" contains "rice"
        resp = client.get("/api/market/prices", params={"item": "rice"})
        items = {r["item"] for r in resp.json()["data"]}
        assert items == {"Mama Gold Rice 50kg", "Fuel Price (PETROL)"}

    def test_second_read_is_cached(self, client, sources):
        client.get("/api/market/prices")
        resp = client.get("/api/market/prices")
        data = resp.json()
        assert data["cached"] is True
        assert data["state"] == "fresh_hit"
        assert data["count"] == 3
        assert data["last_updated"] is not None
        assert sources[0].calls == 1

    def test_filters_echoed(self, client):
        resp = client.get(
            "/api/market/prices",
            params={"item": "petrol", "source": "nnpcgroup.com", "all": "true", "limit": 5},
        )
        data = resp.json()
        assert data["filters"] == {
            "item": "petrol",
            "location": None,
            "source": "nnpcgroup.com",
            "all": True,
            "limit": 5,
        }
        assert [r["item"] for r in data["data"]] == ["Fuel Price (PETROL)"]

    def test_default_limit(self, client):
        assert client.get("/api/market/prices").json()["filters"]["limit"] == 100

    def test_all_sources_failing_returns_empty(self, tmp_path, fake_source):
        dead = [fake_source("punch", error=SourceFetchError("timeout"))]
        app = create_app(config=_make_config(tmp_path), sources=dead)
        with TestClient(app) as c:
            resp = c.get("/api/market/prices")
        assert resp.status_code == 200
        data = resp.json()
        assert data["data"] == []
        assert data["count"] == 0
        assert data["state"] == "empty"

    @pytest.mark.parametrize("limit", [0, 1001, -3])
    def test_limit_out_of_range(self, client, limit):
        resp = client.get("/api/market/prices", params={"limit": limit})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_non_numeric_limit(self, client):
        resp = client.get("/api/market/prices", params={"limit": "lots"})
        assert resp.status_code == 400


# -- Summary --


@pytest.mark.unit
class TestSummaryEndpoint:
    def test_empty(self, client):
        resp = client.get("/api/market/summary")
        assert resp.status_code == 200
        summary = resp.json()["summary"]
        assert summary["total_records"] == 0
        assert summary["top_items"] == []

    def test_after_scrape(self, client):
        client.get("/api/market/prices")
        client.get("/api/market/prices", params={"max_age_minutes": 1, "item": "zzz"})
        summary = client.get("/api/market/summary").json()["summary"]

        assert summary["total_records"] == 6
        assert summary["unique_items"] == 3
        assert {s["source"]: s["count"] for s in summary["sources"]} == {
            "jumia.com.ng": 4,
            "nnpcgroup.com": 2,
        }
        top = summary["top_items"][0]
        assert top["count"] == 2
        assert top["sources"] in (["jumia.com.ng"], ["nnpcgroup.com"])


@pytest.mark.unit
def test_summarize_orders_by_count(make_observation, now):
    rows = [
        make_observation(item="Rice", price=46000.0, observed_at=now),
        make_observation(item="Beans", observed_at=now),
        make_observation(item="Rice", price=45000.0, source="x.example", observed_at=now - timedelta(hours=1)),
    ]
    summary = summarize(rows)
    assert summary.total_records == 3
    assert summary.unique_items == 2
    rice = summary.top_items[0]
    assert rice.item == "Rice"
    assert rice.count == 2
    assert rice.latest_price == 46000.0
    assert rice.sources == ["jumia.com.ng", "x.example"]


# -- Scrape Triggers --


@pytest.mark.unit
class TestScrapeAuth:
    def test_key_not_configured(self, client):
        resp = client.post("/api/scrape", headers={"x-api-key": "anything"})
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "API_KEY_NOT_CONFIGURED"

    def test_missing_key(self, authed_client):
        resp = authed_client.post("/api/scrape")
        assert resp.status_code == 401
        body = resp.json()
        assert body["error"] == {"message": "API key required", "code": "MISSING_API_KEY"}

    def test_invalid_key(self, authed_client, sources):
        resp = authed_client.post("/api/scrape", headers={"x-api-key": "wrong"})
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "INVALID_API_KEY"
        assert sources[0].calls == 0

    def test_targeted_requires_key(self, authed_client):
        assert authed_client.post("/api/scrape/nnpc").status_code == 401


@pytest.mark.unit
class TestScrapeEndpoints:
    def test_scrape_all(self, authed_client):
        resp = authed_client.post("/api/scrape", headers={"x-api-key": API_KEY})
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["message"] == "Scraping completed"
        assert body["data"]["total_scraped"] == 3
        assert body["data"]["sources"]["punch"]["success"] is False
        assert body["data"]["errors"] == [
            {"source": "punch", "error": "HTTP 503 from https://punchng.com"}
        ]

    def test_scrape_one(self, authed_client, sources):
        resp = authed_client.post("/api/scrape/NNPC", headers={"x-api-key": API_KEY})
        assert resp.status_code == 200
        body = resp.json()
        assert body["message"] == "Scraping completed for NNPC"
        assert body["data"]["total_scraped"] == 1
        assert sources[0].calls == 0

    def test_scrape_one_unknown(self, authed_client):
        resp = authed_client.post("/api/scrape/konga", headers={"x-api-key": API_KEY})
        assert resp.status_code == 404
        error = resp.json()["error"]
        assert error["code"] == "UNKNOWN_SOURCE"
        assert error["message"] == "Scraper for konga not found"

    def test_scrape_one_failing_source(self, authed_client):
        resp = authed_client.post("/api/scrape/punch", headers={"x-api-key": API_KEY})
        assert resp.status_code == 502
        body = resp.json()
        assert body["success"] is False
        assert body["error"]["code"] == "SOURCE_FETCH_ERROR"

    def test_persistence_failure_is_500(self, authed_client):
        store = authed_client.app.state.app_state.store
        store.save_observations = AsyncMock(side_effect=PersistenceError("disk full"))

        resp = authed_client.post("/api/scrape", headers={"x-api-key": API_KEY})

        assert resp.status_code == 500
        body = resp.json()
        assert body["success"] is False
        assert body["error"]["code"] == "PERSISTENCE_ERROR"
        assert body["data"]["total_scraped"] == 3
        assert store.save_observations.await_count == 2


@pytest.mark.unit
class TestScrapeStatus:
    def test_status_no_auth(self, authed_client):
        resp = authed_client.get("/api/scrape/status")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "active"
        assert data["available_sources"] == ["jumia", "nnpc", "punch"]
        assert data["scheduler"]["enabled"] is False
        assert data["scheduler"]["interval_hours"] == 4.0


# -- Rate Limiting --


@pytest.mark.unit
class TestRateLimit:
    def test_exceeding_limit_returns_429(self, tmp_path, sources):
        app = create_app(config=_make_config(tmp_path, rate_limit="2/minute"), sources=sources)
        with TestClient(app) as c:
            codes = [c.get("/api/scrape/status").status_code for _ in range(3)]
            resp = c.get("/api/scrape/status")
            health = [c.get("/health").status_code for _ in range(5)]

        assert codes == [200, 200, 429]
        assert resp.json()["error"]["code"] == "RATE_LIMITED"
        assert health == [200] * 5

    def test_budget_is_per_route(self, tmp_path, sources):
        app = create_app(config=_make_config(tmp_path, rate_limit="1/minute"), sources=sources)
        with TestClient(app) as c:
            first = c.get("/api/scrape/status").status_code
            second = c.get("/api/scrape/status").status_code
            other = c.get("/api/market/summary").status_code

        assert (first, second, other) == (200, 429, 200)

    def test_limited_before_auth(self, tmp_path, sources):
        config = _make_config(tmp_path, api_key=API_KEY, rate_limit="1/minute")
        app = create_app(config=config, sources=sources)
        with TestClient(app) as c:
            c.post("/api/scrape", headers={"x-api-key": "wrong"})
            resp = c.post("/api/scrape", headers={"x-api-key": "wrong"})

        assert resp.status_code == 429
        assert resp.json()["error"]["code"] == "RATE_LIMITED"

    def test_limiter_per_app(self, tmp_path, sources):
        config = _make_config(tmp_path, rate_limit="1/minute")
        first = create_app(config=config, sources=sources)
        second = create_app(config=config, sources=sources)
        with TestClient(first) as c:
            assert c.get("/api/scrape/status").status_code == 200
        with TestClient(second) as c:
            assert c.get("/api/scrape/status").status_code == 200
