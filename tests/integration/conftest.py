"""Integration test fixtures - real SQLite file and real adapters, no network."""

from __future__ import annotations

from pathlib import Path

import httpx
import pytest
import respx

from market_sentinel.core.config import (
    APIConfig,
    SchedulerConfig,
    SentinelConfig,
    SourcesConfig,
    StorageConfig,
)
from market_sentinel.ingestion.store import SqliteStore
from market_sentinel.sources import (
    AbokiFxSource,
    JumiaSource,
    NairametricsSource,
    NnpcSource,
    PunchSource,
)

PAGES = {
    NairametricsSource.url: """
        <article><h2>Garri price climbs to ₦1,400 per paint bucket – survey</h2></article>
        <article><h2>Bank results season opens</h2></article>
    """,
    PunchSource.url: """
        <h2 class="entry-title">Diesel: marketers sell at ₦1,250 per litre</h2>
    """,
    AbokiFxSource.url: """
        <div class="rate"><span class="pair">USD/NGN</span><span class="rate-value">1,530</span></div>
        <div class="rate"><span class="pair">EUR/NGN</span><span class="rate-value">1,655.50</span></div>
    """,
    NnpcSource.url: """
        <p>The retail price of PMS is now ₦617 per litre at NNPC stations.</p>
    """,
    JumiaSource.url: """
        <div class="product"><h3>Royal Stallion Rice 25kg</h3><span class="price">₦41,900</span></div>
        <div class="product"><h3>Peak Milk Tin</h3><span class="price">₦650</span></div>
    """,
}


@pytest.fixture
def sites():
    """Every built-in source URL served from canned HTML."""
    with respx.mock(assert_all_called=False) as mock:
        routes = {
            url: mock.get(url).mock(
                return_value=httpx.Response(200, text=f"<html><body>{html}</body></html>")
            )
            for url, html in PAGES.items()
        }
        yield routes


@pytest.fixture
def sources_config() -> SourcesConfig:
    return SourcesConfig(request_timeout=5, retries=0, retry_delay=0)


@pytest.fixture
def integration_config(tmp_path: Path, sources_config) -> SentinelConfig:
    return SentinelConfig(
        sources=sources_config,
        storage=StorageConfig(sqlite_path=str(tmp_path / "integration.db")),
        scheduler=SchedulerConfig(enabled=False),
        api=APIConfig(api_key="integration-key"),
    )


@pytest.fixture
async def integration_store(integration_config) -> SqliteStore:
    """An initialized file-backed SqliteStore."""
    store = SqliteStore(integration_config.storage)
    await store.initialize()
    yield store
    await store.close()
