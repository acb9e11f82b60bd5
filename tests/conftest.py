"""Shared pytest fixtures for market-sentinel."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from market_sentinel.core.config import StorageConfig
from market_sentinel.core.models import (
    PriceObservation,
    RawCandidate,
    StorageBackend,
)
from market_sentinel.ingestion.store import SqliteStore

NOW = datetime(2026, 3, 2, 12, 0, 0, tzinfo=UTC)


class FakeSource:
    """In-memory SourceAdapter: returns canned candidates or raises."""

    def __init__(
        self,
        name: str,
        candidates: list[RawCandidate] | None = None,
        *,
        source: str | None = None,
        error: Exception | None = None,
        delay: float = 0.0,
    ) -> None:
        self.name = name
        self.source = source or f"{name}.example"
        self.candidates = candidates or []
        self.error = error
        self.delay = delay
        self.calls = 0

    async def fetch(self) -> list[RawCandidate]:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return list(self.candidates)


class Clock:
    """Settable clock for freshness tests."""

    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def make_observation():
    """Factory for PriceObservation with overridable defaults."""

    def _make(**overrides) -> PriceObservation:
        defaults = dict(
            item="Rice (50kg bag)",
            price=45000.0,
            currency="NGN",
            source="jumia.com.ng",
            location="Lagos",
            observed_at=NOW,
        )
        defaults.update(overrides)
        return PriceObservation(**defaults)

    return _make


@pytest.fixture
def rice_candidate() -> RawCandidate:
    return RawCandidate(item_text="Rice 50kg", price_text="₦45,000", currency_hint="NGN")


@pytest.fixture
async def store():
    """An initialized in-memory SqliteStore."""
    s = SqliteStore(StorageConfig(backend=StorageBackend.SQLITE, sqlite_path=":memory:"))
    await s.initialize()
    yield s
    await s.close()


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def fake_source():
    """Factory for FakeSource adapters."""

    def _make(name: str, candidates=None, **kwargs) -> FakeSource:
        return FakeSource(name, candidates, **kwargs)

    return _make
