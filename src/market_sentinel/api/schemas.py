"""API-specific request/response schemas (Pydantic v2)."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

from market_sentinel.core.models import PriceObservation


# -- Error --


class ErrorBody(BaseModel):
    message: str
    code: str
    details: object | None = None


class ErrorResponse(BaseModel):
    """Standard error envelope: {"error": {"message", "code"}}."""

    success: bool = False
    error: ErrorBody


# -- Prices --


class ObservationResponse(BaseModel):
    """A persisted market_data row as returned to callers."""

    id: int | None = None
    item: str
    price: float
    currency: str
    source: str
    location: str
    updated_at: datetime

    @classmethod
    def from_observation(cls, obs: PriceObservation) -> ObservationResponse:
        return cls(
            id=obs.id,
            item=obs.item,
            price=obs.price,
            currency=obs.currency,
            source=obs.source,
            location=obs.location,
            updated_at=obs.observed_at,
        )


class PricesResponse(BaseModel):
    """Response for GET /api/market/prices."""

    success: bool = True
    data: list[ObservationResponse]
    count: int
    filters: dict
    timestamp: datetime
    cached: bool
    state: str
    last_updated: datetime | None = None


# -- Summary --


class SourceCount(BaseModel):
    source: str
    count: int


class ItemSummary(BaseModel):
    item: str
    count: int
    latest_price: float
    currency: str
    latest_update: datetime
    sources: list[str]


class MarketSummary(BaseModel):
    total_records: int
    unique_items: int
    sources: list[SourceCount]
    top_items: list[ItemSummary]


class SummaryResponse(BaseModel):
    """Response for GET /api/market/summary."""

    success: bool = True
    summary: MarketSummary
    timestamp: datetime


# -- Scrape Triggers --


class ScrapeResponse(BaseModel):
    """Response for POST /api/scrape and POST /api/scrape/{source}."""

    success: bool
    message: str
    data: dict
    error: ErrorBody | None = None


class SchedulerStatus(BaseModel):
    enabled: bool
    interval_hours: float
    next_run_time: datetime | None = None


class ScrapeStatusResponse(BaseModel):
    """Response for GET /api/scrape/status."""

    status: str = "active"
    message: str = "Scraper service is running"
    available_sources: list[str]
    scheduler: SchedulerStatus


# -- Health --


class HealthResponse(BaseModel):
    """Response for GET /health."""

    status: str = "ok"
    version: str
    storage: str
    timestamp: datetime
