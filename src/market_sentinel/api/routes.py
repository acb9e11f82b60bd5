"""FastAPI route definitions for the market-sentinel API."""

from __future__ import annotations

from collections import Counter
from datetime import UTC as _UTC, datetime

from fastapi import APIRouter, Depends, Query
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

import market_sentinel
from market_sentinel.api.deps import (
    AppState,
    get_aggregator,
    get_app_state,
    get_config,
    get_controller,
    get_store,
    require_api_key,
)
from market_sentinel.api.schemas import (
    ErrorBody,
    HealthResponse,
    ItemSummary,
    MarketSummary,
    ObservationResponse,
    PricesResponse,
    SchedulerStatus,
    ScrapeResponse,
    ScrapeStatusResponse,
    SourceCount,
    SummaryResponse,
)
from market_sentinel.cache.freshness import FreshnessController
from market_sentinel.core.config import SentinelConfig
from market_sentinel.core.models import AggregationResult, PriceObservation, PriceQuery
from market_sentinel.ingestion.aggregator import Aggregator
from market_sentinel.ingestion.store import SqliteStore

router = APIRouter()
health_router = APIRouter()

SUMMARY_ROW_LIMIT = 1000
TOP_ITEMS = 10


# -- Health --


@health_router.get("/health", response_model=HealthResponse)
async def health_check(
    store: SqliteStore = Depends(get_store),
    config: SentinelConfig = Depends(get_config),
):
    """Liveness plus storage reachability."""
    healthy = await store.health_check()
    return HealthResponse(
        status="ok",
        version=market_sentinel.__version__,
        storage=f"{config.storage.backend.value}:{'ok' if healthy else 'unavailable'}",
        timestamp=datetime.now(tz=_UTC),
    )


# -- Market Data --


@router.get("/market/prices", response_model=PricesResponse)
async def get_prices(
    item: str | None = Query(None, description="Case-insensitive item substring"),
    location: str | None = Query(None, description="Case-insensitive location substring"),
    source: str | None = Query(None, description="Exact source attribution"),
    include_all: bool = Query(False, alias="all", description="Ignore the retention window"),
    limit: int | None = Query(None, ge=1),
    max_age_minutes: int | None = Query(None, ge=1),
    controller: FreshnessController = Depends(get_controller),
    config: SentinelConfig = Depends(get_config),
):
    """Read prices, refreshing from the sources when the data is not fresh."""
    if limit is not None and limit > config.api.max_limit:
        raise RequestValidationError(
            [
                {
                    "loc": ("query", "limit"),
                    "msg": f"limit must be between 1 and {config.api.max_limit}",
                    "type": "value_error",
                }
            ]
        )

    query = PriceQuery(
        item=item,
        location=location,
        source=source,
        include_all=include_all,
        limit=limit or config.api.default_limit,
        max_age_minutes=max_age_minutes,
    )
    lookup = await controller.get_prices(query)

    return PricesResponse(
        success=True,
        data=[ObservationResponse.from_observation(o) for o in lookup.observations],
        count=lookup.count,
        filters=query.echo(),
        timestamp=datetime.now(tz=_UTC),
        cached=lookup.cached,
        state=lookup.state.value,
        last_updated=lookup.last_updated,
    )


@router.get("/market/summary", response_model=SummaryResponse)
async def get_summary(store: SqliteStore = Depends(get_store)):
    """Aggregate view over the stored history."""
    rows = await store.query_observations(limit=SUMMARY_ROW_LIMIT)
    return SummaryResponse(
        success=True,
        summary=summarize(rows),
        timestamp=datetime.now(tz=_UTC),
    )


def summarize(rows: list[PriceObservation]) -> MarketSummary:
    """Per-source counts and the most observed items, rows newest first."""
    source_counts = Counter(r.source for r in rows)

    items: dict[str, dict] = {}
    for row in rows:
        entry = items.get(row.item)
        if entry is None:
            # First row seen is the newest
            entry = items[row.item] = {
                "item": row.item,
                "count": 0,
                "latest_price": row.price,
                "currency": row.currency,
                "latest_update": row.observed_at,
                "sources": [],
            }
        entry["count"] += 1
        if row.source not in entry["sources"]:
            entry["sources"].append(row.source)

    top = sorted(items.values(), key=lambda e: e["count"], reverse=True)[:TOP_ITEMS]
    return MarketSummary(
        total_records=len(rows),
        unique_items=len(items),
        sources=[SourceCount(source=s, count=c) for s, c in source_counts.most_common()],
        top_items=[ItemSummary(**entry) for entry in top],
    )


# -- Scrape Triggers --


@router.post(
    "/scrape",
    response_model=ScrapeResponse,
    dependencies=[Depends(require_api_key)],
)
async def scrape_all(aggregator: Aggregator = Depends(get_aggregator)):
    """Run one aggregation pass over every source."""
    result = await aggregator.run_all()
    if not result.success:
        return _persistence_failure(result, "Scraping failed")
    return ScrapeResponse(success=True, message="Scraping completed", data=result.summary())


@router.post(
    "/scrape/{source}",
    response_model=ScrapeResponse,
    dependencies=[Depends(require_api_key)],
)
async def scrape_source(source: str, aggregator: Aggregator = Depends(get_aggregator)):
    """Run one source. Unknown names are a 404."""
    result = await aggregator.run_one(source)
    if not result.success:
        return _persistence_failure(result, f"Scraping failed for {source}")

    status = next(iter(result.per_source_status.values()))
    if not status.success:
        body = ScrapeResponse(
            success=False,
            message=f"Scraping failed for {source}",
            data=result.summary(),
            error=ErrorBody(message=status.error or "unknown error", code="SOURCE_FETCH_ERROR"),
        )
        return JSONResponse(status_code=502, content=body.model_dump(mode="json"))

    return ScrapeResponse(
        success=True,
        message=f"Scraping completed for {source}",
        data=result.summary(),
    )


@router.get("/scrape/status", response_model=ScrapeStatusResponse)
async def scrape_status(state: AppState = Depends(get_app_state)):
    """Registered sources and scheduler state. No key required."""
    scheduler = state.scheduler
    return ScrapeStatusResponse(
        status="active",
        message="Scraper service is running",
        available_sources=state.aggregator.source_names,
        scheduler=SchedulerStatus(
            enabled=scheduler is not None and scheduler.running,
            interval_hours=state.config.scheduler.interval_hours,
            next_run_time=scheduler.next_run_time() if scheduler is not None else None,
        ),
    )


def _persistence_failure(result: AggregationResult, message: str) -> JSONResponse:
    body = ScrapeResponse(
        success=False,
        message=message,
        data=result.summary(),
        error=ErrorBody(
            message=result.persistence_error or "persistence failed",
            code="PERSISTENCE_ERROR",
        ),
    )
    return JSONResponse(status_code=500, content=body.model_dump(mode="json"))
