"""Freshness controller: serve persisted prices or trigger a refresh.

Each read is classified on its own, from query time and the newest matching
row, with no state carried between requests:

- FRESH_HIT: newest match is inside the hot window. Served as cached.
- STALE_PRESENT: matches exist only outside the hot window (but inside the
  retention window). Refresh; on failure serve the stale rows as cached.
- EMPTY: nothing inside the retention window. Refresh; on failure return
  an empty list.

Readers never see an error for missing data.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime, timedelta
from typing import Awaitable, Callable

from market_sentinel.core.config import CacheConfig
from market_sentinel.core.exceptions import RefreshError, StorageError
from market_sentinel.core.models import (
    AggregationResult,
    FreshnessState,
    PriceLookup,
    PriceObservation,
    PriceQuery,
)
from market_sentinel.ingestion.store import ObservationStore

logger = logging.getLogger(__name__)

Refresher = Callable[[], Awaitable[AggregationResult]]


def matches(observation: PriceObservation, query: PriceQuery) -> bool:
    """Same predicate the store applies, for freshly scraped rows."""
    if query.item and query.item.lower() not in observation.item.lower():
        return False
    if query.location and query.location.lower() not in observation.location.lower():
        return False
    if query.source and observation.source != query.source:
        return False
    return True


class FreshnessController:
    """Decides between persisted data and a new aggregation pass."""

    def __init__(
        self,
        store: ObservationStore,
        refresh: Refresher,
        config: CacheConfig | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._refresh = refresh
        self._config = config or CacheConfig()
        self._clock = clock or (lambda: datetime.now(tz=UTC))
        # Refreshes that outlived their request budget keep running here
        self._inflight: set[asyncio.Future] = set()

    @property
    def hot_window(self) -> timedelta:
        return timedelta(minutes=self._config.hot_window_minutes)

    @property
    def retention_window(self) -> timedelta:
        return timedelta(hours=self._config.retention_hours)

    async def get_prices(self, query: PriceQuery) -> PriceLookup:
        now = self._clock()
        since = None if query.include_all else now - self.retention_window
        persisted = await self._read(query, since)

        hot_window = (
            timedelta(minutes=query.max_age_minutes)
            if query.max_age_minutes is not None
            else self.hot_window
        )
        if persisted and persisted[0].observed_at >= now - hot_window:
            return PriceLookup(
                observations=persisted,
                cached=True,
                state=FreshnessState.FRESH_HIT,
                last_updated=persisted[0].observed_at,
            )

        state = FreshnessState.STALE_PRESENT if persisted else FreshnessState.EMPTY
        try:
            fresh = await self._refresh_matching(query)
        except RefreshError as e:
            logger.warning("Refresh failed (%s), serving %s data", e, state.value)
            fresh = []

        if fresh:
            return PriceLookup(
                observations=fresh,
                cached=False,
                state=state,
                last_updated=fresh[0].observed_at,
            )
        if persisted:
            return PriceLookup(
                observations=persisted,
                cached=True,
                state=state,
                last_updated=persisted[0].observed_at,
            )
        return PriceLookup(observations=[], cached=False, state=state)

    async def _read(
        self, query: PriceQuery, since: datetime | None
    ) -> list[PriceObservation]:
        try:
            return await self._store.query_observations(
                item=query.item,
                location=query.location,
                source=query.source,
                since=since,
                limit=query.limit,
            )
        except StorageError as e:
            logger.error("Error fetching cached market data: %s", e)
            return []

    async def _refresh_matching(self, query: PriceQuery) -> list[PriceObservation]:
        """Run a refresh within budget and return rows matching the query.

        Raises:
            RefreshError: timeout, exception, or no observations at all.
        """
        task = asyncio.ensure_future(self._refresh())
        self._inflight.add(task)
        task.add_done_callback(self._finish_inflight)

        try:
            result = await asyncio.wait_for(
                asyncio.shield(task), timeout=self._config.refresh_timeout
            )
        except TimeoutError as e:
            raise RefreshError(
                f"refresh exceeded {self._config.refresh_timeout:.0f}s budget",
                context={"timeout": self._config.refresh_timeout},
            ) from e
        except Exception as e:
            raise RefreshError(f"refresh raised: {e}") from e

        if not result.observations:
            raise RefreshError(
                "refresh produced no observations",
                context={"failed_sources": result.failed_sources},
            )

        if result.persisted:
            try:
                rows = await self._store.query_observations(
                    item=query.item,
                    location=query.location,
                    source=query.source,
                    since=result.started_at,
                    limit=query.limit,
                )
                if rows:
                    return rows
            except StorageError as e:
                logger.warning("Re-query after refresh failed: %s", e)

        fresh = [obs for obs in result.observations if matches(obs, query)]
        fresh.sort(key=lambda obs: obs.observed_at, reverse=True)
        return fresh[: query.limit]

    def _finish_inflight(self, task: asyncio.Future) -> None:
        self._inflight.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("Background refresh failed: %s", exc)
