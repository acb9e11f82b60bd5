"""Aggregation pass: fan out to every source, normalize, persist one batch."""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime
from typing import Callable, Sequence

from market_sentinel.core.config import SourcesConfig
from market_sentinel.core.exceptions import (
    InvalidObservation,
    PersistenceError,
    UnknownSourceError,
)
from market_sentinel.core.models import (
    AggregationResult,
    PriceObservation,
    SourceStatus,
)
from market_sentinel.ingestion.normalizer import normalize
from market_sentinel.ingestion.store import ObservationStore
from market_sentinel.sources.base import SourceAdapter

logger = logging.getLogger(__name__)

_PERSIST_RETRIES = 1
_PERSIST_RETRY_DELAY = 1.0


class Aggregator:
    """Runs source adapters in isolation and persists what they yield.

    Each source runs in its own bulkhead: an exception, timeout or empty
    result from one source is recorded in its status and never reaches the
    others. Runs hold no shared mutable state, so a scheduled run and a
    request-triggered refresh may overlap safely.
    """

    def __init__(
        self,
        sources: Sequence[SourceAdapter],
        store: ObservationStore,
        config: SourcesConfig | None = None,
        *,
        persist_retry_delay: float = _PERSIST_RETRY_DELAY,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._sources = list(sources)
        self._store = store
        self._config = config or SourcesConfig()
        self._persist_retry_delay = persist_retry_delay
        self._clock = clock or (lambda: datetime.now(tz=UTC))

    @property
    def source_names(self) -> list[str]:
        return [s.name for s in self._sources]

    def get_source(self, name: str) -> SourceAdapter:
        """Look up a registered source by name, case-insensitively.

        Raises:
            UnknownSourceError: no source with that name.
        """
        wanted = name.strip().lower()
        for source in self._sources:
            if source.name.lower() == wanted:
                return source
        raise UnknownSourceError(
            f"Scraper for {name} not found",
            context={"source": name, "available": self.source_names},
        )

    async def run_all(self) -> AggregationResult:
        """One aggregation pass across every registered source."""
        logger.info("Starting scraping from %d sources", len(self._sources))
        return await self._run(self._sources)

    async def run_one(self, name: str) -> AggregationResult:
        """Same contract as run_all, restricted to one source."""
        source = self.get_source(name)
        logger.info("Starting targeted scrape of %s", source.name)
        return await self._run([source])

    async def _run(self, sources: Sequence[SourceAdapter]) -> AggregationResult:
        started_at = self._clock()
        outcomes = await asyncio.gather(*(self._run_source(s) for s in sources))

        observations: list[PriceObservation] = []
        statuses: dict[str, SourceStatus] = {}
        for status, source_observations in outcomes:
            statuses[status.source] = status
            observations.extend(source_observations)

        result = AggregationResult(
            observations=observations,
            per_source_status=statuses,
            started_at=started_at,
        )

        if observations:
            try:
                await self._persist(observations)
                result.persisted = True
                logger.info("Total: %d items inserted into database", len(observations))
            except PersistenceError as e:
                result.persistence_error = str(e)
                logger.error(
                    "Scraped %d valid observations but could not store them: %s",
                    len(observations), e,
                )
        else:
            logger.warning("No data was scraped from any source")

        result.finished_at = self._clock()
        return result

    async def _run_source(
        self, source: SourceAdapter
    ) -> tuple[SourceStatus, list[PriceObservation]]:
        # Ceiling over the adapter's own retry loop
        budget = self._config.request_timeout * (self._config.retries + 1) + (
            self._config.retry_delay * self._config.retries
        )
        try:
            candidates = await asyncio.wait_for(source.fetch(), timeout=budget)
        except TimeoutError:
            logger.error("Error scraping %s: timeout after %.0fs", source.name, budget)
            return (
                SourceStatus(source=source.name, success=False, error="timeout"),
                [],
            )
        except Exception as e:
            logger.error("Error scraping %s: %s", source.name, e)
            return (
                SourceStatus(source=source.name, success=False, error=str(e) or type(e).__name__),
                [],
            )

        observed_at = self._clock()
        observations: list[PriceObservation] = []
        for candidate in candidates:
            try:
                observations.append(
                    normalize(
                        candidate,
                        source.source,
                        default_currency=self._config.default_currency,
                        default_location=self._config.default_location,
                        now=observed_at,
                    )
                )
            except InvalidObservation as e:
                logger.debug("Skipping invalid data from %s: %s", source.name, e)

        dropped = len(candidates) - len(observations)
        logger.info(
            "%s: %d items scraped (%d dropped)", source.name, len(observations), dropped
        )
        return (
            SourceStatus(source=source.name, success=True, count=len(observations)),
            observations,
        )

    async def _persist(self, observations: list[PriceObservation]) -> None:
        for attempt in range(_PERSIST_RETRIES + 1):
            try:
                await self._store.save_observations(observations)
                return
            except Exception as e:
                if attempt < _PERSIST_RETRIES:
                    logger.warning(
                        "Batch insert failed (%s), retrying in %.1fs", e, self._persist_retry_delay
                    )
                    await asyncio.sleep(self._persist_retry_delay)
                    continue
                if isinstance(e, PersistenceError):
                    raise
                raise PersistenceError(
                    f"Failed to save observations: {e}",
                    context={"operation": "insert", "count": len(observations)},
                ) from e
