"""Periodic scrape trigger.

A single interval job on APScheduler's asyncio scheduler. It calls the same
``Aggregator.run_all`` entry point that request-triggered refreshes use, so
scheduled and on-demand passes cannot drift apart.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from market_sentinel.core.config import SchedulerConfig
from market_sentinel.core.models import AggregationResult
from market_sentinel.ingestion.aggregator import Aggregator

logger = logging.getLogger(__name__)

JOB_ID = "scrape-all-sources"


class ScrapeScheduler:
    """Runs ``Aggregator.run_all`` every ``interval_hours``.

    Failures are logged and swallowed inside the job so a bad run neither
    crashes the process nor stops the next one.

    Usage:
        scheduler = ScrapeScheduler(aggregator, config.scheduler)
        scheduler.start()      # needs a running event loop
        scheduler.shutdown()   # final; a stopped scheduler does not restart
    """

    def __init__(
        self,
        aggregator: Aggregator,
        config: SchedulerConfig | None = None,
        scheduler: AsyncIOScheduler | None = None,
    ) -> None:
        self._aggregator = aggregator
        self._config = config or SchedulerConfig()
        self._scheduler = scheduler or AsyncIOScheduler(timezone=UTC)
        self.last_run_at: datetime | None = None
        self.last_result: AggregationResult | None = None
        # AsyncIOScheduler.shutdown completes on a later loop iteration
        self._stopped = False

    @property
    def running(self) -> bool:
        return self._scheduler.running and not self._stopped

    @property
    def interval_hours(self) -> float:
        return self._config.interval_hours

    def start(self) -> None:
        if self.running or self._stopped:
            return
        self._scheduler.add_job(
            self.run_once,
            IntervalTrigger(hours=self._config.interval_hours),
            id=JOB_ID,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self._scheduler.start()
        logger.info("Scheduled scraping: every %g hours", self._config.interval_hours)

    def shutdown(self) -> None:
        if self.running:
            self._stopped = True
            self._scheduler.shutdown(wait=False)
            logger.info("Scheduled scraping stopped")

    def next_run_time(self) -> datetime | None:
        if self._stopped:
            return None
        job = self._scheduler.get_job(JOB_ID)
        return job.next_run_time if job is not None else None

    async def run_once(self) -> AggregationResult | None:
        """One scheduled pass. Never raises."""
        self.last_run_at = datetime.now(tz=UTC)
        logger.info("Running scheduled scraping at %s", self.last_run_at.isoformat())
        try:
            result = await self._aggregator.run_all()
        except Exception:
            logger.exception("Scheduled scraping failed")
            return None

        self.last_result = result
        if result.success:
            logger.info(
                "Scheduled scraping completed: %d observations, %d failed sources",
                result.total, len(result.failed_sources),
            )
        else:
            logger.error("Scheduled scraping could not persist: %s", result.persistence_error)
        return result
