"""Price acquisition: normalization, aggregation, storage, and scheduling."""

from market_sentinel.ingestion.aggregator import Aggregator
from market_sentinel.ingestion.normalizer import normalize, parse_price
from market_sentinel.ingestion.scheduler import ScrapeScheduler
from market_sentinel.ingestion.store import ObservationStore, SqliteStore, create_store

__all__ = [
    "Aggregator",
    "ObservationStore",
    "ScrapeScheduler",
    "SqliteStore",
    "create_store",
    "normalize",
    "parse_price",
]
