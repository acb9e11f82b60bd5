"""market_sentinel.core - Foundation types, config, and exceptions."""

from market_sentinel.core.config import (
    APIConfig,
    CacheConfig,
    SchedulerConfig,
    SentinelConfig,
    SourcesConfig,
    StorageConfig,
    load_config,
)
from market_sentinel.core.exceptions import (
    AuthError,
    ConfigError,
    InvalidObservation,
    MarketSentinelError,
    PersistenceError,
    RateLimitedError,
    RefreshError,
    SourceFetchError,
    StorageError,
    UnknownSourceError,
)
from market_sentinel.core.models import (
    AggregationResult,
    FreshnessState,
    PriceLookup,
    PriceObservation,
    PriceQuery,
    RawCandidate,
    SourceName,
    SourceStatus,
    StorageBackend,
)

__all__ = [
    # Type aliases
    "SourceName",
    # Enums
    "FreshnessState",
    "StorageBackend",
    # Acquisition models
    "RawCandidate",
    "PriceObservation",
    "SourceStatus",
    "AggregationResult",
    # Read models
    "PriceQuery",
    "PriceLookup",
    # Config
    "SentinelConfig",
    "SourcesConfig",
    "StorageConfig",
    "CacheConfig",
    "SchedulerConfig",
    "APIConfig",
    "load_config",
    # Exceptions
    "MarketSentinelError",
    "ConfigError",
    "SourceFetchError",
    "InvalidObservation",
    "StorageError",
    "PersistenceError",
    "RefreshError",
    "RateLimitedError",
    "AuthError",
    "UnknownSourceError",
]
