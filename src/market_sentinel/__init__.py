"""market-sentinel: commodity and forex price acquisition with a freshness-aware cache."""

__version__ = "0.1.0"
