"""Freshness-aware read path over persisted observations."""

from market_sentinel.cache.freshness import FreshnessController, Refresher, matches

__all__ = ["FreshnessController", "Refresher", "matches"]
