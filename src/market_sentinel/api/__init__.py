"""market_sentinel.api - REST API over the freshness controller and aggregator."""

from market_sentinel.api.app import create_app

__all__ = ["create_app"]
