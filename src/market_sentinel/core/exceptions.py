"""Custom exception hierarchy for market-sentinel."""

from typing import Any


class MarketSentinelError(Exception):
    """Base exception for all market-sentinel errors.

    All exceptions carry an optional `context` dict for structured error
    metadata that can be logged or serialized without parsing the message.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.context = context or {}


class ConfigError(MarketSentinelError):
    """Invalid or missing configuration.

    Raised by load_config() during startup. Should be treated as fatal.

    Context keys:
        field: str - the config field that failed validation
        value: Any - the invalid value (redacted for secrets)
    """


class SourceFetchError(MarketSentinelError):
    """One price source could not be fetched (network, timeout, non-2xx, no matches).

    Policy: log and mark the source failed. Other sources are unaffected.

    Context keys:
        source: str - adapter name
        url: str - the URL that was being fetched
        status_code: int | None - HTTP status if a response arrived
    """


class InvalidObservation(MarketSentinelError):
    """A raw candidate was rejected by the normalizer.

    Policy: drop the candidate. Does not count as a source failure.

    Context keys:
        source: str - adapter the candidate came from
        field: str - "item", "price" or "source"
        value: Any - the rejected raw value
    """


class StorageError(MarketSentinelError):
    """Database operation failed.

    Context keys:
        operation: str - "insert", "query", "initialize", etc.
        table: str - the table involved
    """


class PersistenceError(StorageError):
    """Batch write of scraped observations failed.

    Policy: the aggregation run is reported failed even though the scraped
    data was valid. Retried once by the aggregator.
    """


class RefreshError(MarketSentinelError):
    """An on-demand refresh timed out or produced nothing usable.

    Policy: never surfaced to readers. The freshness controller falls back
    to stale or empty data.
    """


class AuthError(MarketSentinelError):
    """Request to a protected endpoint lacked a valid API key.

    Carries the HTTP status and a machine-readable code for the response body.
    """

    def __init__(
        self,
        message: str,
        code: str,
        status_code: int = 401,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, context)
        self.code = code
        self.status_code = status_code


class UnknownSourceError(MarketSentinelError):
    """A targeted run named a source that is not registered.

    Context keys:
        source: str - the requested name
        available: list[str] - registered names
    """


class RateLimitedError(MarketSentinelError):
    """A client used up its request budget for the current window.

    Context keys:
        limit: str - the configured rate, e.g. "100/15minutes"
        client: str - the rate-limit key (remote address)
        route: str - the route path the budget applies to
    """
