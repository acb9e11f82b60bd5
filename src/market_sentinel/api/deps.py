"""Dependency injection for FastAPI routes."""

from __future__ import annotations

import secrets
from dataclasses import dataclass

from fastapi import Header, Request
from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from market_sentinel.cache.freshness import FreshnessController
from market_sentinel.core.config import SentinelConfig
from market_sentinel.core.exceptions import AuthError, RateLimitedError
from market_sentinel.ingestion.aggregator import Aggregator
from market_sentinel.ingestion.scheduler import ScrapeScheduler
from market_sentinel.ingestion.store import SqliteStore


@dataclass
class AppState:
    """Shared application state, attached to app.state during lifespan."""

    config: SentinelConfig
    store: SqliteStore
    aggregator: Aggregator
    controller: FreshnessController
    scheduler: ScrapeScheduler | None = None


def get_app_state(request: Request) -> AppState:
    """Dependency: retrieve AppState from the request."""
    return request.app.state.app_state


def get_config(request: Request) -> SentinelConfig:
    """Dependency: retrieve config."""
    return request.app.state.app_state.config


def get_store(request: Request) -> SqliteStore:
    """Dependency: retrieve storage backend."""
    return request.app.state.app_state.store


def get_aggregator(request: Request) -> Aggregator:
    return request.app.state.app_state.aggregator


def get_controller(request: Request) -> FreshnessController:
    return request.app.state.app_state.controller


async def require_api_key(
    request: Request,
    x_api_key: str | None = Header(default=None),
) -> None:
    """Dependency: the x-api-key header must match the configured secret.

    Raises:
        AuthError: 403 when no key is configured on the server, 401 when
            the header is missing or wrong.
    """
    expected = request.app.state.app_state.config.api.api_key
    if not expected:
        raise AuthError(
            "API key authentication is not configured",
            code="API_KEY_NOT_CONFIGURED",
            status_code=403,
        )
    if not x_api_key:
        raise AuthError("API key required", code="MISSING_API_KEY")
    if not secrets.compare_digest(x_api_key, expected):
        raise AuthError("Invalid API key", code="INVALID_API_KEY")


async def enforce_rate_limit(request: Request) -> None:
    """Dependency: per-client, per-route request budget.

    Counts live in the app's slowapi limiter storage, keyed by remote
    address and route path.

    Raises:
        RateLimitedError: the budget for the current window is spent.
    """
    limiter: Limiter = request.app.state.limiter
    if not limiter.enabled:
        return
    rate = request.app.state.rate_limit
    client = get_remote_address(request)
    route = getattr(request.scope.get("route"), "path", request.url.path)
    if not limiter.limiter.hit(rate, client, request.method, route):
        raise RateLimitedError(
            "Too many requests from this IP, please try again later.",
            context={"limit": str(rate), "client": client, "route": route},
        )


SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Content-Security-Policy": "default-src 'self'",
    "X-XSS-Protection": "1; mode=block",
}


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Adds restrictive security headers to every response."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        response = await call_next(request)
        response.headers.update(SECURITY_HEADERS)
        return response
