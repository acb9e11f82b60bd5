"""FastAPI application factory."""

from __future__ import annotations

import logging
import re
from contextlib import asynccontextmanager
from typing import Sequence

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from limits import parse as parse_rate
from slowapi import Limiter
from slowapi.util import get_remote_address

from market_sentinel.api.deps import AppState, SecurityHeadersMiddleware, enforce_rate_limit
from market_sentinel.api.routes import health_router, router
from market_sentinel.cache.freshness import FreshnessController
from market_sentinel.core.config import SentinelConfig, load_config
from market_sentinel.core.exceptions import (
    AuthError,
    MarketSentinelError,
    RateLimitedError,
    UnknownSourceError,
)
from market_sentinel.ingestion.aggregator import Aggregator
from market_sentinel.ingestion.scheduler import ScrapeScheduler
from market_sentinel.ingestion.store import create_store
from market_sentinel.sources.base import SourceAdapter

logger = logging.getLogger(__name__)


def _error_response(status_code: int, message: str, code: str, details=None) -> JSONResponse:
    error: dict = {"message": message, "code": code}
    if details is not None:
        error["details"] = details
    return JSONResponse(status_code=status_code, content={"success": False, "error": error})


def _error_code(exc: Exception) -> str:
    """StorageError -> STORAGE_ERROR."""
    return re.sub(r"(?<!^)(?=[A-Z])", "_", type(exc).__name__).upper()


def build_limiter() -> Limiter:
    """One in-memory limiter per application instance.

    Enforced by the `enforce_rate_limit` dependency on the /api router.
    """
    return Limiter(key_func=get_remote_address, storage_uri="memory://")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup/shutdown lifecycle."""
    config: SentinelConfig = app.state.config
    store = await create_store(config.storage)

    sources = app.state._pending_sources
    if sources is None:
        from market_sentinel.sources import build_sources

        sources = build_sources(config.sources)

    aggregator = Aggregator(sources, store, config.sources)
    controller = FreshnessController(store, aggregator.run_all, config.cache)

    scheduler = None
    if config.scheduler.enabled:
        scheduler = ScrapeScheduler(aggregator, config.scheduler)
        scheduler.start()

    app.state.app_state = AppState(
        config=config,
        store=store,
        aggregator=aggregator,
        controller=controller,
        scheduler=scheduler,
    )
    logger.info("Market sentinel API ready with sources: %s", ", ".join(aggregator.source_names))

    yield

    if scheduler is not None:
        scheduler.shutdown()
    await store.close()


def create_app(
    config: SentinelConfig | None = None,
    sources: Sequence[SourceAdapter] | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    `sources` replaces the registry-built adapters, mainly for tests.
    """
    import market_sentinel

    config = config or load_config()

    app = FastAPI(
        title="Market Sentinel API",
        description="Nigerian market price acquisition and caching",
        version=market_sentinel.__version__,
        lifespan=lifespan,
    )

    app.state.config = config
    app.state._pending_sources = sources
    app.state.limiter = build_limiter()
    app.state.rate_limit = parse_rate(config.api.rate_limit)

    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health_router)
    app.include_router(router, prefix="/api", dependencies=[Depends(enforce_rate_limit)])

    # Exception handlers
    @app.exception_handler(RateLimitedError)
    async def rate_limited_handler(request: Request, exc: RateLimitedError):
        return _error_response(429, str(exc), "RATE_LIMITED")

    @app.exception_handler(AuthError)
    async def auth_exception_handler(request: Request, exc: AuthError):
        return _error_response(exc.status_code, str(exc), exc.code)

    @app.exception_handler(UnknownSourceError)
    async def unknown_source_handler(request: Request, exc: UnknownSourceError):
        return _error_response(404, str(exc), "UNKNOWN_SOURCE", exc.context.get("available"))

    @app.exception_handler(MarketSentinelError)
    async def sentinel_exception_handler(request: Request, exc: MarketSentinelError):
        logger.error("Request to %s failed: %s", request.url.path, exc)
        return _error_response(500, str(exc), _error_code(exc))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return _error_response(
            400,
            "Invalid query parameters",
            "VALIDATION_ERROR",
            [{"loc": list(e.get("loc", ())), "msg": e.get("msg")} for e in exc.errors()],
        )

    return app
