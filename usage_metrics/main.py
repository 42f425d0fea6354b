"""FastAPI application entry point for the usage metrics collector."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import httpx
from fastapi import FastAPI

from usage_metrics import __version__
from usage_metrics.api.metrics import create_metrics_router
from usage_metrics.collector.allowlist import AllowListCache
from usage_metrics.collector.refresh import AllowListRefresher
from usage_metrics.core.config import CollectorSettings, get_settings
from usage_metrics.core.errors import DecodeError, decode_error_handler, unhandled_exception_handler
from usage_metrics.core.logging import configure_logging, request_id_middleware
from usage_metrics.core.metrics import ReportStats

logger = logging.getLogger("usage_metrics.app")


def create_app(
    settings: CollectorSettings | None = None,
    cache: AllowListCache | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> FastAPI:
    """Build the collector app.

    ``cache`` and ``http_client`` may be injected. When neither is given the
    app owns an HTTP client for the lifetime of the server.
    """

    settings = settings or get_settings()
    stats = ReportStats()
    owns_client = cache is None and http_client is None

    if cache is None:
        cache = AllowListCache(
            settings.config_base_url,
            http_client,
            timeout=settings.fetch_timeout_seconds,
        )
    refresher = AllowListRefresher(
        cache,
        settings.refresh_interval_seconds,
        timeout=settings.fetch_timeout_seconds,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        level = configure_logging(settings.log_level)
        logger.info(
            "Logging configured at %s level for %s environment",
            logging.getLevelName(level),
            settings.environment,
        )
        if owns_client:
            cache.http_client = httpx.AsyncClient(timeout=settings.fetch_timeout_seconds)
        if settings.refresh_enabled:
            if not await refresher.refresh_once():
                logger.warning(
                    "Initial allow-list refresh failed; retrying in %ss",
                    settings.refresh_interval_seconds,
                )
            refresher.start()
        try:
            yield
        finally:
            await refresher.stop()
            if owns_client and cache.http_client is not None:
                await cache.http_client.aclose()
                cache.http_client = None

    app = FastAPI(title=settings.app_name, version=__version__, docs_url="/docs", lifespan=lifespan)
    app.state.settings = settings
    app.state.cache = cache
    app.state.refresher = refresher
    app.state.stats = stats

    app.middleware("http")(request_id_middleware)
    app.add_exception_handler(DecodeError, decode_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
    app.include_router(create_metrics_router(cache, stats, settings.max_body_bytes))

    @app.get("/health", tags=["health"])
    async def health_check() -> dict[str, str]:
        """Return basic service status for monitoring."""

        return {"status": "ok"}

    @app.get("/ready", tags=["health"])
    async def readiness_probe() -> dict[str, Any]:
        """Report whether allow-lists have been loaded at least once."""

        loaded = cache.loaded
        apps = cache.app_ids()
        return {
            "status": "ok" if loaded else "degraded",
            "environment": settings.environment,
            "components": {
                "allow_list_cache": {
                    "ok": loaded,
                    "apps": len(apps),
                    "refresher_running": refresher.running,
                },
            },
        }

    @app.get("/metrics", tags=["metrics"])
    async def metrics_endpoint() -> dict[str, Any]:
        snapshot = stats.snapshot()
        return {
            "total_reports": snapshot.total_reports,
            "unknown_app_reports": snapshot.unknown_app_reports,
            "accepted_metrics": snapshot.accepted_metrics,
            "rejected_metrics": snapshot.rejected_metrics,
        }

    return app


app = create_app()
