"""
FastAPI application entry point for the meter ingest service.

Startup runs in a fixed order and gates readiness: connect to the store
(bounded retry), ensure the schema, then start the MQTT feed subscriber.
If the store never answers, startup raises and uvicorn exits with a
non-zero status instead of serving traffic half-ready. Components are
kept on ``app.state`` and reach routes through ``meter_ingest.api.deps``.

CHANGELOG:
- 2026-10-14: Initial creation (STORY-007)
- 2026-10-15: Start feed subscriber in lifespan (STORY-004)
- 2026-10-16: Register health router, CORS, 400 for malformed bodies (STORY-008)
- 2026-10-17: Optional Redis summary cache (STORY-010)
- 2026-10-18: Release the pool on any startup failure (STORY-011)

TODO:
- None
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from meter_ingest.api.health import router as health_router
from meter_ingest.api.meter_data import router as meter_data_router
from meter_ingest.cache.redis_client import SummaryCache
from meter_ingest.config import Settings, get_settings
from meter_ingest.db.schema import ensure_schema
from meter_ingest.db.store import Store
from meter_ingest.feed.subscriber import FeedSubscriber
from meter_ingest.logging_config import setup_logging
from meter_ingest.services.health import HealthReporter
from meter_ingest.services.ingestion import IngestionWriter
from meter_ingest.services.queries import QueryService

logger = logging.getLogger(__name__)


async def startup(app: FastAPI) -> None:
    """Connect the store, ensure the schema and start the feed.

    Args:
        app: Application whose ``state.settings`` drives the wiring.

    Raises:
        StoreConnectionError: If the store stayed unreachable.
        SchemaError: If the table could not be created.
        Exception: Anything else raised while wiring components; the
            pool and cache client are released first.
    """
    settings: Settings = app.state.settings
    store = Store.from_settings(settings)
    cache: SummaryCache | None = None
    try:
        await store.connect()
        await ensure_schema(store)

        if settings.REDIS_URL:
            cache = SummaryCache.from_url(settings.REDIS_URL, ttl_s=settings.CACHE_TTL_S)

        writer = IngestionWriter(store, cache)
        feed = FeedSubscriber.from_settings(settings, writer)
    except Exception:
        logger.critical("Failed to start server", exc_info=True)
        if cache is not None:
            await cache.close()
        await store.dispose()
        raise

    app.state.store = store
    app.state.cache = cache
    app.state.writer = writer
    app.state.queries = QueryService(store)
    app.state.feed = feed
    app.state.health = HealthReporter(store, feed)

    feed.start()

    logger.info("Server running on port %d", settings.PORT)
    logger.info("MQTT Broker: %s (topic %s)", settings.broker_display(), settings.MQTT_TOPIC)
    logger.info("Database: %s", store.display_url)


async def shutdown(app: FastAPI) -> None:
    """Stop the feed, close the cache and release pooled connections."""
    feed: FeedSubscriber | None = getattr(app.state, "feed", None)
    if feed is not None:
        await feed.stop()

    cache: SummaryCache | None = getattr(app.state, "cache", None)
    if cache is not None:
        await cache.close()

    store: Store | None = getattr(app.state, "store", None)
    if store is not None:
        await store.dispose()
    logger.info("Server stopped")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: gate readiness on store and schema."""
    await startup(app)
    try:
        yield
    finally:
        await shutdown(app)


async def _validation_error_handler(
    request: Request, exc: RequestValidationError,
) -> JSONResponse:
    """Answer malformed request bodies and parameters with 400."""
    details = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ())),
            "message": err.get("msg", ""),
        }
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request", "details": details},
    )


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the FastAPI application.

    Args:
        settings: Configuration; loaded from the environment when omitted.

    Returns:
        FastAPI: Application with routers, CORS and lifespan wired.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="Meter Ingest API",
        description="Electricity meter telemetry ingestion from MQTT and HTTP.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(RequestValidationError, _validation_error_handler)

    app.include_router(health_router)
    app.include_router(meter_data_router)
    return app


app = create_app()


def run() -> None:
    """Run the service under uvicorn.

    Startup failure (store unreachable after all retries) makes uvicorn
    exit with a non-zero status.
    """
    settings = get_settings()
    setup_logging(settings.LOG_LEVEL)
    uvicorn.run(
        "meter_ingest.main:app",
        host=settings.HOST,
        port=settings.PORT,
        lifespan="on",
        log_config=None,
    )
