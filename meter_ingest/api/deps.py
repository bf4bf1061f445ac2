"""
FastAPI dependency injection providers.

Components are built once in the application lifespan and stored on
``app.state``; these providers hand them to route handlers via FastAPI's
Depends() mechanism. Tests swap components by overriding the providers.

CHANGELOG:
- 2026-10-14: Initial creation (STORY-007)
- 2026-10-17: Add summary cache provider (STORY-010)

TODO:
- None
"""

from typing import Annotated

from fastapi import Depends, Request

from meter_ingest.cache.redis_client import SummaryCache
from meter_ingest.services.health import HealthReporter
from meter_ingest.services.ingestion import IngestionWriter
from meter_ingest.services.queries import QueryService


def get_writer(request: Request) -> IngestionWriter:
    """Return the shared ingestion writer."""
    return request.app.state.writer


def get_queries(request: Request) -> QueryService:
    """Return the shared query service."""
    return request.app.state.queries


def get_health_reporter(request: Request) -> HealthReporter:
    """Return the health reporter."""
    return request.app.state.health


def get_summary_cache(request: Request) -> SummaryCache | None:
    """Return the summary cache, or None when Redis is not configured."""
    return getattr(request.app.state, "cache", None)


# Annotated dependencies for use in route signatures:
#   async def my_route(writer: Writer): ...
Writer = Annotated[IngestionWriter, Depends(get_writer)]
Queries = Annotated[QueryService, Depends(get_queries)]
Health = Annotated[HealthReporter, Depends(get_health_reporter)]
Cache = Annotated[SummaryCache | None, Depends(get_summary_cache)]
