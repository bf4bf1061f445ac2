"""
Meter data API endpoints.

- ``POST /api/meter-data``: store one reading through the ingestion writer.
- ``GET /api/meter-data``: most recent readings, newest first.
- ``GET /api/meter-data/summary``: per-meter aggregates over all history,
  served through the Redis summary cache when one is configured.

Store failures are logged with full detail and answered with a generic
``{"error": ...}`` body; internal messages never reach the client.

CHANGELOG:
- 2026-10-14: Initial creation (STORY-007)
- 2026-10-16: Return 400 with field details on invalid readings (STORY-007)
- 2026-10-17: Read-through summary cache (STORY-010)
- 2026-10-18: Cache only under the generation read before the query (STORY-011)

TODO:
- None
"""

import logging
from datetime import datetime
from typing import Annotated, Any

from fastapi import APIRouter, Body, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict

from meter_ingest.api.deps import Cache, Queries, Writer
from meter_ingest.errors import ReadingValidationError, StoreError
from meter_ingest.services.queries import DEFAULT_RECENT_LIMIT

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/meter-data", tags=["meter-data"])


# ---------------------------------------------------------------------------
# Pydantic response schemas
# ---------------------------------------------------------------------------


class ReadingOut(BaseModel):
    """Schema for a stored meter reading.

    Attributes:
        id: Database-assigned identifier.
        meter_id: Identifier of the meter.
        kwh: Energy value.
        voltage: Voltage, or None when not reported.
        timestamp: Insert time assigned by the database.
    """

    model_config = ConfigDict(from_attributes=True)

    id: int
    meter_id: str
    kwh: float
    voltage: float | None
    timestamp: datetime


class SummaryOut(BaseModel):
    """Schema for one per-meter summary row.

    Attributes:
        meter_id: Identifier of the meter.
        readings: Number of stored readings.
        avg_kwh: Mean kWh over all readings.
        avg_voltage: Mean voltage over readings that carry one.
        last_reading: Timestamp of the newest reading.
    """

    meter_id: str
    readings: int
    avg_kwh: float | None
    avg_voltage: float | None
    last_reading: datetime | None


def _error(status_code: int, message: str, **extra: Any) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, **extra})


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@router.post("", status_code=201, response_model=ReadingOut)
async def create_reading(
    writer: Writer,
    payload: Annotated[Any, Body()],
) -> Any:
    """Store one meter reading.

    Args:
        writer: Shared ingestion writer.
        payload: JSON object with ``meter_id``, ``kwh`` and optional ``voltage``.

    Returns:
        ReadingOut: The stored reading, with ``id`` and ``timestamp`` (201).
        400 when the body is not a valid reading, 500 on store failure.
    """
    try:
        reading = await writer.write_payload(payload)
    except ReadingValidationError as err:
        return _error(400, "Invalid meter reading", details=err.errors)
    except StoreError:
        logger.exception("Failed to store meter reading")
        return _error(500, "Database operation failed")
    return ReadingOut.model_validate(reading)


@router.get("", response_model=list[ReadingOut])
async def list_readings(
    queries: Queries,
    limit: int = Query(DEFAULT_RECENT_LIMIT, ge=1, le=DEFAULT_RECENT_LIMIT),
) -> Any:
    """Return the most recent readings, newest first.

    Args:
        queries: Shared query service.
        limit: Maximum number of readings (1-100).
    """
    try:
        rows = await queries.list_recent(limit)
    except StoreError:
        logger.exception("Failed to query meter readings")
        return _error(500, "Database query failed")
    return [ReadingOut.model_validate(row) for row in rows]


@router.get("/summary", response_model=list[SummaryOut])
async def summary(queries: Queries, cache: Cache) -> Any:
    """Return one aggregate row per meter.

    Checks the summary cache first; on a miss (or without a cache) queries
    the database and caches the serialized result under the generation
    seen before the query.
    """
    generation = None
    if cache is not None:
        lookup = await cache.get()
        if lookup.rows is not None:
            return lookup.rows
        generation = lookup.generation

    try:
        rows = await queries.summarize()
    except StoreError:
        logger.exception("Failed to summarize meter readings")
        return _error(500, "Database query failed")

    data = [SummaryOut.model_validate(row).model_dump(mode="json") for row in rows]
    if cache is not None and generation is not None:
        await cache.set(data, generation)
    return data
