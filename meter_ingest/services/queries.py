"""
Query service: read-only views over stored meter readings.

Provides the most recent readings (newest first) and a per-meter summary
aggregated over the full history. Averages skip NULL voltages, so a meter
that never reported voltage has ``avg_voltage = None`` rather than 0.

CHANGELOG:
- 2026-10-14: Initial creation (STORY-006)

TODO:
- None
"""

from decimal import Decimal
from typing import Any

from sqlalchemy import func, select

from meter_ingest.db.models import MeterReading
from meter_ingest.db.store import Store

DEFAULT_RECENT_LIMIT = 100


class QueryService:
    """Read-only access to ``meter_data``.

    Args:
        store: Connected store to borrow sessions from.
    """

    def __init__(self, store: Store) -> None:
        self._store = store

    async def list_recent(self, limit: int = DEFAULT_RECENT_LIMIT) -> list[MeterReading]:
        """Return up to *limit* readings, newest ``timestamp`` first.

        Readings sharing a timestamp are ordered by descending ``id`` so the
        result is stable.

        Args:
            limit: Maximum number of rows, at least 1.

        Returns:
            list[MeterReading]: Possibly empty list of readings.

        Raises:
            ValueError: If *limit* is less than 1.
            StoreError: On database failure.
        """
        if limit < 1:
            raise ValueError("limit must be >= 1")

        stmt = (
            select(MeterReading)
            .order_by(MeterReading.timestamp.desc(), MeterReading.id.desc())
            .limit(limit)
        )
        async with self._store.session() as session:
            return list((await session.scalars(stmt)).all())

    async def summarize(self) -> list[dict[str, Any]]:
        """Aggregate readings per meter over all stored history.

        Returns:
            list[dict]: One row per distinct ``meter_id`` (sorted by it) with
            ``readings``, ``avg_kwh``, ``avg_voltage`` and ``last_reading``.

        Raises:
            StoreError: On database failure.
        """
        stmt = (
            select(
                MeterReading.meter_id,
                func.count(MeterReading.id).label("readings"),
                func.avg(MeterReading.kwh).label("avg_kwh"),
                func.avg(MeterReading.voltage).label("avg_voltage"),
                func.max(MeterReading.timestamp).label("last_reading"),
            )
            .group_by(MeterReading.meter_id)
            .order_by(MeterReading.meter_id)
        )
        async with self._store.session() as session:
            rows = (await session.execute(stmt)).all()

        return [
            {
                "meter_id": row.meter_id,
                "readings": row.readings,
                "avg_kwh": _as_float(row.avg_kwh),
                "avg_voltage": _as_float(row.avg_voltage),
                "last_reading": row.last_reading,
            }
            for row in rows
        ]


def _as_float(value: Decimal | float | None) -> float | None:
    # PostgreSQL AVG(numeric) comes back as Decimal, SQLite as float.
    return None if value is None else float(value)
