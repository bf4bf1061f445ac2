"""
Ingestion writer: the single write path for meter readings.

Both the MQTT feed subscriber and ``POST /api/meter-data`` go through
``IngestionWriter``. Input is validated into a ``ReadingIn`` before any
store call; a failure raises ``ReadingValidationError`` carrying the
offending fields. A valid reading becomes exactly one
``INSERT ... RETURNING`` against ``meter_data``; ``id`` and ``timestamp``
are always assigned by the database, never taken from input.

The writer holds no lock. Concurrent callers each borrow their own pooled
connection and the database's insert atomicity orders them.

CHANGELOG:
- 2026-10-13: Initial creation (STORY-005)
- 2026-10-17: Invalidate summary cache after each insert (STORY-010)
- 2026-10-18: Reject values that overflow NUMERIC(10,2) (STORY-011)

TODO:
- None
"""

import logging
import math
from collections.abc import Mapping
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from sqlalchemy import insert

from meter_ingest.cache.redis_client import SummaryCache
from meter_ingest.db.models import MeterReading
from meter_ingest.db.store import Store
from meter_ingest.errors import ReadingValidationError

logger = logging.getLogger(__name__)

# NUMERIC(10,2) holds at most 8 integer digits.
NUMERIC_LIMIT = 1e8


class ReadingIn(BaseModel):
    """Validated shape of an inbound meter reading.

    Unknown keys are ignored; in particular a client-supplied ``id`` or
    ``timestamp`` never reaches the insert.

    Attributes:
        meter_id: Non-blank meter identifier, at most 50 characters.
        kwh: Finite energy value, below 1e8 in magnitude.
        voltage: Finite voltage below 1e8 in magnitude, or ``None``.
    """

    model_config = ConfigDict(extra="ignore")

    meter_id: str = Field(min_length=1, max_length=50, strict=True)
    kwh: float = Field(strict=True, gt=-NUMERIC_LIMIT, lt=NUMERIC_LIMIT)
    voltage: float | None = Field(
        default=None, strict=True, gt=-NUMERIC_LIMIT, lt=NUMERIC_LIMIT,
    )

    @field_validator("meter_id")
    @classmethod
    def meter_id_not_blank(cls, v: str) -> str:
        """Reject whitespace-only meter ids."""
        if not v.strip():
            raise ValueError("meter_id must not be blank")
        return v

    @field_validator("kwh", "voltage")
    @classmethod
    def must_be_finite(cls, v: float | None) -> float | None:
        """Reject NaN and infinities."""
        if v is not None and not math.isfinite(v):
            raise ValueError("must be a finite number")
        return v


def decode_reading(data: Any) -> ReadingIn | ReadingValidationError:
    """Decode raw reading fields without raising for bad input.

    Args:
        data: Decoded body or feed payload; expected to be a mapping with
            ``meter_id``, ``kwh`` and optionally ``voltage``.

    Returns:
        ReadingIn on success, otherwise a ``ReadingValidationError``
        listing the offending fields. Callers branch with ``isinstance``.
    """
    if not isinstance(data, Mapping):
        return ReadingValidationError(
            [{"field": "<body>", "message": "expected a JSON object"}]
        )
    try:
        return ReadingIn.model_validate(dict(data))
    except ValidationError as err:
        return ReadingValidationError(
            [
                {
                    "field": ".".join(str(part) for part in e["loc"]) or "<body>",
                    "message": e["msg"],
                }
                for e in err.errors()
            ]
        )


def validate_reading(data: Any) -> ReadingIn:
    """Validate raw reading fields.

    Raises:
        ReadingValidationError: If *data* is not a mapping or any field is
            missing or of the wrong type.
    """
    result = decode_reading(data)
    if isinstance(result, ReadingValidationError):
        raise result
    return result


class IngestionWriter:
    """Validate and persist meter readings.

    Args:
        store: Connected store to borrow sessions from.
        cache: Optional summary cache, invalidated after every insert.
    """

    def __init__(self, store: Store, cache: SummaryCache | None = None) -> None:
        self._store = store
        self._cache = cache

    async def write(
        self,
        meter_id: Any,
        kwh: Any,
        voltage: Any = None,
    ) -> MeterReading:
        """Validate the fields and insert one reading.

        Returns:
            MeterReading: The persisted row, including ``id`` and ``timestamp``.

        Raises:
            ReadingValidationError: Before any store call, on bad input.
            StoreError: If the insert failed (``PoolExhaustedError`` when no
                connection was free in time).
        """
        reading = validate_reading(
            {"meter_id": meter_id, "kwh": kwh, "voltage": voltage}
        )
        return await self.insert(reading)

    async def write_payload(self, data: Any) -> MeterReading:
        """Validate a decoded body or feed payload and insert it."""
        return await self.insert(validate_reading(data))

    async def insert(self, reading: ReadingIn) -> MeterReading:
        """Insert an already validated reading.

        Args:
            reading: Validated reading.

        Returns:
            MeterReading: The persisted row.
        """
        stmt = (
            insert(MeterReading)
            .values(
                meter_id=reading.meter_id,
                kwh=_to_decimal(reading.kwh),
                voltage=_to_decimal(reading.voltage),
            )
            .returning(MeterReading)
        )
        async with self._store.session() as session:
            row = (await session.scalars(stmt)).one()
            await session.commit()

        logger.debug("Stored reading %d for meter %s", row.id, row.meter_id)

        if self._cache is not None:
            await self._cache.invalidate()
        return row


def _to_decimal(value: float | None) -> Decimal | None:
    """Convert via ``str`` so 12.34 stays 12.34 rather than its binary expansion."""
    if value is None:
        return None
    return Decimal(str(value))
