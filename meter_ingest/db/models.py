"""
SQLAlchemy ORM models for the meter ingest database.

Defines the MeterReading model stored in the ``meter_data`` table. Rows are
insert-only: ``id`` and ``timestamp`` are always assigned by the database.

CHANGELOG:
- 2026-10-12: Initial creation (STORY-002)

TODO:
- None
"""

import datetime
from decimal import Decimal

from sqlalchemy import DateTime, Integer, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all meter ingest ORM models."""

    pass


class MeterReading(Base):
    """Single electricity meter reading.

    Attributes:
        id: Auto-incrementing primary key, strictly increasing per insert.
        meter_id: Identifier of the originating meter.
        kwh: Energy value with 2 fractional digits.
        voltage: Voltage with 2 fractional digits, nullable.
        timestamp: Insert time, defaulted by the database.
    """

    __tablename__ = "meter_data"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    meter_id: Mapped[str] = mapped_column(String(50), nullable=False)
    kwh: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    voltage: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    timestamp: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(),
    )

    def __repr__(self) -> str:
        """Return string representation of the MeterReading."""
        return (
            f"MeterReading(id={self.id!r}, meter_id={self.meter_id!r}, "
            f"kwh={self.kwh!r}, voltage={self.voltage!r})"
        )
