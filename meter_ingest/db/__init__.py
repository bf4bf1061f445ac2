"""
Database package: ORM model, pooled store and schema initializer.

CHANGELOG:
- 2026-10-12: Initial creation (STORY-002)
- 2026-10-12: Export ensure_schema (STORY-003)

TODO:
- None
"""

from meter_ingest.db.models import Base, MeterReading
from meter_ingest.db.schema import ensure_schema
from meter_ingest.db.store import ConnectRetry, Store

__all__ = [
    "Base",
    "ConnectRetry",
    "MeterReading",
    "Store",
    "ensure_schema",
]
