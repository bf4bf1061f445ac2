"""
Service layer: ingestion writer, query service and health reporter.

CHANGELOG:
- 2026-10-13: Initial creation (STORY-005)
- 2026-10-14: Export QueryService (STORY-006)
- 2026-10-16: Export HealthReporter (STORY-008)

TODO:
- None
"""

from meter_ingest.services.health import HealthReporter
from meter_ingest.services.ingestion import (
    IngestionWriter,
    ReadingIn,
    decode_reading,
    validate_reading,
)
from meter_ingest.services.queries import QueryService

__all__ = [
    "HealthReporter",
    "IngestionWriter",
    "QueryService",
    "ReadingIn",
    "decode_reading",
    "validate_reading",
]
