"""
Error taxonomy for the meter ingest pipeline.

Every failure that crosses a component boundary is one of these types.
SQLAlchemy, aiomqtt and JSON exceptions are translated at the layer that
raises them so callers only ever handle ``MeterIngestError`` subclasses.

CHANGELOG:
- 2026-10-12: Initial creation (STORY-002)

TODO:
- None
"""


class MeterIngestError(Exception):
    """Base class for all meter ingest errors."""


class StoreConnectionError(MeterIngestError):
    """The store stayed unreachable after all startup attempts. Fatal."""


class SchemaError(MeterIngestError):
    """The ``meter_data`` table could not be created or verified."""


class StoreError(MeterIngestError):
    """A store round-trip failed. Per-call, possibly transient."""


class PoolExhaustedError(StoreError):
    """No pooled connection became free within the acquire timeout."""


class ReadingValidationError(MeterIngestError):
    """A reading is missing required fields or has the wrong shape.

    Attributes:
        errors: One dict per offending field with ``field`` and ``message``.
    """

    def __init__(self, errors: list[dict[str, str]]) -> None:
        self.errors = errors
        fields = ", ".join(e["field"] for e in errors) or "<body>"
        super().__init__(f"Invalid meter reading: {fields}")


class DecodeError(MeterIngestError):
    """A feed payload is not a JSON object."""
