"""
Meter ingest service: MQTT and HTTP ingestion of electricity meter
readings into PostgreSQL.

CHANGELOG:
- 2026-10-12: Initial creation (STORY-001)

TODO:
- None
"""

__version__ = "0.1.0"
