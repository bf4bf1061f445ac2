"""
Cache package for the Redis summary cache.

CHANGELOG:
- 2026-10-17: Initial creation (STORY-010)
- 2026-10-18: Export generation key and lookup result (STORY-011)

TODO:
- None
"""

from meter_ingest.cache.redis_client import (
    GENERATION_KEY,
    SUMMARY_KEY,
    CacheLookup,
    SummaryCache,
)

__all__ = ["GENERATION_KEY", "SUMMARY_KEY", "CacheLookup", "SummaryCache"]
