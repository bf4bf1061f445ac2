"""
Redis-backed cache for the per-meter summary.

The summary aggregates the whole ``meter_data`` history, so it is cached
under a single key with a short TTL. Freshness is tracked with a
generation counter: every insert bumps ``summary:generation`` and a cached
summary is only served while the generation it was computed under is
still current. A summary computed before a concurrent insert committed is
therefore never served after it, even if it is stored after the bump.

All operations are best-effort: Redis failures are logged and never
raised, so reads fall through to the database and writes are never
blocked by cache infrastructure.

CHANGELOG:
- 2026-10-17: Initial creation (STORY-010)
- 2026-10-18: Generation counter instead of key deletion (STORY-011)

TODO:
- None
"""

import json
import logging
from typing import Any, NamedTuple

import redis.asyncio as redis

logger = logging.getLogger(__name__)

SUMMARY_KEY = "summary:all"
GENERATION_KEY = "summary:generation"


class CacheLookup(NamedTuple):
    """Result of a summary cache lookup.

    Attributes:
        rows: Cached summary rows, or None on a miss.
        generation: Generation current at lookup time, to pass back to
            ``SummaryCache.set()``. None when Redis could not be read, in
            which case nothing should be stored.
    """

    rows: list[dict[str, Any]] | None
    generation: int | None


class SummaryCache:
    """Best-effort Redis cache for the summary endpoint.

    Args:
        client: Async Redis client.
        ttl_s: Expiry for cached summaries, in seconds.
    """

    def __init__(self, client: redis.Redis, ttl_s: int = 5) -> None:
        self._client = client
        self._ttl_s = ttl_s

    @classmethod
    def from_url(cls, url: str, ttl_s: int = 5) -> "SummaryCache":
        """Create a cache backed by a Redis client for *url*."""
        return cls(redis.from_url(url), ttl_s=ttl_s)

    async def get(self) -> CacheLookup:
        """Look up the cached summary.

        Returns:
            CacheLookup: Rows when the cached entry belongs to the current
            generation, otherwise a miss carrying that generation.
        """
        try:
            raw_generation, raw = await self._client.mget(GENERATION_KEY, SUMMARY_KEY)
            generation = int(raw_generation or 0)
            if raw is not None:
                entry = json.loads(raw)
                if entry.get("generation") == generation:
                    return CacheLookup(entry["rows"], generation)
            return CacheLookup(None, generation)
        except Exception:
            logger.warning("Redis cache read failed for %s", SUMMARY_KEY, exc_info=True)
        return CacheLookup(None, None)

    async def set(self, rows: list[dict[str, Any]], generation: int) -> None:
        """Cache JSON-serializable summary rows computed under *generation*.

        An entry whose generation has since been bumped is stored but never
        served, so callers need not guard against a racing insert.
        """
        entry = {"generation": generation, "rows": rows}
        try:
            await self._client.set(SUMMARY_KEY, json.dumps(entry), ex=self._ttl_s)
        except Exception:
            logger.warning("Redis cache write failed for %s", SUMMARY_KEY, exc_info=True)

    async def invalidate(self) -> None:
        """Bump the generation so any cached summary is stale."""
        try:
            await self._client.incr(GENERATION_KEY)
        except Exception:
            logger.warning(
                "Failed to invalidate cache key %s", SUMMARY_KEY, exc_info=True,
            )

    async def close(self) -> None:
        """Close the underlying client."""
        try:
            await self._client.aclose()
        except Exception:
            logger.warning("Failed to close Redis client", exc_info=True)
