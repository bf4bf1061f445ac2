"""
Health check endpoint reporting store and feed connectivity.

Always answers HTTP 200; the body's ``status`` is ``"degraded"`` when the
store or the feed subscription is down.

CHANGELOG:
- 2026-10-16: Initial creation (STORY-008)

TODO:
- None
"""

from fastapi import APIRouter

from meter_ingest.api.deps import Health

router = APIRouter(prefix="/api", tags=["health"])


@router.get("/health")
async def health_check(reporter: Health) -> dict:
    """Report store and feed connectivity.

    Returns:
        dict: ``status``, ``store_connected`` and ``feed_connected``.
    """
    return reporter.health()
