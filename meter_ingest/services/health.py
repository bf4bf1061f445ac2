"""
Health reporter for the store connection and the feed subscription.

Reads connection state that the store and the subscriber already track,
so a health check never waits on a database round-trip or the broker.

CHANGELOG:
- 2026-10-16: Initial creation (STORY-008)

TODO:
- None
"""

from typing import Any, Protocol


class _Connectable(Protocol):
    @property
    def connected(self) -> bool: ...


class HealthReporter:
    """Summarize liveness of the service's two external links.

    Args:
        store: Store connection manager (anything with ``connected``).
        feed: Feed subscriber, or None when the feed is not running.
    """

    def __init__(self, store: _Connectable, feed: _Connectable | None = None) -> None:
        self._store = store
        self._feed = feed

    def health(self) -> dict[str, Any]:
        """Build the health payload.

        Returns:
            dict: ``status`` is ``"healthy"`` only when both the store and
            the feed are connected, ``"degraded"`` otherwise.
        """
        store_connected = bool(self._store.connected)
        feed_connected = bool(self._feed is not None and self._feed.connected)
        return {
            "status": "healthy" if store_connected and feed_connected else "degraded",
            "store_connected": store_connected,
            "feed_connected": feed_connected,
        }
