"""
Feed package: MQTT subscription feeding the ingestion writer.

CHANGELOG:
- 2026-10-15: Initial creation (STORY-004)

TODO:
- None
"""

from meter_ingest.feed.subscriber import FeedState, FeedSubscriber, decode_payload

__all__ = ["FeedState", "FeedSubscriber", "decode_payload"]
