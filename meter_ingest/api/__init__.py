"""
HTTP API package.

CHANGELOG:
- 2026-10-14: Initial creation (STORY-007)

TODO:
- None
"""
