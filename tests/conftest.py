"""
Shared test fixtures for the meter ingest service.

Store-backed fixtures run against a real SQLite file database through the
aiosqlite driver, so ids, ordering, aggregation and pool behaviour are
exercised for real. HTTP tests use FastAPI's TestClient with component
dependencies overridden by mocks.

CHANGELOG:
- 2026-10-12: Initial creation (STORY-001)
- 2026-10-13: Add SQLite-backed store fixture (STORY-002)

TODO:
- None
"""

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
import pytest_asyncio
from meter_ingest.db.schema import ensure_schema
from meter_ingest.db.store import Store

# All Settings environment variable names, used for cleanup.
_ALL_ENV_VARS = (
    "DATABASE_URL",
    "DB_USER",
    "DB_PASSWORD",
    "DB_HOST",
    "DB_PORT",
    "DB_NAME",
    "DB_CONNECT_RETRIES",
    "DB_RETRY_INTERVAL_S",
    "DB_POOL_MAX",
    "DB_POOL_IDLE_TIMEOUT_S",
    "DB_POOL_ACQUIRE_TIMEOUT_S",
    "DB_STATEMENT_TIMEOUT_S",
    "MQTT_BROKER_URL",
    "MQTT_TOPIC",
    "MQTT_CLIENT_ID",
    "MQTT_QOS",
    "MQTT_RECONNECT_INTERVAL_S",
    "MQTT_DISPATCH_WORKERS",
    "MQTT_QUEUE_MAX",
    "REDIS_URL",
    "CACHE_TTL_S",
    "HOST",
    "PORT",
    "CORS_ORIGINS",
    "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Remove all service env vars and isolate from .env files.

    Changes working directory to tmp_path so no .env file is accidentally
    loaded by Pydantic BaseSettings.
    """
    for var in _ALL_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture()
def db_url(tmp_path: Path) -> str:
    """Async SQLite URL for a database file in tmp_path."""
    return f"sqlite+aiosqlite:///{tmp_path / 'meters.db'}"


@pytest_asyncio.fixture()
async def store(db_url: str) -> AsyncGenerator[Store, None]:
    """Connected store with the meter_data table created.

    Yields:
        Store: Store backed by a fresh SQLite file.
    """
    store = Store(
        db_url,
        pool_max=5,
        acquire_timeout_s=30.0,
        connect_retries=1,
        retry_interval_s=0,
    )
    await store.connect()
    await ensure_schema(store)
    yield store
    await store.dispose()


class FakeRedis:
    """Dict-backed stand-in for the redis.asyncio commands the cache uses."""

    def __init__(self) -> None:
        self.data: dict[str, bytes] = {}

    async def get(self, key: str) -> bytes | None:
        return self.data.get(key)

    async def mget(self, *keys: str) -> list[bytes | None]:
        return [self.data.get(key) for key in keys]

    async def set(self, key: str, value: str, ex: int | None = None) -> bool:
        self.data[key] = value.encode()
        return True

    async def incr(self, key: str) -> int:
        value = int(self.data.get(key, b"0")) + 1
        self.data[key] = str(value).encode()
        return value

    async def aclose(self) -> None:
        pass


@pytest.fixture()
def fake_redis() -> FakeRedis:
    """Empty in-memory Redis."""
    return FakeRedis()
