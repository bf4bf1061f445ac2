"""
Store connection manager: pooled async engine with bounded startup retry.

Owns the SQLAlchemy 2.x async engine (asyncpg driver for PostgreSQL) and
its connection pool. All other components borrow sessions through
``Store.session()`` and never hold a connection across unrelated
operations. The store instance is created once at startup and injected;
there is no module-level engine.

Startup calls ``connect()``, which probes the database with ``SELECT 1``
up to ``connect_retries`` times, waiting ``retry_interval_s`` between
attempts. Running out of attempts raises ``StoreConnectionError``. After
startup there is no reconnect loop: a failed round-trip surfaces to the
caller as ``StoreError`` (or ``PoolExhaustedError`` when no connection
could be checked out in time).

CHANGELOG:
- 2026-10-12: Initial creation (STORY-002)
- 2026-10-13: Pool sizing, acquire timeout, error translation (STORY-002)
- 2026-10-16: Track connection state for the health report (STORY-008)

TODO:
- None
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any

from sqlalchemy import exc, text
from sqlalchemy.engine import URL, Result, make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from meter_ingest.config import Settings
from meter_ingest.errors import PoolExhaustedError, StoreConnectionError, StoreError

logger = logging.getLogger(__name__)

SleepFn = Callable[[float], Awaitable[None]]


@dataclass
class ConnectRetry:
    """Bounded fixed-delay retry state for the startup probe.

    Attributes:
        max_attempts: Total number of probe attempts allowed.
        interval_s: Delay between two consecutive attempts.
        attempt: Number of failed attempts so far.
    """

    max_attempts: int
    interval_s: float
    attempt: int = 0

    def record_failure(self) -> bool:
        """Count one failed attempt.

        Returns:
            ``True`` if another attempt is allowed, ``False`` once the
            attempts are exhausted.
        """
        self.attempt += 1
        return self.attempt < self.max_attempts

    @property
    def remaining(self) -> int:
        """Attempts left before the retry gives up."""
        return max(self.max_attempts - self.attempt, 0)


class Store:
    """Pooled connection manager for the meter database.

    Args:
        url: SQLAlchemy async database URL.
        pool_max: Maximum number of pooled connections (no overflow).
        idle_timeout_s: Seconds after which a pooled connection is recycled.
        acquire_timeout_s: Seconds to wait for a free pooled connection.
        statement_timeout_s: Per-statement timeout (PostgreSQL only).
        connect_retries: Startup probe attempts.
        retry_interval_s: Delay between startup probe attempts.
        sleep: Awaitable sleep used between attempts. Tests inject a fake.
    """

    def __init__(
        self,
        url: str | URL,
        *,
        pool_max: int = 20,
        idle_timeout_s: int = 30,
        acquire_timeout_s: float = 5.0,
        statement_timeout_s: float = 30.0,
        connect_retries: int = 5,
        retry_interval_s: float = 5.0,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        if connect_retries < 1:
            raise ValueError("connect_retries must be >= 1")

        self._url = make_url(url)
        self._connect_retries = connect_retries
        self._retry_interval_s = retry_interval_s
        self._sleep = sleep
        self._connected = False

        connect_args: dict[str, Any] = {}
        if self._url.get_backend_name() == "postgresql":
            # asyncpg: connection establishment and default statement timeout.
            connect_args = {
                "timeout": acquire_timeout_s,
                "command_timeout": statement_timeout_s,
            }

        self._engine: AsyncEngine = create_async_engine(
            self._url,
            echo=False,
            pool_size=pool_max,
            max_overflow=0,
            pool_timeout=acquire_timeout_s,
            pool_recycle=idle_timeout_s,
            connect_args=connect_args,
        )
        self._session_factory = async_sessionmaker(
            self._engine, class_=AsyncSession, expire_on_commit=False,
        )

    @classmethod
    def from_settings(cls, settings: Settings, sleep: SleepFn = asyncio.sleep) -> "Store":
        """Build a Store from application settings."""
        return cls(
            settings.database_url(),
            pool_max=settings.DB_POOL_MAX,
            idle_timeout_s=settings.DB_POOL_IDLE_TIMEOUT_S,
            acquire_timeout_s=settings.DB_POOL_ACQUIRE_TIMEOUT_S,
            statement_timeout_s=settings.DB_STATEMENT_TIMEOUT_S,
            connect_retries=settings.DB_CONNECT_RETRIES,
            retry_interval_s=settings.DB_RETRY_INTERVAL_S,
            sleep=sleep,
        )

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def engine(self) -> AsyncEngine:
        """Underlying async engine."""
        return self._engine

    @property
    def connected(self) -> bool:
        """Whether the store is believed reachable.

        Set by a successful startup probe, cleared when a round-trip fails
        at the connection level, set again by the next successful one.
        """
        return self._connected

    @property
    def display_url(self) -> str:
        """Database URL with the password masked, for logging."""
        return self._url.render_as_string(hide_password=True)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def probe(self) -> bool:
        """Run a trivial round-trip query.

        Returns:
            ``True`` if ``SELECT 1`` succeeded, ``False`` otherwise.
        """
        try:
            async with self._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except (exc.SQLAlchemyError, OSError) as err:
            logger.warning("Database probe failed: %s", err)
            return False
        return True

    async def connect(self) -> "Store":
        """Probe the database until it answers or attempts run out.

        Returns:
            Store: ``self``, ready for use.

        Raises:
            StoreConnectionError: If every probe attempt failed.
        """
        retry = ConnectRetry(self._connect_retries, self._retry_interval_s)
        while True:
            if await self.probe():
                self._connected = True
                logger.info("Database connected successfully")
                return self

            if not retry.record_failure():
                break
            logger.error(
                "Database connection failed (%d retries left, next in %.1fs)",
                retry.remaining,
                retry.interval_s,
            )
            await self._sleep(retry.interval_s)

        raise StoreConnectionError(
            f"Unable to connect to database after {retry.attempt} attempts"
        )

    async def dispose(self) -> None:
        """Close all pooled connections."""
        self._connected = False
        await self._engine.dispose()

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Borrow a session for one unit of work.

        SQLAlchemy and socket errors raised inside the block are translated
        into the service's error types.

        Yields:
            AsyncSession: Session bound to a pooled connection.

        Raises:
            PoolExhaustedError: If no pooled connection was free in time.
            StoreError: On any other database failure.
        """
        try:
            async with self._session_factory() as session:
                yield session
        except exc.TimeoutError as err:
            raise PoolExhaustedError(
                "Timed out waiting for a pooled database connection"
            ) from err
        except (exc.SQLAlchemyError, OSError) as err:
            if _is_connection_failure(err):
                self._connected = False
            raise StoreError(f"Database operation failed: {err}") from err
        else:
            self._connected = True

    async def execute(self, statement: Any, params: dict | None = None) -> Result:
        """Execute one statement in its own session and commit.

        Args:
            statement: SQLAlchemy executable.
            params: Optional bound parameters.

        Returns:
            Result: Buffered result of the statement.
        """
        async with self.session() as session:
            result = await session.execute(statement, params)
            await session.commit()
            return result


def _is_connection_failure(err: BaseException) -> bool:
    """Whether *err* means the database link itself is down."""
    if isinstance(err, OSError):
        return True
    if isinstance(err, exc.DBAPIError) and err.connection_invalidated:
        return True
    return isinstance(err, exc.InterfaceError)
