"""
Service configuration from environment variables using Pydantic BaseSettings.

All configuration values are loaded from environment variables (or a
``.env`` file) at startup. Names follow the deployment's existing
environment: ``DB_*`` parts for PostgreSQL, ``MQTT_BROKER_URL`` for the
feed, ``PORT`` for the listener.

CHANGELOG:
- 2026-10-12: Initial creation (STORY-001)
- 2026-10-13: Add pool sizing and acquire timeout settings (STORY-002)
- 2026-10-15: Add broker URL parsing and dispatch worker count (STORY-004)
- 2026-10-18: Bound the feed dispatch queue (STORY-011)

TODO:
- None
"""

from dataclasses import dataclass
from urllib.parse import unquote, urlsplit

from pydantic import field_validator
from pydantic_settings import BaseSettings
from sqlalchemy.engine import URL, make_url

_BROKER_DEFAULT_PORTS = {"mqtt": 1883, "tcp": 1883, "mqtts": 8883, "ssl": 8883}


@dataclass(frozen=True)
class BrokerEndpoint:
    """Connection parameters parsed from ``MQTT_BROKER_URL``."""

    hostname: str
    port: int
    username: str | None = None
    password: str | None = None
    tls: bool = False


class Settings(BaseSettings):
    """Meter ingest service settings loaded from environment variables.

    Attributes:
        DATABASE_URL: Full SQLAlchemy async URL. When set it overrides the
            individual ``DB_*`` parts.
        DB_USER: PostgreSQL user.
        DB_PASSWORD: PostgreSQL password.
        DB_HOST: PostgreSQL host.
        DB_PORT: PostgreSQL port.
        DB_NAME: PostgreSQL database name.
        DB_CONNECT_RETRIES: Startup liveness probe attempts.
        DB_RETRY_INTERVAL_S: Fixed delay between startup probe attempts.
        DB_POOL_MAX: Maximum number of pooled connections.
        DB_POOL_IDLE_TIMEOUT_S: Seconds before a pooled connection is recycled.
        DB_POOL_ACQUIRE_TIMEOUT_S: Seconds to wait for a pooled connection.
        DB_STATEMENT_TIMEOUT_S: Per-statement timeout on PostgreSQL.
        MQTT_BROKER_URL: Broker URL (``mqtt://`` or ``mqtts://``).
        MQTT_TOPIC: Topic carrying meter telemetry.
        MQTT_CLIENT_ID: MQTT client identifier (random when empty).
        MQTT_QOS: Subscription QoS level.
        MQTT_RECONNECT_INTERVAL_S: Delay before reconnecting to the broker.
        MQTT_DISPATCH_WORKERS: Concurrent feed dispatch workers.
        MQTT_QUEUE_MAX: Feed messages held for dispatch before new ones are dropped.
        REDIS_URL: Redis URL for the summary cache (disabled when unset).
        CACHE_TTL_S: Summary cache TTL in seconds.
        HOST: HTTP listen address.
        PORT: HTTP listen port.
        CORS_ORIGINS: Comma-separated allowed CORS origins.
        LOG_LEVEL: Root log level name.
    """

    DATABASE_URL: str | None = None
    DB_USER: str = "postgres"
    DB_PASSWORD: str = ""
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    DB_NAME: str = "meters"
    DB_CONNECT_RETRIES: int = 5
    DB_RETRY_INTERVAL_S: float = 5.0
    DB_POOL_MAX: int = 20
    DB_POOL_IDLE_TIMEOUT_S: int = 30
    DB_POOL_ACQUIRE_TIMEOUT_S: float = 5.0
    DB_STATEMENT_TIMEOUT_S: float = 30.0

    MQTT_BROKER_URL: str = "mqtt://localhost:1883"
    MQTT_TOPIC: str = "meter/data"
    MQTT_CLIENT_ID: str = ""
    MQTT_QOS: int = 1
    MQTT_RECONNECT_INTERVAL_S: float = 5.0
    MQTT_DISPATCH_WORKERS: int = 1
    MQTT_QUEUE_MAX: int = 1000

    REDIS_URL: str | None = None
    CACHE_TTL_S: int = 5

    HOST: str = "0.0.0.0"
    PORT: int = 3000
    CORS_ORIGINS: str = "*"
    LOG_LEVEL: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @field_validator(
        "DB_CONNECT_RETRIES",
        "DB_POOL_MAX",
        "DB_POOL_IDLE_TIMEOUT_S",
        "MQTT_DISPATCH_WORKERS",
        "MQTT_QUEUE_MAX",
        "CACHE_TTL_S",
    )
    @classmethod
    def must_be_positive_int(cls, v: int) -> int:
        """Validate counts and sizes are at least 1."""
        if v < 1:
            raise ValueError("must be >= 1")
        return v

    @field_validator(
        "DB_RETRY_INTERVAL_S",
        "DB_POOL_ACQUIRE_TIMEOUT_S",
        "DB_STATEMENT_TIMEOUT_S",
        "MQTT_RECONNECT_INTERVAL_S",
    )
    @classmethod
    def must_not_be_negative(cls, v: float) -> float:
        """Validate delays and timeouts are >= 0."""
        if v < 0:
            raise ValueError("must be >= 0")
        return v

    @field_validator("MQTT_QOS")
    @classmethod
    def qos_must_be_valid(cls, v: int) -> int:
        """Validate QoS is 0, 1 or 2."""
        if v not in (0, 1, 2):
            raise ValueError("MQTT_QOS must be 0, 1 or 2")
        return v

    @field_validator("MQTT_BROKER_URL")
    @classmethod
    def broker_scheme_must_be_known(cls, v: str) -> str:
        """Validate the broker URL uses a supported scheme and has a host."""
        parts = urlsplit(v)
        if parts.scheme not in _BROKER_DEFAULT_PORTS:
            raise ValueError(
                f"MQTT_BROKER_URL scheme must be one of "
                f"{sorted(_BROKER_DEFAULT_PORTS)} (got: '{parts.scheme}')"
            )
        if not parts.hostname:
            raise ValueError("MQTT_BROKER_URL must include a hostname")
        return v

    def database_url(self) -> URL:
        """Return the SQLAlchemy URL for the store.

        Returns:
            URL: ``DATABASE_URL`` when set, otherwise a
            ``postgresql+asyncpg`` URL built from the ``DB_*`` parts.
        """
        if self.DATABASE_URL:
            return make_url(self.DATABASE_URL)
        return URL.create(
            "postgresql+asyncpg",
            username=self.DB_USER,
            password=self.DB_PASSWORD or None,
            host=self.DB_HOST,
            port=self.DB_PORT,
            database=self.DB_NAME,
        )

    def broker_endpoint(self) -> BrokerEndpoint:
        """Parse ``MQTT_BROKER_URL`` into connection parameters."""
        parts = urlsplit(self.MQTT_BROKER_URL)
        return BrokerEndpoint(
            hostname=parts.hostname or "localhost",
            port=parts.port or _BROKER_DEFAULT_PORTS[parts.scheme],
            username=unquote(parts.username) if parts.username else None,
            password=unquote(parts.password) if parts.password else None,
            tls=parts.scheme in ("mqtts", "ssl"),
        )

    def broker_display(self) -> str:
        """Broker URL without credentials, for logging."""
        endpoint = self.broker_endpoint()
        scheme = urlsplit(self.MQTT_BROKER_URL).scheme
        return f"{scheme}://{endpoint.hostname}:{endpoint.port}"

    @property
    def cors_origins(self) -> list[str]:
        """Allowed CORS origins as a list."""
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]


def get_settings() -> Settings:
    """Create and return a Settings instance.

    Returns:
        Settings: Validated configuration from environment variables.
    """
    return Settings()
