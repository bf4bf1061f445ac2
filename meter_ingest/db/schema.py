"""
Schema initializer for the ``meter_data`` table.

Creates the table only if it is absent, so running it against an already
initialized database is a no-op. Runs once at startup, after the store
connection is established and before the feed or the write API accept
any data.

CHANGELOG:
- 2026-10-12: Initial creation (STORY-003)

TODO:
- None
"""

import logging

from sqlalchemy import exc

from meter_ingest.db.models import Base
from meter_ingest.db.store import Store
from meter_ingest.errors import SchemaError

logger = logging.getLogger(__name__)


async def ensure_schema(store: Store) -> None:
    """Create the meter_data table if it does not exist.

    Args:
        store: Connected store.

    Raises:
        SchemaError: If the table could not be created or inspected.
    """
    try:
        async with store.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all, checkfirst=True)
    except (exc.SQLAlchemyError, OSError) as err:
        logger.error("Database initialization error: %s", err)
        raise SchemaError(f"Unable to initialize database schema: {err}") from err
    logger.info("Database initialized")
