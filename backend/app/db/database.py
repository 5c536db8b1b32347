"""Database connection and lifecycle management."""

import logging

import databases

from app.core.config import settings
from app.db.schema import SCHEMA_STATEMENTS

logger = logging.getLogger(__name__)

# Create database connection
database = databases.Database(settings.database_url)


async def get_database() -> databases.Database:
    """Get database connection."""
    return database


async def init_schema(db: databases.Database) -> None:
    """Create tables and indexes if they do not exist yet."""
    for statement in SCHEMA_STATEMENTS:
        await db.execute(statement)


async def connect_db():
    """Connect to database on startup and make sure the schema exists."""
    if not database.is_connected:
        await database.connect()
        await init_schema(database)
        logger.info("Connected to %s", settings.database_url)


async def disconnect_db():
    """Disconnect from database on shutdown."""
    if database.is_connected:
        await database.disconnect()
