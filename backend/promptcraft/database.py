"""SQLAlchemy 2.0 async database engine and session management.

The desktop build keeps everything in a single SQLite file under the user
data directory, accessed through the aiosqlite driver.
"""

from __future__ import annotations

import logging
import os

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from promptcraft.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()

engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
)


def _enable_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def enforce_foreign_keys(db_engine: AsyncEngine) -> None:
    """Turn on SQLite foreign key enforcement for every new connection of ``db_engine``."""
    if db_engine.dialect.name != "sqlite":
        return
    if not event.contains(db_engine.sync_engine, "connect", _enable_foreign_keys):
        event.listen(db_engine.sync_engine, "connect", _enable_foreign_keys)


enforce_foreign_keys(engine)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Base class for all ORM models."""


async def init_db(db_engine: AsyncEngine | None = None) -> None:
    """Create the data directory and all tables defined by Base metadata.

    Called once at application startup.
    """
    # Import models so they register with Base.metadata
    import promptcraft.models  # noqa: F401

    os.makedirs(settings.DATA_DIR, exist_ok=True)
    os.makedirs(settings.MEDIA_DIR, exist_ok=True)

    db_engine = db_engine or engine
    enforce_foreign_keys(db_engine)
    async with db_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database ready: %s", settings.DATABASE_URL)


async def close_db() -> None:
    """Dispose of the engine connection pool.

    Called at application shutdown.
    """
    await engine.dispose()
