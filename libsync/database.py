"""Local state database setup.

Every client context owns its own engine so that isolated sessions can
coexist in one process (tests run several side by side). The default is a
SQLite file under LIBSYNC_DATA_PATH; set LIBSYNC_DATABASE_URL to override:
    sqlite+aiosqlite:////var/lib/libsync/state.db
"""
import logging
import os

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

logger = logging.getLogger(__name__)

# Base class for models
Base = declarative_base()


def create_engine(database_url: str) -> AsyncEngine:
    """Create an async engine configured for the local state database."""
    engine = create_async_engine(
        database_url,
        echo=False,
        pool_pre_ping=True,
        connect_args={"timeout": 30},  # Wait up to 30 seconds for locks
    )

    # Enable WAL mode and busy timeout on each SQLite connection
    @event.listens_for(engine.sync_engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        """Configure SQLite for durable writes with concurrent readers."""
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA busy_timeout=30000")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.close()

    logger.debug(f"Created state database engine for {make_url(database_url).database}")
    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to one engine."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def init_db(engine: AsyncEngine):
    """Initialize database - ensure the data directory exists and create tables."""
    # Import models so they register on Base.metadata
    from . import models  # noqa: F401

    db_path = engine.url.database
    if db_path and db_path != ":memory:":
        directory = os.path.dirname(os.path.abspath(db_path))
        os.makedirs(directory, exist_ok=True)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db(engine: AsyncEngine):
    """Close database connections."""
    await engine.dispose()
