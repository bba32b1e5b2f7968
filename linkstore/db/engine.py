"""
Database engine configuration.
"""
from typing import Optional
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool

from linkstore.config import settings

_engine: Optional[AsyncEngine] = None


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    # SQLite ignores ON DELETE CASCADE unless foreign keys are switched on per connection
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_engine_from_url(database_url: str, echo: bool = False) -> AsyncEngine:
    """
    Create an async engine with pool settings suited to the backend.

    Args:
        database_url: SQLAlchemy async URL (asyncpg or aiosqlite)
        echo: Log every SQL statement

    Returns:
        Configured AsyncEngine
    """
    if database_url.startswith("sqlite"):
        kwargs = {"connect_args": {"timeout": 30}}
        if ":memory:" in database_url or database_url.rstrip("/").endswith("aiosqlite:"):
            # One shared connection, otherwise every checkout sees an empty database
            kwargs["poolclass"] = StaticPool
        engine = create_async_engine(database_url, echo=echo, **kwargs)
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
        return engine

    return create_async_engine(
        database_url,
        echo=echo,
        pool_size=10,
        max_overflow=20,
        pool_pre_ping=True,  # Verify connections before using
        pool_recycle=3600,   # Recycle connections after 1 hour
    )


def get_engine() -> AsyncEngine:
    """Return the process-wide engine, creating it from settings on first use."""
    global _engine
    if _engine is None:
        _engine = create_engine_from_url(settings.database_url, echo=settings.debug)
    return _engine


async def dispose_engine() -> None:
    """Close all pooled connections of the process-wide engine."""
    global _engine
    if _engine is not None:
        await _engine.dispose()
        _engine = None
