"""
Database session management and utilities.
"""
import asyncio
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy import exc
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from linkstore.db.engine import get_engine
from linkstore.exceptions import ConstraintViolationError, LinkStoreError, TransientStoreError
from linkstore.models import Base

_session_maker: Optional[async_sessionmaker] = None


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker:
    """Create an async session factory bound to ``engine``."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


def get_session_maker() -> async_sessionmaker:
    """Return the session factory for the process-wide engine."""
    global _session_maker
    if _session_maker is None:
        _session_maker = create_session_maker(get_engine())
    return _session_maker


def translate_error(error: BaseException) -> Optional[LinkStoreError]:
    """
    Map a driver/SQLAlchemy failure onto the store's error kinds.

    Returns:
        The typed error to raise instead, or None if the error should propagate as-is
    """
    if isinstance(error, (exc.IntegrityError, exc.DataError)):
        return ConstraintViolationError(str(error.orig) if error.orig is not None else str(error))
    if isinstance(error, exc.DBAPIError) and error.connection_invalidated:
        return TransientStoreError(f"Connection lost: {error.orig}")
    if isinstance(error, (exc.OperationalError, exc.InterfaceError, exc.TimeoutError)):
        return TransientStoreError(str(error))
    if isinstance(error, (ConnectionError, asyncio.TimeoutError)):
        return TransientStoreError(str(error) or type(error).__name__)
    return None


@asynccontextmanager
async def get_db_session(
    session_maker: Optional[async_sessionmaker] = None,
) -> AsyncGenerator[AsyncSession, None]:
    """
    Transactional session scope: commit on success, roll back on any error.

    Usage:
        async with get_db_session() as session:
            result = await session.execute(query)
    """
    maker = session_maker or get_session_maker()
    async with maker() as session:
        try:
            yield session
            await session.commit()
        except Exception as e:
            await session.rollback()
            translated = translate_error(e)
            if translated is not None:
                raise translated from e
            raise


async def create_tables(engine: Optional[AsyncEngine] = None):
    """Create all tables in the database."""
    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_tables(engine: Optional[AsyncEngine] = None):
    """Drop all tables from the database."""
    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
