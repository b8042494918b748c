"""
Database Infrastructure
=======================

Manages database connections, session lifecycle, and engine configuration.

Uses SQLAlchemy 2.0 with asyncpg for async PostgreSQL operations (aiosqlite
in tests and local development).
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

from ticketflow.config import settings


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy models.

    SQLAlchemy 2.0 style using DeclarativeBase.
    All models inherit from this class.
    """
    pass


# Global engine and session maker
_engine: AsyncEngine | None = None
_session_maker: async_sessionmaker[AsyncSession] | None = None


def get_engine() -> AsyncEngine:
    """
    Get the database engine.

    Raises:
        RuntimeError: If engine has not been initialized
    """
    if _engine is None:
        raise RuntimeError("Database engine not initialized. Call init_database() first.")
    return _engine


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    if _session_maker is None:
        raise RuntimeError("Database not initialized. Call init_database() first.")
    return _session_maker


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    # SQLite ignores ON DELETE CASCADE unless asked per connection
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def init_database(database_url: Optional[str] = None) -> AsyncEngine:
    """
    Initialize the database engine and session maker.

    Should be called during application startup.

    Args:
        database_url: Override for settings.database_url (tests pass sqlite here)

    Returns:
        AsyncEngine: The initialized engine
    """
    global _engine, _session_maker

    url = database_url or settings.database_url

    if url.startswith("sqlite"):
        # A :memory: database lives on one shared connection
        pool_options = {"poolclass": StaticPool} if ":memory:" in url else {}
        _engine = create_async_engine(url, echo=settings.debug, **pool_options)
        event.listen(_engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
    else:
        # Fix asyncpg SSL: replace sslmode with ssl for asyncpg compatibility
        url = url.replace("sslmode=", "ssl=")
        _engine = create_async_engine(
            url,
            echo=settings.debug,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_pre_ping=True,
        )

    _session_maker = async_sessionmaker(
        bind=_engine,
        class_=AsyncSession,
        expire_on_commit=False,  # Prevent lazy loading after commit
        autoflush=False,
    )

    return _engine


async def close_database() -> None:
    """
    Close the database engine and dispose of connections.

    Should be called during application shutdown.
    """
    global _engine, _session_maker

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_maker = None


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Async generator for database sessions.

    For use with FastAPI's Depends() - FastAPI handles the lifecycle.
    The session commits when the request handler returns and rolls back
    on any exception, so a failed graph edit or clone leaves no rows.

    Yields:
        AsyncSession: SQLAlchemy async session
    """
    async with get_session_maker()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


@asynccontextmanager
async def get_session_context() -> AsyncGenerator[AsyncSession, None]:
    """
    Async context manager for database sessions.

    For use in background jobs and scripts.

    Usage:
        async with get_session_context() as session:
            records = await SQLAlchemyTicketSlaRepository(session).list_records(ReportFilter())
    """
    async with get_session_maker()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def create_tables() -> None:
    """
    Create all database tables.

    This should only be used for development/testing.
    """
    # Register every model on Base.metadata before create_all
    import ticketflow.workflow.infrastructure.models  # noqa: F401
    import ticketflow.sla.infrastructure.models  # noqa: F401

    engine = get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
