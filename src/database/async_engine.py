"""Async engine and session factories for the SOA store.

PostgreSQL (asyncpg) in production, SQLite (aiosqlite) for development and
tests. A process-wide engine is created lazily for the API and the expiry
sweep; tests build their own with create_engine() and pass the resulting
session factory into the service container.
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool, QueuePool

from config.database import DatabaseSettings, get_database_settings

logger = logging.getLogger(__name__)


_async_engine: Optional[AsyncEngine] = None
_async_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def create_engine(settings: Optional[DatabaseSettings] = None) -> AsyncEngine:
    """
    Build an async engine for the configured backend.

    SQLite gets one connection per session (NullPool) so that concurrent
    sign attempts serialize on the database file lock; PostgreSQL gets a
    bounded QueuePool.
    """
    settings = settings or get_database_settings()

    if settings.is_sqlite:
        pool_kwargs = {"poolclass": NullPool}
        target = str(settings.sqlite_path)
    else:
        pool_kwargs = {
            "poolclass": QueuePool,
            "pool_size": settings.pool_size,
            "max_overflow": settings.max_overflow,
            "pool_timeout": settings.pool_timeout,
            "pool_recycle": settings.pool_recycle,
            "pool_pre_ping": settings.pool_pre_ping,
        }
        target = f"{settings.host}:{settings.port}/{settings.name}"

    logger.info(f"Creating SOA database engine ({settings.driver} {target})")

    engine = create_async_engine(
        settings.async_url,
        echo=settings.echo_sql,
        connect_args=settings.get_connect_args(),
        **pool_kwargs,
    )
    if settings.is_sqlite:
        _enable_sqlite_pragmas(engine)
    return engine


def _enable_sqlite_pragmas(engine: AsyncEngine) -> None:
    @event.listens_for(engine.sync_engine, "connect")
    def on_connect(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        # soa_audit_log.soa_id references scope_of_appointments.id
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.close()


def get_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory whose records stay readable after commit."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


def get_async_engine(settings: Optional[DatabaseSettings] = None) -> AsyncEngine:
    """The process-wide engine, created on first use."""
    global _async_engine

    if _async_engine is None:
        _async_engine = create_engine(settings)
    return _async_engine


def get_async_session_factory(
    settings: Optional[DatabaseSettings] = None,
) -> async_sessionmaker[AsyncSession]:
    global _async_session_factory

    if _async_session_factory is None:
        _async_session_factory = get_session_factory(get_async_engine(settings))
    return _async_session_factory


async def create_schema(engine: AsyncEngine) -> None:
    """Create the SOA tables that do not exist yet."""
    from database.models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def init_database(settings: Optional[DatabaseSettings] = None) -> None:
    """
    Make sure the schema exists before the API starts serving.

    The CRM tables (agents, clients, client_emails) are normally owned by
    the surrounding platform; create_all leaves existing tables untouched.
    """
    settings = settings or get_database_settings()
    await create_schema(get_async_engine(settings))
    logger.info("SOA database schema ready")


async def close_database() -> None:
    """Dispose the process-wide engine; called on shutdown."""
    global _async_engine, _async_session_factory

    if _async_engine is not None:
        await _async_engine.dispose()
        logger.info("SOA database engine closed")
    _async_engine = None
    _async_session_factory = None
