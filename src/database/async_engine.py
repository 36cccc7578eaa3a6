"""Async engine and session factories for the care-team store.

One process-wide engine is created lazily from ``DatabaseSettings``; tests
and embedding callers build their own with ``create_engine`` and pass the
session factory in.

On SQLite every transaction begins with ``BEGIN IMMEDIATE``: the write lock
is taken before the first read, so two coordinators editing the same client
queue behind each other instead of both reading the old roster.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from config.database import DatabaseSettings, get_database_settings

logger = logging.getLogger(__name__)


_async_engine: Optional[AsyncEngine] = None
_async_session_factory: Optional[async_sessionmaker[AsyncSession]] = None

_SQLITE_PRAGMAS = (
    "PRAGMA foreign_keys=ON",
    "PRAGMA journal_mode=WAL",
    "PRAGMA synchronous=NORMAL",
)


def create_engine(settings: Optional[DatabaseSettings] = None) -> AsyncEngine:
    """Build an engine for ``settings`` (environment settings if omitted)."""
    settings = settings or get_database_settings()

    options: Dict[str, Any] = settings.pool_options()
    if settings.is_sqlite:
        # A file database gains nothing from pooled connections
        options["poolclass"] = NullPool

    engine = create_async_engine(
        settings.async_url,
        echo=settings.echo_sql,
        connect_args=settings.get_connect_args(),
        **options,
    )
    _setup_engine_events(engine, settings)

    logger.info(
        "Database engine created",
        extra={"extra_data": {"driver": settings.driver, "database": settings.label}},
    )
    return engine


def _setup_engine_events(engine: AsyncEngine, settings: DatabaseSettings) -> None:
    """Per-connection SQLite pragmas and the immediate-begin hook."""
    if not settings.is_sqlite:
        return

    sync_engine = engine.sync_engine
    immediate = settings.sqlite_immediate_transactions

    @event.listens_for(sync_engine, "connect")
    def on_connect(dbapi_connection, connection_record):
        if immediate:
            # Turn off pysqlite's implicit BEGIN; on_begin issues our own
            dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        for pragma in _SQLITE_PRAGMAS:
            cursor.execute(pragma)
        cursor.close()

    if immediate:
        @event.listens_for(sync_engine, "begin")
        def on_begin(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")


def get_session_factory(
    engine: Optional[AsyncEngine] = None,
    settings: Optional[DatabaseSettings] = None,
) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to ``engine``.

    Objects stay readable after commit and nothing flushes implicitly;
    repositories flush where ordering matters.
    """
    return async_sessionmaker(
        bind=engine or get_async_engine(settings),
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


def get_async_engine(settings: Optional[DatabaseSettings] = None) -> AsyncEngine:
    """The process-wide engine, created on first call."""
    global _async_engine
    if _async_engine is None:
        _async_engine = create_engine(settings)
    return _async_engine


def get_async_session_factory(
    settings: Optional[DatabaseSettings] = None,
) -> async_sessionmaker[AsyncSession]:
    """The process-wide session factory, bound to ``get_async_engine``."""
    global _async_session_factory
    if _async_session_factory is None:
        _async_session_factory = get_session_factory(get_async_engine(settings))
    return _async_session_factory


async def create_schema(engine: AsyncEngine) -> None:
    """Create any missing care-team tables on ``engine``."""
    from database.models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def init_database(settings: Optional[DatabaseSettings] = None) -> None:
    """Prepare the process-wide database at startup.

    SQLite files get their schema created in place. Server databases are
    expected to be provisioned already.
    """
    settings = settings or get_database_settings()
    if settings.is_sqlite:
        await create_schema(get_async_engine(settings))
        logger.info("SQLite schema ready at %s", settings.sqlite_path)
    else:
        logger.info("Using provisioned %s database %s", settings.driver, settings.name)


async def close_database() -> None:
    """Dispose of the process-wide engine (application shutdown)."""
    global _async_engine, _async_session_factory
    if _async_engine is None:
        return
    await _async_engine.dispose()
    _async_engine = None
    _async_session_factory = None
    logger.info("Database engine closed")


class DatabaseHealth:
    """Round-trip query used by the readiness endpoint."""

    def __init__(
        self,
        settings: Optional[DatabaseSettings] = None,
        engine: Optional[AsyncEngine] = None,
    ):
        self.settings = settings or get_database_settings()
        self._engine = engine

    async def check(self) -> dict:
        """
        Run ``SELECT 1``.

        Returns:
            ``{"status": "healthy", "database": ..., "driver": ...}`` (plus
            pool counters on server databases), or
            ``{"status": "unhealthy", "error": ...}``.
        """
        engine = self._engine or get_async_engine(self.settings)
        try:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except Exception as e:
            logger.error("Database health check failed: %s", e)
            return {"status": "unhealthy", "error": str(e)}

        result = {
            "status": "healthy",
            "database": self.settings.label,
            "driver": self.settings.driver,
        }
        if not self.settings.is_sqlite:
            pool = engine.pool
            result["pool"] = {
                "size": pool.size(),
                "checked_out": pool.checkedout(),
                "overflow": pool.overflow(),
            }
        return result
