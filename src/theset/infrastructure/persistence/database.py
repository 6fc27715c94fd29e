"""Database session management."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from theset.config import Settings

logger = logging.getLogger(__name__)


class Database:
    """Database connection and session manager.

    Holds two engines: the regular one and an optional elevated one built from
    ``DATABASE_SERVICE_URL``. Reconciliation falls back to the elevated engine
    once when the regular credential is denied a write.
    """

    def __init__(self, settings: Settings) -> None:
        """Initialize database with settings."""
        self.settings = settings
        self._engine = self._create_engine(settings.database.url)
        self._session_factory = async_sessionmaker(
            self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

        service_url = settings.database.service_url
        if service_url and service_url != settings.database.url:
            self._elevated_engine: AsyncEngine | None = self._create_engine(
                service_url
            )
            self._elevated_factory = async_sessionmaker(
                self._elevated_engine,
                class_=AsyncSession,
                expire_on_commit=False,
            )
        else:
            self._elevated_engine = None
            self._elevated_factory = self._session_factory

    def _create_engine(self, url: str) -> AsyncEngine:
        db = self.settings.database
        engine_kwargs: dict[str, Any] = {
            "echo": db.echo,
            "pool_pre_ping": db.pool_pre_ping,
        }

        # Only apply pool settings for PostgreSQL
        if "postgresql" in url:
            engine_kwargs.update(
                {
                    "pool_size": db.pool_size,
                    "max_overflow": db.max_overflow,
                    "pool_timeout": db.pool_timeout,
                    "pool_recycle": db.pool_recycle,
                }
            )
        elif "sqlite" in url:
            engine_kwargs.update(
                {
                    "connect_args": {
                        "check_same_thread": False,
                        "timeout": 30,  # Wait up to 30s for lock
                    }
                }
            )

        engine = create_async_engine(url, **engine_kwargs)
        if "sqlite" in url:
            self._configure_sqlite(engine)
        return engine

    @staticmethod
    def _configure_sqlite(engine: AsyncEngine) -> None:
        """Enable foreign keys and take the write lock at BEGIN.

        Hey future me - pysqlite/aiosqlite normally defer BEGIN until the first
        write, so two concurrent upserts can both read, then one dies with
        "database is locked" on upgrade. BEGIN IMMEDIATE makes writers queue up
        on the busy timeout instead, which is what the vote counter and the
        setlist-per-show race tests rely on. Savepoints still work.
        """

        @event.listens_for(engine.sync_engine, "connect")
        def set_sqlite_pragma(dbapi_conn: Any, _connection_record: Any) -> None:
            dbapi_conn.isolation_level = None
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()
            logger.debug("Enabled foreign keys for SQLite connection")

        @event.listens_for(engine.sync_engine, "begin")
        def do_begin(conn: Any) -> None:
            conn.exec_driver_sql("BEGIN IMMEDIATE")

    @property
    def dialect_name(self) -> str:
        return self._engine.dialect.name

    @property
    def has_elevated_credential(self) -> bool:
        return self._elevated_engine is not None

    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """Get database session."""
        async with self.session_scope() as session:
            yield session

    @asynccontextmanager
    async def session_scope(self) -> AsyncGenerator[AsyncSession, None]:
        """Provide a transactional scope for database operations."""
        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                # Rollback on any exception, then re-raise for the caller
                await session.rollback()
                raise

    @asynccontextmanager
    async def elevated_session_scope(self) -> AsyncGenerator[AsyncSession, None]:
        """Transactional scope on the service (elevated) credential.

        Falls back to the regular engine when no service URL is configured.
        """
        if self._elevated_engine is None:
            logger.debug("No elevated credential configured, using regular engine")
        async with self._elevated_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def close(self) -> None:
        """Close database connections."""
        await self._engine.dispose()
        if self._elevated_engine is not None:
            await self._elevated_engine.dispose()

    async def create_tables(self) -> None:
        """Create all tables (dev and tests; production uses alembic)."""
        from theset.infrastructure.persistence.models import Base

        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def drop_tables(self) -> None:
        """Drop all tables (for testing only)."""
        from theset.infrastructure.persistence.models import Base

        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    def get_pool_stats(self) -> dict[str, Any]:
        """Get connection pool statistics for the health endpoint."""
        if "sqlite" in self.settings.database.url:
            return {
                "pool_type": "sqlite",
                "note": "SQLite does not use connection pooling",
            }

        pool = self._engine.pool
        return {
            "pool_size": getattr(pool, "size", lambda: 0)(),
            "checked_out": getattr(pool, "checkedout", lambda: 0)(),
            "overflow": getattr(pool, "overflow", lambda: 0)(),
            "checked_in": getattr(pool, "checkedin", lambda: 0)(),
            "elevated_credential": self.has_elevated_credential,
        }
