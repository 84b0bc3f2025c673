"""
Database handle.

A Database owns the async engine and session factory. It is constructed once
by the application lifespan (or a test fixture) and handed to services; there
is no module-level connection state.

Each engine operation runs inside `async with db.transaction() as session:`.
The block commits on normal exit and rolls back on any exception, and the
connection goes back to the pool either way. Driver-level failures that are
worth retrying (connection loss, deadlock, lock timeout) are re-raised as
TransientError once the rollback has happened.

SQLite is supported for local runs and the test-suite. pysqlite's own
transaction handling defers BEGIN until the first write, which would let two
read-check-write sequences interleave, so every transaction is opened with
BEGIN IMMEDIATE instead and writers queue on the database lock.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import Request
from sqlalchemy import event
from sqlalchemy.exc import InterfaceError, OperationalError, DBAPIError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from gatehouse.core.config import Settings, get_settings
from gatehouse.core.exceptions import TransientError
from gatehouse.core.logging import get_logger
from gatehouse.core.metrics import transient_store_errors

logger = get_logger(__name__)


def _is_transient(exc: DBAPIError) -> bool:
    return isinstance(exc, (OperationalError, InterfaceError)) or exc.connection_invalidated


def _serialize_sqlite_writers(engine: AsyncEngine) -> None:
    @event.listens_for(engine.sync_engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


class Database:
    def __init__(self, url: str, settings: Settings | None = None, echo: bool = False):
        settings = settings or get_settings()
        self.url = url

        if url.startswith("sqlite"):
            self.engine = create_async_engine(
                url,
                echo=echo,
                connect_args={"timeout": settings.SQLITE_BUSY_TIMEOUT},
            )
            _serialize_sqlite_writers(self.engine)
        else:
            self.engine = create_async_engine(
                url,
                echo=echo,
                pool_size=settings.DB_POOL_SIZE,
                max_overflow=settings.DB_MAX_OVERFLOW,
                pool_timeout=settings.DB_POOL_TIMEOUT,
                pool_recycle=settings.DB_POOL_RECYCLE,
                pool_pre_ping=True,
                isolation_level="READ COMMITTED",
            )

        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        """One atomic unit of work: commit on success, roll back on any error."""
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    yield session
        except DBAPIError as e:
            if not _is_transient(e):
                raise
            transient_store_errors.inc()
            logger.error("transaction_aborted", error=str(e.orig or e))
            raise TransientError() from e

    async def create_all(self) -> None:
        from gatehouse.db.base import Base
        import gatehouse.models  # noqa: F401 - register tables on the metadata

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def drop_all(self) -> None:
        from gatehouse.db.base import Base

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    async def dispose(self) -> None:
        await self.engine.dispose()


def get_database(request: Request) -> Database:
    """FastAPI dependency returning the handle built by the lifespan."""
    return request.app.state.database
