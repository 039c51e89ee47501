"""
Database Connection Module
Owns the SQLAlchemy async engine and session factory for one application.

The Database is created by create_app(), stored on app.state and disposed
in the lifespan shutdown hook.
"""

import logging
from typing import AsyncIterator

from fastapi import Request
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from bistro.core.config import Settings

logger = logging.getLogger(__name__)


# Base class for all our models
class Base(DeclarativeBase):
    pass


class Database:
    """Async engine plus session factory."""

    def __init__(self, settings: Settings):
        engine_kwargs = {"echo": settings.db_echo}
        if not settings.is_sqlite:
            engine_kwargs.update(
                pool_size=settings.db_pool_size,
                max_overflow=settings.db_max_overflow,
                pool_pre_ping=True,
            )

        self.engine = create_async_engine(settings.database_url, **engine_kwargs)

        if settings.is_sqlite:
            _enable_sqlite_savepoints(self.engine)

        # Objects remain accessible after commit
        self.session_maker = async_sessionmaker(
            bind=self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    async def init(self) -> None:
        """
        Create all tables in database.
        Called once at application startup.
        """
        # Register the mapped classes on Base.metadata
        from bistro import models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created")

    async def dispose(self) -> None:
        await self.engine.dispose()


def _enable_sqlite_savepoints(engine) -> None:
    # pysqlite/aiosqlite emit BEGIN lazily, which breaks SAVEPOINT; take over
    # transaction control so begin_nested() works.
    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")


async def get_db(request: Request) -> AsyncIterator[AsyncSession]:
    """
    Dependency injection for FastAPI routes.
    Yields a database session and ensures cleanup.
    """
    database: Database = request.app.state.database
    async with database.session_maker() as session:
        try:
            yield session
        finally:
            await session.close()
