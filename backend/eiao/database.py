"""
Everything Is An Ordeal: Database Session Management
=======================================================

What:  Async SQLAlchemy engine, session factory and declarative base.
How:   A `Database` object owns one engine and its session factory. It is
       created by the application factory (or the CLI), handed to the SQL
       store, and disposed during application shutdown.
Who:   Used by SqlOrdealStore, the CLI, and the health route.

Connection lifecycle:
    create_app() → Database(url)          engine + pool created, no I/O yet
    lifespan startup → ensure_schema()     optional, when DB_AUTO_CREATE is set
    each store operation → session()       one session, one transaction
    lifespan shutdown → dispose()          pooled connections closed
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    stop_after_attempt,
    wait_exponential_jitter,
)

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy ORM models.

    Shares a single metadata object, which Alembic reads for migrations and
    Database.create_all() uses for development setups.
    """
    pass


class Database:
    """
    Owner of the async engine and session factory.

    Args:
        url:            Async SQLAlchemy URL (postgresql+asyncpg://, sqlite+aiosqlite://)
        engine_options: Extra create_async_engine() keyword arguments
                        (see Settings.engine_options()).
    """

    def __init__(self, url: str, engine_options: Optional[Dict[str, Any]] = None):
        self.url = url
        self.engine: AsyncEngine = create_async_engine(url, **(engine_options or {}))
        # expire_on_commit=False: rows stay readable after the session commits
        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Provide a session wrapped in a single transaction.

        How it works:
            1. Creates a new session from the factory
            2. Yields it to the caller (the caller performs queries)
            3. On success: commits the transaction
            4. On error: rolls back and re-raises
            5. Always: closes the session (returns connection to pool)

        Example usage:
            async with database.session() as session:
                result = await session.execute(select(Ordeal))
        """
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    async def create_all(self) -> None:
        """Create any missing tables registered on Base.metadata."""
        # Import registers the models with Base.metadata
        from eiao.models.ordeal import Ordeal  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database schema ensured")

    async def ping(self) -> None:
        """Run SELECT 1. Raises whatever the driver raises on failure."""
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    async def ensure_schema(
        self,
        max_attempts: int = 5,
        min_wait: float = 1,
        max_wait: float = 10,
    ) -> None:
        """
        create_all() with exponential backoff for the first connection.

        Used at startup only, when the database may still be coming up.
        The last failure is re-raised once the attempts are exhausted.
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(max_attempts),
            wait=wait_exponential_jitter(initial=min_wait, max=max_wait),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                await self.create_all()

    async def dispose(self) -> None:
        """
        Gracefully close all connections in the pool.

        When:  Called during application shutdown (lifespan handler) and at
               the end of CLI commands.
        """
        await self.engine.dispose()
