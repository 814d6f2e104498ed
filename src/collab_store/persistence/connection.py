"""Connection management for one store instance.

Uses a SQLAlchemy 2.0 async engine with connection pooling. The engine is
created on first use and disposed once by ``close``.
"""

from __future__ import annotations

import enum
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy import MetaData, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

from collab_store.config import StoreSettings, normalize_dsn
from collab_store.errors import StoreError

logger = logging.getLogger(__name__)


class State(enum.Enum):
    OPEN = "open"
    CLOSED = "closed"


class Database:
    """Pooled connections plus an explicit transactional path."""

    def __init__(self, settings: StoreSettings):
        self._settings = settings
        self._dsn = normalize_dsn(settings.conn)
        self._engine: AsyncEngine | None = None
        self.state = State.OPEN

    @property
    def closed(self) -> bool:
        return self.state is State.CLOSED

    def _get_engine(self) -> AsyncEngine:
        if self.closed:
            raise StoreError("store is closed")
        if self._engine is None:
            options = {"echo": self._settings.echo}
            if not self._dsn.startswith("sqlite"):
                options.update(
                    pool_size=self._settings.pool_size,
                    max_overflow=self._settings.max_overflow,
                    pool_timeout=self._settings.pool_timeout,
                    pool_recycle=self._settings.pool_recycle,
                )
            try:
                self._engine = create_async_engine(self._dsn, **options)
            except (SQLAlchemyError, ImportError, ValueError) as e:
                raise StoreError(f"cannot create engine: {e}") from e
            logger.info("Database engine created (%s)", self._engine.dialect.name)
        return self._engine

    @asynccontextmanager
    async def connect(self) -> AsyncIterator[AsyncConnection]:
        """Pooled connection for single-statement reads and writes."""
        try:
            async with self._get_engine().connect() as conn:
                yield conn
                await conn.commit()
        except (SQLAlchemyError, OSError) as e:
            raise StoreError(str(e)) from e

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncConnection]:
        """Explicit session: commits on success, rolls back on any failure.

        The connection returns to the pool on every exit path before an
        error propagates.
        """
        try:
            async with self._get_engine().begin() as conn:
                yield conn
        except (SQLAlchemyError, OSError) as e:
            raise StoreError(str(e)) from e

    async def create_tables(self, metadata: MetaData) -> None:
        async with self.transaction() as conn:
            await conn.run_sync(metadata.create_all)
        logger.info("Database tables created: %s", ", ".join(sorted(metadata.tables)))

    async def health_check(self) -> bool:
        """Check database connectivity."""
        try:
            async with self.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except StoreError:
            return False

    async def close(self) -> None:
        """Dispose the engine once; later calls return immediately."""
        if self.closed:
            return
        self.state = State.CLOSED
        engine, self._engine = self._engine, None
        if engine is not None:
            await engine.dispose()
            logger.info("Database disconnected")
