# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""School data store connection management using SQLAlchemy async.

The hosted store keeps every school's rows in shared collections keyed by
school_code. This module only owns the engine and sessions; tenant scoping
is applied by the dashboard fetcher on every query.

Uses SQLAlchemy 2.0 async API with asyncpg driver.

Example:
    from src.infrastructure.database.connection import init_database, get_database

    # Initialize at application startup
    await init_database(settings)

    # Each concurrent branch opens its own session
    async with get_database().session() as session:
        result = await session.execute(select(Profile))
"""

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, AsyncIterator, Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

if TYPE_CHECKING:
    from src.core.config.settings import Settings

# Module-level state
_database: Optional["DatabaseManager"] = None


class DatabaseError(Exception):
    """The data store engine could not be set up or is not initialized.

    Query failures are not wrapped; the fetcher classifies those itself.
    """

    def __init__(self, message: str, original_error: Optional[Exception] = None) -> None:
        super().__init__(message)
        self.message = message
        self.original_error = original_error

    def __str__(self) -> str:
        if self.original_error:
            return f"{self.message}: {self.original_error}"
        return self.message


class DatabaseManager:
    """Owns the async engine and sessionmaker for the school data store.

    Attributes:
        engine: The SQLAlchemy async engine.
    """

    def __init__(
        self,
        engine: AsyncEngine,
        sessionmaker: async_sessionmaker[AsyncSession] | None = None,
    ) -> None:
        """Initialize the manager.

        Args:
            engine: Async engine bound to the store.
            sessionmaker: Optional sessionmaker; built from the engine if omitted.
        """
        self.engine = engine
        self._sessionmaker = sessionmaker or async_sessionmaker(
            bind=engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    @classmethod
    def from_settings(cls, settings: "Settings") -> "DatabaseManager":
        """Create a manager from application settings.

        Raises:
            DatabaseError: If the engine cannot be created.
        """
        try:
            engine = create_async_engine(
                settings.database.url,
                pool_size=settings.database.pool_size,
                max_overflow=settings.database.max_overflow,
                pool_pre_ping=True,
                pool_recycle=1800,
                echo=settings.debug and settings.log_level == "DEBUG",
            )
        except SQLAlchemyError as e:
            raise DatabaseError("Failed to initialize database connection", e) from e
        return cls(engine)

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Open a session that commits on exit and rolls back on error.

        Exceptions propagate unchanged so the fetcher can classify them.
        """
        async with self._sessionmaker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def check_connection(self) -> bool:
        """True when a trivial query succeeds against the store."""
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError:
            return False

    async def close(self) -> None:
        """Dispose the engine and its pool."""
        await self.engine.dispose()


async def init_database(settings: "Settings") -> DatabaseManager:
    """Build the process-wide manager; the engine connects lazily.

    Raises:
        DatabaseError: If the URL or pool options are rejected.
    """
    global _database

    _database = DatabaseManager.from_settings(settings)
    return _database


async def close_database() -> None:
    global _database

    if _database is not None:
        await _database.close()
        _database = None


def get_database() -> DatabaseManager:
    """Return the process-wide manager or raise DatabaseError if it is not built yet."""
    if _database is None:
        raise DatabaseError("Database not initialized. Call init_database() first.")
    return _database
