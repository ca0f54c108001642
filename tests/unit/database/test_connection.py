# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for database session management."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import SQLAlchemyError

from src.core.config.settings import DatabaseSettings, Settings
from src.infrastructure.database.connection import (
    DatabaseError,
    DatabaseManager,
    close_database,
    get_database,
    init_database,
)


@pytest.fixture
def mock_session():
    session = AsyncMock()
    session.__aenter__ = AsyncMock(return_value=session)
    session.__aexit__ = AsyncMock(return_value=False)
    return session


@pytest.fixture
def manager(mock_session):
    """Create manager with a mock engine and sessionmaker."""
    engine = MagicMock()
    engine.dispose = AsyncMock()
    return DatabaseManager(engine, sessionmaker=MagicMock(return_value=mock_session))


class TestDatabaseManager:
    """Tests for DatabaseManager.session."""

    @pytest.mark.asyncio
    async def test_commits_on_success(self, manager, mock_session):
        async with manager.session() as session:
            assert session is mock_session

        mock_session.commit.assert_awaited_once()
        mock_session.rollback.assert_not_called()

    @pytest.mark.asyncio
    async def test_rolls_back_and_reraises_unchanged(self, manager, mock_session):
        error = SQLAlchemyError("boom")

        with pytest.raises(SQLAlchemyError) as exc_info:
            async with manager.session():
                raise error

        assert exc_info.value is error
        mock_session.rollback.assert_awaited_once()
        mock_session.commit.assert_not_called()

    @pytest.mark.asyncio
    async def test_check_connection(self, manager):
        conn = AsyncMock()
        connect = MagicMock()
        connect.__aenter__ = AsyncMock(return_value=conn)
        connect.__aexit__ = AsyncMock(return_value=False)
        manager.engine.connect = MagicMock(return_value=connect)

        assert await manager.check_connection()

        conn.execute.side_effect = SQLAlchemyError("down")
        assert not await manager.check_connection()

    @pytest.mark.asyncio
    async def test_close_disposes_engine(self, manager):
        await manager.close()

        manager.engine.dispose.assert_awaited_once()


class TestGlobalDatabase:
    """Tests for module-level lifecycle functions."""

    @pytest.mark.asyncio
    async def test_init_get_close(self):
        settings = Settings(database=DatabaseSettings(host="localhost"))

        manager = await init_database(settings)
        assert get_database() is manager

        await close_database()
        with pytest.raises(DatabaseError):
            get_database()
