# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pytest configuration and shared fixtures.

This module provides fixtures used across all test types:
- Unit tests
- Integration tests
"""

from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest


# =============================================================================
# Environment Fixtures
# =============================================================================


@pytest.fixture(scope="session")
def test_environment() -> dict[str, str]:
    """Provide test environment variables.

    Returns:
        Dictionary of environment variables for testing.
    """
    return {
        "ENVIRONMENT": "development",
        "DEBUG": "true",
        "LOG_LEVEL": "DEBUG",
        "DATABASE_HOST": "localhost",
        "DATABASE_PORT": "34001",
        "REDIS_HOST": "localhost",
        "REDIS_PORT": "34002",
        "DASHBOARD_REFRESH_INTERVAL_SECONDS": "5",
        "DASHBOARD_CACHE_BACKEND": "memory",
    }


# =============================================================================
# Marker Configuration
# =============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test (requires services)"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )


# =============================================================================
# Helper Fixtures
# =============================================================================


@pytest.fixture
def sample_tenant_code() -> str:
    """Provide a sample school code for testing."""
    return "acme"


@pytest.fixture
def make_row() -> Callable[[dict[str, Any]], MagicMock]:
    """Factory for mock SQLAlchemy Rows exposing _asdict()."""

    def factory(data: dict[str, Any]) -> MagicMock:
        row = MagicMock()
        row._asdict.return_value = dict(data)
        return row

    return factory


@pytest.fixture
def mock_session() -> AsyncMock:
    """Create mock database session whose execute() returns no rows."""
    session = AsyncMock()
    result = MagicMock()
    result.__iter__.return_value = iter([])
    result.scalar_one.return_value = 0
    session.execute = AsyncMock(return_value=result)
    return session


@pytest.fixture
def session_factory(mock_session: AsyncMock) -> Callable[[], Any]:
    """Session factory yielding mock_session, like DatabaseManager.session."""

    @asynccontextmanager
    async def factory() -> AsyncIterator[AsyncMock]:
        yield mock_session

    return factory
