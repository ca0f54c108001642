# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Database infrastructure for the school data store.

This package provides the SQLAlchemy async engine/session management
and the declarative models for the collections the dashboard reads.

Example:
    from src.infrastructure.database import init_database, get_database

    await init_database(settings)
    async with get_database().session() as session:
        result = await session.execute(select(Profile))
"""

from src.infrastructure.database.connection import (
    DatabaseError,
    DatabaseManager,
    close_database,
    get_database,
    init_database,
)

__all__ = [
    "DatabaseError",
    "DatabaseManager",
    "close_database",
    "get_database",
    "init_database",
]
