# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Declarative base and mixins for school data store models."""

from datetime import datetime
from uuid import uuid4

from sqlalchemy import DateTime, String
from sqlalchemy.orm import DeclarativeBase, Mapped, declared_attr, mapped_column
from sqlalchemy.sql import func


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy declarative models."""


class UUIDMixin:
    """Mixin for models using a string UUID primary key."""

    @declared_attr
    def id(cls) -> Mapped[str]:
        return mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))


class SchoolScopedMixin:
    """Mixin for rows owned by one school. Every dashboard query filters on it."""

    @declared_attr
    def school_code(cls) -> Mapped[str]:
        return mapped_column(String(50), nullable=False, index=True)


class CreatedAtMixin:
    """Mixin for a server-defaulted, timezone-aware created_at."""

    @declared_attr
    def created_at(cls) -> Mapped[datetime]:
        return mapped_column(
            DateTime(timezone=True), server_default=func.now(), nullable=False
        )
