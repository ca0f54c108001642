# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Tenant-scoped reads against the school data store.

Every read is AND-ed with ``school_code = :tenant`` so rows from another
school can never be returned. Each call bounds its own latency and turns
store failures into FetchError values instead of raising.

Usage:
    from src.domains.dashboard.fetcher import Collection, QueryFilters, TenantScopedFetcher

    fetcher = TenantScopedFetcher(database.session, timeout_seconds=10.0)
    result = await fetcher.fetch(
        Collection.CLASSES,
        "acme",
        QueryFilters(is_active=True, count_only=True),
    )
    if result.ok:
        print(result.value.count)
"""

import asyncio
import logging
from collections.abc import Callable, Mapping
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any

from sqlalchemy import Column, Select, Table, and_, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.domains.dashboard.errors import FetchError, FetchErrorKind, MissingTenantError
from src.domains.dashboard.result import Result
from src.infrastructure.database.models import (
    ActivityLog,
    AttendanceRecord,
    ExamResult,
    Profile,
    SchoolClass,
    Student,
)

logger = logging.getLogger(__name__)

TENANT_COLUMN = "school_code"

SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]


class Collection(str, Enum):
    """Logical collections reachable by tenant key."""

    PROFILES = "profiles"
    STUDENTS = "students"
    CLASSES = "classes"
    ATTENDANCE_RECORDS = "attendance_records"
    EXAM_RESULTS = "exam_results"
    ACTIVITY_LOGS = "activity_logs"


_TABLES: dict[Collection, Table] = {
    Collection.PROFILES: Profile.__table__,
    Collection.STUDENTS: Student.__table__,
    Collection.CLASSES: SchoolClass.__table__,
    Collection.ATTENDANCE_RECORDS: AttendanceRecord.__table__,
    Collection.EXAM_RESULTS: ExamResult.__table__,
    Collection.ACTIVITY_LOGS: ActivityLog.__table__,
}


@dataclass(frozen=True)
class QueryFilters:
    """Optional predicates and shaping for a scoped read.

    Attributes:
        equals: Column/value equality matches.
        date_field: Column the date range applies to.
        date_from: Inclusive lower bound on date_field.
        date_to: Inclusive upper bound on date_field.
        is_active: Shortcut for an is_active equality match.
        columns: Projection; all columns when empty.
        order_by: (column, descending) pairs applied in order.
        limit: Maximum number of rows.
        count_only: Return only the matching row count.
    """

    equals: Mapping[str, Any] = field(default_factory=dict)
    date_field: str = "created_at"
    date_from: date | datetime | None = None
    date_to: date | datetime | None = None
    is_active: bool | None = None
    columns: tuple[str, ...] = ()
    order_by: tuple[tuple[str, bool], ...] = ()
    limit: int | None = None
    count_only: bool = False

    def __post_init__(self) -> None:
        if TENANT_COLUMN in self.equals:
            raise ValueError(f"{TENANT_COLUMN} is applied by the fetcher and cannot be filtered on")
        if self.limit is not None and self.limit < 1:
            raise ValueError("limit must be at least 1")


@dataclass(frozen=True)
class FetchedRows:
    """Rows returned by a scoped read.

    Attributes:
        rows: Row mappings keyed by column name.
        count: Number of matching rows.
    """

    rows: list[dict[str, Any]]
    count: int


class _UnknownColumnError(KeyError):
    pass


class TenantScopedFetcher:
    """Issues single-collection reads scoped to exactly one school.

    Attributes:
        timeout_seconds: Latency bound for one fetch, including session setup.
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        timeout_seconds: float = 10.0,
    ) -> None:
        """Initialize the fetcher.

        Args:
            session_factory: Callable returning an async session context manager.
                Each fetch opens its own session so fetches can run concurrently.
            timeout_seconds: Latency bound for one fetch.
        """
        self._session_factory = session_factory
        self.timeout_seconds = timeout_seconds

    async def fetch(
        self,
        collection: Collection | str,
        tenant_code: str | None,
        filters: QueryFilters | None = None,
    ) -> Result[FetchedRows]:
        """Read rows from one collection for one school.

        Args:
            collection: Collection to read.
            tenant_code: School code; required.
            filters: Optional predicates and shaping.

        Returns:
            Result with FetchedRows, or with a FetchError (MissingTenantError
            when no school code is given).
        """
        if not tenant_code:
            return Result.failure(MissingTenantError())

        filters = filters or QueryFilters()
        name = collection.value if isinstance(collection, Collection) else str(collection)

        try:
            resolved = Collection(name)
        except ValueError:
            return self._failed(FetchErrorKind.NOT_FOUND, name, tenant_code, "Unknown collection")

        try:
            stmt = self.build_statement(resolved, tenant_code, filters)
        except _UnknownColumnError as e:
            return self._failed(FetchErrorKind.NOT_FOUND, name, tenant_code, f"Unknown column {e.args[0]!r}")

        try:
            fetched = await asyncio.wait_for(
                self._execute(stmt, filters.count_only),
                timeout=self.timeout_seconds,
            )
        except TimeoutError as e:
            return self._failed(
                FetchErrorKind.TRANSIENT,
                name,
                tenant_code,
                f"Timed out after {self.timeout_seconds}s",
                e,
            )
        except SQLAlchemyError as e:
            return self._failed(classify_database_error(e), name, tenant_code, str(e), e)
        except OSError as e:
            return self._failed(FetchErrorKind.TRANSIENT, name, tenant_code, str(e), e)

        return Result.success(fetched)

    def build_statement(
        self,
        collection: Collection,
        tenant_code: str,
        filters: QueryFilters,
    ) -> Select:
        """Build the scoped SELECT for a read.

        Raises:
            _UnknownColumnError: If a filter names a column the table lacks.
        """
        table = _TABLES[collection]
        conditions = [table.c[TENANT_COLUMN] == tenant_code]

        for name, value in filters.equals.items():
            conditions.append(_column(table, name) == value)
        if filters.is_active is not None:
            conditions.append(_column(table, "is_active") == filters.is_active)
        if filters.date_from is not None:
            conditions.append(_column(table, filters.date_field) >= filters.date_from)
        if filters.date_to is not None:
            conditions.append(_column(table, filters.date_field) <= filters.date_to)

        if filters.count_only:
            return select(func.count()).select_from(table).where(and_(*conditions))

        columns = [_column(table, name) for name in filters.columns] or list(table.c)
        stmt = select(*columns).where(and_(*conditions))
        for name, descending in filters.order_by:
            col = _column(table, name)
            stmt = stmt.order_by(col.desc() if descending else col.asc())
        if filters.limit is not None:
            stmt = stmt.limit(filters.limit)
        return stmt

    async def _execute(self, stmt: Select, count_only: bool) -> FetchedRows:
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            if count_only:
                return FetchedRows(rows=[], count=int(result.scalar_one()))
            rows = [row._asdict() for row in result]
        return FetchedRows(rows=rows, count=len(rows))

    def _failed(
        self,
        kind: FetchErrorKind,
        collection: str,
        tenant_code: str,
        message: str,
        original_error: Exception | None = None,
    ) -> Result[FetchedRows]:
        logger.warning(
            "Fetch failed: collection=%s tenant=%s kind=%s error=%s",
            collection,
            tenant_code,
            kind.value,
            message,
        )
        return Result.failure(FetchError(kind, collection, message, original_error))


def _column(table: Table, name: str) -> Column:
    col = table.c.get(name)
    if col is None:
        raise _UnknownColumnError(name)
    return col


def classify_database_error(error: SQLAlchemyError) -> FetchErrorKind:
    """Map a SQLAlchemy error to a fetch failure class.

    Permission errors (SQLSTATE 42501) are unauthorized, missing relations
    (SQLSTATE 42P01) are not-found; everything else is transient.
    """
    orig = getattr(error, "orig", None)
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    text = str(orig if orig is not None else error).lower()

    if sqlstate == "42501" or "permission denied" in text or "insufficient privilege" in text:
        return FetchErrorKind.UNAUTHORIZED
    if sqlstate == "42P01" or "no such table" in text or ("relation" in text and "does not exist" in text):
        return FetchErrorKind.NOT_FOUND
    return FetchErrorKind.TRANSIENT
