# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for tenant-scoped fetching."""

import asyncio
from contextlib import asynccontextmanager
from datetime import date
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import OperationalError, ProgrammingError

from src.domains.dashboard.errors import FetchError, FetchErrorKind, MissingTenantError
from src.domains.dashboard.fetcher import (
    Collection,
    QueryFilters,
    TenantScopedFetcher,
    classify_database_error,
)


@pytest.fixture
def fetcher(session_factory):
    """Create fetcher over the mock session."""
    return TenantScopedFetcher(session_factory, timeout_seconds=1.0)


class TestQueryFilters:
    """Tests for QueryFilters validation."""

    def test_rejects_tenant_column_filter(self):
        with pytest.raises(ValueError, match="school_code"):
            QueryFilters(equals={"school_code": "other"})

    def test_rejects_non_positive_limit(self):
        with pytest.raises(ValueError):
            QueryFilters(limit=0)


class TestBuildStatement:
    """Tests for scoped statement construction."""

    def test_always_scopes_by_tenant(self, fetcher):
        stmt = fetcher.build_statement(Collection.PROFILES, "acme", QueryFilters())
        compiled = stmt.compile()

        assert "WHERE profiles.school_code = :school_code_1" in str(compiled)
        assert compiled.params["school_code_1"] == "acme"

    def test_projection_and_equality(self, fetcher):
        filters = QueryFilters(equals={"role": "teacher"}, columns=("id", "role"))
        compiled = fetcher.build_statement(Collection.PROFILES, "acme", filters).compile()
        sql = str(compiled)

        assert sql.startswith("SELECT profiles.id, profiles.role")
        assert "profiles.role = :role_1" in sql
        assert compiled.params["role_1"] == "teacher"
        assert compiled.params["school_code_1"] == "acme"

    def test_date_range_on_custom_field(self, fetcher):
        filters = QueryFilters(
            columns=("status",),
            date_field="date",
            date_from=date(2025, 1, 1),
            date_to=date(2025, 1, 31),
        )
        compiled = fetcher.build_statement(Collection.ATTENDANCE_RECORDS, "acme", filters).compile()
        sql = str(compiled)

        assert "attendance_records.date >= :date_1" in sql
        assert "attendance_records.date <= :date_2" in sql
        assert compiled.params["date_1"] == date(2025, 1, 1)

    def test_count_only(self, fetcher):
        filters = QueryFilters(is_active=True, count_only=True)
        sql = str(fetcher.build_statement(Collection.CLASSES, "acme", filters).compile())

        assert "count(*)" in sql
        assert "classes.is_active" in sql
        assert "classes.school_code" in sql

    def test_order_and_limit(self, fetcher):
        filters = QueryFilters(order_by=(("created_at", True), ("id", True)), limit=5)
        compiled = fetcher.build_statement(Collection.ACTIVITY_LOGS, "acme", filters).compile()
        sql = str(compiled)

        assert "ORDER BY activity_logs.created_at DESC, activity_logs.id DESC" in sql
        assert "LIMIT" in sql


class TestFetch:
    """Tests for TenantScopedFetcher.fetch."""

    @pytest.mark.asyncio
    async def test_missing_tenant_issues_no_query(self, fetcher, mock_session):
        result = await fetcher.fetch(Collection.PROFILES, "")

        assert isinstance(result.error, MissingTenantError)
        mock_session.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_returns_rows(self, fetcher, mock_session, make_row):
        mock_session.execute.return_value.__iter__.return_value = iter(
            [make_row({"role": "teacher"}), make_row({"role": "student"})]
        )

        result = await fetcher.fetch(Collection.PROFILES, "acme", QueryFilters(columns=("role",)))

        assert result.ok
        assert result.value.count == 2
        assert result.value.rows == [{"role": "teacher"}, {"role": "student"}]

    @pytest.mark.asyncio
    async def test_count_only_uses_scalar(self, fetcher, mock_session):
        mock_session.execute.return_value.scalar_one.return_value = 4

        result = await fetcher.fetch(
            Collection.CLASSES, "acme", QueryFilters(is_active=True, count_only=True)
        )

        assert result.value.count == 4
        assert result.value.rows == []

    @pytest.mark.asyncio
    async def test_unknown_collection_is_not_found(self, fetcher):
        result = await fetcher.fetch("homework", "acme")

        assert result.error.kind is FetchErrorKind.NOT_FOUND
        assert not result.error.retryable

    @pytest.mark.asyncio
    async def test_unknown_column_is_not_found(self, fetcher, mock_session):
        result = await fetcher.fetch(Collection.STUDENTS, "acme", QueryFilters(columns=("nope",)))

        assert result.error.kind is FetchErrorKind.NOT_FOUND
        mock_session.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_timeout_is_transient(self):
        session = AsyncMock()

        async def slow_execute(_stmt):
            await asyncio.sleep(1)

        session.execute = slow_execute

        @asynccontextmanager
        async def factory():
            yield session

        fetcher = TenantScopedFetcher(factory, timeout_seconds=0.01)
        result = await fetcher.fetch(Collection.PROFILES, "acme")

        assert isinstance(result.error, FetchError)
        assert result.error.kind is FetchErrorKind.TRANSIENT
        assert result.error.retryable

    @pytest.mark.asyncio
    async def test_database_error_is_classified(self, fetcher, mock_session):
        mock_session.execute.side_effect = ProgrammingError(
            "SELECT", {}, Exception("permission denied for table profiles")
        )

        result = await fetcher.fetch(Collection.PROFILES, "acme")

        assert result.error.kind is FetchErrorKind.UNAUTHORIZED
        assert result.error.collection == "profiles"

    @pytest.mark.asyncio
    async def test_connection_error_is_transient(self, fetcher, mock_session):
        mock_session.execute.side_effect = ConnectionRefusedError("refused")

        result = await fetcher.fetch(Collection.PROFILES, "acme")

        assert result.error.kind is FetchErrorKind.TRANSIENT


class TestClassifyDatabaseError:
    """Tests for classify_database_error."""

    def test_missing_relation(self):
        error = ProgrammingError("SELECT", {}, Exception('relation "exam_results" does not exist'))
        assert classify_database_error(error) is FetchErrorKind.NOT_FOUND

    def test_sqlstate_permission(self):
        orig = Exception("denied")
        orig.sqlstate = "42501"
        assert classify_database_error(OperationalError("SELECT", {}, orig)) is FetchErrorKind.UNAUTHORIZED

    def test_other_errors_are_transient(self):
        error = OperationalError("SELECT", {}, Exception("server closed the connection"))
        assert classify_database_error(error) is FetchErrorKind.TRANSIENT
