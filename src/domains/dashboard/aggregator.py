# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Dashboard statistics aggregation.

This module computes the admin dashboard snapshot for one school by
fanning out five independent scoped reads and joining them:

- profiles: total users and teacher count
- students: student count and the union of subjects
- classes: active class count
- attendance_records: attendance rate over a trailing window
- exam_results: average exam percentage

The snapshot is all-or-nothing. If any read fails, no stats are returned,
so live and zeroed metrics are never mixed.

Usage:
    from src.domains.dashboard import StatsAggregator

    aggregator = StatsAggregator(fetcher, attendance_window_days=30)
    result = await aggregator.compute_stats("acme")
    if result.ok:
        print(result.value.attendance_rate)
"""

import asyncio
import logging
from collections.abc import Callable, Iterable
from dataclasses import asdict, dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from src.domains.dashboard.errors import AggregationError, MissingTenantError
from src.domains.dashboard.fetcher import (
    Collection,
    FetchedRows,
    QueryFilters,
    TenantScopedFetcher,
)
from src.domains.dashboard.result import Result
from src.utils.datetime import utc_today, window_start

logger = logging.getLogger(__name__)

TEACHER_ROLE = "teacher"
PRESENT_STATUS = "present"


@dataclass(frozen=True)
class DashboardStats:
    """Admin dashboard snapshot for one school.

    Rates are integer percentages in [0, 100]; every other field is a
    non-negative count.
    """

    total_users: int = 0
    teacher_count: int = 0
    student_count: int = 0
    active_classes: int = 0
    attendance_rate: int = 0
    avg_performance: int = 0
    subjects_count: int = 0

    def __post_init__(self) -> None:
        for name, value in asdict(self).items():
            if value < 0:
                raise ValueError(f"{name} must be non-negative, got {value}")
        for name in ("attendance_rate", "avg_performance"):
            if getattr(self, name) > 100:
                raise ValueError(f"{name} must be at most 100")
        if self.teacher_count > self.total_users:
            raise ValueError("teacher_count cannot exceed total_users")

    @classmethod
    def empty(cls) -> "DashboardStats":
        """All-zero placeholder shown before the first snapshot arrives."""
        return cls()

    def to_dict(self) -> dict[str, int]:
        """Convert to dictionary for API response."""
        return asdict(self)


def round_half_up(value: Decimal) -> int:
    """Round to the nearest integer, halves away from zero (12.5 -> 13)."""
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _clamp_percentage(value: int) -> int:
    return max(0, min(100, value))


def attendance_rate(statuses: Iterable[str | None]) -> int:
    """Share of present marks as a rounded percentage; 0 with no records."""
    total = 0
    present = 0
    for status in statuses:
        total += 1
        if status == PRESENT_STATUS:
            present += 1
    if total == 0:
        return 0
    return _clamp_percentage(round_half_up(Decimal(present) * 100 / Decimal(total)))


def average_performance(percentages: Iterable[Any]) -> int:
    """Mean exam percentage, rounded; 0 with no results.

    Missing and non-numeric percentages are skipped.
    """
    values: list[Decimal] = []
    for raw in percentages:
        if raw is None:
            continue
        try:
            value = raw if isinstance(raw, Decimal) else Decimal(str(raw))
        except InvalidOperation:
            logger.warning("Skipping non-numeric exam percentage: %r", raw)
            continue
        if not value.is_finite():
            logger.warning("Skipping non-finite exam percentage: %r", raw)
            continue
        values.append(value)

    if not values:
        return 0
    return _clamp_percentage(round_half_up(sum(values) / len(values)))


def count_unique_subjects(subject_lists: Iterable[Iterable[str] | None]) -> int:
    """Size of the union of all subject lists, exact string match."""
    subjects: set[str] = set()
    for subject_list in subject_lists:
        if subject_list:
            subjects.update(subject_list)
    return len(subjects)


class StatsAggregator:
    """Computes DashboardStats by concurrent fan-out over scoped reads.

    Attributes:
        attendance_window_days: Trailing window for attendance records.
    """

    def __init__(
        self,
        fetcher: TenantScopedFetcher,
        attendance_window_days: int = 30,
        today: Callable[[], date] = utc_today,
    ) -> None:
        """Initialize the aggregator.

        Args:
            fetcher: Scoped reader for the school data store.
            attendance_window_days: Trailing window for attendance records.
            today: Clock returning the current UTC date.
        """
        self._fetcher = fetcher
        self.attendance_window_days = attendance_window_days
        self._today = today
        self._pending: set[asyncio.Future[Any]] = set()

    def build_queries(self) -> dict[Collection, QueryFilters]:
        """The five reads behind one snapshot, in collection order."""
        since = window_start(self.attendance_window_days, self._today())
        return {
            Collection.PROFILES: QueryFilters(columns=("role",)),
            Collection.STUDENTS: QueryFilters(columns=("id", "subjects")),
            Collection.CLASSES: QueryFilters(is_active=True, count_only=True),
            Collection.ATTENDANCE_RECORDS: QueryFilters(
                columns=("status",),
                date_field="date",
                date_from=since,
            ),
            Collection.EXAM_RESULTS: QueryFilters(columns=("percentage",)),
        }

    async def compute_stats(self, tenant_code: str | None) -> Result[DashboardStats]:
        """Compute the dashboard snapshot for a school.

        All five reads are started before any is awaited. If the caller
        abandons this call, the reads still run to completion and their
        results are dropped.

        Args:
            tenant_code: School code.

        Returns:
            Result with DashboardStats, or with MissingTenantError /
            AggregationError.
        """
        if not tenant_code:
            return Result.failure(MissingTenantError())

        queries = self.build_queries()
        tasks = [
            asyncio.create_task(self._fetcher.fetch(collection, tenant_code, filters))
            for collection, filters in queries.items()
        ]
        joined = asyncio.gather(*tasks)
        self._pending.add(joined)
        joined.add_done_callback(self._pending.discard)

        results: list[Result[FetchedRows]] = await asyncio.shield(joined)
        fetched = dict(zip(queries, results))

        failures = [r.error for r in results if r.error is not None]
        if failures:
            error = AggregationError(failures)
            logger.warning(
                "Dashboard stats failed for %s: %s (retryable=%s)",
                tenant_code,
                error.message,
                error.retryable,
            )
            return Result.failure(error)

        stats = self._combine(fetched)
        logger.debug("Dashboard stats computed for %s: %s", tenant_code, stats)
        return Result.success(stats)

    def _combine(self, fetched: dict[Collection, Result[FetchedRows]]) -> DashboardStats:
        profiles = fetched[Collection.PROFILES].unwrap()
        students = fetched[Collection.STUDENTS].unwrap()
        classes = fetched[Collection.CLASSES].unwrap()
        attendance = fetched[Collection.ATTENDANCE_RECORDS].unwrap()
        exams = fetched[Collection.EXAM_RESULTS].unwrap()

        return DashboardStats(
            total_users=profiles.count,
            teacher_count=sum(1 for row in profiles.rows if row.get("role") == TEACHER_ROLE),
            student_count=students.count,
            active_classes=classes.count,
            attendance_rate=attendance_rate(row.get("status") for row in attendance.rows),
            avg_performance=average_performance(row.get("percentage") for row in exams.rows),
            subjects_count=count_unique_subjects(row.get("subjects") for row in students.rows),
        )
