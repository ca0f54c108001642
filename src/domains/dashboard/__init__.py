# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Admin dashboard aggregation and progress timeline.

This module provides:
- TenantScopedFetcher: School-scoped reads with bounded latency
- StatsAggregator: All-or-nothing dashboard statistics snapshot
- ActivityFeed: Recent activity windows, newest first
- TimelineMerger: Ordered, presentation-ready progress timelines
- RefreshScheduler: Periodic, coalesced snapshot refresh per school
- DashboardService: Facade wiring the above together

Example:
    from src.domains.dashboard import build_dashboard_service

    service = build_dashboard_service(settings, db.session)
    result = await service.get_stats("acme")
"""

from src.domains.dashboard.activity import ActivityEntry, ActivityFeed, format_action
from src.domains.dashboard.aggregator import DashboardStats, StatsAggregator
from src.domains.dashboard.cache import (
    CacheEntry,
    InMemorySnapshotCache,
    QueryKey,
    RedisSnapshotCache,
    SnapshotCache,
)
from src.domains.dashboard.errors import (
    AggregationError,
    DashboardError,
    FetchError,
    FetchErrorKind,
    MissingTenantError,
    UnknownEnumValueError,
)
from src.domains.dashboard.fetcher import (
    Collection,
    FetchedRows,
    QueryFilters,
    TenantScopedFetcher,
)
from src.domains.dashboard.result import Result
from src.domains.dashboard.scheduler import QueryState, RefreshScheduler, Subscription
from src.domains.dashboard.service import (
    ACTIVITY_QUERY,
    STATS_QUERY,
    DashboardService,
    build_dashboard_service,
)
from src.domains.dashboard.timeline import (
    EventStatus,
    EventType,
    RenderedTimelineEntry,
    TimelineEvent,
    TimelineMerger,
    merge_timeline,
)

__all__ = [
    "ACTIVITY_QUERY",
    "ActivityEntry",
    "ActivityFeed",
    "AggregationError",
    "CacheEntry",
    "Collection",
    "DashboardError",
    "DashboardService",
    "DashboardStats",
    "EventStatus",
    "EventType",
    "FetchError",
    "FetchErrorKind",
    "FetchedRows",
    "InMemorySnapshotCache",
    "MissingTenantError",
    "QueryFilters",
    "QueryKey",
    "QueryState",
    "RedisSnapshotCache",
    "RefreshScheduler",
    "RenderedTimelineEntry",
    "Result",
    "STATS_QUERY",
    "SnapshotCache",
    "StatsAggregator",
    "Subscription",
    "TenantScopedFetcher",
    "TimelineEvent",
    "TimelineMerger",
    "UnknownEnumValueError",
    "build_dashboard_service",
    "format_action",
    "merge_timeline",
]
