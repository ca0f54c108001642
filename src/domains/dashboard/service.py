# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Dashboard service wiring aggregation, activity and refresh together.

DashboardService is the entry point used by the admin dashboard:
- watch_stats / watch_activity: live, periodically refreshed snapshots
- get_stats / get_recent_activity / browse_activity: one-shot reads
- render_timeline: ordered, presentation-ready progress timeline

Usage:
    from src.domains.dashboard import build_dashboard_service

    service = build_dashboard_service(settings, db.session)
    async with service.watch_stats("acme") as subscription:
        async for state in subscription:
            ...
    await service.close()
"""

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

from src.domains.dashboard.activity import ActivityEntry, ActivityFeed
from src.domains.dashboard.aggregator import DashboardStats, StatsAggregator
from src.domains.dashboard.cache import (
    Codec,
    InMemorySnapshotCache,
    QueryKey,
    RedisSnapshotCache,
    SnapshotCache,
)
from src.domains.dashboard.errors import MissingTenantError
from src.domains.dashboard.fetcher import SessionFactory, TenantScopedFetcher
from src.domains.dashboard.result import Result
from src.domains.dashboard.scheduler import RefreshScheduler, Subscription
from src.domains.dashboard.timeline import RenderedTimelineEntry, TimelineEvent, TimelineMerger

if TYPE_CHECKING:
    from src.core.config.settings import Settings
    from src.infrastructure.cache.redis_client import RedisClient

logger = logging.getLogger(__name__)

STATS_QUERY = "admin-dashboard-stats"
ACTIVITY_QUERY = "admin-recent-activity"

SNAPSHOT_CODECS: dict[str, Codec] = {
    STATS_QUERY: (
        lambda stats: stats.to_dict(),
        lambda data: DashboardStats(**data),
    ),
    ACTIVITY_QUERY: (
        lambda entries: [entry.to_dict() for entry in entries],
        lambda rows: [ActivityEntry.from_row(row) for row in rows],
    ),
}


def stats_key(tenant_code: str) -> QueryKey:
    return QueryKey(STATS_QUERY, tenant_code)


def activity_key(tenant_code: str) -> QueryKey:
    return QueryKey(ACTIVITY_QUERY, tenant_code)


class DashboardService:
    """Admin dashboard facade over one school's data.

    Attributes:
        refresh_interval_seconds: Period of live snapshot refreshes.
    """

    def __init__(
        self,
        aggregator: StatsAggregator,
        feed: ActivityFeed,
        scheduler: RefreshScheduler,
        refresh_interval_seconds: float | None = None,
        merger: TimelineMerger | None = None,
    ) -> None:
        self._aggregator = aggregator
        self._feed = feed
        self._scheduler = scheduler
        self._merger = merger or TimelineMerger()
        self.refresh_interval_seconds = (
            refresh_interval_seconds
            if refresh_interval_seconds is not None
            else scheduler.default_interval_seconds
        )

    @property
    def scheduler(self) -> RefreshScheduler:
        return self._scheduler

    def watch_stats(self, tenant_code: str | None) -> Subscription[DashboardStats]:
        """Subscribe to the live stats snapshot of a school.

        Raises:
            MissingTenantError: If tenant_code is empty. Nothing is scheduled.
        """
        code = _require_tenant(tenant_code)
        return self._scheduler.subscribe(
            stats_key(code),
            lambda: self._aggregator.compute_stats(code),
            self.refresh_interval_seconds,
        )

    def watch_activity(self, tenant_code: str | None) -> Subscription[list[ActivityEntry]]:
        """Subscribe to the live recent-activity window of a school.

        Raises:
            MissingTenantError: If tenant_code is empty. Nothing is scheduled.
        """
        code = _require_tenant(tenant_code)
        return self._scheduler.subscribe(
            activity_key(code),
            lambda: self._feed.recent(code),
            self.refresh_interval_seconds,
        )

    async def get_stats(self, tenant_code: str | None) -> Result[DashboardStats]:
        return await self._aggregator.compute_stats(tenant_code)

    async def get_recent_activity(
        self,
        tenant_code: str | None,
        limit: int | None = None,
    ) -> Result[list[ActivityEntry]]:
        return await self._feed.recent(tenant_code, limit)

    async def browse_activity(
        self,
        tenant_code: str | None,
        entity_type: str | None = None,
        search: str | None = None,
    ) -> Result[list[ActivityEntry]]:
        return await self._feed.browse(tenant_code, entity_type=entity_type, search=search)

    def render_timeline(self, events: Iterable[TimelineEvent]) -> list[RenderedTimelineEntry]:
        return self._merger.render(events)

    async def close(self) -> None:
        """Stop all live refreshes."""
        await self._scheduler.close()


def _require_tenant(tenant_code: str | None) -> str:
    if not tenant_code:
        raise MissingTenantError()
    return tenant_code


def build_snapshot_cache(
    settings: "Settings",
    redis: "RedisClient | None" = None,
) -> SnapshotCache[Any]:
    """Select the snapshot cache backend configured in settings.

    Raises:
        ValueError: If the redis backend is configured without a client.
    """
    if settings.dashboard.cache_backend == "redis":
        if redis is None:
            raise ValueError("cache_backend is 'redis' but no Redis client was given")
        return RedisSnapshotCache(
            redis,
            SNAPSHOT_CODECS,
            ttl_seconds=settings.dashboard.cache_ttl_seconds,
        )
    return InMemorySnapshotCache()


def build_dashboard_service(
    settings: "Settings",
    session_factory: SessionFactory,
    redis: "RedisClient | None" = None,
) -> DashboardService:
    """Assemble a DashboardService from application settings.

    Args:
        settings: Application settings.
        session_factory: Async context manager factory yielding sessions,
            e.g. DatabaseManager.session.
        redis: Connected client, required for the redis cache backend.

    Returns:
        A ready DashboardService.
    """
    config = settings.dashboard
    fetcher = TenantScopedFetcher(session_factory, timeout_seconds=config.fetch_timeout_seconds)
    scheduler = RefreshScheduler(
        cache=build_snapshot_cache(settings, redis),
        default_interval_seconds=config.refresh_interval_seconds,
    )
    logger.info(
        "Dashboard service configured: cache=%s, interval=%ss",
        config.cache_backend,
        config.refresh_interval_seconds,
    )
    return DashboardService(
        aggregator=StatsAggregator(fetcher, attendance_window_days=config.attendance_window_days),
        feed=ActivityFeed(
            fetcher,
            default_limit=config.activity_limit,
            browse_limit=config.activity_browse_limit,
        ),
        scheduler=scheduler,
    )
