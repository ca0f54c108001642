# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for snapshot caches."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from src.domains.dashboard.aggregator import DashboardStats
from src.domains.dashboard.cache import InMemorySnapshotCache, QueryKey, RedisSnapshotCache
from src.domains.dashboard.service import SNAPSHOT_CODECS, STATS_QUERY

KEY = QueryKey(STATS_QUERY, "acme")


class TestInMemorySnapshotCache:
    """Tests for InMemorySnapshotCache."""

    @pytest.mark.asyncio
    async def test_put_and_get(self):
        cache = InMemorySnapshotCache()

        assert await cache.put(KEY, "v1", started_at=1.0)
        entry = await cache.get(KEY)

        assert entry.value == "v1"
        assert entry.started_at == 1.0
        assert entry.committed_at.tzinfo is not None

    @pytest.mark.asyncio
    async def test_superseded_commit_is_refused(self):
        cache = InMemorySnapshotCache()
        await cache.put(KEY, "newer", started_at=2.0)

        assert not await cache.put(KEY, "older", started_at=1.0)
        assert (await cache.get(KEY)).value == "newer"

    @pytest.mark.asyncio
    async def test_keys_are_isolated_per_tenant(self):
        cache = InMemorySnapshotCache()
        await cache.put(KEY, "acme", started_at=5.0)

        assert await cache.put(QueryKey(STATS_QUERY, "globex"), "globex", started_at=1.0)
        assert (await cache.get(KEY)).value == "acme"
        assert len(cache) == 2

    @pytest.mark.asyncio
    async def test_invalidate(self):
        cache = InMemorySnapshotCache()
        await cache.put(KEY, "v1", started_at=1.0)

        await cache.invalidate(KEY)
        await cache.invalidate(KEY)

        assert await cache.get(KEY) is None


@pytest.fixture
def mock_redis():
    """Create mock RedisClient."""
    redis = MagicMock()
    redis.get_with_tenant = AsyncMock(return_value=None)
    redis.set_if_with_tenant = AsyncMock(return_value=True)
    redis.delete_with_tenant = AsyncMock(return_value=True)
    return redis


class TestRedisSnapshotCache:
    """Tests for RedisSnapshotCache."""

    @pytest.mark.asyncio
    async def test_put_encodes_and_guards(self, mock_redis):
        cache = RedisSnapshotCache(mock_redis, SNAPSHOT_CODECS, ttl_seconds=300)
        stats = DashboardStats(total_users=3, teacher_count=1)

        assert await cache.put(KEY, stats, started_at=10.0)

        args = mock_redis.set_if_with_tenant.call_args
        tenant, redis_key, payload = args.args
        assert tenant == "acme"
        assert redis_key == "dashboard:admin-dashboard-stats"
        assert payload["value"]["total_users"] == 3
        assert payload["started_at"] == 10.0
        assert args.kwargs["expire_seconds"] == 300

        should_replace = args.kwargs["should_replace"]
        assert should_replace({"started_at": 9.0})
        assert not should_replace({"started_at": 11.0})
        assert should_replace("garbage")

    @pytest.mark.asyncio
    async def test_refused_write_returns_false(self, mock_redis):
        mock_redis.set_if_with_tenant.return_value = False
        cache = RedisSnapshotCache(mock_redis, SNAPSHOT_CODECS)

        assert not await cache.put(KEY, DashboardStats(), started_at=1.0)

    @pytest.mark.asyncio
    async def test_get_decodes(self, mock_redis):
        mock_redis.get_with_tenant.return_value = {
            "value": DashboardStats(student_count=40).to_dict(),
            "started_at": 4.5,
            "committed_at": "2025-01-02T09:00:00+00:00",
        }
        cache = RedisSnapshotCache(mock_redis, SNAPSHOT_CODECS)

        entry = await cache.get(KEY)

        assert entry.value == DashboardStats(student_count=40)
        assert entry.started_at == 4.5

    @pytest.mark.asyncio
    async def test_get_missing(self, mock_redis):
        cache = RedisSnapshotCache(mock_redis, SNAPSHOT_CODECS)

        assert await cache.get(KEY) is None

    @pytest.mark.parametrize(
        "stored",
        [
            {
                "value": {"total_users": 1, "old_field": 3},
                "started_at": 1.0,
                "committed_at": "2025-01-02T09:00:00+00:00",
            },
            {"value": {"total_users": 1}},
            {"value": {}, "started_at": "soon", "committed_at": "2025-01-02"},
            "not a snapshot",
        ],
    )
    @pytest.mark.asyncio
    async def test_undecodable_snapshot_is_dropped(self, mock_redis, stored):
        mock_redis.get_with_tenant.return_value = stored
        cache = RedisSnapshotCache(mock_redis, SNAPSHOT_CODECS)

        assert await cache.get(KEY) is None
        mock_redis.delete_with_tenant.assert_awaited_once_with(
            "acme", "dashboard:admin-dashboard-stats"
        )

    @pytest.mark.asyncio
    async def test_invalidate(self, mock_redis):
        cache = RedisSnapshotCache(mock_redis, SNAPSHOT_CODECS)

        await cache.invalidate(KEY)

        mock_redis.delete_with_tenant.assert_awaited_once_with("acme", "dashboard:admin-dashboard-stats")
