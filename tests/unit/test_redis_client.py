# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the tenant-isolated Redis client."""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import WatchError

from src.core.config.settings import Settings
from src.infrastructure.cache.redis_client import RedisClient, RedisError, get_redis


@pytest.fixture
def mock_pipeline():
    """Create mock transactional pipeline."""
    pipe = MagicMock()
    pipe.__aenter__ = AsyncMock(return_value=pipe)
    pipe.__aexit__ = AsyncMock(return_value=False)
    pipe.watch = AsyncMock()
    pipe.get = AsyncMock(return_value=None)
    pipe.execute = AsyncMock(return_value=[True])
    return pipe


@pytest.fixture
def mock_redis(mock_pipeline):
    """Create mock redis.asyncio.Redis."""
    redis = MagicMock()
    redis.get = AsyncMock(return_value=None)
    redis.set = AsyncMock()
    redis.delete = AsyncMock(return_value=1)
    redis.ping = AsyncMock(return_value=True)
    redis.pipeline.return_value = mock_pipeline
    return redis


@pytest.fixture
def client(mock_redis):
    return RedisClient(Settings(), redis=mock_redis)


class TestTenantOperations:
    """Tests for tenant-prefixed operations."""

    @pytest.mark.asyncio
    async def test_set_prefixes_key_and_serializes(self, client, mock_redis):
        await client.set_with_tenant("acme", "dashboard:stats", {"a": 1}, expire_seconds=60)

        mock_redis.set.assert_awaited_once_with("tenant:acme:dashboard:stats", '{"a": 1}', ex=60)

    @pytest.mark.asyncio
    async def test_get_deserializes(self, client, mock_redis):
        mock_redis.get.return_value = json.dumps({"a": 1})

        assert await client.get_with_tenant("acme", "k") == {"a": 1}
        mock_redis.get.assert_awaited_once_with("tenant:acme:k")

    @pytest.mark.asyncio
    async def test_delete(self, client, mock_redis):
        assert await client.delete_with_tenant("acme", "k")

    @pytest.mark.asyncio
    async def test_wraps_redis_errors(self, client, mock_redis):
        mock_redis.get.side_effect = RedisConnectionError("down")

        with pytest.raises(RedisError, match="tenant:acme:k"):
            await client.get_with_tenant("acme", "k")

    @pytest.mark.asyncio
    async def test_not_connected(self):
        client = RedisClient(Settings())

        with pytest.raises(RedisError):
            await client.get_with_tenant("acme", "k")
        assert not await client.ping()


class TestSetIf:
    """Tests for the compare-and-set commit."""

    @pytest.mark.asyncio
    async def test_writes_when_absent(self, client, mock_pipeline):
        should_replace = MagicMock(return_value=False)

        assert await client.set_if_with_tenant("acme", "k", {"v": 1}, should_replace)

        should_replace.assert_not_called()
        mock_pipeline.watch.assert_awaited_once_with("tenant:acme:k")
        mock_pipeline.multi.assert_called_once()
        mock_pipeline.set.assert_called_once_with("tenant:acme:k", '{"v": 1}', ex=None)

    @pytest.mark.asyncio
    async def test_keeps_stored_value_when_refused(self, client, mock_pipeline):
        mock_pipeline.get.return_value = json.dumps({"started_at": 5})

        written = await client.set_if_with_tenant(
            "acme", "k", {"started_at": 1}, lambda current: current["started_at"] <= 1
        )

        assert not written
        mock_pipeline.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_retries_on_watch_error(self, client, mock_pipeline):
        mock_pipeline.execute.side_effect = [WatchError(), [True]]

        assert await client.set_if_with_tenant("acme", "k", "v", lambda _: True)
        assert mock_pipeline.watch.await_count == 2

    @pytest.mark.asyncio
    async def test_gives_up_after_persistent_contention(self, client, mock_pipeline):
        mock_pipeline.execute.side_effect = WatchError()

        with pytest.raises(RedisError, match="contended"):
            await client.set_if_with_tenant("acme", "k", "v", lambda _: True)
        assert mock_pipeline.watch.await_count == RedisClient.MAX_WATCH_RETRIES


def test_get_redis_requires_init():
    with pytest.raises(RedisError):
        get_redis()
