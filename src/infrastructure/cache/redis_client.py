# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Async Redis client for dashboard snapshots shared between processes.

Keys are always written under ``tenant:{school_code}:`` so one school's
snapshots can never be read back under another school's code. Values are
stored as JSON.

Snapshot commits use set_if_with_tenant(), an optimistic compare-and-set
(WATCH/MULTI) that lets the caller keep a newer stored value.

Example:
    from src.infrastructure.cache import init_redis

    redis = await init_redis(settings)
    await redis.set_with_tenant("acme", "dashboard:admin-dashboard-stats", payload)
"""

import json
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Optional

from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import RedisError as BaseRedisError
from redis.exceptions import WatchError

if TYPE_CHECKING:
    from src.core.config.settings import Settings

_redis_client: Optional["RedisClient"] = None


class RedisError(Exception):
    """A Redis operation failed.

    Attributes:
        message: Human-readable error description.
        original_error: The redis-py exception, if any.
    """

    def __init__(self, message: str, original_error: Optional[Exception] = None) -> None:
        super().__init__(message)
        self.message = message
        self.original_error = original_error

    def __str__(self) -> str:
        if self.original_error:
            return f"{self.message}: {self.original_error}"
        return self.message


class RedisClient:
    """Tenant-prefixed JSON store over redis.asyncio.

    Example:
        client = RedisClient(settings)
        await client.connect()
        stored = await client.get_with_tenant("acme", "dashboard:admin-recent-activity")
        await client.close()
    """

    TENANT_KEY_PREFIX = "tenant"
    MAX_WATCH_RETRIES = 5

    def __init__(self, settings: "Settings", redis: Optional[Redis] = None) -> None:
        """Initialize the client.

        Args:
            settings: Settings providing the Redis URL and pool size.
            redis: Already-built redis.asyncio client; skips connect().
        """
        self._settings = settings
        self._pool: Optional[ConnectionPool] = None
        self._redis: Optional[Redis] = redis

    async def connect(self) -> None:
        """Open the connection pool and check the server answers.

        Raises:
            RedisError: If the server is unreachable.
        """
        try:
            self._pool = ConnectionPool.from_url(
                self._settings.redis.url,
                max_connections=self._settings.redis.max_connections,
                decode_responses=True,
            )
            self._redis = Redis(connection_pool=self._pool)
            await self._redis.ping()
        except BaseRedisError as e:
            raise RedisError("Failed to connect to Redis", e) from e

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
        if self._pool is not None:
            await self._pool.disconnect()
            self._pool = None

    def _client(self) -> Redis:
        if self._redis is None:
            raise RedisError("Redis client not connected. Call connect() first.")
        return self._redis

    def _tenant_key(self, tenant_code: str, key: str) -> str:
        return f"{self.TENANT_KEY_PREFIX}:{tenant_code}:{key}"

    @staticmethod
    def _encode(value: Any) -> str:
        if isinstance(value, str):
            return value
        return json.dumps(value, ensure_ascii=False, default=str)

    @staticmethod
    def _decode(raw: Optional[str]) -> Any:
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            return raw

    async def set_with_tenant(
        self,
        tenant_code: str,
        key: str,
        value: Any,
        expire_seconds: Optional[int] = None,
    ) -> None:
        """Store a value under a school's key.

        Raises:
            RedisError: If the write fails.
        """
        full_key = self._tenant_key(tenant_code, key)
        try:
            await self._client().set(full_key, self._encode(value), ex=expire_seconds)
        except BaseRedisError as e:
            raise RedisError(f"Failed to set key: {full_key}", e) from e

    async def get_with_tenant(self, tenant_code: str, key: str) -> Any:
        """Read a school's key; None when absent.

        Raises:
            RedisError: If the read fails.
        """
        full_key = self._tenant_key(tenant_code, key)
        try:
            return self._decode(await self._client().get(full_key))
        except BaseRedisError as e:
            raise RedisError(f"Failed to get key: {full_key}", e) from e

    async def delete_with_tenant(self, tenant_code: str, key: str) -> bool:
        """Delete a school's key; True if it existed.

        Raises:
            RedisError: If the delete fails.
        """
        full_key = self._tenant_key(tenant_code, key)
        try:
            return await self._client().delete(full_key) > 0
        except BaseRedisError as e:
            raise RedisError(f"Failed to delete key: {full_key}", e) from e

    async def set_if_with_tenant(
        self,
        tenant_code: str,
        key: str,
        value: Any,
        should_replace: Callable[[Any], bool],
        expire_seconds: Optional[int] = None,
    ) -> bool:
        """Store a value unless the currently stored one must be kept.

        The key is WATCHed between reading the stored value and writing the
        new one; a concurrent write aborts the transaction and the check is
        repeated, up to MAX_WATCH_RETRIES times.

        Args:
            tenant_code: School code.
            key: Key under the school's prefix.
            value: Value to store.
            should_replace: Receives the stored value (decoded) and returns
                False to keep it. Not called when the key is absent.
            expire_seconds: Optional expiry.

        Returns:
            True if written, False if the stored value was kept.

        Raises:
            RedisError: If Redis fails or the key stays contended.
        """
        redis = self._client()
        full_key = self._tenant_key(tenant_code, key)
        try:
            async with redis.pipeline(transaction=True) as pipe:
                for _ in range(self.MAX_WATCH_RETRIES):
                    try:
                        await pipe.watch(full_key)
                        current = self._decode(await pipe.get(full_key))
                        if current is not None and not should_replace(current):
                            return False
                        pipe.multi()
                        pipe.set(full_key, self._encode(value), ex=expire_seconds)
                        await pipe.execute()
                        return True
                    except WatchError:
                        continue
        except BaseRedisError as e:
            raise RedisError(f"Failed to set key: {full_key}", e) from e
        raise RedisError(f"Gave up setting contended key: {full_key}")

    async def ping(self) -> bool:
        """True if the server answers, False otherwise."""
        try:
            await self._client().ping()
        except (RedisError, BaseRedisError):
            return False
        return True


async def init_redis(settings: "Settings") -> RedisClient:
    """Create and connect the process-wide client.

    Raises:
        RedisError: If the server is unreachable.
    """
    global _redis_client

    client = RedisClient(settings)
    await client.connect()
    _redis_client = client
    return client


async def close_redis() -> None:
    """Close the process-wide client, if any."""
    global _redis_client

    if _redis_client is not None:
        await _redis_client.close()
        _redis_client = None


def get_redis() -> RedisClient:
    """Return the process-wide client.

    Raises:
        RedisError: If init_redis() has not been called.
    """
    if _redis_client is None:
        raise RedisError("Redis not initialized. Call init_redis() first.")
    return _redis_client
