# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Cache infrastructure using Redis.

This package provides the Redis client used to share dashboard snapshots
between processes. Tenant isolation is achieved via key prefixes:
tenant:{tenant_code}:*

Example:
    from src.infrastructure.cache import init_redis, get_redis, close_redis

    # Initialize at application startup
    await init_redis(settings)

    redis = get_redis()
    await redis.set_with_tenant("acme", "dashboard:stats", snapshot)

    # Cleanup at shutdown
    await close_redis()
"""

from src.infrastructure.cache.redis_client import (
    RedisClient,
    RedisError,
    close_redis,
    get_redis,
    init_redis,
)

__all__ = [
    "RedisClient",
    "RedisError",
    "close_redis",
    "get_redis",
    "init_redis",
]
