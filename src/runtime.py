# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Dashboard runtime lifecycle.

Handles startup and shutdown of everything the dashboard service needs:
- Structured logging
- Database engine
- Redis client (only for the redis snapshot cache backend)

Usage:
    from src.runtime import dashboard_runtime

    async with dashboard_runtime() as service:
        result = await service.get_stats("acme")
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from src.core.config import Settings, get_settings
from src.domains.dashboard.service import DashboardService, build_dashboard_service
from src.infrastructure.cache import RedisClient, RedisError, close_redis, init_redis
from src.infrastructure.database import close_database, init_database
from src.utils.logging import setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def dashboard_runtime(
    settings: Settings | None = None,
) -> AsyncGenerator[DashboardService, None]:
    """Start the dashboard service and tear it down on exit.

    If the redis cache backend is configured but Redis is unreachable,
    the service falls back to the in-memory cache.

    Args:
        settings: Application settings; defaults to get_settings().

    Yields:
        A ready DashboardService.

    Raises:
        DatabaseError: If the database engine cannot be created.
    """
    settings = settings or get_settings()
    setup_logging(settings)
    logger.info("Starting SchoolPulse dashboard (environment=%s)", settings.environment)

    database = await init_database(settings)

    redis: RedisClient | None = None
    if settings.dashboard.cache_backend == "redis":
        try:
            redis = await init_redis(settings)
            logger.info("Redis connection initialized")
        except RedisError as e:
            logger.warning("Failed to initialize Redis, using in-memory cache: %s", e)
            settings = settings.model_copy(
                update={"dashboard": settings.dashboard.model_copy(update={"cache_backend": "memory"})}
            )

    service = build_dashboard_service(settings, database.session, redis)
    try:
        yield service
    finally:
        await service.close()
        await close_redis()
        await close_database()
        logger.info("SchoolPulse dashboard stopped")
