# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""SchoolPulse configuration, read from the environment by pydantic-settings.

Each concern has its own settings class and environment prefix:

    DATABASE_*   hosted school data store
    REDIS_*      shared snapshot cache
    DASHBOARD_*  refresh cadence, timeouts and list limits

Settings nests all three and adds the process-wide environment, debug and
log_level fields. get_settings() loads it once per process.

Example:
    >>> from src.core.config.settings import get_settings
    >>> get_settings().dashboard.refresh_interval_seconds
    30.0
"""

from functools import lru_cache
from typing import Literal, Self

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_DATABASE_PASSWORD = "schoolpulse_password"


class DatabaseSettings(BaseSettings):
    """Connection to the school data store (PostgreSQL via asyncpg).

    Attributes:
        url_override: Complete SQLAlchemy URL; when set the individual
            components are ignored.
        pool_size: Persistent connections kept by the engine.
        max_overflow: Extra connections allowed under load.
    """

    model_config = SettingsConfigDict(env_prefix="DATABASE_", extra="ignore")

    user: str = "schoolpulse"
    password: SecretStr = SecretStr(DEFAULT_DATABASE_PASSWORD)
    host: str = "schoolpulse-db"
    port: int = 5432
    name: str = "schoolpulse"
    url_override: str | None = None
    pool_size: int = 10
    max_overflow: int = 20

    @property
    def url(self) -> str:
        """SQLAlchemy URL for the asyncpg driver."""
        if self.url_override:
            return self.url_override
        secret = self.password.get_secret_value()
        return f"postgresql+asyncpg://{self.user}:{secret}@{self.host}:{self.port}/{self.name}"


class RedisSettings(BaseSettings):
    """Connection to the Redis server holding shared snapshots."""

    model_config = SettingsConfigDict(env_prefix="REDIS_", extra="ignore")

    host: str = "schoolpulse-redis"
    port: int = 6379
    password: SecretStr = SecretStr("schoolpulse_redis_password")
    database: int = 0
    max_connections: int = 50

    @property
    def url(self) -> str:
        secret = self.password.get_secret_value()
        return f"redis://:{secret}@{self.host}:{self.port}/{self.database}"


class DashboardSettings(BaseSettings):
    """Aggregation and refresh behavior of the admin dashboard.

    Attributes:
        refresh_interval_seconds: How often each subscribed query re-fetches.
        fetch_timeout_seconds: Upper bound on one tenant-scoped read.
        activity_limit: Length of the recent-activity list.
        activity_browse_limit: Length of the activity log listing.
        attendance_window_days: Days of attendance counted in the rate.
        cache_backend: "memory" for a single process, "redis" to share
            snapshots between processes.
        cache_ttl_seconds: Expiry of snapshots written to Redis.
    """

    model_config = SettingsConfigDict(env_prefix="DASHBOARD_", extra="ignore")

    refresh_interval_seconds: float = Field(default=30.0, gt=0)
    fetch_timeout_seconds: float = Field(default=10.0, gt=0)
    activity_limit: int = Field(default=5, ge=1)
    activity_browse_limit: int = Field(default=100, ge=1)
    attendance_window_days: int = Field(default=30, ge=1)
    cache_backend: Literal["memory", "redis"] = "memory"
    cache_ttl_seconds: int = Field(default=300, ge=1)


class Settings(BaseSettings):
    """Top-level settings; also read from a local .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "DEBUG"

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    dashboard: DashboardSettings = Field(default_factory=DashboardSettings)

    @model_validator(mode="after")
    def refuse_default_secrets_in_production(self) -> Self:
        """Fail fast when production still uses the shipped database password."""
        if (
            self.environment == "production"
            and self.database.password.get_secret_value() == DEFAULT_DATABASE_PASSWORD
        ):
            raise ValueError(
                "Production needs a real database password; set DATABASE_PASSWORD."
            )
        return self

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Settings for this process, loaded on first call."""
    return Settings()


def clear_settings_cache() -> None:
    """Forget the loaded settings so the next get_settings() re-reads the environment."""
    get_settings.cache_clear()
