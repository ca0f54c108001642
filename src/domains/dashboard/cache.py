# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Snapshot caches keyed by (query name, school code).

A refresh commits its value together with the time it started. A commit
whose start time is older than the stored entry's is refused, so a slow,
superseded refresh can never overwrite newer data.

Two backends share the SnapshotCache interface:
- InMemorySnapshotCache: per-process dict, the default.
- RedisSnapshotCache: shared between processes via RedisClient.
"""

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Generic, NamedTuple, Protocol, TypeVar

from src.infrastructure.cache.redis_client import RedisClient
from src.utils.datetime import format_iso, parse_iso, utc_now

logger = logging.getLogger(__name__)

T = TypeVar("T")

Codec = tuple[Callable[[Any], Any], Callable[[Any], Any]]


class QueryKey(NamedTuple):
    """Identifies one independently refreshed unit of work."""

    query_name: str
    tenant_code: str


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    """A committed snapshot.

    Attributes:
        value: The snapshot value.
        started_at: Clock reading when the producing refresh started.
        committed_at: Wall-clock time of the commit (UTC).
    """

    value: T
    started_at: float
    committed_at: datetime


class SnapshotCache(Protocol[T]):
    """Explicit cache interface used by the refresh scheduler."""

    async def get(self, key: QueryKey) -> CacheEntry[T] | None:
        ...

    async def put(self, key: QueryKey, value: T, started_at: float) -> bool:
        """Commit a value; returns False if a newer refresh already committed."""
        ...

    async def invalidate(self, key: QueryKey) -> None:
        ...


class InMemorySnapshotCache(Generic[T]):
    """Process-local snapshot cache."""

    def __init__(self) -> None:
        self._entries: dict[QueryKey, CacheEntry[T]] = {}

    async def get(self, key: QueryKey) -> CacheEntry[T] | None:
        return self._entries.get(key)

    async def put(self, key: QueryKey, value: T, started_at: float) -> bool:
        current = self._entries.get(key)
        if current is not None and current.started_at > started_at:
            logger.info(
                "Discarding superseded snapshot for %s/%s",
                key.query_name,
                key.tenant_code,
            )
            return False
        self._entries[key] = CacheEntry(value=value, started_at=started_at, committed_at=utc_now())
        return True

    async def invalidate(self, key: QueryKey) -> None:
        self._entries.pop(key, None)

    def __len__(self) -> int:
        return len(self._entries)


class RedisSnapshotCache(Generic[T]):
    """Snapshot cache stored in Redis under tenant-prefixed keys.

    Each query name has its own (encode, decode) codec so the snapshot
    types can be stored as JSON.
    """

    KEY_PREFIX = "dashboard"

    def __init__(
        self,
        redis: RedisClient,
        codecs: Mapping[str, Codec],
        ttl_seconds: int | None = None,
    ) -> None:
        self._redis = redis
        self._codecs = dict(codecs)
        self._ttl_seconds = ttl_seconds

    def _key(self, key: QueryKey) -> str:
        return f"{self.KEY_PREFIX}:{key.query_name}"

    async def get(self, key: QueryKey) -> CacheEntry[T] | None:
        """Read a snapshot; one that no longer decodes is deleted and reported as a miss."""
        stored = await self._redis.get_with_tenant(key.tenant_code, self._key(key))
        if stored is None:
            return None
        try:
            if not isinstance(stored, dict):
                raise TypeError(f"expected a mapping, got {type(stored).__name__}")
            return CacheEntry(
                value=self._codecs[key.query_name][1](stored["value"]),
                started_at=float(stored["started_at"]),
                committed_at=parse_iso(stored["committed_at"]),
            )
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(
                "Dropping undecodable snapshot for %s/%s: %r",
                key.query_name,
                key.tenant_code,
                e,
            )
            await self.invalidate(key)
            return None

    async def put(self, key: QueryKey, value: T, started_at: float) -> bool:
        payload = {
            "value": self._codecs[key.query_name][0](value),
            "started_at": started_at,
            "committed_at": format_iso(utc_now()),
        }
        written = await self._redis.set_if_with_tenant(
            key.tenant_code,
            self._key(key),
            payload,
            should_replace=lambda current: _stored_started_at(current) <= started_at,
            expire_seconds=self._ttl_seconds,
        )
        if not written:
            logger.info(
                "Discarding superseded snapshot for %s/%s",
                key.query_name,
                key.tenant_code,
            )
        return written

    async def invalidate(self, key: QueryKey) -> None:
        await self._redis.delete_with_tenant(key.tenant_code, self._key(key))


def _stored_started_at(stored: Any) -> float:
    if isinstance(stored, dict) and "started_at" in stored:
        return float(stored["started_at"])
    return float("-inf")
