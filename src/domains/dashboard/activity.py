# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Recent activity for the admin dashboard and activity log listing.

Activity log entries are append-only and owned by the data store; this
module only reads bounded windows of them, newest first. Entries with the
same timestamp are ordered by id, descending, so repeated reads agree.
"""

import asyncio
import logging
import re
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any

from src.domains.dashboard.errors import MissingTenantError
from src.domains.dashboard.fetcher import Collection, QueryFilters, TenantScopedFetcher
from src.domains.dashboard.result import Result
from src.utils.datetime import coerce_utc, format_iso

logger = logging.getLogger(__name__)

ACTIVITY_COLUMNS = ("id", "user_id", "action", "entity_type", "created_at", "metadata")
ACTOR_COLUMNS = ("user_id", "name")
UNKNOWN_ACTOR = "Unknown User"

_WORD_START = re.compile(r"\b\w", re.ASCII)


def format_action(action: str) -> str:
    """Human label for an action code.

    Underscores become spaces and every word start is capitalised, e.g.
    "user_created" -> "User Created", "re_enrolled-by" -> "Re Enrolled-By".
    """
    return _WORD_START.sub(lambda m: m.group().upper(), action.replace("_", " "))


@dataclass(frozen=True)
class ActivityEntry:
    """One activity log entry.

    Attributes:
        id: Entry identifier.
        action: Action code, e.g. "student_enrolled".
        entity_type: Kind of entity acted upon.
        created_at: When the action happened (UTC).
        metadata: Free-form details recorded with the action.
        user_id: User who performed the action, if recorded.
        actor_name: Profile name of that user, when resolved.
    """

    id: str
    action: str
    entity_type: str
    created_at: datetime
    metadata: dict[str, Any] | None = field(default=None, compare=False)
    user_id: str | None = None
    actor_name: str | None = field(default=None, compare=False)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "ActivityEntry":
        """Build an entry from a store row."""
        user_id = row.get("user_id")
        return cls(
            id=str(row["id"]),
            action=row["action"],
            entity_type=row["entity_type"],
            created_at=coerce_utc(row["created_at"]),
            metadata=row.get("metadata"),
            user_id=str(user_id) if user_id is not None else None,
            actor_name=row.get("actor_name"),
        )

    @property
    def label(self) -> str:
        return format_action(self.action)

    @property
    def actor_label(self) -> str:
        return self.actor_name or UNKNOWN_ACTOR

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API response."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "actor_name": self.actor_name,
            "action": self.action,
            "entity_type": self.entity_type,
            "created_at": format_iso(self.created_at),
            "metadata": self.metadata,
        }

    def matches(self, needle: str) -> bool:
        """Case-insensitive match on the action code, its label or the actor name."""
        needle = needle.lower()
        return (
            needle in self.action.lower()
            or needle in self.label.lower()
            or (self.actor_name is not None and needle in self.actor_name.lower())
        )


def sort_recent_first(entries: list[ActivityEntry]) -> list[ActivityEntry]:
    """Order by created_at descending, then id descending."""
    return sorted(entries, key=lambda e: (e.created_at, e.id), reverse=True)


class ActivityFeed:
    """Reads bounded windows of a school's activity log.

    Attributes:
        default_limit: Window size for recent().
        browse_limit: Window size for browse().
    """

    def __init__(
        self,
        fetcher: TenantScopedFetcher,
        default_limit: int = 5,
        browse_limit: int = 100,
    ) -> None:
        self._fetcher = fetcher
        self.default_limit = default_limit
        self.browse_limit = browse_limit

    async def recent(
        self,
        tenant_code: str | None,
        limit: int | None = None,
    ) -> Result[list[ActivityEntry]]:
        """Get the most recent activity entries for a school.

        Args:
            tenant_code: School code.
            limit: Maximum number of entries; defaults to default_limit.

        Returns:
            Result with at most ``limit`` entries, newest first. An empty
            log yields an empty list.

        Raises:
            ValueError: If limit is less than 1.
        """
        limit = self.default_limit if limit is None else limit
        _check_limit(limit)
        if not tenant_code:
            return Result.failure(MissingTenantError())
        return await self._read(tenant_code, limit)

    async def browse(
        self,
        tenant_code: str | None,
        entity_type: str | None = None,
        search: str | None = None,
        limit: int | None = None,
    ) -> Result[list[ActivityEntry]]:
        """List activity log entries with their actors, optionally filtered.

        The log window and the school's profiles are read concurrently.
        Entries whose user has no profile keep ``actor_name`` unset and are
        shown as UNKNOWN_ACTOR; a failed profiles read only loses the names.

        Args:
            tenant_code: School code.
            entity_type: Only entries for this entity type.
            search: Case-insensitive substring matched against the action
                code, its human label and the actor name.
            limit: Window read from the store; defaults to browse_limit.

        Returns:
            Result with matching entries, newest first.

        Raises:
            ValueError: If limit is less than 1.
        """
        limit = self.browse_limit if limit is None else limit
        _check_limit(limit)
        if not tenant_code:
            return Result.failure(MissingTenantError())

        logs, actors = await asyncio.gather(
            self._read(
                tenant_code,
                limit,
                equals={"entity_type": entity_type} if entity_type else None,
            ),
            self._actor_names(tenant_code),
        )
        if not logs.ok:
            return logs

        entries = [
            replace(entry, actor_name=actors.get(entry.user_id)) if entry.user_id else entry
            for entry in logs.unwrap()
        ]
        if search:
            entries = [entry for entry in entries if entry.matches(search)]
        return Result.success(entries)

    async def _read(
        self,
        tenant_code: str,
        limit: int,
        equals: dict[str, Any] | None = None,
    ) -> Result[list[ActivityEntry]]:
        filters = QueryFilters(
            equals=equals or {},
            columns=ACTIVITY_COLUMNS,
            order_by=(("created_at", True), ("id", True)),
            limit=limit,
        )
        fetched = await self._fetcher.fetch(Collection.ACTIVITY_LOGS, tenant_code, filters)
        if not fetched.ok:
            return Result.failure(fetched.error)

        entries = sort_recent_first([ActivityEntry.from_row(row) for row in fetched.unwrap().rows])
        logger.debug("Read %d activity entries for %s", len(entries), tenant_code)
        return Result.success(entries[:limit])

    async def _actor_names(self, tenant_code: str) -> dict[str, str]:
        fetched = await self._fetcher.fetch(
            Collection.PROFILES,
            tenant_code,
            QueryFilters(columns=ACTOR_COLUMNS),
        )
        if not fetched.ok:
            logger.warning("Activity actors unavailable for %s: %s", tenant_code, fetched.error)
            return {}
        return {
            str(row["user_id"]): row["name"]
            for row in fetched.unwrap().rows
            if row.get("user_id") is not None
        }


def _check_limit(limit: int) -> None:
    if limit < 1:
        raise ValueError("limit must be at least 1")
