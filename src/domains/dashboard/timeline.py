# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Progress timeline merging and rendering metadata.

Callers build TimelineEvents from domain records (exam results, homework
submissions, attendance streaks, badges, goals) and hand arbitrary batches
to TimelineMerger. The merger is pure: it never performs I/O.

Ordering is by date, most recent first. Python's sort is stable, so events
sharing a date keep their input order and merging is deterministic.

Icon and tone resolution are exhaustive over the closed EventType and
EventStatus enumerations. A value outside them raises UnknownEnumValueError
instead of falling back to a default.

Usage:
    from src.domains.dashboard.timeline import TimelineEvent, TimelineMerger

    merger = TimelineMerger()
    events = [TimelineEvent.from_dict(raw) for raw in payload]
    for entry in merger.render(events):
        print(entry.date_label, entry.icon, entry.event.title, entry.annotations)
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from src.domains.dashboard.errors import UnknownEnumValueError
from src.utils.datetime import coerce_utc, format_iso, format_short_date


class EventType(str, Enum):
    """Kinds of events shown on a progress timeline."""

    EXAM = "exam"
    HOMEWORK = "homework"
    ATTENDANCE = "attendance"
    BADGE = "badge"
    GOAL = "goal"

    @classmethod
    def parse(cls, value: Any) -> "EventType":
        try:
            return cls(value)
        except ValueError:
            raise UnknownEnumValueError("event type", value) from None


class EventStatus(str, Enum):
    """Outcome tone of a timeline event."""

    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"
    INFO = "info"

    @classmethod
    def parse(cls, value: Any) -> "EventStatus":
        try:
            return cls(value)
        except ValueError:
            raise UnknownEnumValueError("event status", value) from None


@dataclass(frozen=True)
class TimelineEvent:
    """Normalized timeline event.

    Attributes:
        id: Event identifier, unique within a batch.
        type: Event kind.
        title: Short headline.
        description: One-line detail.
        date: When the event happened (UTC).
        status: Outcome tone; None renders as info.
        metadata: Optional details; "score" and "grade" are surfaced.
    """

    id: str
    type: EventType
    title: str
    description: str
    date: datetime
    status: EventStatus | None = None
    metadata: Mapping[str, Any] | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "date", coerce_utc(self.date))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TimelineEvent":
        """Build an event from a loosely-typed mapping.

        Raises:
            UnknownEnumValueError: If type or status is not recognised.
            KeyError: If a required field is missing.
            ValueError: If the date is not ISO 8601.
        """
        status = data.get("status")
        return cls(
            id=str(data["id"]),
            type=EventType.parse(data["type"]),
            title=data.get("title", ""),
            description=data.get("description", ""),
            date=data["date"],
            status=EventStatus.parse(status) if status is not None else None,
            metadata=data.get("metadata"),
        )

    @property
    def effective_status(self) -> EventStatus:
        return EventStatus.INFO if self.status is None else self.status

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API response."""
        return {
            "id": self.id,
            "type": self.type.value,
            "title": self.title,
            "description": self.description,
            "date": format_iso(self.date),
            "status": self.status.value if self.status else None,
            "metadata": dict(self.metadata) if self.metadata is not None else None,
        }


@dataclass(frozen=True)
class RenderedTimelineEntry:
    """Timeline event with its presentation metadata resolved.

    Attributes:
        event: The source event.
        icon: Icon category for the event type.
        tone: Visual category for the event status.
        annotations: Auxiliary badges such as "Score: 85%".
        date_label: Short date, e.g. "Jan 2".
    """

    event: TimelineEvent
    icon: str
    tone: str
    annotations: tuple[str, ...]
    date_label: str

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API response."""
        return {
            **self.event.to_dict(),
            "icon": self.icon,
            "tone": self.tone,
            "annotations": list(self.annotations),
            "date_label": self.date_label,
        }


def icon_for(event_type: EventType) -> str:
    """Icon category for an event type."""
    match event_type:
        case EventType.EXAM:
            return "file-text"
        case EventType.HOMEWORK:
            return "clipboard-check"
        case EventType.ATTENDANCE:
            return "calendar"
        case EventType.BADGE:
            return "award"
        case EventType.GOAL:
            return "trending-up"
        case _:
            raise UnknownEnumValueError("event type", event_type)


def tone_for(status: EventStatus) -> str:
    """Visual category for an event status."""
    match status:
        case EventStatus.SUCCESS:
            return "success"
        case EventStatus.WARNING:
            return "warning"
        case EventStatus.ERROR:
            return "destructive"
        case EventStatus.INFO:
            return "primary"
        case _:
            raise UnknownEnumValueError("event status", status)


def annotations_for(metadata: Mapping[str, Any] | None) -> tuple[str, ...]:
    """Score and grade badges for an event's metadata, in that order."""
    if not metadata:
        return ()
    annotations: list[str] = []
    if metadata.get("score") is not None:
        annotations.append(f"Score: {metadata['score']}%")
    if metadata.get("grade") is not None:
        annotations.append(f"Grade: {metadata['grade']}")
    return tuple(annotations)


class TimelineMerger:
    """Merges heterogeneous timeline events into one ordered sequence."""

    def merge(self, events: Iterable[TimelineEvent]) -> list[TimelineEvent]:
        """Sort events by date, most recent first.

        Events with equal dates keep their relative input order.

        Raises:
            UnknownEnumValueError: If an event's type or status is not a
                member of the closed enumerations.
        """
        batch = list(events)
        for event in batch:
            icon_for(event.type)
            tone_for(event.effective_status)
        return sorted(batch, key=lambda e: e.date, reverse=True)

    def render(self, events: Iterable[TimelineEvent]) -> list[RenderedTimelineEntry]:
        """Merge events and resolve their icon, tone and annotations."""
        return [
            RenderedTimelineEntry(
                event=event,
                icon=icon_for(event.type),
                tone=tone_for(event.effective_status),
                annotations=annotations_for(event.metadata),
                date_label=format_short_date(event.date),
            )
            for event in self.merge(events)
        ]


def merge_timeline(events: Iterable[TimelineEvent]) -> list[TimelineEvent]:
    """Module-level shortcut for TimelineMerger().merge()."""
    return TimelineMerger().merge(events)
