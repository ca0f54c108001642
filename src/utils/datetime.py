# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""UTC datetime helpers for dashboard snapshots and timelines.

Rows from the store, cached snapshots and caller-built timeline events all
carry timestamps in different shapes: aware or naive datetimes, plain dates,
or ISO 8601 strings. Everything is normalized to aware UTC datetimes before
comparison, so ordering never mixes naive and aware values.

Usage:
    from src.utils.datetime import coerce_utc, window_start

    created_at = coerce_utc(row["created_at"])
    since = window_start(30)
"""

from datetime import date, datetime, timedelta, timezone


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def utc_today() -> date:
    """Today's date in UTC."""
    return utc_now().date()


def window_start(days: int, today: date | None = None) -> date:
    """First date of a trailing window of ``days`` days ending today.

    Args:
        days: Window length in days.
        today: Reference date; defaults to utc_today().

    Returns:
        ``today - days``.
    """
    return (today or utc_today()) - timedelta(days=days)


def ensure_utc(dt: datetime | None) -> datetime | None:
    """Make a datetime aware UTC.

    Naive values are taken to already be UTC; aware values are converted.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_iso(iso_string: str | None) -> datetime | None:
    """Parse an ISO 8601 string into an aware UTC datetime.

    Date-only strings ("2024-01-02") resolve to midnight UTC and a trailing
    "Z" is accepted.

    Raises:
        ValueError: If the string is not ISO 8601.
    """
    if iso_string is None:
        return None
    return ensure_utc(datetime.fromisoformat(iso_string.replace("Z", "+00:00")))


def format_iso(dt: datetime | None) -> str | None:
    """Format as ISO 8601 in UTC, e.g. "2025-01-02T09:00:00+00:00"."""
    if dt is None:
        return None
    return ensure_utc(dt).isoformat()


def coerce_utc(value: datetime | date | str) -> datetime:
    """Coerce a datetime, date or ISO string into an aware UTC datetime.

    Args:
        value: Value read from a store row or caller payload.

    Returns:
        Timezone-aware UTC datetime.

    Raises:
        TypeError: If the value is of an unsupported type.
        ValueError: If a string value is not ISO 8601.
    """
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if isinstance(value, str):
        return parse_iso(value)
    raise TypeError(f"Cannot interpret {type(value).__name__} as a datetime")


def format_short_date(dt: datetime) -> str:
    """Format a datetime as a short month/day label, e.g. "Jan 2"."""
    return f"{dt.strftime('%b')} {dt.day}"
