# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Dashboard error taxonomy.

Errors are carried as values inside Result objects. Each error states
whether the refresh scheduler may retry it on its next cycle.
"""

from enum import Enum


class DashboardError(Exception):
    """Base exception for dashboard aggregation errors.

    Attributes:
        message: Human-readable error description.
        retryable: Whether the next refresh cycle may succeed.
    """

    retryable: bool = False

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class MissingTenantError(DashboardError):
    """Raised when no school code is available for a tenant-scoped read."""

    def __init__(self, message: str = "No school code") -> None:
        super().__init__(message)


class FetchErrorKind(str, Enum):
    """Failure classes of a single scoped fetch."""

    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"
    TRANSIENT = "transient"


class FetchError(DashboardError):
    """A single collection read failed.

    Attributes:
        kind: Failure class.
        collection: Collection the read targeted.
        original_error: The underlying exception, if any.
    """

    def __init__(
        self,
        kind: FetchErrorKind,
        collection: str,
        message: str,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.collection = collection
        self.original_error = original_error

    @property
    def retryable(self) -> bool:  # type: ignore[override]
        return self.kind is FetchErrorKind.TRANSIENT

    def __str__(self) -> str:
        return f"{self.collection}: {self.kind.value}: {self.message}"


class AggregationError(DashboardError):
    """One or more fan-out branches failed; no snapshot was produced.

    Attributes:
        failures: The failed fetches, in collection order.
    """

    def __init__(self, failures: list[FetchError]) -> None:
        collections = ", ".join(f.collection for f in failures)
        super().__init__(f"Dashboard stats unavailable; failed collections: {collections}")
        self.failures = failures

    @property
    def retryable(self) -> bool:  # type: ignore[override]
        return all(f.retryable for f in self.failures)


class UnknownEnumValueError(DashboardError, ValueError):
    """A timeline event carries a type or status the merger does not know.

    Attributes:
        enum_name: Name of the closed enumeration.
        value: The offending raw value.
    """

    def __init__(self, enum_name: str, value: object) -> None:
        super().__init__(f"Unknown {enum_name}: {value!r}")
        self.enum_name = enum_name
        self.value = value
