# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Result values for dashboard operations."""

from dataclasses import dataclass
from typing import Generic, TypeVar

from src.domains.dashboard.errors import DashboardError

T = TypeVar("T")


@dataclass(frozen=True)
class Result(Generic[T]):
    """Outcome of a dashboard operation: a value or an error, never both.

    Attributes:
        value: The produced value when successful.
        error: The failure when unsuccessful.
    """

    value: T | None = None
    error: DashboardError | None = None

    def __post_init__(self) -> None:
        if self.value is not None and self.error is not None:
            raise ValueError("Result cannot carry both a value and an error")

    @classmethod
    def success(cls, value: T) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: DashboardError) -> "Result[T]":
        return cls(error=error)

    @property
    def ok(self) -> bool:
        """Whether the operation succeeded."""
        return self.error is None

    def unwrap(self) -> T:
        """Return the value or raise the carried error.

        Raises:
            DashboardError: The carried error.
        """
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]
