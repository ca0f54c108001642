# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""SQLAlchemy models for the school data store."""

from src.infrastructure.database.models.base import Base
from src.infrastructure.database.models.school import (
    ActivityLog,
    AttendanceRecord,
    ExamResult,
    Profile,
    SchoolClass,
    Student,
)

__all__ = [
    "Base",
    "Profile",
    "Student",
    "SchoolClass",
    "AttendanceRecord",
    "ExamResult",
    "ActivityLog",
]
