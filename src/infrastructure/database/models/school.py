# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""School collections read by the dashboard.

Tables: profiles, students, classes, attendance_records, exam_results,
activity_logs. All rows are scoped by school_code.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import JSON, Boolean, Date, DateTime, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from src.infrastructure.database.models.base import (
    Base,
    CreatedAtMixin,
    SchoolScopedMixin,
    UUIDMixin,
)


class Profile(UUIDMixin, SchoolScopedMixin, CreatedAtMixin, Base):
    """User profile. Table: profiles. role is one of admin/teacher/student/parent."""

    __tablename__ = "profiles"

    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(30), nullable=False, index=True)


class Student(UUIDMixin, SchoolScopedMixin, CreatedAtMixin, Base):
    """Student record. Table: students."""

    __tablename__ = "students"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    class_name: Mapped[str | None] = mapped_column(String(100))
    subjects: Mapped[list[str] | None] = mapped_column(JSON)


class SchoolClass(UUIDMixin, SchoolScopedMixin, CreatedAtMixin, Base):
    """Class/section. Table: classes."""

    __tablename__ = "classes"

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class AttendanceRecord(UUIDMixin, SchoolScopedMixin, Base):
    """Daily attendance mark. Table: attendance_records."""

    __tablename__ = "attendance_records"

    student_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)

    __table_args__ = (
        Index("ix_attendance_school_date", "school_code", "date"),
    )


class ExamResult(UUIDMixin, SchoolScopedMixin, CreatedAtMixin, Base):
    """Exam result for one student. Table: exam_results."""

    __tablename__ = "exam_results"

    student_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    exam_name: Mapped[str] = mapped_column(String(255), nullable=False)
    percentage: Mapped[Decimal | None] = mapped_column(Numeric(5, 2))
    grade: Mapped[str | None] = mapped_column(String(10))


class ActivityLog(UUIDMixin, SchoolScopedMixin, Base):
    """Append-only activity log entry. Table: activity_logs."""

    __tablename__ = "activity_logs"

    action: Mapped[str] = mapped_column(String(100), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[str | None] = mapped_column(String(36))
    user_id: Mapped[str | None] = mapped_column(String(36))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    # "metadata" is reserved on declarative classes
    metadata_: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSON)

    __table_args__ = (
        Index("ix_activity_school_created", "school_code", "created_at"),
    )
