# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for school data store models.

Tests table names, tenant scoping columns and reserved-name mapping.
"""

import pytest

from src.infrastructure.database.models import (
    ActivityLog,
    AttendanceRecord,
    ExamResult,
    Profile,
    SchoolClass,
    Student,
)
from src.infrastructure.database.models.base import Base, CreatedAtMixin, SchoolScopedMixin

ALL_MODELS = [Profile, Student, SchoolClass, AttendanceRecord, ExamResult, ActivityLog]


class TestBase:
    """Test base model functionality."""

    def test_base_inherits_declarative_base(self):
        """Verify Base is a declarative base."""
        assert hasattr(Base, "metadata")
        assert hasattr(Base, "registry")

    def test_mixins_declare_columns(self):
        """Verify mixins provide their columns."""
        assert hasattr(SchoolScopedMixin, "school_code")
        assert hasattr(CreatedAtMixin, "created_at")


class TestSchoolModels:
    """Test the collections read by the dashboard."""

    @pytest.mark.parametrize(
        ("model", "table"),
        [
            (Profile, "profiles"),
            (Student, "students"),
            (SchoolClass, "classes"),
            (AttendanceRecord, "attendance_records"),
            (ExamResult, "exam_results"),
            (ActivityLog, "activity_logs"),
        ],
    )
    def test_table_names(self, model, table):
        """Verify table names match the store's collection names."""
        assert model.__tablename__ == table

    @pytest.mark.parametrize("model", ALL_MODELS)
    def test_every_table_is_school_scoped(self, model):
        """Verify every collection carries an indexed, required school_code."""
        column = model.__table__.c["school_code"]

        assert not column.nullable
        assert column.index

    def test_activity_metadata_column_name(self):
        """Verify metadata_ maps to the 'metadata' column."""
        assert "metadata" in ActivityLog.__table__.c
        assert ActivityLog.metadata_.property.columns[0].name == "metadata"

    def test_attendance_uses_date_column(self):
        """Verify attendance is windowed on its date column."""
        assert "date" in AttendanceRecord.__table__.c
        assert "created_at" not in AttendanceRecord.__table__.c
