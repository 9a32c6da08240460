from __future__ import annotations

import enum
from datetime import date, datetime, timezone
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from attendance_core.db import Base

JSONType = JSON().with_variant(JSONB(), "postgresql")


class AttendanceStatus(str, enum.Enum):
    NOT_CHECKED_IN = "NOT_CHECKED_IN"
    CHECKED_IN = "CHECKED_IN"
    CHECKED_OUT = "CHECKED_OUT"
    ABSENT = "ABSENT"
    ON_LEAVE = "ON_LEAVE"


class AttendanceOperation(str, enum.Enum):
    CHECK_IN = "CHECK_IN"
    CHECK_OUT = "CHECK_OUT"


class AuditOutcome(str, enum.Enum):
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"


class OfficeLocation(Base):
    __tablename__ = "office_locations"
    __table_args__ = (
        CheckConstraint("radius_m >= 10 AND radius_m <= 1000", name="ck_office_locations_radius_m"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    code: Mapped[str] = mapped_column(String(50), nullable=False, unique=True, index=True)
    address: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    radius_m: Mapped[int] = mapped_column(Integer, nullable=False, default=100, server_default=text("100"))
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=text("true"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=lambda: datetime.now(timezone.utc),
    )


class AttendanceDayRecord(Base):
    __tablename__ = "attendance_days"
    __table_args__ = (
        UniqueConstraint("user_id", "day_key", name="uq_attendance_days_user_day"),
        CheckConstraint(
            "check_out_at IS NULL OR check_in_at IS NOT NULL",
            name="ck_attendance_days_check_out_after_check_in",
        ),
        CheckConstraint(
            "working_minutes IS NULL OR working_minutes >= 0",
            name="ck_attendance_days_working_minutes",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    day_key: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    status: Mapped[AttendanceStatus] = mapped_column(
        Enum(AttendanceStatus, name="attendance_day_status"),
        nullable=False,
        default=AttendanceStatus.NOT_CHECKED_IN,
    )
    check_in_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    check_in_lat: Mapped[float | None] = mapped_column(Float, nullable=True)
    check_in_lon: Mapped[float | None] = mapped_column(Float, nullable=True)
    check_in_location_valid: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    check_in_office_location_id: Mapped[int | None] = mapped_column(
        ForeignKey("office_locations.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    check_out_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    check_out_lat: Mapped[float | None] = mapped_column(Float, nullable=True)
    check_out_lon: Mapped[float | None] = mapped_column(Float, nullable=True)
    check_out_location_valid: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    check_out_office_location_id: Mapped[int | None] = mapped_column(
        ForeignKey("office_locations.id", ondelete="SET NULL"),
        nullable=True,
    )
    working_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=lambda: datetime.now(timezone.utc),
    )


class AttendanceAuditLog(Base):
    __tablename__ = "attendance_audit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    ts_utc: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
        index=True,
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    operation: Mapped[AttendanceOperation] = mapped_column(
        Enum(AttendanceOperation, name="attendance_operation"),
        nullable=False,
    )
    outcome: Mapped[AuditOutcome] = mapped_column(
        Enum(AuditOutcome, name="attendance_audit_outcome"),
        nullable=False,
    )
    day_key: Mapped[date | None] = mapped_column(Date, nullable=True)
    attendance_day_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    error_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    location_verdict: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    ip: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(512), nullable=True)
    address: Mapped[str | None] = mapped_column(String(255), nullable=True)
    details: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
