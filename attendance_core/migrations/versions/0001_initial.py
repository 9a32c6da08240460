"""Initial attendance schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-18 00:00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

attendance_day_status = postgresql.ENUM(
    "NOT_CHECKED_IN",
    "CHECKED_IN",
    "CHECKED_OUT",
    "ABSENT",
    "ON_LEAVE",
    name="attendance_day_status",
    create_type=False,
)
attendance_operation = postgresql.ENUM(
    "CHECK_IN",
    "CHECK_OUT",
    name="attendance_operation",
    create_type=False,
)
attendance_audit_outcome = postgresql.ENUM(
    "ACCEPTED",
    "REJECTED",
    name="attendance_audit_outcome",
    create_type=False,
)


def upgrade() -> None:
    bind = op.get_bind()
    attendance_day_status.create(bind, checkfirst=True)
    attendance_operation.create(bind, checkfirst=True)
    attendance_audit_outcome.create(bind, checkfirst=True)

    op.create_table(
        "office_locations",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("code", sa.String(length=50), nullable=False),
        sa.Column("address", sa.String(length=1000), nullable=True),
        sa.Column("latitude", sa.Float(), nullable=False),
        sa.Column("longitude", sa.Float(), nullable=False),
        sa.Column("radius_m", sa.Integer(), nullable=False, server_default=sa.text("100")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.UniqueConstraint("name", name="uq_office_locations_name"),
        sa.UniqueConstraint("code", name="uq_office_locations_code"),
        sa.CheckConstraint("radius_m >= 10 AND radius_m <= 1000", name="ck_office_locations_radius_m"),
    )
    op.create_index("ix_office_locations_code", "office_locations", ["code"], unique=False)
    op.create_index(
        "ix_office_locations_active",
        "office_locations",
        ["is_active"],
        unique=False,
        postgresql_where=sa.text("is_active = true"),
    )

    op.create_table(
        "attendance_days",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("day_key", sa.Date(), nullable=False),
        sa.Column(
            "status",
            attendance_day_status,
            nullable=False,
            server_default=sa.text("'NOT_CHECKED_IN'"),
        ),
        sa.Column("check_in_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("check_in_lat", sa.Float(), nullable=True),
        sa.Column("check_in_lon", sa.Float(), nullable=True),
        sa.Column("check_in_location_valid", sa.Boolean(), nullable=True),
        sa.Column("check_in_office_location_id", sa.Integer(), nullable=True),
        sa.Column("check_out_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("check_out_lat", sa.Float(), nullable=True),
        sa.Column("check_out_lon", sa.Float(), nullable=True),
        sa.Column("check_out_location_valid", sa.Boolean(), nullable=True),
        sa.Column("check_out_office_location_id", sa.Integer(), nullable=True),
        sa.Column("working_minutes", sa.Integer(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.ForeignKeyConstraint(["check_in_office_location_id"], ["office_locations.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["check_out_office_location_id"], ["office_locations.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("user_id", "day_key", name="uq_attendance_days_user_day"),
        sa.CheckConstraint(
            "check_out_at IS NULL OR check_in_at IS NOT NULL",
            name="ck_attendance_days_check_out_after_check_in",
        ),
        sa.CheckConstraint(
            "working_minutes IS NULL OR working_minutes >= 0",
            name="ck_attendance_days_working_minutes",
        ),
    )
    op.create_index("ix_attendance_days_user_id", "attendance_days", ["user_id"], unique=False)
    op.create_index("ix_attendance_days_day_key", "attendance_days", ["day_key"], unique=False)
    op.create_index(
        "ix_attendance_days_check_in_office_location_id",
        "attendance_days",
        ["check_in_office_location_id"],
        unique=False,
    )

    op.create_table(
        "attendance_audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column(
            "ts_utc",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("operation", attendance_operation, nullable=False),
        sa.Column("outcome", attendance_audit_outcome, nullable=False),
        sa.Column("day_key", sa.Date(), nullable=True),
        sa.Column("attendance_day_id", sa.Integer(), nullable=True),
        sa.Column("error_code", sa.String(length=64), nullable=True),
        sa.Column("location_verdict", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("ip", sa.String(length=64), nullable=True),
        sa.Column("user_agent", sa.String(length=512), nullable=True),
        sa.Column("address", sa.String(length=255), nullable=True),
        sa.Column(
            "details",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
    )
    op.create_index("ix_attendance_audit_logs_ts_utc", "attendance_audit_logs", ["ts_utc"], unique=False)
    op.create_index("ix_attendance_audit_logs_user_id", "attendance_audit_logs", ["user_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_attendance_audit_logs_user_id", table_name="attendance_audit_logs")
    op.drop_index("ix_attendance_audit_logs_ts_utc", table_name="attendance_audit_logs")
    op.drop_table("attendance_audit_logs")

    op.drop_index("ix_attendance_days_check_in_office_location_id", table_name="attendance_days")
    op.drop_index("ix_attendance_days_day_key", table_name="attendance_days")
    op.drop_index("ix_attendance_days_user_id", table_name="attendance_days")
    op.drop_table("attendance_days")

    op.drop_index("ix_office_locations_active", table_name="office_locations")
    op.drop_index("ix_office_locations_code", table_name="office_locations")
    op.drop_table("office_locations")

    bind = op.get_bind()
    attendance_audit_outcome.drop(bind, checkfirst=True)
    attendance_operation.drop(bind, checkfirst=True)
    attendance_day_status.drop(bind, checkfirst=True)
