from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine


@dataclass(frozen=True, slots=True)
class SchemaGuardResult:
    ok: bool
    checked_at_utc: datetime
    issues: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "checked_at_utc": self.checked_at_utc.isoformat(),
            "issues": list(self.issues),
            "warnings": list(self.warnings),
            "issue_count": len(self.issues),
            "warning_count": len(self.warnings),
        }


EXPECTED_ALEMBIC_REVISION = "0001_initial"

REQUIRED_TABLE_COLUMNS: dict[str, set[str]] = {
    "office_locations": {"id", "name", "code", "latitude", "longitude", "radius_m", "is_active"},
    "attendance_days": {
        "id",
        "user_id",
        "day_key",
        "status",
        "check_in_at",
        "check_in_location_valid",
        "check_in_office_location_id",
        "check_out_at",
        "check_out_location_valid",
        "working_minutes",
    },
    "attendance_audit_logs": {
        "id",
        "ts_utc",
        "user_id",
        "operation",
        "outcome",
        "error_code",
        "location_verdict",
        "ip",
        "user_agent",
    },
    "alembic_version": {"version_num"},
}

# Concurrent check-ins are only safe while this constraint exists.
REQUIRED_UNIQUE_CONSTRAINTS: dict[str, set[str]] = {
    "attendance_days": {"uq_attendance_days_user_day"},
}

REQUIRED_ENUM_VALUES: dict[str, set[str]] = {
    "attendance_day_status": {"NOT_CHECKED_IN", "CHECKED_IN", "CHECKED_OUT", "ABSENT", "ON_LEAVE"},
    "attendance_operation": {"CHECK_IN", "CHECK_OUT"},
    "attendance_audit_outcome": {"ACCEPTED", "REJECTED"},
}


def verify_runtime_schema(engine: Engine) -> SchemaGuardResult:
    issues: list[str] = []
    warnings: list[str] = []
    checked_at_utc = datetime.now(timezone.utc)
    inspector = inspect(engine)

    for table_name, required_columns in REQUIRED_TABLE_COLUMNS.items():
        try:
            column_names = {str(item.get("name")) for item in inspector.get_columns(table_name)}
        except Exception as exc:  # pragma: no cover - defensive
            issues.append(f"TABLE_UNREADABLE:{table_name}:{exc.__class__.__name__}")
            continue

        missing_columns = sorted(item for item in required_columns if item not in column_names)
        if missing_columns:
            issues.append(f"MISSING_COLUMNS:{table_name}:{','.join(missing_columns)}")

    for table_name, required_names in REQUIRED_UNIQUE_CONSTRAINTS.items():
        try:
            constraint_names = {str(item.get("name")) for item in inspector.get_unique_constraints(table_name)}
        except Exception as exc:  # pragma: no cover - defensive
            warnings.append(f"UNIQUE_CONSTRAINT_INSPECTION_FAILED:{table_name}:{exc.__class__.__name__}")
            continue

        missing_constraints = sorted(item for item in required_names if item not in constraint_names)
        if missing_constraints:
            issues.append(f"MISSING_UNIQUE_CONSTRAINTS:{table_name}:{','.join(missing_constraints)}")

    try:
        enums = inspector.get_enums() or []
    except Exception as exc:  # pragma: no cover - defensive
        warnings.append(f"ENUM_INSPECTION_FAILED:{exc.__class__.__name__}")
        enums = []

    enum_values_by_name: dict[str, set[str]] = {}
    for enum_item in enums:
        name = str(enum_item.get("name") or "").strip()
        if not name:
            continue
        labels = enum_item.get("labels")
        if isinstance(labels, list):
            enum_values_by_name[name] = {str(label) for label in labels}

    for enum_name, required_values in REQUIRED_ENUM_VALUES.items():
        if enum_name not in enum_values_by_name:
            warnings.append(f"ENUM_NOT_FOUND:{enum_name}")
            continue
        missing_values = sorted(item for item in required_values if item not in enum_values_by_name[enum_name])
        if missing_values:
            issues.append(f"MISSING_ENUM_VALUES:{enum_name}:{','.join(missing_values)}")

    try:
        with engine.connect() as connection:
            row = connection.execute(text("SELECT version_num FROM alembic_version LIMIT 1")).scalar()
            version = str(row).strip() if row is not None else ""
            if not version:
                issues.append("ALEMBIC_VERSION_EMPTY")
            elif version != EXPECTED_ALEMBIC_REVISION:
                warnings.append(f"ALEMBIC_VERSION_UNEXPECTED:{version}")
    except Exception as exc:  # pragma: no cover - defensive
        issues.append(f"ALEMBIC_VERSION_CHECK_FAILED:{exc.__class__.__name__}")

    return SchemaGuardResult(
        ok=len(issues) == 0,
        checked_at_utc=checked_at_utc,
        issues=issues,
        warnings=warnings,
    )
