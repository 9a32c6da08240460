from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import Any, Protocol

from sqlalchemy.orm import Session

from attendance_core.models import AttendanceAuditLog, AttendanceOperation, AuditOutcome
from attendance_core.services.geofence import LocationVerdict

logger = logging.getLogger("attendance_core.audit")


@dataclass(frozen=True, slots=True)
class AuditEntry:
    user_id: str
    operation: AttendanceOperation
    outcome: AuditOutcome
    ts_utc: datetime
    day_key: date | None = None
    attendance_day_id: int | None = None
    error_code: str | None = None
    verdict: LocationVerdict | None = None
    ip: str | None = None
    user_agent: str | None = None
    address: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    def log_fields(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "operation": self.operation.value,
            "outcome": self.outcome.value,
            "day_key": self.day_key.isoformat() if self.day_key is not None else None,
            "attendance_day_id": self.attendance_day_id,
            "error_code": self.error_code,
            "location_verdict": self.verdict.to_dict() if self.verdict is not None else None,
            "ip": self.ip,
            "user_agent": self.user_agent,
            "address": self.address,
        }


class AuditSink(Protocol):
    def append(self, entry: AuditEntry) -> None: ...


class SqlAuditSink:
    def __init__(self, db: Session) -> None:
        self._db = db

    def append(self, entry: AuditEntry) -> None:
        row = AttendanceAuditLog(
            ts_utc=entry.ts_utc,
            user_id=entry.user_id,
            operation=entry.operation,
            outcome=entry.outcome,
            day_key=entry.day_key,
            attendance_day_id=entry.attendance_day_id,
            error_code=entry.error_code,
            location_verdict=entry.verdict.to_dict() if entry.verdict is not None else None,
            ip=entry.ip,
            user_agent=entry.user_agent,
            address=entry.address,
            details=dict(entry.details),
        )
        self._db.add(row)
        try:
            self._db.commit()
        except Exception:
            self._db.rollback()
            raise


class AuditRecorder:
    """Append-only recorder; a failing sink never fails the caller."""

    def __init__(
        self,
        sink: AuditSink,
        *,
        request_id: str | None = None,
        ip: str | None = None,
        user_agent: str | None = None,
    ) -> None:
        self._sink = sink
        self._request_id = request_id
        self._ip = ip
        self._user_agent = user_agent

    def record(self, entry: AuditEntry) -> None:
        entry = replace(
            entry,
            ip=entry.ip or self._ip,
            user_agent=entry.user_agent or self._user_agent,
        )
        try:
            self._sink.append(entry)
        except Exception:
            logger.exception(
                "attendance_audit_write_failed",
                extra={"request_id": self._request_id, **entry.log_fields()},
            )
            return

        logger.info(
            "attendance_audit_event",
            extra={"request_id": self._request_id, **entry.log_fields(), "details": dict(entry.details)},
        )
