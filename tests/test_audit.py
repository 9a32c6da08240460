from __future__ import annotations

import json
import logging
import unittest
from datetime import date, datetime, timezone

from attendance_core.audit import AuditEntry, AuditRecorder, SqlAuditSink
from attendance_core.logging_utils import JsonFormatter
from attendance_core.models import AttendanceAuditLog, AttendanceOperation, AuditOutcome
from attendance_core.services.geofence import LocationVerdict, VerdictReason


class _FakeAuditDB:
    def __init__(self, *, fail_commit: bool = False) -> None:
        self.added: list[object] = []
        self.committed = False
        self.rolled_back = False
        self._fail_commit = fail_commit

    def add(self, obj: object) -> None:
        self.added.append(obj)

    def commit(self) -> None:
        if self._fail_commit:
            raise RuntimeError("disk full")
        self.committed = True

    def rollback(self) -> None:
        self.rolled_back = True


def _entry(**overrides) -> AuditEntry:  # type: ignore[no-untyped-def]
    values = {
        "user_id": "u1",
        "operation": AttendanceOperation.CHECK_IN,
        "outcome": AuditOutcome.REJECTED,
        "ts_utc": datetime(2026, 3, 9, 9, 0, tzinfo=timezone.utc),
        "day_key": date(2026, 3, 9),
        "error_code": "LOCATION_OUT_OF_RANGE",
        "verdict": LocationVerdict(
            is_valid=False,
            nearest_office_id=1,
            nearest_office_name="Head Office",
            nearest_office_code="HQ",
            distance_m=250.5,
            allowed_radius_m=100.0,
            reason=VerdictReason.OUT_OF_RANGE,
        ),
    }
    values.update(overrides)
    return AuditEntry(**values)


class SqlAuditSinkTests(unittest.TestCase):
    def test_append_persists_row(self) -> None:
        db = _FakeAuditDB()
        SqlAuditSink(db).append(_entry())  # type: ignore[arg-type]

        self.assertTrue(db.committed)
        row = db.added[0]
        self.assertIsInstance(row, AttendanceAuditLog)
        assert isinstance(row, AttendanceAuditLog)
        self.assertEqual(row.user_id, "u1")
        self.assertEqual(row.outcome, AuditOutcome.REJECTED)
        self.assertEqual(row.error_code, "LOCATION_OUT_OF_RANGE")
        assert row.location_verdict is not None
        self.assertEqual(row.location_verdict["reason"], "OUT_OF_RANGE")
        self.assertEqual(row.location_verdict["distance_m"], 250.5)

    def test_failed_commit_rolls_back_and_raises(self) -> None:
        db = _FakeAuditDB(fail_commit=True)
        with self.assertRaises(RuntimeError):
            SqlAuditSink(db).append(_entry())  # type: ignore[arg-type]
        self.assertTrue(db.rolled_back)


class AuditRecorderTests(unittest.TestCase):
    def test_successful_record_is_logged(self) -> None:
        db = _FakeAuditDB()
        recorder = AuditRecorder(SqlAuditSink(db), request_id="req-42")  # type: ignore[arg-type]

        with self.assertLogs("attendance_core.audit", level="INFO") as captured:
            recorder.record(_entry(outcome=AuditOutcome.ACCEPTED, error_code=None))

        self.assertTrue(db.committed)
        record = captured.records[0]
        self.assertEqual(record.getMessage(), "attendance_audit_event")
        self.assertEqual(getattr(record, "request_id"), "req-42")
        self.assertEqual(getattr(record, "outcome"), "ACCEPTED")

    def test_request_context_is_attached_to_entries(self) -> None:
        db = _FakeAuditDB()
        recorder = AuditRecorder(  # type: ignore[arg-type]
            SqlAuditSink(db),
            request_id="req-7",
            ip="203.0.113.9",
            user_agent="pf-mobile/2.1",
        )

        with self.assertLogs("attendance_core.audit", level="INFO") as captured:
            recorder.record(_entry(address="Maslak Mah. 3"))

        row = db.added[0]
        assert isinstance(row, AttendanceAuditLog)
        self.assertEqual(row.ip, "203.0.113.9")
        self.assertEqual(row.user_agent, "pf-mobile/2.1")
        self.assertEqual(row.address, "Maslak Mah. 3")
        self.assertEqual(getattr(captured.records[0], "ip"), "203.0.113.9")

    def test_sink_failure_is_swallowed_and_logged(self) -> None:
        db = _FakeAuditDB(fail_commit=True)
        recorder = AuditRecorder(SqlAuditSink(db))  # type: ignore[arg-type]

        with self.assertLogs("attendance_core.audit", level="ERROR") as captured:
            recorder.record(_entry())

        record = captured.records[0]
        self.assertEqual(record.getMessage(), "attendance_audit_write_failed")
        self.assertEqual(getattr(record, "error_code"), "LOCATION_OUT_OF_RANGE")
        self.assertIsNotNone(record.exc_info)

    def test_audit_log_line_is_json(self) -> None:
        record = logging.LogRecord(
            name="attendance_core.audit",
            level=logging.INFO,
            pathname=__file__,
            lineno=1,
            msg="attendance_audit_event",
            args=(),
            exc_info=None,
        )
        for key, value in _entry().log_fields().items():
            setattr(record, key, value)

        payload = json.loads(JsonFormatter().format(record))

        self.assertEqual(payload["message"], "attendance_audit_event")
        self.assertEqual(payload["logger"], "attendance_core.audit")
        self.assertEqual(payload["day_key"], "2026-03-09")
        self.assertEqual(payload["location_verdict"]["nearest_office_code"], "HQ")
        self.assertNotIn("msg", payload)

    def test_log_line_carries_service_and_serializes_enums(self) -> None:
        record = logging.LogRecord(
            name="attendance_core.attendance",
            level=logging.INFO,
            pathname=__file__,
            lineno=1,
            msg="attendance_transition_accepted",
            args=(),
            exc_info=None,
        )
        record.operation = AttendanceOperation.CHECK_OUT
        record.day_key = date(2026, 3, 9)

        payload = json.loads(JsonFormatter(service="AttendancePortal").format(record))

        self.assertEqual(payload["service"], "AttendancePortal")
        self.assertEqual(payload["operation"], "CHECK_OUT")
        self.assertEqual(payload["day_key"], "2026-03-09")
        self.assertNotIn("levelno", payload)


if __name__ == "__main__":
    unittest.main()
