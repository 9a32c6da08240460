"""Per-user, per-day attendance state machine.

``check_in`` and ``check_out`` never raise for business outcomes: they return
an ``AttendanceResult`` whose ``error`` carries the reason. Storage adapters
signal uniqueness races with ``StorageConflictError`` and outages with
``StorageUnavailableError``; both are caught at the write boundary here.
Every attempt, accepted or not, is handed to the audit recorder.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta
from typing import Any, Protocol

from attendance_core.audit import AuditEntry, AuditRecorder
from attendance_core.models import AttendanceOperation, AttendanceStatus, AuditOutcome
from attendance_core.services.day_key import day_key, day_key_range, normalize_ts
from attendance_core.services.geofence import (
    Coordinates,
    LocationVerdict,
    VerdictReason,
    validate_against_zone,
    validate_coordinate_format,
    validate_location,
)
from attendance_core.services.office_locations import OfficeLocationRegistry
from attendance_core.settings import Settings

logger = logging.getLogger("attendance_core.attendance")

LOCKED_STATUSES = frozenset({AttendanceStatus.ABSENT, AttendanceStatus.ON_LEAVE})


class StorageError(Exception):
    pass


class StorageConflictError(StorageError):
    """A write lost a race against the (user_id, day_key) constraint or a status check."""


class StorageUnavailableError(StorageError):
    pass


class AttendanceErrorCode(str, enum.Enum):
    ALREADY_CHECKED_IN = "ALREADY_CHECKED_IN"
    ALREADY_CHECKED_OUT = "ALREADY_CHECKED_OUT"
    NOT_CHECKED_IN_TODAY = "NOT_CHECKED_IN_TODAY"
    NO_CHECKIN_RECORD = "NO_CHECKIN_RECORD"
    INVALID_COORDINATES = "INVALID_COORDINATES"
    LOCATION_REQUIRED = "LOCATION_REQUIRED"
    LOCATION_OUT_OF_RANGE = "LOCATION_OUT_OF_RANGE"
    NO_ACTIVE_OFFICE_ZONES = "NO_ACTIVE_OFFICE_ZONES"
    ATTENDANCE_DAY_LOCKED = "ATTENDANCE_DAY_LOCKED"
    STORAGE_CONFLICT = "STORAGE_CONFLICT"
    STORAGE_UNAVAILABLE = "STORAGE_UNAVAILABLE"


_ERROR_MESSAGES: dict[AttendanceErrorCode, str] = {
    AttendanceErrorCode.ALREADY_CHECKED_IN: "You have already checked in today.",
    AttendanceErrorCode.ALREADY_CHECKED_OUT: "You have already checked out today.",
    AttendanceErrorCode.NOT_CHECKED_IN_TODAY: "You have not checked in today.",
    AttendanceErrorCode.NO_CHECKIN_RECORD: "Check-in data for today was not found.",
    AttendanceErrorCode.INVALID_COORDINATES: "Coordinates are not valid.",
    AttendanceErrorCode.LOCATION_REQUIRED: "Latitude and longitude are required to check in.",
    AttendanceErrorCode.LOCATION_OUT_OF_RANGE: "Location is outside of the registered office radius.",
    AttendanceErrorCode.NO_ACTIVE_OFFICE_ZONES: "No active office location is registered.",
    AttendanceErrorCode.ATTENDANCE_DAY_LOCKED: "Attendance for today is closed (absent or on leave).",
    AttendanceErrorCode.STORAGE_CONFLICT: "Attendance record changed concurrently. Please retry.",
    AttendanceErrorCode.STORAGE_UNAVAILABLE: "Attendance storage is unavailable.",
}


@dataclass(frozen=True, slots=True)
class CheckPoint:
    instant: datetime
    latitude: float | None = None
    longitude: float | None = None
    location_valid: bool | None = None
    office_location_id: int | None = None


@dataclass(frozen=True, slots=True)
class AttendanceDay:
    user_id: str
    day_key: date
    status: AttendanceStatus = AttendanceStatus.NOT_CHECKED_IN
    check_in: CheckPoint | None = None
    check_out: CheckPoint | None = None
    working_minutes: int | None = None
    id: int | None = None

    @property
    def is_valid_location(self) -> bool | None:
        flags = [
            point.location_valid
            for point in (self.check_in, self.check_out)
            if point is not None and point.location_valid is not None
        ]
        if not flags:
            return None
        return all(flags)


class AttendanceStore(Protocol):
    def find(self, user_id: str, key: date) -> AttendanceDay | None: ...

    def create_if_absent(self, day: AttendanceDay) -> AttendanceDay: ...

    def update(self, day: AttendanceDay, *, expected_status: AttendanceStatus) -> AttendanceDay: ...

    def find_range(self, user_id: str, start: date, end: date) -> list[AttendanceDay]: ...


@dataclass(frozen=True, slots=True)
class LocationPolicy:
    require_valid_location: bool
    tolerance_m: float = 0.0

    @classmethod
    def from_settings(cls, settings: Settings) -> LocationPolicy:
        return cls(
            require_valid_location=settings.attendance_location_policy == "strict",
            tolerance_m=float(settings.attendance_location_tolerance_m),
        )


@dataclass(frozen=True, slots=True)
class AttendancePorts:
    store: AttendanceStore
    registry: OfficeLocationRegistry
    audit: AuditRecorder


@dataclass(frozen=True, slots=True)
class AttendanceError:
    code: AttendanceErrorCode
    message: str
    verdict: LocationVerdict | None = None

    @classmethod
    def of(cls, code: AttendanceErrorCode, verdict: LocationVerdict | None = None) -> AttendanceError:
        message = _ERROR_MESSAGES[code]
        if code == AttendanceErrorCode.LOCATION_OUT_OF_RANGE and verdict is not None:
            message = verdict.message
        return cls(code=code, message=message, verdict=verdict)


@dataclass(frozen=True, slots=True)
class AttendanceResult:
    day: AttendanceDay | None = None
    error: AttendanceError | None = None
    verdict: LocationVerdict | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def working_minutes_between(start: datetime, end: datetime) -> int:
    elapsed = normalize_ts(end) - normalize_ts(start)
    return max(0, elapsed // timedelta(minutes=1))


def current_duration(day: AttendanceDay, now: datetime) -> int:
    """Working minutes as any consumer should read them.

    Open days are measured live against ``now``; closed days always report
    the value finalized at check-out.
    """
    if day.status == AttendanceStatus.CHECKED_OUT:
        return day.working_minutes or 0
    if day.status == AttendanceStatus.CHECKED_IN and day.check_in is not None and day.check_out is None:
        return working_minutes_between(day.check_in.instant, now)
    return day.working_minutes or 0


@dataclass(frozen=True, slots=True)
class _Attempt:
    """One check-in or check-out call; ``finish`` logs and audits its outcome."""

    ports: AttendancePorts
    operation: AttendanceOperation
    user_id: str
    instant: datetime
    key: date
    address: str | None = None

    def finish(
        self,
        *,
        day: AttendanceDay | None = None,
        code: AttendanceErrorCode | None = None,
        verdict: LocationVerdict | None = None,
        error: AttendanceError | None = None,
    ) -> AttendanceResult:
        if error is None and code is not None:
            error = AttendanceError.of(code, verdict)

        details: dict[str, Any] = {}
        if day is not None:
            details["status"] = day.status.value
            if day.working_minutes is not None:
                details["working_minutes"] = day.working_minutes

        log_fields = {
            "user_id": self.user_id,
            "day_key": self.key.isoformat(),
            "operation": self.operation.value,
            "error_code": error.code.value if error is not None else None,
            "location_valid": verdict.is_valid if verdict is not None else None,
        }
        if error is None:
            logger.info("attendance_transition_accepted", extra=log_fields)
        else:
            logger.info("attendance_transition_rejected", extra=log_fields)

        self.ports.audit.record(
            AuditEntry(
                user_id=self.user_id,
                operation=self.operation,
                outcome=AuditOutcome.ACCEPTED if error is None else AuditOutcome.REJECTED,
                ts_utc=self.instant,
                day_key=self.key,
                attendance_day_id=day.id if day is not None else None,
                error_code=error.code.value if error is not None else None,
                verdict=verdict,
                address=self.address,
                details=details,
            )
        )
        return AttendanceResult(day=day, error=error, verdict=verdict)


def _evaluate_location(
    ports: AttendancePorts,
    policy: LocationPolicy,
    point: Coordinates,
    *,
    target_office_id: int | None,
) -> tuple[LocationVerdict, AttendanceError | None]:
    if not validate_coordinate_format(point.latitude, point.longitude):
        verdict = LocationVerdict.rejected(VerdictReason.INVALID_COORDINATES)
        return verdict, AttendanceError.of(AttendanceErrorCode.INVALID_COORDINATES, verdict)

    zones = [zone for zone in ports.registry.active_zones() if zone.is_active]
    if not zones:
        verdict = LocationVerdict.rejected(VerdictReason.NO_ACTIVE_OFFICE_ZONES)
    elif target_office_id is not None:
        verdict = validate_against_zone(point, target_office_id, zones, policy.tolerance_m)
    else:
        verdict = validate_location(point, zones, policy.tolerance_m)

    if verdict.is_valid or not policy.require_valid_location:
        return verdict, None
    if verdict.reason == VerdictReason.NO_ACTIVE_OFFICE_ZONES:
        return verdict, AttendanceError.of(AttendanceErrorCode.NO_ACTIVE_OFFICE_ZONES, verdict)
    return verdict, AttendanceError.of(AttendanceErrorCode.LOCATION_OUT_OF_RANGE, verdict)


def _check_point(instant: datetime, point: Coordinates | None, verdict: LocationVerdict | None) -> CheckPoint:
    return CheckPoint(
        instant=instant,
        latitude=point.latitude if point is not None else None,
        longitude=point.longitude if point is not None else None,
        location_valid=verdict.is_valid if verdict is not None else None,
        office_location_id=verdict.nearest_office_id if verdict is not None and verdict.is_valid else None,
    )


def check_in(
    ports: AttendancePorts,
    policy: LocationPolicy,
    *,
    user_id: str,
    instant: datetime,
    coordinates: Coordinates | None = None,
    office_location_id: int | None = None,
    address: str | None = None,
) -> AttendanceResult:
    instant = normalize_ts(instant)
    attempt = _Attempt(ports, AttendanceOperation.CHECK_IN, user_id, instant, day_key(instant), address)

    try:
        existing = ports.store.find(user_id, attempt.key)
    except StorageUnavailableError:
        return attempt.finish(code=AttendanceErrorCode.STORAGE_UNAVAILABLE)

    if existing is not None:
        if existing.check_in is not None:
            return attempt.finish(day=existing, code=AttendanceErrorCode.ALREADY_CHECKED_IN)
        if existing.status in LOCKED_STATUSES:
            return attempt.finish(day=existing, code=AttendanceErrorCode.ATTENDANCE_DAY_LOCKED)

    verdict: LocationVerdict | None = None
    if coordinates is not None:
        try:
            verdict, location_error = _evaluate_location(
                ports,
                policy,
                coordinates,
                target_office_id=office_location_id,
            )
        except StorageUnavailableError:
            return attempt.finish(day=existing, code=AttendanceErrorCode.STORAGE_UNAVAILABLE)
        if location_error is not None:
            return attempt.finish(day=existing, verdict=verdict, error=location_error)
    elif policy.require_valid_location:
        return attempt.finish(day=existing, code=AttendanceErrorCode.LOCATION_REQUIRED)

    check_point = _check_point(instant, coordinates, verdict)
    try:
        if existing is None:
            saved = ports.store.create_if_absent(
                AttendanceDay(
                    user_id=user_id,
                    day_key=attempt.key,
                    status=AttendanceStatus.CHECKED_IN,
                    check_in=check_point,
                )
            )
        else:
            saved = ports.store.update(
                replace(existing, status=AttendanceStatus.CHECKED_IN, check_in=check_point),
                expected_status=existing.status,
            )
    except StorageConflictError:
        return attempt.finish(code=AttendanceErrorCode.ALREADY_CHECKED_IN, verdict=verdict)
    except StorageUnavailableError:
        return attempt.finish(code=AttendanceErrorCode.STORAGE_UNAVAILABLE, verdict=verdict)

    return attempt.finish(day=saved, verdict=verdict)


def check_out(
    ports: AttendancePorts,
    policy: LocationPolicy,
    *,
    user_id: str,
    instant: datetime,
    coordinates: Coordinates | None = None,
    address: str | None = None,
) -> AttendanceResult:
    instant = normalize_ts(instant)
    attempt = _Attempt(ports, AttendanceOperation.CHECK_OUT, user_id, instant, day_key(instant), address)

    try:
        existing = ports.store.find(user_id, attempt.key)
    except StorageUnavailableError:
        return attempt.finish(code=AttendanceErrorCode.STORAGE_UNAVAILABLE)

    if existing is None:
        return attempt.finish(code=AttendanceErrorCode.NOT_CHECKED_IN_TODAY)
    if existing.check_in is None:
        return attempt.finish(day=existing, code=AttendanceErrorCode.NO_CHECKIN_RECORD)
    if existing.check_out is not None:
        return attempt.finish(day=existing, code=AttendanceErrorCode.ALREADY_CHECKED_OUT)
    if existing.status != AttendanceStatus.CHECKED_IN:
        return attempt.finish(day=existing, code=AttendanceErrorCode.ATTENDANCE_DAY_LOCKED)

    verdict: LocationVerdict | None = None
    if coordinates is not None:
        try:
            verdict, location_error = _evaluate_location(
                ports,
                policy,
                coordinates,
                target_office_id=existing.check_in.office_location_id,
            )
        except StorageUnavailableError:
            return attempt.finish(day=existing, code=AttendanceErrorCode.STORAGE_UNAVAILABLE)
        if location_error is not None:
            return attempt.finish(day=existing, verdict=verdict, error=location_error)

    closed = replace(
        existing,
        status=AttendanceStatus.CHECKED_OUT,
        check_out=_check_point(instant, coordinates, verdict),
        working_minutes=working_minutes_between(existing.check_in.instant, instant),
    )
    try:
        saved = ports.store.update(closed, expected_status=AttendanceStatus.CHECKED_IN)
    except StorageConflictError:
        return attempt.finish(day=existing, code=AttendanceErrorCode.STORAGE_CONFLICT, verdict=verdict)
    except StorageUnavailableError:
        return attempt.finish(day=existing, code=AttendanceErrorCode.STORAGE_UNAVAILABLE, verdict=verdict)

    return attempt.finish(day=saved, verdict=verdict)


def list_attendance_days(
    store: AttendanceStore,
    *,
    user_id: str,
    start: date | datetime,
    end: date | datetime,
) -> list[AttendanceDay]:
    start_key, end_key = day_key_range(start, end)
    return store.find_range(user_id, start_key, end_key)
