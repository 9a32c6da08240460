from __future__ import annotations

from dataclasses import replace
from datetime import date
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from attendance_core.models import AttendanceDayRecord, AttendanceStatus, OfficeLocation
from attendance_core.services.attendance import (
    AttendanceDay,
    CheckPoint,
    StorageConflictError,
    StorageUnavailableError,
)
from attendance_core.services.day_key import normalize_ts
from attendance_core.services.geofence import OfficeZone


def _check_point_values(prefix: str, point: CheckPoint | None) -> dict[str, Any]:
    if point is None:
        return {
            f"{prefix}_at": None,
            f"{prefix}_lat": None,
            f"{prefix}_lon": None,
            f"{prefix}_location_valid": None,
            f"{prefix}_office_location_id": None,
        }
    return {
        f"{prefix}_at": normalize_ts(point.instant),
        f"{prefix}_lat": point.latitude,
        f"{prefix}_lon": point.longitude,
        f"{prefix}_location_valid": point.location_valid,
        f"{prefix}_office_location_id": point.office_location_id,
    }


def _record_values(day: AttendanceDay) -> dict[str, Any]:
    values: dict[str, Any] = {
        "status": day.status,
        "working_minutes": day.working_minutes,
    }
    values.update(_check_point_values("check_in", day.check_in))
    values.update(_check_point_values("check_out", day.check_out))
    return values


def _to_domain(row: AttendanceDayRecord) -> AttendanceDay:
    check_in = None
    if row.check_in_at is not None:
        check_in = CheckPoint(
            instant=normalize_ts(row.check_in_at),
            latitude=row.check_in_lat,
            longitude=row.check_in_lon,
            location_valid=row.check_in_location_valid,
            office_location_id=row.check_in_office_location_id,
        )
    check_out = None
    if row.check_out_at is not None:
        check_out = CheckPoint(
            instant=normalize_ts(row.check_out_at),
            latitude=row.check_out_lat,
            longitude=row.check_out_lon,
            location_valid=row.check_out_location_valid,
            office_location_id=row.check_out_office_location_id,
        )
    return AttendanceDay(
        id=row.id,
        user_id=row.user_id,
        day_key=row.day_key,
        status=row.status,
        check_in=check_in,
        check_out=check_out,
        working_minutes=row.working_minutes,
    )


class SqlAttendanceStore:
    """Attendance days backed by the ``attendance_days`` table.

    The ``(user_id, day_key)`` unique constraint is the only arbiter between
    concurrent creators; the loser sees ``StorageConflictError``. Updates are
    conditional on the status the caller read, so a stale writer conflicts
    instead of overwriting.
    """

    def __init__(self, db: Session) -> None:
        self._db = db

    def find(self, user_id: str, key: date) -> AttendanceDay | None:
        try:
            # update() bypasses the identity map, so always reload the row
            row = self._db.scalar(
                select(AttendanceDayRecord)
                .where(
                    AttendanceDayRecord.user_id == user_id,
                    AttendanceDayRecord.day_key == key,
                )
                .execution_options(populate_existing=True)
            )
        except SQLAlchemyError as exc:
            self._db.rollback()
            raise StorageUnavailableError(str(exc)) from exc
        return _to_domain(row) if row is not None else None

    def create_if_absent(self, day: AttendanceDay) -> AttendanceDay:
        row = AttendanceDayRecord(user_id=day.user_id, day_key=day.day_key, **_record_values(day))
        self._db.add(row)
        try:
            self._db.flush()
            row_id = row.id
            self._db.commit()
        except IntegrityError as exc:
            self._db.rollback()
            raise StorageConflictError(
                f"Attendance day already exists for user_id={day.user_id} day_key={day.day_key}"
            ) from exc
        except SQLAlchemyError as exc:
            self._db.rollback()
            raise StorageUnavailableError(str(exc)) from exc

        # committed; the stored values are exactly the ones written
        return replace(day, id=row_id)

    def update(self, day: AttendanceDay, *, expected_status: AttendanceStatus) -> AttendanceDay:
        stmt = (
            update(AttendanceDayRecord)
            .where(
                AttendanceDayRecord.user_id == day.user_id,
                AttendanceDayRecord.day_key == day.day_key,
                AttendanceDayRecord.status == expected_status,
            )
            .values(**_record_values(day))
            .execution_options(synchronize_session=False)
        )
        try:
            result = self._db.execute(stmt)
            if result.rowcount != 1:
                self._db.rollback()
                raise StorageConflictError(
                    f"Attendance day for user_id={day.user_id} day_key={day.day_key} "
                    f"is no longer {expected_status.value}"
                )
            self._db.commit()
        except StorageConflictError:
            raise
        except SQLAlchemyError as exc:
            self._db.rollback()
            raise StorageUnavailableError(str(exc)) from exc

        return day

    def find_range(self, user_id: str, start: date, end: date) -> list[AttendanceDay]:
        try:
            rows = list(
                self._db.scalars(
                    select(AttendanceDayRecord)
                    .where(
                        AttendanceDayRecord.user_id == user_id,
                        AttendanceDayRecord.day_key >= start,
                        AttendanceDayRecord.day_key <= end,
                    )
                    .order_by(AttendanceDayRecord.day_key.asc())
                    .execution_options(populate_existing=True)
                ).all()
            )
        except SQLAlchemyError as exc:
            self._db.rollback()
            raise StorageUnavailableError(str(exc)) from exc
        return [_to_domain(row) for row in rows]


class SqlOfficeLocationRegistry:
    def __init__(self, db: Session) -> None:
        self._db = db

    def active_zones(self) -> list[OfficeZone]:
        try:
            rows = list(
                self._db.scalars(
                    select(OfficeLocation)
                    .where(OfficeLocation.is_active.is_(True))
                    .order_by(OfficeLocation.id.asc())
                ).all()
            )
        except SQLAlchemyError as exc:
            self._db.rollback()
            raise StorageUnavailableError(str(exc)) from exc
        return [
            OfficeZone(
                id=row.id,
                name=row.name,
                code=row.code,
                latitude=row.latitude,
                longitude=row.longitude,
                radius_m=row.radius_m,
                is_active=row.is_active,
            )
            for row in rows
        ]
