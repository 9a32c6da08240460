from datetime import date, datetime

from fastapi import APIRouter, Depends, Query, Request

from attendance_core.dependencies import get_attendance_ports, get_clock, get_location_policy
from attendance_core.errors import ApiError, api_error_from_attendance
from attendance_core.schemas import (
    AttendanceActionResponse,
    AttendanceDayRead,
    AttendanceHistoryResponse,
    AttendanceTodayResponse,
    CheckInRequest,
    CheckOutRequest,
    CheckPointRead,
    LocationVerdictRead,
)
from attendance_core.security import require_user
from attendance_core.services.attendance import (
    AttendanceDay,
    AttendancePorts,
    AttendanceResult,
    CheckPoint,
    LocationPolicy,
    StorageUnavailableError,
    check_in,
    check_out,
    current_duration,
    list_attendance_days,
)
from attendance_core.services.clock import Clock
from attendance_core.services.day_key import day_key
from attendance_core.services.geofence import Coordinates, LocationVerdict

router = APIRouter(tags=["attendance"])
MAX_HISTORY_DAYS = 366


def _coordinates(payload: CheckOutRequest) -> Coordinates | None:
    if payload.latitude is None or payload.longitude is None:
        return None
    return Coordinates(latitude=payload.latitude, longitude=payload.longitude)


def _check_point_read(point: CheckPoint | None) -> CheckPointRead | None:
    if point is None:
        return None
    return CheckPointRead(
        instant=point.instant,
        latitude=point.latitude,
        longitude=point.longitude,
        location_valid=point.location_valid,
        office_location_id=point.office_location_id,
    )


def verdict_read(verdict: LocationVerdict | None) -> LocationVerdictRead | None:
    if verdict is None:
        return None
    return LocationVerdictRead(**verdict.to_dict(), message=verdict.message)


def day_read(day: AttendanceDay, now: datetime) -> AttendanceDayRead:
    return AttendanceDayRead(
        id=day.id,
        user_id=day.user_id,
        day_key=day.day_key,
        status=day.status,
        check_in=_check_point_read(day.check_in),
        check_out=_check_point_read(day.check_out),
        working_minutes=day.working_minutes,
        current_working_minutes=current_duration(day, now),
        is_valid_location=day.is_valid_location,
    )


def _finish_action(request: Request, result: AttendanceResult, now: datetime) -> AttendanceActionResponse:
    request.state.location_valid = result.verdict.is_valid if result.verdict is not None else None
    if result.error is not None:
        request.state.error_code = result.error.code.value
        raise api_error_from_attendance(result.error)

    assert result.day is not None
    request.state.attendance_day_id = result.day.id
    return AttendanceActionResponse(
        day=day_read(result.day, now),
        location_verdict=verdict_read(result.verdict),
    )


@router.post("/api/attendance/check-in", response_model=AttendanceActionResponse)
def attendance_check_in(
    payload: CheckInRequest,
    request: Request,
    user_id: str = Depends(require_user),
    ports: AttendancePorts = Depends(get_attendance_ports),
    policy: LocationPolicy = Depends(get_location_policy),
    clock: Clock = Depends(get_clock),
) -> AttendanceActionResponse:
    now = clock.now()
    result = check_in(
        ports,
        policy,
        user_id=user_id,
        instant=now,
        coordinates=_coordinates(payload),
        office_location_id=payload.office_location_id,
        address=payload.address,
    )
    return _finish_action(request, result, now)


@router.post("/api/attendance/check-out", response_model=AttendanceActionResponse)
def attendance_check_out(
    payload: CheckOutRequest,
    request: Request,
    user_id: str = Depends(require_user),
    ports: AttendancePorts = Depends(get_attendance_ports),
    policy: LocationPolicy = Depends(get_location_policy),
    clock: Clock = Depends(get_clock),
) -> AttendanceActionResponse:
    now = clock.now()
    result = check_out(
        ports,
        policy,
        user_id=user_id,
        instant=now,
        coordinates=_coordinates(payload),
        address=payload.address,
    )
    return _finish_action(request, result, now)


@router.get("/api/attendance/today", response_model=AttendanceTodayResponse)
def attendance_today(
    user_id: str = Depends(require_user),
    ports: AttendancePorts = Depends(get_attendance_ports),
    clock: Clock = Depends(get_clock),
) -> AttendanceTodayResponse:
    now = clock.now()
    today = day_key(now)
    try:
        day = ports.store.find(user_id, today)
    except StorageUnavailableError as exc:
        raise ApiError(status_code=503, code="STORAGE_UNAVAILABLE", message="Attendance storage is unavailable.") from exc

    return AttendanceTodayResponse(
        day_key=today,
        day=day_read(day, now) if day is not None else None,
    )


@router.get("/api/attendance/history", response_model=AttendanceHistoryResponse)
def attendance_history(
    start: date = Query(...),
    end: date = Query(...),
    user_id: str = Depends(require_user),
    ports: AttendancePorts = Depends(get_attendance_ports),
    clock: Clock = Depends(get_clock),
) -> AttendanceHistoryResponse:
    if end < start:
        raise ApiError(status_code=422, code="INVALID_DATE_RANGE", message="end must not precede start.")
    if (end - start).days + 1 > MAX_HISTORY_DAYS:
        raise ApiError(
            status_code=422,
            code="INVALID_DATE_RANGE",
            message=f"Date range must not exceed {MAX_HISTORY_DAYS} days.",
        )

    try:
        days = list_attendance_days(ports.store, user_id=user_id, start=start, end=end)
    except StorageUnavailableError as exc:
        raise ApiError(status_code=503, code="STORAGE_UNAVAILABLE", message="Attendance storage is unavailable.") from exc

    now = clock.now()
    return AttendanceHistoryResponse(
        start=start,
        end=end,
        days=[day_read(day, now) for day in days],
    )
