from __future__ import annotations

from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse

from attendance_core.services.attendance import AttendanceError, AttendanceErrorCode


class ApiError(Exception):
    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message
        self.details = details


ATTENDANCE_ERROR_STATUS: dict[AttendanceErrorCode, int] = {
    AttendanceErrorCode.ALREADY_CHECKED_IN: 409,
    AttendanceErrorCode.ALREADY_CHECKED_OUT: 409,
    AttendanceErrorCode.NOT_CHECKED_IN_TODAY: 409,
    AttendanceErrorCode.NO_CHECKIN_RECORD: 409,
    AttendanceErrorCode.ATTENDANCE_DAY_LOCKED: 409,
    AttendanceErrorCode.STORAGE_CONFLICT: 409,
    AttendanceErrorCode.INVALID_COORDINATES: 422,
    AttendanceErrorCode.LOCATION_REQUIRED: 422,
    AttendanceErrorCode.LOCATION_OUT_OF_RANGE: 422,
    AttendanceErrorCode.NO_ACTIVE_OFFICE_ZONES: 422,
    AttendanceErrorCode.STORAGE_UNAVAILABLE: 503,
}


def api_error_from_attendance(error: AttendanceError) -> ApiError:
    details = None
    if error.verdict is not None:
        details = {"location_verdict": error.verdict.to_dict()}
    return ApiError(
        status_code=ATTENDANCE_ERROR_STATUS.get(error.code, 400),
        code=error.code.value,
        message=error.message,
        details=details,
    )


def get_request_id(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        return str(request_id)
    return "unknown"


def error_response(
    request: Request,
    *,
    status_code: int,
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
) -> JSONResponse:
    payload: dict[str, Any] = {
        "error": {
            "code": code,
            "message": message,
            "request_id": get_request_id(request),
        }
    }
    if details:
        payload["error"]["details"] = details
    return JSONResponse(status_code=status_code, content=payload)
