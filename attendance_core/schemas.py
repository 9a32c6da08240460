from datetime import date, datetime

from pydantic import BaseModel, Field, model_validator

from attendance_core.models import AttendanceStatus


class CheckOutRequest(BaseModel):
    latitude: float | None = None
    longitude: float | None = None
    address: str | None = Field(default=None, max_length=255)

    @model_validator(mode="after")
    def _validate_coordinate_pair(self) -> "CheckOutRequest":
        if (self.latitude is None) != (self.longitude is None):
            raise ValueError("Provide both latitude and longitude, or neither.")
        return self


class CheckInRequest(CheckOutRequest):
    office_location_id: int | None = Field(default=None, ge=1)


class LocationVerdictRead(BaseModel):
    is_valid: bool
    nearest_office_id: int | None = None
    nearest_office_name: str | None = None
    nearest_office_code: str | None = None
    distance_m: float | None = None
    allowed_radius_m: float | None = None
    reason: str | None = None
    message: str


class CheckPointRead(BaseModel):
    instant: datetime
    latitude: float | None = None
    longitude: float | None = None
    location_valid: bool | None = None
    office_location_id: int | None = None


class AttendanceDayRead(BaseModel):
    id: int | None = None
    user_id: str
    day_key: date
    status: AttendanceStatus
    check_in: CheckPointRead | None = None
    check_out: CheckPointRead | None = None
    working_minutes: int | None = None
    current_working_minutes: int = Field(ge=0)
    is_valid_location: bool | None = None


class AttendanceActionResponse(BaseModel):
    day: AttendanceDayRead
    location_verdict: LocationVerdictRead | None = None


class AttendanceTodayResponse(BaseModel):
    day_key: date
    day: AttendanceDayRead | None = None


class AttendanceHistoryResponse(BaseModel):
    start: date
    end: date
    days: list[AttendanceDayRead]


class NearestOfficeResponse(BaseModel):
    found: bool
    office_location_id: int | None = None
    name: str | None = None
    code: str | None = None
    radius_m: int | None = None
    distance_m: float | None = None
    within_radius: bool = False
