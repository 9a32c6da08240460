from __future__ import annotations

import enum
import math
from collections.abc import Iterable
from dataclasses import dataclass
from math import asin, cos, radians, sin, sqrt
from typing import Any

EARTH_RADIUS_M = 6371000.0


class VerdictReason(str, enum.Enum):
    INVALID_COORDINATES = "INVALID_COORDINATES"
    NO_ACTIVE_OFFICE_ZONES = "NO_ACTIVE_OFFICE_ZONES"
    OUT_OF_RANGE = "OUT_OF_RANGE"
    OFFICE_LOCATION_NOT_ACTIVE = "OFFICE_LOCATION_NOT_ACTIVE"


@dataclass(frozen=True, slots=True)
class Coordinates:
    latitude: float
    longitude: float


@dataclass(frozen=True, slots=True)
class OfficeZone:
    id: int
    name: str
    code: str
    latitude: float
    longitude: float
    radius_m: int
    is_active: bool = True

    @property
    def center(self) -> Coordinates:
        return Coordinates(self.latitude, self.longitude)


@dataclass(frozen=True, slots=True)
class LocationVerdict:
    is_valid: bool
    nearest_office_id: int | None = None
    nearest_office_name: str | None = None
    nearest_office_code: str | None = None
    distance_m: float | None = None
    allowed_radius_m: float | None = None
    reason: VerdictReason | None = None

    @classmethod
    def rejected(cls, reason: VerdictReason) -> LocationVerdict:
        return cls(is_valid=False, reason=reason)

    @property
    def message(self) -> str:
        if self.is_valid:
            return f"Location verified at {self.nearest_office_name}."
        if self.reason == VerdictReason.INVALID_COORDINATES:
            return "Coordinates are not valid."
        if self.reason == VerdictReason.NO_ACTIVE_OFFICE_ZONES:
            return "No active office location is registered."
        if self.reason == VerdictReason.OFFICE_LOCATION_NOT_ACTIVE:
            return "The office location is not found or not active."
        return (
            f"Outside of the registered office radius. Nearest office: {self.nearest_office_name} "
            f"(distance {self.distance_m:.0f} m, allowed {self.allowed_radius_m:.0f} m)."
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "nearest_office_id": self.nearest_office_id,
            "nearest_office_name": self.nearest_office_name,
            "nearest_office_code": self.nearest_office_code,
            "distance_m": self.distance_m,
            "allowed_radius_m": self.allowed_radius_m,
            "reason": self.reason.value if self.reason is not None else None,
        }


def distance_m(a: Coordinates, b: Coordinates) -> float:
    lat1_rad = radians(a.latitude)
    lon1_rad = radians(a.longitude)
    lat2_rad = radians(b.latitude)
    lon2_rad = radians(b.longitude)

    delta_lat = lat2_rad - lat1_rad
    delta_lon = lon2_rad - lon1_rad

    h = sin(delta_lat / 2) ** 2 + cos(lat1_rad) * cos(lat2_rad) * sin(delta_lon / 2) ** 2
    # float error can push h a hair above 1 for antipodal points
    c = 2 * asin(sqrt(min(1.0, h)))
    return EARTH_RADIUS_M * c


def validate_coordinate_format(latitude: Any, longitude: Any) -> bool:
    for value in (latitude, longitude):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return False
        if not math.isfinite(value):
            return False

    if latitude < -90 or latitude > 90:
        return False
    if longitude < -180 or longitude > 180:
        return False
    return True


def _check_tolerance(tolerance_m: float) -> None:
    if not math.isfinite(tolerance_m) or tolerance_m < 0:
        raise ValueError("tolerance_m must be a finite, non-negative number")


def _verdict_for_zone(
    zone: OfficeZone,
    distance_value: float,
    *,
    tolerance_m: float,
    is_valid: bool,
) -> LocationVerdict:
    return LocationVerdict(
        is_valid=is_valid,
        nearest_office_id=zone.id,
        nearest_office_name=zone.name,
        nearest_office_code=zone.code,
        distance_m=round(distance_value, 2),
        allowed_radius_m=float(zone.radius_m) + tolerance_m,
        reason=None if is_valid else VerdictReason.OUT_OF_RANGE,
    )


def validate_location(
    point: Coordinates,
    zones: Iterable[OfficeZone],
    tolerance_m: float = 0.0,
) -> LocationVerdict:
    """Validate ``point`` against every active zone.

    The first zone whose radius plus ``tolerance_m`` contains the point wins.
    When none does, the verdict names the zone with the smallest raw distance
    so the caller can report how far off the user was.
    """
    _check_tolerance(tolerance_m)
    if not validate_coordinate_format(point.latitude, point.longitude):
        return LocationVerdict.rejected(VerdictReason.INVALID_COORDINATES)

    active_zones = [zone for zone in zones if zone.is_active]
    if not active_zones:
        return LocationVerdict.rejected(VerdictReason.NO_ACTIVE_OFFICE_ZONES)

    nearest_zone: OfficeZone | None = None
    nearest_distance: float | None = None

    for zone in active_zones:
        zone_distance_m = distance_m(point, zone.center)

        if nearest_distance is None or zone_distance_m < nearest_distance:
            nearest_distance = zone_distance_m
            nearest_zone = zone

        if zone_distance_m <= zone.radius_m + tolerance_m:
            return _verdict_for_zone(zone, zone_distance_m, tolerance_m=tolerance_m, is_valid=True)

    assert nearest_zone is not None and nearest_distance is not None
    return _verdict_for_zone(nearest_zone, nearest_distance, tolerance_m=tolerance_m, is_valid=False)


def validate_against_zone(
    point: Coordinates,
    zone_id: int,
    zones: Iterable[OfficeZone],
    tolerance_m: float = 0.0,
) -> LocationVerdict:
    _check_tolerance(tolerance_m)
    if not validate_coordinate_format(point.latitude, point.longitude):
        return LocationVerdict.rejected(VerdictReason.INVALID_COORDINATES)

    zone = next((item for item in zones if item.id == zone_id and item.is_active), None)
    if zone is None:
        return LocationVerdict.rejected(VerdictReason.OFFICE_LOCATION_NOT_ACTIVE)

    zone_distance_m = distance_m(point, zone.center)
    return _verdict_for_zone(
        zone,
        zone_distance_m,
        tolerance_m=tolerance_m,
        is_valid=zone_distance_m <= zone.radius_m + tolerance_m,
    )


def find_nearest_zone(
    point: Coordinates,
    zones: Iterable[OfficeZone],
) -> tuple[OfficeZone | None, float | None]:
    if not validate_coordinate_format(point.latitude, point.longitude):
        return None, None

    nearest_zone: OfficeZone | None = None
    nearest_distance: float | None = None
    for zone in zones:
        if not zone.is_active:
            continue
        zone_distance_m = distance_m(point, zone.center)
        if nearest_distance is None or zone_distance_m < nearest_distance:
            nearest_zone = zone
            nearest_distance = zone_distance_m

    if nearest_distance is None:
        return None, None
    return nearest_zone, round(nearest_distance, 2)
