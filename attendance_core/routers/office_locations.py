from fastapi import APIRouter, Depends, Query

from attendance_core.dependencies import get_location_policy, get_office_registry
from attendance_core.errors import ApiError
from attendance_core.schemas import NearestOfficeResponse
from attendance_core.security import require_user
from attendance_core.services.attendance import LocationPolicy, StorageUnavailableError
from attendance_core.services.geofence import (
    Coordinates,
    find_nearest_zone,
    validate_against_zone,
    validate_coordinate_format,
)
from attendance_core.services.office_locations import OfficeLocationRegistry

router = APIRouter(tags=["office-locations"])


@router.get("/api/office-locations/nearest", response_model=NearestOfficeResponse)
def nearest_office_location(
    latitude: float = Query(...),
    longitude: float = Query(...),
    _user_id: str = Depends(require_user),
    registry: OfficeLocationRegistry = Depends(get_office_registry),
    policy: LocationPolicy = Depends(get_location_policy),
) -> NearestOfficeResponse:
    if not validate_coordinate_format(latitude, longitude):
        raise ApiError(status_code=422, code="INVALID_COORDINATES", message="Coordinates are not valid.")

    try:
        zones = registry.active_zones()
    except StorageUnavailableError as exc:
        raise ApiError(status_code=503, code="STORAGE_UNAVAILABLE", message="Office locations are unavailable.") from exc

    point = Coordinates(latitude, longitude)
    zone, _ = find_nearest_zone(point, zones)
    if zone is None:
        return NearestOfficeResponse(found=False)

    # same raw-distance comparison as check-in
    verdict = validate_against_zone(point, zone.id, zones, policy.tolerance_m)

    return NearestOfficeResponse(
        found=True,
        office_location_id=zone.id,
        name=zone.name,
        code=zone.code,
        radius_m=zone.radius_m,
        distance_m=verdict.distance_m,
        within_radius=verdict.is_valid,
    )
