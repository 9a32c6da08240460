from __future__ import annotations

import threading

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from attendance_core.audit import AuditRecorder, SqlAuditSink
from attendance_core.db import get_db
from attendance_core.repositories import SqlAttendanceStore, SqlOfficeLocationRegistry
from attendance_core.services.attendance import AttendancePorts, LocationPolicy
from attendance_core.services.clock import Clock, SystemClock
from attendance_core.services.office_locations import CachedOfficeLocationRegistry, OfficeZoneCache
from attendance_core.settings import get_settings

_ZONE_CACHE_LOCK = threading.Lock()
_zone_cache: OfficeZoneCache | None = None


def _client_ip(request: Request) -> str | None:
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    if request.client:
        return request.client.host
    return None


def get_office_zone_cache() -> OfficeZoneCache:
    global _zone_cache
    with _ZONE_CACHE_LOCK:
        if _zone_cache is None:
            _zone_cache = OfficeZoneCache(get_settings().office_zone_cache_seconds)
        return _zone_cache


def get_clock() -> Clock:
    return SystemClock()


def get_location_policy() -> LocationPolicy:
    return LocationPolicy.from_settings(get_settings())


def get_office_registry(
    db: Session = Depends(get_db),
    cache: OfficeZoneCache = Depends(get_office_zone_cache),
) -> CachedOfficeLocationRegistry:
    return CachedOfficeLocationRegistry(SqlOfficeLocationRegistry(db), cache)


def get_attendance_ports(
    request: Request,
    db: Session = Depends(get_db),
    registry: CachedOfficeLocationRegistry = Depends(get_office_registry),
) -> AttendancePorts:
    return AttendancePorts(
        store=SqlAttendanceStore(db),
        registry=registry,
        audit=AuditRecorder(
            SqlAuditSink(db),
            request_id=getattr(request.state, "request_id", None),
            ip=_client_ip(request),
            user_agent=request.headers.get("user-agent"),
        ),
    )
