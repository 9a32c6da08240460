from __future__ import annotations

import threading
import time
from collections.abc import Callable
from typing import Protocol

from attendance_core.services.geofence import OfficeZone


class OfficeLocationRegistry(Protocol):
    def active_zones(self) -> list[OfficeZone]: ...


class OfficeZoneCache:
    """Process-wide snapshot of active zones, refreshed after ``ttl_seconds``.

    Lives on the caller side of the core. Every ``get`` hands out a new list
    so a deactivated zone disappears on the first refresh after it changes.
    """

    def __init__(self, ttl_seconds: float, *, monotonic: Callable[[], float] = time.monotonic) -> None:
        self._ttl_seconds = ttl_seconds
        self._monotonic = monotonic
        self._lock = threading.Lock()
        self._zones: tuple[OfficeZone, ...] | None = None
        self._loaded_at: float | None = None

    def get(self, loader: Callable[[], list[OfficeZone]]) -> list[OfficeZone]:
        with self._lock:
            now = self._monotonic()
            if (
                self._zones is None
                or self._loaded_at is None
                or self._ttl_seconds <= 0
                or now - self._loaded_at >= self._ttl_seconds
            ):
                self._zones = tuple(loader())
                self._loaded_at = now
            return list(self._zones)

    def invalidate(self) -> None:
        with self._lock:
            self._zones = None
            self._loaded_at = None


class CachedOfficeLocationRegistry:
    def __init__(self, source: OfficeLocationRegistry, cache: OfficeZoneCache) -> None:
        self._source = source
        self._cache = cache

    def active_zones(self) -> list[OfficeZone]:
        return self._cache.get(self._source.active_zones)
