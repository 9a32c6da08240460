from __future__ import annotations

import math
import unittest

from attendance_core.services.geofence import (
    Coordinates,
    OfficeZone,
    VerdictReason,
    distance_m,
    find_nearest_zone,
    validate_against_zone,
    validate_coordinate_format,
    validate_location,
)


def _zone(zone_id: int, lat: float, lon: float, radius_m: int = 100, *, is_active: bool = True) -> OfficeZone:
    return OfficeZone(
        id=zone_id,
        name=f"Office {zone_id}",
        code=f"OF{zone_id}",
        latitude=lat,
        longitude=lon,
        radius_m=radius_m,
        is_active=is_active,
    )


class DistanceTests(unittest.TestCase):
    def test_distance_zero_for_same_point(self) -> None:
        point = Coordinates(41.0082, 28.9784)
        self.assertAlmostEqual(distance_m(point, point), 0.0, places=6)

    def test_distance_is_symmetric(self) -> None:
        a = Coordinates(41.0082, 28.9784)
        b = Coordinates(39.9334, 32.8597)
        self.assertAlmostEqual(distance_m(a, b), distance_m(b, a), places=9)

    def test_distance_known_reference(self) -> None:
        # Approximate distance for 1 degree longitude on equator.
        value = distance_m(Coordinates(0.0, 0.0), Coordinates(0.0, 1.0))
        self.assertAlmostEqual(value, 111_195, delta=300)

    def test_distance_antipodal_points(self) -> None:
        value = distance_m(Coordinates(0.0, 0.0), Coordinates(0.0, 180.0))
        self.assertAlmostEqual(value, math.pi * 6371000.0, delta=1.0)


class CoordinateFormatTests(unittest.TestCase):
    def test_accepts_boundary_values(self) -> None:
        for lat, lon in [(90, 180), (-90, -180), (0, 0), (41.0082, 28.9784)]:
            with self.subTest(lat=lat, lon=lon):
                self.assertTrue(validate_coordinate_format(lat, lon))

    def test_rejects_out_of_range_and_non_numeric(self) -> None:
        cases = [
            (90.0001, 0.0),
            (-90.5, 0.0),
            (0.0, 180.0001),
            (0.0, -181.0),
            (math.nan, 0.0),
            (0.0, math.inf),
            (None, 0.0),
            ("41.0", 29.0),
            (True, 29.0),
        ]
        for lat, lon in cases:
            with self.subTest(lat=lat, lon=lon):
                self.assertFalse(validate_coordinate_format(lat, lon))


class ValidateLocationTests(unittest.TestCase):
    def test_point_just_outside_radius_is_rejected(self) -> None:
        zones = [_zone(1, 0.0, 0.0, radius_m=100)]
        verdict = validate_location(Coordinates(0.0009, 0.0), zones, tolerance_m=0.0)

        self.assertFalse(verdict.is_valid)
        self.assertEqual(verdict.reason, VerdictReason.OUT_OF_RANGE)
        self.assertEqual(verdict.nearest_office_id, 1)
        self.assertAlmostEqual(verdict.distance_m, 100.08, places=2)
        self.assertEqual(verdict.allowed_radius_m, 100.0)

    def test_same_point_is_accepted_with_larger_radius(self) -> None:
        zones = [_zone(1, 0.0, 0.0, radius_m=101)]
        verdict = validate_location(Coordinates(0.0009, 0.0), zones, tolerance_m=0.0)

        self.assertTrue(verdict.is_valid)
        self.assertIsNone(verdict.reason)
        self.assertEqual(verdict.nearest_office_code, "OF1")

    def test_tolerance_is_added_to_radius(self) -> None:
        zones = [_zone(1, 0.0, 0.0, radius_m=100)]
        verdict = validate_location(Coordinates(0.0009, 0.0), zones, tolerance_m=5.0)

        self.assertTrue(verdict.is_valid)
        self.assertEqual(verdict.allowed_radius_m, 105.0)

    def test_distance_equal_to_allowed_radius_is_accepted(self) -> None:
        zone = _zone(1, 0.0, 0.0, radius_m=100)
        point = Coordinates(0.0012, 0.0)
        tolerance = distance_m(point, zone.center) - zone.radius_m

        self.assertTrue(validate_location(point, [zone], tolerance_m=tolerance).is_valid)
        self.assertTrue(validate_against_zone(point, 1, [zone], tolerance_m=tolerance).is_valid)

    def test_distance_just_beyond_allowed_radius_is_rejected(self) -> None:
        zone = _zone(1, 0.0, 0.0, radius_m=100)
        point = Coordinates(0.0012, 0.0)
        tolerance = distance_m(point, zone.center) - zone.radius_m - 1e-9

        verdict = validate_location(point, [zone], tolerance_m=tolerance)
        self.assertFalse(verdict.is_valid)
        self.assertEqual(verdict.reason, VerdictReason.OUT_OF_RANGE)
        self.assertFalse(validate_against_zone(point, 1, [zone], tolerance_m=tolerance).is_valid)

    def test_negative_tolerance_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            validate_location(Coordinates(0.0, 0.0), [_zone(1, 0.0, 0.0)], tolerance_m=-1.0)

    def test_no_active_zones_fails_closed(self) -> None:
        for zones in ([], [_zone(1, 0.0, 0.0, is_active=False)]):
            with self.subTest(zones=zones):
                verdict = validate_location(Coordinates(0.0, 0.0), zones)
                self.assertFalse(verdict.is_valid)
                self.assertEqual(verdict.reason, VerdictReason.NO_ACTIVE_OFFICE_ZONES)
                self.assertIsNone(verdict.nearest_office_id)
                self.assertIsNone(verdict.distance_m)

    def test_invalid_coordinates_short_circuit(self) -> None:
        verdict = validate_location(Coordinates(95.0, 0.0), [_zone(1, 0.0, 0.0)])
        self.assertFalse(verdict.is_valid)
        self.assertEqual(verdict.reason, VerdictReason.INVALID_COORDINATES)

    def test_rejection_reports_globally_nearest_zone(self) -> None:
        far = _zone(1, 0.0, 0.0, radius_m=10)
        near = _zone(2, 0.0, 0.01, radius_m=10)
        verdict = validate_location(Coordinates(0.0, 0.009), [far, near])

        self.assertFalse(verdict.is_valid)
        self.assertEqual(verdict.nearest_office_id, 2)
        self.assertAlmostEqual(verdict.distance_m, 111.19, delta=0.05)
        self.assertIn("Office 2", verdict.message)

    def test_first_satisfied_zone_wins(self) -> None:
        first = _zone(1, 0.0, 0.0, radius_m=500)
        closer = _zone(2, 0.001, 0.0, radius_m=500)
        verdict = validate_location(Coordinates(0.0009, 0.0), [first, closer])

        self.assertTrue(verdict.is_valid)
        self.assertEqual(verdict.nearest_office_id, 1)

    def test_inactive_zones_are_skipped(self) -> None:
        inactive = _zone(1, 0.0, 0.0, radius_m=500, is_active=False)
        active = _zone(2, 1.0, 1.0, radius_m=100)
        verdict = validate_location(Coordinates(0.0, 0.0), [inactive, active])

        self.assertFalse(verdict.is_valid)
        self.assertEqual(verdict.nearest_office_id, 2)


class ValidateAgainstZoneTests(unittest.TestCase):
    def test_only_target_zone_counts(self) -> None:
        target = _zone(1, 0.0, 0.0, radius_m=100)
        other = _zone(2, 0.01, 0.0, radius_m=100)
        verdict = validate_against_zone(Coordinates(0.01, 0.0), 1, [target, other])

        self.assertFalse(verdict.is_valid)
        self.assertEqual(verdict.nearest_office_id, 1)
        self.assertEqual(verdict.reason, VerdictReason.OUT_OF_RANGE)

    def test_target_zone_accepts_point_inside(self) -> None:
        target = _zone(1, 0.0, 0.0, radius_m=100)
        verdict = validate_against_zone(Coordinates(0.0005, 0.0), 1, [target])
        self.assertTrue(verdict.is_valid)

    def test_missing_or_inactive_target_zone(self) -> None:
        zones = [_zone(1, 0.0, 0.0), _zone(2, 0.0, 0.0, is_active=False)]
        for zone_id in (2, 99):
            with self.subTest(zone_id=zone_id):
                verdict = validate_against_zone(Coordinates(0.0, 0.0), zone_id, zones)
                self.assertFalse(verdict.is_valid)
                self.assertEqual(verdict.reason, VerdictReason.OFFICE_LOCATION_NOT_ACTIVE)


class FindNearestZoneTests(unittest.TestCase):
    def test_returns_nearest_active_zone(self) -> None:
        zones = [_zone(1, 0.0, 0.0), _zone(2, 0.0, 0.01), _zone(3, 0.0, 0.009, is_active=False)]
        zone, distance_value = find_nearest_zone(Coordinates(0.0, 0.009), zones)

        self.assertIsNotNone(zone)
        assert zone is not None
        self.assertEqual(zone.id, 2)
        self.assertAlmostEqual(distance_value, 111.19, delta=0.05)

    def test_returns_none_without_zones(self) -> None:
        self.assertEqual(find_nearest_zone(Coordinates(0.0, 0.0), []), (None, None))
        self.assertEqual(find_nearest_zone(Coordinates(120.0, 0.0), [_zone(1, 0.0, 0.0)]), (None, None))


if __name__ == "__main__":
    unittest.main()
