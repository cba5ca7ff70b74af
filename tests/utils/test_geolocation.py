import math
import unittest

from ems_routing.core.models import Location
from ems_routing.utils.geolocation import (
    UNKNOWN_DISTANCE_KM,
    calculate_distance,
    estimate_eta_minutes,
    pickup_distance_km,
    round_half_up,
    round_tenth,
)


class TestGeolocation(unittest.TestCase):

    def test_calculate_distance_zero(self):
        loc = Location(latitude=19.0, longitude=72.8)
        self.assertAlmostEqual(calculate_distance(loc, loc), 0.0, places=2)

    def test_calculate_distance_known_points(self):
        # Paris, France to London, UK (approximate coordinates)
        paris = Location(latitude=48.8566, longitude=2.3522)
        london = Location(latitude=51.5074, longitude=-0.1278)
        # Expected distance ~343-344 km via Haversine
        self.assertAlmostEqual(calculate_distance(paris, london), 343.5, delta=2.0)

    def test_calculate_distance_north_south_pole(self):
        north_pole = Location(latitude=90.0, longitude=0.0)
        south_pole = Location(latitude=-90.0, longitude=0.0)
        # Half the circumference for the 6371 km radius
        self.assertAlmostEqual(
            calculate_distance(north_pole, south_pole), math.pi * 6371.0, delta=10.0
        )


class TestPickupDistance(unittest.TestCase):

    def setUp(self):
        self.pickup = Location(latitude=19.0, longitude=72.8)

    def test_missing_location_is_sentinel(self):
        self.assertEqual(pickup_distance_km(None, self.pickup), UNKNOWN_DISTANCE_KM)
        self.assertEqual(pickup_distance_km(self.pickup, None), UNKNOWN_DISTANCE_KM)

    def test_null_island_is_not_zero_km(self):
        null_island = Location(latitude=0.0, longitude=0.0)
        self.assertEqual(pickup_distance_km(null_island, null_island), UNKNOWN_DISTANCE_KM)
        self.assertEqual(pickup_distance_km(self.pickup, null_island), UNKNOWN_DISTANCE_KM)

    def test_real_distance(self):
        # 0.1 degree of latitude along a meridian
        other = Location(latitude=19.1, longitude=72.8)
        self.assertAlmostEqual(pickup_distance_km(self.pickup, other), 11.12, delta=0.01)


class TestRounding(unittest.TestCase):

    def test_round_half_up(self):
        self.assertEqual(round_half_up(2.5), 3)
        self.assertEqual(round_half_up(3.5), 4)
        self.assertEqual(round_half_up(2.4999), 2)
        self.assertEqual(round_half_up(0), 0)

    def test_round_tenth(self):
        self.assertEqual(round_tenth(8.04), 8.0)
        self.assertEqual(round_tenth(8.25), 8.3)

    def test_eta_at_forty_kmh(self):
        self.assertEqual(estimate_eta_minutes(10), 15)
        self.assertEqual(estimate_eta_minutes(20), 30)
        self.assertEqual(estimate_eta_minutes(0), 0)


if __name__ == "__main__":
    unittest.main()
