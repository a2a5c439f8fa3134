"""
Tests for distance, speed model and delivery time estimation.
"""

import math

from django.test import SimpleTestCase

from core.exceptions import InvalidCoordinates, UnknownVehicleClass
from logistics.utils import (
    DistanceTimeEstimator, get_average_speed, get_routing_data, haversine_distance,
    point_coordinates, to_point, validate_coordinates,
)
from logistics.tests.fixtures import DELIVERY, PICKUP


class TestCoordinateValidation(SimpleTestCase):

    def test_accepts_boundaries(self):
        self.assertEqual(validate_coordinates([-180, 90]), (-180.0, 90.0))
        self.assertEqual(validate_coordinates((180, -90)), (180.0, -90.0))

    def test_rejects_malformed_values(self):
        cases = [
            None,
            'abc',
            [1],
            [1, 2, 3],
            [True, 0],
            ['1', '2'],
            [float('nan'), 0],
            [0, float('inf')],
            [181, 0],
            [0, -91],
        ]
        for value in cases:
            with self.subTest(value=value):
                with self.assertRaises(InvalidCoordinates):
                    validate_coordinates(value)


class TestHaversine(SimpleTestCase):

    def test_identical_points(self):
        self.assertEqual(haversine_distance(PICKUP, PICKUP), 0.0)

    def test_symmetric(self):
        self.assertAlmostEqual(
            haversine_distance(PICKUP, DELIVERY),
            haversine_distance(DELIVERY, PICKUP),
            places=6
        )

    def test_one_degree_of_latitude(self):
        expected = 6_371_000 * math.pi / 180
        self.assertAlmostEqual(haversine_distance([0, 0], [0, 1]), expected, delta=1)

    def test_manhattan_example(self):
        distance = haversine_distance(PICKUP, DELIVERY)
        self.assertGreater(distance, 3000)
        self.assertLess(distance, 15000)

    def test_invalid_input_raises(self):
        with self.assertRaises(InvalidCoordinates):
            haversine_distance([0, 100], PICKUP)

    def test_point_conversion(self):
        point = to_point(PICKUP)
        self.assertEqual(point.srid, 4326)
        self.assertEqual(point_coordinates(point), PICKUP)
        self.assertIsNone(point_coordinates(None))

    def test_point_conversion_validates(self):
        with self.assertRaises(InvalidCoordinates):
            to_point([181, 0])


class TestSpeedModel(SimpleTestCase):

    def test_known_classes(self):
        self.assertEqual(get_average_speed('bike'), 15)
        self.assertEqual(get_average_speed('scooter'), 25)
        self.assertEqual(get_average_speed('car'), 30)
        self.assertEqual(get_average_speed('van'), 30)

    def test_unknown_class(self):
        with self.assertRaises(UnknownVehicleClass):
            get_average_speed('truck')


class TestDistanceTimeEstimator(SimpleTestCase):

    def test_missing_point_gives_none(self):
        self.assertIsNone(DistanceTimeEstimator.estimate(None, DELIVERY))
        self.assertIsNone(DistanceTimeEstimator.estimate(PICKUP, None))

    def test_duration_minutes(self):
        self.assertAlmostEqual(DistanceTimeEstimator.estimate_duration(1000, 'bike'), 4.0)
        self.assertAlmostEqual(DistanceTimeEstimator.estimate_duration(5000, 'scooter'), 12.0)

    def test_duration_none_distance(self):
        self.assertIsNone(DistanceTimeEstimator.estimate_duration(None, 'bike'))

    def test_duration_unknown_vehicle_checked_first(self):
        with self.assertRaises(UnknownVehicleClass):
            DistanceTimeEstimator.estimate_duration(None, 'truck')

    def test_slower_vehicles_take_longer(self):
        distance = DistanceTimeEstimator.estimate(PICKUP, DELIVERY)
        bike = DistanceTimeEstimator.estimate_delivery_time(distance, 'bike')
        scooter = DistanceTimeEstimator.estimate_delivery_time(distance, 'scooter')
        car = DistanceTimeEstimator.estimate_delivery_time(distance, 'car')
        self.assertGreater(bike, scooter)
        self.assertGreaterEqual(scooter, car)

    def test_buffer_minimum(self):
        self.assertEqual(DistanceTimeEstimator.estimate_delivery_time(0, 'bike'), 10)

    def test_buffer_maximum(self):
        # 60 km by bike: 240 min travel, 30% capped at 20
        self.assertEqual(DistanceTimeEstimator.estimate_delivery_time(60000, 'bike'), 260)

    def test_buffer_proportional(self):
        # 12.5 km by bike: 50 min travel, 15 min buffer
        self.assertEqual(DistanceTimeEstimator.estimate_delivery_time(12500, 'bike'), 65)

    def test_routing_data(self):
        data = get_routing_data(PICKUP, DELIVERY, 'car')
        self.assertEqual(data['vehicle_type'], 'car')
        self.assertEqual(set(data), {'distance', 'duration', 'delivery_time', 'vehicle_type'})
        self.assertGreater(data['delivery_time'], data['duration'])
