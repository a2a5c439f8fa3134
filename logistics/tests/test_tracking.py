"""
Tests for courier telemetry: recording, history, trajectory, proximity.
"""

from datetime import timedelta

from django.test import TestCase, override_settings
from django.utils import timezone

from core.exceptions import DomainValidationError, InvalidCoordinates
from logistics.models import LocationRecord, OfferStatus, TrackingType
from logistics.services.tracking import LocationTracker
from logistics.tasks import purge_expired_locations
from logistics.tests.fixtures import PICKUP, advance, make_courier, make_offer, make_requester
from logistics.utils import haversine_distance


def north_of(point, degrees):
    return [point[0], point[1] + degrees]


class TestRecord(TestCase):

    def setUp(self):
        self.courier = make_courier()

    def test_record_creates_active_sample(self):
        record = LocationTracker.record(
            self.courier, PICKUP,
            tracking_type=TrackingType.HEADING_TO_PICKUP,
            heading=90, speed=4.2, battery_level=80,
            device_info={'os': 'android'},
        )
        self.assertTrue(record.is_active)
        self.assertEqual(record.coordinates, PICKUP)
        self.assertEqual(record.device_info, {'os': 'android'})

    def test_record_updates_last_position(self):
        LocationTracker.record(self.courier, PICKUP)
        self.courier.refresh_from_db()
        self.assertEqual(self.courier.last_coordinates, PICKUP)
        self.assertIsNotNone(self.courier.last_location_updated)

    def test_invalid_coordinates_rejected(self):
        with self.assertRaises(InvalidCoordinates):
            LocationTracker.record(self.courier, [200, 0])
        self.assertFalse(LocationRecord.objects.exists())

    def test_invalid_sample_fields_rejected(self):
        with self.assertRaises(DomainValidationError):
            LocationTracker.record(self.courier, PICKUP, heading=400)
        with self.assertRaises(DomainValidationError):
            LocationTracker.record(self.courier, PICKUP, battery_level=120)
        with self.assertRaises(DomainValidationError):
            LocationTracker.record(self.courier, PICKUP, tracking_type='teleporting')


class TestHistoryAndTrajectory(TestCase):

    def setUp(self):
        self.courier = make_courier()
        self.now = timezone.now()

    def _record(self, coordinates, minutes_ago, **kwargs):
        return LocationTracker.record(
            self.courier, coordinates,
            timestamp=self.now - timedelta(minutes=minutes_ago),
            **kwargs
        )

    def test_history_newest_first_with_limit(self):
        oldest = self._record(PICKUP, 30)
        middle = self._record(north_of(PICKUP, 0.001), 20)
        newest = self._record(north_of(PICKUP, 0.002), 10)

        self.assertEqual(LocationTracker.history(self.courier), [newest, middle, oldest])
        self.assertEqual(LocationTracker.history(self.courier, limit=2), [newest, middle])

    def test_history_rejects_non_positive_limit(self):
        self._record(PICKUP, 5)
        for limit in (0, -1):
            with self.subTest(limit=limit):
                with self.assertRaises(DomainValidationError):
                    LocationTracker.history(self.courier, limit=limit)

    def test_history_time_window(self):
        self._record(PICKUP, 30)
        middle = self._record(north_of(PICKUP, 0.001), 20)
        self._record(north_of(PICKUP, 0.002), 10)

        records = LocationTracker.history(
            self.courier,
            start_time=self.now - timedelta(minutes=25),
            end_time=self.now - timedelta(minutes=15),
        )
        self.assertEqual(records, [middle])

    @override_settings(LOCATION_RETENTION_DAYS=7)
    def test_expired_records_invisible(self):
        self._record(PICKUP, 8 * 24 * 60)
        self.assertEqual(LocationTracker.history(self.courier), [])

    def test_trajectory_sums_segments_in_time_order(self):
        a, b, c = PICKUP, north_of(PICKUP, 0.01), north_of(PICKUP, 0.02)
        # inserted out of order on purpose
        self._record(c, 10)
        self._record(a, 30)
        self._record(b, 20)

        expected = haversine_distance(a, b) + haversine_distance(b, c)
        self.assertAlmostEqual(LocationTracker.trajectory_distance(self.courier), expected, places=3)

    def test_trajectory_needs_two_points(self):
        self.assertEqual(LocationTracker.trajectory_distance(self.courier), 0.0)
        self._record(PICKUP, 5)
        self.assertEqual(LocationTracker.trajectory_distance(self.courier), 0.0)

    def test_trajectory_scoped_to_offer(self):
        requester = make_requester()
        offer = make_offer(requester)
        advance(offer, self.courier, until=OfferStatus.ACCEPTED)

        self._record(north_of(PICKUP, 0.5), 40)
        self._record(PICKUP, 30, offer=offer)
        self._record(north_of(PICKUP, 0.01), 20, offer=offer)

        self.assertAlmostEqual(
            LocationTracker.trajectory_distance(self.courier, offer),
            haversine_distance(PICKUP, north_of(PICKUP, 0.01)),
            places=3
        )


@override_settings(TRACKING_FRESHNESS_SECONDS=300)
class TestNearby(TestCase):

    def setUp(self):
        self.near = make_courier(phone='+15552000011', full_name='Near')
        self.mid = make_courier(phone='+15552000012', full_name='Mid')
        self.far = make_courier(phone='+15552000013', full_name='Far')
        LocationTracker.record(self.near, north_of(PICKUP, 0.0045))   # ≈ 500 m
        LocationTracker.record(self.mid, north_of(PICKUP, 0.018))     # ≈ 2 km
        LocationTracker.record(self.far, north_of(PICKUP, 0.18))      # ≈ 20 km

    def test_sorted_by_distance_within_radius(self):
        results = LocationTracker.nearby(PICKUP, 5000)
        self.assertEqual([r['courier_id'] for r in results], [self.near.pk, self.mid.pk])
        self.assertLess(results[0]['distance'], results[1]['distance'])
        self.assertEqual(results[0]['courier_name'], 'Near')

    def test_default_radius(self):
        with self.settings(NEARBY_DEFAULT_RADIUS_M=1000):
            results = LocationTracker.nearby(PICKUP)
        self.assertEqual([r['courier_id'] for r in results], [self.near.pk])

    def test_only_latest_sample_counts(self):
        LocationTracker.record(self.near, north_of(PICKUP, 0.18))
        results = LocationTracker.nearby(PICKUP, 5000)
        self.assertEqual([r['courier_id'] for r in results], [self.mid.pk])

    def test_stale_samples_ignored(self):
        stale = make_courier(phone='+15552000014')
        LocationTracker.record(stale, PICKUP, timestamp=timezone.now() - timedelta(minutes=10))
        ids = [r['courier_id'] for r in LocationTracker.nearby(PICKUP, 5000)]
        self.assertNotIn(stale.pk, ids)

    def test_inactive_samples_ignored(self):
        LocationTracker.deactivate(self.near)
        ids = [r['courier_id'] for r in LocationTracker.nearby(PICKUP, 5000)]
        self.assertEqual(ids, [self.mid.pk])

    def test_search_crosses_antimeridian(self):
        courier = make_courier(phone='+15552000015')
        LocationTracker.record(courier, [-179.999, 0.0])

        results = LocationTracker.nearby([179.999, 0.0], 10000)

        self.assertEqual([r['courier_id'] for r in results], [courier.pk])
        self.assertLess(results[0]['distance'], 500)

    def test_invalid_center(self):
        with self.assertRaises(InvalidCoordinates):
            LocationTracker.nearby([0, 95], 1000)


class TestDeactivateAndPurge(TestCase):

    def setUp(self):
        self.courier = make_courier()
        self.offer = make_offer(make_requester())
        advance(self.offer, self.courier, until=OfferStatus.ACCEPTED)

    def test_deactivate_scoped_to_offer(self):
        LocationTracker.record(self.courier, PICKUP, offer=self.offer)
        LocationTracker.record(self.courier, PICKUP, offer=self.offer)
        LocationTracker.record(self.courier, PICKUP)

        self.assertEqual(LocationTracker.deactivate(self.courier, self.offer), 2)
        self.assertEqual(LocationRecord.objects.filter(is_active=True).count(), 1)
        self.assertEqual(LocationTracker.deactivate(self.courier), 1)
        self.assertEqual(LocationTracker.deactivate(self.courier), 0)

    def test_delivery_tracking_returns_active_offer_points(self):
        first = LocationTracker.record(self.courier, PICKUP, offer=self.offer,
                                       timestamp=timezone.now() - timedelta(minutes=2))
        second = LocationTracker.record(self.courier, north_of(PICKUP, 0.001), offer=self.offer)
        LocationTracker.record(self.courier, PICKUP)

        self.assertEqual(LocationTracker.delivery_tracking(self.offer), [second, first])

    @override_settings(LOCATION_RETENTION_DAYS=7)
    def test_purge_task_deletes_expired_rows(self):
        LocationTracker.record(self.courier, PICKUP, timestamp=timezone.now() - timedelta(days=8))
        LocationTracker.record(self.courier, PICKUP)

        deleted = purge_expired_locations()

        self.assertEqual(deleted, 1)
        self.assertEqual(LocationRecord.objects.count(), 1)
