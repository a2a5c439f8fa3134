"""
API tests for offers, tracking and geocoding endpoints.
"""

from unittest.mock import patch

import requests
from django.core.cache import cache
from django.test import TestCase, override_settings
from rest_framework.test import APIClient

from finance.models import Earnings, Payment
from logistics.models import LocationRecord, Offer, OfferStatus
from logistics.services.tracking import LocationTracker
from logistics.tests.fixtures import DELIVERY, PICKUP, advance, make_courier, make_offer, make_requester
from logistics.utils import to_point


class TestOfferAPI(TestCase):

    def setUp(self):
        self.api = APIClient()
        self.requester = make_requester()
        self.courier = make_courier()

    def _transition(self, offer, status, user, **extra):
        self.api.force_authenticate(user)
        return self.api.post(
            f'/api/offers/{offer.pk}/transition/',
            {'status': status, **extra},
            format='json'
        )

    def test_requester_creates_offer_with_estimates(self):
        self.api.force_authenticate(self.requester)
        response = self.api.post('/api/offers/', {
            'title': 'Birthday cake',
            'pickup_address': '350 5th Ave, New York',
            'pickup_coordinates': PICKUP,
            'delivery_address': 'Central Park, New York',
            'delivery_coordinates': DELIVERY,
            'payment_amount': '25.50',
            'is_fragile': True,
        }, format='json')

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data['status'], OfferStatus.OPEN)
        self.assertEqual(response.data['pickup_coordinates'], PICKUP)
        self.assertGreater(response.data['estimated_distance'], 3000)
        self.assertIsNotNone(response.data['estimated_duration'])
        self.assertEqual(Offer.objects.get().requester, self.requester)

    def test_invalid_coordinates_rejected(self):
        self.api.force_authenticate(self.requester)
        response = self.api.post('/api/offers/', {
            'title': 'Nowhere',
            'pickup_address': 'x',
            'pickup_coordinates': [200, 0],
            'delivery_address': 'y',
            'delivery_coordinates': DELIVERY,
            'payment_amount': '10.00',
        }, format='json')
        self.assertEqual(response.status_code, 400)
        self.assertIn('pickup_coordinates', response.data)

    def test_courier_cannot_create_offer(self):
        self.api.force_authenticate(self.courier)
        response = self.api.post('/api/offers/', {}, format='json')
        self.assertEqual(response.status_code, 403)

    def test_courier_sees_open_and_own_offers(self):
        open_offer = make_offer(self.requester, title='Open')
        taken = make_offer(self.requester, title='Taken')
        advance(taken, make_courier(phone='+15552000099'), until=OfferStatus.ACCEPTED)

        self.api.force_authenticate(self.courier)
        response = self.api.get('/api/offers/')

        self.assertEqual(response.status_code, 200)
        ids = [row['id'] for row in response.data['results']]
        self.assertEqual(ids, [str(open_offer.pk)])

    def test_available_sorted_by_pickup_distance(self):
        near = make_offer(self.requester, title='Near')
        far = make_offer(self.requester, title='Far')
        Offer.objects.filter(pk=far.pk).update(pickup_location=to_point([PICKUP[0], PICKUP[1] + 0.1]))
        LocationTracker.record(self.courier, PICKUP)

        self.api.force_authenticate(self.courier)
        response = self.api.get('/api/offers/available/')

        self.assertEqual(response.status_code, 200)
        self.assertEqual([row['id'] for row in response.data], [str(near.pk), str(far.pk)])
        self.assertEqual(response.data[0]['pickup_distance'], 0.0)

    def test_available_within_radius(self):
        near = make_offer(self.requester, title='Near')
        far = make_offer(self.requester, title='Far')
        Offer.objects.filter(pk=far.pk).update(pickup_location=to_point([PICKUP[0], PICKUP[1] + 0.1]))
        LocationTracker.record(self.courier, PICKUP)

        self.api.force_authenticate(self.courier)
        response = self.api.get('/api/offers/available/', {'radius': 5000})

        self.assertEqual(response.status_code, 200)
        self.assertEqual([row['id'] for row in response.data], [str(near.pk)])

    def test_available_without_position_lists_open_offers(self):
        offer = make_offer(self.requester)

        self.api.force_authenticate(self.courier)
        response = self.api.get('/api/offers/available/')

        self.assertEqual(response.status_code, 200)
        self.assertEqual([row['id'] for row in response.data], [str(offer.pk)])
        self.assertNotIn('pickup_distance', response.data[0])

    def test_courier_accepts_offer(self):
        offer = make_offer(self.requester)
        response = self._transition(offer, OfferStatus.ACCEPTED, self.courier)

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['status'], OfferStatus.ACCEPTED)
        self.assertEqual(response.data['courier'], self.courier.pk)

    def test_requester_cannot_accept(self):
        offer = make_offer(self.requester)
        response = self._transition(offer, OfferStatus.ACCEPTED, self.requester)

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.data['code'], 'insufficient_role')

    def test_illegal_transition_is_conflict(self):
        offer = make_offer(self.requester)
        response = self._transition(offer, OfferStatus.DELIVERED, self.courier)

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data['code'], 'invalid_transition')

    def test_unknown_status_is_bad_request(self):
        offer = make_offer(self.requester)
        response = self._transition(offer, 'teleported', self.courier)
        self.assertEqual(response.status_code, 400)

    def test_history(self):
        offer = make_offer(self.requester)
        advance(offer, self.courier, until=OfferStatus.PICKED_UP)

        self.api.force_authenticate(self.requester)
        response = self.api.get(f'/api/offers/{offer.pk}/history/')

        self.assertEqual(response.status_code, 200)
        self.assertEqual([h['status'] for h in response.data['history']], ['accepted', 'picked_up'])
        self.assertEqual(response.data['status']['valid_next_statuses'], [OfferStatus.IN_TRANSIT])

    def test_estimate(self):
        self.api.force_authenticate(self.requester)
        response = self.api.post('/api/offers/estimate/', {
            'pickup_coordinates': PICKUP,
            'delivery_coordinates': DELIVERY,
            'vehicle_type': 'car',
        }, format='json')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['vehicle_type'], 'car')
        self.assertEqual(response.data['method'], 'straight-line')
        self.assertGreater(response.data['distance'], 3000)

    def test_payment_after_delivery(self):
        offer = make_offer(self.requester)
        advance(offer, self.courier)

        self.api.force_authenticate(self.requester)
        response = self.api.post(f'/api/offers/{offer.pk}/payment/', {'method': 'paypal'}, format='json')

        self.assertEqual(response.status_code, 201)
        payment = Payment.objects.get(offer=offer)
        self.assertEqual(payment.method, 'paypal')
        self.assertEqual(payment.payee, self.courier)

    def test_payment_after_completion_creates_earnings(self):
        offer = make_offer(self.requester)
        advance(offer, self.courier)

        completed = self._transition(offer, OfferStatus.COMPLETED, self.requester)
        self.assertEqual(completed.status_code, 200)
        self.assertFalse(Earnings.objects.filter(offer=offer).exists())

        response = self.api.post(f'/api/offers/{offer.pk}/payment/', {'method': 'cash'}, format='json')

        self.assertEqual(response.status_code, 201)
        earnings = Earnings.objects.get(offer=offer)
        self.assertEqual(earnings.courier, self.courier)
        self.assertEqual(earnings.payment_method, 'cash')

    def test_payment_before_delivery_rejected(self):
        offer = make_offer(self.requester)

        self.api.force_authenticate(self.requester)
        response = self.api.post(f'/api/offers/{offer.pk}/payment/', {}, format='json')

        self.assertEqual(response.status_code, 400)
        self.assertFalse(Payment.objects.exists())


class TestTrackingAPI(TestCase):

    def setUp(self):
        self.api = APIClient()
        self.requester = make_requester()
        self.courier = make_courier()

    def test_courier_posts_location(self):
        self.api.force_authenticate(self.courier)
        response = self.api.post('/api/tracking/location/', {
            'coordinates': PICKUP,
            'tracking_type': 'heading_to_pickup',
            'battery_level': 55,
        }, format='json')

        self.assertEqual(response.status_code, 201)
        self.assertEqual(LocationRecord.objects.get().courier, self.courier)

    def test_requester_cannot_post_location(self):
        self.api.force_authenticate(self.requester)
        response = self.api.post('/api/tracking/location/', {'coordinates': PICKUP}, format='json')
        self.assertEqual(response.status_code, 403)

    def test_location_for_foreign_offer_not_found(self):
        offer = make_offer(self.requester)
        self.api.force_authenticate(self.courier)
        response = self.api.post('/api/tracking/location/', {
            'coordinates': PICKUP,
            'offer_id': str(offer.pk),
        }, format='json')
        self.assertEqual(response.status_code, 404)

    def test_history(self):
        LocationTracker.record(self.courier, PICKUP)
        LocationTracker.record(self.courier, DELIVERY)

        self.api.force_authenticate(self.courier)
        response = self.api.get('/api/tracking/location/', {'limit': 1})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.data), 1)
        self.assertEqual(response.data[0]['coordinates'], DELIVERY)

    def test_history_negative_limit_is_bad_request(self):
        LocationTracker.record(self.courier, PICKUP)
        self.api.force_authenticate(self.courier)

        response = self.api.get('/api/tracking/location/', {'limit': -1})

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data['code'], 'validation_error')

    def test_nearby(self):
        LocationTracker.record(self.courier, PICKUP)

        self.api.force_authenticate(self.requester)
        response = self.api.get('/api/tracking/nearby/', {
            'longitude': PICKUP[0],
            'latitude': PICKUP[1] + 0.001,
            'radius': 1000,
        })

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['couriers'][0]['courier_id'], self.courier.pk)

    def test_deactivate(self):
        LocationTracker.record(self.courier, PICKUP)
        self.api.force_authenticate(self.courier)
        response = self.api.post('/api/tracking/deactivate/', {}, format='json')
        self.assertEqual(response.data, {'deactivated': 1})

    def test_trajectory_hidden_from_strangers(self):
        offer = make_offer(self.requester)
        stranger = make_requester(phone='+15551000077')
        self.api.force_authenticate(stranger)
        response = self.api.get(f'/api/tracking/trajectory/{offer.pk}/')
        self.assertEqual(response.status_code, 403)


@override_settings(GOOGLE_MAPS_API_KEY='')
class TestGeocodeAPI(TestCase):

    def setUp(self):
        cache.clear()
        self.api = APIClient()
        self.api.force_authenticate(make_requester())

    @patch('logistics.services.geocoding.requests.get')
    def test_provider_failure_is_bad_gateway(self, mock_get):
        mock_get.side_effect = requests.ConnectionError('down')
        response = self.api.post('/api/geocode/', {'address': '350 5th Ave'}, format='json')

        self.assertEqual(response.status_code, 502)
        self.assertEqual(response.data['code'], 'geocoding_failed')

    def test_blank_address_is_bad_request(self):
        response = self.api.post('/api/geocode/', {'address': ''}, format='json')
        self.assertEqual(response.status_code, 400)

    def test_reverse_requires_valid_coordinates(self):
        response = self.api.post('/api/geocode/reverse/', {'coordinates': [0, 95]}, format='json')
        self.assertEqual(response.status_code, 400)
