"""
Tests for the geocoding gateway (HTTP calls mocked).
"""

from unittest.mock import MagicMock, patch

import requests
from django.core.cache import cache
from django.test import TestCase, override_settings

from core.exceptions import ExternalGeocodingFailure, InvalidAddress, InvalidCoordinates
from logistics.services.geocoding import GeocodingGateway


def fake_response(payload):
    response = MagicMock()
    response.json.return_value = payload
    response.raise_for_status.return_value = None
    return response


GOOGLE_OK = {
    'status': 'OK',
    'results': [{
        'formatted_address': '350 5th Ave, New York, NY 10118, USA',
        'geometry': {
            'location': {'lat': 40.7484, 'lng': -73.9857},
            'location_type': 'ROOFTOP',
        },
        'address_components': [
            {'long_name': '350', 'short_name': '350', 'types': ['street_number']},
            {'long_name': '5th Avenue', 'short_name': '5th Ave', 'types': ['route']},
            {'long_name': 'New York', 'short_name': 'New York', 'types': ['locality', 'political']},
            {'long_name': 'New York', 'short_name': 'NY', 'types': ['administrative_area_level_1', 'political']},
            {'long_name': '10118', 'short_name': '10118', 'types': ['postal_code']},
            {'long_name': 'United States', 'short_name': 'US', 'types': ['country', 'political']},
        ],
    }],
}

NOMINATIM_SEARCH = [{
    'lat': '40.7484',
    'lon': '-73.9857',
    'display_name': 'Empire State Building, 350, 5th Avenue, New York, 10118, United States',
    'importance': 0.82,
    'address': {
        'house_number': '350',
        'road': '5th Avenue',
        'city': 'New York',
        'state': 'New York',
        'postcode': '10118',
        'country': 'United States',
    },
}]

NOMINATIM_REVERSE = {
    'display_name': 'Empire State Building, 350, 5th Avenue, New York, 10118, United States',
    'address': {'house_number': '350', 'road': '5th Avenue', 'town': 'Manhattan', 'country': 'United States'},
}


@override_settings(GOOGLE_MAPS_API_KEY='', GEOCODING_TIMEOUT=3)
@patch('logistics.services.geocoding.requests.get')
class TestNominatimGeocoding(TestCase):

    def setUp(self):
        cache.clear()
        self.gateway = GeocodingGateway()

    def test_geocode(self, mock_get):
        mock_get.return_value = fake_response(NOMINATIM_SEARCH)

        result = self.gateway.geocode('350 5th Ave, New York')

        self.assertEqual(result['coordinates'], [-73.9857, 40.7484])
        self.assertEqual(result['provider'], 'nominatim')
        self.assertEqual(result['confidence'], 'high')
        self.assertEqual(result['components']['street'], '5th Avenue')
        self.assertEqual(result['components']['zip_code'], '10118')

        args, kwargs = mock_get.call_args
        self.assertTrue(args[0].endswith('/search'))
        self.assertEqual(kwargs['timeout'], 3)
        self.assertEqual(kwargs['params']['q'], '350 5th Ave, New York')
        self.assertIn('User-Agent', kwargs['headers'])

    def test_results_are_cached(self, mock_get):
        mock_get.return_value = fake_response(NOMINATIM_SEARCH)

        first = self.gateway.geocode('350 5th Ave, New York')
        second = self.gateway.geocode('  350 5TH AVE, New York ')

        self.assertEqual(first, second)
        self.assertEqual(mock_get.call_count, 1)

    def test_empty_address_rejected_without_request(self, mock_get):
        for value in ('', '   ', None, 42):
            with self.subTest(value=value):
                with self.assertRaises(InvalidAddress):
                    self.gateway.geocode(value)
        mock_get.assert_not_called()

    def test_no_result_is_failure(self, mock_get):
        mock_get.return_value = fake_response([])
        with self.assertRaises(ExternalGeocodingFailure):
            self.gateway.geocode('nowhere at all')

    def test_network_error_keeps_cause(self, mock_get):
        error = requests.ConnectionError('connection refused')
        mock_get.side_effect = error

        with self.assertRaises(ExternalGeocodingFailure) as ctx:
            self.gateway.geocode('350 5th Ave, New York')

        self.assertIs(ctx.exception.__cause__, error)
        self.assertIn('connection refused', ctx.exception.message)

    def test_timeout_is_failure(self, mock_get):
        mock_get.side_effect = requests.Timeout('read timed out')
        with self.assertRaises(ExternalGeocodingFailure):
            self.gateway.geocode('350 5th Ave, New York')

    def test_http_error_is_failure(self, mock_get):
        response = fake_response({})
        response.raise_for_status.side_effect = requests.HTTPError('503 Service Unavailable')
        mock_get.return_value = response
        with self.assertRaises(ExternalGeocodingFailure):
            self.gateway.geocode('350 5th Ave, New York')

    def test_reverse_geocode(self, mock_get):
        mock_get.return_value = fake_response(NOMINATIM_REVERSE)

        result = self.gateway.reverse_geocode([-73.9857, 40.7484])

        self.assertEqual(result['provider'], 'nominatim')
        self.assertEqual(result['components']['city'], 'Manhattan')
        params = mock_get.call_args.kwargs['params']
        self.assertEqual((params['lat'], params['lon']), (40.7484, -73.9857))

    def test_reverse_error_payload_is_failure(self, mock_get):
        mock_get.return_value = fake_response({'error': 'Unable to geocode'})
        with self.assertRaises(ExternalGeocodingFailure):
            self.gateway.reverse_geocode([0, 0])

    def test_reverse_invalid_coordinates(self, mock_get):
        with self.assertRaises(InvalidCoordinates):
            self.gateway.reverse_geocode([0, 120])
        mock_get.assert_not_called()

    def test_validate_address(self, mock_get):
        mock_get.return_value = fake_response(NOMINATIM_SEARCH)
        result = self.gateway.validate_address('350 5th Ave, New York')
        self.assertTrue(result['is_valid'])
        self.assertEqual(result['coordinates'], [-73.9857, 40.7484])

    def test_validate_address_reports_failure(self, mock_get):
        mock_get.side_effect = requests.ConnectionError('down')
        result = self.gateway.validate_address('350 5th Ave, New York')
        self.assertFalse(result['is_valid'])
        self.assertIn('down', result['error'])


@override_settings(GOOGLE_MAPS_API_KEY='test-key')
@patch('logistics.services.geocoding.requests.get')
class TestGoogleGeocoding(TestCase):

    def setUp(self):
        cache.clear()
        self.gateway = GeocodingGateway()

    def test_geocode(self, mock_get):
        mock_get.return_value = fake_response(GOOGLE_OK)

        result = self.gateway.geocode('350 5th Ave, New York')

        self.assertEqual(result['provider'], 'google')
        self.assertEqual(result['coordinates'], [-73.9857, 40.7484])
        self.assertEqual(result['confidence'], 'high')
        self.assertEqual(result['components'], {
            'street_number': '350',
            'street': '5th Avenue',
            'city': 'New York',
            'state': 'NY',
            'zip_code': '10118',
            'country': 'United States',
        })
        self.assertEqual(mock_get.call_args.kwargs['params']['key'], 'test-key')

    def test_zero_results_falls_back_to_nominatim(self, mock_get):
        mock_get.side_effect = [
            fake_response({'status': 'ZERO_RESULTS', 'results': []}),
            fake_response(NOMINATIM_SEARCH),
        ]

        result = self.gateway.geocode('350 5th Ave, New York')

        self.assertEqual(result['provider'], 'nominatim')
        self.assertEqual(mock_get.call_count, 2)

    def test_api_error_is_failure(self, mock_get):
        mock_get.return_value = fake_response({'status': 'REQUEST_DENIED', 'error_message': 'bad key'})
        with self.assertRaises(ExternalGeocodingFailure) as ctx:
            self.gateway.geocode('350 5th Ave, New York')
        self.assertIn('bad key', ctx.exception.message)

    def test_prefer_google_false_uses_nominatim(self, mock_get):
        mock_get.return_value = fake_response(NOMINATIM_SEARCH)
        result = self.gateway.geocode('350 5th Ave, New York', prefer_google=False)
        self.assertEqual(result['provider'], 'nominatim')

    def test_reverse_geocode(self, mock_get):
        mock_get.return_value = fake_response(GOOGLE_OK)
        result = self.gateway.reverse_geocode([-73.9857, 40.7484])
        self.assertEqual(result['address'], '350 5th Ave, New York, NY 10118, USA')
        self.assertEqual(mock_get.call_args.kwargs['params']['latlng'], '40.7484,-73.9857')


class TestNormalization(TestCase):

    def test_google_confidence(self):
        self.assertEqual(GeocodingGateway.google_confidence('ROOFTOP'), 'high')
        self.assertEqual(GeocodingGateway.google_confidence('APPROXIMATE'), 'low')
        self.assertEqual(GeocodingGateway.google_confidence(None), 'medium')

    def test_nominatim_confidence(self):
        self.assertEqual(GeocodingGateway.nominatim_confidence(0.9), 'high')
        self.assertEqual(GeocodingGateway.nominatim_confidence('0.5'), 'medium')
        self.assertEqual(GeocodingGateway.nominatim_confidence(0.1), 'low')
        self.assertEqual(GeocodingGateway.nominatim_confidence(None), 'low')

    @override_settings(GOOGLE_MAPS_API_KEY='')
    def test_calculate_route(self):
        route = GeocodingGateway().calculate_route([-73.9857, 40.7484], [-73.9680, 40.7851], 'car')
        self.assertEqual(route['method'], 'straight-line')
        self.assertEqual(route['vehicle_type'], 'car')
