"""
Geocoding Gateway for LASTMILE

Address ↔ coordinate resolution through Google Geocoding (when a key is
configured) with Nominatim (OpenStreetMap) as the free fallback.
"""

import hashlib
import logging
from typing import Optional

import requests
from django.conf import settings
from django.core.cache import cache

from core.exceptions import ExternalGeocodingFailure, InvalidAddress
from logistics.utils import DEFAULT_VEHICLE, get_routing_data, validate_coordinates

logger = logging.getLogger(__name__)


GOOGLE_CONFIDENCE = {
    'ROOFTOP': 'high',
    'RANGE_INTERPOLATED': 'medium',
    'GEOMETRIC_CENTER': 'medium',
    'APPROXIMATE': 'low',
}

GOOGLE_COMPONENT_TYPES = [
    ('street_number', 'street_number', 'long_name'),
    ('route', 'street', 'long_name'),
    ('locality', 'city', 'long_name'),
    ('administrative_area_level_1', 'state', 'short_name'),
    ('postal_code', 'zip_code', 'long_name'),
    ('country', 'country', 'long_name'),
]


class _ZeroResults(Exception):
    """Google answered ZERO_RESULTS; the free provider gets a try."""


class GeocodingGateway:
    """
    Forward and reverse geocoding with normalized results.

    Every call has a bounded timeout and no retry. Provider and network
    errors surface as ExternalGeocodingFailure. Successful lookups are
    cached in the Django cache.
    """

    def __init__(self):
        self.google_api_key = settings.GOOGLE_MAPS_API_KEY
        self.google_url = settings.GOOGLE_GEOCODING_URL
        self.nominatim_base_url = settings.NOMINATIM_BASE_URL.rstrip('/')
        self.timeout = settings.GEOCODING_TIMEOUT
        self.cache_ttl = settings.GEOCODING_CACHE_TTL
        self.nominatim_headers = {'User-Agent': settings.GEOCODING_USER_AGENT}

    @property
    def google_enabled(self) -> bool:
        return bool(self.google_api_key)

    # ==========================================
    # Public API
    # ==========================================

    def geocode(self, address: str, prefer_google: bool = True) -> dict:
        """
        Resolve an address.

        Returns:
            dict: {coordinates: [lng, lat], formatted_address, confidence,
                   components, provider}
        """
        if not isinstance(address, str) or not address.strip():
            raise InvalidAddress("Address must be a non-empty string")
        address = address.strip()

        use_google = self.google_enabled and prefer_google
        cache_key = self._cache_key('geocode', address.lower(), use_google)
        cached = cache.get(cache_key)
        if cached is not None:
            return cached

        try:
            result = None
            if use_google:
                try:
                    result = self._geocode_with_google(address)
                except _ZeroResults:
                    logger.info(f"[GEOCODING] Google has no result for '{address}', trying Nominatim")
            if result is None:
                result = self._geocode_with_nominatim(address)
        except (requests.RequestException, ValueError, KeyError, IndexError, TypeError) as e:
            logger.error(f"[GEOCODING] Geocoding '{address}' failed: {e}")
            raise ExternalGeocodingFailure(f"Failed to geocode address: {e}") from e

        cache.set(cache_key, result, timeout=self.cache_ttl)
        return result

    def reverse_geocode(self, coordinates, prefer_google: bool = True) -> dict:
        """
        Resolve a [lng, lat] pair to an address.

        Returns:
            dict: {address, components, provider}
        """
        lng, lat = validate_coordinates(coordinates)

        use_google = self.google_enabled and prefer_google
        cache_key = self._cache_key('reverse', f"{lng:.6f},{lat:.6f}", use_google)
        cached = cache.get(cache_key)
        if cached is not None:
            return cached

        try:
            result = None
            if use_google:
                try:
                    result = self._reverse_with_google(lng, lat)
                except _ZeroResults:
                    logger.info(f"[GEOCODING] Google has no address at [{lng}, {lat}], trying Nominatim")
            if result is None:
                result = self._reverse_with_nominatim(lng, lat)
        except (requests.RequestException, ValueError, KeyError, IndexError, TypeError) as e:
            logger.error(f"[GEOCODING] Reverse geocoding [{lng}, {lat}] failed: {e}")
            raise ExternalGeocodingFailure(f"Failed to reverse geocode coordinates: {e}") from e

        cache.set(cache_key, result, timeout=self.cache_ttl)
        return result

    def validate_address(self, address: str) -> dict:
        """Geocode and report validity instead of raising."""
        try:
            result = self.geocode(address)
        except (InvalidAddress, ExternalGeocodingFailure) as e:
            return {
                'is_valid': False,
                'error': e.message,
                'address': address,
            }
        return {
            'is_valid': True,
            'address': result['formatted_address'],
            'coordinates': result['coordinates'],
            'confidence': result.get('confidence') or 'medium',
        }

    def calculate_route(self, origin, destination, vehicle_type: str = DEFAULT_VEHICLE) -> dict:
        """Straight-line route summary (no road network)."""
        route = get_routing_data(origin, destination, vehicle_type)
        route['method'] = 'straight-line'
        return route

    # ==========================================
    # Google
    # ==========================================

    def _google_request(self, params: dict) -> dict:
        response = requests.get(
            self.google_url,
            params={**params, 'key': self.google_api_key},
            timeout=self.timeout,
        )
        response.raise_for_status()
        data = response.json()

        status = data.get('status')
        if status == 'ZERO_RESULTS':
            raise _ZeroResults()
        if status != 'OK':
            message = data.get('error_message') or status
            raise ValueError(f"Google Geocoding API error: {message}")
        if not data.get('results'):
            raise _ZeroResults()
        return data['results'][0]

    def _geocode_with_google(self, address: str) -> dict:
        result = self._google_request({'address': address})
        location = result['geometry']['location']
        return {
            'coordinates': [float(location['lng']), float(location['lat'])],
            'formatted_address': result.get('formatted_address', address),
            'confidence': self.google_confidence(result['geometry'].get('location_type')),
            'components': self.parse_google_components(result.get('address_components', [])),
            'provider': 'google',
        }

    def _reverse_with_google(self, lng: float, lat: float) -> dict:
        result = self._google_request({'latlng': f"{lat},{lng}"})
        return {
            'address': result.get('formatted_address', ''),
            'components': self.parse_google_components(result.get('address_components', [])),
            'provider': 'google',
        }

    # ==========================================
    # Nominatim
    # ==========================================

    def _nominatim_request(self, endpoint: str, params: dict):
        response = requests.get(
            f"{self.nominatim_base_url}/{endpoint}",
            params={**params, 'format': 'json', 'addressdetails': 1},
            headers=self.nominatim_headers,
            timeout=self.timeout,
        )
        response.raise_for_status()
        return response.json()

    def _geocode_with_nominatim(self, address: str) -> dict:
        data = self._nominatim_request('search', {'q': address, 'limit': 1})
        if not data:
            raise ValueError("No results found for the given address")
        result = data[0]
        return {
            'coordinates': [float(result['lon']), float(result['lat'])],
            'formatted_address': result.get('display_name', address),
            'confidence': self.nominatim_confidence(result.get('importance')),
            'components': self.parse_nominatim_components(result.get('address') or {}),
            'provider': 'nominatim',
        }

    def _reverse_with_nominatim(self, lng: float, lat: float) -> dict:
        data = self._nominatim_request('reverse', {'lat': lat, 'lon': lng})
        if not data or 'error' in data:
            raise ValueError("No address found for the given coordinates")
        return {
            'address': data.get('display_name', ''),
            'components': self.parse_nominatim_components(data.get('address') or {}),
            'provider': 'nominatim',
        }

    # ==========================================
    # Normalization
    # ==========================================

    @staticmethod
    def google_confidence(location_type: Optional[str]) -> str:
        return GOOGLE_CONFIDENCE.get(location_type, 'medium')

    @staticmethod
    def nominatim_confidence(importance) -> str:
        if importance is None:
            return 'low'
        importance = float(importance)
        if importance >= 0.7:
            return 'high'
        if importance >= 0.4:
            return 'medium'
        return 'low'

    @staticmethod
    def parse_google_components(components: list) -> dict:
        parsed = {}
        for component in components:
            types = component.get('types', [])
            for google_type, key, name_field in GOOGLE_COMPONENT_TYPES:
                if google_type in types:
                    parsed[key] = component.get(name_field)
                    break
        return parsed

    @staticmethod
    def parse_nominatim_components(address: dict) -> dict:
        return {
            'street_number': address.get('house_number'),
            'street': address.get('road'),
            'city': address.get('city') or address.get('town') or address.get('village'),
            'state': address.get('state'),
            'zip_code': address.get('postcode'),
            'country': address.get('country'),
        }

    @staticmethod
    def _cache_key(kind: str, value: str, use_google: bool) -> str:
        digest = hashlib.sha1(value.encode('utf-8')).hexdigest()
        return f"geocoding:{kind}:{'google' if use_google else 'nominatim'}:{digest}"
