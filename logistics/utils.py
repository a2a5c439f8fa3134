"""
LASTMILE - Logistics Utilities
==============================
Great-circle distance, GIS point conversion, vehicle speed table
and delivery time estimation.

All coordinates are [longitude, latitude] pairs in decimal degrees,
all distances are meters and all durations are minutes.
"""

import math
from numbers import Real
from typing import List, Optional, Sequence, Tuple

from django.contrib.gis.geos import Point

from core.exceptions import InvalidCoordinates, UnknownVehicleClass


# ============================================
# CONFIGURATION CONSTANTS
# ============================================

# Mean Earth radius in meters
EARTH_RADIUS_M = 6_371_000

# Average speed per vehicle class (km/h). Van travels like a car.
AVERAGE_SPEEDS_KMH = {
    'bike': 15,
    'scooter': 25,
    'car': 30,
    'van': 30,
}

DEFAULT_VEHICLE = 'bike'

# Handling time added on top of travel time for pickup and hand-off (minutes)
MIN_HANDLING_BUFFER = 10
MAX_HANDLING_BUFFER = 20
HANDLING_BUFFER_RATIO = 0.3


# ============================================
# COORDINATE VALIDATION
# ============================================

def validate_coordinates(coordinates: Sequence) -> Tuple[float, float]:
    """
    Check a [lng, lat] pair and return it as a tuple of floats.

    Raises:
        InvalidCoordinates: not a finite numeric pair, or out of range
    """
    if isinstance(coordinates, (str, bytes)) or not isinstance(coordinates, (list, tuple)):
        raise InvalidCoordinates(f"Coordinates must be a [longitude, latitude] pair, got {coordinates!r}")
    if len(coordinates) != 2:
        raise InvalidCoordinates(f"Coordinates must have exactly 2 elements, got {len(coordinates)}")

    for value in coordinates:
        # bool is an int subclass
        if isinstance(value, bool) or not isinstance(value, Real):
            raise InvalidCoordinates(f"Coordinate values must be numbers, got {value!r}")
        if not math.isfinite(value):
            raise InvalidCoordinates(f"Coordinate values must be finite, got {value!r}")

    lng, lat = float(coordinates[0]), float(coordinates[1])
    if not -180 <= lng <= 180:
        raise InvalidCoordinates(f"Longitude must be between -180 and 180, got {lng}")
    if not -90 <= lat <= 90:
        raise InvalidCoordinates(f"Latitude must be between -90 and 90, got {lat}")
    return lng, lat


# ============================================
# DISTANCE CALCULATION (Haversine)
# ============================================

def haversine_distance(a: Sequence, b: Sequence) -> float:
    """
    Great-circle distance in meters between two [lng, lat] points.

    Returns 0.0 for identical points and is symmetric in its arguments.
    """
    lng1, lat1 = validate_coordinates(a)
    lng2, lat2 = validate_coordinates(b)

    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    delta_lat = math.radians(lat2 - lat1)
    delta_lng = math.radians(lng2 - lng1)

    h = (
        math.sin(delta_lat / 2) ** 2 +
        math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(delta_lng / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))

    return EARTH_RADIUS_M * c


def to_point(coordinates: Sequence) -> Point:
    """Validated [lng, lat] pair as a WGS84 Point."""
    lng, lat = validate_coordinates(coordinates)
    return Point(lng, lat, srid=4326)


def point_coordinates(point: Optional[Point]) -> Optional[List[float]]:
    """[lng, lat] of a Point, or None."""
    if point is None:
        return None
    return [point.x, point.y]


# ============================================
# SPEED MODEL
# ============================================

def get_average_speed(vehicle_type: str) -> int:
    """Average speed in km/h for a vehicle class."""
    try:
        return AVERAGE_SPEEDS_KMH[vehicle_type]
    except (KeyError, TypeError):
        raise UnknownVehicleClass(
            f"Unknown vehicle class {vehicle_type!r}. "
            f"Must be one of: {', '.join(AVERAGE_SPEEDS_KMH)}"
        ) from None


# ============================================
# DISTANCE / TIME ESTIMATION
# ============================================

class DistanceTimeEstimator:
    """
    Straight-line distance and travel time estimates for a pickup/delivery pair.

    No road network is involved: distance is the Haversine distance and
    duration assumes the vehicle's average speed over that distance.
    """

    @staticmethod
    def estimate(pickup: Optional[Sequence], delivery: Optional[Sequence]) -> Optional[float]:
        """Distance in meters, or None when either point is missing."""
        if pickup is None or delivery is None:
            return None
        return haversine_distance(pickup, delivery)

    @staticmethod
    def estimate_duration(distance: Optional[float], vehicle_type: str = DEFAULT_VEHICLE) -> Optional[float]:
        """Travel time in minutes, or None when distance is None."""
        speed_kmh = get_average_speed(vehicle_type)
        if distance is None:
            return None
        return (distance / 1000) / speed_kmh * 60

    @classmethod
    def estimate_delivery_time(cls, distance: Optional[float],
                               vehicle_type: str = DEFAULT_VEHICLE) -> Optional[int]:
        """
        Travel time plus a pickup/hand-off buffer, in whole minutes.

        The buffer is 30% of travel time, clamped to 10-20 minutes.
        """
        travel = cls.estimate_duration(distance, vehicle_type)
        if travel is None:
            return None
        travel = round(travel)
        buffer = max(MIN_HANDLING_BUFFER, min(MAX_HANDLING_BUFFER, travel * HANDLING_BUFFER_RATIO))
        return round(travel + buffer)


def get_routing_data(pickup: Sequence, delivery: Sequence, vehicle_type: str = DEFAULT_VEHICLE) -> dict:
    """
    Straight-line route summary between two points.

    Returns:
        dict: {
            "distance": float,        # meters
            "duration": float,        # travel minutes
            "delivery_time": int,     # travel + handling minutes
            "vehicle_type": str
        }
    """
    distance = DistanceTimeEstimator.estimate(pickup, delivery)
    return {
        "distance": round(distance, 1),
        "duration": round(DistanceTimeEstimator.estimate_duration(distance, vehicle_type), 1),
        "delivery_time": DistanceTimeEstimator.estimate_delivery_time(distance, vehicle_type),
        "vehicle_type": vehicle_type,
    }
