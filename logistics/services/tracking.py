"""
Location Tracking for LASTMILE

Append-only courier telemetry: record, history, trajectory distance,
proximity search and bulk deactivation.
"""

import logging
from datetime import timedelta
from typing import List, Optional

from django.conf import settings
from django.contrib.gis.db.models.functions import Distance
from django.contrib.gis.measure import D
from django.db import transaction
from django.db.models import OuterRef, Subquery
from django.utils import timezone

from core.exceptions import DomainValidationError
from logistics.models import LocationRecord, TrackingType
from logistics.utils import haversine_distance, to_point

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 50
DEFAULT_OFFER_TRACKING_LIMIT = 100


class LocationTracker:
    """
    Service class for courier telemetry.

    Records older than LOCATION_RETENTION_DAYS are invisible to every
    query here and deleted by logistics.tasks.purge_expired_locations.
    """

    @staticmethod
    def retention_cutoff():
        return timezone.now() - timedelta(days=settings.LOCATION_RETENTION_DAYS)

    @classmethod
    def live_records(cls):
        """Records still inside the retention window."""
        return LocationRecord.objects.filter(timestamp__gte=cls.retention_cutoff())

    @staticmethod
    def _validate_sample(tracking_type, heading, battery_level):
        if tracking_type not in TrackingType.values:
            raise DomainValidationError(
                f"Invalid tracking type '{tracking_type}'. Must be one of: {', '.join(TrackingType.values)}"
            )
        if heading is not None and not 0 <= heading <= 360:
            raise DomainValidationError(f"Heading must be between 0 and 360, got {heading}")
        if battery_level is not None and not 0 <= battery_level <= 100:
            raise DomainValidationError(f"Battery level must be between 0 and 100, got {battery_level}")

    @staticmethod
    @transaction.atomic
    def record(courier, coordinates, offer=None, tracking_type: str = TrackingType.IDLE,
               accuracy: float = None, altitude: float = None, heading: float = None,
               speed: float = None, battery_level: float = None,
               device_info: dict = None, timestamp=None) -> LocationRecord:
        """
        Append a telemetry sample and update the courier's last known position.

        Raises:
            InvalidCoordinates: coordinates are malformed or out of range
            DomainValidationError: unknown tracking type, heading or battery out of range
        """
        point = to_point(coordinates)
        LocationTracker._validate_sample(tracking_type, heading, battery_level)
        timestamp = timestamp or timezone.now()

        record = LocationRecord.objects.create(
            courier=courier,
            offer=offer,
            location=point,
            accuracy=accuracy,
            altitude=altitude,
            heading=heading,
            speed=speed,
            battery_level=battery_level,
            device_info=device_info or {},
            tracking_type=tracking_type,
            is_active=True,
            timestamp=timestamp,
        )

        courier.__class__.objects.filter(pk=courier.pk).update(
            last_location=point,
            last_location_updated=timestamp,
        )
        courier.last_location = point
        courier.last_location_updated = timestamp

        logger.debug(f"[TRACKING] {courier.pk} @ [{point.x:.5f}, {point.y:.5f}] ({tracking_type})")
        return record

    @classmethod
    def history(cls, courier, limit: int = DEFAULT_HISTORY_LIMIT, start_time=None,
                end_time=None, offer=None) -> List[LocationRecord]:
        """Courier's records, newest first, capped at limit."""
        if limit < 1:
            raise DomainValidationError(f"History limit must be at least 1, got {limit}")
        qs = cls.live_records().filter(courier=courier)
        if start_time is not None:
            qs = qs.filter(timestamp__gte=start_time)
        if end_time is not None:
            qs = qs.filter(timestamp__lte=end_time)
        if offer is not None:
            qs = qs.filter(offer=offer)
        return list(qs.order_by('-timestamp', '-created_at')[:limit])

    @classmethod
    def trajectory_distance(cls, courier, offer=None, start_time=None) -> float:
        """
        Path length in meters: sum of Haversine segments between consecutive
        points in time order. 0.0 with fewer than two points.
        """
        qs = cls.live_records().filter(courier=courier)
        if offer is not None:
            qs = qs.filter(offer=offer)
        if start_time is not None:
            qs = qs.filter(timestamp__gte=start_time)

        points = [
            (location.x, location.y)
            for location in qs.order_by('timestamp', 'created_at').values_list('location', flat=True)
        ]
        if len(points) < 2:
            return 0.0
        return sum(haversine_distance(a, b) for a, b in zip(points, points[1:]))

    @staticmethod
    def nearby(coordinates, radius_m: float = None) -> List[dict]:
        """
        Couriers whose latest fresh, active sample lies within radius_m.

        Sorted by ascending distance.
        """
        center = to_point(coordinates)
        if radius_m is None:
            radius_m = settings.NEARBY_DEFAULT_RADIUS_M
        if radius_m < 0:
            raise DomainValidationError(f"Radius must be positive, got {radius_m}")

        fresh_since = timezone.now() - timedelta(seconds=settings.TRACKING_FRESHNESS_SECONDS)

        latest_per_courier = LocationRecord.objects.filter(
            courier=OuterRef('courier'),
            is_active=True,
            timestamp__gte=fresh_since,
        ).order_by('-timestamp', '-created_at').values('pk')[:1]

        candidates = LocationRecord.objects.filter(
            pk=Subquery(latest_per_courier),
            is_active=True,
            timestamp__gte=fresh_since,
            courier__is_active=True,
        ).annotate(
            distance=Distance('location', center)
        ).filter(
            distance__lte=D(m=radius_m)
        ).select_related('courier').order_by('distance')

        return [
            {
                'courier_id': record.courier_id,
                'courier_name': record.courier.display_name,
                'coordinates': record.coordinates,
                'distance': round(record.distance.m, 1),
                'tracking_type': record.tracking_type,
                'offer_id': record.offer_id,
                'timestamp': record.timestamp,
            }
            for record in candidates
        ]

    @staticmethod
    def deactivate(courier, offer=None) -> int:
        """
        Mark active records inactive. Without offer, every active record
        of the courier is deactivated. Returns the number of rows updated.
        """
        qs = LocationRecord.objects.filter(courier=courier, is_active=True)
        if offer is not None:
            qs = qs.filter(offer=offer)
        count = qs.update(is_active=False)
        logger.info(f"[TRACKING] Deactivated {count} records for courier {courier.pk}")
        return count

    @classmethod
    def delivery_tracking(cls, offer, limit: int = DEFAULT_OFFER_TRACKING_LIMIT) -> List[LocationRecord]:
        """Active points recorded for one offer, newest first."""
        qs = cls.live_records().filter(offer=offer, is_active=True)
        return list(qs.order_by('-timestamp', '-created_at')[:limit])

    @classmethod
    def purge_expired(cls) -> int:
        deleted, _ = LocationRecord.objects.filter(timestamp__lt=cls.retention_cutoff()).delete()
        return deleted
