"""
LOGISTICS App - Offers & Courier Telemetry for LASTMILE

Handles: Offers (delivery transactions), Status audit trail, Location records
"""

import uuid
from django.contrib.gis.db import models
from django.conf import settings
from decimal import Decimal

from .utils import DistanceTimeEstimator, DEFAULT_VEHICLE, point_coordinates


class OfferStatus(models.TextChoices):
    """Offer status enumeration."""
    OPEN = 'open', 'Open'
    ACCEPTED = 'accepted', 'Accepted'
    PICKED_UP = 'picked_up', 'Picked up'
    IN_TRANSIT = 'in_transit', 'In transit'
    DELIVERED = 'delivered', 'Delivered'
    COMPLETED = 'completed', 'Completed'
    CANCELLED = 'cancelled', 'Cancelled'


class ActorRole(models.TextChoices):
    """Role an actor plays on a given offer."""
    REQUESTER = 'requester', 'Requester'
    COURIER = 'courier', 'Courier'


class PaymentMethod(models.TextChoices):
    """Payment method enumeration."""
    CREDIT_CARD = 'credit_card', 'Credit card'
    DEBIT_CARD = 'debit_card', 'Debit card'
    PAYPAL = 'paypal', 'PayPal'
    STRIPE = 'stripe', 'Stripe'
    BANK_TRANSFER = 'bank_transfer', 'Bank transfer'
    WALLET = 'wallet', 'Platform wallet'
    CASH = 'cash', 'Cash'


class TrackingType(models.TextChoices):
    """Phase of delivery attached to a telemetry sample."""
    IDLE = 'idle', 'Idle'
    HEADING_TO_PICKUP = 'heading_to_pickup', 'Heading to pickup'
    AT_PICKUP = 'at_pickup', 'At pickup'
    HEADING_TO_DELIVERY = 'heading_to_delivery', 'Heading to delivery'
    AT_DELIVERY = 'at_delivery', 'At delivery'


class Offer(models.Model):
    """
    Core delivery transaction.

    Status only moves through logistics.lifecycle.DeliveryLifecycle;
    a pre_save signal rejects any other status write.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    # Actors
    requester = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='requested_offers',
        verbose_name="Requester"
    )
    courier = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='accepted_offers',
        verbose_name="Assigned courier"
    )

    title = models.CharField(max_length=200, verbose_name="Title")
    description = models.TextField(blank=True, verbose_name="Description")

    # Package
    package_weight = models.FloatField(null=True, blank=True, verbose_name="Weight (kg)")
    package_length = models.FloatField(null=True, blank=True, verbose_name="Length (cm)")
    package_width = models.FloatField(null=True, blank=True, verbose_name="Width (cm)")
    package_height = models.FloatField(null=True, blank=True, verbose_name="Height (cm)")
    is_fragile = models.BooleanField(default=False, verbose_name="Fragile")
    special_instructions = models.TextField(blank=True, verbose_name="Special instructions")

    # Pickup
    pickup_address = models.CharField(max_length=255, verbose_name="Pickup address")
    pickup_location = models.PointField(
        geography=True,
        srid=4326,
        verbose_name="Pickup point (GPS)"
    )
    pickup_contact_name = models.CharField(max_length=150, blank=True)
    pickup_contact_phone = models.CharField(max_length=20, blank=True)
    pickup_available_from = models.DateTimeField(null=True, blank=True)
    pickup_available_until = models.DateTimeField(null=True, blank=True)
    pickup_instructions = models.TextField(blank=True)

    # Delivery
    delivery_address = models.CharField(max_length=255, verbose_name="Delivery address")
    delivery_location = models.PointField(
        geography=True,
        srid=4326,
        verbose_name="Delivery point (GPS)"
    )
    delivery_contact_name = models.CharField(max_length=150, blank=True)
    delivery_contact_phone = models.CharField(max_length=20, blank=True)
    deliver_by = models.DateTimeField(null=True, blank=True, verbose_name="Delivery deadline")
    delivery_instructions = models.TextField(blank=True)

    # Payment
    payment_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00'),
        verbose_name="Offered amount"
    )
    currency = models.CharField(max_length=3, default='USD')
    payment_method = models.CharField(
        max_length=20,
        choices=PaymentMethod.choices,
        default=PaymentMethod.CREDIT_CARD,
        verbose_name="Payment method"
    )

    # Status
    status = models.CharField(
        max_length=20,
        choices=OfferStatus.choices,
        default=OfferStatus.OPEN,
        db_index=True,
        verbose_name="Status"
    )

    # Estimates & actuals (meters / minutes)
    estimated_distance = models.FloatField(null=True, blank=True)
    estimated_duration = models.FloatField(null=True, blank=True)
    actual_distance = models.FloatField(null=True, blank=True)
    actual_duration = models.FloatField(null=True, blank=True)

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    accepted_at = models.DateTimeField(null=True, blank=True)
    picked_up_at = models.DateTimeField(null=True, blank=True)
    in_transit_at = models.DateTimeField(null=True, blank=True)
    delivered_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        verbose_name = "Offer"
        verbose_name_plural = "Offers"
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status', 'created_at'], name='offer_status_created_idx'),
            models.Index(fields=['courier', 'status'], name='offer_courier_status_idx'),
            models.Index(fields=['requester', 'status'], name='offer_requester_status_idx'),
        ]

    def __str__(self):
        return f"{self.title} [{self.status}]"

    @property
    def pickup_coordinates(self):
        return point_coordinates(self.pickup_location)

    @property
    def delivery_coordinates(self):
        return point_coordinates(self.delivery_location)

    @property
    def distance(self):
        """Actual distance when known, else the estimate (meters)."""
        if self.actual_distance is not None:
            return self.actual_distance
        return self.estimated_distance

    @property
    def duration(self):
        """Actual duration when known, else the estimate (minutes)."""
        if self.actual_duration is not None:
            return self.actual_duration
        return self.estimated_duration

    def update_estimates(self, vehicle_type: str = None):
        """
        Fill estimated_distance/estimated_duration from the coordinates.

        Duration includes the pickup/hand-off buffer. Does not save.
        """
        vehicle_type = vehicle_type or DEFAULT_VEHICLE
        distance = DistanceTimeEstimator.estimate(self.pickup_coordinates, self.delivery_coordinates)
        self.estimated_distance = round(distance) if distance is not None else None
        self.estimated_duration = DistanceTimeEstimator.estimate_delivery_time(distance, vehicle_type)
        return self.estimated_distance, self.estimated_duration


class OfferStatusHistory(models.Model):
    """
    Audit trail of offer status changes.

    One row per successful lifecycle transition.
    """

    offer = models.ForeignKey(
        Offer,
        on_delete=models.CASCADE,
        related_name='status_history'
    )
    previous_status = models.CharField(max_length=20, choices=OfferStatus.choices)
    status = models.CharField(max_length=20, choices=OfferStatus.choices)
    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        related_name='offer_status_changes'
    )
    actor_role = models.CharField(max_length=20, choices=ActorRole.choices)
    notes = models.TextField(blank=True)
    location = models.PointField(srid=4326, null=True, blank=True)
    timestamp = models.DateTimeField()

    class Meta:
        verbose_name = "Status change"
        verbose_name_plural = "Status history"
        ordering = ['timestamp', 'id']

    def __str__(self):
        return f"{self.offer_id}: {self.previous_status} → {self.status}"

    @property
    def coordinates(self):
        return point_coordinates(self.location)


class LocationRecord(models.Model):
    """
    Courier telemetry sample.

    Append-only: only is_active is ever updated (bulk deactivation).
    Rows older than LOCATION_RETENTION_DAYS are purged by Celery.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    courier = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='location_records'
    )
    offer = models.ForeignKey(
        Offer,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='location_records'
    )

    location = models.PointField(
        geography=True,
        srid=4326,
        verbose_name="GPS position"
    )
    accuracy = models.FloatField(null=True, blank=True, verbose_name="Accuracy (m)")
    altitude = models.FloatField(null=True, blank=True)
    heading = models.FloatField(null=True, blank=True, verbose_name="Heading (0-360)")
    speed = models.FloatField(null=True, blank=True, verbose_name="Speed (m/s)")
    battery_level = models.FloatField(null=True, blank=True)
    device_info = models.JSONField(default=dict, blank=True)

    tracking_type = models.CharField(
        max_length=30,
        choices=TrackingType.choices,
        default=TrackingType.IDLE
    )
    is_active = models.BooleanField(default=True)
    timestamp = models.DateTimeField(db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = "Location record"
        verbose_name_plural = "Location records"
        ordering = ['-timestamp']
        indexes = [
            models.Index(fields=['courier', 'timestamp'], name='location_courier_ts_idx'),
            models.Index(fields=['offer', 'timestamp'], name='location_offer_ts_idx'),
            models.Index(fields=['is_active', 'timestamp'], name='location_active_ts_idx'),
        ]

    def __str__(self):
        return f"{self.courier_id} @ {self.coordinates} {self.timestamp:%Y-%m-%d %H:%M:%S}"

    @property
    def coordinates(self):
        return point_coordinates(self.location)
