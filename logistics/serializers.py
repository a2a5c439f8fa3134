"""
Logistics App Serializers - Offers, Tracking & Geocoding
"""

from rest_framework import serializers

from core.models import VehicleType
from .models import (
    LocationRecord, Offer, OfferStatus, OfferStatusHistory, PaymentMethod, TrackingType,
)
from .utils import to_point, validate_coordinates
from core.exceptions import InvalidCoordinates


class CoordinatesField(serializers.ListField):
    """[longitude, latitude] pair validated against the shared range rules."""

    def __init__(self, **kwargs):
        kwargs.setdefault('child', serializers.FloatField())
        kwargs.setdefault('min_length', 2)
        kwargs.setdefault('max_length', 2)
        super().__init__(**kwargs)

    def to_internal_value(self, data):
        value = super().to_internal_value(data)
        try:
            return list(validate_coordinates(value))
        except InvalidCoordinates as e:
            raise serializers.ValidationError(e.message)


class OfferSerializer(serializers.ModelSerializer):
    """Full serializer for Offer model."""

    requester_name = serializers.CharField(source='requester.display_name', read_only=True)
    courier_name = serializers.CharField(source='courier.display_name', read_only=True, default=None)
    pickup_coordinates = serializers.ReadOnlyField()
    delivery_coordinates = serializers.ReadOnlyField()

    class Meta:
        model = Offer
        fields = [
            'id', 'requester', 'requester_name', 'courier', 'courier_name',
            'title', 'description',
            'package_weight', 'package_length', 'package_width', 'package_height',
            'is_fragile', 'special_instructions',
            'pickup_address', 'pickup_coordinates', 'pickup_contact_name', 'pickup_contact_phone',
            'pickup_available_from', 'pickup_available_until', 'pickup_instructions',
            'delivery_address', 'delivery_coordinates', 'delivery_contact_name', 'delivery_contact_phone',
            'deliver_by', 'delivery_instructions',
            'payment_amount', 'currency', 'payment_method', 'status',
            'estimated_distance', 'estimated_duration', 'actual_distance', 'actual_duration',
            'created_at', 'updated_at', 'accepted_at', 'picked_up_at', 'in_transit_at',
            'delivered_at', 'completed_at', 'cancelled_at',
        ]
        read_only_fields = fields


class OfferCreateSerializer(serializers.ModelSerializer):
    """Serializer for publishing a new offer."""

    pickup_coordinates = CoordinatesField(write_only=True)
    delivery_coordinates = CoordinatesField(write_only=True)
    payment_amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0)
    payment_method = serializers.ChoiceField(choices=PaymentMethod.choices, default=PaymentMethod.CREDIT_CARD)

    class Meta:
        model = Offer
        fields = [
            'title', 'description',
            'package_weight', 'package_length', 'package_width', 'package_height',
            'is_fragile', 'special_instructions',
            'pickup_address', 'pickup_coordinates', 'pickup_contact_name', 'pickup_contact_phone',
            'pickup_available_from', 'pickup_available_until', 'pickup_instructions',
            'delivery_address', 'delivery_coordinates', 'delivery_contact_name', 'delivery_contact_phone',
            'deliver_by', 'delivery_instructions',
            'payment_amount', 'currency', 'payment_method',
        ]

    def create(self, validated_data):
        pickup = validated_data.pop('pickup_coordinates')
        delivery = validated_data.pop('delivery_coordinates')
        offer = Offer(
            pickup_location=to_point(pickup),
            delivery_location=to_point(delivery),
            **validated_data
        )
        offer.update_estimates()
        offer.save()
        return offer


class OfferTransitionSerializer(serializers.Serializer):
    """Serializer for a status transition request."""

    status = serializers.ChoiceField(choices=OfferStatus.choices)
    notes = serializers.CharField(required=False, allow_blank=True, default='')
    coordinates = CoordinatesField(required=False)


class OfferStatusHistorySerializer(serializers.ModelSerializer):

    actor_name = serializers.CharField(source='actor.display_name', read_only=True, default=None)
    coordinates = serializers.ReadOnlyField()

    class Meta:
        model = OfferStatusHistory
        fields = [
            'previous_status', 'status', 'actor', 'actor_name', 'actor_role',
            'notes', 'coordinates', 'timestamp',
        ]


class EstimateSerializer(serializers.Serializer):
    """Input for a distance/time estimate."""

    pickup_coordinates = CoordinatesField()
    delivery_coordinates = CoordinatesField()
    vehicle_type = serializers.ChoiceField(choices=VehicleType.choices, required=False)


# ===========================================
# TRACKING
# ===========================================

class LocationRecordSerializer(serializers.ModelSerializer):
    """Read serializer for telemetry samples."""

    coordinates = serializers.ReadOnlyField()

    class Meta:
        model = LocationRecord
        fields = [
            'id', 'courier', 'offer', 'coordinates', 'accuracy', 'altitude',
            'heading', 'speed', 'battery_level', 'device_info',
            'tracking_type', 'is_active', 'timestamp',
        ]


class LocationUpdateSerializer(serializers.Serializer):
    """Telemetry push from a courier device."""

    coordinates = CoordinatesField()
    offer_id = serializers.UUIDField(required=False, allow_null=True)
    tracking_type = serializers.ChoiceField(choices=TrackingType.choices, default=TrackingType.IDLE)
    accuracy = serializers.FloatField(required=False, allow_null=True, min_value=0)
    altitude = serializers.FloatField(required=False, allow_null=True)
    heading = serializers.FloatField(required=False, allow_null=True, min_value=0, max_value=360)
    speed = serializers.FloatField(required=False, allow_null=True, min_value=0)
    battery_level = serializers.FloatField(required=False, allow_null=True, min_value=0, max_value=100)
    device_info = serializers.DictField(required=False)
    timestamp = serializers.DateTimeField(required=False)


class NearbySerializer(serializers.Serializer):
    """Query parameters for proximity search."""

    longitude = serializers.FloatField()
    latitude = serializers.FloatField()
    radius = serializers.FloatField(required=False, min_value=0)


# ===========================================
# GEOCODING
# ===========================================

class GeocodeSerializer(serializers.Serializer):
    address = serializers.CharField(max_length=500)


class ReverseGeocodeSerializer(serializers.Serializer):
    coordinates = CoordinatesField()
