"""
Core App Serializers - User Management
"""

from rest_framework import serializers
from django.contrib.auth import get_user_model
from django.contrib.auth.password_validation import validate_password

from .models import UserRole

User = get_user_model()


class UserSerializer(serializers.ModelSerializer):
    """Serializer for User model (read operations)."""

    last_coordinates = serializers.ReadOnlyField()

    class Meta:
        model = User
        fields = [
            'id', 'phone_number', 'full_name', 'email', 'role', 'vehicle_type',
            'last_coordinates', 'last_location_updated', 'is_active', 'date_joined'
        ]
        read_only_fields = ['id', 'role', 'last_location_updated', 'date_joined']


class UserCreateSerializer(serializers.ModelSerializer):
    """Serializer for user registration."""

    password = serializers.CharField(
        write_only=True,
        required=True,
        validators=[validate_password]
    )

    class Meta:
        model = User
        fields = ['phone_number', 'password', 'full_name', 'email', 'role', 'vehicle_type']

    def validate_role(self, value):
        if value == UserRole.ADMIN:
            raise serializers.ValidationError("Admin accounts cannot self-register.")
        return value

    def validate(self, attrs):
        if attrs.get('role') == UserRole.COURIER and not attrs.get('vehicle_type'):
            raise serializers.ValidationError({'vehicle_type': "Couriers must declare a vehicle type."})
        return attrs

    def create(self, validated_data):
        password = validated_data.pop('password')
        return User.objects.create_user(password=password, **validated_data)
