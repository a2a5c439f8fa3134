"""
LASTMILE Core Tests
====================

Tests for:
1. Custom User Model (creation, roles, last position)
2. Registration serializer rules
3. Domain error → HTTP response mapping
4. User API
"""

from django.contrib.gis.geos import Point
from django.test import TestCase, SimpleTestCase
from rest_framework.test import APIClient

from core.exceptions import (
    DomainValidationError, ExternalGeocodingFailure, InsufficientRole,
    InvalidCoordinates, InvalidTransition, api_exception_handler,
)
from core.models import User, UserRole, VehicleType
from core.serializers import UserCreateSerializer


class TestUserModel(TestCase):
    """Tests for the custom User model."""

    def setUp(self):
        self.courier = User.objects.create_user(
            phone_number='+15550000001',
            password='testpass123',
            role=UserRole.COURIER,
            full_name='Courier Test',
            vehicle_type=VehicleType.SCOOTER,
        )
        self.client_user = User.objects.create_user(
            phone_number='+15550000002',
            password='testpass123',
            role=UserRole.CLIENT,
        )
        self.business = User.objects.create_user(
            phone_number='+15550000003',
            role=UserRole.BUSINESS,
            full_name='Business Test',
        )

    def test_user_creation_with_phone(self):
        """User should be created with phone number as identifier."""
        self.assertEqual(self.courier.phone_number, '+15550000001')
        self.assertTrue(self.courier.check_password('testpass123'))

    def test_user_without_password_cannot_log_in(self):
        self.assertFalse(self.business.has_usable_password())

    def test_phone_number_required(self):
        with self.assertRaises(ValueError):
            User.objects.create_user(phone_number='')

    def test_requester_roles(self):
        """CLIENT and BUSINESS users are requesters, couriers are not."""
        self.assertTrue(self.client_user.is_requester)
        self.assertTrue(self.business.is_requester)
        self.assertFalse(self.courier.is_requester)
        self.assertTrue(self.courier.is_courier)

    def test_display_name_falls_back_to_phone(self):
        self.assertEqual(self.courier.display_name, 'Courier Test')
        self.assertEqual(self.client_user.display_name, '+15550000002')

    def test_last_coordinates_none_until_tracked(self):
        self.assertIsNone(self.courier.last_coordinates)
        self.courier.last_location = Point(-73.9857, 40.7484, srid=4326)
        self.assertEqual(self.courier.last_coordinates, [-73.9857, 40.7484])

    def test_superuser_is_admin(self):
        admin = User.objects.create_superuser(phone_number='+15550000009', password='adminpass123')
        self.assertEqual(admin.role, UserRole.ADMIN)
        self.assertTrue(admin.is_staff)
        self.assertTrue(admin.is_superuser)


class TestUserCreateSerializer(TestCase):

    def test_courier_requires_vehicle_type(self):
        serializer = UserCreateSerializer(data={
            'phone_number': '+15550000010',
            'password': 'A-strong-pass-42',
            'role': UserRole.COURIER,
        })
        self.assertFalse(serializer.is_valid())
        self.assertIn('vehicle_type', serializer.errors)

    def test_admin_cannot_self_register(self):
        serializer = UserCreateSerializer(data={
            'phone_number': '+15550000011',
            'password': 'A-strong-pass-42',
            'role': UserRole.ADMIN,
        })
        self.assertFalse(serializer.is_valid())
        self.assertIn('role', serializer.errors)

    def test_invalid_phone_rejected(self):
        serializer = UserCreateSerializer(data={
            'phone_number': '0612345678',
            'password': 'A-strong-pass-42',
        })
        self.assertFalse(serializer.is_valid())
        self.assertIn('phone_number', serializer.errors)


class TestDomainErrors(SimpleTestCase):
    """Tests for the domain error hierarchy and its DRF mapping."""

    def test_validation_errors_are_value_errors(self):
        self.assertTrue(issubclass(InvalidCoordinates, DomainValidationError))
        self.assertTrue(issubclass(InvalidCoordinates, ValueError))

    def test_default_message(self):
        error = InvalidTransition()
        self.assertEqual(error.message, InvalidTransition.default_message)
        self.assertEqual(str(error), InvalidTransition.default_message)

    def test_handler_maps_status_codes(self):
        cases = [
            (InvalidCoordinates('bad'), 400),
            (InsufficientRole('nope'), 403),
            (InvalidTransition('no edge'), 409),
            (ExternalGeocodingFailure('down'), 502),
        ]
        for exc, expected in cases:
            with self.subTest(exc=exc.code):
                response = api_exception_handler(exc, {})
                self.assertEqual(response.status_code, expected)
                self.assertEqual(response.data, {'error': exc.message, 'code': exc.code})

    def test_handler_defers_other_errors(self):
        self.assertIsNone(api_exception_handler(RuntimeError('boom'), {}))


class TestUserAPI(TestCase):

    def setUp(self):
        self.api = APIClient()

    def test_register_courier(self):
        response = self.api.post('/api/users/', {
            'phone_number': '+15550000020',
            'password': 'A-strong-pass-42',
            'full_name': 'New Courier',
            'role': UserRole.COURIER,
            'vehicle_type': VehicleType.BIKE,
        }, format='json')
        self.assertEqual(response.status_code, 201)
        user = User.objects.get(phone_number='+15550000020')
        self.assertEqual(user.vehicle_type, VehicleType.BIKE)

    def test_me_requires_authentication(self):
        response = self.api.get('/api/users/me/')
        self.assertEqual(response.status_code, 401)

    def test_me_returns_profile(self):
        user = User.objects.create_user(phone_number='+15550000021', role=UserRole.CLIENT)
        self.api.force_authenticate(user)
        response = self.api.get('/api/users/me/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['phone_number'], '+15550000021')

    def test_list_is_admin_only(self):
        user = User.objects.create_user(phone_number='+15550000022', role=UserRole.CLIENT)
        self.api.force_authenticate(user)
        self.assertEqual(self.api.get('/api/users/').status_code, 403)
