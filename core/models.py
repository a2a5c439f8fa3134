"""
CORE App - Custom User Model for LASTMILE

Handles: Users (Requesters, Couriers, Businesses, Admins)
"""

import uuid
from django.contrib.auth.models import AbstractBaseUser, BaseUserManager, PermissionsMixin
from django.contrib.gis.db import models
from django.core.validators import RegexValidator


class UserRole(models.TextChoices):
    """User role enumeration."""
    ADMIN = 'ADMIN', 'Administrator'
    CLIENT = 'CLIENT', 'Individual requester'
    COURIER = 'COURIER', 'Courier'
    BUSINESS = 'BUSINESS', 'Business requester'


class VehicleType(models.TextChoices):
    """Vehicle classes known to the delivery time estimator."""
    BIKE = 'bike', 'Bike'
    SCOOTER = 'scooter', 'Scooter'
    CAR = 'car', 'Car'
    VAN = 'van', 'Van'


class UserManager(BaseUserManager):
    """Custom user manager for phone-based authentication."""

    def create_user(self, phone_number, password=None, **extra_fields):
        if not phone_number:
            raise ValueError('Phone number is required')

        user = self.model(phone_number=phone_number, **extra_fields)
        if password:
            user.set_password(password)
        else:
            user.set_unusable_password()
        user.save(using=self._db)
        return user

    def create_superuser(self, phone_number, password=None, **extra_fields):
        extra_fields.setdefault('is_staff', True)
        extra_fields.setdefault('is_superuser', True)
        extra_fields.setdefault('role', UserRole.ADMIN)

        if extra_fields.get('is_staff') is not True:
            raise ValueError('Superuser must have is_staff=True.')
        if extra_fields.get('is_superuser') is not True:
            raise ValueError('Superuser must have is_superuser=True.')

        return self.create_user(phone_number, password, **extra_fields)


class User(AbstractBaseUser, PermissionsMixin):
    """
    Custom User model using phone number as primary identifier.

    Key Business Logic:
    - CLIENT and BUSINESS users originate offers (requesters)
    - COURIER users accept and carry offers; vehicle_type drives time estimates
    - last_location mirrors the latest telemetry sample
    """

    # E.164 phone number
    phone_regex = RegexValidator(
        regex=r'^\+[1-9][0-9]{7,14}$',
        message="Format: +<country code><number> (E.164)"
    )

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    phone_number = models.CharField(
        max_length=16,
        unique=True,
        validators=[phone_regex],
        verbose_name="Phone number"
    )

    # Profile
    full_name = models.CharField(max_length=150, blank=True, verbose_name="Full name")
    email = models.EmailField(blank=True, verbose_name="Email")
    role = models.CharField(
        max_length=20,
        choices=UserRole.choices,
        default=UserRole.CLIENT,
        verbose_name="Role"
    )
    vehicle_type = models.CharField(
        max_length=10,
        choices=VehicleType.choices,
        null=True,
        blank=True,
        verbose_name="Vehicle type"
    )

    # Location (optional - last known position)
    last_location = models.PointField(
        null=True,
        blank=True,
        srid=4326,
        verbose_name="Last GPS position"
    )
    last_location_updated = models.DateTimeField(null=True, blank=True)

    # Django Auth Fields
    is_active = models.BooleanField(default=True)
    is_staff = models.BooleanField(default=False)
    date_joined = models.DateTimeField(auto_now_add=True)

    objects = UserManager()

    USERNAME_FIELD = 'phone_number'
    REQUIRED_FIELDS = []

    class Meta:
        verbose_name = "User"
        verbose_name_plural = "Users"
        ordering = ['-date_joined']

    def __str__(self):
        return f"{self.full_name or self.phone_number} ({self.role})"

    @property
    def is_courier(self) -> bool:
        return self.role == UserRole.COURIER

    @property
    def is_requester(self) -> bool:
        return self.role in (UserRole.CLIENT, UserRole.BUSINESS)

    @property
    def display_name(self) -> str:
        return self.full_name or self.phone_number

    @property
    def last_coordinates(self):
        """Last known position as [lng, lat], or None."""
        if self.last_location is None:
            return None
        return [self.last_location.x, self.last_location.y]
