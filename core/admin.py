"""
Django Admin configuration for CORE app.
"""

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from .models import User


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    """Custom admin for User model with phone-based auth."""

    list_display = (
        'phone_number',
        'full_name',
        'role',
        'vehicle_type',
        'last_location_updated',
        'is_active',
        'date_joined'
    )
    list_filter = ('role', 'vehicle_type', 'is_active', 'is_staff')
    search_fields = ('phone_number', 'full_name', 'email')
    ordering = ('-date_joined',)

    fieldsets = (
        (None, {
            'fields': ('phone_number', 'password')
        }),
        ('Profile', {
            'fields': ('full_name', 'email', 'role', 'vehicle_type')
        }),
        ('Location', {
            'fields': ('last_location', 'last_location_updated'),
            'classes': ('collapse',)
        }),
        ('Permissions', {
            'fields': ('is_active', 'is_staff', 'is_superuser', 'groups', 'user_permissions'),
            'classes': ('collapse',)
        }),
    )

    add_fieldsets = (
        (None, {
            'classes': ('wide',),
            'fields': ('phone_number', 'role', 'vehicle_type', 'password1', 'password2'),
        }),
    )

    readonly_fields = ('date_joined', 'last_location_updated')
