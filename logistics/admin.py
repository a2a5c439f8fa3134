"""
Django Admin configuration for LOGISTICS app.
"""

from django.contrib import admin
from django.contrib.gis.admin import GISModelAdmin
from .models import Offer, OfferStatusHistory, LocationRecord


class OfferStatusHistoryInline(admin.TabularInline):
    """Read-only audit trail on the offer page."""

    model = OfferStatusHistory
    extra = 0
    can_delete = False
    fields = ('timestamp', 'previous_status', 'status', 'actor', 'actor_role', 'notes')
    readonly_fields = fields

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Offer)
class OfferAdmin(GISModelAdmin):
    """Admin for Offer. Status is read-only: it only moves through the lifecycle."""

    list_display = (
        'short_id',
        'title',
        'requester',
        'courier',
        'status',
        'payment_amount',
        'currency',
        'estimated_distance',
        'created_at'
    )
    list_filter = ('status', 'payment_method', 'is_fragile', 'created_at')
    search_fields = ('id', 'title', 'pickup_address', 'delivery_address', 'requester__phone_number')
    ordering = ('-created_at',)
    date_hierarchy = 'created_at'
    raw_id_fields = ('requester', 'courier')
    inlines = [OfferStatusHistoryInline]

    readonly_fields = (
        'id', 'status', 'courier',
        'estimated_distance', 'estimated_duration', 'actual_distance', 'actual_duration',
        'created_at', 'updated_at', 'accepted_at', 'picked_up_at', 'in_transit_at',
        'delivered_at', 'completed_at', 'cancelled_at',
    )

    fieldsets = (
        ('Offer', {
            'fields': ('id', 'title', 'description', 'requester', 'courier', 'status')
        }),
        ('Package', {
            'fields': (
                'package_weight', 'package_length', 'package_width', 'package_height',
                'is_fragile', 'special_instructions'
            )
        }),
        ('Pickup', {
            'fields': (
                'pickup_address', 'pickup_location',
                'pickup_contact_name', 'pickup_contact_phone',
                'pickup_available_from', 'pickup_available_until', 'pickup_instructions'
            )
        }),
        ('Delivery', {
            'fields': (
                'delivery_address', 'delivery_location',
                'delivery_contact_name', 'delivery_contact_phone',
                'deliver_by', 'delivery_instructions'
            )
        }),
        ('Payment', {
            'fields': ('payment_amount', 'currency', 'payment_method')
        }),
        ('Metrics', {
            'fields': ('estimated_distance', 'estimated_duration', 'actual_distance', 'actual_duration')
        }),
        ('Timeline', {
            'fields': (
                'created_at', 'updated_at', 'accepted_at', 'picked_up_at', 'in_transit_at',
                'delivered_at', 'completed_at', 'cancelled_at'
            ),
            'classes': ('collapse',)
        }),
    )

    @admin.display(description='ID')
    def short_id(self, obj):
        return str(obj.id)[:8]


@admin.register(LocationRecord)
class LocationRecordAdmin(GISModelAdmin):
    """Admin for courier telemetry (append-only)."""

    list_display = ('courier', 'offer', 'coordinates', 'tracking_type', 'is_active', 'timestamp')
    list_filter = ('tracking_type', 'is_active')
    search_fields = ('courier__phone_number',)
    ordering = ('-timestamp',)
    date_hierarchy = 'timestamp'
    raw_id_fields = ('courier', 'offer')

    def has_change_permission(self, request, obj=None):
        return False
