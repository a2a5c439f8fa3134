"""
Django Admin configuration for FINANCE app.
"""

from django.contrib import admin
from .models import Payment, Earnings, EarningsAdjustment


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    """Admin for Payment."""

    list_display = (
        'transaction_reference',
        'offer',
        'payer',
        'payee',
        'total_amount',
        'platform_fee',
        'payee_earnings',
        'method',
        'status',
        'created_at'
    )
    list_filter = ('status', 'method', 'created_at')
    search_fields = ('transaction_reference', 'payer__phone_number', 'payee__phone_number')
    ordering = ('-created_at',)
    date_hierarchy = 'created_at'
    raw_id_fields = ('offer', 'payer', 'payee')
    readonly_fields = ('id', 'payee_earnings', 'processed_at', 'retry_count', 'last_retry_at', 'created_at', 'updated_at')


class EarningsAdjustmentInline(admin.TabularInline):
    """Adjustments are insert-only."""

    model = EarningsAdjustment
    extra = 0
    can_delete = False
    fields = ('amount', 'reason', 'applied_by', 'applied_at')
    readonly_fields = fields

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Earnings)
class EarningsAdmin(admin.ModelAdmin):
    """Admin for courier Earnings. Amounts are changed through LedgerEngine only."""

    list_display = (
        'courier',
        'offer',
        'net_amount',
        'bonus_amount',
        'final_amount',
        'payment_status',
        'payment_method',
        'earned_at'
    )
    list_filter = ('payment_status', 'payment_method', 'earned_at')
    search_fields = ('courier__phone_number', 'courier__full_name', 'offer__title')
    ordering = ('-earned_at',)
    date_hierarchy = 'earned_at'
    inlines = [EarningsAdjustmentInline]

    readonly_fields = (
        'id', 'courier', 'offer', 'payment',
        'gross_amount', 'platform_fee', 'net_amount', 'bonus_amount', 'bonus_reason',
        'final_amount', 'distance', 'duration', 'payment_status', 'paid_at',
        'payment_method', 'currency', 'earned_at', 'created_at', 'updated_at',
    )

    def has_add_permission(self, request):
        return False
