"""
Finance App Serializers - Payments & Earnings
"""

from rest_framework import serializers

from .models import Earnings, EarningsAdjustment, EarningsPaymentStatus, Payment, PaymentStatus


class PaymentSerializer(serializers.ModelSerializer):
    """Serializer for Payment model."""

    payer_phone = serializers.CharField(source='payer.phone_number', read_only=True)
    payee_phone = serializers.CharField(source='payee.phone_number', read_only=True)

    class Meta:
        model = Payment
        fields = [
            'id', 'offer', 'payer', 'payer_phone', 'payee', 'payee_phone',
            'total_amount', 'platform_fee', 'payee_earnings', 'currency', 'method',
            'status', 'transaction_reference', 'failure_reason', 'processed_at',
            'retry_count', 'last_retry_at', 'can_retry',
            'created_at', 'updated_at'
        ]
        read_only_fields = fields


class EarningsAdjustmentSerializer(serializers.ModelSerializer):

    class Meta:
        model = EarningsAdjustment
        fields = ['id', 'amount', 'reason', 'applied_by', 'applied_at']


class EarningsSerializer(serializers.ModelSerializer):
    """Serializer for Earnings model, adjustments included."""

    courier_name = serializers.CharField(source='courier.display_name', read_only=True)
    offer_title = serializers.CharField(source='offer.title', read_only=True)
    adjustments = EarningsAdjustmentSerializer(many=True, read_only=True)
    earnings_per_hour = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)
    earnings_per_km = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = Earnings
        fields = [
            'id', 'courier', 'courier_name', 'offer', 'offer_title', 'payment',
            'gross_amount', 'platform_fee', 'net_amount', 'bonus_amount', 'bonus_reason',
            'final_amount', 'adjustments',
            'distance', 'duration', 'earnings_per_hour', 'earnings_per_km',
            'payment_status', 'paid_at', 'payment_method', 'currency',
            'earned_at', 'created_at', 'updated_at'
        ]
        read_only_fields = fields


class EarningsListSerializer(serializers.ModelSerializer):
    """Lightweight serializer for earnings listings."""

    class Meta:
        model = Earnings
        fields = ['id', 'offer', 'net_amount', 'final_amount', 'payment_status', 'earned_at']


class BonusSerializer(serializers.Serializer):
    """Bonus on an earnings record (Admin only)."""

    amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    reason = serializers.CharField(max_length=255, required=False, allow_blank=True, default='')


class AdjustmentSerializer(serializers.Serializer):
    """Signed adjustment on an earnings record (Admin only)."""

    amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    reason = serializers.CharField(max_length=255, allow_blank=True)


class EarningsStatusSerializer(serializers.Serializer):
    payment_status = serializers.ChoiceField(choices=EarningsPaymentStatus.choices)


class PaymentStatusSerializer(serializers.Serializer):
    """Gateway outcome reported for a payment (Admin only)."""

    status = serializers.ChoiceField(choices=PaymentStatus.choices)
    reference = serializers.CharField(max_length=100, required=False, allow_blank=True)
    reason = serializers.CharField(max_length=255, required=False, allow_blank=True, default='')
