"""
FINANCE App - Payments & Courier Earnings Ledger for LASTMILE

Handles: Payments, Earnings records, Earnings adjustments
"""

import uuid
from decimal import Decimal, ROUND_HALF_UP

from django.conf import settings
from django.db import models
from django.db.models import Sum
from django.utils import timezone

from core.exceptions import PaymentRetryUnavailable
from logistics.models import PaymentMethod

CENT = Decimal('0.01')


def to_money(value) -> Decimal:
    """Coerce to Decimal rounded to cents."""
    if value is None:
        return Decimal('0.00')
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


class PaymentStatus(models.TextChoices):
    """Payment status enumeration."""
    PENDING = 'pending', 'Pending'
    PROCESSING = 'processing', 'Processing'
    COMPLETED = 'completed', 'Completed'
    FAILED = 'failed', 'Failed'


class EarningsPaymentStatus(models.TextChoices):
    """Payout status of an earnings record."""
    PENDING = 'pending', 'Pending'
    PROCESSING = 'processing', 'Processing'
    PAID = 'paid', 'Paid'
    FAILED = 'failed', 'Failed'


class EarningsPaymentMethod(models.TextChoices):
    """Payment method family recorded on earnings."""
    CASH = 'cash', 'Cash'
    CARD = 'card', 'Card'
    DIGITAL = 'digital', 'Digital wallet'
    PLATFORM_CREDIT = 'platform_credit', 'Platform credit'


class Payment(models.Model):
    """
    Payment of one offer by its requester to the assigned courier.

    payee_earnings is always total_amount - platform_fee.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    offer = models.OneToOneField(
        'logistics.Offer',
        on_delete=models.PROTECT,
        related_name='payment',
        verbose_name="Offer"
    )
    payer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='payments_made',
        verbose_name="Payer"
    )
    payee = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='payments_received',
        verbose_name="Payee"
    )

    total_amount = models.DecimalField(max_digits=12, decimal_places=2, verbose_name="Total amount")
    platform_fee = models.DecimalField(max_digits=12, decimal_places=2, verbose_name="Platform fee")
    payee_earnings = models.DecimalField(max_digits=12, decimal_places=2, verbose_name="Courier earnings")
    currency = models.CharField(max_length=3, default='USD')
    method = models.CharField(
        max_length=20,
        choices=PaymentMethod.choices,
        default=PaymentMethod.CREDIT_CARD,
        verbose_name="Method"
    )

    status = models.CharField(
        max_length=20,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING,
        db_index=True,
        verbose_name="Status"
    )
    transaction_reference = models.CharField(max_length=100, blank=True, verbose_name="Gateway reference")
    failure_reason = models.CharField(max_length=255, blank=True)
    processed_at = models.DateTimeField(null=True, blank=True)
    retry_count = models.PositiveSmallIntegerField(default=0, verbose_name="Retry attempts")
    last_retry_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "Payment"
        verbose_name_plural = "Payments"
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['payee', 'status'], name='payment_payee_status_idx'),
            models.Index(fields=['payer', 'created_at'], name='payment_payer_created_idx'),
        ]

    def __str__(self):
        return f"{self.offer_id} | {self.total_amount} {self.currency} | {self.status}"

    def save(self, *args, **kwargs):
        self.total_amount = to_money(self.total_amount)
        self.platform_fee = to_money(self.platform_fee)
        self.payee_earnings = self.total_amount - self.platform_fee
        if not self.transaction_reference:
            self.transaction_reference = f"txn_{uuid.uuid4().hex[:16]}"
        super().save(*args, **kwargs)

    @staticmethod
    def calculate_platform_fee(amount) -> Decimal:
        """PLATFORM_FEE_PERCENT of amount, never below PLATFORM_FEE_MINIMUM."""
        amount = to_money(amount)
        fee = to_money(amount * Decimal(settings.PLATFORM_FEE_PERCENT) / 100)
        minimum = to_money(settings.PLATFORM_FEE_MINIMUM)
        return min(max(fee, minimum), amount)

    def mark_processing(self):
        self.status = PaymentStatus.PROCESSING
        self.processed_at = timezone.now()

    def mark_completed(self, reference: str = None):
        self.status = PaymentStatus.COMPLETED
        self.processed_at = timezone.now()
        if reference:
            self.transaction_reference = reference

    def mark_failed(self, reason: str = ''):
        self.status = PaymentStatus.FAILED
        self.failure_reason = reason[:255]

    def mark_pending(self):
        self.status = PaymentStatus.PENDING
        self.processed_at = None
        self.failure_reason = ''

    @property
    def can_retry(self) -> bool:
        return self.status == PaymentStatus.FAILED and self.retry_count < settings.PAYMENT_MAX_RETRIES

    def increment_retry(self):
        """Count a new gateway attempt. Does not save."""
        if self.retry_count >= settings.PAYMENT_MAX_RETRIES:
            raise PaymentRetryUnavailable(
                f"Maximum retry attempts ({settings.PAYMENT_MAX_RETRIES}) reached for {self.transaction_reference}"
            )
        self.retry_count += 1
        self.last_retry_at = timezone.now()


class Earnings(models.Model):
    """
    Courier compensation for one completed offer.

    final_amount = net_amount + bonus_amount + sum(adjustments.amount),
    stored and recomputed by LedgerEngine after every mutation.
    paid_at is set on the first transition into 'paid' and never changed.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    courier = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='earnings',
        verbose_name="Courier"
    )
    offer = models.OneToOneField(
        'logistics.Offer',
        on_delete=models.PROTECT,
        related_name='earnings',
        verbose_name="Offer"
    )
    payment = models.ForeignKey(
        Payment,
        on_delete=models.PROTECT,
        related_name='earnings',
        verbose_name="Payment"
    )

    # Breakdown
    gross_amount = models.DecimalField(max_digits=12, decimal_places=2)
    platform_fee = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    net_amount = models.DecimalField(max_digits=12, decimal_places=2)
    bonus_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    bonus_reason = models.CharField(max_length=255, blank=True)
    final_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))

    # Delivery metrics (meters / minutes)
    distance = models.FloatField(null=True, blank=True)
    duration = models.FloatField(null=True, blank=True)

    # Payout
    payment_status = models.CharField(
        max_length=20,
        choices=EarningsPaymentStatus.choices,
        default=EarningsPaymentStatus.PENDING,
        db_index=True
    )
    paid_at = models.DateTimeField(null=True, blank=True)
    payment_method = models.CharField(
        max_length=20,
        choices=EarningsPaymentMethod.choices,
        default=EarningsPaymentMethod.CARD
    )
    currency = models.CharField(max_length=3, default='USD')

    earned_at = models.DateTimeField(default=timezone.now, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "Earnings"
        verbose_name_plural = "Earnings"
        ordering = ['-earned_at']
        indexes = [
            models.Index(fields=['courier', 'earned_at'], name='earnings_courier_earned_idx'),
            models.Index(fields=['courier', 'payment_status'], name='earnings_courier_status_idx'),
        ]

    def __str__(self):
        return f"{self.courier_id} | {self.final_amount} {self.currency} | {self.payment_status}"

    @property
    def adjustments_total(self) -> Decimal:
        total = self.adjustments.aggregate(total=Sum('amount'))['total']
        return to_money(total)

    def compute_final_amount(self) -> Decimal:
        return to_money(self.net_amount) + to_money(self.bonus_amount) + self.adjustments_total

    @property
    def earnings_per_hour(self) -> Decimal:
        if not self.duration:
            return Decimal('0.00')
        return to_money(self.final_amount / Decimal(str(self.duration)) * 60)

    @property
    def earnings_per_km(self) -> Decimal:
        if not self.distance:
            return Decimal('0.00')
        return to_money(self.final_amount / (Decimal(str(self.distance)) / 1000))


class EarningsAdjustment(models.Model):
    """Signed manual correction on an earnings record. Insert-only."""

    earnings = models.ForeignKey(
        Earnings,
        on_delete=models.CASCADE,
        related_name='adjustments'
    )
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    reason = models.CharField(max_length=255)
    applied_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='applied_adjustments'
    )
    applied_at = models.DateTimeField(default=timezone.now)

    class Meta:
        verbose_name = "Earnings adjustment"
        verbose_name_plural = "Earnings adjustments"
        ordering = ['applied_at', 'id']

    def __str__(self):
        sign = '+' if self.amount >= 0 else ''
        return f"{sign}{self.amount} ({self.reason})"
