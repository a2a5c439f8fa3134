"""
FINANCE App - Business Services for LASTMILE

Payment creation and the courier earnings ledger: derivation from completed
offers, bonuses, adjustments, payout status and aggregation queries.
"""

import enum
import logging
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Tuple

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction
from django.db.models import Avg, Count, Q, Sum
from django.db.models.functions import TruncDate
from django.utils import timezone

from core.exceptions import (
    DomainValidationError, InvalidBonusAmount, InvalidPaymentStatus, InvalidPeriod,
    MissingAdjustmentAmount, MissingAdjustmentReason, NoAssignedCourier,
    PaymentRequired, PaymentRetryUnavailable, TransactionNotCompleted,
)
from finance.models import (
    Earnings, EarningsAdjustment, EarningsPaymentMethod, EarningsPaymentStatus,
    Payment, PaymentStatus, to_money,
)
from logistics.models import OfferStatus, PaymentMethod
from logistics.utils import DEFAULT_VEHICLE, DistanceTimeEstimator

logger = logging.getLogger(__name__)


# ===========================================
# MAPPINGS
# ===========================================
PAYMENT_TO_EARNINGS_STATUS = {
    PaymentStatus.COMPLETED: EarningsPaymentStatus.PAID,
    PaymentStatus.PENDING: EarningsPaymentStatus.PENDING,
    PaymentStatus.PROCESSING: EarningsPaymentStatus.PROCESSING,
    PaymentStatus.FAILED: EarningsPaymentStatus.FAILED,
}

PAYMENT_METHOD_FAMILIES = {
    PaymentMethod.CREDIT_CARD: EarningsPaymentMethod.CARD,
    PaymentMethod.DEBIT_CARD: EarningsPaymentMethod.CARD,
    PaymentMethod.PAYPAL: EarningsPaymentMethod.DIGITAL,
    PaymentMethod.STRIPE: EarningsPaymentMethod.DIGITAL,
    PaymentMethod.BANK_TRANSFER: EarningsPaymentMethod.DIGITAL,
    PaymentMethod.WALLET: EarningsPaymentMethod.PLATFORM_CREDIT,
    PaymentMethod.CASH: EarningsPaymentMethod.CASH,
}

PERIODS = ('day', 'week', 'month', 'year')
TRAILING_DAYS = {'day': 1, 'week': 7, 'month': 30, 'year': 365}
PERIOD_WINDOWS = ('calendar', 'trailing')

RECENT_EARNINGS_LIMIT = 10
DEFAULT_TOP_EARNERS_LIMIT = 10
RETRYABLE_BATCH_SIZE = 100


class CreationOutcome(enum.Enum):
    CREATED = 'created'
    ALREADY_EXISTS = 'already_exists'


@dataclass(frozen=True)
class EarningsResult:
    """Outcome of create_from_offer. Both variants carry the stored record."""
    outcome: CreationOutcome
    earnings: Earnings

    @property
    def created(self) -> bool:
        return self.outcome is CreationOutcome.CREATED


def _parse_amount(value, error_class) -> Optional[Decimal]:
    if value is None or value == '':
        return None
    if isinstance(value, bool):
        raise error_class(f"Invalid amount: {value!r}")
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise error_class(f"Invalid amount: {value!r}") from None
    if not amount.is_finite():
        raise error_class(f"Invalid amount: {value!r}")
    return to_money(amount)


# ===========================================
# PAYMENTS
# ===========================================

class PaymentService:
    """
    Service class for offer payments.

    One payment per offer, created once the courier has delivered.
    """

    @staticmethod
    @transaction.atomic
    def create_for_offer(offer, method: str = None, currency: str = None) -> Payment:
        """
        Create the pending payment of a delivered or completed offer.

        Paying for an already completed offer also derives its earnings.

        Raises:
            DomainValidationError: offer not delivered yet, or already paid for
            NoAssignedCourier: offer has no courier
        """
        if offer.status not in (OfferStatus.DELIVERED, OfferStatus.COMPLETED):
            raise DomainValidationError(f"Cannot create payment for offer with status '{offer.status}'")
        if offer.courier_id is None:
            raise NoAssignedCourier()
        if Payment.objects.filter(offer=offer).exists():
            raise DomainValidationError(f"Payment already exists for offer {offer.pk}")
        if method is not None and method not in PaymentMethod.values:
            raise DomainValidationError(f"Invalid payment method '{method}'")

        total = to_money(offer.payment_amount)
        payment = Payment(
            offer=offer,
            payer=offer.requester,
            payee=offer.courier,
            total_amount=total,
            platform_fee=Payment.calculate_platform_fee(total),
            currency=currency or offer.currency or settings.LEDGER_CURRENCY,
            method=method or offer.payment_method,
        )
        payment.save()

        logger.info(
            f"[PAYMENT] Created {payment.transaction_reference} for offer {str(offer.pk)[:8]} | "
            f"total={payment.total_amount} fee={payment.platform_fee}"
        )

        # Completed before it was paid for: earnings were deferred until now
        if offer.status == OfferStatus.COMPLETED:
            LedgerEngine.create_from_offer(offer, payment)
        return payment

    @staticmethod
    @transaction.atomic
    def update_status(payment: Payment, new_status: str, reference: str = None,
                      reason: str = '') -> Payment:
        """
        Move a payment to new_status and mirror it on the offer's earnings.
        """
        if new_status not in PaymentStatus.values:
            raise InvalidPaymentStatus(
                f"Invalid payment status '{new_status}'. Must be one of: {', '.join(PaymentStatus.values)}"
            )

        payment = Payment.objects.select_for_update().get(pk=payment.pk)
        if new_status == PaymentStatus.PROCESSING:
            payment.mark_processing()
        elif new_status == PaymentStatus.COMPLETED:
            payment.mark_completed(reference)
        elif new_status == PaymentStatus.FAILED:
            payment.mark_failed(reason)
        else:
            payment.mark_pending()
        payment.save()

        earnings = Earnings.objects.filter(offer_id=payment.offer_id).first()
        if earnings is not None:
            LedgerEngine.update_payment_status(earnings, PAYMENT_TO_EARNINGS_STATUS[new_status])

        logger.info(f"[PAYMENT] {payment.transaction_reference} → {new_status}")
        return payment

    @staticmethod
    @transaction.atomic
    def retry(payment: Payment) -> Payment:
        """
        Re-submit a failed payment: counts the attempt and moves it to processing.

        Raises:
            PaymentRetryUnavailable: not failed, or retry limit reached
        """
        payment = Payment.objects.select_for_update().get(pk=payment.pk)
        if payment.status != PaymentStatus.FAILED:
            raise PaymentRetryUnavailable(
                f"Cannot retry payment {payment.transaction_reference} with status '{payment.status}'"
            )
        payment.increment_retry()
        payment.failure_reason = ''
        payment.mark_processing()
        payment.save()

        earnings = Earnings.objects.filter(offer_id=payment.offer_id).first()
        if earnings is not None:
            LedgerEngine.update_payment_status(earnings, EarningsPaymentStatus.PROCESSING)

        logger.info(
            f"[PAYMENT] Retry {payment.retry_count}/{settings.PAYMENT_MAX_RETRIES} "
            f"for {payment.transaction_reference}"
        )
        return payment

    @staticmethod
    def retryable(now=None, limit: int = RETRYABLE_BATCH_SIZE) -> List[Payment]:
        """Failed payments under the retry limit whose last attempt is older than the backoff."""
        now = now or timezone.now()
        backoff_start = now - timedelta(minutes=settings.PAYMENT_RETRY_BACKOFF_MINUTES)
        qs = Payment.objects.filter(
            status=PaymentStatus.FAILED,
            retry_count__lt=settings.PAYMENT_MAX_RETRIES,
        ).filter(
            Q(last_retry_at__isnull=True) | Q(last_retry_at__lt=backoff_start)
        ).select_related('offer', 'payer', 'payee').order_by('created_at')
        return list(qs[:limit])

    @staticmethod
    def stats(user=None) -> Dict[str, Any]:
        """
        Payment counts and amounts by status.

        Couriers are counted as payee, everyone else as payer.
        Without a user the whole platform is covered.
        """
        qs = Payment.objects.all()
        if user is not None:
            if user.is_courier:
                qs = qs.filter(payee=user)
            else:
                qs = qs.filter(payer=user)

        rows = qs.order_by().values('status').annotate(
            count=Count('id'),
            amount=Sum('total_amount'),
            average=Avg('total_amount'),
        )

        result = {
            'total_payments': 0,
            'total_amount': Decimal('0.00'),
            'completed_payments': 0,
            'completed_amount': Decimal('0.00'),
            'pending_payments': 0,
            'failed_payments': 0,
            'average_amount': Decimal('0.00'),
        }
        for row in rows:
            result['total_payments'] += row['count']
            result['total_amount'] += to_money(row['amount'])
            if row['status'] == PaymentStatus.COMPLETED:
                result['completed_payments'] = row['count']
                result['completed_amount'] = to_money(row['amount'])
                result['average_amount'] = to_money(row['average'])
            elif row['status'] in (PaymentStatus.PENDING, PaymentStatus.PROCESSING):
                result['pending_payments'] += row['count']
            elif row['status'] == PaymentStatus.FAILED:
                result['failed_payments'] = row['count']
        return result


# ===========================================
# EARNINGS LEDGER
# ===========================================

class LedgerEngine:
    """
    Service class for courier earnings.

    Mutations lock the earnings row and persist before returning;
    final_amount is recomputed from the database after each one.
    """

    # ==========================================
    # Creation
    # ==========================================

    @staticmethod
    def _find_existing(offer) -> Optional[Earnings]:
        return Earnings.objects.filter(offer=offer).first()

    @staticmethod
    def _fallback_metrics(offer) -> Tuple[Optional[float], Optional[float]]:
        """Offer's actual/estimated metrics, else a straight-line estimate."""
        distance, duration = offer.distance, offer.duration
        if distance is None:
            distance = DistanceTimeEstimator.estimate(offer.pickup_coordinates, offer.delivery_coordinates)
            distance = round(distance, 1) if distance is not None else None
        if duration is None and distance is not None:
            vehicle_type = getattr(offer.courier, 'vehicle_type', None) or DEFAULT_VEHICLE
            duration = round(DistanceTimeEstimator.estimate_duration(distance, vehicle_type), 1)
        return distance, duration

    @staticmethod
    def create_from_offer(offer, payment: Optional[Payment]) -> EarningsResult:
        """
        Derive the single earnings record of a completed offer.

        Idempotent: a second call returns the stored record with outcome
        ALREADY_EXISTS. Concurrent callers race on the unique offer key;
        the loser re-reads the winner's row.

        Raises:
            TransactionNotCompleted: offer is missing or not completed
            NoAssignedCourier: offer has no courier
            PaymentRequired: payment is None
        """
        if offer is None or offer.status != OfferStatus.COMPLETED:
            raise TransactionNotCompleted(
                f"Only completed offers can generate earnings (status: {getattr(offer, 'status', None)})"
            )
        if offer.courier_id is None:
            raise NoAssignedCourier("Offer must be accepted by a courier")
        if payment is None:
            raise PaymentRequired("Payment record is required")
        if payment.offer_id != offer.pk:
            raise DomainValidationError(f"Payment {payment.pk} does not belong to offer {offer.pk}")

        existing = LedgerEngine._find_existing(offer)
        if existing is not None:
            return EarningsResult(CreationOutcome.ALREADY_EXISTS, existing)

        distance, duration = LedgerEngine._fallback_metrics(offer)
        payment_status = PAYMENT_TO_EARNINGS_STATUS.get(payment.status, EarningsPaymentStatus.PENDING)
        net_amount = to_money(payment.payee_earnings)

        earnings = Earnings(
            courier_id=offer.courier_id,
            offer=offer,
            payment=payment,
            gross_amount=to_money(payment.total_amount or offer.payment_amount),
            platform_fee=to_money(payment.platform_fee),
            net_amount=net_amount,
            final_amount=net_amount,
            distance=distance,
            duration=duration,
            payment_status=payment_status,
            payment_method=PAYMENT_METHOD_FAMILIES.get(payment.method, EarningsPaymentMethod.CARD),
            currency=payment.currency,
            earned_at=offer.completed_at or timezone.now(),
        )
        if payment_status == EarningsPaymentStatus.PAID:
            earnings.paid_at = payment.processed_at or timezone.now()

        try:
            with transaction.atomic():
                earnings.save(force_insert=True)
        except IntegrityError:
            winner = Earnings.objects.get(offer=offer)
            logger.info(f"[LEDGER] Earnings for offer {str(offer.pk)[:8]} created concurrently, reusing")
            return EarningsResult(CreationOutcome.ALREADY_EXISTS, winner)

        logger.info(
            f"[LEDGER] Earnings created for offer {str(offer.pk)[:8]} | "
            f"courier={offer.courier_id} net={earnings.net_amount} status={earnings.payment_status}"
        )
        return EarningsResult(CreationOutcome.CREATED, earnings)

    # ==========================================
    # Mutations
    # ==========================================

    @staticmethod
    def _lock(earnings: Earnings) -> Earnings:
        return Earnings.objects.select_for_update().get(pk=earnings.pk)

    @staticmethod
    @transaction.atomic
    def add_bonus(earnings: Earnings, amount, reason: str = '') -> Earnings:
        """
        Add a strictly positive bonus. Bonuses accumulate; the reason is
        overwritten with the latest one.
        """
        amount = _parse_amount(amount, InvalidBonusAmount)
        if amount is None or amount <= 0:
            raise InvalidBonusAmount(f"Bonus amount must be positive, got {amount}")

        earnings = LedgerEngine._lock(earnings)
        earnings.bonus_amount = to_money(earnings.bonus_amount) + amount
        earnings.bonus_reason = reason or ''
        earnings.final_amount = earnings.compute_final_amount()
        earnings.save(update_fields=['bonus_amount', 'bonus_reason', 'final_amount', 'updated_at'])

        logger.info(f"[LEDGER] Bonus +{amount} on earnings {earnings.pk} → final {earnings.final_amount}")
        return earnings

    @staticmethod
    @transaction.atomic
    def add_adjustment(earnings: Earnings, amount, reason: str, applied_by=None) -> Earnings:
        """
        Append a signed, nonzero adjustment with a mandatory reason.
        """
        amount = _parse_amount(amount, MissingAdjustmentAmount)
        if amount is None or amount == 0:
            raise MissingAdjustmentAmount("Adjustment amount is required and must be nonzero")
        if not isinstance(reason, str) or not reason.strip():
            raise MissingAdjustmentReason("Adjustment reason is required")

        earnings = LedgerEngine._lock(earnings)
        EarningsAdjustment.objects.create(
            earnings=earnings,
            amount=amount,
            reason=reason.strip(),
            applied_by=applied_by,
            applied_at=timezone.now(),
        )
        earnings.final_amount = earnings.compute_final_amount()
        earnings.save(update_fields=['final_amount', 'updated_at'])

        logger.info(
            f"[LEDGER] Adjustment {amount:+} on earnings {earnings.pk} ({reason.strip()}) → final {earnings.final_amount}"
        )
        return earnings

    @staticmethod
    @transaction.atomic
    def update_payment_status(earnings: Earnings, new_status: str) -> Earnings:
        """
        Set the payout status. paid_at is stamped on the first move to
        'paid' and kept on every later call.
        """
        if new_status not in EarningsPaymentStatus.values:
            raise InvalidPaymentStatus(
                f"Invalid payment status '{new_status}'. "
                f"Must be one of: {', '.join(EarningsPaymentStatus.values)}"
            )

        earnings = LedgerEngine._lock(earnings)
        earnings.payment_status = new_status
        if new_status == EarningsPaymentStatus.PAID and earnings.paid_at is None:
            earnings.paid_at = timezone.now()
        earnings.save(update_fields=['payment_status', 'paid_at', 'updated_at'])

        logger.info(f"[LEDGER] Earnings {earnings.pk} payment status → {new_status}")
        return earnings

    # ==========================================
    # Aggregation
    # ==========================================

    @staticmethod
    def get_rider_earnings_summary(courier, start_date=None, end_date=None,
                                   payment_status: str = None) -> Dict[str, Any]:
        """
        Totals, averages and breakdowns of one courier's earnings.

        Filters on earned_at (inclusive bounds) and payment_status.
        """
        if payment_status is not None and payment_status not in EarningsPaymentStatus.values:
            raise InvalidPaymentStatus(f"Invalid payment status '{payment_status}'")

        qs = Earnings.objects.filter(courier=courier)
        if start_date is not None:
            qs = qs.filter(earned_at__gte=start_date)
        if end_date is not None:
            qs = qs.filter(earned_at__lte=end_date)
        if payment_status is not None:
            qs = qs.filter(payment_status=payment_status)

        agg = qs.aggregate(
            total_earnings=Sum('gross_amount'),
            total_fees=Sum('platform_fee'),
            total_net=Sum('net_amount'),
            total_bonus=Sum('bonus_amount'),
            total_final=Sum('final_amount'),
            total_deliveries=Count('id'),
            total_distance=Sum('distance'),
            total_duration=Sum('duration'),
            paid_earnings=Sum('net_amount', filter=Q(payment_status=EarningsPaymentStatus.PAID)),
            pending_earnings=Sum('net_amount', filter=Q(payment_status=EarningsPaymentStatus.PENDING)),
        )

        total_final = to_money(agg['total_final'])
        deliveries = agg['total_deliveries'] or 0
        distance = agg['total_distance'] or 0
        duration = agg['total_duration'] or 0

        summary = {
            'total_earnings': to_money(agg['total_earnings']),
            'total_fees': to_money(agg['total_fees']),
            'total_net': to_money(agg['total_net']),
            'total_bonus': to_money(agg['total_bonus']),
            'total_final': total_final,
            'total_deliveries': deliveries,
            'total_distance': round(distance, 1),
            'total_duration': round(duration, 1),
            'paid_earnings': to_money(agg['paid_earnings']),
            'pending_earnings': to_money(agg['pending_earnings']),
            'average_per_delivery': to_money(total_final / deliveries) if deliveries else Decimal('0.00'),
            'average_per_hour': (
                to_money(total_final / Decimal(str(duration)) * 60) if duration else Decimal('0.00')
            ),
            'average_per_km': (
                to_money(total_final / (Decimal(str(distance)) / 1000)) if distance else Decimal('0.00')
            ),
        }

        payment_methods = [
            {
                'method': row['payment_method'],
                'count': row['count'],
                'total': to_money(row['total']),
            }
            for row in qs.values('payment_method').annotate(
                count=Count('id'),
                total=Sum('net_amount'),
            ).order_by('payment_method')
        ]

        daily_earnings = [
            {
                'date': row['day'].isoformat(),
                'earnings': to_money(row['earnings']),
                'deliveries': row['deliveries'],
            }
            for row in qs.annotate(day=TruncDate('earned_at')).values('day').annotate(
                earnings=Sum('final_amount'),
                deliveries=Count('id'),
            ).order_by('day')
        ]

        recent_earnings = list(
            qs.select_related('offer').order_by('-earned_at')[:RECENT_EARNINGS_LIMIT]
        )

        return {
            'summary': summary,
            'payment_methods': payment_methods,
            'daily_earnings': daily_earnings,
            'recent_earnings': recent_earnings,
        }

    @staticmethod
    def period_window(period: str, window: str = None, now=None):
        """
        (start, end) of a day/week/month/year period ending now.

        window 'calendar' starts at the beginning of the current day,
        ISO week (Monday), month or year in the active time zone;
        'trailing' covers the last 1/7/30/365 days.
        """
        if period not in PERIODS:
            raise InvalidPeriod(f"Invalid period '{period}'. Must be one of: {', '.join(PERIODS)}")
        window = window or settings.EARNINGS_PERIOD_WINDOW
        if window not in PERIOD_WINDOWS:
            raise DomainValidationError(f"Invalid period window '{window}'. Must be one of: {', '.join(PERIOD_WINDOWS)}")

        now = now or timezone.now()
        if window == 'trailing':
            return now - timedelta(days=TRAILING_DAYS[period]), now

        local_now = timezone.localtime(now)
        start_of_day = local_now.replace(hour=0, minute=0, second=0, microsecond=0)
        if period == 'day':
            start = start_of_day
        elif period == 'week':
            start = start_of_day - timedelta(days=local_now.weekday())
        elif period == 'month':
            start = start_of_day.replace(day=1)
        else:
            start = start_of_day.replace(month=1, day=1)
        return start, now

    @staticmethod
    def get_earnings_for_period(courier, period: str, window: str = None) -> Dict[str, Any]:
        """Summary of the courier's earnings over a named period."""
        start, end = LedgerEngine.period_window(period, window)
        result = LedgerEngine.get_rider_earnings_summary(courier, start_date=start, end_date=end)
        result.update({
            'period': period,
            'start_date': start,
            'end_date': end,
        })
        return result

    @staticmethod
    def get_top_earners(period: str = 'month', limit: int = DEFAULT_TOP_EARNERS_LIMIT,
                        payment_status: str = None, window: str = None) -> List[Dict[str, Any]]:
        """
        Couriers ranked by total net earnings within the period.
        """
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
            raise DomainValidationError(f"Limit must be a positive integer, got {limit!r}")
        if payment_status is not None and payment_status not in EarningsPaymentStatus.values:
            raise InvalidPaymentStatus(f"Invalid payment status '{payment_status}'")

        start, end = LedgerEngine.period_window(period, window)
        qs = Earnings.objects.filter(earned_at__gte=start, earned_at__lte=end)
        if payment_status is not None:
            qs = qs.filter(payment_status=payment_status)

        rows = list(
            qs.values('courier').annotate(
                total_earnings=Sum('net_amount'),
                total_final=Sum('final_amount'),
                total_deliveries=Count('id'),
            ).order_by('-total_earnings', 'courier')[:limit]
        )

        User = get_user_model()
        couriers = User.objects.in_bulk([row['courier'] for row in rows])

        top_earners = []
        for row in rows:
            courier = couriers.get(row['courier'])
            total = to_money(row['total_earnings'])
            top_earners.append({
                'courier_id': row['courier'],
                'courier_name': courier.display_name if courier else '',
                'total_earnings': total,
                'total_final': to_money(row['total_final']),
                'total_deliveries': row['total_deliveries'],
                'average_per_delivery': to_money(total / row['total_deliveries']),
            })
        return top_earners
