"""
LASTMILE Finance Tests
=======================

Tests for:
1. PaymentService (fee, creation rules, status sync)
2. LedgerEngine creation (idempotence, preconditions, concurrency)
3. Bonuses, adjustments and payout status
4. Earnings summary, periods and top earners
5. Earnings API
"""

from datetime import datetime, timedelta, timezone as dt_timezone
from decimal import Decimal
from unittest.mock import patch

from django.test import TestCase, override_settings
from django.utils import timezone
from rest_framework.test import APIClient

from core.exceptions import (
    DomainValidationError, InvalidBonusAmount, InvalidPaymentStatus, InvalidPeriod,
    MissingAdjustmentAmount, MissingAdjustmentReason, NoAssignedCourier,
    PaymentRequired, PaymentRetryUnavailable, TransactionNotCompleted,
)
from core.models import User, UserRole
from finance.models import (
    Earnings, EarningsAdjustment, EarningsPaymentMethod, EarningsPaymentStatus,
    Payment, PaymentStatus,
)
from finance.services import CreationOutcome, LedgerEngine, PaymentService
from logistics.models import Offer, OfferStatus
from logistics.tests.fixtures import advance, complete, make_courier, make_offer, make_requester


def completed_offer(requester, courier, amount='25.50', method=None, complete_it=True):
    """Delivered offer with its payment, completed unless told otherwise."""
    offer = make_offer(requester, amount=amount)
    advance(offer, courier)
    payment = PaymentService.create_for_offer(offer, method=method)
    if complete_it:
        complete(offer, requester)
    return offer, payment


class TestPaymentService(TestCase):
    """Tests for payment creation and status updates."""

    def setUp(self):
        self.requester = make_requester()
        self.courier = make_courier()

    def test_platform_fee_percent(self):
        self.assertEqual(Payment.calculate_platform_fee(Decimal('25.50')), Decimal('2.55'))

    def test_platform_fee_minimum(self):
        self.assertEqual(Payment.calculate_platform_fee(Decimal('3.00')), Decimal('0.50'))

    def test_platform_fee_never_exceeds_amount(self):
        self.assertEqual(Payment.calculate_platform_fee(Decimal('0.20')), Decimal('0.20'))

    def test_create_for_delivered_offer(self):
        offer, payment = completed_offer(self.requester, self.courier, complete_it=False)

        self.assertEqual(payment.total_amount, Decimal('25.50'))
        self.assertEqual(payment.platform_fee, Decimal('2.55'))
        self.assertEqual(payment.payee_earnings, Decimal('22.95'))
        self.assertEqual(payment.payer, self.requester)
        self.assertEqual(payment.payee, self.courier)
        self.assertEqual(payment.status, PaymentStatus.PENDING)
        self.assertTrue(payment.transaction_reference.startswith('txn_'))

    def test_cannot_pay_undelivered_offer(self):
        offer = make_offer(self.requester)
        advance(offer, self.courier, until=OfferStatus.IN_TRANSIT)
        with self.assertRaises(DomainValidationError):
            PaymentService.create_for_offer(offer)

    def test_one_payment_per_offer(self):
        offer, _ = completed_offer(self.requester, self.courier, complete_it=False)
        with self.assertRaises(DomainValidationError):
            PaymentService.create_for_offer(offer)

    def test_unknown_method_rejected(self):
        offer = make_offer(self.requester)
        advance(offer, self.courier)
        with self.assertRaises(DomainValidationError):
            PaymentService.create_for_offer(offer, method='barter')

    def test_completed_payment_marks_earnings_paid(self):
        offer, payment = completed_offer(self.requester, self.courier)
        earnings = LedgerEngine.create_from_offer(offer, payment).earnings

        PaymentService.update_status(payment, PaymentStatus.COMPLETED, reference='gw_123')

        payment.refresh_from_db()
        earnings.refresh_from_db()
        self.assertEqual(payment.transaction_reference, 'gw_123')
        self.assertIsNotNone(payment.processed_at)
        self.assertEqual(earnings.payment_status, EarningsPaymentStatus.PAID)
        self.assertIsNotNone(earnings.paid_at)

    def test_failed_payment_keeps_reason(self):
        offer, payment = completed_offer(self.requester, self.courier, complete_it=False)
        PaymentService.update_status(payment, PaymentStatus.FAILED, reason='Card declined')
        payment.refresh_from_db()
        self.assertEqual(payment.status, PaymentStatus.FAILED)
        self.assertEqual(payment.failure_reason, 'Card declined')

    def test_invalid_payment_status(self):
        _, payment = completed_offer(self.requester, self.courier, complete_it=False)
        with self.assertRaises(InvalidPaymentStatus):
            PaymentService.update_status(payment, 'refunded')

    def test_back_to_pending_clears_outcome(self):
        _, payment = completed_offer(self.requester, self.courier, complete_it=False)
        PaymentService.update_status(payment, PaymentStatus.COMPLETED, reference='gw_7')
        PaymentService.update_status(payment, PaymentStatus.FAILED, reason='Chargeback')

        PaymentService.update_status(payment, PaymentStatus.PENDING)

        payment.refresh_from_db()
        self.assertEqual(payment.status, PaymentStatus.PENDING)
        self.assertIsNone(payment.processed_at)
        self.assertEqual(payment.failure_reason, '')


class TestEarningsCreation(TestCase):
    """Tests for LedgerEngine.create_from_offer."""

    def setUp(self):
        self.requester = make_requester()
        self.courier = make_courier()
        self.offer, self.payment = completed_offer(self.requester, self.courier, method='debit_card')

    def test_breakdown_from_payment(self):
        result = LedgerEngine.create_from_offer(self.offer, self.payment)
        earnings = result.earnings

        self.assertTrue(result.created)
        self.assertEqual(earnings.gross_amount, Decimal('25.50'))
        self.assertEqual(earnings.platform_fee, Decimal('2.55'))
        self.assertEqual(earnings.net_amount, Decimal('22.95'))
        self.assertEqual(earnings.final_amount, Decimal('22.95'))
        self.assertEqual(earnings.payment_status, EarningsPaymentStatus.PENDING)
        self.assertEqual(earnings.payment_method, EarningsPaymentMethod.CARD)
        self.assertEqual(earnings.earned_at, self.offer.completed_at)

    def test_metrics_fall_back_to_estimates(self):
        earnings = LedgerEngine.create_from_offer(self.offer, self.payment).earnings
        self.assertGreater(earnings.distance, 3000)
        self.assertGreater(earnings.duration, 0)

    def test_completed_payment_is_paid(self):
        PaymentService.update_status(self.payment, PaymentStatus.COMPLETED)
        self.payment.refresh_from_db()

        earnings = LedgerEngine.create_from_offer(self.offer, self.payment).earnings

        self.assertEqual(earnings.payment_status, EarningsPaymentStatus.PAID)
        self.assertEqual(earnings.paid_at, self.payment.processed_at)

    def test_idempotent(self):
        first = LedgerEngine.create_from_offer(self.offer, self.payment)
        second = LedgerEngine.create_from_offer(self.offer, self.payment)

        self.assertEqual(second.outcome, CreationOutcome.ALREADY_EXISTS)
        self.assertEqual(second.earnings.pk, first.earnings.pk)
        self.assertEqual(Earnings.objects.count(), 1)

    def test_concurrent_creation_returns_winner(self):
        first = LedgerEngine.create_from_offer(self.offer, self.payment)

        # Simulates a racer that checked before the first insert committed
        with patch.object(LedgerEngine, '_find_existing', return_value=None):
            second = LedgerEngine.create_from_offer(self.offer, self.payment)

        self.assertFalse(second.created)
        self.assertEqual(second.earnings.pk, first.earnings.pk)
        self.assertEqual(Earnings.objects.count(), 1)

    def test_offer_not_completed(self):
        offer, payment = completed_offer(
            self.requester, make_courier(phone='+15552000050'), complete_it=False
        )
        with self.assertRaises(TransactionNotCompleted):
            LedgerEngine.create_from_offer(offer, payment)
        with self.assertRaises(TransactionNotCompleted):
            LedgerEngine.create_from_offer(None, payment)

    def test_offer_without_courier(self):
        offer = Offer(requester=self.requester, status=OfferStatus.COMPLETED)
        with self.assertRaises(NoAssignedCourier):
            LedgerEngine.create_from_offer(offer, self.payment)

    def test_payment_required(self):
        with self.assertRaises(PaymentRequired):
            LedgerEngine.create_from_offer(self.offer, None)
        self.assertFalse(Earnings.objects.exists())

    def test_payment_of_another_offer_rejected(self):
        _, other_payment = completed_offer(self.requester, make_courier(phone='+15552000051'))
        with self.assertRaises(DomainValidationError):
            LedgerEngine.create_from_offer(self.offer, other_payment)


class TestEarningsMutations(TestCase):
    """Tests for bonuses, adjustments and payout status."""

    def setUp(self):
        self.requester = make_requester()
        self.courier = make_courier()
        self.admin = User.objects.create_user(phone_number='+15559000001', role=UserRole.ADMIN)
        offer, payment = completed_offer(self.requester, self.courier)
        self.earnings = LedgerEngine.create_from_offer(offer, payment).earnings

    # ==========================================
    # Bonus
    # ==========================================

    def test_bonus_then_adjustments(self):
        earnings = LedgerEngine.add_bonus(self.earnings, Decimal('5.00'), 'Peak hour')
        self.assertEqual(earnings.bonus_amount, Decimal('5.00'))
        self.assertEqual(earnings.bonus_reason, 'Peak hour')
        self.assertEqual(earnings.final_amount, Decimal('27.95'))

        earnings = LedgerEngine.add_adjustment(earnings, Decimal('2.00'), 'Waiting time', applied_by=self.admin)
        self.assertEqual(earnings.final_amount, Decimal('29.95'))

        earnings = LedgerEngine.add_adjustment(earnings, '-1.50', 'Late delivery')
        self.assertEqual(earnings.final_amount, Decimal('28.45'))

        stored = Earnings.objects.get(pk=self.earnings.pk)
        self.assertEqual(stored.final_amount, Decimal('28.45'))
        self.assertEqual(stored.adjustments.count(), 2)
        self.assertEqual(stored.adjustments.first().applied_by, self.admin)

    def test_bonuses_accumulate(self):
        LedgerEngine.add_bonus(self.earnings, '1.00', 'First')
        earnings = LedgerEngine.add_bonus(self.earnings, '2.50', 'Second')
        self.assertEqual(earnings.bonus_amount, Decimal('3.50'))
        self.assertEqual(earnings.bonus_reason, 'Second')
        self.assertEqual(earnings.final_amount, Decimal('26.45'))

    def test_non_positive_bonus_rejected(self):
        for amount in (0, '-5', Decimal('0.00'), None, 'abc'):
            with self.subTest(amount=amount):
                with self.assertRaises(InvalidBonusAmount):
                    LedgerEngine.add_bonus(self.earnings, amount)

        stored = Earnings.objects.get(pk=self.earnings.pk)
        self.assertEqual(stored.bonus_amount, Decimal('0.00'))
        self.assertEqual(stored.final_amount, Decimal('22.95'))

    # ==========================================
    # Adjustments
    # ==========================================

    def test_adjustment_requires_amount(self):
        for amount in (None, 0, ''):
            with self.subTest(amount=amount):
                with self.assertRaises(MissingAdjustmentAmount):
                    LedgerEngine.add_adjustment(self.earnings, amount, 'Reason')
        self.assertFalse(EarningsAdjustment.objects.exists())

    def test_adjustment_requires_reason(self):
        for reason in ('', '   ', None):
            with self.subTest(reason=reason):
                with self.assertRaises(MissingAdjustmentReason):
                    LedgerEngine.add_adjustment(self.earnings, '2.00', reason)
        self.assertFalse(EarningsAdjustment.objects.exists())

    # ==========================================
    # Payout status
    # ==========================================

    def test_paid_at_set_once(self):
        earnings = LedgerEngine.update_payment_status(self.earnings, EarningsPaymentStatus.PAID)
        paid_at = earnings.paid_at
        self.assertIsNotNone(paid_at)

        earnings = LedgerEngine.update_payment_status(earnings, EarningsPaymentStatus.PAID)
        self.assertEqual(earnings.paid_at, paid_at)

        earnings = LedgerEngine.update_payment_status(earnings, EarningsPaymentStatus.PROCESSING)
        self.assertEqual(earnings.paid_at, paid_at)

    def test_invalid_payout_status(self):
        with self.assertRaises(InvalidPaymentStatus):
            LedgerEngine.update_payment_status(self.earnings, 'refunded')

    def test_rates(self):
        self.earnings.distance = 5000
        self.earnings.duration = 30
        self.assertEqual(self.earnings.earnings_per_km, Decimal('4.59'))
        self.assertEqual(self.earnings.earnings_per_hour, Decimal('45.90'))


class TestEarningsSummary(TestCase):
    """Tests for LedgerEngine aggregation."""

    def setUp(self):
        self.requester = make_requester()
        self.courier = make_courier()
        self.records = []
        for amount in ('20.00', '30.00', '15.00'):
            offer, payment = completed_offer(self.requester, self.courier, amount=amount)
            self.records.append(LedgerEngine.create_from_offer(offer, payment).earnings)
        for earnings in self.records[:2]:
            LedgerEngine.update_payment_status(earnings, EarningsPaymentStatus.PAID)

    def test_totals(self):
        summary = LedgerEngine.get_rider_earnings_summary(self.courier)['summary']

        self.assertEqual(summary['total_earnings'], Decimal('65.00'))
        self.assertEqual(summary['total_fees'], Decimal('6.50'))
        self.assertEqual(summary['total_net'], Decimal('58.50'))
        self.assertEqual(summary['total_final'], Decimal('58.50'))
        self.assertEqual(summary['paid_earnings'], Decimal('45.00'))
        self.assertEqual(summary['pending_earnings'], Decimal('13.50'))
        self.assertEqual(summary['total_deliveries'], 3)
        self.assertEqual(summary['average_per_delivery'], Decimal('19.50'))
        self.assertGreater(summary['total_distance'], 0)

    def test_breakdowns(self):
        result = LedgerEngine.get_rider_earnings_summary(self.courier)

        self.assertEqual(result['payment_methods'], [
            {'method': EarningsPaymentMethod.CARD, 'count': 3, 'total': Decimal('58.50')},
        ])
        self.assertEqual(sum(day['deliveries'] for day in result['daily_earnings']), 3)
        self.assertEqual(len(result['recent_earnings']), 3)

    def test_date_filter(self):
        Earnings.objects.filter(pk=self.records[0].pk).update(earned_at=timezone.now() - timedelta(days=10))

        summary = LedgerEngine.get_rider_earnings_summary(
            self.courier,
            start_date=timezone.now() - timedelta(days=5),
        )['summary']

        self.assertEqual(summary['total_deliveries'], 2)
        self.assertEqual(summary['total_earnings'], Decimal('45.00'))

    def test_status_filter(self):
        summary = LedgerEngine.get_rider_earnings_summary(
            self.courier, payment_status=EarningsPaymentStatus.PAID
        )['summary']
        self.assertEqual(summary['total_deliveries'], 2)
        self.assertEqual(summary['pending_earnings'], Decimal('0.00'))

    def test_courier_without_earnings(self):
        summary = LedgerEngine.get_rider_earnings_summary(make_courier(phone='+15552000060'))['summary']
        self.assertEqual(summary['total_deliveries'], 0)
        self.assertEqual(summary['total_earnings'], Decimal('0.00'))
        self.assertEqual(summary['average_per_delivery'], Decimal('0.00'))

    def test_final_amount_includes_bonus(self):
        LedgerEngine.add_bonus(self.records[2], '4.00', 'Rain')
        summary = LedgerEngine.get_rider_earnings_summary(self.courier)['summary']
        self.assertEqual(summary['total_bonus'], Decimal('4.00'))
        self.assertEqual(summary['total_final'], Decimal('62.50'))
        self.assertEqual(summary['total_net'], Decimal('58.50'))


@override_settings(TIME_ZONE='UTC')
class TestPeriods(TestCase):
    """Tests for period windows, period summaries and top earners."""

    NOW = datetime(2024, 3, 15, 14, 30, tzinfo=dt_timezone.utc)

    def test_calendar_windows(self):
        expected = {
            'day': datetime(2024, 3, 15, tzinfo=dt_timezone.utc),
            'week': datetime(2024, 3, 11, tzinfo=dt_timezone.utc),
            'month': datetime(2024, 3, 1, tzinfo=dt_timezone.utc),
            'year': datetime(2024, 1, 1, tzinfo=dt_timezone.utc),
        }
        for period, start in expected.items():
            with self.subTest(period=period):
                window = LedgerEngine.period_window(period, 'calendar', now=self.NOW)
                self.assertEqual(window, (start, self.NOW))

    def test_trailing_windows(self):
        start, end = LedgerEngine.period_window('week', 'trailing', now=self.NOW)
        self.assertEqual(start, self.NOW - timedelta(days=7))
        self.assertEqual(end, self.NOW)

    @override_settings(EARNINGS_PERIOD_WINDOW='trailing')
    def test_window_defaults_to_setting(self):
        start, _ = LedgerEngine.period_window('month', now=self.NOW)
        self.assertEqual(start, self.NOW - timedelta(days=30))

    def test_invalid_period(self):
        with self.assertRaises(InvalidPeriod):
            LedgerEngine.period_window('decade')

    def test_invalid_window(self):
        with self.assertRaises(DomainValidationError):
            LedgerEngine.period_window('day', 'fortnightly')

    def test_earnings_for_period(self):
        requester = make_requester()
        courier = make_courier()
        recent = LedgerEngine.create_from_offer(*completed_offer(requester, courier)).earnings
        old = LedgerEngine.create_from_offer(*completed_offer(requester, courier, amount='40.00')).earnings
        Earnings.objects.filter(pk=old.pk).update(earned_at=timezone.now() - timedelta(days=400))

        result = LedgerEngine.get_earnings_for_period(courier, 'year', window='trailing')

        self.assertEqual(result['period'], 'year')
        self.assertLess(result['start_date'], result['end_date'])
        self.assertEqual(result['summary']['total_deliveries'], 1)
        self.assertEqual(result['recent_earnings'], [recent])

    def test_top_earners(self):
        requester = make_requester()
        small = make_courier(phone='+15552000071', full_name='Small')
        big = make_courier(phone='+15552000072', full_name='Big')
        for courier, amounts in ((small, ['10.00']), (big, ['20.00', '30.00'])):
            for amount in amounts:
                LedgerEngine.create_from_offer(*completed_offer(requester, courier, amount=amount))

        top = LedgerEngine.get_top_earners('month', window='trailing')

        self.assertEqual([row['courier_id'] for row in top], [big.pk, small.pk])
        self.assertEqual(top[0]['courier_name'], 'Big')
        self.assertEqual(top[0]['total_earnings'], Decimal('45.00'))
        self.assertEqual(top[0]['total_deliveries'], 2)
        self.assertEqual(top[0]['average_per_delivery'], Decimal('22.50'))

        self.assertEqual(len(LedgerEngine.get_top_earners('month', limit=1, window='trailing')), 1)

    def test_top_earners_invalid_limit(self):
        for limit in (0, -1, 'ten'):
            with self.subTest(limit=limit):
                with self.assertRaises(DomainValidationError):
                    LedgerEngine.get_top_earners(limit=limit)


class TestEarningsAPI(TestCase):

    def setUp(self):
        self.api = APIClient()
        self.requester = make_requester()
        self.courier = make_courier()
        self.other_courier = make_courier(phone='+15552000081')
        self.admin = User.objects.create_user(phone_number='+15559000002', role=UserRole.ADMIN)

        offer, payment = completed_offer(self.requester, self.courier)
        self.earnings = LedgerEngine.create_from_offer(offer, payment).earnings
        offer, payment = completed_offer(self.requester, self.other_courier, amount='10.00')
        LedgerEngine.create_from_offer(offer, payment)

    def test_courier_lists_own_earnings(self):
        self.api.force_authenticate(self.courier)
        response = self.api.get('/api/earnings/')

        self.assertEqual(response.status_code, 200)
        self.assertEqual([row['id'] for row in response.data['results']], [str(self.earnings.pk)])

    def test_summary(self):
        self.api.force_authenticate(self.courier)
        response = self.api.get('/api/earnings/summary/')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['summary']['total_deliveries'], 1)
        self.assertEqual(response.data['summary']['total_net'], Decimal('22.95'))

    def test_summary_bad_date(self):
        self.api.force_authenticate(self.courier)
        response = self.api.get('/api/earnings/summary/', {'start_date': 'yesterday'})
        self.assertEqual(response.status_code, 400)

    def test_admin_summary_for_courier(self):
        self.api.force_authenticate(self.admin)
        response = self.api.get('/api/earnings/summary/', {'courier_id': str(self.other_courier.pk)})
        self.assertEqual(response.data['summary']['total_net'], Decimal('9.00'))

    def test_requester_cannot_read_summary(self):
        self.api.force_authenticate(self.requester)
        response = self.api.get('/api/earnings/summary/')
        self.assertEqual(response.status_code, 403)

    def test_period(self):
        self.api.force_authenticate(self.courier)
        response = self.api.get('/api/earnings/period/week/', {'window': 'trailing'})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['period'], 'week')

    def test_invalid_period(self):
        self.api.force_authenticate(self.courier)
        response = self.api.get('/api/earnings/period/decade/')
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data['code'], 'invalid_period')

    def test_admin_adds_bonus(self):
        self.api.force_authenticate(self.admin)
        response = self.api.post(
            f'/api/earnings/{self.earnings.pk}/bonus/',
            {'amount': '5.00', 'reason': 'Peak hour'},
            format='json'
        )
        self.assertEqual(response.status_code, 200)
        self.earnings.refresh_from_db()
        self.assertEqual(self.earnings.final_amount, Decimal('27.95'))

    def test_zero_bonus_rejected(self):
        self.api.force_authenticate(self.admin)
        response = self.api.post(f'/api/earnings/{self.earnings.pk}/bonus/', {'amount': '0'}, format='json')
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data['code'], 'invalid_bonus_amount')

    def test_adjustment_without_reason_rejected(self):
        self.api.force_authenticate(self.admin)
        response = self.api.post(
            f'/api/earnings/{self.earnings.pk}/adjustment/',
            {'amount': '2.00', 'reason': ''},
            format='json'
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data['code'], 'missing_adjustment_reason')

    def test_courier_cannot_add_bonus(self):
        self.api.force_authenticate(self.courier)
        response = self.api.post(f'/api/earnings/{self.earnings.pk}/bonus/', {'amount': '5.00'}, format='json')
        self.assertEqual(response.status_code, 403)

    def test_top_earners_admin_only(self):
        self.api.force_authenticate(self.courier)
        self.assertEqual(self.api.get('/api/earnings/top-earners/').status_code, 403)

        self.api.force_authenticate(self.admin)
        response = self.api.get('/api/earnings/top-earners/', {'window': 'trailing'})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['count'], 2)
        self.assertEqual(response.data['results'][0]['courier_id'], self.courier.pk)

    def test_admin_completes_payment(self):
        self.api.force_authenticate(self.admin)
        response = self.api.post(
            f'/api/payments/{self.earnings.payment_id}/status/',
            {'status': 'completed', 'reference': 'gw_42'},
            format='json'
        )
        self.assertEqual(response.status_code, 200)
        self.earnings.refresh_from_db()
        self.assertEqual(self.earnings.payment_status, EarningsPaymentStatus.PAID)

    def test_admin_retries_failed_payment(self):
        payment = self.earnings.payment
        PaymentService.update_status(payment, PaymentStatus.FAILED, reason='Timeout')

        self.api.force_authenticate(self.admin)
        response = self.api.post(f'/api/payments/{payment.pk}/retry/')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['status'], PaymentStatus.PROCESSING)
        self.assertEqual(response.data['retry_count'], 1)

    def test_retry_of_pending_payment_rejected(self):
        self.api.force_authenticate(self.admin)
        response = self.api.post(f'/api/payments/{self.earnings.payment_id}/retry/')
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data['code'], 'payment_retry_unavailable')

    def test_courier_cannot_retry(self):
        self.api.force_authenticate(self.courier)
        response = self.api.post(f'/api/payments/{self.earnings.payment_id}/retry/')
        self.assertEqual(response.status_code, 403)

    def test_payment_stats_for_requester(self):
        self.api.force_authenticate(self.requester)
        response = self.api.get('/api/payments/stats/')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['total_payments'], 2)
        self.assertEqual(response.data['total_amount'], Decimal('35.50'))
        self.assertEqual(response.data['pending_payments'], 2)
        self.assertEqual(response.data['completed_payments'], 0)

    def test_payment_stats_for_courier(self):
        self.api.force_authenticate(self.courier)
        response = self.api.get('/api/payments/stats/')
        self.assertEqual(response.data['total_payments'], 1)
        self.assertEqual(response.data['total_amount'], Decimal('25.50'))

    def test_admin_payment_stats(self):
        self.api.force_authenticate(self.admin)
        self.assertEqual(self.api.get('/api/payments/stats/').data['total_payments'], 2)

        response = self.api.get('/api/payments/stats/', {'user_id': str(self.other_courier.pk)})
        self.assertEqual(response.data['total_amount'], Decimal('10.00'))


class TestPaymentRetry(TestCase):
    """Tests for failed payment retries."""

    def setUp(self):
        self.requester = make_requester()
        self.courier = make_courier()
        offer, self.payment = completed_offer(self.requester, self.courier)
        self.earnings = LedgerEngine.create_from_offer(offer, self.payment).earnings
        PaymentService.update_status(self.payment, PaymentStatus.FAILED, reason='Card declined')
        self.payment.refresh_from_db()

    def test_failed_payment_can_retry(self):
        self.assertTrue(self.payment.can_retry)
        self.assertEqual(self.payment.retry_count, 0)

    def test_retry_moves_to_processing(self):
        payment = PaymentService.retry(self.payment)

        self.assertEqual(payment.status, PaymentStatus.PROCESSING)
        self.assertEqual(payment.retry_count, 1)
        self.assertIsNotNone(payment.last_retry_at)
        self.assertEqual(payment.failure_reason, '')
        self.earnings.refresh_from_db()
        self.assertEqual(self.earnings.payment_status, EarningsPaymentStatus.PROCESSING)

    @override_settings(PAYMENT_MAX_RETRIES=2)
    def test_retry_limit(self):
        for _ in range(2):
            PaymentService.retry(self.payment)
            PaymentService.update_status(self.payment, PaymentStatus.FAILED, reason='Declined again')

        self.payment.refresh_from_db()
        self.assertFalse(self.payment.can_retry)
        with self.assertRaises(PaymentRetryUnavailable):
            PaymentService.retry(self.payment)
        with self.assertRaises(PaymentRetryUnavailable):
            self.payment.increment_retry()

    def test_only_failed_payments_retry(self):
        PaymentService.update_status(self.payment, PaymentStatus.COMPLETED)
        self.payment.refresh_from_db()
        self.assertFalse(self.payment.can_retry)
        with self.assertRaises(PaymentRetryUnavailable):
            PaymentService.retry(self.payment)

    def test_retryable_respects_backoff(self):
        self.assertEqual(PaymentService.retryable(), [self.payment])

        PaymentService.retry(self.payment)
        PaymentService.update_status(self.payment, PaymentStatus.FAILED)
        self.assertEqual(PaymentService.retryable(), [])

        later = timezone.now() + timedelta(minutes=31)
        self.assertEqual(PaymentService.retryable(now=later), [self.payment])

    @override_settings(PAYMENT_MAX_RETRIES=1)
    def test_retryable_skips_exhausted(self):
        PaymentService.retry(self.payment)
        PaymentService.update_status(self.payment, PaymentStatus.FAILED)

        later = timezone.now() + timedelta(hours=2)
        self.assertEqual(PaymentService.retryable(now=later), [])


class TestPaymentStats(TestCase):
    """Tests for payment statistics."""

    def setUp(self):
        self.requester = make_requester()
        self.courier = make_courier()
        _, self.paid = completed_offer(self.requester, self.courier, amount='20.00')
        _, self.other_paid = completed_offer(self.requester, self.courier, amount='30.00')
        _, self.failed = completed_offer(self.requester, self.courier, amount='15.00')
        _, self.pending = completed_offer(self.requester, self.courier, amount='5.00')
        PaymentService.update_status(self.paid, PaymentStatus.COMPLETED)
        PaymentService.update_status(self.other_paid, PaymentStatus.COMPLETED)
        PaymentService.update_status(self.failed, PaymentStatus.FAILED)

    def test_totals_by_status(self):
        stats = PaymentService.stats(self.requester)

        self.assertEqual(stats['total_payments'], 4)
        self.assertEqual(stats['total_amount'], Decimal('70.00'))
        self.assertEqual(stats['completed_payments'], 2)
        self.assertEqual(stats['completed_amount'], Decimal('50.00'))
        self.assertEqual(stats['average_amount'], Decimal('25.00'))
        self.assertEqual(stats['pending_payments'], 1)
        self.assertEqual(stats['failed_payments'], 1)

    def test_courier_counted_as_payee(self):
        self.assertEqual(PaymentService.stats(self.courier)['total_payments'], 4)

    def test_platform_wide(self):
        self.assertEqual(PaymentService.stats()['total_payments'], 4)

    def test_user_without_payments(self):
        stats = PaymentService.stats(make_requester(phone='+15551000099'))
        self.assertEqual(stats['total_payments'], 0)
        self.assertEqual(stats['total_amount'], Decimal('0.00'))
        self.assertEqual(stats['average_amount'], Decimal('0.00'))
