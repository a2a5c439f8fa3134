"""
Finance App Views - Payments & Earnings API
"""

from datetime import datetime, time

from django.contrib.auth import get_user_model
from django.shortcuts import get_object_or_404
from django.utils import timezone
from django.utils.dateparse import parse_date, parse_datetime
from rest_framework import permissions, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from core.models import UserRole
from core.permissions import IsAdminUser, IsCourier
from .models import Earnings, Payment
from .serializers import (
    AdjustmentSerializer, BonusSerializer, EarningsListSerializer, EarningsSerializer,
    EarningsStatusSerializer, PaymentSerializer, PaymentStatusSerializer,
)
from .services import LedgerEngine, PaymentService


def _parse_bound(value, end=False):
    """ISO date or datetime from a query string. Bare dates cover the whole day."""
    if not value:
        return None
    parsed = parse_datetime(value)
    if parsed is None:
        day = parse_date(value)
        if day is None:
            raise ValueError(value)
        parsed = datetime.combine(day, time.max if end else time.min)
    if timezone.is_naive(parsed):
        parsed = timezone.make_aware(parsed)
    return parsed


def _serialize_summary(result):
    data = dict(result)
    data['recent_earnings'] = EarningsListSerializer(result['recent_earnings'], many=True).data
    return data


class EarningsViewSet(viewsets.ReadOnlyModelViewSet):
    """
    ViewSet for courier Earnings (read-only, mutations via admin actions).
    Couriers only see their own earnings.
    """

    queryset = Earnings.objects.select_related('courier', 'offer').prefetch_related('adjustments')
    permission_classes = [permissions.IsAuthenticated]

    def get_permissions(self):
        if self.action in ('bonus', 'adjustment', 'payment_status', 'top_earners'):
            return [permissions.IsAuthenticated(), IsAdminUser()]
        if self.action in ('summary', 'period'):
            return [permissions.IsAuthenticated(), (IsCourier | IsAdminUser)()]
        return super().get_permissions()

    def get_serializer_class(self):
        if self.action == 'list':
            return EarningsListSerializer
        return EarningsSerializer

    def get_queryset(self):
        user = self.request.user
        qs = super().get_queryset()
        if user.role == UserRole.ADMIN:
            return qs
        return qs.filter(courier=user)

    def _target_courier(self, request):
        """Current courier, or ?courier_id=... for admins."""
        courier_id = request.query_params.get('courier_id')
        if courier_id and request.user.role == UserRole.ADMIN:
            return get_object_or_404(get_user_model(), pk=courier_id, role=UserRole.COURIER)
        return request.user

    @action(detail=False, methods=['get'])
    def summary(self, request):
        """
        Earnings summary.

        Query params: start_date, end_date (ISO date or datetime),
        payment_status, courier_id (admin only).
        """
        try:
            start_date = _parse_bound(request.query_params.get('start_date'))
            end_date = _parse_bound(request.query_params.get('end_date'), end=True)
        except ValueError as e:
            return Response(
                {'error': f'Invalid date: {e}'},
                status=status.HTTP_400_BAD_REQUEST
            )

        result = LedgerEngine.get_rider_earnings_summary(
            self._target_courier(request),
            start_date=start_date,
            end_date=end_date,
            payment_status=request.query_params.get('payment_status') or None,
        )
        return Response(_serialize_summary(result))

    @action(detail=False, methods=['get'], url_path=r'period/(?P<period>[a-z]+)')
    def period(self, request, period=None):
        """Summary over day / week / month / year (?window=calendar|trailing)."""
        result = LedgerEngine.get_earnings_for_period(
            self._target_courier(request),
            period,
            window=request.query_params.get('window') or None,
        )
        return Response(_serialize_summary(result))

    @action(detail=False, methods=['get'], url_path='top-earners')
    def top_earners(self, request):
        """Ranking of couriers by net earnings (Admin only)."""
        try:
            limit = int(request.query_params.get('limit', 10))
        except (TypeError, ValueError):
            return Response({'error': 'limit must be an integer.'}, status=status.HTTP_400_BAD_REQUEST)

        rows = LedgerEngine.get_top_earners(
            period=request.query_params.get('period', 'month'),
            limit=limit,
            payment_status=request.query_params.get('payment_status') or None,
            window=request.query_params.get('window') or None,
        )
        return Response({'count': len(rows), 'results': rows})

    @action(detail=True, methods=['post'])
    def bonus(self, request, pk=None):
        """Add a bonus (Admin only)."""
        serializer = BonusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        earnings = LedgerEngine.add_bonus(
            self.get_object(),
            serializer.validated_data['amount'],
            serializer.validated_data['reason'],
        )
        return Response(EarningsSerializer(earnings).data)

    @action(detail=True, methods=['post'])
    def adjustment(self, request, pk=None):
        """Add a signed adjustment (Admin only)."""
        serializer = AdjustmentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        earnings = LedgerEngine.add_adjustment(
            self.get_object(),
            serializer.validated_data['amount'],
            serializer.validated_data['reason'],
            applied_by=request.user,
        )
        return Response(EarningsSerializer(earnings).data)

    @action(detail=True, methods=['post'], url_path='payment-status')
    def payment_status(self, request, pk=None):
        """Set the payout status (Admin only)."""
        serializer = EarningsStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        earnings = LedgerEngine.update_payment_status(
            self.get_object(),
            serializer.validated_data['payment_status'],
        )
        return Response(EarningsSerializer(earnings).data)


class PaymentViewSet(viewsets.ReadOnlyModelViewSet):
    """
    ViewSet for Payment (read-only).
    Users see the payments they made or received.
    """

    queryset = Payment.objects.select_related('payer', 'payee', 'offer')
    serializer_class = PaymentSerializer
    permission_classes = [permissions.IsAuthenticated]

    def get_permissions(self):
        if self.action in ('update_status', 'retry'):
            return [permissions.IsAuthenticated(), IsAdminUser()]
        return super().get_permissions()

    def get_queryset(self):
        user = self.request.user
        qs = super().get_queryset()
        if user.role == UserRole.ADMIN:
            return qs
        if user.role == UserRole.COURIER:
            return qs.filter(payee=user)
        return qs.filter(payer=user)

    @action(detail=True, methods=['post'], url_path='status')
    def update_status(self, request, pk=None):
        """Record the gateway outcome (Admin only). Mirrors onto earnings."""
        serializer = PaymentStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        payment = PaymentService.update_status(
            self.get_object(),
            data['status'],
            reference=data.get('reference') or None,
            reason=data.get('reason', ''),
        )
        return Response(PaymentSerializer(payment).data)

    @action(detail=True, methods=['post'])
    def retry(self, request, pk=None):
        """Re-submit a failed payment (Admin only)."""
        payment = PaymentService.retry(self.get_object())
        return Response(PaymentSerializer(payment).data)

    @action(detail=False, methods=['get'])
    def stats(self, request):
        """
        Payment statistics.

        Users get their own figures. Admins get the platform totals,
        or one user's figures with ?user_id=.
        """
        user = request.user
        if user.role == UserRole.ADMIN:
            user_id = request.query_params.get('user_id')
            target = get_object_or_404(get_user_model(), pk=user_id) if user_id else None
        else:
            target = user
        return Response(PaymentService.stats(target))
