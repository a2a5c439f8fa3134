"""
Logistics App Views - Offers, Tracking & Geocoding API
"""

from django.contrib.gis.db.models.functions import Distance
from django.contrib.gis.measure import D
from django.db.models import Q
from django.shortcuts import get_object_or_404
from rest_framework import mixins, permissions, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework.views import APIView

from core.models import UserRole
from core.permissions import IsCourier, IsRequester
from .lifecycle import DeliveryLifecycle
from .models import Offer, OfferStatus
from .serializers import (
    EstimateSerializer, GeocodeSerializer, LocationRecordSerializer, LocationUpdateSerializer,
    NearbySerializer, OfferCreateSerializer, OfferSerializer, OfferStatusHistorySerializer,
    OfferTransitionSerializer, ReverseGeocodeSerializer,
)
from .services.geocoding import GeocodingGateway
from .services.tracking import LocationTracker
from .services.workflow import transition_offer
from .utils import DEFAULT_VEHICLE

MAX_AVAILABLE_OFFERS = 200


class OfferViewSet(mixins.CreateModelMixin,
                   mixins.ListModelMixin,
                   mixins.RetrieveModelMixin,
                   viewsets.GenericViewSet):
    """
    ViewSet for Offer management.

    Status changes go through the transition action only.
    """

    queryset = Offer.objects.select_related('requester', 'courier')
    serializer_class = OfferSerializer
    permission_classes = [permissions.IsAuthenticated]

    def get_permissions(self):
        if self.action in ('create', 'payment'):
            return [permissions.IsAuthenticated(), IsRequester()]
        if self.action == 'available':
            return [permissions.IsAuthenticated(), IsCourier()]
        return super().get_permissions()

    def get_queryset(self):
        user = self.request.user
        qs = super().get_queryset()

        if user.role == UserRole.ADMIN:
            return qs
        elif user.role == UserRole.COURIER:
            return qs.filter(Q(courier=user) | Q(status=OfferStatus.OPEN))
        return qs.filter(requester=user)

    def get_serializer_class(self):
        if self.action == 'create':
            return OfferCreateSerializer
        return OfferSerializer

    def create(self, request, *args, **kwargs):
        serializer = OfferCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        offer = serializer.save(requester=request.user)
        return Response(OfferSerializer(offer).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'])
    def transition(self, request, pk=None):
        """Move the offer to a new status (lifecycle rules apply)."""
        offer = self.get_object()
        serializer = OfferTransitionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        offer = transition_offer(
            offer,
            data['status'],
            request.user,
            notes=data.get('notes', ''),
            coordinates=data.get('coordinates'),
        )
        return Response(OfferSerializer(offer).data)

    @action(detail=True, methods=['get'])
    def history(self, request, pk=None):
        """Audit trail of status changes."""
        offer = self.get_object()
        serializer = OfferStatusHistorySerializer(offer.status_history.select_related('actor'), many=True)
        return Response({
            'status': DeliveryLifecycle(offer).status_info(),
            'history': serializer.data,
        })

    @action(detail=True, methods=['get'])
    def tracking(self, request, pk=None):
        """Latest active telemetry of the offer's courier."""
        offer = self.get_object()
        records = LocationTracker.delivery_tracking(offer)
        return Response(LocationRecordSerializer(records, many=True).data)

    @action(detail=True, methods=['post'])
    def payment(self, request, pk=None):
        """Create the offer's payment once delivered (requester only)."""
        from finance.serializers import PaymentSerializer
        from finance.services import PaymentService

        offer = self.get_object()
        if offer.requester_id != request.user.pk:
            return Response(
                {'error': 'Only the requester can pay for this offer.'},
                status=status.HTTP_403_FORBIDDEN
            )
        payment = PaymentService.create_for_offer(offer, method=request.data.get('method'))
        return Response(PaymentSerializer(payment).data, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=['get'])
    def available(self, request):
        """
        Open offers sorted by pickup distance from the courier's last position.

        Query params: radius (meters, optional).
        """
        qs = Offer.objects.filter(status=OfferStatus.OPEN).select_related('requester')
        position = request.user.last_location
        if position is None:
            return Response(OfferSerializer(qs[:MAX_AVAILABLE_OFFERS], many=True).data)

        qs = qs.annotate(pickup_distance=Distance('pickup_location', position))
        radius = request.query_params.get('radius')
        if radius:
            try:
                qs = qs.filter(pickup_distance__lte=D(m=float(radius)))
            except ValueError:
                return Response({'error': 'radius must be a number.'}, status=status.HTTP_400_BAD_REQUEST)

        rows = []
        for offer in qs.order_by('pickup_distance')[:MAX_AVAILABLE_OFFERS]:
            data = OfferSerializer(offer).data
            data['pickup_distance'] = round(offer.pickup_distance.m, 1)
            rows.append(data)
        return Response(rows)

    @action(detail=False, methods=['post'])
    def estimate(self, request):
        """Straight-line distance and delivery time for a pickup/delivery pair."""
        serializer = EstimateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        vehicle_type = data.get('vehicle_type') or request.user.vehicle_type or DEFAULT_VEHICLE
        return Response(GeocodingGateway().calculate_route(
            data['pickup_coordinates'],
            data['delivery_coordinates'],
            vehicle_type,
        ))


# ===========================================
# TRACKING
# ===========================================

class CourierLocationView(APIView):
    """
    API endpoint for courier telemetry.

    POST /api/tracking/location/
    {
        "coordinates": [-73.9857, 40.7484],
        "offer_id": "...",              (optional)
        "tracking_type": "heading_to_pickup"
    }

    GET /api/tracking/location/?limit=50&offer_id=...
    """

    permission_classes = [permissions.IsAuthenticated, IsCourier]

    def post(self, request):
        serializer = LocationUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        offer = None
        if data.get('offer_id'):
            offer = get_object_or_404(Offer, pk=data['offer_id'], courier=request.user)

        record = LocationTracker.record(
            request.user,
            data['coordinates'],
            offer=offer,
            tracking_type=data['tracking_type'],
            accuracy=data.get('accuracy'),
            altitude=data.get('altitude'),
            heading=data.get('heading'),
            speed=data.get('speed'),
            battery_level=data.get('battery_level'),
            device_info=data.get('device_info'),
            timestamp=data.get('timestamp'),
        )
        return Response(LocationRecordSerializer(record).data, status=status.HTTP_201_CREATED)

    def get(self, request):
        try:
            limit = min(int(request.query_params.get('limit', 50)), 500)
        except (TypeError, ValueError):
            return Response({'error': 'limit must be an integer.'}, status=status.HTTP_400_BAD_REQUEST)

        offer = None
        offer_id = request.query_params.get('offer_id')
        if offer_id:
            offer = get_object_or_404(Offer, pk=offer_id, courier=request.user)

        records = LocationTracker.history(request.user, limit=limit, offer=offer)
        return Response(LocationRecordSerializer(records, many=True).data)


class NearbyCouriersView(APIView):
    """
    GET /api/tracking/nearby/?longitude=..&latitude=..&radius=10000
    """

    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        serializer = NearbySerializer(data=request.query_params)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        couriers = LocationTracker.nearby(
            [data['longitude'], data['latitude']],
            data.get('radius'),
        )
        return Response({'count': len(couriers), 'couriers': couriers})


class DeactivateTrackingView(APIView):
    """POST /api/tracking/deactivate/ {"offer_id": optional}"""

    permission_classes = [permissions.IsAuthenticated, IsCourier]

    def post(self, request):
        offer = None
        offer_id = request.data.get('offer_id')
        if offer_id:
            offer = get_object_or_404(Offer, pk=offer_id, courier=request.user)
        count = LocationTracker.deactivate(request.user, offer)
        return Response({'deactivated': count})


class TrajectoryView(APIView):
    """GET /api/tracking/trajectory/<offer_id>/ - distance actually travelled."""

    permission_classes = [permissions.IsAuthenticated]

    def get(self, request, offer_id):
        offer = get_object_or_404(Offer, pk=offer_id)
        user = request.user
        if user.role != UserRole.ADMIN and user.pk not in (offer.requester_id, offer.courier_id):
            return Response({'error': 'Not allowed.'}, status=status.HTTP_403_FORBIDDEN)
        if offer.courier_id is None:
            return Response({'offer_id': str(offer.pk), 'distance': 0.0})

        distance = LocationTracker.trajectory_distance(offer.courier, offer, start_time=offer.accepted_at)
        return Response({'offer_id': str(offer.pk), 'distance': round(distance, 1)})


# ===========================================
# GEOCODING
# ===========================================

class GeocodeView(APIView):
    """POST /api/geocode/ {"address": "..."}"""

    permission_classes = [permissions.IsAuthenticated]

    def post(self, request):
        serializer = GeocodeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        return Response(GeocodingGateway().geocode(serializer.validated_data['address']))


class ValidateAddressView(APIView):
    """POST /api/geocode/validate/ {"address": "..."}"""

    permission_classes = [permissions.IsAuthenticated]

    def post(self, request):
        serializer = GeocodeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        return Response(GeocodingGateway().validate_address(serializer.validated_data['address']))


class ReverseGeocodeView(APIView):
    """POST /api/geocode/reverse/ {"coordinates": [lng, lat]}"""

    permission_classes = [permissions.IsAuthenticated]

    def post(self, request):
        serializer = ReverseGeocodeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        return Response(GeocodingGateway().reverse_geocode(serializer.validated_data['coordinates']))
