"""
Logistics App URLs
"""

from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import (
    OfferViewSet,
    CourierLocationView, NearbyCouriersView, DeactivateTrackingView, TrajectoryView,
    GeocodeView, ValidateAddressView, ReverseGeocodeView,
)

router = DefaultRouter()
router.register(r'offers', OfferViewSet, basename='offer')

urlpatterns = [
    # Tracking
    path('tracking/location/', CourierLocationView.as_view(), name='tracking-location'),
    path('tracking/nearby/', NearbyCouriersView.as_view(), name='tracking-nearby'),
    path('tracking/deactivate/', DeactivateTrackingView.as_view(), name='tracking-deactivate'),
    path('tracking/trajectory/<uuid:offer_id>/', TrajectoryView.as_view(), name='tracking-trajectory'),

    # Geocoding
    path('geocode/', GeocodeView.as_view(), name='geocode'),
    path('geocode/validate/', ValidateAddressView.as_view(), name='geocode-validate'),
    path('geocode/reverse/', ReverseGeocodeView.as_view(), name='geocode-reverse'),

    # Router URLs
    path('', include(router.urls)),
]
