"""
Finance App URLs
"""

from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import EarningsViewSet, PaymentViewSet

router = DefaultRouter()
router.register(r'earnings', EarningsViewSet, basename='earnings')
router.register(r'payments', PaymentViewSet, basename='payment')

urlpatterns = [
    # Router URLs
    path('', include(router.urls)),
]
