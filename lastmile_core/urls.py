"""
LASTMILE Main URL Configuration
"""

from django.contrib import admin
from django.urls import path, include
from rest_framework.decorators import api_view
from rest_framework.response import Response


# ===========================================
# ADMIN SITE CUSTOMIZATION
# ===========================================
admin.site.site_header = "LASTMILE Control Tower"
admin.site.site_title = "LASTMILE Admin"
admin.site.index_title = "Operations"


@api_view(['GET'])
def api_root(request):
    """API Root endpoint with available routes."""
    return Response({
        'name': 'LASTMILE API',
        'version': '1.0.0',
        'endpoints': {
            'auth': {
                'token': '/api/auth/token/',
                'refresh': '/api/auth/token/refresh/',
            },
            'offers': '/api/offers/',
            'tracking': {
                'location': '/api/tracking/location/',
                'nearby': '/api/tracking/nearby/',
                'deactivate': '/api/tracking/deactivate/',
            },
            'geocode': {
                'forward': '/api/geocode/',
                'reverse': '/api/geocode/reverse/',
            },
            'earnings': {
                'list': '/api/earnings/',
                'summary': '/api/earnings/summary/',
                'top_earners': '/api/earnings/top-earners/',
            },
            'payments': '/api/payments/',
        }
    })


urlpatterns = [
    # Admin
    path('admin/', admin.site.urls),

    # API Root
    path('api/', api_root, name='api-root'),

    # App URLs
    path('api/', include('core.urls')),
    path('api/', include('logistics.urls')),
    path('api/', include('finance.urls')),
]
