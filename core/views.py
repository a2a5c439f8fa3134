"""
Core App Views - User Management API
"""

from rest_framework import viewsets, permissions
from rest_framework.decorators import action
from rest_framework.response import Response
from django.contrib.auth import get_user_model

from .models import UserRole
from .permissions import IsAdminUser
from .serializers import UserSerializer, UserCreateSerializer

User = get_user_model()


class UserViewSet(viewsets.ModelViewSet):
    """
    ViewSet for User model.

    - List/Destroy: Admin only
    - Create: Public (registration)
    - Retrieve/Update: Self only (admin sees everyone)
    """

    queryset = User.objects.all()
    serializer_class = UserSerializer

    def get_permissions(self):
        if self.action == 'create':
            return [permissions.AllowAny()]
        elif self.action in ['list', 'destroy', 'couriers']:
            return [IsAdminUser()]
        return [permissions.IsAuthenticated()]

    def get_serializer_class(self):
        if self.action == 'create':
            return UserCreateSerializer
        return UserSerializer

    def get_queryset(self):
        user = self.request.user
        if user.is_authenticated and user.role == UserRole.ADMIN:
            return User.objects.all()
        # Non-admin can only see their own profile
        return User.objects.filter(pk=user.pk)

    @action(detail=False, methods=['get'])
    def me(self, request):
        """Get current user profile."""
        serializer = self.get_serializer(request.user)
        return Response(serializer.data)

    @action(detail=False, methods=['get'])
    def couriers(self, request):
        """List all couriers (Admin only)."""
        couriers = User.objects.filter(role=UserRole.COURIER)
        serializer = self.get_serializer(couriers, many=True)
        return Response(serializer.data)
