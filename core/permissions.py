"""
Core App - Role based DRF permissions shared by all apps.
"""

from rest_framework import permissions

from .models import UserRole


class IsAdminUser(permissions.BasePermission):
    """Permission for admin users only."""

    def has_permission(self, request, view):
        return request.user.is_authenticated and request.user.role == UserRole.ADMIN


class IsCourier(permissions.BasePermission):
    """Permission for courier users only."""

    def has_permission(self, request, view):
        return request.user.is_authenticated and request.user.role == UserRole.COURIER


class IsRequester(permissions.BasePermission):
    """Permission for users who can publish offers (clients and businesses)."""

    def has_permission(self, request, view):
        return request.user.is_authenticated and request.user.is_requester
