# ==================== UTILS/PERMISSIONS.PY ====================
from rest_framework import permissions


class IsAdminRole(permissions.BasePermission):
    """Platform administrators only"""

    def has_permission(self, request, view):
        user = request.user
        return bool(user and user.is_authenticated and user.is_admin)


class IsHostOrAdmin(permissions.BasePermission):
    """Hosts list spaces; admins can act for them"""

    def has_permission(self, request, view):
        user = request.user
        return bool(user and user.is_authenticated and (user.is_host or user.is_admin))


class IsOwnerOrAdmin(permissions.BasePermission):
    """Permission to check if user owns the parking space"""

    def has_object_permission(self, request, view, obj):
        return obj.owner == request.user or request.user.is_admin


class CanViewBooking(permissions.BasePermission):
    """Driver, owner of the booked space, or an admin"""

    def has_object_permission(self, request, view, obj):
        user = request.user
        return obj.driver == user or obj.parking_space.owner == user or user.is_admin
