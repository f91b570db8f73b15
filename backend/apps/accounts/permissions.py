# apps/accounts/permissions.py
from rest_framework import permissions


class IsDriver(permissions.BasePermission):
    message = "User is not a registered driver"

    def has_permission(self, request, view):
        return bool(
            request.user and
            request.user.is_authenticated and
            hasattr(request.user, 'driver_profile')
        )


class IsVerifiedDriver(IsDriver):
    """
    Session-token actions (claiming and running deliveries) need a finished registration.
    """
    message = "Driver registration is not complete"

    def has_permission(self, request, view):
        return super().has_permission(request, view) and request.user.driver_profile.verified
