from rest_framework import permissions

from leasing_app.models import UserProfile


class IsLandlord(permissions.BasePermission):
    """Only accounts whose profile role is landlord (or staff) may write."""
    message = "Only landlords can manage listings"

    def has_permission(self, request, view):
        if request.method in permissions.SAFE_METHODS:
            return True
        user = request.user
        if not (user and user.is_authenticated):
            return False
        if user.is_staff:
            return True
        profile = getattr(user, "profile", None)
        return getattr(profile, "role", None) == UserProfile.ROLE_LANDLORD


class IsLandlordOwnerOrReadOnly(permissions.BasePermission):
    """Read for all; write only by the listing's landlord or staff."""
    message = "Only the landlord can modify this property"

    def has_object_permission(self, request, view, obj):
        if request.method in permissions.SAFE_METHODS:
            return True
        return obj.landlord_id == request.user.pk or bool(request.user and request.user.is_staff)
