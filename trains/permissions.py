from rest_framework.permissions import BasePermission


class IsAdminUser(BasePermission):
    """Allows access only to users flagged as admins."""
    message = "Admin privileges are required."

    def has_permission(self, request, view):
        user = request.user
        return bool(user and user.is_authenticated and user.is_admin)
