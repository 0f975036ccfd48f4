from rest_framework.permissions import BasePermission, SAFE_METHODS

from .models import UserProfile


def user_role(user):
    profile = getattr(user, "profile", None)
    return profile.role if profile else None


def is_admin(user):
    return user_role(user) == UserProfile.ADMIN or getattr(user, "is_superuser", False)


class HasRole(BasePermission):
    """Allow reads to any authenticated user, writes only to ``roles`` (and admins)."""

    roles = ()

    def has_permission(self, request, view):
        user = request.user
        if not (user and user.is_authenticated):
            return False
        if request.method in SAFE_METHODS:
            return True
        return is_admin(user) or user_role(user) in self.roles


class IsPlanner(HasRole):
    roles = (UserProfile.SUPERVISOR,)


class IsShopFloor(HasRole):
    roles = (UserProfile.SUPERVISOR, UserProfile.OPERATOR)


class IsDispatcher(HasRole):
    roles = (UserProfile.SUPERVISOR, UserProfile.DISPATCHER)
