"""
apps.access_tokens.permissions
"""
from rest_framework.permissions import BasePermission

from .models import AccessToken


class HasAccessToken(BasePermission):
    """Allow only requests authenticated by :class:`ConfigTokenAuthentication`."""

    def has_permission(self, request, view) -> bool:
        return isinstance(request.auth, AccessToken)
