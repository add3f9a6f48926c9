"""
apps.access_tokens.authentication

``Authorization: Bearer cfg_...`` for DRF.  ``request.auth`` is the
:class:`AccessToken`; scope and permission are checked by the view.
"""
from django.contrib.auth.models import AnonymousUser
from rest_framework.authentication import BaseAuthentication, get_authorization_header

from common.exceptions import AuthenticationError
from .services import authenticate_token


class ConfigTokenAuthentication(BaseAuthentication):
    keyword = b"bearer"

    def authenticate(self, request):
        parts = get_authorization_header(request).split()
        if not parts or parts[0].lower() != self.keyword:
            return None
        if len(parts) != 2:
            raise AuthenticationError("Malformed Authorization header.")
        try:
            plaintext = parts[1].decode("ascii")
        except UnicodeDecodeError:
            raise AuthenticationError()
        return AnonymousUser(), authenticate_token(plaintext)

    def authenticate_header(self, request):
        return "Bearer"
