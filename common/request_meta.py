"""
common.request_meta
~~~~~~~~~~~~~~~~~~~
Who is calling and from where, as recorded in value history and audit events.

Human authentication is handled by the surrounding platform, which passes
the acting identity in the ``X-Actor`` header.  Token-authenticated CI calls
use the token as the actor.
"""
from __future__ import annotations

from django.core.exceptions import ValidationError as DjangoValidationError
from django.core.validators import validate_ipv46_address


def actor_for(request) -> str:
    token = getattr(request, "auth", None)
    if token is not None and hasattr(token, "token_prefix"):
        return f"token:{token.token_prefix}"
    return request.headers.get("X-Actor", "")


def _valid_ip(value: str | None) -> str | None:
    if not value:
        return None
    try:
        validate_ipv46_address(value)
    except DjangoValidationError:
        return None
    return value


def client_ip(request) -> str | None:
    """
    First ``X-Forwarded-For`` hop if it is an IP address, else ``REMOTE_ADDR``.
    History rows store the address in an ``inet`` column, so anything that
    does not parse is dropped.
    """
    forwarded = request.META.get("HTTP_X_FORWARDED_FOR", "")
    if forwarded:
        ip_address = _valid_ip(forwarded.split(",")[0].strip())
        if ip_address:
            return ip_address
    return _valid_ip(request.META.get("REMOTE_ADDR"))


def request_meta(request) -> dict:
    return {
        "ip_address": client_ip(request),
        "user_agent": request.META.get("HTTP_USER_AGENT", "")[:500],
    }
