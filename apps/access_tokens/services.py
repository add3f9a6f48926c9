"""
apps.access_tokens.services
~~~~~~~~~~~~~~~~~~~~~~~~~~~
Issue, verify and revoke access tokens.

Verification goes through Django's cache keyed by the token hash, so a busy
pipeline does not hit the database on every request.  Revocation evicts the
entry on the revoking node at once; other nodes stop accepting the token
within ``CONFIG_TOKEN_CACHE_TTL_SECONDS``.
"""
from __future__ import annotations

import hashlib
import secrets
from datetime import datetime

import structlog
from django.conf import settings
from django.core.cache import cache
from django.db import DatabaseError
from django.db.models import F
from django.utils import timezone

from common.audit import audited
from common.exceptions import AuthenticationError, NotFoundError, PermissionDeniedError, ValidationError
from apps.config_core.services.config_sets import get_set
from .models import AccessToken

logger = structlog.get_logger(__name__)

TOKEN_PREFIX = "cfg_"
CACHE_KEY = "access_token:{}"


def hash_token(plaintext: str) -> str:
    return hashlib.sha256(plaintext.encode("utf-8")).hexdigest()


def _cache_key(token_hash: str) -> str:
    return CACHE_KEY.format(token_hash)


def _check_allowed_sets(config_set, set_ids) -> list[str]:
    """
    Resolve the extra sets a token may reach.  They must belong to the same
    organisation as the token's own set.
    """
    allowed = []
    for set_id in set_ids:
        other = get_set(set_id)
        if other.store.organization_id != config_set.store.organization_id:
            raise PermissionDeniedError(
                f"Config set {set_id} belongs to another organisation.",
                code="token_cross_tenant",
            )
        allowed.append(str(other.id))
    return allowed


def create_token(
    *,
    set_id: str | int,
    name: str,
    permission: str = AccessToken.Permission.READ,
    allowed_set_ids: list | None = None,
    expires_at: datetime | None = None,
    actor: str = "",
) -> tuple[AccessToken, str]:
    """
    Issue a token bound to *set_id*.

    Returns:
        ``(token, plaintext)``.  The plaintext is not recoverable later.

    Raises:
        NotFoundError: *set_id* or an entry of *allowed_set_ids* is missing.
        PermissionDeniedError: An allowed set belongs to another organisation.
    """
    with audited(
        "access_token.create",
        actor=actor,
        resource_type="config_set",
        resource_id=set_id,
        permission=permission,
    ) as event:
        if permission not in AccessToken.Permission.values:
            raise ValidationError(f"Unknown permission '{permission}'.", code="invalid_permission")
        if expires_at is not None and expires_at <= timezone.now():
            raise ValidationError("expires_at must be in the future.", code="invalid_expiry")
        config_set = get_set(set_id)
        allowed = _check_allowed_sets(config_set, allowed_set_ids or ())

        plaintext = TOKEN_PREFIX + secrets.token_hex(32)
        token = AccessToken.objects.create(
            config_set=config_set,
            name=name,
            token_prefix=plaintext[:8],
            token_hash=hash_token(plaintext),
            permission=permission,
            allowed_set_ids=allowed,
            expires_at=expires_at,
            created_by=actor,
        )
        event.update(token_id=token.id, token_prefix=token.token_prefix)
    return token, plaintext


def _lookup(plaintext: str) -> AccessToken:
    if not plaintext or not plaintext.startswith(TOKEN_PREFIX):
        raise AuthenticationError()
    token_hash = hash_token(plaintext)
    key = _cache_key(token_hash)
    token = cache.get(key)
    if token is None:
        try:
            token = AccessToken.objects.get(token_hash=token_hash)
        except AccessToken.DoesNotExist:
            raise AuthenticationError()
        cache.set(key, token, settings.CONFIG_TOKEN_CACHE_TTL_SECONDS)
    return token


def check_access(token: AccessToken, set_id: str | int | None, required_permission: str) -> None:
    """
    Raises:
        PermissionDeniedError: *set_id* is outside the token's scope or the
            token's permission is below *required_permission*.
    """
    if set_id is not None and not token.covers(set_id):
        raise PermissionDeniedError(
            f"Token {token.token_prefix} is not valid for config set {set_id}.",
            code="token_scope",
        )
    if not token.grants(required_permission):
        raise PermissionDeniedError(
            f"Token {token.token_prefix} lacks '{required_permission}' permission.",
            code="token_permission",
        )


def _record_usage(token: AccessToken) -> None:
    try:
        AccessToken.objects.filter(pk=token.pk).update(
            usage_count=F("usage_count") + 1,
            last_used_at=timezone.now(),
        )
    except DatabaseError:
        logger.warning("access_token_usage_update_failed", token_prefix=token.token_prefix, exc_info=True)


def authenticate_token(plaintext: str) -> AccessToken:
    """
    Resolve *plaintext* to an active, unexpired token without checking scope.

    Usage is not recorded here; see :func:`authorize`.

    Raises:
        AuthenticationError: Unknown, revoked or expired token.
    """
    token = _lookup(plaintext)
    if not token.is_active or token.is_expired:
        raise AuthenticationError()
    return token


def authorize(token: AccessToken, set_id: str | int | None, required_permission: str) -> None:
    """Check scope and permission, then count the use of *token*."""
    check_access(token, set_id, required_permission)
    _record_usage(token)


def verify_token(
    plaintext: str,
    set_id: str | int | None = None,
    required_permission: str = AccessToken.Permission.READ,
) -> AccessToken:
    """
    Resolve *plaintext* to an active token allowed on *set_id*.

    Raises:
        AuthenticationError: Unknown, revoked or expired token.
        PermissionDeniedError: See :func:`check_access`.
    """
    token = authenticate_token(plaintext)
    authorize(token, set_id, required_permission)
    return token


def revoke_token(token_id: str | int, *, actor: str = "") -> AccessToken:
    with audited("access_token.revoke", actor=actor, resource_type="access_token", resource_id=token_id):
        token = get_token(token_id)
        token.is_active = False
        token.save(update_fields=["is_active", "updated_at"])
        cache.delete(_cache_key(token.token_hash))
    logger.info("access_token_revoked", token_id=str(token.id), token_prefix=token.token_prefix)
    return token


def get_token(token_id: str | int) -> AccessToken:
    try:
        return AccessToken.objects.get(pk=token_id)
    except (AccessToken.DoesNotExist, ValueError):
        raise NotFoundError(f"Access token '{token_id}' not found.")


def list_tokens(set_id: str | int) -> list[AccessToken]:
    get_set(set_id)
    return list(AccessToken.objects.filter(config_set_id=set_id))
