"""
apps.organizations.services.org_service
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
All business logic for the Organizations application.

Views must call only these functions.  No business logic lives in views or
serializers.
"""
from __future__ import annotations

import structlog
from django.db import IntegrityError
from django.db.models import Q

from common.exceptions import ConflictError, NotFoundError
from apps.organizations.models import Organization, Repository

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Organization CRUD
# ---------------------------------------------------------------------------

def create_organization(*, name: str) -> Organization:
    """
    Create a new :class:`Organization`.

    Raises:
        ConflictError: If an organisation with *name* already exists.
    """
    try:
        org = Organization.objects.create(name=name)
    except IntegrityError as exc:
        raise ConflictError("An organisation with that name already exists.") from exc
    logger.info("organization_created", org_id=str(org.id), name=org.name)
    return org


def get_organization(org_id: str | int) -> Organization:
    """
    Fetch an :class:`Organization` by integer ID or slug.

    Raises:
        NotFoundError: If no organisation matches.
    """
    if str(org_id).isdigit():
        q = Q(id=int(org_id)) | Q(slug=str(org_id))
    else:
        q = Q(slug=str(org_id))

    org = Organization.objects.filter(q).first()
    if not org:
        raise NotFoundError(f"Organization '{org_id}' not found.")
    return org


# ---------------------------------------------------------------------------
# Repository CRUD
# ---------------------------------------------------------------------------

def create_repository(*, org_id: str | int, name: str) -> Repository:
    """Create a repository under an organisation."""
    org = get_organization(org_id)
    try:
        repo = Repository.objects.create(organization=org, name=name)
    except IntegrityError as exc:
        raise ConflictError(
            f"Repository '{name}' already exists in this organisation."
        ) from exc
    logger.info("repository_created", repo_id=str(repo.id), org_id=str(org.id))
    return repo


def get_repository(repo_id: str | int) -> Repository:
    """Fetch a :class:`Repository` by ID, raise NotFoundError if missing."""
    try:
        return Repository.objects.select_related("organization").get(pk=repo_id)
    except (Repository.DoesNotExist, ValueError):
        raise NotFoundError(f"Repository '{repo_id}' not found.")
