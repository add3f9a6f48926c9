"""
apps.config_core.services.config_sets
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
Lifecycle of config sets: creation, updates, parent changes, locking and
archiving.  Values are managed by :mod:`.value_store`; resolution by
:mod:`.config_resolver`.

A set's parent chain must stay finite and acyclic.  :func:`set_parent`
checks the proposed chain under row locks and rejects the change
atomically, then recomputes ``hierarchy_rank`` for the whole subtree.
"""
from __future__ import annotations

from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone

import structlog

from common.audit import audited
from common.exceptions import (
    ConflictError,
    CycleError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from apps.config_core.models import ConfigSet, ConfigStore
from apps.organizations.services import get_organization, get_repository

logger = structlog.get_logger(__name__)


def _max_depth() -> int:
    return settings.CONFIG_MAX_HIERARCHY_DEPTH


# ---------------------------------------------------------------------------
# Lookup
# ---------------------------------------------------------------------------

def get_set(set_id: str | int, *, for_update: bool = False) -> ConfigSet:
    """Fetch a ConfigSet (with its store), raise NotFoundError if missing."""
    qs = ConfigSet.objects.select_related("store", "schema")
    if for_update:
        qs = qs.select_for_update(of=("self",))
    try:
        return qs.get(pk=set_id)
    except (ConfigSet.DoesNotExist, ValueError):
        raise NotFoundError(f"Config set '{set_id}' not found.")


def list_sets(
    *,
    org_id: str | int | None = None,
    repo_id: str | int | None = None,
    store_id: str | int | None = None,
    environment: str | None = None,
    include_archived: bool = False,
) -> list[ConfigSet]:
    qs = ConfigSet.objects.select_related("store")
    if org_id:
        qs = qs.filter(store__organization_id=org_id)
    if repo_id:
        qs = qs.filter(repository_id=repo_id)
    if store_id:
        qs = qs.filter(store_id=store_id)
    if environment:
        qs = qs.filter(environment=environment)
    if not include_archived:
        qs = qs.filter(is_active=True)
    return list(qs)


def ensure_writable(config_set: ConfigSet, *, admin_override: bool = False) -> None:
    """
    Raise if values of *config_set* may not change.

    Archived sets are read-only.  Locked sets accept writes only with an
    explicit admin override.
    """
    if not config_set.is_active:
        raise PermissionDeniedError(
            f"Config set '{config_set.name}' is archived.",
            code="set_archived",
        )
    if config_set.is_locked and not admin_override:
        raise PermissionDeniedError(
            f"Config set '{config_set.name}' is locked.",
            code="set_locked",
        )


# ---------------------------------------------------------------------------
# Create / update
# ---------------------------------------------------------------------------

def create_set(
    *,
    store_id: str | int,
    name: str,
    scope: str,
    org_id: str | int | None = None,
    repo_id: str | int | None = None,
    environment: str = "",
    parent_id: str | int | None = None,
    schema_id: str | int | None = None,
    description: str = "",
    actor: str = "",
) -> ConfigSet:
    """
    Create a config set on *store_id*.

    Repository-scoped sets need ``repo_id``, organisation-scoped sets need
    ``org_id``; environment sets may name either owner or none.  Every owner,
    parent and schema must belong to the store's organisation.
    """
    try:
        store = ConfigStore.objects.get(pk=store_id)
    except (ConfigStore.DoesNotExist, ValueError):
        raise NotFoundError(f"Config store '{store_id}' not found.")
    if not store.is_active:
        raise ValidationError("The config store is inactive.", code="store_inactive")

    if scope not in ConfigSet.Scope.values:
        raise ValidationError(f"Unknown scope '{scope}'.", code="invalid_scope")

    organization = repository = None
    if scope == ConfigSet.Scope.REPOSITORY:
        if not repo_id or org_id:
            raise ValidationError("Repository sets need repo_id only.", code="invalid_owner")
    elif scope == ConfigSet.Scope.ORGANIZATION:
        if not org_id or repo_id:
            raise ValidationError("Organisation sets need org_id only.", code="invalid_owner")
    elif org_id and repo_id:
        raise ValidationError("A set has at most one owner.", code="invalid_owner")

    if repo_id:
        repository = get_repository(repo_id)
        if repository.organization_id != store.organization_id:
            raise ValidationError("Repository belongs to another organisation.", code="cross_tenant")
    if org_id:
        organization = get_organization(org_id)
        if organization.id != store.organization_id:
            raise ValidationError("Organisation does not own this store.", code="cross_tenant")

    parent = None
    if parent_id:
        parent = get_set(parent_id)
        if parent.store.organization_id != store.organization_id:
            raise ValidationError("Parent set belongs to another organisation.", code="cross_tenant")
        if parent.hierarchy_rank + 1 >= _max_depth():
            raise ValidationError("Parent chain is too deep.", code="hierarchy_too_deep")

    schema = _schema_for(schema_id, store.organization_id) if schema_id else None

    try:
        config_set = ConfigSet.objects.create(
            store=store,
            scope=scope,
            organization=organization,
            repository=repository,
            name=name,
            environment=environment or "",
            description=description,
            parent=parent,
            hierarchy_rank=parent.hierarchy_rank + 1 if parent else 0,
            schema=schema,
            created_by=actor,
        )
    except IntegrityError as exc:
        raise ConflictError(
            f"Config set '{name}' already exists for this store and environment."
        ) from exc

    logger.info(
        "config_set_created",
        set_id=str(config_set.id),
        store_id=str(store.id),
        scope=scope,
        parent_id=str(parent.id) if parent else None,
    )
    return config_set


def _schema_for(schema_id, org_id):
    from apps.schema_registry.services import get_schema  # noqa: PLC0415

    schema = get_schema(schema_id)
    if schema.owner_organization_id != org_id:
        raise ValidationError("Schema belongs to another organisation.", code="cross_tenant")
    return schema


def update_set(set_id: str | int, *, data: dict) -> ConfigSet:
    """Partial-update name, description, environment and schema."""
    config_set = get_set(set_id)
    changed = []
    for field in ("name", "description", "environment"):
        if field in data:
            setattr(config_set, field, data[field] or "")
            changed.append(field)
    if "schema_id" in data:
        schema_id = data["schema_id"]
        config_set.schema = (
            _schema_for(schema_id, config_set.store.organization_id) if schema_id else None
        )
        changed.append("schema")
    if changed:
        try:
            config_set.save(update_fields=[*changed, "updated_at"])
        except IntegrityError as exc:
            raise ConflictError("Another set already uses that name and environment.") from exc
    logger.info("config_set_updated", set_id=str(config_set.id), fields=changed)
    return config_set


# ---------------------------------------------------------------------------
# Hierarchy
# ---------------------------------------------------------------------------

def set_parent(set_id: str | int, parent_id: str | int | None, *, actor: str = "") -> ConfigSet:
    """
    Re-parent a set (``parent_id=None`` detaches it).

    Raises:
        CycleError: If the set would become its own ancestor.
        ValidationError: If the resulting chain exceeds the depth bound or
            crosses organisations.
    """
    with audited(
        "config_set.set_parent",
        actor=actor,
        resource_type="config_set",
        resource_id=set_id,
        parent_id=parent_id,
    ):
        with transaction.atomic():
            config_set = get_set(set_id, for_update=True)
            parent = None
            if parent_id is not None:
                parent = get_set(parent_id, for_update=True)
                if parent.store.organization_id != config_set.store.organization_id:
                    raise ValidationError(
                        "Parent set belongs to another organisation.", code="cross_tenant"
                    )
                _check_ancestry(config_set, parent)

            config_set.parent = parent
            config_set.save(update_fields=["parent", "updated_at"])
            _recompute_ranks(config_set)

    logger.info(
        "config_set_parent_changed",
        set_id=str(config_set.id),
        parent_id=str(parent.id) if parent else None,
        hierarchy_rank=config_set.hierarchy_rank,
    )
    return config_set


def _check_ancestry(config_set: ConfigSet, parent: ConfigSet) -> None:
    """Walk up from *parent*; reaching *config_set* means a cycle."""
    visited: set[int] = set()
    node_id = parent.pk
    depth = 0
    while node_id is not None:
        if node_id == config_set.pk or node_id in visited:
            raise CycleError(
                f"Setting set {parent.pk} as parent of set {config_set.pk} creates a cycle."
            )
        visited.add(node_id)
        depth += 1
        if depth >= _max_depth():
            raise ValidationError("Parent chain is too deep.", code="hierarchy_too_deep")
        node_id = (
            ConfigSet.objects.select_for_update().filter(pk=node_id)
            .values_list("parent_id", flat=True).first()
        )


def _recompute_ranks(root: ConfigSet) -> None:
    """Assign ``hierarchy_rank`` to *root* and every descendant, breadth first."""
    root.hierarchy_rank = root.parent.hierarchy_rank + 1 if root.parent_id else 0
    max_depth = _max_depth()
    frontier = [(root.pk, root.hierarchy_rank)]
    ConfigSet.objects.filter(pk=root.pk).update(hierarchy_rank=root.hierarchy_rank)
    seen = {root.pk}

    while frontier:
        next_frontier = []
        for node_id, rank in frontier:
            if rank >= max_depth:
                raise ValidationError("Parent chain is too deep.", code="hierarchy_too_deep")
            child_ids = list(
                ConfigSet.objects.filter(parent_id=node_id).values_list("pk", flat=True)
            )
            for child_id in child_ids:
                if child_id in seen:
                    raise CycleError(f"Config set {child_id} is its own ancestor.")
                seen.add(child_id)
                next_frontier.append((child_id, rank + 1))
            if child_ids:
                ConfigSet.objects.filter(pk__in=child_ids).update(hierarchy_rank=rank + 1)
        frontier = next_frontier


# ---------------------------------------------------------------------------
# Lock / archive
# ---------------------------------------------------------------------------

def lock_set(set_id: str | int, *, actor: str = "", reason: str = "") -> ConfigSet:
    with audited("config_set.lock", actor=actor, resource_type="config_set", resource_id=set_id):
        with transaction.atomic():
            config_set = get_set(set_id, for_update=True)
            config_set.is_locked = True
            config_set.locked_by = actor
            config_set.locked_at = timezone.now()
            config_set.lock_reason = reason[:500]
            config_set.save(
                update_fields=["is_locked", "locked_by", "locked_at", "lock_reason", "updated_at"]
            )
    return config_set


def unlock_set(set_id: str | int, *, actor: str = "") -> ConfigSet:
    with audited("config_set.unlock", actor=actor, resource_type="config_set", resource_id=set_id):
        with transaction.atomic():
            config_set = get_set(set_id, for_update=True)
            config_set.is_locked = False
            config_set.locked_by = ""
            config_set.locked_at = None
            config_set.lock_reason = ""
            config_set.save(
                update_fields=["is_locked", "locked_by", "locked_at", "lock_reason", "updated_at"]
            )
    return config_set


def archive_set(set_id: str | int, *, actor: str = "") -> ConfigSet:
    """Soft-delete: the set stays resolvable but rejects writes."""
    with audited("config_set.archive", actor=actor, resource_type="config_set", resource_id=set_id):
        config_set = get_set(set_id)
        config_set.is_active = False
        config_set.save(update_fields=["is_active", "updated_at"])
    return config_set


def restore_set(set_id: str | int, *, actor: str = "") -> ConfigSet:
    with audited("config_set.restore", actor=actor, resource_type="config_set", resource_id=set_id):
        config_set = get_set(set_id)
        config_set.is_active = True
        config_set.save(update_fields=["is_active", "updated_at"])
    return config_set
