"""
apps.config_core.services.config_resolver
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
Hierarchical resolution of config sets.

Merge precedence (lowest → highest priority) follows the parent chain:

    root set → … → parent → requested set

Each layer contributes the values it owns directly; a key defined by a
descendant replaces the ancestor's value wholesale.  Every resolved value
records the set that defined it.

Consistency
-----------
The chain and all built-in values are read inside one transaction (REPEATABLE
READ on PostgreSQL), so concurrent writes never produce a mix of old and new
values.  Sets on external stores are queried after that transaction closes so
a slow backend never holds a database snapshot open.

Secrets
-------
``include_secrets=False`` omits secret keys entirely.  With
``include_secrets=True`` and ``mask_secrets=True`` they are present with a
fixed mask; only ``mask_secrets=False`` yields plaintext.

Public API
----------
ConfigSetResolver.resolve(set_id, include_secrets, mask_secrets) -> ResolvedConfig
ConfigSetResolver.compare(set_a, set_b) -> ConfigDiff
ConfigSetResolver.clone(source_id, new_name, new_environment, actor) -> ConfigSet
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import structlog
from django.db import connection, transaction

from common.audit import audited
from common.exceptions import CycleError, NotFoundError, ValidationError
from apps.config_core.models import ConfigSet
from . import value_kinds
from .config_sets import get_set
from .crypto import SECRET_MASK

logger = structlog.get_logger(__name__)


@dataclass
class ResolvedValue:
    value: Any
    kind: str
    is_secret: bool
    defining_set_id: int
    version: int | None = None
    masked: bool = False

    def as_dict(self) -> dict:
        return {
            "value": self.value,
            "kind": self.kind,
            "is_secret": self.is_secret,
            "masked": self.masked,
            "defining_set_id": self.defining_set_id,
            "version": self.version,
        }


@dataclass
class ResolvedConfig:
    set_id: int
    set_name: str
    environment: str
    values: dict[str, ResolvedValue] = field(default_factory=dict)
    #: Ancestor set ids, root first, excluding the requested set.
    inherited_from: list[int] = field(default_factory=list)

    def plain_values(self) -> dict[str, Any]:
        return {key: rv.value for key, rv in self.values.items()}

    def as_dict(self) -> dict:
        return {
            "set_id": self.set_id,
            "set_name": self.set_name,
            "environment": self.environment,
            "values": {key: rv.as_dict() for key, rv in sorted(self.values.items())},
            "inherited_from": self.inherited_from,
        }


@dataclass
class ConfigDiff:
    """Differences going from set A to set B."""

    added: dict[str, Any] = field(default_factory=dict)
    removed: dict[str, Any] = field(default_factory=dict)
    changed: dict[str, dict] = field(default_factory=dict)
    unchanged: list[str] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "added": self.added,
            "removed": self.removed,
            "changed": self.changed,
            "unchanged": self.unchanged,
        }


class ConfigSetResolver:
    """
    Resolves, compares and clones config sets.

    Example::

        resolver = ConfigSetResolver(registry, values=value_store, max_depth=32)
        resolved = resolver.resolve(set_id, include_secrets=True)
        resolved.values["DATABASE_URL"].defining_set_id
    """

    def __init__(self, registry, *, values=None, max_depth: int = 32) -> None:
        self.registry = registry
        self.values = values
        self.max_depth = max_depth

    # ------------------------------------------------------------------
    # Resolve
    # ------------------------------------------------------------------

    def resolve(
        self,
        set_id: str | int,
        *,
        include_secrets: bool = False,
        mask_secrets: bool = True,
    ) -> ResolvedConfig:
        chain, layers = self._snapshot(set_id)

        for config_set in chain:
            if config_set.pk not in layers:
                layers[config_set.pk] = self.registry.create(config_set).iter_all()

        resolved: dict[str, ResolvedValue] = {}
        for config_set in chain:
            for stored in layers[config_set.pk]:
                kind = stored.metadata.get("kind") or value_kinds.STRING
                is_secret = bool(stored.metadata.get("is_secret")) or kind == value_kinds.SECRET
                resolved[stored.key] = ResolvedValue(
                    value=value_kinds.deserialize(stored.value, kind),
                    kind=kind,
                    is_secret=is_secret,
                    defining_set_id=config_set.pk,
                    version=stored.version,
                )

        for key in list(resolved):
            rv = resolved[key]
            if not rv.is_secret:
                continue
            if not include_secrets:
                del resolved[key]
            elif mask_secrets:
                rv.value = SECRET_MASK
                rv.masked = True

        leaf = chain[-1]
        logger.debug(
            "config_set_resolved",
            set_id=str(leaf.pk),
            chain=[cs.pk for cs in chain],
            key_count=len(resolved),
        )
        return ResolvedConfig(
            set_id=leaf.pk,
            set_name=leaf.name,
            environment=leaf.environment,
            values=resolved,
            inherited_from=[cs.pk for cs in chain[:-1]],
        )

    def _snapshot(self, set_id) -> tuple[list[ConfigSet], dict[int, list]]:
        """Chain (root first) plus the built-in layers, read in one transaction."""
        outermost = not connection.in_atomic_block
        with transaction.atomic():
            if outermost and connection.vendor == "postgresql":
                with connection.cursor() as cursor:
                    cursor.execute("SET TRANSACTION ISOLATION LEVEL REPEATABLE READ")
            chain = self._load_chain(set_id)
            layers = {
                cs.pk: self.registry.create(cs).iter_all()
                for cs in chain
                if not cs.store.is_external
            }
        return chain, layers

    def _load_chain(self, set_id) -> list[ConfigSet]:
        try:
            node = ConfigSet.objects.select_related("store").get(pk=set_id)
        except (ConfigSet.DoesNotExist, ValueError):
            raise NotFoundError(f"Config set '{set_id}' not found.")

        chain = [node]
        visited = {node.pk}
        while node.parent_id is not None:
            if node.parent_id in visited:
                raise CycleError(f"Config set {node.parent_id} appears twice in the parent chain.")
            if len(chain) >= self.max_depth:
                raise ValidationError(
                    f"Parent chain exceeds {self.max_depth} levels.",
                    code="hierarchy_too_deep",
                )
            node = ConfigSet.objects.select_related("store").get(pk=node.parent_id)
            visited.add(node.pk)
            chain.append(node)

        chain.reverse()
        return chain

    # ------------------------------------------------------------------
    # Compare
    # ------------------------------------------------------------------

    def compare(self, set_a: str | int, set_b: str | int) -> ConfigDiff:
        """
        Diff two resolutions.  Secrets are compared by their real values but
        reported masked.
        """
        a = self.resolve(set_a, include_secrets=True, mask_secrets=False).values
        b = self.resolve(set_b, include_secrets=True, mask_secrets=False).values

        def shown(rv: ResolvedValue) -> Any:
            return SECRET_MASK if rv.is_secret else rv.value

        diff = ConfigDiff()
        for key in sorted(a.keys() | b.keys()):
            if key not in a:
                diff.added[key] = shown(b[key])
            elif key not in b:
                diff.removed[key] = shown(a[key])
            elif a[key].value != b[key].value or a[key].kind != b[key].kind:
                diff.changed[key] = {"from": shown(a[key]), "to": shown(b[key])}
            else:
                diff.unchanged.append(key)
        return diff

    # ------------------------------------------------------------------
    # Clone
    # ------------------------------------------------------------------

    def clone(
        self,
        source_id: str | int,
        new_name: str,
        *,
        new_environment: str | None = None,
        actor: str = "",
    ) -> ConfigSet:
        """
        Copy a set and the values it owns directly (inherited values are not
        copied; the clone keeps the source's parent).  Values are re-encrypted
        under the new set's key and start again at version 1.
        """
        from .config_sets import create_set  # noqa: PLC0415

        with audited(
            "config_set.clone",
            actor=actor,
            resource_type="config_set",
            resource_id=source_id,
            new_name=new_name,
        ) as event:
            source = get_set(source_id)
            owned = self.registry.create(source).iter_all()

            with transaction.atomic():
                clone = create_set(
                    store_id=source.store_id,
                    name=new_name,
                    scope=source.scope,
                    org_id=source.organization_id,
                    repo_id=source.repository_id,
                    environment=source.environment if new_environment is None else new_environment,
                    parent_id=source.parent_id,
                    schema_id=source.schema_id,
                    description=source.description,
                    actor=actor,
                )
                for stored in owned:
                    kind = stored.metadata.get("kind") or value_kinds.STRING
                    self.values.write_text(
                        clone,
                        stored.key,
                        stored.value,
                        kind=kind,
                        is_secret=bool(stored.metadata.get("is_secret")) or kind == value_kinds.SECRET,
                        description=stored.metadata.get("description"),
                        actor=actor,
                        reason=f"cloned from set {source.pk}",
                    )
            event.update(clone_id=clone.pk, value_count=len(owned))

        logger.info("config_set_cloned", source_id=str(source.pk), clone_id=str(clone.pk))
        return clone
