"""
apps.config_core.services.value_store
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
Writes, deletes and reads of individual config values.

Every write is typed (see :mod:`.value_kinds`), encrypted, versioned and
recorded in ``ConfigValueHistory`` by the built-in adapter.  For sets on an
external store the backend is written first; the local versioned row and
history are recorded only after the backend accepted the value, so a
failing backend leaves no local trace.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Iterable

import structlog

from common.audit import audited
from common.exceptions import AppError, NotFoundError, ValidationError
from apps.config_core.models import ConfigSet, ConfigValueHistory
from apps.config_core.stores import AdapterContext, BuiltinStoreAdapter, StoreValue
from . import value_kinds
from .config_sets import ensure_writable, get_set
from .crypto import SECRET_MASK

logger = structlog.get_logger(__name__)

KEY_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_.\-]*$")
MAX_KEY_LENGTH = 255


def check_key(key: str) -> None:
    """Raise ValidationError unless *key* is a legal config key."""
    if not isinstance(key, str) or not KEY_PATTERN.match(key) or len(key) > MAX_KEY_LENGTH:
        raise ValidationError(
            f"Invalid key '{key}'. Keys start with a letter or underscore and "
            "contain only letters, digits, '_', '.' and '-'.",
            code="invalid_key",
        )


@dataclass
class BulkPutResult:
    succeeded: list[str] = field(default_factory=list)
    failed: list[dict] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {"succeeded": self.succeeded, "failed": self.failed}


class ValueStore:
    """Value mutations for config sets, wired to a store adapter registry."""

    def __init__(self, registry) -> None:
        self.registry = registry

    def _local(self, config_set: ConfigSet) -> BuiltinStoreAdapter:
        return BuiltinStoreAdapter(AdapterContext(config_set=config_set, cipher=self.registry.cipher))

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def put(
        self,
        set_id: str | int,
        key: str,
        value: Any,
        *,
        kind: str | None = None,
        is_secret: bool = False,
        description: str | None = None,
        actor: str = "",
        reason: str = "",
        request_meta: dict | None = None,
        admin_override: bool = False,
    ) -> StoreValue:
        """
        Create or update *key* in a set and return it with its new version.

        Raises:
            ValidationError: Bad key or a value that does not fit *kind*.
            PermissionDeniedError: The set is archived, or locked without
                ``admin_override``.
            StoreConnectionError: The external backend rejected the write.
        """
        with audited(
            "config_value.put",
            actor=actor,
            resource_type="config_value",
            resource_id=f"{set_id}:{key}",
        ) as event:
            check_key(key)
            if kind is None:
                kind = value_kinds.infer_kind(value)
            kind, is_secret = value_kinds.normalize(kind, is_secret)
            text = value_kinds.serialize(value, kind)
            config_set = get_set(set_id)
            ensure_writable(config_set, admin_override=admin_override)

            result = self.write_text(
                config_set,
                key,
                text,
                kind=kind,
                is_secret=is_secret,
                description=description,
                actor=actor,
                reason=reason,
                request_meta=request_meta,
            )
            event.update(kind=kind, is_secret=is_secret, version=result.version)

        logger.info(
            "config_value_written",
            set_id=str(config_set.id),
            key=key,
            version=result.version,
            change_type=result.metadata.get("change_type"),
        )
        return result

    def write_text(
        self,
        config_set: ConfigSet,
        key: str,
        text: str,
        *,
        kind: str,
        is_secret: bool,
        description: str | None = None,
        actor: str = "",
        reason: str = "",
        request_meta: dict | None = None,
    ) -> StoreValue:
        """Write already-serialized *text*; no writability or type checks."""
        metadata = {
            "kind": kind,
            "is_secret": is_secret,
            "description": description,
            "actor": actor,
            "reason": reason,
            **(request_meta or {}),
        }
        if config_set.store.is_external:
            remote = self.registry.create(config_set).put(key, text, metadata)
            logger.debug(
                "external_value_written",
                set_id=str(config_set.id),
                key=key,
                remote_version=remote.version,
            )
        return self._local(config_set).put(key, text, metadata)

    def delete(
        self,
        set_id: str | int,
        key: str,
        *,
        actor: str = "",
        reason: str = "",
        request_meta: dict | None = None,
        admin_override: bool = False,
    ) -> None:
        """
        Delete *key*, recording a ``delete`` history row.

        Raises:
            NotFoundError: If the key exists neither locally nor remotely.
        """
        with audited(
            "config_value.delete",
            actor=actor,
            resource_type="config_value",
            resource_id=f"{set_id}:{key}",
        ):
            config_set = get_set(set_id)
            ensure_writable(config_set, admin_override=admin_override)
            metadata = {"actor": actor, "reason": reason, **(request_meta or {})}

            removed_remote = False
            if config_set.store.is_external:
                removed_remote = self.registry.create(config_set).delete(key, metadata)
            removed_local = self._local(config_set).delete(key, metadata)
            if not (removed_local or removed_remote):
                raise NotFoundError(f"Key '{key}' not found in config set {set_id}.")

        logger.info("config_value_deleted", set_id=str(config_set.id), key=key)

    def bulk_put(
        self,
        set_id: str | int,
        entries: Iterable[dict],
        *,
        actor: str = "",
        reason: str = "",
        request_meta: dict | None = None,
        admin_override: bool = False,
    ) -> BulkPutResult:
        """
        Apply each entry as an independent :meth:`put`.

        One failing entry does not stop or roll back the others; failures are
        reported per key.  A missing, archived or locked set fails the whole
        call instead.
        """
        result = BulkPutResult()
        entries = list(entries)
        with audited(
            "config_value.bulk_put",
            actor=actor,
            resource_type="config_set",
            resource_id=set_id,
            count=len(entries),
        ) as event:
            ensure_writable(get_set(set_id), admin_override=admin_override)
            for entry in entries:
                key = entry.get("key")
                try:
                    self.put(
                        set_id,
                        key,
                        entry.get("value"),
                        kind=entry.get("kind"),
                        is_secret=bool(entry.get("is_secret", False)),
                        description=entry.get("description"),
                        actor=actor,
                        reason=reason,
                        request_meta=request_meta,
                        admin_override=admin_override,
                    )
                except AppError as exc:
                    detail = exc.default_detail if exc.is_internal else exc.detail
                    result.failed.append({"key": key, "error": detail})
                except Exception:
                    logger.exception("bulk_put_entry_failed", set_id=str(set_id), key=key)
                    result.failed.append({"key": key, "error": "Unexpected error while writing the value."})
                else:
                    result.succeeded.append(key)
            event.update(succeeded=len(result.succeeded), failed=len(result.failed))
        return result

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def history(self, set_id: str | int, key: str, *, limit: int = 50) -> list[ConfigValueHistory]:
        """Change records for *key*, newest first."""
        get_set(set_id)
        return list(
            ConfigValueHistory.objects
            .filter(config_set_id=set_id, key=key)
            .order_by("-id")[:limit]
        )

    def get(self, set_id: str | int, key: str, *, reveal: bool = False) -> dict:
        """
        Read one directly owned value (no inheritance).  Secrets are masked
        unless *reveal* is set.
        """
        config_set = get_set(set_id)
        stored = self.registry.create(config_set).get(key)
        if stored is None:
            raise NotFoundError(f"Key '{key}' not found in config set {set_id}.")

        kind = stored.metadata.get("kind") or value_kinds.STRING
        is_secret = bool(stored.metadata.get("is_secret")) or kind == value_kinds.SECRET
        masked = is_secret and not reveal
        return {
            "key": key,
            "value": SECRET_MASK if masked else value_kinds.deserialize(stored.value, kind),
            "kind": kind,
            "is_secret": is_secret,
            "masked": masked,
            "version": stored.version,
            "description": stored.metadata.get("description", ""),
        }
