"""
apps.config_core.stores.builtin
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
The built-in backend: encrypted ``ConfigValue`` rows in the engine's own
database.  The rows are the source of truth; nothing is cached.

Writes are versioned.  Each put locks the live row, bumps its version and
appends one ``ConfigValueHistory`` row in the same transaction.  A key that
was deleted earlier continues from its last historical version, so versions
of a (set, key) pair never repeat.
"""
from __future__ import annotations

import time

import structlog
from django.db import DatabaseError, IntegrityError, transaction
from django.db.models import Max

from apps.config_core.models import ConfigValue, ConfigValueHistory
from .base import BaseStoreAdapter, ConnectionTestResult, StoreListResult, StoreValue

logger = structlog.get_logger(__name__)

DEFAULT_PAGE_SIZE = 500


class BuiltinStoreAdapter(BaseStoreAdapter):
    is_external = False

    @property
    def _org_id(self) -> int:
        return self.config_set.store.organization_id

    def supports_versioning(self) -> bool:
        return True

    def test_connection(self) -> ConnectionTestResult:
        start = time.monotonic()
        try:
            ConfigValue.objects.exists()
        except DatabaseError as exc:
            return ConnectionTestResult(
                ok=False,
                latency_ms=round((time.monotonic() - start) * 1000, 2),
                details=type(exc).__name__,
            )
        return ConnectionTestResult(
            ok=True,
            latency_ms=round((time.monotonic() - start) * 1000, 2),
            details="database reachable",
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _to_store_value(self, row: ConfigValue) -> StoreValue:
        plaintext = self.context.cipher.decrypt_value(
            self._org_id, self.config_set.pk, row.ciphertext, row.nonce
        )
        return StoreValue(
            key=row.key,
            value=plaintext,
            version=row.version,
            metadata={
                "kind": row.kind,
                "is_secret": row.is_secret,
                "description": row.description,
            },
            last_modified=row.updated_at,
        )

    def get(self, key: str) -> StoreValue | None:
        row = ConfigValue.objects.filter(config_set_id=self.config_set.pk, key=key).first()
        return self._to_store_value(row) if row else None

    def list(
        self,
        prefix: str | None = None,
        max_results: int | None = None,
        continuation_token: str | None = None,
    ) -> StoreListResult:
        limit = max_results or DEFAULT_PAGE_SIZE
        qs = ConfigValue.objects.filter(config_set_id=self.config_set.pk)
        if prefix:
            qs = qs.filter(key__startswith=prefix)
        if continuation_token:
            qs = qs.filter(key__gt=continuation_token)
        rows = list(qs.order_by("key")[: limit + 1])

        has_more = len(rows) > limit
        rows = rows[:limit]
        return StoreListResult(
            values=[self._to_store_value(row) for row in rows],
            has_more=has_more,
            continuation_token=rows[-1].key if has_more else None,
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def put(self, key: str, value: str, metadata: dict | None = None) -> StoreValue:
        metadata = metadata or {}
        try:
            return self._versioned_write(key, value, metadata)
        except IntegrityError:
            # Lost a first-insert race on (config_set, key); the row exists
            # now, so the retry takes the update path under its row lock.
            logger.info("config_value_insert_race", set_id=str(self.config_set.pk), key=key)
            return self._versioned_write(key, value, metadata)

    def _versioned_write(self, key: str, value: str, metadata: dict) -> StoreValue:
        actor = metadata.get("actor") or ""
        kind = metadata.get("kind", "string")
        is_secret = bool(metadata.get("is_secret", False))

        with transaction.atomic():
            row = (
                ConfigValue.objects
                .select_for_update()
                .filter(config_set_id=self.config_set.pk, key=key)
                .first()
            )
            ciphertext, nonce = self.context.cipher.encrypt_value(
                self._org_id, self.config_set.pk, value
            )

            if row is None:
                last_version = (
                    ConfigValueHistory.objects
                    .filter(config_set_id=self.config_set.pk, key=key)
                    .aggregate(last=Max("new_version"))["last"]
                ) or 0
                previous = (None, None, last_version or None)
                change_type = ConfigValueHistory.ChangeType.CREATE
                row = ConfigValue.objects.create(
                    config_set_id=self.config_set.pk,
                    key=key,
                    kind=kind,
                    ciphertext=ciphertext,
                    nonce=nonce,
                    is_secret=is_secret,
                    version=last_version + 1,
                    description=metadata.get("description") or "",
                    created_by=actor,
                    updated_by=actor,
                )
            else:
                previous = (row.ciphertext, row.nonce, row.version)
                change_type = ConfigValueHistory.ChangeType.UPDATE
                row.kind = kind
                row.ciphertext = ciphertext
                row.nonce = nonce
                row.is_secret = is_secret
                row.version += 1
                if metadata.get("description") is not None:
                    row.description = metadata["description"]
                row.updated_by = actor
                row.save()

            ConfigValueHistory.objects.create(
                config_set_id=self.config_set.pk,
                key=key,
                kind=kind,
                is_secret=is_secret,
                previous_ciphertext=previous[0],
                previous_nonce=previous[1],
                previous_version=previous[2],
                new_ciphertext=ciphertext,
                new_nonce=nonce,
                new_version=row.version,
                change_type=change_type,
                **self._audit_fields(metadata),
            )

        return StoreValue(
            key=key,
            value=value,
            version=row.version,
            metadata={"kind": kind, "is_secret": is_secret, "change_type": change_type},
            last_modified=row.updated_at,
        )

    def delete(self, key: str, metadata: dict | None = None) -> bool:
        metadata = metadata or {}
        with transaction.atomic():
            row = (
                ConfigValue.objects
                .select_for_update()
                .filter(config_set_id=self.config_set.pk, key=key)
                .first()
            )
            if row is None:
                return False
            ConfigValueHistory.objects.create(
                config_set_id=self.config_set.pk,
                key=key,
                kind=row.kind,
                is_secret=row.is_secret,
                previous_ciphertext=row.ciphertext,
                previous_nonce=row.nonce,
                previous_version=row.version,
                new_ciphertext=None,
                new_nonce=None,
                new_version=row.version,
                change_type=ConfigValueHistory.ChangeType.DELETE,
                **self._audit_fields(metadata),
            )
            row.delete()
        return True

    @staticmethod
    def _audit_fields(metadata: dict) -> dict:
        return {
            "changed_by": metadata.get("actor") or "",
            "change_reason": (metadata.get("reason") or "")[:500],
            "ip_address": metadata.get("ip_address") or None,
            "user_agent": (metadata.get("user_agent") or "")[:500],
        }


def builtin_factory(context) -> BuiltinStoreAdapter:
    return BuiltinStoreAdapter(context)
