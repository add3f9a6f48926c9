"""
apps.config_core.services.store_service
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
Management of an organisation's storage backends.

Credentials are encrypted with the organisation's store key on the way in
and are only ever decrypted by the adapter registry.
"""
from __future__ import annotations

import structlog
from django.db import IntegrityError, transaction
from django.utils import timezone

from common.exceptions import ConflictError, NotFoundError, ValidationError
from apps.config_core.models import ConfigStore
from apps.config_core.stores import ConnectionTestResult
from apps.organizations.services import get_organization

logger = structlog.get_logger(__name__)


class StoreService:
    def __init__(self, registry) -> None:
        self.registry = registry

    def _check_type(self, store_type: str) -> None:
        if not self.registry.is_registered(store_type):
            raise ValidationError(
                f"Unsupported store type '{store_type}'. "
                f"Available: {self.registry.store_types}.",
                code="unknown_store_type",
            )

    def create_store(
        self,
        *,
        org_id: str | int,
        name: str,
        store_type: str = ConfigStore.StoreType.BUILTIN,
        credentials: dict | None = None,
        settings: dict | None = None,
        is_default: bool = False,
    ) -> ConfigStore:
        self._check_type(store_type)
        org = get_organization(org_id)
        ciphertext = nonce = ""
        if credentials:
            ciphertext, nonce = self.registry.cipher.encrypt_credentials(org.id, credentials)

        try:
            with transaction.atomic():
                if is_default:
                    ConfigStore.objects.filter(organization=org, is_default=True).update(is_default=False)
                store = ConfigStore.objects.create(
                    organization=org,
                    name=name,
                    store_type=store_type,
                    credentials_ciphertext=ciphertext,
                    credentials_nonce=nonce,
                    settings=settings or {},
                    is_default=is_default,
                )
        except IntegrityError as exc:
            raise ConflictError(f"Store '{name}' already exists in this organisation.") from exc

        logger.info("config_store_created", store_id=str(store.id), org_id=str(org.id), store_type=store_type)
        return store

    def get_store(self, store_id: str | int) -> ConfigStore:
        try:
            return ConfigStore.objects.select_related("organization").get(pk=store_id)
        except (ConfigStore.DoesNotExist, ValueError):
            raise NotFoundError(f"Config store '{store_id}' not found.")

    def list_stores(self, *, org_id: str | int) -> list[ConfigStore]:
        return list(ConfigStore.objects.filter(organization_id=org_id))

    def update_store(self, store_id: str | int, *, data: dict) -> ConfigStore:
        """Rename, rotate credentials, change settings, activation or default flag."""
        store = self.get_store(store_id)
        changed = []
        with transaction.atomic():
            for field in ("name", "settings", "is_active"):
                if field in data:
                    setattr(store, field, data[field])
                    changed.append(field)
            if data.get("credentials") is not None:
                store.credentials_ciphertext, store.credentials_nonce = (
                    self.registry.cipher.encrypt_credentials(store.organization_id, data["credentials"])
                )
                changed += ["credentials_ciphertext", "credentials_nonce"]
            if "is_default" in data:
                if data["is_default"]:
                    (
                        ConfigStore.objects
                        .filter(organization_id=store.organization_id, is_default=True)
                        .exclude(pk=store.pk)
                        .update(is_default=False)
                    )
                store.is_default = data["is_default"]
                changed.append("is_default")
            if changed:
                try:
                    store.save(update_fields=[*changed, "updated_at"])
                except IntegrityError as exc:
                    raise ConflictError("Another store already uses that name.") from exc

        # Field names only; credential values never reach the log.
        logger.info("config_store_updated", store_id=str(store.id), fields=changed)
        return store

    def test_store(self, store_id: str | int) -> ConnectionTestResult:
        """Test the backend connection and record the outcome on the store."""
        store = self.get_store(store_id)
        result = self.registry.create_for_store(store).test_connection()
        store.last_tested_at = timezone.now()
        store.last_test_ok = result.ok
        store.last_test_error = "" if result.ok else result.details[:500]
        store.save(update_fields=["last_tested_at", "last_test_ok", "last_test_error", "updated_at"])
        logger.info(
            "config_store_tested",
            store_id=str(store.id),
            ok=result.ok,
            latency_ms=result.latency_ms,
        )
        return result
