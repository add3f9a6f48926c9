"""
apps.config_core.services.engine
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
Wires the config engine's services to one adapter registry.

The process-wide engine is built in :meth:`ConfigCoreConfig.ready` and
fetched with :func:`get_engine`.  Tests build their own with
:func:`build_engine`.
"""
from __future__ import annotations

from typing import Mapping

import structlog
from django.apps import apps as django_apps
from django.conf import settings

from apps.config_core.stores import StoreAdapterRegistry, aws_ssm_factory, builtin_factory, vault_factory
from apps.config_core.models import ConfigStore
from .config_resolver import ConfigSetResolver
from .config_sets import get_set
from .config_validator import ConfigValidationService, CustomCheck, ValidationReport
from .crypto import ValueCipher
from .export_engine import ExportEngine
from .store_service import StoreService
from .value_store import ValueStore

logger = structlog.get_logger(__name__)


class ConfigEngine:
    """
    Attributes:
        registry:  store type → adapter factory
        stores:    :class:`StoreService`
        values:    :class:`ValueStore`
        resolver:  :class:`ConfigSetResolver`
        exports:   :class:`ExportEngine`
    """

    def __init__(
        self,
        registry: StoreAdapterRegistry,
        *,
        max_depth: int = 32,
        custom_checks: Mapping[str, CustomCheck] | None = None,
    ) -> None:
        self.registry = registry
        self.stores = StoreService(registry)
        self.values = ValueStore(registry)
        self.resolver = ConfigSetResolver(registry, values=self.values, max_depth=max_depth)
        self.exports = ExportEngine(self.resolver, self.values)
        self.custom_checks: dict[str, CustomCheck] = dict(custom_checks or {})

    def register_check(self, name: str, check: CustomCheck) -> None:
        """Make *check* available to ``custom`` validators as *name*."""
        self.custom_checks[name] = check

    def validate(self, set_id: str | int) -> ValidationReport:
        """
        Validate the resolved values of a set against its schema.  A set
        without a schema is trivially valid.
        """
        from apps.schema_registry.services import list_validators  # noqa: PLC0415

        config_set = get_set(set_id)
        if config_set.schema_id is None:
            return ValidationReport(ok=True)

        resolved = self.resolver.resolve(set_id, include_secrets=True, mask_secrets=False)
        report = ConfigValidationService.validate(
            resolved.plain_values(),
            config_set.schema.definition,
            list_validators(config_set.schema_id),
            custom_checks=self.custom_checks,
            secret_keys={k for k, rv in resolved.values.items() if rv.is_secret},
        )
        logger.info(
            "config_set_validated",
            set_id=str(config_set.id),
            schema_id=str(config_set.schema_id),
            ok=report.ok,
            violation_count=len(report.violations),
        )
        return report


def build_registry(cipher: ValueCipher, **options) -> StoreAdapterRegistry:
    registry = StoreAdapterRegistry(cipher, **options)
    registry.register(ConfigStore.StoreType.BUILTIN, builtin_factory)
    registry.register(ConfigStore.StoreType.HASHICORP_VAULT, vault_factory)
    registry.register(ConfigStore.StoreType.AWS_SSM, aws_ssm_factory)
    return registry


def build_engine(cipher: ValueCipher | None = None, **registry_options) -> ConfigEngine:
    """Build an engine from Django settings, overridable per argument."""
    options = {
        "timeout": settings.EXTERNAL_STORE_TIMEOUT_SECONDS,
        "max_retries": settings.EXTERNAL_STORE_MAX_RETRIES,
        "backoff": settings.EXTERNAL_STORE_BACKOFF_SECONDS,
        **registry_options,
    }
    registry = build_registry(cipher or ValueCipher.from_settings(), **options)
    return ConfigEngine(registry, max_depth=settings.CONFIG_MAX_HIERARCHY_DEPTH)


def get_engine() -> ConfigEngine:
    return django_apps.get_app_config("config_core").engine
