"""
apps.config_core.stores.registry
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
Maps a store type to the factory that builds its adapter.

A registry is an explicit object built once at start-up (see
:meth:`apps.config_core.apps.ConfigCoreConfig.ready`) and handed to the
services that need adapters.  Tests build their own.
"""
from __future__ import annotations

from typing import Callable

import structlog

from common.exceptions import ValidationError
from .base import AdapterContext, BaseStoreAdapter

logger = structlog.get_logger(__name__)

AdapterFactory = Callable[[AdapterContext], BaseStoreAdapter]


class StoreAdapterRegistry:
    """
    Usage::

        registry = StoreAdapterRegistry(cipher)
        registry.register("builtin", builtin_factory)
        adapter = registry.create(config_set)
    """

    def __init__(
        self,
        cipher,
        *,
        timeout: float = 5.0,
        max_retries: int = 2,
        backoff: float = 0.25,
    ) -> None:
        self.cipher = cipher
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff = backoff
        self._factories: dict[str, AdapterFactory] = {}

    def register(self, store_type: str, factory: AdapterFactory) -> None:
        self._factories[store_type] = factory
        logger.debug("store_adapter_registered", store_type=store_type)

    def is_registered(self, store_type: str) -> bool:
        return store_type in self._factories

    @property
    def store_types(self) -> list[str]:
        return sorted(self._factories)

    def create(self, config_set) -> BaseStoreAdapter:
        """
        Build the adapter for *config_set*'s store.

        Raises:
            ValidationError: If no factory is registered for the store type.
        """
        return self.create_for_store(config_set.store, config_set)

    def create_for_store(self, store, config_set=None) -> BaseStoreAdapter:
        factory = self._factories.get(store.store_type)
        if factory is None:
            raise ValidationError(
                f"Unsupported store type '{store.store_type}'.",
                code="unknown_store_type",
            )
        credentials = {}
        if store.credentials_ciphertext:
            credentials = self.cipher.decrypt_credentials(
                store.organization_id,
                store.credentials_ciphertext,
                store.credentials_nonce,
            )
        return factory(AdapterContext(
            config_set=config_set,
            cipher=self.cipher,
            credentials=credentials,
            settings=store.settings or {},
            timeout=self.timeout,
            max_retries=self.max_retries,
            backoff=self.backoff,
        ))
