"""
apps.config_core.stores.base
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
The contract every storage backend implements.

Adapters move *serialized* values (text produced by
:mod:`apps.config_core.services.value_kinds`) in and out of a backend; typing,
validation and versioning policy stay in the service layer.  ``metadata``
carries ``kind``, ``is_secret`` and ``description`` alongside the value, plus
the actor and request details the built-in adapter records in history.
"""
from __future__ import annotations

import abc
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass
class StoreValue:
    """A value as held by a backend, with its backend-side version."""

    key: str
    value: str
    version: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    last_modified: datetime | None = None


@dataclass
class StoreListResult:
    """One page of a listing.  Pass ``continuation_token`` back for the next."""

    values: list[StoreValue]
    has_more: bool = False
    continuation_token: str | None = None


@dataclass
class ConnectionTestResult:
    ok: bool
    latency_ms: float
    details: str = ""


@dataclass
class AdapterContext:
    """
    Everything a factory needs to build an adapter for one config set.

    ``credentials`` is the decrypted credential object of the set's store and
    must never be logged or placed in an error message.
    """

    config_set: Any
    cipher: Any
    credentials: dict = field(default_factory=dict)
    settings: dict = field(default_factory=dict)
    timeout: float = 5.0
    max_retries: int = 2
    backoff: float = 0.25


class BaseStoreAdapter(abc.ABC):
    """Abstract storage backend bound to a single config set."""

    #: External adapters talk to a remote system; the resolver queries them
    #: outside the database snapshot.
    is_external: bool = True

    def __init__(self, context: AdapterContext) -> None:
        self.context = context
        self.config_set = context.config_set

    @abc.abstractmethod
    def test_connection(self) -> ConnectionTestResult:
        """Check the backend.  Never raises; failures are reported in the result."""

    @abc.abstractmethod
    def get(self, key: str) -> StoreValue | None:
        """Return the current value of *key*, or ``None`` if absent."""

    @abc.abstractmethod
    def put(self, key: str, value: str, metadata: dict | None = None) -> StoreValue:
        """Write *value* and return it with its post-write version."""

    @abc.abstractmethod
    def delete(self, key: str, metadata: dict | None = None) -> bool:
        """Remove *key*.  Returns ``False`` when it did not exist."""

    @abc.abstractmethod
    def list(
        self,
        prefix: str | None = None,
        max_results: int | None = None,
        continuation_token: str | None = None,
    ) -> StoreListResult:
        """List values in key order, optionally filtered by key prefix."""

    def supports_versioning(self) -> bool:
        return False

    def iter_all(self, prefix: str | None = None, page_size: int = 500) -> list[StoreValue]:
        """Drain every page of :meth:`list`."""
        values: list[StoreValue] = []
        token = None
        while True:
            page = self.list(prefix=prefix, max_results=page_size, continuation_token=token)
            values.extend(page.values)
            if not page.has_more:
                return values
            token = page.continuation_token
