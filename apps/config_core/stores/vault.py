"""
apps.config_core.stores.vault
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
HashiCorp Vault backend (KV secrets engine v2) over its HTTP API.

Store credentials (decrypted JSON)::

    {"address": "https://vault.internal:8200", "token": "hvs.…",
     "mount": "secret", "namespace": "team-a"}

Each value lives at ``<mount>/data/<path_prefix>/<set id>/<key>`` as
``{"value": <text>, "metadata": {"kind": …, "is_secret": …}}``.

Every request carries an explicit timeout.  Connection errors, timeouts,
HTTP 429 and 5xx responses are retried with exponential backoff; anything
still failing raises :class:`~common.exceptions.StoreConnectionError`.
The Vault token never appears in logs or error messages.
"""
from __future__ import annotations

import time
from datetime import datetime

import requests
import structlog

from common.exceptions import StoreConnectionError
from .base import BaseStoreAdapter, ConnectionTestResult, StoreListResult, StoreValue

logger = structlog.get_logger(__name__)

DEFAULT_ADDRESS = "http://127.0.0.1:8200"
DEFAULT_MOUNT = "secret"
DEFAULT_PATH_PREFIX = "config-sets"
DEFAULT_PAGE_SIZE = 50

_RETRYABLE_STATUS = frozenset({429, 500, 502, 503, 504})


class _NotFound(Exception):
    pass


class VaultStoreAdapter(BaseStoreAdapter):
    is_external = True

    def __init__(self, context, session: requests.Session | None = None) -> None:
        super().__init__(context)
        credentials = context.credentials
        self.address = (credentials.get("address") or DEFAULT_ADDRESS).rstrip("/")
        self.mount = (credentials.get("mount") or DEFAULT_MOUNT).strip("/")
        self._token = credentials.get("token") or ""
        self._namespace = credentials.get("namespace")
        prefix = (context.settings.get("path_prefix") or DEFAULT_PATH_PREFIX).strip("/")
        self.base_path = f"{prefix}/{self.config_set.pk}" if self.config_set is not None else prefix
        self.session = session or requests.Session()

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    @property
    def _headers(self) -> dict[str, str]:
        headers = {"X-Vault-Token": self._token}
        if self._namespace:
            headers["X-Vault-Namespace"] = self._namespace
        return headers

    def _request(self, method: str, path: str, payload: dict | None = None) -> dict | None:
        """
        Perform one Vault API call with retries.

        Returns the decoded JSON body (``None`` for empty responses).

        Raises:
            _NotFound: On HTTP 404.
            StoreConnectionError: When retries are exhausted or the response
                is a non-retryable error.
        """
        url = f"{self.address}/v1/{path}"
        attempts = self.context.max_retries + 1
        failure = ""

        for attempt in range(attempts):
            if attempt:
                time.sleep(self.context.backoff * (2 ** (attempt - 1)))
            try:
                response = self.session.request(
                    method,
                    url,
                    headers=self._headers,
                    json=payload,
                    timeout=self.context.timeout,
                )
            except (requests.ConnectionError, requests.Timeout) as exc:
                failure = type(exc).__name__
                logger.warning(
                    "vault_request_retry",
                    method=method,
                    path=path,
                    attempt=attempt + 1,
                    reason=failure,
                )
                continue

            if response.status_code == 404:
                raise _NotFound(path)
            if response.status_code in _RETRYABLE_STATUS:
                failure = f"HTTP {response.status_code}"
                logger.warning(
                    "vault_request_retry",
                    method=method,
                    path=path,
                    attempt=attempt + 1,
                    reason=failure,
                )
                continue
            if response.status_code >= 400:
                logger.error("vault_request_failed", method=method, path=path, status=response.status_code)
                raise StoreConnectionError(
                    f"Vault rejected {method} {path} with HTTP {response.status_code}."
                )
            if response.status_code == 204 or not response.content:
                return None
            try:
                return response.json()
            except ValueError as exc:
                raise StoreConnectionError(f"Vault returned a non-JSON body for {path}.") from exc

        logger.error("vault_request_exhausted", method=method, path=path, attempts=attempts, reason=failure)
        raise StoreConnectionError(
            f"Vault unavailable after {attempts} attempt(s) ({failure})."
        )

    def _data_path(self, key: str) -> str:
        return f"{self.mount}/data/{self.base_path}/{key}"

    def _metadata_path(self, key: str = "") -> str:
        path = f"{self.mount}/metadata/{self.base_path}"
        return f"{path}/{key}" if key else path

    # ------------------------------------------------------------------
    # Adapter API
    # ------------------------------------------------------------------

    def supports_versioning(self) -> bool:
        return True

    def test_connection(self) -> ConnectionTestResult:
        start = time.monotonic()
        try:
            body = self._request("GET", "auth/token/lookup-self") or {}
        except (StoreConnectionError, _NotFound) as exc:
            return ConnectionTestResult(
                ok=False,
                latency_ms=round((time.monotonic() - start) * 1000, 2),
                details=str(exc) if isinstance(exc, StoreConnectionError) else "token lookup endpoint not found",
            )
        policies = (body.get("data") or {}).get("policies") or []
        return ConnectionTestResult(
            ok=True,
            latency_ms=round((time.monotonic() - start) * 1000, 2),
            details=f"connected to {self.address}; policies: {', '.join(policies) or 'none'}",
        )

    def get(self, key: str) -> StoreValue | None:
        try:
            body = self._request("GET", self._data_path(key))
        except _NotFound:
            return None
        data = (body or {}).get("data") or {}
        if not data.get("data"):
            return None
        meta = data.get("metadata") or {}
        return StoreValue(
            key=key,
            value=data["data"].get("value", ""),
            version=meta.get("version"),
            metadata=data["data"].get("metadata") or {},
            last_modified=_parse_time(meta.get("created_time")),
        )

    def put(self, key: str, value: str, metadata: dict | None = None) -> StoreValue:
        stored_meta = {
            k: v for k, v in (metadata or {}).items() if k in ("kind", "is_secret", "description")
        }
        try:
            body = self._request(
                "POST",
                self._data_path(key),
                {"data": {"value": value, "metadata": stored_meta}},
            )
        except _NotFound as exc:
            raise StoreConnectionError(f"Vault mount '{self.mount}' not found.") from exc
        data = (body or {}).get("data") or {}
        return StoreValue(
            key=key,
            value=value,
            version=data.get("version"),
            metadata=stored_meta,
            last_modified=_parse_time(data.get("created_time")),
        )

    def delete(self, key: str, metadata: dict | None = None) -> bool:
        # Deleting the metadata removes every version of the key.
        try:
            self._request("DELETE", self._metadata_path(key))
        except _NotFound:
            return False
        return True

    def list(
        self,
        prefix: str | None = None,
        max_results: int | None = None,
        continuation_token: str | None = None,
    ) -> StoreListResult:
        limit = max_results or DEFAULT_PAGE_SIZE
        try:
            body = self._request("LIST", self._metadata_path())
        except _NotFound:
            return StoreListResult(values=[])

        keys = sorted(
            k for k in ((body or {}).get("data") or {}).get("keys", [])
            if not k.endswith("/")
        )
        if prefix:
            keys = [k for k in keys if k.startswith(prefix)]
        if continuation_token:
            keys = [k for k in keys if k > continuation_token]

        page, has_more = keys[:limit], len(keys) > limit
        values = [v for v in (self.get(k) for k in page) if v is not None]
        return StoreListResult(
            values=values,
            has_more=has_more,
            continuation_token=page[-1] if has_more else None,
        )


def _parse_time(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        # Vault emits RFC 3339 with nanoseconds; trim to microseconds.
        head, _, tail = value.rstrip("Z").partition(".")
        fraction = (tail[:6] if tail else "0").ljust(6, "0")
        return datetime.fromisoformat(f"{head}.{fraction}+00:00")
    except ValueError:
        return None


def vault_factory(context) -> VaultStoreAdapter:
    return VaultStoreAdapter(context)
