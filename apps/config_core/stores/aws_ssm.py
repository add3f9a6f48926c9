"""
apps.config_core.stores.aws_ssm
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
AWS Systems Manager Parameter Store backend.

Store credentials (decrypted JSON)::

    {"region": "eu-west-1", "access_key_id": "AKIA…",
     "secret_access_key": "…", "session_token": "…"}

Without explicit keys boto3's default credential chain is used (instance
role, environment, shared config).  Store settings may carry
``path_prefix``, ``kms_key_id`` and ``tier``.

Each value is a ``SecureString`` parameter at
``/<path_prefix>/<set id>/<key>`` whose content is the JSON document
``{"value": <text>, "metadata": {"kind": …, "is_secret": …}}``.  Parameters
written by other tools (plain text) are read back as untyped strings.

Timeouts and retries are delegated to botocore (``standard`` retry mode);
any remaining client or transport error raises
:class:`~common.exceptions.StoreConnectionError`.
"""
from __future__ import annotations

import json
import time

import boto3
import structlog
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from common.exceptions import StoreConnectionError
from .base import BaseStoreAdapter, ConnectionTestResult, StoreListResult, StoreValue

logger = structlog.get_logger(__name__)

DEFAULT_REGION = "us-east-1"
DEFAULT_PATH_PREFIX = "config-sets"
# GetParametersByPath accepts at most 10 results per call.
MAX_PAGE_SIZE = 10

_NOT_FOUND = "ParameterNotFound"


class AwsSsmStoreAdapter(BaseStoreAdapter):
    is_external = True

    def __init__(self, context, client=None) -> None:
        super().__init__(context)
        credentials = context.credentials
        self.region = credentials.get("region") or DEFAULT_REGION
        prefix = (context.settings.get("path_prefix") or DEFAULT_PATH_PREFIX).strip("/")
        self.base_path = f"/{prefix}/{self.config_set.pk}" if self.config_set is not None else f"/{prefix}"
        self.kms_key_id = context.settings.get("kms_key_id")
        self.tier = context.settings.get("tier")
        self.client = client or self._build_client(credentials)

    def _build_client(self, credentials: dict):
        session = boto3.session.Session(
            aws_access_key_id=credentials.get("access_key_id") or None,
            aws_secret_access_key=credentials.get("secret_access_key") or None,
            aws_session_token=credentials.get("session_token") or None,
            region_name=self.region,
        )
        config = Config(
            connect_timeout=self.context.timeout,
            read_timeout=self.context.timeout,
            retries={"max_attempts": self.context.max_retries, "mode": "standard"},
        )
        return session.client("ssm", config=config)

    # ------------------------------------------------------------------
    # Calls
    # ------------------------------------------------------------------

    def _call(self, operation: str, **params) -> dict:
        """
        Invoke one SSM API operation.

        ``ParameterNotFound`` is re-raised as :class:`ClientError` for the
        caller to handle; every other failure becomes StoreConnectionError.
        """
        try:
            return getattr(self.client, operation)(**params)
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code", "")
            if code == _NOT_FOUND:
                raise
            logger.error("ssm_request_failed", operation=operation, code=code)
            raise StoreConnectionError(f"AWS SSM rejected {operation} ({code}).") from exc
        except BotoCoreError as exc:
            logger.error("ssm_request_failed", operation=operation, reason=type(exc).__name__)
            raise StoreConnectionError(
                f"AWS SSM unavailable for {operation} ({type(exc).__name__})."
            ) from exc

    def _name(self, key: str) -> str:
        return f"{self.base_path}/{key}"

    def _to_value(self, parameter: dict) -> StoreValue:
        name = parameter.get("Name", "")
        key = name[len(self.base_path) + 1:] if name.startswith(self.base_path + "/") else name
        raw = parameter.get("Value", "")
        value, metadata = raw, {}
        try:
            document = json.loads(raw)
        except ValueError:
            document = None
        if isinstance(document, dict) and "value" in document:
            value = document["value"]
            metadata = document.get("metadata") or {}
        return StoreValue(
            key=key,
            value=value,
            version=parameter.get("Version"),
            metadata=metadata,
            last_modified=parameter.get("LastModifiedDate"),
        )

    # ------------------------------------------------------------------
    # Adapter API
    # ------------------------------------------------------------------

    def supports_versioning(self) -> bool:
        return True

    def test_connection(self) -> ConnectionTestResult:
        start = time.monotonic()
        try:
            self._call("describe_parameters", MaxResults=1)
        except (StoreConnectionError, ClientError) as exc:
            return ConnectionTestResult(
                ok=False,
                latency_ms=round((time.monotonic() - start) * 1000, 2),
                details=str(exc),
            )
        return ConnectionTestResult(
            ok=True,
            latency_ms=round((time.monotonic() - start) * 1000, 2),
            details=f"connected to AWS SSM in {self.region}; path {self.base_path}",
        )

    def get(self, key: str) -> StoreValue | None:
        try:
            body = self._call("get_parameter", Name=self._name(key), WithDecryption=True)
        except ClientError:
            return None
        parameter = body.get("Parameter")
        return self._to_value(parameter) if parameter else None

    def put(self, key: str, value: str, metadata: dict | None = None) -> StoreValue:
        stored_meta = {
            k: v for k, v in (metadata or {}).items() if k in ("kind", "is_secret", "description")
        }
        params = {
            "Name": self._name(key),
            "Value": json.dumps({"value": value, "metadata": stored_meta}),
            "Type": "SecureString",
            "Overwrite": True,
        }
        if self.kms_key_id:
            params["KeyId"] = self.kms_key_id
        if self.tier:
            params["Tier"] = self.tier
        try:
            body = self._call("put_parameter", **params)
        except ClientError as exc:
            raise StoreConnectionError(f"AWS SSM could not write {key}.") from exc
        return StoreValue(key=key, value=value, version=body.get("Version"), metadata=stored_meta)

    def delete(self, key: str, metadata: dict | None = None) -> bool:
        try:
            self._call("delete_parameter", Name=self._name(key))
        except ClientError:
            return False
        return True

    def list(
        self,
        prefix: str | None = None,
        max_results: int | None = None,
        continuation_token: str | None = None,
    ) -> StoreListResult:
        """
        One ``GetParametersByPath`` page, sorted by key within the page.

        SSM has no key-prefix filter on this call, so *prefix* is applied to
        the page; a page may come back empty while ``has_more`` is set.
        """
        params = {
            "Path": self.base_path,
            "Recursive": True,
            "WithDecryption": True,
            "MaxResults": min(max_results or MAX_PAGE_SIZE, MAX_PAGE_SIZE),
        }
        if continuation_token:
            params["NextToken"] = continuation_token
        try:
            body = self._call("get_parameters_by_path", **params)
        except ClientError:
            return StoreListResult(values=[])

        values = sorted((self._to_value(p) for p in body.get("Parameters", [])), key=lambda v: v.key)
        if prefix:
            values = [v for v in values if v.key.startswith(prefix)]
        next_token = body.get("NextToken")
        return StoreListResult(values=values, has_more=bool(next_token), continuation_token=next_token)


def aws_ssm_factory(context) -> AwsSsmStoreAdapter:
    return AwsSsmStoreAdapter(context)
