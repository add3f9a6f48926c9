"""
tests.test_store_adapters
~~~~~~~~~~~~~~~~~~~~~~~~~~
Store adapters, the adapter registry and store management.

The HashiCorp Vault HTTP boundary is replaced by a mocked
``requests.Session``; nothing leaves the process.
"""
from __future__ import annotations

import json
from types import SimpleNamespace
from unittest import mock

import pytest
import requests

from apps.config_core.models import ConfigSet, ConfigStore, ConfigValue
from apps.config_core.services import config_sets
from apps.config_core.stores import AdapterContext, BuiltinStoreAdapter, StoreAdapterRegistry, VaultStoreAdapter
from common.exceptions import StoreConnectionError, ValidationError

VAULT_CREDENTIALS = {"address": "https://vault.test:8200", "token": "hvs.super-secret", "mount": "kv"}


def _response(status_code: int = 200, body: dict | None = None) -> mock.Mock:
    response = mock.Mock()
    response.status_code = status_code
    response.content = json.dumps(body).encode() if body is not None else b""
    response.json.return_value = body
    return response


def _vault(session: mock.Mock, *, max_retries: int = 2, set_pk: int = 7) -> VaultStoreAdapter:
    context = AdapterContext(
        config_set=SimpleNamespace(pk=set_pk),
        cipher=None,
        credentials=VAULT_CREDENTIALS,
        settings={"path_prefix": "teams/payments"},
        timeout=1.5,
        max_retries=max_retries,
        backoff=0.1,
    )
    return VaultStoreAdapter(context, session=session)


@pytest.fixture
def no_sleep():
    with mock.patch("apps.config_core.stores.vault.time.sleep") as sleep:
        yield sleep


class TestVaultAdapter:
    """VaultStoreAdapter against a mocked HTTP session.  No database access."""

    def test_put_posts_value_and_metadata(self):
        session = mock.Mock()
        session.request.return_value = _response(200, {"data": {"version": 3, "created_time": "2024-05-01T10:00:00.123456789Z"}})

        stored = _vault(session).put("API_KEY", "abc", {"kind": "secret", "is_secret": True, "actor": "alice"})

        assert stored.version == 3
        assert stored.last_modified.microsecond == 123456
        method, url = session.request.call_args.args
        kwargs = session.request.call_args.kwargs
        assert method == "POST"
        assert url == "https://vault.test:8200/v1/kv/data/teams/payments/7/API_KEY"
        assert kwargs["json"] == {"data": {"value": "abc", "metadata": {"kind": "secret", "is_secret": True}}}
        assert kwargs["headers"]["X-Vault-Token"] == "hvs.super-secret"
        assert kwargs["timeout"] == 1.5

    def test_get_missing_key(self):
        session = mock.Mock()
        session.request.return_value = _response(404)
        assert _vault(session).get("NOPE") is None

    def test_get_returns_value(self):
        session = mock.Mock()
        session.request.return_value = _response(200, {
            "data": {
                "data": {"value": "8080", "metadata": {"kind": "number"}},
                "metadata": {"version": 2, "created_time": "2024-05-01T10:00:00Z"},
            }
        })
        stored = _vault(session).get("PORT")
        assert (stored.value, stored.version, stored.metadata) == ("8080", 2, {"kind": "number"})

    def test_retries_server_errors_with_backoff(self, no_sleep):
        session = mock.Mock()
        session.request.side_effect = [_response(503), _response(429), _response(200, {"data": {"version": 1}})]

        assert _vault(session).put("K", "v").version == 1
        assert session.request.call_count == 3
        assert [c.args[0] for c in no_sleep.call_args_list] == [0.1, 0.2]

    def test_retries_connection_errors(self, no_sleep):
        session = mock.Mock()
        session.request.side_effect = [requests.ConnectionError("refused"), _response(204)]
        assert _vault(session).delete("K") is True

    def test_exhausted_retries_raise_without_leaking_token(self, no_sleep):
        session = mock.Mock()
        session.request.side_effect = requests.Timeout("slow")

        with pytest.raises(StoreConnectionError) as exc_info:
            _vault(session, max_retries=2).get("K")
        assert session.request.call_count == 3
        assert "hvs.super-secret" not in str(exc_info.value)

    def test_client_error_not_retried(self, no_sleep):
        session = mock.Mock()
        session.request.return_value = _response(403, {"errors": ["permission denied"]})
        with pytest.raises(StoreConnectionError):
            _vault(session).put("K", "v")
        assert session.request.call_count == 1
        no_sleep.assert_not_called()

    def test_list_paginates_client_side(self):
        session = mock.Mock()

        def request(method, url, **kwargs):
            if method == "LIST":
                return _response(200, {"data": {"keys": ["C", "A", "nested/", "B"]}})
            key = url.rsplit("/", 1)[1]
            return _response(200, {"data": {"data": {"value": key.lower()}, "metadata": {"version": 1}}})

        session.request.side_effect = request
        adapter = _vault(session)

        first = adapter.list(max_results=2)
        assert [v.key for v in first.values] == ["A", "B"]
        assert (first.has_more, first.continuation_token) == (True, "B")

        second = adapter.list(max_results=2, continuation_token=first.continuation_token)
        assert [v.key for v in second.values] == ["C"]
        assert second.has_more is False
        assert [v.value for v in adapter.iter_all()] == ["a", "b", "c"]

    def test_connection_test(self):
        session = mock.Mock()
        session.request.return_value = _response(200, {"data": {"policies": ["default", "ci"]}})
        result = _vault(session).test_connection()
        assert result.ok
        assert "default, ci" in result.details

    def test_connection_test_failure(self, no_sleep):
        session = mock.Mock()
        session.request.return_value = _response(500)
        result = _vault(session, max_retries=0).test_connection()
        assert result.ok is False


@pytest.mark.django_db
class TestBuiltinAdapter:
    def test_list_pages_in_key_order(self, engine, org_set):
        for key in ("C", "A", "B", "APP_X"):
            engine.values.put(org_set.id, key, key.lower())
        adapter = engine.registry.create(org_set)
        assert isinstance(adapter, BuiltinStoreAdapter)

        page = adapter.list(max_results=2)
        assert [v.key for v in page.values] == ["A", "APP_X"]
        assert page.has_more
        rest = adapter.list(max_results=2, continuation_token=page.continuation_token)
        assert [v.key for v in rest.values] == ["B", "C"]
        assert [v.key for v in adapter.list(prefix="A").values] == ["A", "APP_X"]


@pytest.mark.django_db
class TestRegistryAndStores:
    def test_unknown_store_type(self, engine, org):
        with pytest.raises(ValidationError) as exc_info:
            engine.stores.create_store(org_id=org.id, name="gsm", store_type="gcp_secret_manager")
        assert exc_info.value.code == "unknown_store_type"

    def test_registry_rejects_unregistered_type(self, engine, store):
        empty = StoreAdapterRegistry(engine.registry.cipher)
        with pytest.raises(ValidationError):
            empty.create_for_store(store)

    def test_credentials_encrypted_and_decrypted_for_adapter(self, engine, org):
        vault_store = engine.stores.create_store(
            org_id=org.id, name="vault", store_type="hashicorp_vault", credentials=VAULT_CREDENTIALS
        )
        assert "hvs.super-secret" not in vault_store.credentials_ciphertext
        adapter = engine.registry.create_for_store(vault_store)
        assert adapter.address == "https://vault.test:8200"
        assert adapter.base_path == "config-sets"

    def test_single_default_store(self, engine, org, store):
        second = engine.stores.create_store(org_id=org.id, name="secondary", is_default=True)
        store.refresh_from_db()
        assert store.is_default is False
        assert second.is_default is True

    def test_test_store_records_outcome(self, engine, store):
        result = engine.stores.test_store(store.id)
        assert result.ok
        store.refresh_from_db()
        assert store.last_test_ok is True
        assert store.last_tested_at is not None


@pytest.mark.django_db
class TestExternalStoreWrites:
    """Values on a Vault-backed set go to Vault first, then to the local mirror."""

    @pytest.fixture
    def vault_set(self, engine, org) -> ConfigSet:
        vault_store = engine.stores.create_store(
            org_id=org.id, name="vault", store_type=ConfigStore.StoreType.HASHICORP_VAULT,
            credentials=VAULT_CREDENTIALS,
        )
        return config_sets.create_set(
            store_id=vault_store.id, name="payments", scope="organization", org_id=org.id
        )

    def test_write_goes_to_vault_then_mirror(self, engine, vault_set):
        session = mock.Mock()
        session.request.return_value = _response(200, {"data": {"version": 5}})
        with mock.patch("apps.config_core.stores.vault.requests.Session", return_value=session):
            stored = engine.values.put(vault_set.id, "TOKEN", "t", kind="secret")

        assert session.request.call_args.args[0] == "POST"
        assert stored.version == 1
        assert ConfigValue.objects.filter(config_set=vault_set, key="TOKEN").exists()

    def test_failed_vault_write_leaves_no_local_row(self, engine, vault_set, no_sleep):
        session = mock.Mock()
        session.request.return_value = _response(503)
        with mock.patch("apps.config_core.stores.vault.requests.Session", return_value=session):
            with pytest.raises(StoreConnectionError):
                engine.values.put(vault_set.id, "TOKEN", "t", kind="secret")

        assert not ConfigValue.objects.filter(config_set=vault_set, key="TOKEN").exists()
