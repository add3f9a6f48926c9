"""
tests.test_aws_ssm_store
~~~~~~~~~~~~~~~~~~~~~~~~~
AwsSsmStoreAdapter against a stubbed boto3 SSM client.

``botocore.stub.Stubber`` validates every request against the SSM API model
and answers it locally; nothing leaves the process.
"""
from __future__ import annotations

import json
from datetime import datetime, timezone
from types import SimpleNamespace
from unittest import mock

import boto3
import pytest
from botocore.exceptions import EndpointConnectionError
from botocore.stub import Stubber

from apps.config_core.models import ConfigSet, ConfigStore, ConfigValue
from apps.config_core.services import config_sets
from apps.config_core.stores import AdapterContext, AwsSsmStoreAdapter
from common.exceptions import StoreConnectionError

SSM_CREDENTIALS = {
    "region": "eu-west-1",
    "access_key_id": "AKIATESTING",
    "secret_access_key": "ssm-super-secret",
}
PATH = "/teams/payments/7"


def _context(**settings) -> AdapterContext:
    return AdapterContext(
        config_set=SimpleNamespace(pk=7),
        cipher=None,
        credentials=SSM_CREDENTIALS,
        settings={"path_prefix": "teams/payments", **settings},
        timeout=1.5,
        max_retries=0,
    )


@pytest.fixture
def ssm_client():
    return boto3.client(
        "ssm",
        region_name="eu-west-1",
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
    )


@pytest.fixture
def stub(ssm_client):
    with Stubber(ssm_client) as stubber:
        yield stubber
        stubber.assert_no_pending_responses()


def _adapter(ssm_client, **settings) -> AwsSsmStoreAdapter:
    return AwsSsmStoreAdapter(_context(**settings), client=ssm_client)


def _parameter(key: str, value: str, version: int = 1, **metadata) -> dict:
    return {
        "Name": f"{PATH}/{key}",
        "Type": "SecureString",
        "Value": json.dumps({"value": value, "metadata": metadata}),
        "Version": version,
        "LastModifiedDate": datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc),
    }


class TestAwsSsmAdapter:
    """Parameter Store calls and their mapping onto the adapter contract."""

    def test_client_built_with_timeouts_and_retries(self):
        with mock.patch("apps.config_core.stores.aws_ssm.boto3.session.Session") as session_cls:
            adapter = AwsSsmStoreAdapter(AdapterContext(
                config_set=SimpleNamespace(pk=7),
                cipher=None,
                credentials=SSM_CREDENTIALS,
                timeout=2.5,
                max_retries=4,
            ))

        assert session_cls.call_args.kwargs["region_name"] == "eu-west-1"
        assert session_cls.call_args.kwargs["aws_secret_access_key"] == "ssm-super-secret"
        service, = session_cls.return_value.client.call_args.args
        config = session_cls.return_value.client.call_args.kwargs["config"]
        assert service == "ssm"
        assert (config.connect_timeout, config.read_timeout) == (2.5, 2.5)
        assert config.retries == {"max_attempts": 4, "mode": "standard"}
        assert adapter.base_path == "/config-sets/7"

    def test_put_writes_secure_string(self, ssm_client, stub):
        stub.add_response(
            "put_parameter",
            {"Version": 3, "Tier": "Standard"},
            expected_params={
                "Name": f"{PATH}/API_KEY",
                "Value": json.dumps({"value": "abc", "metadata": {"kind": "secret", "is_secret": True}}),
                "Type": "SecureString",
                "Overwrite": True,
                "KeyId": "alias/config-sets",
            },
        )
        stored = _adapter(ssm_client, kms_key_id="alias/config-sets").put(
            "API_KEY", "abc", {"kind": "secret", "is_secret": True, "actor": "alice"}
        )
        assert (stored.version, stored.metadata) == (3, {"kind": "secret", "is_secret": True})

    def test_get_returns_value_and_metadata(self, ssm_client, stub):
        stub.add_response(
            "get_parameter",
            {"Parameter": _parameter("PORT", "8080", version=2, kind="number")},
            expected_params={"Name": f"{PATH}/PORT", "WithDecryption": True},
        )
        value = _adapter(ssm_client).get("PORT")
        assert (value.key, value.value, value.version) == ("PORT", "8080", 2)
        assert value.metadata == {"kind": "number"}
        assert value.last_modified.year == 2024

    def test_get_plain_parameter_written_elsewhere(self, ssm_client, stub):
        parameter = {**_parameter("LEGACY", ""), "Type": "String", "Value": "raw text"}
        stub.add_response("get_parameter", {"Parameter": parameter})
        value = _adapter(ssm_client).get("LEGACY")
        assert (value.value, value.metadata) == ("raw text", {})

    def test_get_missing_key(self, ssm_client, stub):
        stub.add_client_error("get_parameter", service_error_code="ParameterNotFound", http_status_code=400)
        assert _adapter(ssm_client).get("MISSING") is None

    def test_delete(self, ssm_client, stub):
        stub.add_response("delete_parameter", {}, expected_params={"Name": f"{PATH}/A"})
        stub.add_client_error("delete_parameter", service_error_code="ParameterNotFound", http_status_code=400)
        adapter = _adapter(ssm_client)
        assert adapter.delete("A") is True
        assert adapter.delete("A") is False

    def test_access_denied_raises_without_leaking_credentials(self, ssm_client, stub):
        stub.add_client_error(
            "put_parameter",
            service_error_code="AccessDeniedException",
            service_message="not authorized",
            http_status_code=400,
        )
        with pytest.raises(StoreConnectionError) as exc_info:
            _adapter(ssm_client).put("A", "1")
        assert "AccessDeniedException" in exc_info.value.detail
        assert "ssm-super-secret" not in exc_info.value.detail

    def test_transport_error_raises(self):
        client = mock.Mock()
        client.get_parameter.side_effect = EndpointConnectionError(endpoint_url="https://ssm.eu-west-1.amazonaws.com")
        with pytest.raises(StoreConnectionError):
            AwsSsmStoreAdapter(_context(), client=client).get("A")

    def test_list_pages_with_next_token(self, ssm_client, stub):
        stub.add_response(
            "get_parameters_by_path",
            {"Parameters": [_parameter("B", "2"), _parameter("A", "1")], "NextToken": "page-2"},
            expected_params={"Path": PATH, "Recursive": True, "WithDecryption": True, "MaxResults": 10},
        )
        stub.add_response(
            "get_parameters_by_path",
            {"Parameters": [_parameter("C", "3")]},
            expected_params={
                "Path": PATH, "Recursive": True, "WithDecryption": True, "MaxResults": 10, "NextToken": "page-2",
            },
        )
        adapter = _adapter(ssm_client)

        first = adapter.list(max_results=50)
        assert [v.key for v in first.values] == ["A", "B"]
        assert (first.has_more, first.continuation_token) == (True, "page-2")

        second = adapter.list(max_results=50, continuation_token="page-2")
        assert [v.key for v in second.values] == ["C"]
        assert second.has_more is False

    def test_connection_test(self, ssm_client, stub):
        stub.add_response("describe_parameters", {"Parameters": []}, expected_params={"MaxResults": 1})
        stub.add_client_error("describe_parameters", service_error_code="UnrecognizedClientException")
        adapter = _adapter(ssm_client)

        ok = adapter.test_connection()
        assert ok.ok and "eu-west-1" in ok.details
        failed = adapter.test_connection()
        assert failed.ok is False
        assert "UnrecognizedClientException" in failed.details


@pytest.mark.django_db
class TestSsmBackedSet:
    """Values on an SSM-backed set go to Parameter Store first, then to the local mirror."""

    @pytest.fixture
    def ssm_set(self, engine, org) -> ConfigSet:
        ssm_store = engine.stores.create_store(
            org_id=org.id, name="ssm", store_type=ConfigStore.StoreType.AWS_SSM,
            credentials=SSM_CREDENTIALS,
        )
        return config_sets.create_set(
            store_id=ssm_store.id, name="payments", scope="organization", org_id=org.id
        )

    def test_registry_builds_ssm_adapter(self, engine, ssm_set):
        assert engine.registry.is_registered("aws_ssm")
        adapter = engine.registry.create(ssm_set)
        assert isinstance(adapter, AwsSsmStoreAdapter)
        assert adapter.base_path == f"/config-sets/{ssm_set.id}"

    def test_write_goes_to_ssm_then_mirror(self, engine, ssm_set):
        client = mock.Mock()
        client.put_parameter.return_value = {"Version": 4}
        with mock.patch.object(AwsSsmStoreAdapter, "_build_client", return_value=client):
            stored = engine.values.put(ssm_set.id, "TOKEN", "t", kind="secret")

        assert client.put_parameter.call_args.kwargs["Name"] == f"/config-sets/{ssm_set.id}/TOKEN"
        assert stored.version == 1
        assert ConfigValue.objects.filter(config_set=ssm_set, key="TOKEN").exists()

    def test_failed_ssm_write_leaves_no_local_row(self, engine, ssm_set):
        client = mock.Mock()
        client.put_parameter.side_effect = EndpointConnectionError(endpoint_url="https://ssm.eu-west-1.amazonaws.com")
        with mock.patch.object(AwsSsmStoreAdapter, "_build_client", return_value=client):
            with pytest.raises(StoreConnectionError):
                engine.values.put(ssm_set.id, "TOKEN", "t", kind="secret")

        assert not ConfigValue.objects.filter(config_set=ssm_set, key="TOKEN").exists()
