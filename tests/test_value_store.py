"""
tests.test_value_store
~~~~~~~~~~~~~~~~~~~~~~~
Typed, encrypted and versioned value writes through the built-in store.
"""
from __future__ import annotations

import pytest

from apps.config_core.models import ConfigValue, ConfigValueHistory
from apps.config_core.services import config_sets, value_kinds
from apps.config_core.services.crypto import SECRET_MASK
from common.exceptions import NotFoundError, PermissionDeniedError, ValidationError
from common.request_meta import request_meta


class TestValueKinds:
    """Unit tests for value (de)serialization.  No database access required."""

    @pytest.mark.parametrize(
        "value, kind, text",
        [
            ("hello", "string", "hello"),
            (42, "number", "42"),
            ("42", "number", "42"),
            (0.5, "number", "0.5"),
            (True, "boolean", "true"),
            ("off", "boolean", "false"),
            ({"a": [1, 2]}, "json", '{"a":[1,2]}'),
        ],
    )
    def test_serialize(self, value, kind, text):
        assert value_kinds.serialize(value, kind) == text

    @pytest.mark.parametrize(
        "value, kind",
        [(1, "string"), ("abc", "number"), (True, "number"), (float("inf"), "number"), ("maybe", "boolean")],
    )
    def test_serialize_rejects(self, value, kind):
        with pytest.raises(ValidationError):
            value_kinds.serialize(value, kind)

    def test_secret_kind_forces_secret(self):
        assert value_kinds.normalize("secret", False) == ("secret", True)

    def test_infer_kind(self):
        assert value_kinds.infer_kind(True) == "boolean"
        assert value_kinds.infer_kind(3) == "number"
        assert value_kinds.infer_kind("x") == "string"
        assert value_kinds.infer_kind([1]) == "json"


@pytest.mark.django_db
class TestValueStore:
    def test_put_encrypts_and_versions(self, engine, org_set):
        first = engine.values.put(org_set.id, "API_URL", "https://a", actor="alice")
        second = engine.values.put(org_set.id, "API_URL", "https://b", actor="bob", reason="move")

        assert (first.version, second.version) == (1, 2)
        row = ConfigValue.objects.get(config_set=org_set, key="API_URL")
        assert "https" not in row.ciphertext
        assert row.updated_by == "bob"

        history = engine.values.history(org_set.id, "API_URL")
        assert [(h.change_type, h.previous_version, h.new_version) for h in history] == [
            ("update", 1, 2),
            ("create", None, 1),
        ]
        assert history[0].change_reason == "move"

    def test_get_masks_secrets_unless_revealed(self, engine, org_set):
        engine.values.put(org_set.id, "TOKEN", "abc123", kind="secret")
        assert engine.values.get(org_set.id, "TOKEN")["value"] == SECRET_MASK
        revealed = engine.values.get(org_set.id, "TOKEN", reveal=True)
        assert revealed["value"] == "abc123"
        assert revealed["is_secret"] is True

    def test_get_restores_type(self, engine, org_set):
        engine.values.put(org_set.id, "PORT", "8080", kind="number")
        assert engine.values.get(org_set.id, "PORT")["value"] == 8080

    def test_invalid_key_rejected(self, engine, org_set):
        with pytest.raises(ValidationError) as exc_info:
            engine.values.put(org_set.id, "1BAD KEY", "x")
        assert exc_info.value.code == "invalid_key"

    def test_delete_records_history_and_versions_continue(self, engine, org_set):
        engine.values.put(org_set.id, "FLAG", True)
        engine.values.delete(org_set.id, "FLAG", actor="alice")
        assert not ConfigValue.objects.filter(config_set=org_set, key="FLAG").exists()

        recreated = engine.values.put(org_set.id, "FLAG", False)
        assert recreated.version == 2
        change_types = list(
            ConfigValueHistory.objects.filter(config_set=org_set, key="FLAG")
            .order_by("id").values_list("change_type", flat=True)
        )
        assert change_types == ["create", "delete", "create"]

    def test_delete_missing_key(self, engine, org_set):
        with pytest.raises(NotFoundError):
            engine.values.delete(org_set.id, "NOPE")

    def test_locked_set_requires_override(self, engine, org_set):
        config_sets.lock_set(org_set.id, actor="alice", reason="release freeze")
        with pytest.raises(PermissionDeniedError) as exc_info:
            engine.values.put(org_set.id, "A", "1")
        assert exc_info.value.code == "set_locked"
        assert engine.values.put(org_set.id, "A", "1", admin_override=True).version == 1

    def test_archived_set_is_read_only(self, engine, org_set):
        config_sets.archive_set(org_set.id)
        with pytest.raises(PermissionDeniedError) as exc_info:
            engine.values.put(org_set.id, "A", "1", admin_override=True)
        assert exc_info.value.code == "set_archived"

    def test_bulk_put_reports_per_key(self, engine, org_set):
        result = engine.values.bulk_put(
            org_set.id,
            [
                {"key": "GOOD", "value": "yes"},
                {"key": "bad key", "value": "no"},
                {"key": "NUM", "value": "not-a-number", "kind": "number"},
                {"key": "COUNT", "value": 3},
            ],
            actor="ci",
        )
        assert result.succeeded == ["GOOD", "COUNT"]
        assert [f["key"] for f in result.failed] == ["bad key", "NUM"]
        assert engine.values.get(org_set.id, "COUNT")["kind"] == "number"

    def test_history_captures_request_meta(self, engine, org_set):
        engine.values.put(
            org_set.id,
            "A",
            "1",
            request_meta={"ip_address": "10.0.0.1", "user_agent": "pytest"},
        )
        row = engine.values.history(org_set.id, "A")[0]
        assert (row.ip_address, row.user_agent) == ("10.0.0.1", "pytest")


class TestRequestMeta:
    """Client address extraction for history rows."""

    def test_forwarded_for_first_hop(self, rf):
        request = rf.get("/", HTTP_X_FORWARDED_FOR="203.0.113.7, 10.0.0.1", REMOTE_ADDR="10.0.0.1")
        assert request_meta(request)["ip_address"] == "203.0.113.7"

    def test_ipv6_forwarded_for(self, rf):
        request = rf.get("/", HTTP_X_FORWARDED_FOR="2001:db8::1")
        assert request_meta(request)["ip_address"] == "2001:db8::1"

    def test_garbage_forwarded_for_falls_back_to_remote_addr(self, rf):
        request = rf.get("/", HTTP_X_FORWARDED_FOR="garbage", REMOTE_ADDR="192.0.2.10")
        assert request_meta(request)["ip_address"] == "192.0.2.10"

    def test_no_valid_address(self, rf):
        request = rf.get("/", HTTP_X_FORWARDED_FOR="garbage", REMOTE_ADDR="not-an-ip")
        assert request_meta(request)["ip_address"] is None

    @pytest.mark.django_db
    def test_spoofed_header_still_writes_history(self, rf, engine, org_set):
        request = rf.get("/", HTTP_X_FORWARDED_FOR="garbage", HTTP_USER_AGENT="curl/8")
        engine.values.put(org_set.id, "A", "1", request_meta=request_meta(request))
        row = engine.values.history(org_set.id, "A")[0]
        assert row.ip_address == "127.0.0.1"
        assert row.user_agent == "curl/8"
