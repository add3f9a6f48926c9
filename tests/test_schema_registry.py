"""
tests.test_schema_registry
~~~~~~~~~~~~~~~~~~~~~~~~~~~
Schema definitions, schema versioning and validator rules.

Covers:
- SchemaValidator      (unit, no DB)
- schema services      (DB)
- schema API endpoints (integration, DB)
"""
from __future__ import annotations

import pytest
from rest_framework import status

from apps.config_core.models import ConfigSet
from apps.config_core.services import config_sets
from apps.schema_registry import services as schema_services
from apps.schema_registry.models import ConfigSchema, ConfigValidator
from apps.schema_registry.validators import SchemaValidationError, SchemaValidator
from common.exceptions import ConflictError, ValidationError

BILLING_SCHEMA: dict = {
    "version": "1.0.0",
    "keys": [
        {"key": "DATABASE_URL", "type": "secret", "required": True},
        {"key": "PORT", "type": "number", "default": 8080, "min": 1, "max": 65535},
        {"key": "LOG_LEVEL", "type": "string", "enum": ["debug", "info", "warning"], "default": "info"},
        {"key": "REGION", "type": "string", "pattern": "^[a-z]{2}-[a-z]+-\\d$"},
        {"key": "FEATURE_FLAGS", "type": "json", "default": {}},
        {"key": "LEGACY_MODE", "type": "boolean", "deprecated": True},
    ],
}


class TestSchemaValidation:
    """Unit tests for SchemaValidator.  No database access required."""

    def test_valid_schema_passes(self):
        SchemaValidator.validate(BILLING_SCHEMA)  # must not raise

    def test_keys_required(self):
        with pytest.raises(SchemaValidationError) as exc_info:
            SchemaValidator.validate({"version": "1"})
        assert [e["field"] for e in exc_info.value.errors] == ["keys"]

    def test_non_dict_definition(self):
        with pytest.raises(SchemaValidationError):
            SchemaValidator.validate(["not", "a", "dict"])

    def test_duplicate_key(self):
        with pytest.raises(SchemaValidationError) as exc_info:
            SchemaValidator.validate({"keys": [{"key": "A"}, {"key": "A"}]})
        assert "Duplicate" in exc_info.value.errors[0]["message"]

    def test_unknown_type(self):
        with pytest.raises(SchemaValidationError) as exc_info:
            SchemaValidator.validate({"keys": [{"key": "A", "type": "float"}]})
        assert exc_info.value.errors[0]["field"] == "keys.A.type"

    def test_bool_default_rejected_for_number(self):
        with pytest.raises(SchemaValidationError) as exc_info:
            SchemaValidator.validate({"keys": [{"key": "A", "type": "number", "default": True}]})
        assert exc_info.value.errors[0]["field"] == "keys.A.default"

    def test_min_greater_than_max(self):
        with pytest.raises(SchemaValidationError):
            SchemaValidator.validate({"keys": [{"key": "A", "type": "number", "min": 10, "max": 1}]})

    def test_invalid_pattern(self):
        with pytest.raises(SchemaValidationError) as exc_info:
            SchemaValidator.validate({"keys": [{"key": "A", "pattern": "(unclosed"}]})
        assert exc_info.value.errors[0]["field"] == "keys.A.pattern"

    def test_all_errors_collected(self):
        bad = {
            "keys": [
                {"key": "A", "type": "nope"},
                {"key": "B", "enum": []},
                {"key": "C", "min_length": -1, "colour": "red"},
            ]
        }
        with pytest.raises(SchemaValidationError) as exc_info:
            SchemaValidator.validate(bad)
        fields = {e["field"] for e in exc_info.value.errors}
        assert {"keys.A.type", "keys.B.enum", "keys.C.min_length", "keys.C"} <= fields


@pytest.mark.django_db
class TestSchemaServices:
    def test_create_needs_exactly_one_owner(self, org, repo):
        with pytest.raises(ValidationError):
            schema_services.create_schema(name="s", definition=BILLING_SCHEMA)
        with pytest.raises(ValidationError):
            schema_services.create_schema(
                name="s", definition=BILLING_SCHEMA, org_id=org.id, repo_id=repo.id
            )

    def test_invalid_definition_carries_errors(self, org):
        with pytest.raises(ValidationError) as exc_info:
            schema_services.create_schema(name="s", definition={"keys": [{"type": "x"}]}, org_id=org.id)
        assert exc_info.value.code == "invalid_schema"
        assert exc_info.value.errors

    def test_duplicate_name_conflicts(self, org):
        schema_services.create_schema(name="billing", definition=BILLING_SCHEMA, org_id=org.id)
        with pytest.raises(ConflictError):
            schema_services.create_schema(name="billing", definition=BILLING_SCHEMA, org_id=org.id)

    def test_definition_change_creates_next_version(self, org, store):
        v1 = schema_services.create_schema(name="billing", definition=BILLING_SCHEMA, org_id=org.id)
        schema_services.create_validator(
            schema_id=v1.id, name="port-range", kind="range", target_key="PORT", rule={"min": 1024}
        )
        config_set = config_sets.create_set(
            store_id=store.id,
            name="svc",
            scope=ConfigSet.Scope.ORGANIZATION,
            org_id=org.id,
            schema_id=v1.id,
        )

        new_definition = {"keys": BILLING_SCHEMA["keys"] + [{"key": "TIMEOUT", "type": "number"}]}
        v2 = schema_services.update_schema(v1.id, data={"definition": new_definition}, actor="bob")

        assert v2.version == 2
        assert v2.previous_version_id == v1.id
        assert v2.created_by == "bob"
        v1.refresh_from_db()
        assert v1.is_active is False
        assert [v.name for v in schema_services.list_validators(v2.id)] == ["port-range"]
        config_set.refresh_from_db()
        assert config_set.schema_id == v2.id

    def test_description_update_in_place(self, org):
        schema = schema_services.create_schema(name="billing", definition=BILLING_SCHEMA, org_id=org.id)
        updated = schema_services.update_schema(schema.id, data={"description": "new"})
        assert updated.id == schema.id
        assert updated.version == 1
        assert updated.description == "new"

    def test_validator_rule_checked(self, org):
        schema = schema_services.create_schema(name="billing", definition=BILLING_SCHEMA, org_id=org.id)
        with pytest.raises(ValidationError) as exc_info:
            schema_services.create_validator(schema_id=schema.id, name="bad", kind="enum", target_key="A", rule={})
        assert exc_info.value.code == "invalid_validator"

    def test_validators_listed_in_priority_order(self, org):
        schema = schema_services.create_schema(name="billing", definition=BILLING_SCHEMA, org_id=org.id)
        schema_services.create_validator(
            schema_id=schema.id, name="late", kind="custom", rule={"check": "x"}, priority=200
        )
        schema_services.create_validator(
            schema_id=schema.id, name="early", kind="custom", rule={"check": "y"}, priority=10
        )
        assert [v.name for v in schema_services.list_validators(schema.id)] == ["early", "late"]


SCHEMAS_URL = "/api/v1/schemas/"


@pytest.mark.django_db
class TestSchemaAPI:
    """Integration tests against the schema endpoints."""

    def test_create_and_get(self, api_client, org):
        resp = api_client.post(
            SCHEMAS_URL,
            data={"name": "billing", "org_id": org.id, "definition": BILLING_SCHEMA},
            format="json",
        )
        assert resp.status_code == status.HTTP_201_CREATED
        schema_id = resp.json()["id"]

        resp = api_client.get(f"{SCHEMAS_URL}{schema_id}/")
        assert resp.status_code == status.HTTP_200_OK
        assert resp.json()["version"] == 1

    def test_invalid_definition_returns_422_with_errors(self, api_client, org):
        resp = api_client.post(
            SCHEMAS_URL,
            data={"name": "bad", "org_id": org.id, "definition": {"keys": [{"key": "A", "type": "x"}]}},
            format="json",
        )
        assert resp.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        assert resp.json()["errors"]

    def test_delete_soft_deletes(self, api_client, org):
        schema = schema_services.create_schema(name="billing", definition=BILLING_SCHEMA, org_id=org.id)
        resp = api_client.delete(f"{SCHEMAS_URL}{schema.id}/")
        assert resp.status_code == status.HTTP_204_NO_CONTENT
        assert ConfigSchema.objects.get(pk=schema.id).is_active is False

    def test_add_validator(self, api_client, org):
        schema = schema_services.create_schema(name="billing", definition=BILLING_SCHEMA, org_id=org.id)
        resp = api_client.post(
            f"{SCHEMAS_URL}{schema.id}/validators/",
            data={"name": "port", "kind": "range", "target_key": "PORT", "rule": {"max": 9000}},
            format="json",
        )
        assert resp.status_code == status.HTTP_201_CREATED
        assert ConfigValidator.objects.filter(schema=schema).count() == 1
