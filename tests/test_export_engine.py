"""
tests.test_export_engine
~~~~~~~~~~~~~~~~~~~~~~~~~
Rendering resolved sets, importing documents and export specifications.
"""
from __future__ import annotations

import base64
import json

import pytest
import yaml

from apps.config_core.models import ConfigExport
from apps.config_core.services import export_engine
from apps.config_core.services.export_engine import normalize_format, parse_dotenv, transform_key
from common.exceptions import ConflictError, ValidationError


class TestFormatHelpers:
    """Unit tests for format names, key transforms and the dotenv parser."""

    @pytest.mark.parametrize("alias, canonical", [("env", "dotenv"), ("line-text", "dotenv"), ("flat-document", "json")])
    def test_aliases(self, alias, canonical):
        assert normalize_format(alias) == canonical

    def test_unknown_format(self):
        with pytest.raises(ValidationError) as exc_info:
            normalize_format("xml")
        assert exc_info.value.code == "unsupported_format"

    @pytest.mark.parametrize(
        "transform, expected",
        [
            ("uppercase", "DATABASE.URL"),
            ("lowercase", "database.url"),
            ("snake_case", "database_url"),
            ("camel_case", "databaseUrl"),
            ("none", "database.Url"),
        ],
    )
    def test_transform_key(self, transform, expected):
        assert transform_key("database.Url", transform) == expected

    def test_parse_dotenv(self):
        content = (
            "# comment\n"
            "\n"
            "PLAIN=value\n"
            "export EXPORTED=1\n"
            'QUOTED="a b\\nc"\n'
            "SINGLE='x # y'\n"
            "INLINE=v # trailing\n"
            "no_equals_here\n"
            "1BAD=x\n"
            'OPEN="unterminated\n'
        )
        entries, errors = parse_dotenv(content)
        assert [(k, v) for _, k, v in entries] == [
            ("PLAIN", "value"),
            ("EXPORTED", "1"),
            ("QUOTED", "a b\nc"),
            ("SINGLE", "x # y"),
            ("INLINE", "v"),
        ]
        assert [e["line"] for e in errors] == [8, 9, 10]

    def test_parse_dotenv_crlf_and_escaped_carriage_return(self):
        entries, errors = parse_dotenv('A=1\r\nB="x\\r\\ny"\r\n')
        assert errors == []
        assert [(k, v) for _, k, v in entries] == [("A", "1"), ("B", "x\r\ny")]


@pytest.mark.django_db
class TestExport:
    def test_dotenv_leaf_wins(self, engine, org_set, repo_set):
        engine.values.put(org_set.id, "KEY", "parent")
        engine.values.put(repo_set.id, "KEY", "child")
        content, content_type = engine.exports.export(repo_set.id, "dotenv")
        assert content == "KEY=child\n"
        assert content_type.startswith("text/plain")

    def test_dotenv_quotes_when_needed(self, engine, org_set):
        engine.values.put(org_set.id, "GREETING", 'hello "world"')
        engine.values.put(org_set.id, "HOSTS", ["a", "b"])
        content, _ = engine.exports.export(org_set.id, "env")
        assert content == 'GREETING="hello \\"world\\""\nHOSTS="[\\"a\\",\\"b\\"]"\n'

    def test_secrets_omitted_unless_included(self, engine, org_set):
        engine.values.put(org_set.id, "A", "1")
        engine.values.put(org_set.id, "PASSWORD", "hunter2", kind="secret")
        assert engine.exports.export(org_set.id, "dotenv")[0] == "A=1\n"
        included, _ = engine.exports.export(org_set.id, "dotenv", include_secrets=True)
        assert included == "A=1\nPASSWORD=hunter2\n"

    def test_transform_then_prefix(self, engine, org_set):
        engine.values.put(org_set.id, "db.host", "localhost")
        content, _ = engine.exports.export(
            org_set.id, "dotenv", key_prefix="APP_", key_transform="uppercase"
        )
        assert content == "APP_DB.HOST=localhost\n"

    def test_transform_collision(self, engine, org_set):
        engine.values.put(org_set.id, "key", "a")
        engine.values.put(org_set.id, "KEY", "b")
        with pytest.raises(ValidationError) as exc_info:
            engine.exports.export(org_set.id, "dotenv", key_transform="uppercase")
        assert exc_info.value.code == "key_collision"

    def test_json_keeps_native_types(self, engine, org_set):
        engine.values.put(org_set.id, "PORT", 8080)
        engine.values.put(org_set.id, "DEBUG", True)
        engine.values.put(org_set.id, "NAME", "svc")
        content, content_type = engine.exports.export(org_set.id, "json")
        assert content_type == "application/json"
        assert json.loads(content) == {"DEBUG": True, "NAME": "svc", "PORT": 8080}

    def test_kubernetes_manifests(self, engine, org_set):
        engine.values.put(org_set.id, "PORT", 8080)
        engine.values.put(org_set.id, "TOKEN", "t0k", kind="secret")

        configmap = yaml.safe_load(engine.exports.export(org_set.id, "k8s_configmap")[0])
        assert configmap["kind"] == "ConfigMap"
        assert configmap["metadata"]["name"] == "acme-defaults"
        assert configmap["data"] == {"PORT": "8080"}

        secret = yaml.safe_load(
            engine.exports.export(org_set.id, "k8s_secret", include_secrets=True)[0]
        )
        assert secret["kind"] == "Secret"
        assert base64.b64decode(secret["data"]["TOKEN"]).decode() == "t0k"

    def test_yaml_and_terraform(self, engine, org_set):
        engine.values.put(org_set.id, "PORT", 8080)
        engine.values.put(org_set.id, "TOKEN", "t0k", kind="secret")
        assert yaml.safe_load(engine.exports.export(org_set.id, "yaml")[0]) == {"PORT": 8080}

        terraform, _ = engine.exports.export(org_set.id, "terraform", include_secrets=True)
        assert 'variable "PORT" {\n  default = 8080\n}' in terraform
        assert "sensitive = true" in terraform


@pytest.mark.django_db
class TestImport:
    def test_dotenv_import(self, engine, org_set):
        result = engine.exports.import_content(
            org_set.id,
            "A=1\nB=two\nnot a line\nSECRET=s\n",
            "dotenv",
            actor="alice",
            secret_keys=["SECRET"],
        )
        assert (result.imported, result.skipped) == (3, 0)
        assert result.errors == [{"line": 3, "error": "expected KEY=value"}]
        assert engine.values.get(org_set.id, "SECRET")["is_secret"] is True
        assert engine.values.get(org_set.id, "A")["value"] == "1"

    def test_dotenv_round_trip_keeps_carriage_returns(self, engine, org_set, store):
        engine.values.put(org_set.id, "BANNER", "line one\r\nline two\rend")
        exported, _ = engine.exports.export(org_set.id, "dotenv")
        assert exported == 'BANNER="line one\\r\\nline two\\rend"\n'

        engine.values.delete(org_set.id, "BANNER")
        result = engine.exports.import_content(org_set.id, exported, "dotenv")
        assert (result.imported, result.errors) == (1, [])
        assert engine.values.get(org_set.id, "BANNER")["value"] == "line one\r\nline two\rend"

    def test_json_round_trip(self, engine, org_set, store):
        engine.values.put(org_set.id, "PORT", 8080)
        engine.values.put(org_set.id, "DEBUG", False)
        engine.values.put(org_set.id, "HOSTS", ["a", "b"])
        engine.values.put(org_set.id, "NAME", "svc")
        exported, _ = engine.exports.export(org_set.id, "json")

        target = engine.resolver.clone(org_set.id, "empty")
        for key in ("PORT", "DEBUG", "HOSTS", "NAME"):
            engine.values.delete(target.id, key)

        result = engine.exports.import_content(target.id, exported, "json")
        assert result.imported == 4
        assert engine.resolver.resolve(target.id).plain_values() == engine.resolver.resolve(org_set.id).plain_values()

    def test_json_nulls_skipped_and_bad_keys_reported(self, engine, org_set):
        result = engine.exports.import_content(
            org_set.id, json.dumps({"A": 1, "B": None, "bad key": 2}), "json"
        )
        assert (result.imported, result.skipped) == (1, 1)
        assert result.errors[0]["key"] == "bad key"

    def test_invalid_json_reported(self, engine, org_set):
        result = engine.exports.import_content(org_set.id, "{not json", "json")
        assert result.imported == 0
        assert "invalid JSON" in result.errors[0]["error"]

    def test_yaml_import_unsupported(self, engine, org_set):
        with pytest.raises(ValidationError):
            engine.exports.import_content(org_set.id, "A: 1", "yaml")


@pytest.mark.django_db
class TestExportSpecs:
    def test_create_run_and_record(self, engine, org_set):
        engine.values.put(org_set.id, "A", "1")
        spec = export_engine.create_export_spec(
            set_id=org_set.id,
            name="ci-env",
            format="env",
            cron_schedule="0 * * * *",
            timezone="Europe/Berlin",
            actor="alice",
        )
        assert spec.format == "dotenv"

        content, _ = export_engine.run_export_spec(engine.exports, spec.id)
        assert content == "A=1\n"
        spec.refresh_from_db()
        assert spec.export_count == 1
        assert spec.last_export_status == ConfigExport.Status.SUCCESS
        assert spec.last_export_at is not None

    def test_failed_run_recorded(self, engine, org_set):
        engine.values.put(org_set.id, "key", "a")
        engine.values.put(org_set.id, "KEY", "b")
        spec = export_engine.create_export_spec(
            set_id=org_set.id, name="upper", format="dotenv", key_transform="uppercase"
        )
        with pytest.raises(ValidationError):
            export_engine.run_export_spec(engine.exports, spec.id)
        spec.refresh_from_db()
        assert spec.last_export_status == ConfigExport.Status.ERROR
        assert spec.export_count == 0

    @pytest.mark.parametrize(
        "fields, code",
        [
            ({"cron_schedule": "every hour"}, "invalid_cron"),
            ({"timezone": "Mars/Olympus"}, "invalid_timezone"),
            ({"key_transform": "kebab"}, "invalid_transform"),
        ],
    )
    def test_invalid_fields(self, org_set, fields, code):
        with pytest.raises(ValidationError) as exc_info:
            export_engine.create_export_spec(set_id=org_set.id, name="x", format="json", **fields)
        assert exc_info.value.code == code

    def test_duplicate_name(self, org_set):
        export_engine.create_export_spec(set_id=org_set.id, name="x", format="json")
        with pytest.raises(ConflictError):
            export_engine.create_export_spec(set_id=org_set.id, name="x", format="yaml")
