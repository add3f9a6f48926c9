"""
apps.config_core.serializers
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
I/O-only serializers for stores, config sets, values and exports.
Credentials and ciphertext are never serialized.
"""
from rest_framework import serializers

from .models import (
    ConfigExport,
    ConfigSet,
    ConfigStore,
    ConfigValueHistory,
    ExportFormat,
    KeyTransform,
    ValueKind,
)


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------

class ConfigStoreSerializer(serializers.ModelSerializer):
    organization_id = serializers.IntegerField(read_only=True)
    has_credentials = serializers.SerializerMethodField()

    class Meta:
        model = ConfigStore
        fields = [
            "id",
            "organization_id",
            "name",
            "store_type",
            "settings",
            "has_credentials",
            "is_default",
            "is_active",
            "last_tested_at",
            "last_test_ok",
            "last_test_error",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields

    def get_has_credentials(self, obj: ConfigStore) -> bool:
        return bool(obj.credentials_ciphertext)


class ConfigStoreCreateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    store_type = serializers.CharField(max_length=32, default=ConfigStore.StoreType.BUILTIN)
    credentials = serializers.DictField(required=False)
    settings = serializers.DictField(required=False)
    is_default = serializers.BooleanField(default=False)


class ConfigStoreUpdateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255, required=False)
    credentials = serializers.DictField(required=False)
    settings = serializers.DictField(required=False)
    is_default = serializers.BooleanField(required=False)
    is_active = serializers.BooleanField(required=False)


class ConnectionTestSerializer(serializers.Serializer):
    ok = serializers.BooleanField()
    latency_ms = serializers.FloatField()
    details = serializers.CharField()


# ---------------------------------------------------------------------------
# Config sets
# ---------------------------------------------------------------------------

class ConfigSetSerializer(serializers.ModelSerializer):
    store_id = serializers.IntegerField(read_only=True)
    schema_id = serializers.IntegerField(read_only=True, allow_null=True)
    organization_id = serializers.IntegerField(read_only=True, allow_null=True)
    repository_id = serializers.IntegerField(read_only=True, allow_null=True)
    parent_id = serializers.IntegerField(read_only=True, allow_null=True)

    class Meta:
        model = ConfigSet
        fields = [
            "id",
            "store_id",
            "schema_id",
            "scope",
            "organization_id",
            "repository_id",
            "name",
            "environment",
            "description",
            "parent_id",
            "hierarchy_rank",
            "is_active",
            "is_locked",
            "locked_by",
            "locked_at",
            "lock_reason",
            "created_by",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class ConfigSetCreateSerializer(serializers.Serializer):
    store_id = serializers.IntegerField()
    name = serializers.CharField(max_length=255)
    scope = serializers.ChoiceField(choices=ConfigSet.Scope.choices)
    org_id = serializers.IntegerField(required=False, allow_null=True)
    repo_id = serializers.IntegerField(required=False, allow_null=True)
    environment = serializers.CharField(max_length=100, required=False, default="", allow_blank=True)
    parent_id = serializers.IntegerField(required=False, allow_null=True)
    schema_id = serializers.IntegerField(required=False, allow_null=True)
    description = serializers.CharField(required=False, default="", allow_blank=True)


class ConfigSetUpdateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255, required=False)
    environment = serializers.CharField(max_length=100, required=False, allow_blank=True)
    description = serializers.CharField(required=False, allow_blank=True)
    schema_id = serializers.IntegerField(required=False, allow_null=True)


class SetParentSerializer(serializers.Serializer):
    parent_id = serializers.IntegerField(allow_null=True)


class LockSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=500, required=False, default="", allow_blank=True)


class CloneSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    environment = serializers.CharField(max_length=100, required=False, allow_null=True, default=None)


# ---------------------------------------------------------------------------
# Values
# ---------------------------------------------------------------------------

class ValuePutSerializer(serializers.Serializer):
    value = serializers.JSONField()
    kind = serializers.ChoiceField(choices=ValueKind.choices, required=False)
    is_secret = serializers.BooleanField(default=False)
    description = serializers.CharField(required=False, allow_null=True, default=None, allow_blank=True)
    reason = serializers.CharField(max_length=500, required=False, default="", allow_blank=True)
    admin_override = serializers.BooleanField(default=False)


class BulkEntrySerializer(serializers.Serializer):
    key = serializers.CharField(max_length=255)
    value = serializers.JSONField()
    kind = serializers.ChoiceField(choices=ValueKind.choices, required=False)
    is_secret = serializers.BooleanField(default=False)
    description = serializers.CharField(required=False, allow_null=True, allow_blank=True)


class BulkPutSerializer(serializers.Serializer):
    values = BulkEntrySerializer(many=True)
    reason = serializers.CharField(max_length=500, required=False, default="", allow_blank=True)


class BulkPutResultSerializer(serializers.Serializer):
    succeeded = serializers.ListField(child=serializers.CharField())
    failed = serializers.ListField(child=serializers.DictField())


class ConfigValueHistorySerializer(serializers.ModelSerializer):
    """History rows without any ciphertext."""

    class Meta:
        model = ConfigValueHistory
        fields = [
            "id",
            "key",
            "kind",
            "is_secret",
            "previous_version",
            "new_version",
            "change_type",
            "changed_by",
            "change_reason",
            "ip_address",
            "user_agent",
            "created_at",
        ]
        read_only_fields = fields


# ---------------------------------------------------------------------------
# Export / import
# ---------------------------------------------------------------------------

class ExportQuerySerializer(serializers.Serializer):
    format = serializers.CharField(required=False, default=ExportFormat.DOTENV)
    include_secrets = serializers.BooleanField(required=False, default=False)
    prefix = serializers.CharField(required=False, default="", allow_blank=True)
    transform = serializers.ChoiceField(choices=KeyTransform.choices, required=False, default=KeyTransform.NONE)


class ImportSerializer(serializers.Serializer):
    content = serializers.CharField(allow_blank=True, trim_whitespace=False)
    format = serializers.CharField(default=ExportFormat.DOTENV)
    secret_keys = serializers.ListField(child=serializers.CharField(), required=False, default=list)


class ImportResultSerializer(serializers.Serializer):
    imported = serializers.IntegerField()
    skipped = serializers.IntegerField()
    errors = serializers.ListField(child=serializers.DictField())


class ConfigExportSerializer(serializers.ModelSerializer):
    config_set_id = serializers.IntegerField(read_only=True)

    class Meta:
        model = ConfigExport
        fields = [
            "id",
            "config_set_id",
            "name",
            "format",
            "destination",
            "cron_schedule",
            "timezone",
            "include_secrets",
            "key_prefix",
            "key_transform",
            "is_active",
            "last_export_at",
            "last_export_status",
            "last_export_error",
            "export_count",
            "created_by",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class ConfigExportWriteSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255, required=False)
    format = serializers.CharField(required=False)
    destination = serializers.DictField(required=False)
    cron_schedule = serializers.CharField(max_length=100, required=False, allow_blank=True)
    timezone = serializers.CharField(max_length=64, required=False)
    include_secrets = serializers.BooleanField(required=False)
    key_prefix = serializers.CharField(max_length=100, required=False, allow_blank=True)
    key_transform = serializers.ChoiceField(choices=KeyTransform.choices, required=False)
    is_active = serializers.BooleanField(required=False)


class ConfigExportCreateSerializer(ConfigExportWriteSerializer):
    name = serializers.CharField(max_length=255)
    format = serializers.CharField(default=ExportFormat.DOTENV)
