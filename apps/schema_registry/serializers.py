"""
apps.schema_registry.serializers
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
I/O serializers for ConfigSchema and ConfigValidator – no business logic.
"""
from rest_framework import serializers

from .models import ConfigSchema, ConfigValidator


class ConfigSchemaSerializer(serializers.ModelSerializer):
    organization_id = serializers.IntegerField(read_only=True)
    repository_id = serializers.IntegerField(read_only=True)
    previous_version_id = serializers.IntegerField(read_only=True)

    class Meta:
        model = ConfigSchema
        fields = [
            "id",
            "organization_id",
            "repository_id",
            "name",
            "version",
            "definition",
            "description",
            "previous_version_id",
            "is_active",
            "created_by",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class ConfigSchemaCreateSerializer(serializers.Serializer):
    org_id = serializers.IntegerField(required=False)
    repo_id = serializers.IntegerField(required=False)
    name = serializers.CharField(max_length=255)
    definition = serializers.JSONField()
    description = serializers.CharField(required=False, default="", allow_blank=True)

    def validate(self, attrs):
        if bool(attrs.get("org_id")) == bool(attrs.get("repo_id")):
            raise serializers.ValidationError("Provide exactly one of org_id or repo_id.")
        return attrs


class ConfigSchemaUpdateSerializer(serializers.Serializer):
    description = serializers.CharField(required=False, allow_blank=True)
    definition = serializers.JSONField(required=False)
    is_active = serializers.BooleanField(required=False)


class ConfigValidatorSerializer(serializers.ModelSerializer):
    schema_id = serializers.IntegerField(read_only=True)

    class Meta:
        model = ConfigValidator
        fields = [
            "id",
            "schema_id",
            "target_key",
            "name",
            "kind",
            "rule",
            "error_message",
            "priority",
            "is_active",
            "created_at",
        ]
        read_only_fields = fields


class ConfigValidatorCreateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    kind = serializers.ChoiceField(choices=ConfigValidator.Kind.choices)
    rule = serializers.JSONField()
    target_key = serializers.CharField(max_length=255, required=False, default="", allow_blank=True)
    priority = serializers.IntegerField(required=False, default=100)
    error_message = serializers.CharField(max_length=500, required=False, default="", allow_blank=True)
