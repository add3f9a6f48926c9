"""
apps.access_tokens.serializers

The token hash is never serialized; the plaintext appears only in the
creation response.
"""
from rest_framework import serializers

from apps.config_core.models import KeyTransform
from apps.config_core.serializers import BulkEntrySerializer
from .models import AccessToken


class AccessTokenSerializer(serializers.ModelSerializer):
    config_set_id = serializers.IntegerField(read_only=True)

    class Meta:
        model = AccessToken
        fields = [
            "id",
            "config_set_id",
            "name",
            "token_prefix",
            "permission",
            "allowed_set_ids",
            "is_active",
            "expires_at",
            "last_used_at",
            "usage_count",
            "created_by",
            "created_at",
        ]
        read_only_fields = fields


class AccessTokenCreateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    permission = serializers.ChoiceField(
        choices=AccessToken.Permission.choices,
        default=AccessToken.Permission.READ,
    )
    allowed_set_ids = serializers.ListField(child=serializers.CharField(), required=False, default=list)
    expires_at = serializers.DateTimeField(required=False, allow_null=True, default=None)


class AccessTokenCreatedSerializer(AccessTokenSerializer):
    token = serializers.CharField(read_only=True)

    class Meta(AccessTokenSerializer.Meta):
        fields = AccessTokenSerializer.Meta.fields + ["token"]
        read_only_fields = fields


class CIConfigQuerySerializer(serializers.Serializer):
    set_id = serializers.IntegerField(required=False)
    format = serializers.ChoiceField(choices=["env", "dotenv", "json"], default="env")
    prefix = serializers.CharField(required=False, default="", allow_blank=True)
    transform = serializers.ChoiceField(choices=KeyTransform.choices, required=False, default=KeyTransform.NONE)


class CISetSerializer(serializers.Serializer):
    set_id = serializers.IntegerField(required=False)


class CIBulkPutSerializer(CISetSerializer):
    values = BulkEntrySerializer(many=True)
    reason = serializers.CharField(max_length=500, required=False, default="", allow_blank=True)
