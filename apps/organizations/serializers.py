"""
apps.organizations.serializers
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
I/O-only serializers for the Organizations API.
No business logic; shape validation only.
"""
from rest_framework import serializers

from .models import Organization, Repository


# ---------------------------------------------------------------------------
# Organization
# ---------------------------------------------------------------------------

class OrganizationSerializer(serializers.ModelSerializer):
    """Read serializer for a full Organization object."""

    class Meta:
        model = Organization
        fields = ["id", "name", "slug", "created_at", "updated_at"]
        read_only_fields = fields


class OrganizationCreateSerializer(serializers.Serializer):
    """Validates POST /organizations/ request body."""

    name = serializers.CharField(max_length=255)


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------

class RepositorySerializer(serializers.ModelSerializer):
    organization_id = serializers.IntegerField(read_only=True)

    class Meta:
        model = Repository
        fields = ["id", "organization_id", "name", "slug", "created_at", "updated_at"]
        read_only_fields = fields


class RepositoryCreateSerializer(serializers.Serializer):
    """Validates POST /organizations/{id}/repositories/ request body."""

    name = serializers.CharField(max_length=255)
