"""
apps.schema_registry.admin
~~~~~~~~~~~~~~~~~~~~~~~~~~~
Django admin registrations for the Schema Registry application.
"""
from django.contrib import admin

from .models import ConfigSchema, ConfigValidator


class ConfigValidatorInline(admin.TabularInline):
    model = ConfigValidator
    extra = 0
    fields = ["name", "kind", "target_key", "rule", "priority", "is_active"]


@admin.register(ConfigSchema)
class ConfigSchemaAdmin(admin.ModelAdmin):
    """
    Admin interface for ConfigSchema records.

    Definitions of existing versions are read-only; publish a change through
    the API so a new version row is created.
    """

    list_display = ["name", "version", "organization", "repository", "is_active", "created_at"]
    list_filter = ["is_active", "organization"]
    search_fields = ["name", "organization__name", "repository__name"]
    readonly_fields = ["id", "previous_version", "created_at", "updated_at"]
    ordering = ["name", "-version"]
    inlines = [ConfigValidatorInline]

    def get_readonly_fields(self, request, obj=None):
        if obj is not None:
            return list(self.readonly_fields) + ["version", "definition"]
        return self.readonly_fields
