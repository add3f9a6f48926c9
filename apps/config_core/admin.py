"""
apps.config_core.admin

Ciphertext and credential columns are excluded from every form.
"""
from django.contrib import admin

from .models import ConfigExport, ConfigSet, ConfigStore, ConfigValue, ConfigValueHistory


@admin.register(ConfigStore)
class ConfigStoreAdmin(admin.ModelAdmin):
    list_display = ["name", "store_type", "organization", "is_default", "is_active", "last_test_ok"]
    list_filter = ["store_type", "is_active"]
    search_fields = ["name", "organization__name"]
    exclude = ["credentials_ciphertext", "credentials_nonce"]
    readonly_fields = ["id", "last_tested_at", "last_test_ok", "last_test_error", "created_at", "updated_at"]


@admin.register(ConfigSet)
class ConfigSetAdmin(admin.ModelAdmin):
    list_display = ["name", "environment", "scope", "store", "parent", "hierarchy_rank", "is_active", "is_locked"]
    list_filter = ["scope", "is_active", "is_locked"]
    search_fields = ["name", "environment"]
    readonly_fields = ["id", "hierarchy_rank", "locked_by", "locked_at", "created_at", "updated_at"]


@admin.register(ConfigValue)
class ConfigValueAdmin(admin.ModelAdmin):
    list_display = ["key", "config_set", "kind", "is_secret", "version", "updated_at"]
    list_filter = ["kind", "is_secret"]
    search_fields = ["key"]
    exclude = ["ciphertext", "nonce"]
    readonly_fields = ["version", "created_by", "updated_by", "created_at", "updated_at"]

    def has_add_permission(self, request):
        return False


@admin.register(ConfigValueHistory)
class ConfigValueHistoryAdmin(admin.ModelAdmin):
    list_display = ["key", "config_set", "change_type", "previous_version", "new_version", "changed_by", "created_at"]
    list_filter = ["change_type"]
    search_fields = ["key", "changed_by"]
    exclude = ["previous_ciphertext", "previous_nonce", "new_ciphertext", "new_nonce"]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False


@admin.register(ConfigExport)
class ConfigExportAdmin(admin.ModelAdmin):
    list_display = ["name", "config_set", "format", "last_export_status", "export_count"]
    list_filter = ["format", "last_export_status"]
    readonly_fields = ["last_export_at", "last_export_status", "last_export_error", "export_count"]
