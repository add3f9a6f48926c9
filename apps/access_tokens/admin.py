"""
apps.access_tokens.admin
"""
from django.contrib import admin

from .models import AccessToken


@admin.register(AccessToken)
class AccessTokenAdmin(admin.ModelAdmin):
    list_display = ["name", "token_prefix", "config_set", "permission", "is_active", "expires_at", "usage_count"]
    list_filter = ["permission", "is_active"]
    search_fields = ["name", "token_prefix"]
    exclude = ["token_hash"]
    readonly_fields = ["token_prefix", "last_used_at", "usage_count", "created_by", "created_at"]

    def has_add_permission(self, request):
        return False
