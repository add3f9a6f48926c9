"""
apps.organizations.admin
"""
from django.contrib import admin

from .models import Organization, Repository


@admin.register(Organization)
class OrganizationAdmin(admin.ModelAdmin):
    list_display = ["id", "name", "slug", "created_at"]
    search_fields = ["name", "slug"]
    readonly_fields = ["id", "slug", "created_at", "updated_at"]
    ordering = ["id"]


@admin.register(Repository)
class RepositoryAdmin(admin.ModelAdmin):
    list_display = ["id", "name", "organization", "created_at"]
    list_filter = ["organization"]
    search_fields = ["name", "slug"]
    readonly_fields = ["id", "slug", "created_at", "updated_at"]
