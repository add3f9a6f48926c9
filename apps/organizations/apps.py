"""
apps.organizations.apps

Tenants and their repositories.  Every config set and store is owned,
directly or through its store, by one organisation.
"""
from django.apps import AppConfig


class OrganizationsConfig(AppConfig):
    name = "apps.organizations"
    label = "organizations"
    verbose_name = "Tenants"
