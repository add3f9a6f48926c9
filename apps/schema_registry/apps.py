"""
apps.schema_registry.apps

Versioned config schemas and the cross-key validator rules attached to them.
"""
from django.apps import AppConfig


class SchemaRegistryConfig(AppConfig):
    name = "apps.schema_registry"
    label = "schema_registry"
    verbose_name = "Config Schemas"
