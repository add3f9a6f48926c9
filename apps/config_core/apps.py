"""
apps.config_core.apps
"""
from django.apps import AppConfig


class ConfigCoreConfig(AppConfig):
    name = "apps.config_core"
    label = "config_core"
    verbose_name = "Config Core"

    def ready(self) -> None:
        from apps.config_core.services.engine import build_engine  # noqa: PLC0415

        self.engine = build_engine()
