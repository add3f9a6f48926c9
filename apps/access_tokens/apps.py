"""
apps.access_tokens.apps
"""
from django.apps import AppConfig


class AccessTokensConfig(AppConfig):
    name = "apps.access_tokens"
    label = "access_tokens"
    verbose_name = "Access Tokens"
