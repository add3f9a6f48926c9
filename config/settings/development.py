"""
Development settings – local Postgres, verbose logs and a throwaway master key.

Values written with the development master key cannot be read by any other
environment; never point these settings at a shared database.
"""
import os

os.environ.setdefault("CONFIG_MASTER_KEY", "dev-master-key-not-for-production")

from decouple import config  # noqa: E402

from .base import *  # noqa: E402, F401, F403

DEBUG = config("DEBUG", default=True, cast=bool)

if DEBUG:
    ALLOWED_HOSTS = ["*"]

# A local Vault dev server answers quickly; fail fast instead of retrying.
EXTERNAL_STORE_MAX_RETRIES = config("EXTERNAL_STORE_MAX_RETRIES", default=0, cast=int)

# Revocations take effect almost immediately while iterating on CI tokens.
CONFIG_TOKEN_CACHE_TTL_SECONDS = config("CONFIG_TOKEN_CACHE_TTL_SECONDS", default=2, cast=int)

LOGGING["root"]["level"] = "DEBUG"  # noqa: F405

REST_FRAMEWORK["DEFAULT_RENDERER_CLASSES"] = [  # noqa: F405
    "rest_framework.renderers.JSONRenderer",
    "rest_framework.renderers.BrowsableAPIRenderer",
]
