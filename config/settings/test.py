"""
Test settings – SQLite and local-memory cache so the suite runs without
external services.
"""
import os

os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("CONFIG_MASTER_KEY", "test-master-key-not-for-production")

from .base import *  # noqa: E402, F401, F403

DEBUG = False

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": BASE_DIR / "test.sqlite3",  # noqa: F405
    }
}

CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "config-sets-tests",
    }
}

PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]

EXTERNAL_STORE_TIMEOUT_SECONDS = 1.0
EXTERNAL_STORE_BACKOFF_SECONDS = 0.0

LOGGING["root"]["level"] = "WARNING"  # noqa: F405
