"""
Production settings.

The master key, hosts and database credentials must come from the
environment; there are no fallbacks.  Access tokens are revoked through the
cache, so every node has to share one: a per-process cache is rejected.
"""
from decouple import Csv, config
from django.core.exceptions import ImproperlyConfigured

from .base import *  # noqa: F401, F403

DEBUG = False

ALLOWED_HOSTS = config("ALLOWED_HOSTS", cast=Csv())

DATABASES["default"].update(  # noqa: F405
    {
        "NAME": config("POSTGRES_DB"),
        "USER": config("POSTGRES_USER"),
        "PASSWORD": config("POSTGRES_PASSWORD"),
        "HOST": config("POSTGRES_HOST"),
    }
)

if CACHES["default"]["BACKEND"].endswith("LocMemCache"):  # noqa: F405
    raise ImproperlyConfigured(
        "CACHE_BACKEND must be a shared cache (e.g. Redis) in production so "
        "token revocation reaches every node."
    )

if len(CONFIG_MASTER_KEY) < 32:  # noqa: F405
    raise ImproperlyConfigured("CONFIG_MASTER_KEY must be at least 32 characters.")

# ---------------------------------------------------------------------------
# HTTPS
# ---------------------------------------------------------------------------
SECURE_SSL_REDIRECT = config("SECURE_SSL_REDIRECT", default=True, cast=bool)
SECURE_PROXY_SSL_HEADER = ("HTTP_X_FORWARDED_PROTO", "https")
SECURE_HSTS_SECONDS = 31536000
SECURE_HSTS_INCLUDE_SUBDOMAINS = True
SECURE_CONTENT_TYPE_NOSNIFF = True
SESSION_COOKIE_SECURE = True
CSRF_COOKIE_SECURE = True

# Secret manager calls cross the network; allow a slower backend.
EXTERNAL_STORE_TIMEOUT_SECONDS = config("EXTERNAL_STORE_TIMEOUT_SECONDS", default=10.0, cast=float)
EXTERNAL_STORE_MAX_RETRIES = config("EXTERNAL_STORE_MAX_RETRIES", default=3, cast=int)

LOGGING["root"]["level"] = "INFO"  # noqa: F405
