"""
common.health
~~~~~~~~~~~~~
GET /health/ – readiness check for the config sets service.

Each dependency is checked independently and reported under ``checks``:

* ``database`` – a connection can be opened
* ``cache``    – the access-token cache accepts a write and returns it
* ``cipher``   – the engine's master key can round-trip a value

Returns 200 with ``"status": "ok"`` when every check passes, otherwise 503
with ``"status": "degraded"``.  Error details are logged, never returned.
"""
import structlog
from django.core.cache import cache
from django.db import OperationalError, connection
from django.http import JsonResponse

from common.exceptions import DecryptionError

logger = structlog.get_logger(__name__)

_CACHE_CHECK_KEY = "health:check"
_CIPHER_SAMPLE = "health-check"


def _check_database() -> None:
    connection.ensure_connection()


def _check_cache() -> None:
    cache.set(_CACHE_CHECK_KEY, "1", timeout=5)
    if cache.get(_CACHE_CHECK_KEY) != "1":
        raise RuntimeError("cache did not return the written value")


def _check_cipher() -> None:
    from apps.config_core.services.engine import get_engine  # noqa: PLC0415

    cipher = get_engine().registry.cipher
    ciphertext, nonce = cipher.encrypt_value(0, 0, _CIPHER_SAMPLE)
    if cipher.decrypt_value(0, 0, ciphertext, nonce) != _CIPHER_SAMPLE:
        raise RuntimeError("cipher round trip mismatch")


CHECKS = {
    "database": _check_database,
    "cache": _check_cache,
    "cipher": _check_cipher,
}


def run_checks() -> dict[str, str]:
    results = {}
    for name, check in CHECKS.items():
        try:
            check()
        except (OperationalError, DecryptionError, RuntimeError) as exc:
            logger.error("health_check_failure", check=name, error=str(exc))
            results[name] = "error"
        else:
            results[name] = "ok"
    return results


def health_check(request):
    """Return per-dependency health; 503 if any check fails."""
    checks = run_checks()
    healthy = all(status == "ok" for status in checks.values())
    payload = {
        "status": "ok" if healthy else "degraded",
        "checks": checks,
    }
    return JsonResponse(payload, status=200 if healthy else 503)
