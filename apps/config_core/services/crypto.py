"""
apps.config_core.services.crypto
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
Authenticated encryption for stored values and store credentials.

Every value is encrypted with AES-256-GCM under a key derived (HKDF-SHA256)
from ``CONFIG_MASTER_KEY`` and the tenant context it belongs to, so a
ciphertext copied into another organisation or set does not decrypt.  Each
call draws a fresh random 96-bit nonce; ciphertext and nonce are returned
base64-encoded for storage in text columns.

Plaintext, ciphertext and key material are never logged.

Public API
----------
encrypt(plaintext, key) -> (ciphertext_b64, nonce_b64)
decrypt(ciphertext_b64, nonce_b64, key) -> plaintext
derive_key(master_key, *scope) -> bytes
mask_secret(value) -> str
ValueCipher
"""
from __future__ import annotations

import base64
import binascii
import json
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from common.exceptions import DecryptionError

KEY_SIZE = 32
NONCE_SIZE = 12

#: Fixed-width mask so the length of a secret is not disclosed.
SECRET_MASK = "********"

_HKDF_SALT = b"config-sets/v1"


def derive_key(master_key: str | bytes, *scope: object) -> bytes:
    """
    Derive a 256-bit key bound to *scope*.

    >>> derive_key("master", "org", 1, "set", 7) != derive_key("master", "org", 1, "set", 8)
    True
    """
    if not master_key:
        raise ValueError("A master key is required.")
    if isinstance(master_key, str):
        master_key = master_key.encode("utf-8")
    info = ":".join(str(part) for part in scope).encode("utf-8")
    return HKDF(
        algorithm=hashes.SHA256(),
        length=KEY_SIZE,
        salt=_HKDF_SALT,
        info=info,
    ).derive(master_key)


def encrypt(plaintext: str, key: bytes) -> tuple[str, str]:
    """Encrypt *plaintext* with a fresh nonce; returns ``(ciphertext, nonce)``."""
    nonce = os.urandom(NONCE_SIZE)
    sealed = AESGCM(key).encrypt(nonce, plaintext.encode("utf-8"), None)
    return (
        base64.b64encode(sealed).decode("ascii"),
        base64.b64encode(nonce).decode("ascii"),
    )


def decrypt(ciphertext: str, nonce: str, key: bytes) -> str:
    """
    Reverse :func:`encrypt`.

    Raises:
        DecryptionError: On a wrong key, tampered data, malformed encoding
            or a nonce of the wrong size.
    """
    try:
        raw_nonce = base64.b64decode(nonce, validate=True)
        sealed = base64.b64decode(ciphertext, validate=True)
    except (binascii.Error, ValueError, TypeError) as exc:
        raise DecryptionError("Stored ciphertext is not valid base64.") from exc

    if len(raw_nonce) != NONCE_SIZE:
        raise DecryptionError("Stored nonce has an invalid length.")

    try:
        plaintext = AESGCM(key).decrypt(raw_nonce, sealed, None)
    except InvalidTag as exc:
        raise DecryptionError("Authentication tag mismatch.") from exc

    try:
        return plaintext.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise DecryptionError("Decrypted value is not valid UTF-8.") from exc


def mask_secret(value: object = None) -> str:
    """Return the fixed-width mask for a secret value."""
    return SECRET_MASK


class ValueCipher:
    """
    Binds the master key and exposes the two key scopes the engine uses:

    * values of a config set – ``org:<org id>:set:<set id>``
    * credentials of an organisation's stores – ``store:<org id>``
    """

    def __init__(self, master_key: str | bytes) -> None:
        if not master_key:
            raise ValueError("CONFIG_MASTER_KEY must be set.")
        self._master_key = master_key

    @classmethod
    def from_settings(cls) -> "ValueCipher":
        from django.conf import settings  # noqa: PLC0415

        return cls(settings.CONFIG_MASTER_KEY)

    def _set_key(self, org_id: int, set_id: int) -> bytes:
        return derive_key(self._master_key, "org", org_id, "set", set_id)

    def encrypt_value(self, org_id: int, set_id: int, plaintext: str) -> tuple[str, str]:
        return encrypt(plaintext, self._set_key(org_id, set_id))

    def decrypt_value(self, org_id: int, set_id: int, ciphertext: str, nonce: str) -> str:
        return decrypt(ciphertext, nonce, self._set_key(org_id, set_id))

    def encrypt_credentials(self, org_id: int, credentials: dict) -> tuple[str, str]:
        key = derive_key(self._master_key, "store", org_id)
        return encrypt(json.dumps(credentials, sort_keys=True), key)

    def decrypt_credentials(self, org_id: int, ciphertext: str, nonce: str) -> dict:
        if not ciphertext:
            return {}
        key = derive_key(self._master_key, "store", org_id)
        plaintext = decrypt(ciphertext, nonce, key)
        try:
            return json.loads(plaintext)
        except json.JSONDecodeError as exc:
            raise DecryptionError("Stored credentials are not a JSON object.") from exc
