"""
apps.config_core.services.value_kinds
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
Conversion between typed config values and the text that gets encrypted.

A value is a tagged union discriminated by its ``kind``:

==========  ==========================  =====================
kind        Python value                stored text
==========  ==========================  =====================
string      ``str``                     as-is
number      ``int`` / ``float``         ``"42"``, ``"0.5"``
boolean     ``bool``                    ``"true"`` / ``"false"``
json        ``dict`` / ``list`` / ...   compact JSON
secret      ``str``                     as-is (always secret)
==========  ==========================  =====================

This module is **pure Python** and has no ORM access.
"""
from __future__ import annotations

import json
import math
from typing import Any

from common.exceptions import ValidationError

STRING = "string"
NUMBER = "number"
BOOLEAN = "boolean"
JSON = "json"
SECRET = "secret"

KINDS: frozenset[str] = frozenset({STRING, NUMBER, BOOLEAN, JSON, SECRET})

_TRUE_WORDS = frozenset({"true", "1", "yes", "on"})
_FALSE_WORDS = frozenset({"false", "0", "no", "off"})


def _invalid(message: str) -> ValidationError:
    return ValidationError(message, code="invalid_value")


def normalize(kind: str | None, is_secret: bool = False) -> tuple[str, bool]:
    """Return the effective ``(kind, is_secret)`` pair; ``secret`` forces secrecy."""
    kind = kind or STRING
    if kind not in KINDS:
        raise _invalid(f"Unknown value kind '{kind}'. Expected one of {sorted(KINDS)}.")
    return kind, is_secret or kind == SECRET


def infer_kind(value: Any) -> str:
    """Pick the kind matching a native (e.g. JSON-decoded) value."""
    if isinstance(value, bool):
        return BOOLEAN
    if isinstance(value, (int, float)):
        return NUMBER
    if isinstance(value, str):
        return STRING
    return JSON


def serialize(value: Any, kind: str) -> str:
    """
    Validate *value* against *kind* and return its storage text.

    Strings are accepted for ``number`` and ``boolean`` when they parse
    cleanly, so text sources (dotenv, form posts) can write typed values.

    Raises:
        ValidationError: If *value* cannot represent *kind*.
    """
    if kind in (STRING, SECRET):
        if not isinstance(value, str):
            raise _invalid(f"A {kind} value must be text; got {type(value).__name__}.")
        return value

    if kind == NUMBER:
        if isinstance(value, str):
            value = _parse_number(value)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise _invalid(f"A number value must be numeric; got {type(value).__name__}.")
        if isinstance(value, float) and not math.isfinite(value):
            raise _invalid("A number value must be finite.")
        return str(value) if isinstance(value, int) else repr(value)

    if kind == BOOLEAN:
        if isinstance(value, str):
            word = value.strip().lower()
            if word in _TRUE_WORDS:
                value = True
            elif word in _FALSE_WORDS:
                value = False
        if not isinstance(value, bool):
            raise _invalid(f"A boolean value must be true or false; got {value!r}.")
        return "true" if value else "false"

    if kind == JSON:
        try:
            return json.dumps(value, separators=(",", ":"), allow_nan=False)
        except (TypeError, ValueError) as exc:
            raise _invalid(f"Value is not JSON-serializable: {exc}.") from exc

    raise _invalid(f"Unknown value kind '{kind}'.")


def deserialize(text: str, kind: str) -> Any:
    """Restore the Python value from its storage text."""
    if kind == NUMBER:
        return _parse_number(text)
    if kind == BOOLEAN:
        return text == "true"
    if kind == JSON:
        return json.loads(text)
    return text


def to_text(value: Any) -> str:
    """Render a resolved value as a single line of text (dotenv, k8s data)."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)) or value is None:
        return json.dumps(value, separators=(",", ":"))
    return str(value)


def _parse_number(text: str) -> int | float:
    text = text.strip()
    try:
        return int(text)
    except ValueError:
        pass
    try:
        number = float(text)
    except ValueError as exc:
        raise _invalid(f"'{text}' is not a number.") from exc
    if not math.isfinite(number):
        raise _invalid("A number value must be finite.")
    return number
