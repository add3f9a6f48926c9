"""
apps.schema_registry.validators
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
Pure-Python structural checker for ConfigSchema definitions.

No Django view, serializer, or model imports are allowed here so that this
module can be used as a standalone utility and tested without Django setup.

Public API:
    SchemaValidationError   – raised when validation finds one or more errors
    SchemaValidator.validate(definition) – validates the full definition dict
    KEY_TYPES               – the value types a key may declare
"""
import re


# ---------------------------------------------------------------------------
# Exception
# ---------------------------------------------------------------------------

class SchemaValidationError(Exception):
    """
    Raised by :meth:`SchemaValidator.validate` when a schema definition has
    one or more structural errors.

    All errors are collected before this exception is raised so callers
    receive a complete picture of every problem at once.

    Attributes:
        errors (list[dict]): Non-empty list of error dicts, each with the
            shape ``{"field": "<dot-separated path>", "message": "<reason>"}``.
    """

    def __init__(self, errors: list[dict]) -> None:
        self.errors: list[dict] = errors
        super().__init__(str(errors))


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

#: Mapping from the declared key type to the Python type(s) a ``default``
#: must be an instance of.  ``secret`` defaults are plain strings.
_TYPE_CHECKERS: dict[str, type | tuple[type, ...]] = {
    "string": str,
    "number": (int, float),  # NOTE: bool is a subclass of int; handled specially below
    "boolean": bool,
    "json": (dict, list),
    "secret": str,
}

#: Complete set of valid key type names.
KEY_TYPES: frozenset[str] = frozenset(_TYPE_CHECKERS)

#: Every attribute a key entry may carry.
_VALID_KEY_ATTRS: frozenset[str] = frozenset({
    "key", "type", "required", "default", "description", "pattern", "enum",
    "min", "max", "min_length", "max_length", "deprecated", "deprecation_message",
})


def _is_numeric(value: object) -> bool:
    """Return True if *value* is an :class:`int` (but not :class:`bool`) or a
    :class:`float`."""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_length(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


# ---------------------------------------------------------------------------
# Validator
# ---------------------------------------------------------------------------

class SchemaValidator:
    """
    Stateless validator for the schema ``definition`` contract used by
    :class:`~apps.schema_registry.models.ConfigSchema`.

    Usage::

        SchemaValidator.validate({"version": "1.0.0", "keys": [ ... ]})
        # Raises SchemaValidationError if any rule is violated.
    """

    @staticmethod
    def validate(definition: dict) -> None:
        """
        Validate *definition*, accumulating every error found.

        Raises:
            SchemaValidationError: If one or more rules are violated.
        """
        errors: list[dict] = []

        if not isinstance(definition, dict):
            raise SchemaValidationError([{
                "field": "definition",
                "message": "Schema definition must be an object.",
            }])

        if "version" in definition and not isinstance(definition["version"], str):
            errors.append({
                "field": "version",
                "message": '"version" must be a string.',
            })

        keys = definition.get("keys")
        if not isinstance(keys, list):
            errors.append({
                "field": "keys",
                "message": '"keys" is required and must be a list.',
            })
            raise SchemaValidationError(errors)

        seen: set[str] = set()
        for index, entry in enumerate(keys):
            path = f"keys[{index}]"
            if not isinstance(entry, dict):
                errors.append({"field": path, "message": "Key definition must be an object."})
                continue

            name = entry.get("key")
            if not isinstance(name, str) or not name:
                errors.append({"field": f"{path}.key", "message": '"key" must be a non-empty string.'})
            elif name in seen:
                errors.append({"field": f"{path}.key", "message": f'Duplicate key "{name}".'})
            else:
                seen.add(name)
                path = f"keys.{name}"

            SchemaValidator._validate_key(path, entry, errors)

        if errors:
            raise SchemaValidationError(errors)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _validate_key(path: str, entry: dict, errors: list[dict]) -> None:
        """Check one key entry, appending any problems to *errors*."""
        unknown = set(entry) - _VALID_KEY_ATTRS
        if unknown:
            errors.append({
                "field": path,
                "message": f"Unknown attribute(s): {sorted(unknown)}.",
            })

        declared_type = entry.get("type", "string")
        type_valid = declared_type in KEY_TYPES
        if not type_valid:
            errors.append({
                "field": f"{path}.type",
                "message": (
                    f'"type" must be one of {sorted(KEY_TYPES)}; got "{declared_type}".'
                ),
            })

        for flag in ("required", "deprecated"):
            if flag in entry and not isinstance(entry[flag], bool):
                errors.append({"field": f"{path}.{flag}", "message": f'"{flag}" must be a boolean.'})

        if "pattern" in entry:
            pattern = entry["pattern"]
            if not isinstance(pattern, str):
                errors.append({"field": f"{path}.pattern", "message": '"pattern" must be a string.'})
            else:
                try:
                    re.compile(pattern)
                except re.error as exc:
                    errors.append({
                        "field": f"{path}.pattern",
                        "message": f"Invalid regular expression: {exc}.",
                    })

        if "enum" in entry:
            enum = entry["enum"]
            if not isinstance(enum, list) or len(enum) == 0:
                errors.append({"field": f"{path}.enum", "message": '"enum" must be a non-empty list.'})

        min_val = entry.get("min")
        max_val = entry.get("max")
        if "min" in entry and not _is_numeric(min_val):
            errors.append({
                "field": f"{path}.min",
                "message": '"min" must be a numeric value (int or float, not bool).',
            })
            min_val = None
        if "max" in entry and not _is_numeric(max_val):
            errors.append({
                "field": f"{path}.max",
                "message": '"max" must be a numeric value (int or float, not bool).',
            })
            max_val = None
        if min_val is not None and max_val is not None and min_val > max_val:
            errors.append({
                "field": path,
                "message": f'"min" ({min_val}) must be <= "max" ({max_val}).',
            })

        min_len = entry.get("min_length")
        max_len = entry.get("max_length")
        if "min_length" in entry and not _is_length(min_len):
            errors.append({"field": f"{path}.min_length", "message": '"min_length" must be a non-negative integer.'})
            min_len = None
        if "max_length" in entry and not _is_length(max_len):
            errors.append({"field": f"{path}.max_length", "message": '"max_length" must be a non-negative integer.'})
            max_len = None
        if min_len is not None and max_len is not None and min_len > max_len:
            errors.append({
                "field": path,
                "message": f'"min_length" ({min_len}) must be <= "max_length" ({max_len}).',
            })

        if type_valid and entry.get("default") is not None:
            SchemaValidator._validate_default(path, declared_type, entry["default"], errors)

    @staticmethod
    def _validate_default(
        path: str,
        declared_type: str,
        default_value: object,
        errors: list[dict],
    ) -> None:
        """
        Check that *default_value* matches *declared_type*.

        ``"number"`` rejects :class:`bool` values because ``bool`` is a
        subclass of :class:`int` in Python.
        """
        if declared_type == "number" and isinstance(default_value, bool):
            errors.append({
                "field": f"{path}.default",
                "message": '"default" must be a number (not bool) for type "number".',
            })
            return

        if not isinstance(default_value, _TYPE_CHECKERS[declared_type]):
            errors.append({
                "field": f"{path}.default",
                "message": (
                    f'"default" must be of type {declared_type}; '
                    f"got {type(default_value).__name__}."
                ),
            })
