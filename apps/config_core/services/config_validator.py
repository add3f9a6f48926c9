"""
apps.config_core.services.config_validator
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
Validates resolved config values against a schema definition and its
validator rules.

This module is **pure Python**: it performs no ORM queries and can be
exercised with plain dicts and unsaved model instances.

Evaluation order
----------------
1. Per-key checks for every key the schema declares: ``required``, ``type``,
   ``pattern``, ``enum``, ``range``, ``length`` and ``deprecated``.
2. Validator rules in ascending ``priority`` (ties broken by id).

Nothing short-circuits: every violation found is reported.  Deprecation
produces a ``warning`` which does not make the report fail.

Public API
----------
Violation            – one problem found
ValidationReport     – output dataclass
ConfigValidationService.validate(values, schema_definition, validators, ...)
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping

import structlog

logger = structlog.get_logger(__name__)

ERROR = "error"
WARNING = "warning"

#: A custom check receives ``(values, target_key, rule)`` and returns ``None``
#: or ``True`` when satisfied, otherwise ``False`` or a message string.
CustomCheck = Callable[[Mapping[str, Any], str, dict], Any]

_MISSING = object()


@dataclass
class Violation:
    key: str
    rule_kind: str
    message: str
    severity: str = ERROR

    def as_dict(self) -> dict:
        return {
            "key": self.key,
            "rule_kind": self.rule_kind,
            "message": self.message,
            "severity": self.severity,
        }


@dataclass
class ValidationReport:
    """
    Attributes:
        ok: ``True`` iff no violation has severity ``error``.
        violations: Every violation, per-key checks first.
    """

    ok: bool = True
    violations: list[Violation] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {"ok": self.ok, "violations": [v.as_dict() for v in self.violations]}


def _is_numeric(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _type_matches(declared: str, value: Any, is_secret: bool) -> bool:
    if declared == "string":
        return isinstance(value, str)
    if declared == "number":
        return _is_numeric(value)
    if declared == "boolean":
        return isinstance(value, bool)
    if declared == "json":
        return isinstance(value, (dict, list))
    if declared == "secret":
        return is_secret
    return True


class ConfigValidationService:
    """
    Stateless validator for resolved configuration.

    Usage::

        report = ConfigValidationService.validate(
            values={"PORT": 8080, "DATABASE_URL": "postgres://…"},
            schema_definition=schema.definition,
            validators=list_validators(schema.id),
            secret_keys={"DATABASE_URL"},
        )
        if not report.ok:
            ...
    """

    @staticmethod
    def validate(
        values: Mapping[str, Any],
        schema_definition: dict | None,
        validators: Iterable = (),
        *,
        custom_checks: Mapping[str, CustomCheck] | None = None,
        secret_keys: Iterable[str] = (),
    ) -> ValidationReport:
        secret_keys = frozenset(secret_keys)
        violations: list[Violation] = []

        for entry in (schema_definition or {}).get("keys", []):
            ConfigValidationService._check_key(entry, values, secret_keys, violations)

        ordered = sorted(
            (v for v in validators if getattr(v, "is_active", True)),
            key=lambda v: (v.priority, v.pk or 0),
        )
        for validator in ordered:
            ConfigValidationService._apply_validator(
                validator, values, custom_checks or {}, violations
            )

        return ValidationReport(
            ok=not any(v.severity == ERROR for v in violations),
            violations=violations,
        )

    # ------------------------------------------------------------------
    # Per-key checks
    # ------------------------------------------------------------------

    @staticmethod
    def _check_key(
        entry: dict,
        values: Mapping[str, Any],
        secret_keys: frozenset[str],
        violations: list[Violation],
    ) -> None:
        key = entry["key"]
        present = key in values and values[key] is not None
        value = values[key] if present else entry.get("default")

        if not present:
            if entry.get("required") and entry.get("default") is None:
                violations.append(Violation(key, "required", f"'{key}' is required."))
            if value is None:
                return

        if present and entry.get("deprecated"):
            message = entry.get("deprecation_message") or f"'{key}' is deprecated."
            violations.append(Violation(key, "deprecated", message, WARNING))

        declared = entry.get("type", "string")
        if present and not _type_matches(declared, value, key in secret_keys):
            if declared == "secret":
                message = f"'{key}' must be stored as a secret."
            else:
                message = f"'{key}' must be of type {declared}; got {type(value).__name__}."
            violations.append(Violation(key, "type", message))

        if "pattern" in entry and isinstance(value, str):
            if not re.search(entry["pattern"], value):
                violations.append(Violation(
                    key, "pattern", f"'{key}' does not match pattern {entry['pattern']!r}."
                ))

        if "enum" in entry and value not in entry["enum"]:
            violations.append(Violation(
                key, "enum", f"'{key}' must be one of {entry['enum']}."
            ))

        if _is_numeric(value):
            if "min" in entry and value < entry["min"]:
                violations.append(Violation(key, "range", f"'{key}' must be >= {entry['min']}."))
            if "max" in entry and value > entry["max"]:
                violations.append(Violation(key, "range", f"'{key}' must be <= {entry['max']}."))

        if isinstance(value, (str, list)):
            if "min_length" in entry and len(value) < entry["min_length"]:
                violations.append(Violation(
                    key, "length", f"'{key}' must be at least {entry['min_length']} long."
                ))
            if "max_length" in entry and len(value) > entry["max_length"]:
                violations.append(Violation(
                    key, "length", f"'{key}' must be at most {entry['max_length']} long."
                ))

    # ------------------------------------------------------------------
    # Validator rules
    # ------------------------------------------------------------------

    @staticmethod
    def _apply_validator(
        validator,
        values: Mapping[str, Any],
        custom_checks: Mapping[str, CustomCheck],
        violations: list[Violation],
    ) -> None:
        kind = validator.kind
        key = validator.target_key or ""
        rule = validator.rule or {}
        value = values.get(key, _MISSING) if key else _MISSING
        present = value is not _MISSING and value is not None

        def fail(default_message: str) -> None:
            violations.append(Violation(key, kind, validator.error_message or default_message))

        if kind == "pattern":
            if present and isinstance(value, str) and not re.search(rule.get("pattern", ""), value):
                fail(f"'{key}' does not match pattern {rule.get('pattern')!r}.")

        elif kind == "range":
            if present and _is_numeric(value):
                if "min" in rule and value < rule["min"]:
                    fail(f"'{key}' must be >= {rule['min']}.")
                elif "max" in rule and value > rule["max"]:
                    fail(f"'{key}' must be <= {rule['max']}.")

        elif kind == "enum":
            if present and value not in rule.get("values", []):
                fail(f"'{key}' must be one of {rule.get('values', [])}.")

        elif kind == "dependency":
            depends_on = rule.get("depends_on", "")
            trigger = values.get(depends_on)
            triggered = trigger is not None and (
                "depends_on_value" not in rule or trigger == rule["depends_on_value"]
            )
            if triggered and not present:
                message = f"'{key}' is required when '{depends_on}' is set."
                upstream = [v for v in violations if v.key == depends_on and v.severity == ERROR]
                if upstream:
                    message += (
                        f" Note: '{depends_on}' itself has {len(upstream)} violation(s): "
                        + "; ".join(v.message for v in upstream)
                    )
                fail(message)

        elif kind == "custom":
            name = rule.get("check", "")
            check = custom_checks.get(name)
            if check is None:
                fail(f"Unknown custom check '{name}'.")
                return
            try:
                outcome = check(values, key, rule)
            except Exception as exc:
                logger.warning("custom_check_failed", check=name, error=type(exc).__name__)
                fail(f"Custom check '{name}' raised {type(exc).__name__}.")
                return
            if outcome is False:
                fail(f"Custom check '{name}' failed.")
            elif isinstance(outcome, str):
                fail(outcome)

        else:
            fail(f"Unknown validator kind '{kind}'.")
