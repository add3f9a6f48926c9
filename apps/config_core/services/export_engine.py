"""
apps.config_core.services.export_engine
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
Renders resolved config sets into deployment formats and imports values
from text documents.

Export formats
--------------
``dotenv``         ``KEY=value`` lines (aliases ``env``, ``line-text``)
``json``           flat object with native JSON types (alias ``flat-document``)
``yaml``           flat mapping
``k8s_configmap``  Kubernetes ConfigMap manifest (YAML)
``k8s_secret``     Kubernetes Secret manifest, base64 ``data`` (YAML)
``terraform``      one ``variable`` block per key

Import accepts ``dotenv`` and ``json`` only.  Every entry becomes an
independent put, so one bad line never blocks the rest.
"""
from __future__ import annotations

import base64
import json
import re
import zoneinfo
from dataclasses import dataclass, field
from typing import Any

import structlog
import yaml
from django.db.models import F
from django.utils import timezone
from django.utils.text import slugify

from common.audit import audited
from common.exceptions import AppError, ConflictError, NotFoundError, ValidationError
from apps.config_core.models import ConfigExport, ExportFormat, KeyTransform
from . import value_kinds
from .config_resolver import ResolvedValue
from .config_sets import get_set
from .value_store import KEY_PATTERN

logger = structlog.get_logger(__name__)

FORMAT_ALIASES: dict[str, str] = {
    "env": ExportFormat.DOTENV,
    "line-text": ExportFormat.DOTENV,
    "flat-document": ExportFormat.JSON,
}

IMPORT_FORMATS = frozenset({ExportFormat.DOTENV, ExportFormat.JSON})

CONTENT_TYPES: dict[str, str] = {
    ExportFormat.DOTENV: "text/plain; charset=utf-8",
    ExportFormat.JSON: "application/json",
    ExportFormat.YAML: "application/yaml",
    ExportFormat.K8S_CONFIGMAP: "application/yaml",
    ExportFormat.K8S_SECRET: "application/yaml",
    ExportFormat.TERRAFORM: "text/plain; charset=utf-8",
}

_DOTENV_SAFE = re.compile(r"^[A-Za-z0-9_./:@%+,=\-]*$")
_CRON_FIELD = re.compile(r"^[\d*/,\-A-Za-z?]+$")


def normalize_format(fmt: str) -> str:
    """Map aliases onto canonical format names; reject unknown formats."""
    fmt = FORMAT_ALIASES.get(fmt, fmt)
    if fmt not in ExportFormat.values:
        raise ValidationError(
            f"Unsupported format '{fmt}'. Expected one of {sorted(ExportFormat.values)}.",
            code="unsupported_format",
        )
    return fmt


def transform_key(key: str, transform: str) -> str:
    if transform == KeyTransform.UPPERCASE:
        return key.upper()
    if transform == KeyTransform.LOWERCASE:
        return key.lower()
    if transform == KeyTransform.SNAKE_CASE:
        key = re.sub(r"(?<=[a-z0-9])(?=[A-Z])", "_", key)
        return re.sub(r"[^A-Za-z0-9]+", "_", key).lower()
    if transform == KeyTransform.CAMEL_CASE:
        parts = [p for p in re.split(r"[^A-Za-z0-9]+", key) if p]
        if not parts:
            return key
        return parts[0].lower() + "".join(p[:1].upper() + p[1:].lower() for p in parts[1:])
    if transform in ("", None, KeyTransform.NONE):
        return key
    raise ValidationError(f"Unknown key transform '{transform}'.", code="invalid_transform")


# ---------------------------------------------------------------------------
# Renderers
# ---------------------------------------------------------------------------

def _dotenv_value(value: Any) -> str:
    text = value_kinds.to_text(value)
    if _DOTENV_SAFE.match(text):
        return text
    escaped = text.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n").replace("\r", "\\r")
    return f'"{escaped}"'


def _render_dotenv(values: dict[str, ResolvedValue], name: str) -> str:
    return "".join(f"{key}={_dotenv_value(rv.value)}\n" for key, rv in values.items())


def _render_json(values: dict[str, ResolvedValue], name: str) -> str:
    return json.dumps({key: rv.value for key, rv in values.items()}, indent=2) + "\n"


def _render_yaml(values: dict[str, ResolvedValue], name: str) -> str:
    return yaml.safe_dump(
        {key: rv.value for key, rv in values.items()},
        sort_keys=False,
        default_flow_style=False,
        allow_unicode=True,
    )


def _render_configmap(values: dict[str, ResolvedValue], name: str) -> str:
    manifest = {
        "apiVersion": "v1",
        "kind": "ConfigMap",
        "metadata": {"name": name},
        "data": {key: value_kinds.to_text(rv.value) for key, rv in values.items()},
    }
    return yaml.safe_dump(manifest, sort_keys=False, default_flow_style=False)


def _render_secret(values: dict[str, ResolvedValue], name: str) -> str:
    manifest = {
        "apiVersion": "v1",
        "kind": "Secret",
        "metadata": {"name": name},
        "type": "Opaque",
        "data": {
            key: base64.b64encode(value_kinds.to_text(rv.value).encode("utf-8")).decode("ascii")
            for key, rv in values.items()
        },
    }
    return yaml.safe_dump(manifest, sort_keys=False, default_flow_style=False)


def _render_terraform(values: dict[str, ResolvedValue], name: str) -> str:
    blocks = []
    for key, rv in values.items():
        var_name = re.sub(r"[^A-Za-z0-9_\-]", "_", key)
        if var_name[:1].isdigit():
            var_name = f"_{var_name}"
        lines = [f'variable "{var_name}" {{', f"  default = {json.dumps(rv.value)}"]
        if rv.is_secret:
            lines.append("  sensitive = true")
        lines.append("}")
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks) + ("\n" if blocks else "")


_RENDERERS = {
    ExportFormat.DOTENV: _render_dotenv,
    ExportFormat.JSON: _render_json,
    ExportFormat.YAML: _render_yaml,
    ExportFormat.K8S_CONFIGMAP: _render_configmap,
    ExportFormat.K8S_SECRET: _render_secret,
    ExportFormat.TERRAFORM: _render_terraform,
}


# ---------------------------------------------------------------------------
# Parsers
# ---------------------------------------------------------------------------

@dataclass
class ImportResult:
    imported: int = 0
    skipped: int = 0
    errors: list[dict] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {"imported": self.imported, "skipped": self.skipped, "errors": self.errors}


def _unquote(raw: str, line_no: int) -> str:
    quote = raw[0]
    body = []
    index = 1
    while index < len(raw):
        char = raw[index]
        if quote == '"' and char == "\\" and index + 1 < len(raw):
            nxt = raw[index + 1]
            body.append({"n": "\n", "r": "\r", "t": "\t", '"': '"', "\\": "\\"}.get(nxt, "\\" + nxt))
            index += 2
            continue
        if char == quote:
            rest = raw[index + 1:].strip()
            if rest and not rest.startswith("#"):
                raise ValueError(f"unexpected text after closing quote on line {line_no}")
            return "".join(body)
        body.append(char)
        index += 1
    raise ValueError(f"unterminated quoted value on line {line_no}")


def parse_dotenv(content: str) -> tuple[list[tuple[int, str, str]], list[dict]]:
    """Return ``(entries, errors)``; entries are ``(line_no, key, value)``."""
    entries, errors = [], []
    # Only "\n" ends a line; CRLF leaves a "\r" that strip() removes.
    for line_no, line in enumerate(content.split("\n"), start=1):
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        if stripped.startswith("export "):
            stripped = stripped[len("export "):].lstrip()
        key, sep, raw = stripped.partition("=")
        key = key.strip()
        if not sep:
            errors.append({"line": line_no, "error": "expected KEY=value"})
            continue
        if not KEY_PATTERN.match(key):
            errors.append({"line": line_no, "key": key, "error": f"invalid key '{key}'"})
            continue
        raw = raw.strip()
        try:
            if raw[:1] in ('"', "'"):
                value = _unquote(raw, line_no)
            else:
                value = raw.split(" #", 1)[0].rstrip()
        except ValueError as exc:
            errors.append({"line": line_no, "key": key, "error": str(exc)})
            continue
        entries.append((line_no, key, value))
    return entries, errors


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class ExportEngine:
    """Export and import on top of a resolver and a value store."""

    def __init__(self, resolver, values) -> None:
        self.resolver = resolver
        self.values = values

    def export(
        self,
        set_id: str | int,
        fmt: str = ExportFormat.DOTENV,
        *,
        include_secrets: bool = False,
        key_prefix: str = "",
        key_transform: str = KeyTransform.NONE,
    ) -> tuple[str, str]:
        """
        Render the resolved set; returns ``(content, content_type)``.

        Keys are transformed first, then prefixed, then emitted in key order.
        Secrets are omitted unless *include_secrets*, in which case their
        real values are written.
        """
        fmt = normalize_format(fmt)
        resolved = self.resolver.resolve(
            set_id, include_secrets=include_secrets, mask_secrets=False
        )

        output: dict[str, ResolvedValue] = {}
        for key in sorted(resolved.values):
            out_key = f"{key_prefix or ''}{transform_key(key, key_transform)}"
            if out_key in output:
                raise ValidationError(
                    f"Keys collide as '{out_key}' after the key transform.",
                    code="key_collision",
                )
            output[out_key] = resolved.values[key]

        name = slugify(f"{resolved.set_name}-{resolved.environment}".strip("-")) or f"set-{resolved.set_id}"
        content = _RENDERERS[fmt](output, name)
        logger.info(
            "config_set_exported",
            set_id=str(resolved.set_id),
            format=fmt,
            key_count=len(output),
            include_secrets=include_secrets,
        )
        return content, CONTENT_TYPES[fmt]

    def import_content(
        self,
        set_id: str | int,
        content: str,
        fmt: str,
        *,
        actor: str = "",
        secret_keys: Any = (),
        request_meta: dict | None = None,
    ) -> ImportResult:
        """
        Parse *content* and put every entry.  Parse failures and rejected
        puts land in ``errors``; JSON ``null`` values are skipped.
        """
        fmt = normalize_format(fmt)
        if fmt not in IMPORT_FORMATS:
            raise ValidationError(
                f"Import supports {sorted(IMPORT_FORMATS)} only.",
                code="unsupported_format",
            )
        secret_keys = set(secret_keys or ())
        result = ImportResult()

        with audited(
            "config_set.import",
            actor=actor,
            resource_type="config_set",
            resource_id=set_id,
            format=fmt,
        ) as event:
            get_set(set_id)
            if fmt == ExportFormat.DOTENV:
                entries = self._dotenv_entries(content, secret_keys, result)
            else:
                entries = self._json_entries(content, secret_keys, result)

            bulk = self.values.bulk_put(
                set_id,
                entries,
                actor=actor,
                reason=f"import ({fmt})",
                request_meta=request_meta,
            )
            result.imported = len(bulk.succeeded)
            result.errors.extend(bulk.failed)
            event.update(imported=result.imported, skipped=result.skipped, errors=len(result.errors))

        return result

    @staticmethod
    def _dotenv_entries(content: str, secret_keys: set, result: ImportResult) -> list[dict]:
        parsed, errors = parse_dotenv(content)
        result.errors.extend(errors)
        return [
            {
                "key": key,
                "value": value,
                "kind": value_kinds.SECRET if key in secret_keys else value_kinds.STRING,
                "is_secret": key in secret_keys,
            }
            for _, key, value in parsed
        ]

    @staticmethod
    def _json_entries(content: str, secret_keys: set, result: ImportResult) -> list[dict]:
        try:
            document = json.loads(content)
        except json.JSONDecodeError as exc:
            result.errors.append({"line": exc.lineno, "error": f"invalid JSON: {exc.msg}"})
            return []
        if not isinstance(document, dict):
            result.errors.append({"error": "JSON import expects a top-level object."})
            return []

        entries = []
        for key, value in document.items():
            if value is None:
                result.skipped += 1
                continue
            if not KEY_PATTERN.match(key):
                result.errors.append({"key": key, "error": f"invalid key '{key}'"})
                continue
            kind = value_kinds.infer_kind(value)
            if key in secret_keys and kind == value_kinds.STRING:
                kind = value_kinds.SECRET
            entries.append({"key": key, "value": value, "kind": kind, "is_secret": key in secret_keys})
        return entries


# ---------------------------------------------------------------------------
# Export specifications
# ---------------------------------------------------------------------------

def _check_spec_fields(data: dict) -> None:
    if "format" in data:
        data["format"] = normalize_format(data["format"])
    if "key_transform" in data:
        transform_key("sample", data["key_transform"])
    cron = data.get("cron_schedule")
    if cron and (len(cron.split()) != 5 or not all(_CRON_FIELD.match(p) for p in cron.split())):
        raise ValidationError(f"Invalid cron schedule '{cron}'.", code="invalid_cron")
    tz = data.get("timezone")
    if tz:
        try:
            zoneinfo.ZoneInfo(tz)
        except (zoneinfo.ZoneInfoNotFoundError, ValueError) as exc:
            raise ValidationError(f"Unknown timezone '{tz}'.", code="invalid_timezone") from exc


_SPEC_FIELDS = (
    "name", "format", "destination", "cron_schedule", "timezone",
    "include_secrets", "key_prefix", "key_transform", "is_active",
)


def create_export_spec(*, set_id: str | int, name: str, format: str, actor: str = "", **fields) -> ConfigExport:
    config_set = get_set(set_id)
    data = {"name": name, "format": format, **{k: v for k, v in fields.items() if k in _SPEC_FIELDS}}
    _check_spec_fields(data)
    if ConfigExport.objects.filter(config_set=config_set, name=name).exists():
        raise ConflictError(f"Export '{name}' already exists for this set.")
    spec = ConfigExport.objects.create(config_set=config_set, created_by=actor, **data)
    logger.info("export_spec_created", export_id=str(spec.id), set_id=str(config_set.id), format=spec.format)
    return spec


def get_export_spec(export_id: str | int) -> ConfigExport:
    try:
        return ConfigExport.objects.select_related("config_set").get(pk=export_id)
    except (ConfigExport.DoesNotExist, ValueError):
        raise NotFoundError(f"Export '{export_id}' not found.")


def list_export_specs(set_id: str | int) -> list[ConfigExport]:
    return list(ConfigExport.objects.filter(config_set_id=set_id))


def update_export_spec(export_id: str | int, *, data: dict) -> ConfigExport:
    spec = get_export_spec(export_id)
    data = {k: v for k, v in data.items() if k in _SPEC_FIELDS}
    _check_spec_fields(data)
    for field_name, value in data.items():
        setattr(spec, field_name, value)
    if data:
        spec.save(update_fields=[*data, "updated_at"])
    logger.info("export_spec_updated", export_id=str(spec.id), fields=sorted(data))
    return spec


def run_export_spec(engine: ExportEngine, export_id: str | int) -> tuple[str, str]:
    """Render an export specification now and record the outcome on it."""
    spec = get_export_spec(export_id)
    try:
        content, content_type = engine.export(
            spec.config_set_id,
            spec.format,
            include_secrets=spec.include_secrets,
            key_prefix=spec.key_prefix,
            key_transform=spec.key_transform,
        )
    except AppError as exc:
        ConfigExport.objects.filter(pk=spec.pk).update(
            last_export_at=timezone.now(),
            last_export_status=ConfigExport.Status.ERROR,
            last_export_error=(exc.default_detail if exc.is_internal else exc.detail)[:500],
        )
        logger.warning("export_spec_failed", export_id=str(spec.id), code=exc.code)
        raise

    ConfigExport.objects.filter(pk=spec.pk).update(
        last_export_at=timezone.now(),
        last_export_status=ConfigExport.Status.SUCCESS,
        last_export_error="",
        export_count=F("export_count") + 1,
    )
    logger.info("export_spec_run", export_id=str(spec.id), format=spec.format)
    return content, content_type
