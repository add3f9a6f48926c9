"""
apps.schema_registry.services
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
Business logic for ConfigSchema and ConfigValidator management.
"""
from __future__ import annotations

import re

import structlog
from django.db import IntegrityError, transaction

from common.exceptions import ConflictError, NotFoundError, ValidationError
from apps.organizations.services import get_organization, get_repository
from .models import ConfigSchema, ConfigValidator
from .validators import SchemaValidationError, SchemaValidator

logger = structlog.get_logger(__name__)


def _check_definition(definition: dict) -> None:
    try:
        SchemaValidator.validate(definition)
    except SchemaValidationError as exc:
        raise ValidationError(
            "Schema definition is invalid.",
            code="invalid_schema",
            errors=exc.errors,
        ) from exc


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------

def list_schemas(
    *,
    org_id: str | None = None,
    repo_id: str | None = None,
    is_active: bool | None = None,
) -> list[ConfigSchema]:
    """Return schemas, optionally filtered by owner and/or active status."""
    qs = ConfigSchema.objects.select_related("organization", "repository").all()
    if org_id:
        qs = qs.filter(organization_id=org_id)
    if repo_id:
        qs = qs.filter(repository_id=repo_id)
    if is_active is not None:
        qs = qs.filter(is_active=is_active)
    return list(qs)


def get_schema(schema_id: str | int) -> ConfigSchema:
    """Fetch a single ConfigSchema by ID, raise NotFoundError if missing."""
    try:
        return ConfigSchema.objects.select_related(
            "organization", "repository__organization"
        ).get(pk=schema_id)
    except (ConfigSchema.DoesNotExist, ValueError):
        raise NotFoundError(f"ConfigSchema '{schema_id}' not found.")


def create_schema(
    *,
    name: str,
    definition: dict,
    org_id: str | int | None = None,
    repo_id: str | int | None = None,
    description: str = "",
    created_by: str = "",
) -> ConfigSchema:
    """
    Create version 1 of a schema owned by an organisation or a repository.

    Raises:
        ValidationError: If both or neither owner is given, or the definition
            is structurally invalid.
        ConflictError: If the owner already has a schema with that name.
    """
    if bool(org_id) == bool(repo_id):
        raise ValidationError(
            "A schema must belong to exactly one organisation or repository.",
            code="invalid_owner",
        )
    _check_definition(definition)

    owner = {"organization": get_organization(org_id)} if org_id else {"repository": get_repository(repo_id)}
    try:
        schema = ConfigSchema.objects.create(
            name=name,
            version=1,
            definition=definition,
            description=description,
            created_by=created_by,
            **owner,
        )
    except IntegrityError as exc:
        raise ConflictError(f"Schema '{name}' already exists for this owner.") from exc

    logger.info("schema_created", schema_id=str(schema.id), name=name, version=schema.version)
    return schema


def update_schema(schema_id: str | int, *, data: dict, actor: str = "") -> ConfigSchema:
    """
    Update a schema.

    ``description`` and ``is_active`` change in place.  A new ``definition``
    creates the next version row, copies the validators across, re-points
    every config set that used the old version and deactivates it.  The
    returned schema is the one now in effect.
    """
    schema = get_schema(schema_id)

    definition = data.get("definition")
    if definition is not None and definition != schema.definition:
        _check_definition(definition)
        schema = _create_next_version(schema, definition, data, actor)
    else:
        updatable_fields = {"description", "is_active"}
        changed = [f for f in data if f in updatable_fields]
        for field in changed:
            setattr(schema, field, data[field])
        if changed:
            schema.save(update_fields=[*changed, "updated_at"])
        logger.info("schema_updated", schema_id=str(schema.id))
    return schema


def _create_next_version(
    schema: ConfigSchema,
    definition: dict,
    data: dict,
    actor: str,
) -> ConfigSchema:
    from apps.config_core.models import ConfigSet  # noqa: PLC0415

    with transaction.atomic():
        current = ConfigSchema.objects.select_for_update().get(pk=schema.pk)
        latest = (
            ConfigSchema.objects
            .filter(
                organization_id=current.organization_id,
                repository_id=current.repository_id,
                name=current.name,
            )
            .order_by("-version")
            .first()
        )
        new_schema = ConfigSchema.objects.create(
            organization_id=current.organization_id,
            repository_id=current.repository_id,
            name=current.name,
            version=latest.version + 1,
            definition=definition,
            description=data.get("description", current.description),
            previous_version=current,
            is_active=data.get("is_active", True),
            created_by=actor,
        )
        ConfigValidator.objects.bulk_create([
            ConfigValidator(
                schema=new_schema,
                target_key=v.target_key,
                name=v.name,
                kind=v.kind,
                rule=v.rule,
                error_message=v.error_message,
                priority=v.priority,
                is_active=v.is_active,
            )
            for v in current.validators.all()
        ])
        repointed = ConfigSet.objects.filter(schema=current).update(schema=new_schema)
        current.is_active = False
        current.save(update_fields=["is_active", "updated_at"])

    logger.info(
        "schema_version_created",
        schema_id=str(new_schema.id),
        previous_schema_id=str(current.id),
        version=new_schema.version,
        sets_repointed=repointed,
    )
    return new_schema


def delete_schema(schema_id: str | int) -> None:
    """Soft-delete a schema."""
    schema = get_schema(schema_id)
    schema.is_active = False
    schema.save(update_fields=["is_active", "updated_at"])
    logger.info("schema_deactivated", schema_id=str(schema.id))


# ---------------------------------------------------------------------------
# Validators
# ---------------------------------------------------------------------------

def _check_rule(kind: str, target_key: str, rule: dict) -> list[dict]:
    errors: list[dict] = []
    if not isinstance(rule, dict):
        return [{"field": "rule", "message": "Rule must be an object."}]

    if kind != ConfigValidator.Kind.CUSTOM and not target_key:
        errors.append({"field": "target_key", "message": f'"{kind}" validators need a target key.'})

    if kind == ConfigValidator.Kind.PATTERN:
        try:
            re.compile(rule.get("pattern") or "")
        except (re.error, TypeError):
            errors.append({"field": "rule.pattern", "message": "Invalid regular expression."})
        if not rule.get("pattern"):
            errors.append({"field": "rule.pattern", "message": '"pattern" is required.'})
    elif kind == ConfigValidator.Kind.RANGE:
        if "min" not in rule and "max" not in rule:
            errors.append({"field": "rule", "message": 'A range needs "min" and/or "max".'})
    elif kind == ConfigValidator.Kind.ENUM:
        if not isinstance(rule.get("values"), list) or not rule["values"]:
            errors.append({"field": "rule.values", "message": '"values" must be a non-empty list.'})
    elif kind == ConfigValidator.Kind.DEPENDENCY:
        if not isinstance(rule.get("depends_on"), str) or not rule["depends_on"]:
            errors.append({"field": "rule.depends_on", "message": '"depends_on" is required.'})
    elif kind == ConfigValidator.Kind.CUSTOM:
        if not isinstance(rule.get("check"), str) or not rule["check"]:
            errors.append({"field": "rule.check", "message": '"check" must name a registered check.'})
    else:
        errors.append({"field": "kind", "message": f'Unknown validator kind "{kind}".'})
    return errors


def create_validator(
    *,
    schema_id: str | int,
    name: str,
    kind: str,
    rule: dict,
    target_key: str = "",
    priority: int = 100,
    error_message: str = "",
) -> ConfigValidator:
    """Attach a validator rule to a schema."""
    schema = get_schema(schema_id)
    errors = _check_rule(kind, target_key, rule)
    if errors:
        raise ValidationError("Validator rule is invalid.", code="invalid_validator", errors=errors)

    validator = ConfigValidator.objects.create(
        schema=schema,
        name=name,
        kind=kind,
        rule=rule,
        target_key=target_key,
        priority=priority,
        error_message=error_message,
    )
    logger.info(
        "validator_created",
        validator_id=str(validator.id),
        schema_id=str(schema.id),
        kind=kind,
    )
    return validator


def list_validators(schema_id: str | int, *, active_only: bool = True) -> list[ConfigValidator]:
    """Validators of a schema in evaluation order (priority, then id)."""
    qs = ConfigValidator.objects.filter(schema_id=schema_id)
    if active_only:
        qs = qs.filter(is_active=True)
    return list(qs.order_by("priority", "id"))
