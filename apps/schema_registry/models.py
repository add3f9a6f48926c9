"""
apps.schema_registry.models
~~~~~~~~~~~~~~~~~~~~~~~~~~~~
Models for the Schema Registry application.

Models
------
ConfigSchema
    Versioned schema document owned by exactly one organisation *or* one
    repository.  A definition change produces a new version row linked to its
    predecessor through ``previous_version``.

ConfigValidator
    Additional rule attached to a schema (pattern, range, enum, dependency,
    custom), evaluated after the per-key checks in ascending ``priority``.
"""
from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import Q

from apps.organizations.models import Organization, Repository


# ---------------------------------------------------------------------------
# ConfigSchema
# ---------------------------------------------------------------------------

class ConfigSchema(models.Model):
    """
    A versioned schema describing the keys a config set may hold.

    ``definition`` has the shape::

        {
            "version": "1.0.0",
            "keys": [
                {"key": "DATABASE_URL", "type": "string", "required": true,
                 "pattern": "^postgres://"},
                {"key": "WORKERS", "type": "number", "min": 1, "max": 64},
            ]
        }

    and is checked by :class:`~apps.schema_registry.validators.SchemaValidator`
    in :meth:`clean` and in the schema services.

    Ownership is exclusive: either ``organization`` or ``repository`` is set,
    never both and never neither.  The invariant is enforced by the
    ``config_schema_single_owner`` check constraint.
    """

    organization = models.ForeignKey(
        Organization,
        on_delete=models.CASCADE,
        related_name="schemas",
        null=True,
        blank=True,
    )
    repository = models.ForeignKey(
        Repository,
        on_delete=models.CASCADE,
        related_name="schemas",
        null=True,
        blank=True,
    )
    name = models.CharField(max_length=255)
    version = models.PositiveIntegerField(default=1)
    definition = models.JSONField(
        help_text="Schema document: {'version': str, 'keys': [...]}.",
    )
    description = models.TextField(blank=True, default="")
    previous_version = models.ForeignKey(
        "self",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="next_versions",
    )
    is_active = models.BooleanField(default=True)
    created_by = models.CharField(max_length=255, blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name", "-version"]
        verbose_name = "Config Schema"
        verbose_name_plural = "Config Schemas"
        constraints = [
            models.CheckConstraint(
                condition=(
                    Q(organization__isnull=False, repository__isnull=True)
                    | Q(organization__isnull=True, repository__isnull=False)
                ),
                name="config_schema_single_owner",
                violation_error_message="A schema belongs to exactly one organisation or repository.",
            ),
            models.UniqueConstraint(
                fields=["organization", "name", "version"],
                condition=Q(organization__isnull=False),
                name="unique_org_schema_version",
            ),
            models.UniqueConstraint(
                fields=["repository", "name", "version"],
                condition=Q(repository__isnull=False),
                name="unique_repo_schema_version",
            ),
        ]

    def __str__(self) -> str:
        owner = self.organization.slug if self.organization_id else str(self.repository)
        return f"{owner}/{self.name}@v{self.version}"

    @property
    def owner_organization_id(self) -> int:
        """Organisation that ultimately owns this schema."""
        if self.organization_id:
            return self.organization_id
        return self.repository.organization_id

    def clean(self) -> None:
        """
        Validate ``definition`` and owner exclusivity for admin/forms.

        Raises:
            django.core.exceptions.ValidationError: On any structural problem.
        """
        # Import here to avoid any risk of circular imports at module load time.
        from apps.schema_registry.validators import (  # noqa: PLC0415
            SchemaValidationError,
            SchemaValidator,
        )

        if bool(self.organization_id) == bool(self.repository_id):
            raise ValidationError("Set exactly one of organization or repository.")

        try:
            SchemaValidator.validate(self.definition)
        except SchemaValidationError as exc:
            raise ValidationError(
                {
                    "definition": [
                        f"{err['field']}: {err['message']}" for err in exc.errors
                    ]
                }
            ) from exc


# ---------------------------------------------------------------------------
# ConfigValidator
# ---------------------------------------------------------------------------

class ConfigValidator(models.Model):
    """
    A rule evaluated against resolved values in addition to the schema's
    per-key checks.

    ``rule`` contents by ``kind``:

    ``pattern``     ``{"pattern": "<regex>"}``
    ``range``       ``{"min": n, "max": n}`` (either bound optional)
    ``enum``        ``{"values": [...]}``
    ``dependency``  ``{"depends_on": "<key>", "depends_on_value": <optional>}``
    ``custom``      ``{"check": "<registered check name>", ...params}``

    ``target_key`` is empty for cross-key custom rules.
    """

    class Kind(models.TextChoices):
        PATTERN = "pattern", "Pattern"
        RANGE = "range", "Range"
        ENUM = "enum", "Enum"
        DEPENDENCY = "dependency", "Dependency"
        CUSTOM = "custom", "Custom"

    schema = models.ForeignKey(
        ConfigSchema,
        on_delete=models.CASCADE,
        related_name="validators",
    )
    target_key = models.CharField(max_length=255, blank=True, default="")
    name = models.CharField(max_length=255)
    kind = models.CharField(max_length=20, choices=Kind.choices)
    rule = models.JSONField(default=dict)
    error_message = models.CharField(max_length=500, blank=True, default="")
    priority = models.IntegerField(default=100)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["priority", "id"]
        verbose_name = "Config Validator"
        verbose_name_plural = "Config Validators"

    def __str__(self) -> str:
        return f"{self.name} ({self.kind} on {self.target_key or '*'})"
