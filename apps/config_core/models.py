"""
apps.config_core.models
~~~~~~~~~~~~~~~~~~~~~~~~
Storage backends, config sets and their encrypted, versioned values.

Models
------
ConfigStore
    An organisation's storage backend (built-in or an external secret
    manager) with encrypted credentials.
ConfigSet
    A named collection of key/value pairs with an optional parent, resolved
    root → leaf with the leaf winning.
ConfigValue
    One encrypted value of a set.  ``(config_set, key)`` is unique.
ConfigValueHistory
    Append-only change log.  Not FK-linked to the live value row so history
    survives deletes.
ConfigExport
    A stored export specification (format, destination, schedule).
"""
from django.db import models
from django.db.models import Q

from apps.organizations.models import Organization, Repository
from apps.schema_registry.models import ConfigSchema


# ---------------------------------------------------------------------------
# ConfigStore
# ---------------------------------------------------------------------------

class ConfigStore(models.Model):
    """
    Storage backend owned by an organisation.

    ``credentials_ciphertext`` / ``credentials_nonce`` hold the backend
    credentials as an encrypted JSON object (for Vault: ``address``, ``token``,
    ``mount`` and optional ``namespace``; for AWS SSM: ``region`` and optional
    access keys).  They are never serialized.
    """

    class StoreType(models.TextChoices):
        BUILTIN = "builtin", "Built-in"
        HASHICORP_VAULT = "hashicorp_vault", "HashiCorp Vault"
        AWS_SSM = "aws_ssm", "AWS SSM Parameter Store"

    organization = models.ForeignKey(
        Organization,
        on_delete=models.CASCADE,
        related_name="config_stores",
    )
    name = models.CharField(max_length=255)
    store_type = models.CharField(
        max_length=32,
        choices=StoreType.choices,
        default=StoreType.BUILTIN,
    )
    credentials_ciphertext = models.TextField(blank=True, default="")
    credentials_nonce = models.CharField(max_length=64, blank=True, default="")
    settings = models.JSONField(
        default=dict,
        blank=True,
        help_text="Non-secret backend options, e.g. {'path_prefix': 'apps/'}.",
    )
    is_default = models.BooleanField(default=False)
    is_active = models.BooleanField(default=True)
    last_tested_at = models.DateTimeField(null=True, blank=True)
    last_test_ok = models.BooleanField(null=True, blank=True)
    last_test_error = models.CharField(max_length=500, blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["organization", "name"]
        unique_together = [("organization", "name")]
        verbose_name = "Config Store"
        verbose_name_plural = "Config Stores"
        constraints = [
            models.UniqueConstraint(
                fields=["organization"],
                condition=Q(is_default=True),
                name="unique_default_store_per_org",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.organization.slug}/{self.name} [{self.store_type}]"

    @property
    def is_external(self) -> bool:
        return self.store_type != self.StoreType.BUILTIN


# ---------------------------------------------------------------------------
# ConfigSet
# ---------------------------------------------------------------------------

class ConfigSet(models.Model):
    """
    A named configuration collection.

    ``scope`` decides the owner: repository-scoped sets reference a
    repository, organisation-scoped sets an organisation, and environment
    sets may reference either (or only their store's organisation).
    ``hierarchy_rank`` is the depth of the set in its parent chain (root = 0)
    and is recomputed for the whole subtree on every parent change.
    """

    class Scope(models.TextChoices):
        REPOSITORY = "repository", "Repository"
        ORGANIZATION = "organization", "Organization"
        ENVIRONMENT = "environment", "Environment"

    store = models.ForeignKey(
        ConfigStore,
        on_delete=models.PROTECT,
        related_name="config_sets",
    )
    schema = models.ForeignKey(
        ConfigSchema,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="config_sets",
    )
    scope = models.CharField(max_length=20, choices=Scope.choices)
    organization = models.ForeignKey(
        Organization,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="config_sets",
    )
    repository = models.ForeignKey(
        Repository,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="config_sets",
    )
    name = models.CharField(max_length=255)
    environment = models.CharField(max_length=100, blank=True, default="")
    description = models.TextField(blank=True, default="")
    parent = models.ForeignKey(
        "self",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="children",
    )
    hierarchy_rank = models.PositiveIntegerField(default=0)
    is_active = models.BooleanField(default=True)
    is_locked = models.BooleanField(default=False)
    locked_by = models.CharField(max_length=255, blank=True, default="")
    locked_at = models.DateTimeField(null=True, blank=True)
    lock_reason = models.CharField(max_length=500, blank=True, default="")
    created_by = models.CharField(max_length=255, blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["store", "hierarchy_rank", "name"]
        unique_together = [("store", "name", "environment")]
        verbose_name = "Config Set"
        verbose_name_plural = "Config Sets"
        constraints = [
            models.CheckConstraint(
                condition=(
                    Q(scope="environment")
                    | Q(scope="repository", repository__isnull=False, organization__isnull=True)
                    | Q(scope="organization", organization__isnull=False, repository__isnull=True)
                ),
                name="config_set_owner_matches_scope",
                violation_error_message="Repository and organisation sets have exactly one matching owner.",
            ),
        ]

    def __str__(self) -> str:
        env = f" [{self.environment}]" if self.environment else ""
        return f"#{self.id} {self.name}{env}"


# ---------------------------------------------------------------------------
# ConfigValue
# ---------------------------------------------------------------------------

class ValueKind(models.TextChoices):
    STRING = "string", "String"
    NUMBER = "number", "Number"
    BOOLEAN = "boolean", "Boolean"
    JSON = "json", "JSON"
    SECRET = "secret", "Secret"


class ConfigValue(models.Model):
    """
    A single encrypted key/value pair.  Plaintext is never stored; the
    serialized value is AES-256-GCM encrypted under the set's derived key.
    """

    config_set = models.ForeignKey(
        ConfigSet,
        on_delete=models.CASCADE,
        related_name="values",
    )
    key = models.CharField(max_length=255)
    kind = models.CharField(max_length=10, choices=ValueKind.choices, default=ValueKind.STRING)
    ciphertext = models.TextField()
    nonce = models.CharField(max_length=32)
    is_secret = models.BooleanField(default=False)
    version = models.PositiveIntegerField(default=1)
    description = models.TextField(blank=True, default="")
    created_by = models.CharField(max_length=255, blank=True, default="")
    updated_by = models.CharField(max_length=255, blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["config_set", "key"]
        unique_together = [("config_set", "key")]
        verbose_name = "Config Value"
        verbose_name_plural = "Config Values"

    def __str__(self) -> str:
        return f"{self.config_set_id}:{self.key} v{self.version}"


class ConfigValueHistory(models.Model):
    """Append-only record of one change to a (set, key) pair."""

    class ChangeType(models.TextChoices):
        CREATE = "create", "Create"
        UPDATE = "update", "Update"
        DELETE = "delete", "Delete"

    config_set = models.ForeignKey(
        ConfigSet,
        on_delete=models.PROTECT,
        related_name="value_history",
    )
    key = models.CharField(max_length=255)
    kind = models.CharField(max_length=10, choices=ValueKind.choices, default=ValueKind.STRING)
    is_secret = models.BooleanField(default=False)
    previous_ciphertext = models.TextField(null=True, blank=True)
    previous_nonce = models.CharField(max_length=32, null=True, blank=True)
    new_ciphertext = models.TextField(null=True, blank=True)
    new_nonce = models.CharField(max_length=32, null=True, blank=True)
    previous_version = models.PositiveIntegerField(null=True, blank=True)
    new_version = models.PositiveIntegerField()
    change_type = models.CharField(max_length=10, choices=ChangeType.choices)
    changed_by = models.CharField(max_length=255, blank=True, default="")
    change_reason = models.CharField(max_length=500, blank=True, default="")
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.CharField(max_length=500, blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [models.Index(fields=["config_set", "key", "-new_version"])]
        verbose_name = "Config Value History"
        verbose_name_plural = "Config Value History"

    def __str__(self) -> str:
        return f"{self.config_set_id}:{self.key} {self.change_type} v{self.new_version}"


# ---------------------------------------------------------------------------
# ConfigExport
# ---------------------------------------------------------------------------

class ExportFormat(models.TextChoices):
    DOTENV = "dotenv", "dotenv"
    JSON = "json", "JSON"
    YAML = "yaml", "YAML"
    K8S_CONFIGMAP = "k8s_configmap", "Kubernetes ConfigMap"
    K8S_SECRET = "k8s_secret", "Kubernetes Secret"
    TERRAFORM = "terraform", "Terraform variables"


class KeyTransform(models.TextChoices):
    NONE = "none", "None"
    UPPERCASE = "uppercase", "UPPERCASE"
    LOWERCASE = "lowercase", "lowercase"
    SNAKE_CASE = "snake_case", "snake_case"
    CAMEL_CASE = "camel_case", "camelCase"


class ConfigExport(models.Model):
    """
    A reusable export specification.  ``run_export_spec`` renders it on
    demand and records the outcome in the ``last_export_*`` fields.
    """

    class Status(models.TextChoices):
        SUCCESS = "success", "Success"
        ERROR = "error", "Error"

    config_set = models.ForeignKey(
        ConfigSet,
        on_delete=models.CASCADE,
        related_name="exports",
    )
    name = models.CharField(max_length=255)
    format = models.CharField(max_length=20, choices=ExportFormat.choices)
    destination = models.JSONField(default=dict, blank=True)
    cron_schedule = models.CharField(max_length=100, blank=True, default="")
    timezone = models.CharField(max_length=64, default="UTC")
    include_secrets = models.BooleanField(default=False)
    key_prefix = models.CharField(max_length=100, blank=True, default="")
    key_transform = models.CharField(
        max_length=20,
        choices=KeyTransform.choices,
        default=KeyTransform.NONE,
    )
    is_active = models.BooleanField(default=True)
    last_export_at = models.DateTimeField(null=True, blank=True)
    last_export_status = models.CharField(
        max_length=10,
        choices=Status.choices,
        blank=True,
        default="",
    )
    last_export_error = models.CharField(max_length=500, blank=True, default="")
    export_count = models.PositiveIntegerField(default=0)
    created_by = models.CharField(max_length=255, blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["config_set", "name"]
        unique_together = [("config_set", "name")]
        verbose_name = "Config Export"
        verbose_name_plural = "Config Exports"

    def __str__(self) -> str:
        return f"{self.name} ({self.format})"
