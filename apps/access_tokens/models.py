"""
apps.access_tokens.models
~~~~~~~~~~~~~~~~~~~~~~~~~
Scoped, revocable credentials for non-human callers (CI pipelines).

Only the sha256 hash of a token is stored; the plaintext is shown once at
creation.  ``token_prefix`` (the first 8 characters) identifies a token in
logs and audit records.
"""
from django.db import models
from django.utils import timezone

from apps.config_core.models import ConfigSet


class AccessToken(models.Model):
    class Permission(models.TextChoices):
        READ = "read", "Read"
        WRITE = "write", "Write"
        ADMIN = "admin", "Admin"

    #: read < write < admin
    PERMISSION_RANK = {Permission.READ: 0, Permission.WRITE: 1, Permission.ADMIN: 2}

    config_set = models.ForeignKey(
        ConfigSet,
        on_delete=models.CASCADE,
        related_name="access_tokens",
    )
    name = models.CharField(max_length=255)
    token_prefix = models.CharField(max_length=8, db_index=True)
    token_hash = models.CharField(max_length=64, unique=True)
    permission = models.CharField(
        max_length=10,
        choices=Permission.choices,
        default=Permission.READ,
    )
    allowed_set_ids = models.JSONField(
        default=list,
        blank=True,
        help_text="Additional config set ids this token may access.",
    )
    is_active = models.BooleanField(default=True)
    expires_at = models.DateTimeField(null=True, blank=True)
    last_used_at = models.DateTimeField(null=True, blank=True)
    usage_count = models.PositiveIntegerField(default=0)
    created_by = models.CharField(max_length=255, blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        verbose_name = "Access Token"
        verbose_name_plural = "Access Tokens"

    def __str__(self) -> str:
        return f"{self.name} ({self.token_prefix}…, {self.permission})"

    @property
    def is_expired(self) -> bool:
        return self.expires_at is not None and self.expires_at <= timezone.now()

    def grants(self, required_permission: str) -> bool:
        return self.PERMISSION_RANK[self.permission] >= self.PERMISSION_RANK[required_permission]

    def covers(self, set_id) -> bool:
        allowed = {str(self.config_set_id), *(str(s) for s in self.allowed_set_ids or ())}
        return str(set_id) in allowed
