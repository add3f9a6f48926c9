"""
apps.organizations.models
~~~~~~~~~~~~~~~~~~~~~~~~~
Tenant entities that own config stores, schemas and config sets.
"""
from django.db import models
from django.utils.text import slugify


class Organization(models.Model):
    """
    A tenant organisation.  Owns config stores and, optionally, schemas and
    organisation-scoped config sets.

    Fields
    ------
    id
        Auto-incrementing integer (1, 2, 3…), used as the primary key and for
        clean API lookups.
    name
        Human-readable unique name (e.g. ``"Acme Corp"``).
    slug
        URL-safe version of ``name``, auto-generated on first save.
    created_at / updated_at
        Automatic timestamps.
    """

    name = models.CharField(max_length=255, unique=True)
    slug = models.SlugField(
        max_length=255,
        unique=True,
        blank=True,
        help_text="URL-safe identifier auto-generated from the organisation name.",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["id"]
        verbose_name = "Organization"
        verbose_name_plural = "Organizations"

    def save(self, *args, **kwargs) -> None:
        """Auto-populate ``slug`` on first save."""
        if not self.slug:
            self.slug = slugify(self.name)
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        # ID might be None before saving, so fallback gracefully
        return f"#{self.id} {self.name}" if self.id else self.name


class Repository(models.Model):
    """A code repository inside an organisation; owner of repository-scoped sets."""

    organization = models.ForeignKey(
        Organization,
        on_delete=models.CASCADE,
        related_name="repositories",
    )
    name = models.CharField(max_length=255)
    slug = models.SlugField(max_length=255, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["organization", "name"]
        unique_together = [("organization", "slug")]
        verbose_name = "Repository"
        verbose_name_plural = "Repositories"

    def save(self, *args, **kwargs) -> None:
        if not self.slug:
            self.slug = slugify(self.name)
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.organization.slug}/{self.slug}"
