"""
Organizations models - multi-tenancy foundation.
"""

from django.db import models

from apps.core.models import TimestampedModel


class Organization(TimestampedModel):
    """
    A school or company that buys seats for its members.

    Organizations must be approved before they can purchase seats.
    """

    class Type(models.TextChoices):
        SCHOOL = "school", "School"
        COMPANY = "company", "Company"

    class ValidationStatus(models.TextChoices):
        PENDING = "pending", "Pending"
        APPROVED = "approved", "Approved"
        REJECTED = "rejected", "Rejected"

    name = models.CharField(max_length=255)
    slug = models.SlugField(
        max_length=255,
        unique=True,
        help_text="URL-safe identifier, e.g. 'lycee-victor-hugo'",
    )
    type = models.CharField(
        max_length=20,
        choices=Type.choices,
        default=Type.SCHOOL,
    )
    validation_status = models.CharField(
        max_length=20,
        choices=ValidationStatus.choices,
        default=ValidationStatus.PENDING,
        db_index=True,
    )
    validated_at = models.DateTimeField(null=True, blank=True)
    billing_email = models.EmailField(
        blank=True,
        help_text="Invoice recipient. Falls back to the first admin's email.",
    )

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return self.name

    @property
    def is_approved(self) -> bool:
        return self.validation_status == self.ValidationStatus.APPROVED
