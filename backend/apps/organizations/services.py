"""
Organization lifecycle services.
"""

from django.db import transaction
from django.utils import timezone

from apps.billing.entitlements import get_or_create_subscription
from apps.core.logging import get_logger
from apps.organizations.models import Organization

logger = get_logger(__name__)


def approve_organization(org: Organization) -> Organization:
    """
    Approve an organization and open its (empty) subscription record.

    The subscription starts with status 'none' and zero seats; it only becomes
    active once Stripe confirms a purchase.
    """
    with transaction.atomic():
        org.validation_status = Organization.ValidationStatus.APPROVED
        org.validated_at = timezone.now()
        org.save(update_fields=["validation_status", "validated_at", "updated_at"])
        get_or_create_subscription(org)

    logger.info("organization_approved", organization_id=org.id)
    return org


def reject_organization(org: Organization) -> Organization:
    """Reject a pending organization."""
    org.validation_status = Organization.ValidationStatus.REJECTED
    org.validated_at = timezone.now()
    org.save(update_fields=["validation_status", "validated_at", "updated_at"])

    logger.info("organization_rejected", organization_id=org.id)
    return org
