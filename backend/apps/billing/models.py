"""
Billing models - seat entitlement per organization.
"""

from django.db import models
from django.utils import timezone

from apps.billing.constants import PENDING_SEAT_CHANGE_TTL, BillingPeriod
from apps.core.models import TimestampedModel
from apps.organizations.models import Organization


class OrganizationSubscription(TimestampedModel):
    """
    Seat entitlement for an organization, mirrored from Stripe.

    Source of truth is Stripe - status, period and seat_limit are written by
    webhook reconciliation. Seat changes issued from this service only update
    seat_limit optimistically until the webhook confirms it.
    """

    class Status(models.TextChoices):
        NONE = "none", "None"
        ACTIVE = "active", "Active"
        PAST_DUE = "past_due", "Past Due"
        CANCELED = "canceled", "Canceled"

    organization = models.OneToOneField(
        Organization,
        on_delete=models.CASCADE,
        related_name="subscription",
    )
    stripe_customer_id = models.CharField(
        max_length=255,
        blank=True,
        db_index=True,
        help_text="Stripe customer ID, e.g. 'cus_xxx'",
    )
    stripe_subscription_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        unique=True,
        help_text="Stripe subscription ID, e.g. 'sub_xxx'. Cleared on cancellation.",
    )
    seat_limit = models.PositiveIntegerField(
        default=0,
        help_text="Purchased seats (sum of tier item quantities on Stripe)",
    )
    pending_seat_limit = models.PositiveIntegerField(
        null=True,
        blank=True,
        help_text="Seat limit proposed by an in-flight seat change",
    )
    pending_claim_revision = models.PositiveIntegerField(
        null=True,
        blank=True,
        help_text="Revision of the seat change that set pending_seat_limit",
    )
    pending_claimed_at = models.DateTimeField(null=True, blank=True)
    billing_period = models.CharField(
        max_length=20,
        choices=BillingPeriod.choices,
        default=BillingPeriod.MONTHLY,
    )
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.NONE,
        db_index=True,
    )
    current_period_start = models.DateTimeField(null=True, blank=True)
    current_period_end = models.DateTimeField(
        null=True,
        blank=True,
        help_text="End of current billing period (next invoice date)",
    )
    cancel_at_period_end = models.BooleanField(default=False)
    canceled_at = models.DateTimeField(null=True, blank=True)
    pricing_version = models.CharField(
        max_length=50,
        blank=True,
        help_text="Seat pricing table the subscription was bought under",
    )
    revision = models.PositiveIntegerField(
        default=0,
        help_text="Bumped on every write; used for optimistic concurrency",
    )

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"{self.organization.name} - {self.status} ({self.seat_limit} seats)"

    @property
    def is_entitled(self) -> bool:
        """Seats are usable while active or past due (payment retry window)."""
        return self.status in (self.Status.ACTIVE, self.Status.PAST_DUE)

    @property
    def effective_seat_limit(self) -> int:
        """Seat limit honored by member admission, including in-flight reductions."""
        if self.pending_seat_limit is None or not self.has_live_claim:
            return self.seat_limit
        return min(self.seat_limit, self.pending_seat_limit)

    @property
    def has_live_claim(self) -> bool:
        """True while a seat change is in flight and not yet abandoned."""
        if self.pending_claim_revision is None or self.pending_claimed_at is None:
            return False
        return timezone.now() - self.pending_claimed_at < PENDING_SEAT_CHANGE_TTL

    @classmethod
    def status_from_stripe(cls, stripe_status: str) -> "OrganizationSubscription.Status":
        """Map a Stripe subscription status onto the local lifecycle."""
        return STRIPE_STATUS_MAP.get(stripe_status, cls.Status.NONE)


STRIPE_STATUS_MAP = {
    "active": OrganizationSubscription.Status.ACTIVE,
    "trialing": OrganizationSubscription.Status.ACTIVE,
    "past_due": OrganizationSubscription.Status.PAST_DUE,
    "unpaid": OrganizationSubscription.Status.PAST_DUE,
    "paused": OrganizationSubscription.Status.PAST_DUE,
    "canceled": OrganizationSubscription.Status.CANCELED,
    "incomplete_expired": OrganizationSubscription.Status.CANCELED,
    "incomplete": OrganizationSubscription.Status.NONE,
}
