"""
Entitlement store - the read surface for seat capacity and the write
surface used by seat changes.

Reads go straight to committed rows and are never cached; admission
decisions must see the latest reconciled state. Status, period and
seat_limit are otherwise written only by apps.billing.reconciliation.
"""

from dataclasses import dataclass

from django.db import transaction
from django.utils import timezone

from apps.accounts.models import Member
from apps.billing.capacity import check_seat_change
from apps.billing.models import OrganizationSubscription
from apps.core.logging import get_logger
from apps.organizations.models import Organization

logger = get_logger(__name__)


@dataclass(frozen=True)
class Capacity:
    seat_limit: int
    active_members: int
    remaining: int
    status: str
    is_entitled: bool


@dataclass(frozen=True)
class SeatChangeSnapshot:
    """State a seat change was planned against; re-checked when claiming."""

    organization_id: int
    stripe_subscription_id: str | None
    stripe_customer_id: str
    status: str
    seat_limit: int
    billing_period: str
    revision: int
    active_members: int


def count_active_members(organization_id: int) -> int:
    return Member.objects.filter(
        organization_id=organization_id,
        status=Member.Status.ACTIVE,
    ).count()


def capacity_for(subscription: OrganizationSubscription, active_members: int) -> Capacity:
    if subscription.is_entitled:
        remaining = max(subscription.effective_seat_limit - active_members, 0)
    else:
        remaining = 0
    return Capacity(
        seat_limit=subscription.seat_limit,
        active_members=active_members,
        remaining=remaining,
        status=subscription.status,
        is_entitled=subscription.is_entitled,
    )


def get_capacity(organization_id: int) -> Capacity:
    """
    Current seat capacity of an organization.

    Organizations without a subscription row have no entitlement.
    """
    active_members = count_active_members(organization_id)
    subscription = OrganizationSubscription.objects.filter(
        organization_id=organization_id
    ).first()
    if subscription is None:
        return Capacity(
            seat_limit=0,
            active_members=active_members,
            remaining=0,
            status=OrganizationSubscription.Status.NONE,
            is_entitled=False,
        )
    return capacity_for(subscription, active_members)


def get_or_create_subscription(organization: Organization) -> OrganizationSubscription:
    """Subscription row for an organization, created with status 'none'."""
    subscription, created = OrganizationSubscription.objects.get_or_create(
        organization=organization
    )
    if created:
        logger.info("subscription_row_created", organization_id=organization.id)
    return subscription


def lock_subscription(organization_id: int) -> OrganizationSubscription:
    """
    Lock and return the organization's subscription row.

    Must be called inside transaction.atomic(). Creates the row if missing so
    every writer serializes on the same lock.
    """
    subscription, _ = OrganizationSubscription.objects.select_for_update().get_or_create(
        organization_id=organization_id
    )
    return subscription


def snapshot_for_seat_change(organization_id: int) -> SeatChangeSnapshot:
    with transaction.atomic():
        subscription = lock_subscription(organization_id)
        return SeatChangeSnapshot(
            organization_id=organization_id,
            stripe_subscription_id=subscription.stripe_subscription_id,
            stripe_customer_id=subscription.stripe_customer_id,
            status=subscription.status,
            seat_limit=subscription.seat_limit,
            billing_period=subscription.billing_period,
            revision=subscription.revision,
            active_members=count_active_members(organization_id),
        )


def claim_seat_change(snapshot: SeatChangeSnapshot, seat_count: int) -> int | None:
    """
    Reserve a seat change planned against snapshot.

    Re-checks the row and the capacity guard against current members. On
    success records seat_count as pending and returns the claimed revision.
    Returns None when the row moved on since the snapshot or another change
    is still in flight; the caller replans.

    Raises:
        SeatReductionBlockedError: current members no longer fit seat_count
    """
    with transaction.atomic():
        subscription = lock_subscription(snapshot.organization_id)
        if (
            subscription.stripe_subscription_id != snapshot.stripe_subscription_id
            or subscription.status != snapshot.status
            or subscription.revision != snapshot.revision
            or subscription.has_live_claim
        ):
            logger.info(
                "seat_change_claim_lost",
                organization_id=snapshot.organization_id,
                snapshot_revision=snapshot.revision,
                current_revision=subscription.revision,
            )
            return None

        active_members = count_active_members(snapshot.organization_id)
        check_seat_change(seat_count, active_members, subscription.seat_limit).raise_if_denied()

        subscription.revision += 1
        subscription.pending_seat_limit = seat_count
        subscription.pending_claim_revision = subscription.revision
        subscription.pending_claimed_at = timezone.now()
        subscription.save(
            update_fields=[
                "revision",
                "pending_seat_limit",
                "pending_claim_revision",
                "pending_claimed_at",
                "updated_at",
            ]
        )
        return subscription.revision


def _clear_claim(subscription: OrganizationSubscription) -> None:
    subscription.pending_seat_limit = None
    subscription.pending_claim_revision = None
    subscription.pending_claimed_at = None


def apply_seat_change(organization_id: int, claimed_revision: int, seat_count: int) -> bool:
    """
    Record a seat change Stripe accepted.

    When nothing reconciled in between, seat_limit becomes seat_count. When a
    webhook already landed its state is kept, except that an accepted
    reduction still lowers seat_limit: admissions must not outrun what
    Stripe now bills until the next webhook. Returns True if seat_limit was
    written.
    """
    with transaction.atomic():
        subscription = lock_subscription(organization_id)
        if subscription.pending_claim_revision == claimed_revision:
            _clear_claim(subscription)

        applied = (
            subscription.revision == claimed_revision or seat_count < subscription.seat_limit
        )
        if applied:
            subscription.seat_limit = seat_count
            subscription.revision += 1

        subscription.save(
            update_fields=[
                "seat_limit",
                "revision",
                "pending_seat_limit",
                "pending_claim_revision",
                "pending_claimed_at",
                "updated_at",
            ]
        )
    return applied


def release_seat_change(organization_id: int, claimed_revision: int) -> None:
    """Drop a claim whose Stripe call failed; nothing else changes."""
    with transaction.atomic():
        subscription = lock_subscription(organization_id)
        if subscription.pending_claim_revision != claimed_revision:
            return
        _clear_claim(subscription)
        subscription.save(
            update_fields=[
                "pending_seat_limit",
                "pending_claim_revision",
                "pending_claimed_at",
                "updated_at",
            ]
        )
