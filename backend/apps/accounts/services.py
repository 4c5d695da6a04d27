"""
Membership services - admitting and removing organization members.

An active member occupies one seat. Admission takes the subscription row
lock, the same lock seat changes claim under, so a seat reduction and an
admission can never both succeed against the same free seat.
"""

from django.db import transaction

from apps.accounts.models import Member
from apps.billing.entitlements import capacity_for, count_active_members, lock_subscription
from apps.billing.exceptions import SeatCapacityExceededError
from apps.core.logging import get_logger

logger = get_logger(__name__)


def approve_member(member: Member) -> Member:
    """
    Activate a pending member if a seat is free.

    Raises:
        SeatCapacityExceededError: the organization is not entitled or all
            seats (including in-flight reductions) are taken
    """
    with transaction.atomic():
        subscription = lock_subscription(member.organization_id)
        member = Member.objects.select_for_update().get(pk=member.pk)
        if member.status == Member.Status.ACTIVE:
            return member

        capacity = capacity_for(subscription, count_active_members(member.organization_id))
        if capacity.remaining < 1:
            logger.info(
                "member_admission_refused",
                organization_id=member.organization_id,
                member_id=member.id,
                seat_limit=capacity.seat_limit,
                active_members=capacity.active_members,
                status=capacity.status,
            )
            if not capacity.is_entitled:
                raise SeatCapacityExceededError(
                    "Organization has no active subscription. Purchase seats first."
                )
            raise SeatCapacityExceededError(
                f"All {subscription.effective_seat_limit} seats are taken. "
                "Buy more seats or remove a member first."
            )

        member.status = Member.Status.ACTIVE
        member.save(update_fields=["status", "updated_at"])

    logger.info(
        "member_approved",
        organization_id=member.organization_id,
        member_id=member.id,
        remaining_seats=capacity.remaining - 1,
    )
    return member


def reject_member(member: Member) -> Member:
    """Reject a pending join request."""
    member.status = Member.Status.REJECTED
    member.save(update_fields=["status", "updated_at"])
    logger.info("member_rejected", organization_id=member.organization_id, member_id=member.id)
    return member


def remove_member(member: Member) -> Member:
    """Remove a member, freeing their seat."""
    with transaction.atomic():
        lock_subscription(member.organization_id)
        member.status = Member.Status.REMOVED
        member.save(update_fields=["status", "updated_at"])
    logger.info("member_removed", organization_id=member.organization_id, member_id=member.id)
    return member
