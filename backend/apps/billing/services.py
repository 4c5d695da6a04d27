"""
Billing services - seat purchases and seat changes against Stripe.

All Stripe API calls are isolated here (and in reconciliation.hydrate) for
testability. External calls must NOT be inside database transactions: a
seat change snapshots and claims the row in short transactions, calls
Stripe with no transaction open, then records the outcome.

Local state written here is optimistic. The webhook is authoritative and
overwrites whatever these functions record.
"""

from dataclasses import dataclass
from typing import Literal

import stripe as stripe_sdk
from django.conf import settings

from apps.accounts.models import Member
from apps.billing.capacity import check_seat_change
from apps.billing.constants import CHECKOUT_TYPE_SEAT_PURCHASE, MUTABLE_STRIPE_STATUSES
from apps.billing.entitlements import (
    SeatChangeSnapshot,
    apply_seat_change,
    claim_seat_change,
    release_seat_change,
    snapshot_for_seat_change,
)
from apps.billing.events import parse_subscription, subscription_items
from apps.billing.exceptions import (
    BillingPeriodChangeError,
    ConcurrentSeatChangeError,
    NoActiveSubscriptionError,
    NoBillingCustomerError,
    OrganizationNotApprovedError,
    SeatCountOutOfRangeError,
    SubscriptionNotMutableError,
)
from apps.billing.models import OrganizationSubscription
from apps.billing.pricing import (
    calculate_breakdown,
    max_seat_count,
    seat_price_ids,
    stripe_line_items,
    validate_billing_period,
)
from apps.billing.stripe_client import build_idempotency_key, get_stripe, provider_error
from apps.core.logging import get_logger
from apps.organizations.models import Organization

logger = get_logger(__name__)


@dataclass(frozen=True)
class SeatChangeResult:
    """Either a checkout URL to redirect to, or the updated quantity."""

    kind: Literal["checkout", "update"]
    checkout_url: str | None = None
    quantity: int | None = None
    prorated: bool = False


def validate_seat_request(organization: Organization, seat_count: int, billing_period: str) -> str:
    """
    Checks shared by every seat purchase or change.

    Raises:
        InvalidBillingPeriodError
        SeatCountOutOfRangeError: fewer than one seat or above the last tier
        OrganizationNotApprovedError
    """
    period = validate_billing_period(billing_period)
    ceiling = max_seat_count()
    if seat_count < 1 or seat_count > ceiling:
        raise SeatCountOutOfRangeError(
            f"Seat count must be between 1 and {ceiling}, got {seat_count}."
        )
    if not organization.is_approved:
        raise OrganizationNotApprovedError(
            "Organization must be approved before purchasing seats."
        )
    return period


def change_seats(
    organization: Organization,
    seat_count: int,
    billing_period: str,
    apply_immediately: bool = True,
    success_url: str | None = None,
    cancel_url: str | None = None,
    idempotency_key: str | None = None,
) -> SeatChangeResult:
    """
    Buy seats or change the seat count of an existing subscription.

    Organizations without a Stripe subscription get a checkout URL; the
    subscription is recorded when Stripe reports the completed checkout.
    Otherwise the subscription quantity is updated in place.
    """
    period = validate_seat_request(organization, seat_count, billing_period)

    snapshot = snapshot_for_seat_change(organization.id)
    check_seat_change(seat_count, snapshot.active_members, snapshot.seat_limit).raise_if_denied()

    if not snapshot.stripe_subscription_id:
        checkout_url = create_seat_checkout_session(
            organization,
            seat_count,
            period,
            success_url=success_url,
            cancel_url=cancel_url,
            customer_id=snapshot.stripe_customer_id,
            idempotency_key=idempotency_key,
        )
        return SeatChangeResult(kind="checkout", checkout_url=checkout_url)

    quantity = update_seat_quantity(
        organization,
        seat_count,
        period,
        apply_immediately=apply_immediately,
        idempotency_key=idempotency_key,
    )
    return SeatChangeResult(kind="update", quantity=quantity, prorated=apply_immediately)


def get_billing_email(organization: Organization) -> str | None:
    """Billing email, falling back to the first active admin's email."""
    if organization.billing_email:
        return organization.billing_email
    admin = (
        Member.objects.filter(
            organization=organization,
            role=Member.Role.ADMIN,
            status=Member.Status.ACTIVE,
        )
        .select_related("user")
        .order_by("created_at")
        .first()
    )
    return admin.user.email if admin else None


def create_seat_checkout_session(
    organization: Organization,
    seat_count: int,
    billing_period: str,
    success_url: str | None = None,
    cancel_url: str | None = None,
    customer_id: str = "",
    idempotency_key: str | None = None,
) -> str:
    """
    Create a Stripe Checkout Session for a first seat purchase.

    One line item per pricing tier. Nothing is written locally; the
    checkout.session.completed webhook creates the entitlement.

    Returns the checkout session URL.
    """
    breakdown = calculate_breakdown(seat_count, billing_period)
    metadata = {
        "organization_id": str(organization.id),
        "seat_count": str(seat_count),
        "billing_period": str(billing_period),
        "pricing_version": settings.SEAT_PRICING_VERSION,
        "checkout_type": CHECKOUT_TYPE_SEAT_PURCHASE,
    }
    params: dict = {
        "mode": "subscription",
        "line_items": stripe_line_items(breakdown),
        "success_url": success_url
        or f"{settings.SITE_URL}/billing/success?session_id={{CHECKOUT_SESSION_ID}}",
        "cancel_url": cancel_url or f"{settings.SITE_URL}/billing/cancel",
        "client_reference_id": str(organization.id),
        "metadata": metadata,
        "subscription_data": {"metadata": metadata},
    }
    if customer_id:
        params["customer"] = customer_id
    else:
        email = get_billing_email(organization)
        if email:
            params["customer_email"] = email

    stripe = get_stripe()
    try:
        session = stripe.checkout.Session.create(
            **params,
            idempotency_key=build_idempotency_key(
                "seat-checkout", organization.id, idempotency_key
            ),
        )
    except stripe_sdk.StripeError as e:
        logger.exception("seat_checkout_failed", organization_id=organization.id)
        raise provider_error(e) from e

    logger.info(
        "seat_checkout_created",
        organization_id=organization.id,
        session_id=session.id,
        seat_count=seat_count,
        billing_period=str(billing_period),
        total=str(breakdown.total),
    )
    return session.url


def build_subscription_items(live_subscription, seat_count: int, billing_period: str) -> list[dict]:
    """
    Item changes that turn the live subscription into seat_count seats.

    Tier items are reused by price, new tiers are added and tiers no longer
    needed are deleted. Items with non-seat prices are left alone.
    """
    seat_prices = seat_price_ids()
    existing: dict[str, str] = {}
    for item in subscription_items(live_subscription):
        price_id = (item.get("price") or {}).get("id")
        if price_id in seat_prices:
            existing[price_id] = item["id"]

    changes = []
    wanted = set()
    for line in stripe_line_items(calculate_breakdown(seat_count, billing_period)):
        wanted.add(line["price"])
        if line["price"] in existing:
            changes.append({"id": existing[line["price"]], "quantity": line["quantity"]})
        else:
            changes.append(line)

    for price_id, item_id in existing.items():
        if price_id not in wanted:
            changes.append({"id": item_id, "deleted": True})
    return changes


def _plan_seat_change(
    organization: Organization, seat_count: int, billing_period: str
) -> tuple[SeatChangeSnapshot, object]:
    """Snapshot local state and check it against the live subscription."""
    snapshot = snapshot_for_seat_change(organization.id)
    if not snapshot.stripe_subscription_id:
        raise NoActiveSubscriptionError("Organization has no subscription to update.")

    check_seat_change(seat_count, snapshot.active_members, snapshot.seat_limit).raise_if_denied()

    if snapshot.billing_period != billing_period:
        raise BillingPeriodChangeError(
            f"Cannot switch from {snapshot.billing_period} to {billing_period} billing in place. "
            "Cancel the subscription and recreate it with the new billing period."
        )

    stripe = get_stripe()
    try:
        live = stripe.Subscription.retrieve(snapshot.stripe_subscription_id)
    except stripe_sdk.StripeError as e:
        logger.exception(
            "seat_update_retrieve_failed",
            organization_id=organization.id,
            stripe_subscription_id=snapshot.stripe_subscription_id,
        )
        raise provider_error(e) from e

    live_snapshot = parse_subscription(live)
    if live_snapshot.stripe_status not in MUTABLE_STRIPE_STATUSES:
        raise SubscriptionNotMutableError(
            f"Subscription is {live_snapshot.stripe_status}; seats cannot be changed."
        )
    if live_snapshot.billing_period and live_snapshot.billing_period != billing_period:
        raise BillingPeriodChangeError(
            f"Subscription is billed {live_snapshot.billing_period}. "
            "Cancel the subscription and recreate it with the new billing period."
        )
    return snapshot, live


def update_seat_quantity(
    organization: Organization,
    seat_count: int,
    billing_period: str,
    apply_immediately: bool = True,
    idempotency_key: str | None = None,
) -> int:
    """
    Change the seat count of an existing subscription.

    The capacity guard applies regardless of apply_immediately: deferring
    only defers the invoice, the new seat limit takes effect now.

    Returns the new seat count.

    Raises:
        SeatReductionBlockedError
        BillingPeriodChangeError: before any Stripe call
        SubscriptionNotMutableError
        ConcurrentSeatChangeError: lost the optimistic re-check too often
        BillingProviderError: Stripe failed; nothing changed locally
    """
    period = validate_billing_period(billing_period)

    claimed_revision = None
    for _ in range(settings.SEAT_CHANGE_MAX_ATTEMPTS):
        snapshot, live = _plan_seat_change(organization, seat_count, period)
        claimed_revision = claim_seat_change(snapshot, seat_count)
        if claimed_revision is not None:
            break
    if claimed_revision is None:
        raise ConcurrentSeatChangeError(
            "Another seat change is in progress. Try again in a moment."
        )

    stripe = get_stripe()
    try:
        stripe.Subscription.modify(
            snapshot.stripe_subscription_id,
            items=build_subscription_items(live, seat_count, period),
            proration_behavior="create_prorations" if apply_immediately else "none",
            billing_cycle_anchor="unchanged",
            idempotency_key=build_idempotency_key(
                "seat-update", organization.id, idempotency_key
            ),
        )
    except stripe_sdk.StripeError as e:
        release_seat_change(organization.id, claimed_revision)
        logger.exception(
            "seat_update_failed",
            organization_id=organization.id,
            stripe_subscription_id=snapshot.stripe_subscription_id,
            seat_count=seat_count,
        )
        raise provider_error(e) from e

    applied = apply_seat_change(organization.id, claimed_revision, seat_count)
    logger.info(
        "seat_update_applied",
        organization_id=organization.id,
        stripe_subscription_id=snapshot.stripe_subscription_id,
        seat_count=seat_count,
        previous_seat_limit=snapshot.seat_limit,
        prorated=apply_immediately,
        recorded_locally=applied,
    )
    return seat_count


def _subscription_ref(organization: Organization) -> str:
    subscription = OrganizationSubscription.objects.filter(organization=organization).first()
    if subscription is None or not subscription.stripe_subscription_id:
        raise NoActiveSubscriptionError("Organization has no active subscription.")
    return subscription.stripe_subscription_id


def cancel_subscription(
    organization: Organization,
    at_period_end: bool = True,
    idempotency_key: str | None = None,
) -> None:
    """
    Cancel the organization's subscription.

    By default seats stay usable until the period ends. Local state changes
    when the resulting webhook arrives.
    """
    subscription_id = _subscription_ref(organization)
    stripe = get_stripe()
    key = build_idempotency_key("seat-cancel", organization.id, idempotency_key)
    try:
        if at_period_end:
            stripe.Subscription.modify(subscription_id, cancel_at_period_end=True, idempotency_key=key)
        else:
            stripe.Subscription.cancel(subscription_id, idempotency_key=key)
    except stripe_sdk.StripeError as e:
        logger.exception("subscription_cancel_failed", organization_id=organization.id)
        raise provider_error(e) from e

    logger.info(
        "subscription_cancel_requested",
        organization_id=organization.id,
        stripe_subscription_id=subscription_id,
        at_period_end=at_period_end,
    )


def resume_subscription(organization: Organization, idempotency_key: str | None = None) -> None:
    """Undo a pending cancellation at period end."""
    subscription_id = _subscription_ref(organization)
    stripe = get_stripe()
    try:
        stripe.Subscription.modify(
            subscription_id,
            cancel_at_period_end=False,
            idempotency_key=build_idempotency_key("seat-resume", organization.id, idempotency_key),
        )
    except stripe_sdk.StripeError as e:
        logger.exception("subscription_resume_failed", organization_id=organization.id)
        raise provider_error(e) from e

    logger.info(
        "subscription_resume_requested",
        organization_id=organization.id,
        stripe_subscription_id=subscription_id,
    )


def create_customer_portal_session(
    organization: Organization, return_url: str | None = None
) -> str:
    """
    Create a Stripe Customer Portal session for updating payment details.

    Returns the portal URL. Past-due organizations fix their card here;
    Stripe retries the open invoice and the webhook restores the status.
    """
    subscription = OrganizationSubscription.objects.filter(organization=organization).first()
    if subscription is None or not subscription.stripe_customer_id:
        raise NoBillingCustomerError("Organization has no billing account yet.")

    stripe = get_stripe()
    try:
        session = stripe.billing_portal.Session.create(
            customer=subscription.stripe_customer_id,
            return_url=return_url or f"{settings.SITE_URL}/billing",
        )
    except stripe_sdk.StripeError as e:
        logger.exception("billing_portal_session_failed", organization_id=organization.id)
        raise provider_error(e) from e

    logger.info("billing_portal_session_created", organization_id=organization.id)
    return session.url
