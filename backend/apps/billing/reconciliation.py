"""
Webhook reconciliation - the only writer of subscription status, period
and seat_limit from Stripe data.

Every handler locks the subscription row and applies the event. A write
that changes anything bumps the revision so in-flight seat changes
notice. Events that cannot be matched to a row or organization are logged
and dropped; Stripe does not need to retry them.

Handlers are idempotent: applying the same event twice leaves the row
unchanged, revision included. A canceled subscription is terminal for its
reference. Period bounds only ever move forward, so renewals delivered
out of order converge.
"""

from dataclasses import replace
from datetime import datetime
from typing import assert_never

from django.db import transaction
from django.utils import timezone

from apps.billing.constants import RENEWAL_BILLING_REASON
from apps.billing.entitlements import lock_subscription
from apps.billing.events import (
    BillingEvent,
    CheckoutCompleted,
    IgnoredEvent,
    InvoicePaid,
    InvoicePaymentFailed,
    SubscriptionChanged,
    SubscriptionDeleted,
    SubscriptionSnapshot,
    parse_subscription,
)
from apps.billing.exceptions import MalformedEventError
from apps.billing.models import OrganizationSubscription
from apps.billing.stripe_client import get_stripe
from apps.core.logging import get_logger
from apps.organizations.models import Organization

logger = get_logger(__name__)

ENTITLED_STATUSES = (
    OrganizationSubscription.Status.ACTIVE,
    OrganizationSubscription.Status.PAST_DUE,
)

RECONCILED_FIELDS = (
    "stripe_subscription_id",
    "stripe_customer_id",
    "status",
    "seat_limit",
    "billing_period",
    "current_period_start",
    "current_period_end",
    "cancel_at_period_end",
    "canceled_at",
    "pricing_version",
)


def hydrate(event: BillingEvent) -> BillingEvent:
    """
    Fetch what an event needs from Stripe. Call outside any transaction.

    Checkout sessions only reference their subscription, so it is retrieved
    here and attached to the event.
    """
    if not isinstance(event, CheckoutCompleted):
        return event
    if event.mode != "subscription" or event.organization_id is None:
        return event
    if not event.subscription_id:
        raise MalformedEventError(f"Checkout session {event.session_id} has no subscription")

    stripe = get_stripe()
    subscription = stripe.Subscription.retrieve(event.subscription_id)
    return replace(event, subscription=parse_subscription(subscription))


def reconcile(event: BillingEvent) -> bool:
    """
    Apply a parsed event to local state.

    Returns True if a subscription row was written.
    """
    match event:
        case CheckoutCompleted():
            return _checkout_completed(event)
        case SubscriptionChanged():
            return _subscription_changed(event)
        case SubscriptionDeleted():
            return _subscription_deleted(event)
        case InvoicePaid():
            return _invoice_paid(event)
        case InvoicePaymentFailed():
            return _invoice_payment_failed(event)
        case IgnoredEvent():
            logger.debug("stripe_webhook_unhandled_event", event_type=event.event_type)
            return False
        case _:
            assert_never(event)


def _drop(reason: str, event_id: str, **fields) -> bool:
    logger.warning("stripe_event_dropped", reason=reason, event_id=event_id, **fields)
    return False


def _advance(current: datetime | None, incoming: datetime | None) -> datetime | None:
    if incoming is None:
        return current
    if current is None or incoming > current:
        return incoming
    return current


def _advance_period(
    subscription: OrganizationSubscription,
    start: datetime | None,
    end: datetime | None,
) -> None:
    if end is not None and subscription.current_period_end is not None:
        if end < subscription.current_period_end:
            return
    subscription.current_period_start = _advance(subscription.current_period_start, start)
    subscription.current_period_end = _advance(subscription.current_period_end, end)


def _field_values(subscription: OrganizationSubscription) -> dict:
    return {field: getattr(subscription, field) for field in RECONCILED_FIELDS}


def _save_changes(subscription: OrganizationSubscription, before: dict) -> bool:
    """
    Persist reconciled fields that differ from `before`.

    An event that changes nothing leaves the row untouched, revision
    included, so re-applying a payload is a no-op.
    """
    changed = [field for field, value in before.items() if getattr(subscription, field) != value]
    if not changed:
        return False
    subscription.revision += 1
    subscription.save(update_fields=[*changed, "revision", "updated_at"])
    return True


def _end_subscription(
    subscription: OrganizationSubscription, canceled_at: datetime | None
) -> None:
    """Canceled is terminal for a reference; the row keeps its seats but drops the ref."""
    subscription.status = OrganizationSubscription.Status.CANCELED
    subscription.stripe_subscription_id = None
    subscription.cancel_at_period_end = False
    subscription.canceled_at = canceled_at or subscription.canceled_at or timezone.now()


def _apply_snapshot(
    subscription: OrganizationSubscription,
    snapshot: SubscriptionSnapshot,
    customer_id: str = "",
    pricing_version: str = "",
) -> bool:
    before = _field_values(subscription)
    subscription.stripe_customer_id = (
        customer_id or snapshot.customer_id or subscription.stripe_customer_id
    )
    subscription.seat_limit = snapshot.quantity
    if snapshot.billing_period:
        subscription.billing_period = snapshot.billing_period
    _advance_period(subscription, snapshot.current_period_start, snapshot.current_period_end)
    subscription.pricing_version = (
        pricing_version or snapshot.pricing_version or subscription.pricing_version
    )

    status = OrganizationSubscription.status_from_stripe(snapshot.stripe_status)
    if status == OrganizationSubscription.Status.CANCELED:
        _end_subscription(subscription, snapshot.canceled_at)
    else:
        subscription.stripe_subscription_id = snapshot.subscription_id
        subscription.status = status
        subscription.cancel_at_period_end = snapshot.cancel_at_period_end
        subscription.canceled_at = snapshot.canceled_at
    return _save_changes(subscription, before)


def _locked_by_ref(subscription_id: str | None) -> OrganizationSubscription | None:
    if not subscription_id:
        return None
    return (
        OrganizationSubscription.objects.select_for_update()
        .filter(stripe_subscription_id=subscription_id)
        .first()
    )


def _checkout_completed(event: CheckoutCompleted) -> bool:
    if event.mode != "subscription":
        return _drop("checkout_not_subscription", event.event_id, mode=event.mode)
    if event.organization_id is None:
        return _drop("checkout_missing_organization", event.event_id)
    if event.subscription is None:
        raise MalformedEventError(f"Checkout session {event.session_id} was not hydrated")
    if not Organization.objects.filter(id=event.organization_id).exists():
        return _drop(
            "organization_not_found", event.event_id, organization_id=event.organization_id
        )

    snapshot = event.subscription
    with transaction.atomic():
        subscription = lock_subscription(event.organization_id)
        current_ref = subscription.stripe_subscription_id
        if current_ref and current_ref != snapshot.subscription_id and subscription.is_entitled:
            incoming = OrganizationSubscription.status_from_stripe(snapshot.stripe_status)
            if incoming not in ENTITLED_STATUSES:
                return _drop(
                    "checkout_subscription_superseded",
                    event.event_id,
                    organization_id=event.organization_id,
                    stripe_subscription_id=snapshot.subscription_id,
                )
            logger.warning(
                "subscription_ref_replaced",
                organization_id=event.organization_id,
                previous_subscription_id=current_ref,
                stripe_subscription_id=snapshot.subscription_id,
            )
        written = _apply_snapshot(
            subscription,
            snapshot,
            customer_id=event.customer_id,
            pricing_version=event.pricing_version,
        )

    logger.info(
        "subscription_checkout_reconciled",
        organization_id=event.organization_id,
        stripe_subscription_id=snapshot.subscription_id,
        seat_limit=subscription.seat_limit,
        status=subscription.status,
    )
    return written


def _adoptable(snapshot: SubscriptionSnapshot) -> OrganizationSubscription | None:
    """
    Row that may take over an unknown subscription.

    Covers subscription events delivered before checkout.session.completed:
    the metadata names an organization that has never held a subscription.
    A row that was subscribed before only changes refs through checkout,
    whose subscription is retrieved live, so a stale event for an ended
    subscription cannot re-attach it.
    """
    if snapshot.organization_id is None:
        return None
    if OrganizationSubscription.status_from_stripe(snapshot.stripe_status) not in ENTITLED_STATUSES:
        return None
    if not Organization.objects.filter(id=snapshot.organization_id).exists():
        return None
    subscription = lock_subscription(snapshot.organization_id)
    if subscription.stripe_subscription_id:
        return None
    if subscription.status != OrganizationSubscription.Status.NONE or subscription.canceled_at:
        return None
    return subscription


def _subscription_changed(event: SubscriptionChanged) -> bool:
    snapshot = event.subscription
    with transaction.atomic():
        subscription = _locked_by_ref(snapshot.subscription_id)
        if subscription is None:
            subscription = _adoptable(snapshot)
        if subscription is None:
            return _drop(
                "subscription_not_found",
                event.event_id,
                stripe_subscription_id=snapshot.subscription_id,
            )
        written = _apply_snapshot(subscription, snapshot)

    logger.info(
        "subscription_reconciled",
        organization_id=subscription.organization_id,
        stripe_subscription_id=snapshot.subscription_id,
        seat_limit=subscription.seat_limit,
        status=subscription.status,
    )
    return written


def _subscription_deleted(event: SubscriptionDeleted) -> bool:
    snapshot = event.subscription
    with transaction.atomic():
        subscription = _locked_by_ref(snapshot.subscription_id)
        if subscription is None:
            logger.info(
                "subscription_delete_ignored",
                event_id=event.event_id,
                stripe_subscription_id=snapshot.subscription_id,
            )
            return False

        before = _field_values(subscription)
        _end_subscription(subscription, snapshot.canceled_at)
        written = _save_changes(subscription, before)

    logger.info(
        "subscription_canceled",
        organization_id=subscription.organization_id,
        stripe_subscription_id=snapshot.subscription_id,
    )
    return written


def _invoice_paid(event: InvoicePaid) -> bool:
    if event.billing_reason != RENEWAL_BILLING_REASON:
        logger.debug(
            "stripe_invoice_paid_not_renewal",
            invoice_id=event.invoice_id,
            billing_reason=event.billing_reason,
        )
        return False

    with transaction.atomic():
        subscription = _locked_by_ref(event.subscription_id)
        if subscription is None:
            return _drop(
                "subscription_not_found",
                event.event_id,
                stripe_subscription_id=event.subscription_id,
            )
        before = _field_values(subscription)
        subscription.status = OrganizationSubscription.Status.ACTIVE
        _advance_period(subscription, event.period_start, event.period_end)
        written = _save_changes(subscription, before)

    logger.info(
        "subscription_renewed",
        organization_id=subscription.organization_id,
        invoice_id=event.invoice_id,
        current_period_end=subscription.current_period_end,
    )
    return written


def _invoice_payment_failed(event: InvoicePaymentFailed) -> bool:
    with transaction.atomic():
        subscription = _locked_by_ref(event.subscription_id)
        if subscription is None:
            return _drop(
                "subscription_not_found",
                event.event_id,
                stripe_subscription_id=event.subscription_id,
            )
        before = _field_values(subscription)
        subscription.status = OrganizationSubscription.Status.PAST_DUE
        written = _save_changes(subscription, before)

    logger.warning(
        "stripe_invoice_payment_failed",
        organization_id=subscription.organization_id,
        invoice_id=event.invoice_id,
    )
    return written
