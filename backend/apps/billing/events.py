"""
Typed Stripe webhook events.

parse_event() turns a verified Stripe event into one variant of the closed
BillingEvent union. Reconciliation matches on the variant, so a new event
kind has to be handled everywhere it is added.

Payload shapes follow the pinned API version (see stripe_client): the
subscription period lives on the subscription items and the invoice's
subscription lives under parent.subscription_details. Older top-level
locations are still read so replayed events parse.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from apps.billing.constants import STRIPE_INTERVAL_TO_PERIOD
from apps.billing.exceptions import MalformedEventError
from apps.billing.pricing import tier_for_price_id

SUBSCRIPTION_CHANGED_TYPES = frozenset(
    {"customer.subscription.created", "customer.subscription.updated"}
)
INVOICE_PAID_TYPES = frozenset({"invoice.payment_succeeded", "invoice.paid"})


@dataclass(frozen=True)
class SubscriptionSnapshot:
    """Subscription fields as Stripe reported them."""

    subscription_id: str
    customer_id: str
    stripe_status: str
    quantity: int
    billing_period: str | None
    current_period_start: datetime | None
    current_period_end: datetime | None
    cancel_at_period_end: bool
    canceled_at: datetime | None
    organization_id: int | None
    pricing_version: str


@dataclass(frozen=True)
class CheckoutCompleted:
    event_id: str
    session_id: str
    mode: str
    subscription_id: str | None
    customer_id: str
    organization_id: int | None
    pricing_version: str
    # Filled in from Stripe before reconciliation
    subscription: SubscriptionSnapshot | None = None


@dataclass(frozen=True)
class SubscriptionChanged:
    event_id: str
    subscription: SubscriptionSnapshot


@dataclass(frozen=True)
class SubscriptionDeleted:
    event_id: str
    subscription: SubscriptionSnapshot


@dataclass(frozen=True)
class InvoicePaid:
    event_id: str
    invoice_id: str
    subscription_id: str | None
    billing_reason: str
    period_start: datetime | None
    period_end: datetime | None


@dataclass(frozen=True)
class InvoicePaymentFailed:
    event_id: str
    invoice_id: str
    subscription_id: str | None


@dataclass(frozen=True)
class IgnoredEvent:
    event_id: str
    event_type: str


BillingEvent = (
    CheckoutCompleted
    | SubscriptionChanged
    | SubscriptionDeleted
    | InvoicePaid
    | InvoicePaymentFailed
    | IgnoredEvent
)


def _timestamp(value: Any) -> datetime | None:
    if value in (None, ""):
        return None
    try:
        return datetime.fromtimestamp(int(value), tz=UTC)
    except (TypeError, ValueError) as e:
        raise MalformedEventError(f"Invalid timestamp: {value!r}") from e


def _ref(value: Any) -> str | None:
    """Stripe references are either an ID or an expanded object."""
    if value is None:
        return None
    if isinstance(value, str):
        return value or None
    if isinstance(value, Mapping):
        return value.get("id")
    return None


def _organization_id(metadata: Mapping | None) -> int | None:
    raw = (metadata or {}).get("organization_id")
    if raw in (None, ""):
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


def _require(obj: Mapping, key: str) -> Any:
    value = obj.get(key)
    if value in (None, ""):
        raise MalformedEventError(f"Missing required field '{key}'")
    return value


def subscription_items(obj: Mapping) -> list:
    items = obj.get("items") or {}
    data = items.get("data") if isinstance(items, Mapping) else None
    return list(data or [])


def _item_billing_period(item: Mapping) -> str | None:
    price = item.get("price") or {}
    match = tier_for_price_id(price.get("id") or "")
    if match is not None:
        return match[1]
    interval = (price.get("recurring") or {}).get("interval")
    return STRIPE_INTERVAL_TO_PERIOD.get(interval)


def parse_subscription(obj: Mapping) -> SubscriptionSnapshot:
    """
    Build a snapshot from a Stripe subscription object.

    Raises:
        MalformedEventError: id or status missing, or quantities invalid
    """
    subscription_id = _require(obj, "id")
    stripe_status = _require(obj, "status")
    items = subscription_items(obj)

    try:
        quantity = sum(int(item.get("quantity") or 0) for item in items)
    except (TypeError, ValueError) as e:
        raise MalformedEventError("Invalid subscription item quantity") from e

    periods = {p for p in (_item_billing_period(item) for item in items) if p}
    billing_period = periods.pop() if len(periods) == 1 else None

    first_item = items[0] if items else {}
    period_start = obj.get("current_period_start") or first_item.get("current_period_start")
    period_end = obj.get("current_period_end") or first_item.get("current_period_end")

    metadata = obj.get("metadata") or {}
    return SubscriptionSnapshot(
        subscription_id=subscription_id,
        customer_id=_ref(obj.get("customer")) or "",
        stripe_status=stripe_status,
        quantity=quantity,
        billing_period=billing_period,
        current_period_start=_timestamp(period_start),
        current_period_end=_timestamp(period_end),
        cancel_at_period_end=bool(obj.get("cancel_at_period_end", False)),
        canceled_at=_timestamp(obj.get("canceled_at") or obj.get("ended_at")),
        organization_id=_organization_id(metadata),
        pricing_version=metadata.get("pricing_version") or "",
    )


def _invoice_subscription_id(obj: Mapping) -> str | None:
    direct = _ref(obj.get("subscription"))
    if direct:
        return direct
    details = (obj.get("parent") or {}).get("subscription_details") or {}
    return _ref(details.get("subscription"))


def _invoice_period(obj: Mapping) -> tuple[datetime | None, datetime | None]:
    """Period covered by the invoice's subscription lines."""
    lines = (obj.get("lines") or {}).get("data") or []
    starts = []
    ends = []
    for line in lines:
        period = line.get("period") or {}
        if period.get("start") is not None and period.get("end") is not None:
            starts.append(_timestamp(period["start"]))
            ends.append(_timestamp(period["end"]))
    if not ends:
        return None, None
    return max(starts), max(ends)


def parse_event(event: Mapping) -> BillingEvent:
    """
    Parse a verified Stripe event.

    Unknown event types become IgnoredEvent.

    Raises:
        MalformedEventError: a known event type is missing required fields
    """
    event_id = event.get("id")
    event_type = event.get("type")
    if not event_id or not event_type:
        raise MalformedEventError("Event is missing id or type")

    obj = (event.get("data") or {}).get("object") or {}

    match event_type:
        case "checkout.session.completed":
            metadata = obj.get("metadata") or {}
            return CheckoutCompleted(
                event_id=event_id,
                session_id=_require(obj, "id"),
                mode=obj.get("mode") or "",
                subscription_id=_ref(obj.get("subscription")),
                customer_id=_ref(obj.get("customer")) or "",
                organization_id=_organization_id(metadata),
                pricing_version=metadata.get("pricing_version") or "",
            )

        case _ if event_type in SUBSCRIPTION_CHANGED_TYPES:
            return SubscriptionChanged(event_id=event_id, subscription=parse_subscription(obj))

        case "customer.subscription.deleted":
            return SubscriptionDeleted(event_id=event_id, subscription=parse_subscription(obj))

        case _ if event_type in INVOICE_PAID_TYPES:
            period_start, period_end = _invoice_period(obj)
            return InvoicePaid(
                event_id=event_id,
                invoice_id=_require(obj, "id"),
                subscription_id=_invoice_subscription_id(obj),
                billing_reason=obj.get("billing_reason") or "",
                period_start=period_start,
                period_end=period_end,
            )

        case "invoice.payment_failed":
            return InvoicePaymentFailed(
                event_id=event_id,
                invoice_id=_require(obj, "id"),
                subscription_id=_invoice_subscription_id(obj),
            )

        case _:
            return IgnoredEvent(event_id=event_id, event_type=event_type)
