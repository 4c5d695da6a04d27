"""
Billing API schemas - request/response types for billing endpoints.
"""

from decimal import Decimal

from ninja import Field, Schema

from apps.billing.constants import BillingPeriod


class SeatChangeRequest(Schema):
    """Buy seats, or change the seat count of an existing subscription."""

    organization_id: int
    seat_count: int
    billing_period: str = BillingPeriod.MONTHLY.value
    apply_immediately: bool = True  # False defers the invoice, not the seat limit
    success_url: str | None = None
    cancel_url: str | None = None
    idempotency_key: str | None = Field(None, max_length=200)


class SeatChangeResponse(Schema):
    """
    Either checkout_url (first purchase, redirect to Stripe Checkout) or
    success/quantity/prorated (existing subscription updated in place).
    """

    checkout_url: str | None = None
    success: bool | None = None
    quantity: int | None = None
    prorated: bool | None = None


class TierLineResponse(Schema):
    tier_label: str
    seats_in_tier: int
    price_per_seat: Decimal
    subtotal: Decimal


class PricingResponse(Schema):
    """Progressive price of a seat count (EUR)."""

    seat_count: int
    billing_period: str
    currency: str
    lines: list[TierLineResponse]
    total: Decimal
    yearly_savings: Decimal
    max_seats: int


class ProrationPreviewResponse(Schema):
    """Estimated charge (positive) or credit (negative) for a seat change."""

    available: bool
    amount: Decimal | None = None
    remaining_fraction: Decimal | None = None
    reason: str = ""
    currency: str


class SubscriptionResponse(Schema):
    """Current subscription status."""

    status: str  # 'none', 'active', 'past_due', 'canceled'
    seat_limit: int
    billing_period: str
    current_period_start: str | None  # ISO timestamp
    current_period_end: str | None  # ISO timestamp
    cancel_at_period_end: bool
    pricing_version: str


class CapacityResponse(Schema):
    seat_limit: int
    active_members: int
    remaining: int


class CancelSubscriptionRequest(Schema):
    at_period_end: bool = True
    idempotency_key: str | None = Field(None, max_length=200)


class SubscriptionActionResponse(Schema):
    """Acknowledges a request sent to Stripe; the webhook records the change."""

    success: bool


class PortalSessionRequest(Schema):
    """Request to create a Stripe Customer Portal session."""

    return_url: str | None = None


class PortalSessionResponse(Schema):
    portal_url: str
