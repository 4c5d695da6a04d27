"""
Billing API endpoints.

Seat pricing, seat purchases and changes, capacity, cancellation and the
customer portal. Billing errors are rendered by the NinjaAPI exception
handler as {"detail": ..., "code": ...}.
"""

from django.http import HttpRequest
from django.utils import timezone
from ninja import Router
from ninja.errors import HttpError

from apps.billing.constants import CURRENCY, BillingPeriod
from apps.billing.entitlements import get_capacity
from apps.billing.models import OrganizationSubscription
from apps.billing.pricing import calculate_breakdown, max_seat_count, yearly_savings
from apps.billing.proration import estimate_proration
from apps.billing.schemas import (
    CancelSubscriptionRequest,
    CapacityResponse,
    PortalSessionRequest,
    PortalSessionResponse,
    PricingResponse,
    ProrationPreviewResponse,
    SeatChangeRequest,
    SeatChangeResponse,
    SubscriptionActionResponse,
    SubscriptionResponse,
    TierLineResponse,
)
from apps.billing.services import (
    cancel_subscription,
    change_seats,
    create_customer_portal_session,
    resume_subscription,
    validate_seat_request,
)
from apps.core.logging import get_logger
from apps.core.schemas import ErrorResponse
from apps.core.security import BearerAuth, get_auth_context, require_admin

logger = get_logger(__name__)

router = Router(tags=["billing"])
bearer_auth = BearerAuth()

BILLING_ERRORS = {
    400: ErrorResponse,
    401: ErrorResponse,
    403: ErrorResponse,
    404: ErrorResponse,
    409: ErrorResponse,
    502: ErrorResponse,
    503: ErrorResponse,
}


@router.post(
    "/seats",
    response={200: SeatChangeResponse, **BILLING_ERRORS},
    auth=bearer_auth,
    exclude_none=True,
    operation_id="changeSeats",
    summary="Buy seats or change the seat count",
)
@require_admin
def change_seats_endpoint(request: HttpRequest, payload: SeatChangeRequest) -> SeatChangeResponse:
    """
    Buy seats or change the seat count.

    Admin only. Without a subscription, returns a Stripe Checkout URL.
    Otherwise updates the subscription quantity in place.
    """
    _, _, org = get_auth_context(request)
    if payload.organization_id != org.id:
        raise HttpError(403, "Cannot change seats of another organization")

    result = change_seats(
        org,
        seat_count=payload.seat_count,
        billing_period=payload.billing_period,
        apply_immediately=payload.apply_immediately,
        success_url=payload.success_url,
        cancel_url=payload.cancel_url,
        idempotency_key=payload.idempotency_key,
    )

    if result.kind == "checkout":
        return SeatChangeResponse(checkout_url=result.checkout_url)
    return SeatChangeResponse(success=True, quantity=result.quantity, prorated=result.prorated)


@router.get(
    "/pricing",
    response={200: PricingResponse, 400: ErrorResponse},
    auth=None,
    operation_id="getSeatPricing",
    summary="Price a seat count",
)
def get_pricing(
    request: HttpRequest, seat_count: int, billing_period: str = BillingPeriod.MONTHLY.value
) -> PricingResponse:
    """Progressive price breakdown for a seat count. Public."""
    breakdown = calculate_breakdown(seat_count, billing_period)
    return PricingResponse(
        seat_count=breakdown.seat_count,
        billing_period=str(breakdown.billing_period),
        currency=CURRENCY,
        lines=[
            TierLineResponse(
                tier_label=line.tier_label,
                seats_in_tier=line.seats_in_tier,
                price_per_seat=line.price_per_seat,
                subtotal=line.subtotal,
            )
            for line in breakdown.lines
        ],
        total=breakdown.total,
        yearly_savings=yearly_savings(seat_count),
        max_seats=max_seat_count(),
    )


@router.get(
    "/proration-preview",
    response={200: ProrationPreviewResponse, **BILLING_ERRORS},
    auth=bearer_auth,
    operation_id="previewProration",
    summary="Estimate the cost of a seat change",
)
@require_admin
def proration_preview(
    request: HttpRequest, seat_count: int, billing_period: str = BillingPeriod.MONTHLY.value
) -> ProrationPreviewResponse:
    """
    Estimate the prorated charge or credit of a seat change.

    Admin only. Display only: Stripe computes the amount actually invoiced.
    """
    _, _, org = get_auth_context(request)
    validate_seat_request(org, seat_count, billing_period)

    subscription = OrganizationSubscription.objects.filter(organization=org).first()
    if subscription is None or not subscription.stripe_subscription_id:
        estimate = estimate_proration(
            0, billing_period, seat_count, billing_period, None, timezone.now()
        )
    else:
        estimate = estimate_proration(
            old_seat_count=subscription.seat_limit,
            old_billing_period=subscription.billing_period,
            new_seat_count=seat_count,
            new_billing_period=billing_period,
            current_period_end=subscription.current_period_end,
            now=timezone.now(),
        )

    return ProrationPreviewResponse(
        available=estimate.available,
        amount=estimate.amount,
        remaining_fraction=estimate.remaining_fraction,
        reason=estimate.reason,
        currency=CURRENCY,
    )


@router.get(
    "/subscription",
    response={200: SubscriptionResponse, 401: ErrorResponse},
    auth=bearer_auth,
    operation_id="getSubscription",
    summary="Get current subscription status",
)
def get_subscription(request: HttpRequest) -> SubscriptionResponse:
    """
    Get current subscription status.

    Returns 'none' status if the organization never subscribed.
    """
    _, _, org = get_auth_context(request)

    subscription = OrganizationSubscription.objects.filter(organization=org).first()
    if subscription is None:
        return SubscriptionResponse(
            status=OrganizationSubscription.Status.NONE,
            seat_limit=0,
            billing_period=BillingPeriod.MONTHLY,
            current_period_start=None,
            current_period_end=None,
            cancel_at_period_end=False,
            pricing_version="",
        )

    return SubscriptionResponse(
        status=subscription.status,
        seat_limit=subscription.seat_limit,
        billing_period=subscription.billing_period,
        current_period_start=(
            subscription.current_period_start.isoformat()
            if subscription.current_period_start
            else None
        ),
        current_period_end=(
            subscription.current_period_end.isoformat() if subscription.current_period_end else None
        ),
        cancel_at_period_end=subscription.cancel_at_period_end,
        pricing_version=subscription.pricing_version,
    )


@router.get(
    "/capacity",
    response={200: CapacityResponse, 401: ErrorResponse},
    auth=bearer_auth,
    operation_id="getSeatCapacity",
    summary="Get seat usage",
)
def get_seat_capacity(request: HttpRequest) -> CapacityResponse:
    """Purchased seats, active members and seats still free."""
    _, _, org = get_auth_context(request)
    capacity = get_capacity(org.id)
    return CapacityResponse(
        seat_limit=capacity.seat_limit,
        active_members=capacity.active_members,
        remaining=capacity.remaining,
    )


@router.post(
    "/cancel",
    response={200: SubscriptionActionResponse, **BILLING_ERRORS},
    auth=bearer_auth,
    operation_id="cancelSubscription",
    summary="Cancel the subscription",
)
@require_admin
def cancel_subscription_endpoint(
    request: HttpRequest, payload: CancelSubscriptionRequest
) -> SubscriptionActionResponse:
    """Admin only. Cancels at period end unless at_period_end is false."""
    _, _, org = get_auth_context(request)
    cancel_subscription(
        org, at_period_end=payload.at_period_end, idempotency_key=payload.idempotency_key
    )
    return SubscriptionActionResponse(success=True)


@router.post(
    "/resume",
    response={200: SubscriptionActionResponse, **BILLING_ERRORS},
    auth=bearer_auth,
    operation_id="resumeSubscription",
    summary="Undo a scheduled cancellation",
)
@require_admin
def resume_subscription_endpoint(request: HttpRequest) -> SubscriptionActionResponse:
    """Admin only."""
    _, _, org = get_auth_context(request)
    resume_subscription(org)
    return SubscriptionActionResponse(success=True)


@router.post(
    "/portal",
    response={200: PortalSessionResponse, **BILLING_ERRORS},
    auth=bearer_auth,
    operation_id="createPortalSession",
    summary="Create Stripe Customer Portal session",
)
@require_admin
def create_portal(request: HttpRequest, payload: PortalSessionRequest) -> PortalSessionResponse:
    """
    Admin only. Returns a Stripe Customer Portal URL where payment methods
    and invoices are managed.
    """
    _, _, org = get_auth_context(request)
    return PortalSessionResponse(
        portal_url=create_customer_portal_session(org, return_url=payload.return_url)
    )
