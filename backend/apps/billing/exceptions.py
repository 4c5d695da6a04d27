"""
Billing exceptions.

Each error carries a stable code and HTTP status; the API renders them
as {"detail": ..., "code": ...}.
"""


class BillingError(Exception):
    """Base exception for billing errors."""

    code = "billing_error"
    status_code = 400


class SeatCountOutOfRangeError(BillingError):
    """Seat count is negative or above the highest pricing tier."""

    code = "seat_count_out_of_range"


class InvalidBillingPeriodError(BillingError):
    """Billing period is not 'monthly' or 'yearly'."""

    code = "invalid_billing_period"


class OrganizationNotApprovedError(BillingError):
    """Organization must be approved before purchasing seats."""

    code = "organization_not_approved"


class SeatReductionBlockedError(BillingError):
    """Requested seats are fewer than the active members occupying them."""

    code = "seat_reduction_blocked"
    status_code = 409

    def __init__(self, message: str, members_to_remove: int):
        super().__init__(message)
        self.members_to_remove = members_to_remove


class SeatCapacityExceededError(BillingError):
    """No free seat is available for a new member."""

    code = "seat_capacity_exceeded"
    status_code = 409


class BillingPeriodChangeError(BillingError):
    """Switching monthly/yearly is not an in-place quantity update."""

    code = "billing_period_change_unsupported"
    status_code = 409


class SubscriptionNotMutableError(BillingError):
    """The Stripe subscription is not in a status that allows changes."""

    code = "subscription_not_mutable"
    status_code = 409


class NoActiveSubscriptionError(BillingError):
    """Organization has no Stripe subscription to change."""

    code = "no_active_subscription"
    status_code = 404


class NoBillingCustomerError(BillingError):
    """Organization has never completed a checkout, so Stripe knows no customer."""

    code = "no_billing_customer"
    status_code = 404


class ConcurrentSeatChangeError(BillingError):
    """Another seat change kept winning the optimistic re-check."""

    code = "concurrent_seat_change"
    status_code = 409


class BillingProviderError(BillingError):
    """
    Stripe rejected or failed the call. Safe to retry; nothing changed locally.

    When outcome_unknown is True the call may have been applied by Stripe;
    the webhook will reconcile local state.
    """

    code = "billing_provider_error"
    status_code = 502

    def __init__(self, message: str, outcome_unknown: bool = False):
        super().__init__(message)
        self.outcome_unknown = outcome_unknown


class BillingProviderUnavailableError(BillingProviderError):
    """Stripe could not be reached or timed out."""

    code = "billing_provider_unavailable"
    status_code = 503

    def __init__(self, message: str):
        super().__init__(message, outcome_unknown=True)


class MalformedEventError(Exception):
    """A webhook payload of a known type is missing required fields."""

    pass
