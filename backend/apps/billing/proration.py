"""
Proration preview.

Best-effort estimate of what a mid-cycle seat change will cost, for display
only. The authoritative proration is computed by Stripe when the change is
applied; nothing here is ever sent to Stripe.

When the billing period itself changes, no estimate is produced: Stripe
credits unused time on the old price in ways a local calculation cannot
reproduce.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from apps.billing.constants import PERIOD_LENGTH, BillingPeriod
from apps.billing.pricing import seat_cost, validate_billing_period

CENTS = Decimal("0.01")

UNAVAILABLE_PERIOD_CHANGE = "billing_period_change"
UNAVAILABLE_NO_PERIOD = "no_active_period"


@dataclass(frozen=True)
class ProrationEstimate:
    available: bool
    amount: Decimal | None = None
    remaining_fraction: Decimal | None = None
    reason: str = ""


def remaining_fraction(period_end: datetime, now: datetime, billing_period: str) -> Decimal:
    """Share of the current period still to run, clamped to [0, 1]."""
    period_length = PERIOD_LENGTH[BillingPeriod(billing_period)]
    fraction = Decimal(str((period_end - now).total_seconds())) / Decimal(
        str(period_length.total_seconds())
    )
    return min(max(fraction, Decimal("0")), Decimal("1"))


def estimate_proration(
    old_seat_count: int,
    old_billing_period: str,
    new_seat_count: int,
    new_billing_period: str,
    current_period_end: datetime | None,
    now: datetime,
) -> ProrationEstimate:
    """
    Estimate the cash delta of changing seats before the period ends.

    Positive amounts are charges, negative amounts are credits.
    """
    old_period = validate_billing_period(old_billing_period)
    new_period = validate_billing_period(new_billing_period)

    if old_period != new_period:
        return ProrationEstimate(available=False, reason=UNAVAILABLE_PERIOD_CHANGE)
    if current_period_end is None:
        return ProrationEstimate(available=False, reason=UNAVAILABLE_NO_PERIOD)

    fraction = remaining_fraction(current_period_end, now, old_period)
    delta = seat_cost(new_seat_count, old_period) - seat_cost(old_seat_count, old_period)
    amount = (delta * fraction).quantize(CENTS, rounding=ROUND_HALF_UP)

    return ProrationEstimate(
        available=True,
        amount=amount,
        remaining_fraction=fraction,
    )
