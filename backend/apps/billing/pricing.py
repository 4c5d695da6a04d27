"""
Progressive seat pricing.

Seats are priced greedily from the lowest tier upward: with tiers
1-20 @ 35 and 21-50 @ 32, 25 seats cost 20 x 35 + 5 x 32. Yearly prices are
configured per tier rather than derived from the monthly price.

Pure functions - no database or Stripe access.
"""

from collections.abc import Sequence
from dataclasses import dataclass, field
from decimal import Decimal

from django.conf import settings

from apps.billing.constants import BillingPeriod
from apps.billing.exceptions import InvalidBillingPeriodError, SeatCountOutOfRangeError


@dataclass(frozen=True)
class PricingTier:
    """A contiguous seat range with its own per-seat price (EUR)."""

    min_seats: int
    max_seats: int
    monthly_price: Decimal
    yearly_price: Decimal
    stripe_monthly_price_id: str = ""
    stripe_yearly_price_id: str = ""

    @property
    def capacity(self) -> int:
        return self.max_seats - self.min_seats + 1

    @property
    def label(self) -> str:
        return f"{self.min_seats}-{self.max_seats} seats"

    def price_for(self, billing_period: str) -> Decimal:
        if billing_period == BillingPeriod.YEARLY:
            return self.yearly_price
        return self.monthly_price

    def stripe_price_id_for(self, billing_period: str) -> str:
        if billing_period == BillingPeriod.YEARLY:
            return self.stripe_yearly_price_id
        return self.stripe_monthly_price_id


@dataclass(frozen=True)
class TierLine:
    """Seats falling into one tier, and what they cost."""

    tier_index: int
    tier_label: str
    seats_in_tier: int
    price_per_seat: Decimal
    subtotal: Decimal


@dataclass(frozen=True)
class PriceBreakdown:
    seat_count: int
    billing_period: str
    lines: list[TierLine] = field(default_factory=list)
    total: Decimal = Decimal("0")


def get_pricing_tiers() -> tuple[PricingTier, ...]:
    """Build the tier table from settings (validated at settings load)."""
    return tuple(
        PricingTier(
            min_seats=tier.min_seats,
            max_seats=tier.max_seats,
            monthly_price=tier.monthly_price,
            yearly_price=tier.yearly_price,
            stripe_monthly_price_id=tier.stripe_monthly_price_id,
            stripe_yearly_price_id=tier.stripe_yearly_price_id,
        )
        for tier in settings.SEAT_PRICING_TIERS
    )


def max_seat_count(tiers: Sequence[PricingTier] | None = None) -> int:
    """Highest purchasable seat count."""
    tiers = tiers if tiers is not None else get_pricing_tiers()
    return tiers[-1].max_seats


def validate_billing_period(billing_period: str) -> BillingPeriod:
    try:
        return BillingPeriod(billing_period)
    except ValueError:
        raise InvalidBillingPeriodError(
            f"Invalid billing period '{billing_period}'. Must be 'monthly' or 'yearly'."
        ) from None


def validate_seat_count(seat_count: int, tiers: Sequence[PricingTier] | None = None) -> int:
    """
    Reject seat counts outside 0..max. Never clamps.

    Raises:
        SeatCountOutOfRangeError
    """
    ceiling = max_seat_count(tiers)
    if seat_count < 0 or seat_count > ceiling:
        raise SeatCountOutOfRangeError(
            f"Seat count must be between 0 and {ceiling}, got {seat_count}."
        )
    return seat_count


def calculate_breakdown(
    seat_count: int,
    billing_period: str,
    tiers: Sequence[PricingTier] | None = None,
) -> PriceBreakdown:
    """
    Price seat_count seats across the progressive tiers.

    Zero seats give an empty breakdown with a total of 0.

    Raises:
        SeatCountOutOfRangeError: seat_count is negative or above the last tier
        InvalidBillingPeriodError: billing_period is not monthly/yearly
    """
    tiers = tiers if tiers is not None else get_pricing_tiers()
    period = validate_billing_period(billing_period)
    validate_seat_count(seat_count, tiers)

    lines: list[TierLine] = []
    remaining = seat_count
    for index, tier in enumerate(tiers):
        if remaining <= 0:
            break
        seats = min(remaining, tier.capacity)
        price = tier.price_for(period)
        lines.append(
            TierLine(
                tier_index=index,
                tier_label=tier.label,
                seats_in_tier=seats,
                price_per_seat=price,
                subtotal=price * seats,
            )
        )
        remaining -= seats

    return PriceBreakdown(
        seat_count=seat_count,
        billing_period=period,
        lines=lines,
        total=sum((line.subtotal for line in lines), Decimal("0")),
    )


def seat_cost(
    seat_count: int, billing_period: str, tiers: Sequence[PricingTier] | None = None
) -> Decimal:
    return calculate_breakdown(seat_count, billing_period, tiers).total


def yearly_savings(seat_count: int, tiers: Sequence[PricingTier] | None = None) -> Decimal:
    """What yearly billing saves over twelve monthly invoices. Display only."""
    tiers = tiers if tiers is not None else get_pricing_tiers()
    breakdown = calculate_breakdown(seat_count, BillingPeriod.YEARLY, tiers)
    return sum(
        (
            (tiers[line.tier_index].monthly_price * 12 - line.price_per_seat) * line.seats_in_tier
            for line in breakdown.lines
        ),
        Decimal("0"),
    )


def stripe_line_items(
    breakdown: PriceBreakdown, tiers: Sequence[PricingTier] | None = None
) -> list[dict]:
    """One Stripe line item per tier used by the breakdown."""
    tiers = tiers if tiers is not None else get_pricing_tiers()
    return [
        {
            "price": tiers[line.tier_index].stripe_price_id_for(breakdown.billing_period),
            "quantity": line.seats_in_tier,
        }
        for line in breakdown.lines
    ]


def seat_price_ids(tiers: Sequence[PricingTier] | None = None) -> set[str]:
    """Every Stripe price ID that represents seats, across both periods."""
    tiers = tiers if tiers is not None else get_pricing_tiers()
    ids = set()
    for tier in tiers:
        ids.add(tier.stripe_monthly_price_id)
        ids.add(tier.stripe_yearly_price_id)
    ids.discard("")
    return ids


def tier_for_price_id(
    price_id: str, tiers: Sequence[PricingTier] | None = None
) -> tuple[int, str] | None:
    """
    Map a Stripe price ID back to (tier index, billing period).

    Returns None for prices that are not seat prices, e.g. add-ons.
    """
    tiers = tiers if tiers is not None else get_pricing_tiers()
    for index, tier in enumerate(tiers):
        if price_id and price_id == tier.stripe_monthly_price_id:
            return index, BillingPeriod.MONTHLY
        if price_id and price_id == tier.stripe_yearly_price_id:
            return index, BillingPeriod.YEARLY
    return None
