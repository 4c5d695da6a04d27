"""
Management command to set up Stripe products and prices for seat tiers.

Run once per environment, and again whenever the tier table changes.
Usage: python manage.py setup_stripe_seat_prices
"""

import json
from decimal import Decimal

from django.conf import settings as django_settings
from django.core.management.base import BaseCommand, CommandError

from apps.billing.constants import CURRENCY
from apps.billing.pricing import get_pricing_tiers
from apps.billing.stripe_client import get_stripe
from config.settings.base import settings

APP_METADATA = "seatbill"


def to_cents(amount: Decimal) -> int:
    return int((amount * 100).to_integral_value())


class Command(BaseCommand):
    help = "Create (or find) one Stripe product per seat tier with monthly and yearly prices"

    def add_arguments(self, parser):
        parser.add_argument(
            "--pricing-version",
            type=str,
            default=None,
            help="Tier table version to tag prices with (default: SEAT_PRICING_VERSION)",
        )
        parser.add_argument(
            "--force",
            action="store_true",
            help="Create new prices even if matching ones exist",
        )

    def handle(self, *args, **options):
        if not settings.STRIPE_SECRET_KEY:
            raise CommandError("STRIPE_SECRET_KEY not set. Add it to your .env file first.")

        stripe = get_stripe()
        version = options["pricing_version"] or django_settings.SEAT_PRICING_VERSION
        self.stdout.write(f"Setting up seat prices for pricing version {version}")

        tiers_out = []
        for index, tier in enumerate(get_pricing_tiers(), start=1):
            tier_key = f"{version}:tier{index}"
            product = self._find_or_create_product(stripe, tier_key, tier.label, options["force"])

            monthly = self._find_or_create_price(
                stripe, product.id, tier_key, "month", to_cents(tier.monthly_price), options["force"]
            )
            yearly = self._find_or_create_price(
                stripe, product.id, tier_key, "year", to_cents(tier.yearly_price), options["force"]
            )
            tiers_out.append(
                {
                    "min_seats": tier.min_seats,
                    "max_seats": tier.max_seats,
                    "monthly_price": str(tier.monthly_price),
                    "yearly_price": str(tier.yearly_price),
                    "stripe_monthly_price_id": monthly.id,
                    "stripe_yearly_price_id": yearly.id,
                }
            )

        self.stdout.write(
            self.style.SUCCESS(
                "\nStripe seat prices ready. Add this to your .env:\n\n"
                f"SEAT_PRICING_VERSION={version}\n"
                f"SEAT_PRICING_TIERS='{json.dumps(tiers_out)}'\n"
            )
        )
        self.stdout.write(
            self.style.NOTICE(
                "\nWebhook endpoint: /webhooks/stripe/\n"
                "Events: checkout.session.completed, customer.subscription.*, "
                "invoice.paid, invoice.payment_failed\n"
            )
        )

    def _find_or_create_product(self, stripe, tier_key: str, label: str, force: bool):
        if not force:
            products = stripe.Product.search(
                query=f"metadata['app']:'{APP_METADATA}' AND metadata['tier']:'{tier_key}' "
                "AND active:'true'"
            )
            if products.data:
                self.stdout.write(self.style.WARNING(f"Found existing product: {products.data[0].id}"))
                return products.data[0]

        product = stripe.Product.create(
            name=f"Seats {label}",
            description=f"Per-seat subscription, {label}",
            metadata={"app": APP_METADATA, "tier": tier_key},
        )
        self.stdout.write(f"Created product: {product.id}")
        return product

    def _find_or_create_price(
        self, stripe, product_id: str, tier_key: str, interval: str, unit_amount: int, force: bool
    ):
        if not force:
            prices = stripe.Price.list(product=product_id, active=True, type="recurring")
            for price in prices.data:
                if (
                    price.recurring.interval == interval
                    and price.unit_amount == unit_amount
                    and price.currency == CURRENCY
                ):
                    self.stdout.write(self.style.WARNING(f"Found existing price: {price.id}"))
                    return price

        price = stripe.Price.create(
            product=product_id,
            unit_amount=unit_amount,
            currency=CURRENCY,
            recurring={"interval": interval, "usage_type": "licensed"},
            billing_scheme="per_unit",
            metadata={"app": APP_METADATA, "tier": tier_key},
        )
        self.stdout.write(f"Created {interval}ly price: {price.id}")
        return price
