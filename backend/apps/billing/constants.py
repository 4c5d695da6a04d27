"""
Constants for billing app.
"""

from datetime import timedelta

from django.db import models


class BillingPeriod(models.TextChoices):
    MONTHLY = "monthly", "Monthly"
    YEARLY = "yearly", "Yearly"


# Stripe recurring price interval -> local billing period
STRIPE_INTERVAL_TO_PERIOD = {
    "month": BillingPeriod.MONTHLY,
    "year": BillingPeriod.YEARLY,
}

# Nominal period lengths, used only by the proration preview
PERIOD_LENGTH = {
    BillingPeriod.MONTHLY: timedelta(days=30),
    BillingPeriod.YEARLY: timedelta(days=365),
}

# Stripe statuses in which subscription items may be modified
MUTABLE_STRIPE_STATUSES = frozenset({"active", "trialing"})

CHECKOUT_TYPE_SEAT_PURCHASE = "seat_purchase"

# Only renewals refresh the billing period from invoices
RENEWAL_BILLING_REASON = "subscription_cycle"

CURRENCY = "eur"

# An in-flight seat change older than this is treated as abandoned
PENDING_SEAT_CHANGE_TTL = timedelta(minutes=5)
