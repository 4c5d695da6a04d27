"""
Stripe client configuration.

Every Stripe call in the billing app goes through get_stripe() so tests can
patch a single seam per module.
"""

from types import ModuleType
from uuid import uuid4

import stripe

from apps.billing.exceptions import BillingProviderError, BillingProviderUnavailableError
from config.settings.base import settings

# Pinned so payload shapes (items, current_period) stay stable
STRIPE_API_VERSION = "2025-06-30.basil"

# Mutating calls carry an explicit idempotency key, so SDK retries are safe
STRIPE_MAX_NETWORK_RETRIES = 2


def configure_stripe() -> None:
    stripe.api_key = settings.STRIPE_SECRET_KEY
    stripe.api_version = STRIPE_API_VERSION
    stripe.max_network_retries = STRIPE_MAX_NETWORK_RETRIES


def get_stripe() -> ModuleType:
    """Return the stripe module, configured from settings."""
    configure_stripe()
    return stripe


def build_idempotency_key(operation: str, organization_id: int, key: str | None = None) -> str:
    """
    Idempotency key for a mutating Stripe call.

    A caller-supplied key makes client retries of the same request collapse
    into one Stripe mutation; without one every call is distinct.
    """
    return f"{operation}:{organization_id}:{key or uuid4().hex}"


def provider_error(exc: stripe.StripeError) -> BillingProviderError:
    """
    Translate a Stripe SDK error into a billing error.

    Connection failures and timeouts leave the outcome unknown; the
    webhook reconciles whatever Stripe actually applied.
    """
    if isinstance(exc, stripe.APIConnectionError):
        return BillingProviderUnavailableError("Billing provider could not be reached. Try again.")
    message = getattr(exc, "user_message", None) or "Billing provider rejected the request."
    return BillingProviderError(message)
