"""
Stripe webhook handler.

A plain Django view (not Django Ninja): signature verification needs the
raw request body.

Each event is processed at most once: the ProcessedWebhook marker and the
reconciliation write commit together, so a failed handler leaves no marker
and Stripe's retry is processed normally.
"""

import stripe
from django.db import transaction
from django.http import HttpRequest, HttpResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from apps.billing.events import parse_event
from apps.billing.exceptions import MalformedEventError
from apps.billing.reconciliation import hydrate, reconcile
from apps.billing.stripe_client import get_stripe
from apps.core.logging import get_logger
from apps.core.webhooks import is_webhook_processed, mark_webhook_processed
from config.settings.base import settings

logger = get_logger(__name__)

WEBHOOK_SOURCE = "stripe"


@csrf_exempt
@require_POST
def stripe_webhook(request: HttpRequest) -> HttpResponse:
    """
    Verify, de-duplicate and reconcile a Stripe event.

    Returns 400 for unverifiable or malformed events, 500 when processing
    fails so Stripe retries with backoff.
    """
    payload = request.body
    sig_header = request.headers.get("Stripe-Signature")

    if not sig_header:
        logger.warning("stripe_webhook_missing_signature")
        return HttpResponse(status=400)

    if not settings.STRIPE_WEBHOOK_SECRET:
        logger.error("stripe_webhook_secret_not_configured")
        return HttpResponse(status=500)

    get_stripe()  # Ensure Stripe is configured
    try:
        event = stripe.Webhook.construct_event(
            payload,
            sig_header,
            settings.STRIPE_WEBHOOK_SECRET,
        )
    except ValueError as e:
        logger.warning("stripe_webhook_invalid_payload", error=str(e))
        return HttpResponse(status=400)
    except stripe.SignatureVerificationError as e:
        logger.warning("stripe_webhook_invalid_signature", error=str(e))
        return HttpResponse(status=400)

    event_id = event.get("id")
    event_type = event.get("type")
    logger.info("stripe_webhook_received", event_id=event_id, event_type=event_type)

    if event_id and is_webhook_processed(WEBHOOK_SOURCE, event_id):
        logger.info("stripe_webhook_duplicate", event_id=event_id, event_type=event_type)
        return HttpResponse(status=200)

    try:
        billing_event = hydrate(parse_event(event))
        with transaction.atomic():
            if not mark_webhook_processed(WEBHOOK_SOURCE, event_id, event_type):
                # A concurrent delivery of the same event got there first
                return HttpResponse(status=200)
            reconcile(billing_event)
    except MalformedEventError as e:
        logger.warning(
            "stripe_webhook_malformed_event",
            event_id=event_id,
            event_type=event_type,
            error=str(e),
        )
        return HttpResponse(status=400)
    except Exception:
        logger.exception("stripe_webhook_handler_error", event_id=event_id, event_type=event_type)
        # Return 500 so Stripe will retry with exponential backoff
        return HttpResponse(status=500)

    return HttpResponse(status=200)
