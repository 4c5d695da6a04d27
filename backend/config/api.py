"""
Django Ninja API configuration.
"""

from django.http import HttpRequest, HttpResponse
from ninja import NinjaAPI

from apps.billing.api import router as billing_router
from apps.billing.exceptions import BillingError
from apps.core.logging import get_logger

logger = get_logger(__name__)

api = NinjaAPI(
    title="Seat Billing API",
    version="1.0.0",
    description="Seat-based organization subscriptions with Stripe billing.",
    openapi_extra={
        "info": {
            "contact": {"name": "API Support"},
        },
        "tags": [
            {
                "name": "billing",
                "description": "Seat pricing, checkout, seat changes and capacity",
            },
            {
                "name": "health",
                "description": "Service health and readiness checks",
            },
        ],
        "components": {
            "securitySchemes": {
                "bearerAuth": {
                    "type": "http",
                    "scheme": "bearer",
                    "description": "Signed session token. Include as: Authorization: Bearer <token>",
                }
            }
        },
    },
)

# Register routers
api.add_router("/billing", billing_router)


@api.exception_handler(BillingError)
def billing_error_handler(request: HttpRequest, exc: BillingError) -> HttpResponse:
    """Render billing errors with a stable code the frontend can switch on."""
    logger.info("billing_error", code=exc.code, status_code=exc.status_code, detail=str(exc))
    return api.create_response(
        request,
        {"detail": str(exc), "code": exc.code},
        status=exc.status_code,
    )


@api.get("/health", tags=["health"], operation_id="healthCheck", summary="Health check")
def health_check(request: HttpRequest) -> dict:
    """Health check endpoint for load balancer."""
    return {"status": "ok"}
