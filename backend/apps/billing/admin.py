"""Admin configuration for billing app."""

from django.contrib import admin

from apps.billing.models import OrganizationSubscription


@admin.register(OrganizationSubscription)
class OrganizationSubscriptionAdmin(admin.ModelAdmin):
    """
    Read-only view of seat entitlements.

    Status, period and seats are written by Stripe webhooks only; editing
    them here would be overwritten on the next event.
    """

    list_display = [
        "organization",
        "status",
        "seat_limit",
        "billing_period",
        "current_period_end",
        "cancel_at_period_end",
        "has_pending_change",
    ]
    list_filter = ["status", "billing_period", "cancel_at_period_end"]
    search_fields = ["organization__name", "stripe_customer_id", "stripe_subscription_id"]
    ordering = ["-created_at"]

    def get_readonly_fields(self, request, obj=None):
        return [field.name for field in self.model._meta.fields]

    def has_add_permission(self, request) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        return False

    @admin.display(boolean=True, description="Change in flight")
    def has_pending_change(self, obj: OrganizationSubscription) -> bool:
        return obj.has_live_claim
