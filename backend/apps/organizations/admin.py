"""Admin configuration for organizations app."""

from django.contrib import admin, messages

from apps.organizations.models import Organization
from apps.organizations.services import approve_organization, reject_organization


@admin.register(Organization)
class OrganizationAdmin(admin.ModelAdmin):
    list_display = ["name", "slug", "type", "validation_status", "validated_at", "created_at"]
    list_filter = ["type", "validation_status"]
    search_fields = ["name", "slug", "billing_email"]
    readonly_fields = ["validation_status", "validated_at", "created_at", "updated_at"]
    prepopulated_fields = {"slug": ("name",)}
    ordering = ["-created_at"]
    actions = ["approve", "reject"]

    @admin.action(description="Approve selected organizations")
    def approve(self, request, queryset):
        for org in queryset:
            approve_organization(org)
        self.message_user(request, f"Approved {queryset.count()} organization(s).", messages.SUCCESS)

    @admin.action(description="Reject selected organizations")
    def reject(self, request, queryset):
        for org in queryset:
            reject_organization(org)
        self.message_user(request, f"Rejected {queryset.count()} organization(s).", messages.SUCCESS)
