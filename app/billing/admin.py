"""
Billing admin configuration.

- WebhookAuditRecordAdmin: read-only ledger browser with a requeue action
- SubscriptionAdmin: subscription browser (status is changed by webhooks only)
- ProductAdmin: catalog browser with a sync action
"""

from django.contrib import admin, messages

from billing.models import Product, Subscription, WebhookAuditRecord
from billing.tasks import reprocess_webhook_event, sync_product_catalog


@admin.register(WebhookAuditRecord)
class WebhookAuditRecordAdmin(admin.ModelAdmin):
    """
    Admin configuration for WebhookAuditRecord.

    Audit records are immutable from the admin. Failed records can be
    requeued, which runs them through the same ledger as a redelivery.
    """

    list_display = [
        "stripe_event_id",
        "event_type",
        "status",
        "attempt_count",
        "processing_time_ms",
        "stripe_customer_id",
        "processed_at",
        "created_at",
    ]
    list_filter = ["status", "event_type", "created_at"]
    search_fields = [
        "id",
        "stripe_event_id",
        "event_type",
        "stripe_customer_id",
        "stripe_subscription_id",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]
    actions = ["requeue_failed_events"]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "stripe_event_id", "event_type", "status", "api_version"),
            },
        ),
        (
            "Processing",
            {
                "fields": ("attempt_count", "processing_time_ms", "processed_at"),
            },
        ),
        (
            "Trace",
            {
                "fields": ("user", "stripe_customer_id", "stripe_subscription_id"),
            },
        ),
        (
            "Error Info",
            {
                "fields": ("error_message", "error_stack"),
                "classes": ("collapse",),
            },
        ),
        (
            "Request",
            {
                "fields": ("request_body", "signature"),
                "classes": ("collapse",),
            },
        ),
        (
            "Timestamps",
            {
                "fields": ("created_at", "updated_at"),
            },
        ),
    )

    def get_readonly_fields(self, request, obj=None):
        return [field.name for field in self.model._meta.fields]

    def has_delete_permission(self, request, obj=None) -> bool:
        """Disable delete for audit records (audit trail)."""
        return False

    def has_add_permission(self, request) -> bool:
        """Disable adding audit records through admin."""
        return False

    @admin.action(description="Requeue selected failed events")
    def requeue_failed_events(self, request, queryset):
        queued = 0
        for record in queryset.retryable():
            reprocess_webhook_event.delay(str(record.id))
            queued += 1

        skipped = queryset.count() - queued
        self.message_user(
            request,
            f"Queued {queued} failed event(s) for reprocessing. "
            f"Skipped {skipped} that are not failed or are out of attempts.",
            messages.SUCCESS if queued else messages.WARNING,
        )


@admin.register(Subscription)
class SubscriptionAdmin(admin.ModelAdmin):
    """Admin configuration for Subscription."""

    list_display = [
        "user",
        "status",
        "stripe_customer_id",
        "stripe_subscription_id",
        "current_period_end",
        "cancel_at_period_end",
        "updated_at",
    ]
    list_filter = ["status", "cancel_at_period_end"]
    search_fields = [
        "id",
        "user__email",
        "user__username",
        "stripe_customer_id",
        "stripe_subscription_id",
    ]
    raw_id_fields = ["user"]
    readonly_fields = [
        "id",
        "status",
        "last_event_at",
        "last_invoice_event_at",
        "version",
        "created_at",
        "updated_at",
    ]
    ordering = ["-created_at"]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "user", "status"),
            },
        ),
        (
            "Stripe",
            {
                "fields": (
                    "stripe_customer_id",
                    "stripe_subscription_id",
                    "stripe_price_id",
                    "stripe_product_id",
                ),
            },
        ),
        (
            "Period",
            {
                "fields": (
                    "current_period_start",
                    "current_period_end",
                    "cancel_at_period_end",
                    "canceled_at",
                    "trial_end",
                ),
            },
        ),
        (
            "Payments",
            {
                "fields": ("last_payment_amount", "last_payment_date", "next_payment_date"),
            },
        ),
        (
            "Concurrency",
            {
                "fields": ("last_event_at", "last_invoice_event_at", "version"),
                "classes": ("collapse",),
            },
        ),
        (
            "Timestamps",
            {
                "fields": ("created_at", "updated_at"),
            },
        ),
    )


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    """Admin configuration for Product."""

    list_display = [
        "name",
        "price",
        "currency",
        "interval",
        "display_order",
        "is_active",
        "is_popular",
    ]
    list_filter = ["is_active", "interval", "is_popular"]
    search_fields = ["name", "stripe_product_id", "stripe_price_id"]
    readonly_fields = ["id", "stripe_product_id", "stripe_price_id", "created_at", "updated_at"]
    ordering = ["display_order", "price"]
    actions = ["sync_from_stripe"]

    @admin.action(description="Sync catalog from Stripe")
    def sync_from_stripe(self, request, queryset):
        sync_product_catalog.delay()
        self.message_user(request, "Catalog sync queued.", messages.SUCCESS)
