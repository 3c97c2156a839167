"""
WebhookAuditRecord: one row per provider event id.

The unique stripe_event_id is the idempotency boundary of the webhook
pipeline. Rows are written through billing.webhooks.ledger.AuditLedger;
nothing else should change their status.

Usage:
    from billing.models import WebhookAuditRecord

    for record in WebhookAuditRecord.objects.retryable():
        print(record.stripe_event_id, record.error_message)
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from billing.state_machines import WebhookAuditStatus


class WebhookAuditRecordQuerySet(models.QuerySet):
    def retryable(self):
        """FAILED records still under WEBHOOK_MAX_ATTEMPTS."""
        return self.filter(
            status=WebhookAuditStatus.FAILED,
            attempt_count__lt=settings.WEBHOOK_MAX_ATTEMPTS,
        )


class WebhookAuditRecord(UUIDPrimaryKeyMixin, BaseModel):
    """
    Audit trail entry for a single inbound webhook event.

    Processing Flow:
        1. Signature verified, body decoded
        2. Ledger claims the row in PROCESSING (insert, or reclaim a FAILED row)
        3. Handler runs
        4. Ledger finishes the row as SUCCESS, IGNORED or FAILED
        5. FAILED rows are retried by redelivery or billing.tasks

    Fields:
        stripe_event_id: Provider Event ID (evt_xxx), unique
        event_type: Provider event type tag
        status: Processing status
        request_body: Raw payload text exactly as received
        signature: Stripe-Signature header of the claiming delivery
        api_version: Provider API version the event was rendered with
        user / stripe_customer_id / stripe_subscription_id: Trace fields
            filled in by handlers
        attempt_count: Number of times the event has been claimed
        processing_time_ms / processed_at: Timing of the last attempt
        error_message / error_stack: Failure details of the last attempt
    """

    # ==========================================================================
    # Event Identification
    # ==========================================================================

    stripe_event_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Stripe Event ID (evt_xxx) - unique constraint for idempotency",
    )

    event_type = models.CharField(
        max_length=100,
        db_index=True,
        help_text="Stripe event type (e.g. 'customer.subscription.updated')",
    )

    status = models.CharField(
        max_length=20,
        choices=WebhookAuditStatus.choices,
        default=WebhookAuditStatus.PROCESSING,
        db_index=True,
    )

    # ==========================================================================
    # Payload
    # ==========================================================================

    request_body = models.TextField(
        help_text="Raw request body, kept byte-for-byte for replay",
    )

    signature = models.TextField(blank=True, default="")

    api_version = models.CharField(max_length=50, null=True, blank=True)

    # ==========================================================================
    # Traceability
    # ==========================================================================

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="webhook_audit_records",
    )

    stripe_customer_id = models.CharField(
        max_length=255, null=True, blank=True, db_index=True
    )

    stripe_subscription_id = models.CharField(max_length=255, null=True, blank=True)

    # ==========================================================================
    # Processing Outcome
    # ==========================================================================

    attempt_count = models.PositiveSmallIntegerField(
        default=1,
        help_text="Number of processing attempts",
    )

    processing_time_ms = models.PositiveIntegerField(null=True, blank=True)

    processed_at = models.DateTimeField(null=True, blank=True)

    error_message = models.TextField(null=True, blank=True)

    error_stack = models.TextField(null=True, blank=True)

    objects = WebhookAuditRecordQuerySet.as_manager()

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Webhook Audit Record"
        verbose_name_plural = "Webhook Audit Records"
        indexes = [
            models.Index(fields=["status", "created_at"], name="billing_web_status_3b8f2d_idx"),
            models.Index(fields=["status", "attempt_count"], name="billing_web_status_9a4c61_idx"),
            models.Index(fields=["event_type", "created_at"], name="billing_web_event_t_5d2e80_idx"),
        ]

    def __str__(self) -> str:
        return f"WebhookAuditRecord({self.stripe_event_id}, {self.event_type}, {self.status})"
