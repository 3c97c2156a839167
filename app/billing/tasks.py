"""
Celery tasks for billing.

This module provides async tasks for:
- Re-running failed webhook events from their stored body
- Periodic retry of failed webhook events
- Periodic reset of webhook events stuck in PROCESSING
- Syncing the product catalog from Stripe

Schedules are stored in django-celery-beat (see migrations/0002).

Usage:
    from billing.tasks import reprocess_webhook_event, sync_product_catalog

    reprocess_webhook_event.delay(str(record.id))
    sync_product_catalog.delay()
"""

from __future__ import annotations

import logging
from datetime import timedelta
from uuid import UUID

from celery import shared_task
from django.conf import settings
from django.utils import timezone

from billing.adapters import StripeAdapter
from billing.exceptions import StripeError
from billing.models import WebhookAuditRecord
from billing.services import BillingService
from billing.state_machines import WebhookAuditStatus

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

RETRY_BATCH_SIZE = 100
STUCK_TIMEOUT_MESSAGE = "Processing timed out - reset for retry"


# =============================================================================
# Webhook Maintenance Tasks
# =============================================================================


@shared_task(acks_late=True)
def reprocess_webhook_event(record_id: str) -> dict:
    """
    Re-run a FAILED webhook audit record.

    The ledger decides whether the record can be claimed; records that
    succeeded or are being processed in the meantime are left alone.

    Args:
        record_id: UUID of the WebhookAuditRecord

    Raises:
        Exception: Whatever the handler raised, after the record was marked FAILED
    """
    # Import here to avoid circular imports
    from billing.webhooks.processor import get_webhook_processor

    if isinstance(record_id, str):
        record_id = UUID(record_id)

    try:
        record = WebhookAuditRecord.objects.get(id=record_id)
    except WebhookAuditRecord.DoesNotExist:
        logger.error(
            "WebhookAuditRecord not found",
            extra={"audit_record_id": str(record_id)},
        )
        return {"status": "not_found", "audit_record_id": str(record_id)}

    logger.info(
        f"Reprocessing webhook: {record.event_type}",
        extra={
            "audit_record_id": str(record_id),
            "stripe_event_id": record.stripe_event_id,
            "attempt_count": record.attempt_count,
        },
    )

    result = get_webhook_processor().replay(record)
    return {
        "status": result.status,
        "audit_record_id": str(record_id),
        "stripe_event_id": result.stripe_event_id,
    }


@shared_task
def retry_failed_webhooks() -> dict:
    """
    Periodic task to retry failed webhook events.

    Queues FAILED records that are still below WEBHOOK_MAX_ATTEMPTS,
    oldest first, in batches.

    Returns:
        Dict with count of records queued for retry
    """
    failed_records = WebhookAuditRecord.objects.retryable().order_by("created_at")[
        :RETRY_BATCH_SIZE
    ]

    queued_count = 0
    for record in failed_records:
        try:
            reprocess_webhook_event.delay(str(record.id))
        except Exception as e:
            logger.error(
                f"Failed to queue webhook for retry: {e}",
                extra={"audit_record_id": str(record.id)},
            )
            continue

        queued_count += 1
        logger.info(
            "Queued failed webhook for retry",
            extra={
                "audit_record_id": str(record.id),
                "stripe_event_id": record.stripe_event_id,
                "attempt_count": record.attempt_count,
            },
        )

    logger.info(
        f"Queued {queued_count} failed webhooks for retry",
        extra={"queued_count": queued_count},
    )
    return {"queued_count": queued_count}


@shared_task
def cleanup_stuck_webhooks() -> dict:
    """
    Periodic task to reset stuck webhooks.

    Records left in PROCESSING longer than WEBHOOK_STUCK_THRESHOLD_MINUTES
    (a worker died mid-delivery) are marked FAILED so a redelivery or
    retry_failed_webhooks can claim them again.

    Returns:
        Dict with count of records reset
    """
    now = timezone.now()
    threshold = now - timedelta(minutes=settings.WEBHOOK_STUCK_THRESHOLD_MINUTES)

    stuck_records = WebhookAuditRecord.objects.filter(
        status=WebhookAuditStatus.PROCESSING,
        updated_at__lt=threshold,
    )

    reset_count = 0
    for record in stuck_records:
        # Conditional so a delivery finishing right now is not overwritten
        updated = WebhookAuditRecord.objects.filter(
            pk=record.pk,
            status=WebhookAuditStatus.PROCESSING,
        ).update(
            status=WebhookAuditStatus.FAILED,
            error_message=STUCK_TIMEOUT_MESSAGE,
            processed_at=now,
            updated_at=now,
        )
        if not updated:
            continue

        reset_count += 1
        logger.warning(
            "Reset stuck webhook",
            extra={
                "audit_record_id": str(record.id),
                "stripe_event_id": record.stripe_event_id,
                "stuck_since": record.updated_at.isoformat(),
            },
        )

    if reset_count > 0:
        logger.info(
            f"Reset {reset_count} stuck webhooks",
            extra={"reset_count": reset_count},
        )

    return {"reset_count": reset_count}


# =============================================================================
# Catalog Tasks
# =============================================================================


@shared_task(bind=True, max_retries=3)
def sync_product_catalog(self) -> dict:
    """
    Mirror the Stripe product catalog into Product.

    Runs hourly and after product.* / price.* webhooks. Rate limits and
    Stripe outages are retried after 1, 2 and 4 minutes; other failures
    are logged and reported in the result.
    """
    try:
        result = BillingService.sync_products(StripeAdapter.from_settings())
    except StripeError as e:
        if not e.is_retryable:
            raise
        countdown = 2**self.request.retries * 60
        logger.warning(
            "Catalog sync hit a transient Stripe error, retrying",
            extra={
                "error_code": e.error_code,
                "retries": self.request.retries,
                "countdown": countdown,
            },
        )
        raise self.retry(exc=e, countdown=countdown)

    if result.success:
        return {"status": "synced", **result.data}

    logger.error(
        f"Catalog sync failed: {result.error}",
        extra={"error_code": result.error_code},
    )
    return {"status": "failed", "error_code": result.error_code}
