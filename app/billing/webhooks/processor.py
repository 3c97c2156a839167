"""
Webhook processing pipeline.

    handle_delivery(raw_body, signature)
        verify signature -> decode event -> process()

    process(event, payload, signature)
        ledger.begin -> short-circuit duplicates -> route
        -> handler + ledger.finish in one transaction
        -> on exception: roll back, finish FAILED, re-raise

The processor is built with its collaborators (signing secret, tolerance,
ledger, notification dispatcher) passed in; get_webhook_processor() wires
the defaults from settings.

Usage:
    processor = get_webhook_processor()
    result = processor.handle_delivery(request.body, request.headers.get("Stripe-Signature"))
    if result.in_progress:
        return JsonResponse({...}, status=409)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from django.conf import settings
from django.db import transaction

from billing.exceptions import AuditLedgerError
from billing.state_machines import WebhookAuditStatus
from billing.webhooks.events import parse_event
from billing.webhooks.ledger import AuditLedger
from billing.webhooks.results import HandlerResult, Outcome
from billing.webhooks.router import route
from billing.webhooks.signatures import verify_signature
from notifications.dispatcher import NotificationDispatcher

if TYPE_CHECKING:
    from collections.abc import Callable

    from billing.models import WebhookAuditRecord
    from billing.webhooks.events import ProviderEvent
    from billing.webhooks.ledger import AuditHandle

logger = logging.getLogger(__name__)


# =============================================================================
# Data Types
# =============================================================================


@dataclass
class HandlerContext:
    """
    What a handler gets besides the event.

    Attributes:
        handle: The claimed audit handle, for annotate()
        notifier: Dispatcher for transactional emails
    """

    handle: AuditHandle
    notifier: NotificationDispatcher

    def after_commit(self, func: Callable[[], object]) -> None:
        """
        Run func once the handler's transaction commits.

        Nothing runs if the handler fails and the transaction rolls back.
        Errors raised by func are logged by Django and do not reach the
        webhook response.
        """
        transaction.on_commit(func, robust=True)


@dataclass(frozen=True)
class ProcessingResult:
    """
    Result of one delivery.

    Attributes:
        status: Ledger status after this delivery
        duplicate: The event had already been processed
        in_progress: Another delivery currently holds the event
        outcome: Handler outcome when this delivery ran one
    """

    record_id: object
    stripe_event_id: str
    event_type: str
    status: str
    duplicate: bool = False
    in_progress: bool = False
    outcome: Outcome | None = None


# =============================================================================
# Processor
# =============================================================================


class WebhookProcessor:
    """Runs verified webhook events through the ledger and their handlers."""

    def __init__(
        self,
        secret: str,
        tolerance: int,
        ledger: AuditLedger | None = None,
        notifier: NotificationDispatcher | None = None,
    ):
        self.secret = secret
        self.tolerance = tolerance
        self.ledger = ledger or AuditLedger()
        self.notifier = notifier or NotificationDispatcher()

    def handle_delivery(
        self,
        raw_body: bytes | None,
        signature: str | None,
    ) -> ProcessingResult:
        """
        Authenticate, decode and process one HTTP delivery.

        Raises:
            InvalidSignatureError: Authentication failed; nothing was recorded
            MalformedEventError: Body is not a usable event; nothing was recorded
            Exception: Whatever the handler raised, after it was recorded FAILED
        """
        payload = verify_signature(raw_body, signature, self.secret, self.tolerance)
        event = parse_event(payload)
        logger.info(
            f"Received Stripe webhook: {event.event_type}",
            extra={"stripe_event_id": event.event_id, "event_type": event.event_type},
        )
        return self.process(event, payload, signature or "")

    def process(
        self,
        event: ProviderEvent,
        payload: str,
        signature: str,
    ) -> ProcessingResult:
        """Record and handle an already verified event."""
        handle = self.ledger.begin(event, payload, signature)
        return self._run(event, handle)

    def replay(self, record: WebhookAuditRecord) -> ProcessingResult:
        """
        Re-run a FAILED record from its stored body.

        The body was authenticated when it was first received, so the
        signature (likely outside the tolerance window by now) is not
        checked again.
        """
        event = parse_event(record.request_body)
        handle = self.ledger.reclaim(record.pk)
        return self._run(event, handle)

    # =========================================================================
    # Internals
    # =========================================================================

    def _run(self, event: ProviderEvent, handle: AuditHandle) -> ProcessingResult:
        log_context = {
            "stripe_event_id": event.event_id,
            "event_type": event.event_type,
            "audit_record_id": str(handle.record_id),
        }

        if not handle.claimed:
            logger.info(
                "Webhook already handled, skipping"
                if handle.is_duplicate
                else "Webhook is being processed by another delivery",
                extra={**log_context, "status": handle.status},
            )
            return self._result(event, handle)

        handler = route(event.event_type)
        if handler is None:
            self.ledger.finish(handle, WebhookAuditStatus.IGNORED)
            logger.info(
                f"No handler registered for event type: {event.event_type}",
                extra=log_context,
            )
            return self._result(event, handle, HandlerResult.ignored())

        context = HandlerContext(handle=handle, notifier=self.notifier)
        try:
            with transaction.atomic():
                result = handler(event, context)
                self.ledger.finish(handle, result.audit_status)
        except Exception as exc:
            logger.exception(
                "Webhook processing failed with exception",
                extra={**log_context, "attempt_count": handle.attempt_count},
            )
            try:
                self.ledger.finish(handle, WebhookAuditStatus.FAILED, error=exc)
            except AuditLedgerError:
                logger.error(
                    "Could not record webhook failure, record is no longer processing",
                    extra=log_context,
                )
            raise

        logger.info(
            f"Webhook processed: {result.outcome.value}",
            extra={**log_context, "detail": result.detail},
        )
        return self._result(event, handle, result)

    @staticmethod
    def _result(
        event: ProviderEvent,
        handle: AuditHandle,
        result: HandlerResult | None = None,
    ) -> ProcessingResult:
        return ProcessingResult(
            record_id=handle.record_id,
            stripe_event_id=event.event_id,
            event_type=event.event_type,
            status=handle.status,
            duplicate=handle.is_duplicate,
            in_progress=handle.in_progress,
            outcome=result.outcome if result else None,
        )


def get_webhook_processor() -> WebhookProcessor:
    """Build a processor from settings."""
    return WebhookProcessor(
        secret=settings.STRIPE_WEBHOOK_SECRET,
        tolerance=settings.STRIPE_WEBHOOK_TOLERANCE_SECONDS,
        ledger=AuditLedger(),
        notifier=NotificationDispatcher(),
    )
