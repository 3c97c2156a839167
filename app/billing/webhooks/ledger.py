"""
Audit ledger for webhook events.

The ledger is the idempotency boundary of the pipeline. Every provider
event id maps to exactly one WebhookAuditRecord, and only the delivery that
*claims* the record runs the handler.

begin() outcomes:
    new event id               insert PROCESSING, attempt 1      -> claimed
    existing SUCCESS / IGNORED nothing written                   -> duplicate
    existing PROCESSING        nothing written                   -> in progress
    existing FAILED            back to PROCESSING, attempt + 1   -> claimed

finish() moves a PROCESSING record to its terminal status with one
conditional UPDATE, so a record leaves PROCESSING at most once per claim.

Usage:
    ledger = AuditLedger()
    handle = ledger.begin(event, payload, signature)
    if handle.claimed:
        with transaction.atomic():
            ...
            handle.annotate(user_id=subscription.user_id, customer_id="cus_xxx")
            ledger.finish(handle, WebhookAuditStatus.SUCCESS)
"""

from __future__ import annotations

import logging
import time
import traceback
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from billing.exceptions import AuditLedgerError
from billing.models import WebhookAuditRecord
from billing.state_machines import WebhookAuditStatus

if TYPE_CHECKING:
    from typing import Any
    from uuid import UUID

    from billing.webhooks.events import ProviderEvent

logger = logging.getLogger(__name__)


class Claim(str, Enum):
    CLAIMED = "claimed"
    DUPLICATE = "duplicate"
    IN_PROGRESS = "in_progress"


@dataclass
class AuditHandle:
    """
    A delivery's view of its audit record.

    Trace fields collected with annotate() are written by finish().
    """

    record_id: UUID
    stripe_event_id: str
    claim: Claim
    status: str
    attempt_count: int
    started_at: float = field(default_factory=time.monotonic)
    user_id: Any = None
    customer_id: str | None = None
    subscription_id: str | None = None

    @property
    def claimed(self) -> bool:
        return self.claim is Claim.CLAIMED

    @property
    def is_duplicate(self) -> bool:
        return self.claim is Claim.DUPLICATE

    @property
    def in_progress(self) -> bool:
        return self.claim is Claim.IN_PROGRESS

    def annotate(
        self,
        user_id: Any = None,
        customer_id: str | None = None,
        subscription_id: str | None = None,
    ) -> None:
        """Record trace fields; None leaves a field unchanged."""
        if user_id is not None:
            self.user_id = user_id
        if customer_id:
            self.customer_id = customer_id
        if subscription_id:
            self.subscription_id = subscription_id


class AuditLedger:
    """Creates, claims and finishes WebhookAuditRecord rows."""

    def begin(
        self,
        event: ProviderEvent,
        raw_body: str,
        signature: str,
    ) -> AuditHandle:
        """
        Find-or-create the record for an event and try to claim it.

        Args:
            event: Decoded event
            raw_body: Verified request body, stored for replay
            signature: Stripe-Signature header of this delivery
        """
        with transaction.atomic():
            record, created = (
                WebhookAuditRecord.objects.select_for_update().get_or_create(
                    stripe_event_id=event.event_id,
                    defaults={
                        "event_type": event.event_type,
                        "api_version": event.api_version,
                        "request_body": raw_body,
                        "signature": signature,
                        "status": WebhookAuditStatus.PROCESSING,
                        "attempt_count": 1,
                    },
                )
            )
            if created:
                logger.info(
                    "Audit record created",
                    extra={
                        "stripe_event_id": event.event_id,
                        "event_type": event.event_type,
                        "audit_record_id": str(record.id),
                    },
                )
                return self._handle(record, Claim.CLAIMED)

            return self._claim_existing(
                record,
                delivery={
                    "event_type": event.event_type,
                    "api_version": event.api_version,
                    "request_body": raw_body,
                    "signature": signature,
                },
            )

    def reclaim(self, record_id: UUID) -> AuditHandle:
        """
        Claim an existing record for another attempt (retry tasks).

        Only FAILED records are claimed; any other status yields a
        duplicate or in-progress handle.
        """
        with transaction.atomic():
            record = WebhookAuditRecord.objects.select_for_update().get(pk=record_id)
            return self._claim_existing(record)

    def finish(
        self,
        handle: AuditHandle,
        status: WebhookAuditStatus,
        error: BaseException | None = None,
    ) -> None:
        """
        Write the terminal status of a claimed record.

        Raises:
            AuditLedgerError: The record is no longer PROCESSING
        """
        now = timezone.now()
        values: dict[str, Any] = {
            "status": status,
            "processing_time_ms": int((time.monotonic() - handle.started_at) * 1000),
            "processed_at": now,
            "updated_at": now,
            "error_message": None,
            "error_stack": None,
        }
        if error is not None:
            values["error_message"] = f"{type(error).__name__}: {error}"
            values["error_stack"] = "".join(
                traceback.format_exception(type(error), error, error.__traceback__)
            )
        if handle.user_id is not None:
            values["user_id"] = handle.user_id
        if handle.customer_id:
            values["stripe_customer_id"] = handle.customer_id
        if handle.subscription_id:
            values["stripe_subscription_id"] = handle.subscription_id

        updated = WebhookAuditRecord.objects.filter(
            pk=handle.record_id,
            status=WebhookAuditStatus.PROCESSING,
        ).update(**values)

        if updated != 1:
            raise AuditLedgerError(
                "Audit record is no longer processing",
                details={
                    "stripe_event_id": handle.stripe_event_id,
                    "audit_record_id": str(handle.record_id),
                    "target_status": str(status),
                },
            )

        handle.status = status
        logger.info(
            f"Audit record finished: {status}",
            extra={
                "stripe_event_id": handle.stripe_event_id,
                "audit_record_id": str(handle.record_id),
                "processing_time_ms": values["processing_time_ms"],
            },
        )

    # =========================================================================
    # Internals
    # =========================================================================

    def _claim_existing(
        self,
        record: WebhookAuditRecord,
        delivery: dict[str, Any] | None = None,
    ) -> AuditHandle:
        """
        Claim a locked, pre-existing record if it is FAILED.

        A redelivery passes its own body and headers in `delivery`; they
        replace the stored ones so a replay runs the latest payload.
        """
        if record.status == WebhookAuditStatus.PROCESSING:
            return self._handle(record, Claim.IN_PROGRESS)
        if record.status != WebhookAuditStatus.FAILED:
            return self._handle(record, Claim.DUPLICATE)

        values: dict[str, Any] = {
            "status": WebhookAuditStatus.PROCESSING,
            "attempt_count": F("attempt_count") + 1,
            "error_message": None,
            "error_stack": None,
            "processed_at": None,
            "processing_time_ms": None,
            "updated_at": timezone.now(),
        }
        if delivery:
            values.update(delivery)
        WebhookAuditRecord.objects.filter(
            pk=record.pk, status=WebhookAuditStatus.FAILED
        ).update(**values)
        record.refresh_from_db(fields=["status", "attempt_count"])

        logger.info(
            "Failed audit record reclaimed",
            extra={
                "stripe_event_id": record.stripe_event_id,
                "audit_record_id": str(record.id),
                "attempt_count": record.attempt_count,
            },
        )
        return self._handle(record, Claim.CLAIMED)

    @staticmethod
    def _handle(record: WebhookAuditRecord, claim: Claim) -> AuditHandle:
        return AuditHandle(
            record_id=record.id,
            stripe_event_id=record.stripe_event_id,
            claim=claim,
            status=record.status,
            attempt_count=record.attempt_count,
        )
