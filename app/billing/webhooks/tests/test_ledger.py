"""
Tests for the webhook audit ledger.

Tests cover:
- Claiming new events
- Duplicate / in-progress short-circuits
- Reclaiming FAILED records
- Conditional finish and trace fields
"""

import pytest

from billing.exceptions import AuditLedgerError
from billing.models import WebhookAuditRecord
from billing.state_machines import WebhookAuditStatus
from billing.tests.factories import WebhookAuditRecordFactory
from billing.tests.stripe_payloads import encode, invoice_event
from billing.webhooks.events import decode_event
from billing.webhooks.ledger import AuditLedger, Claim


@pytest.fixture
def ledger():
    return AuditLedger()


@pytest.fixture
def event_data():
    return invoice_event("invoice.payment_failed", event_id="evt_ledger")


@pytest.fixture
def event(event_data):
    return decode_event(event_data)


class TestBegin:
    """Tests for AuditLedger.begin()."""

    def test_new_event_is_claimed(self, db, ledger, event, event_data):
        handle = ledger.begin(event, encode(event_data), "t=1,v1=sig")

        assert handle.claimed
        assert handle.status == WebhookAuditStatus.PROCESSING
        assert handle.attempt_count == 1

        record = WebhookAuditRecord.objects.get(stripe_event_id="evt_ledger")
        assert record.status == WebhookAuditStatus.PROCESSING
        assert record.event_type == "invoice.payment_failed"
        assert record.request_body == encode(event_data)
        assert record.signature == "t=1,v1=sig"
        assert record.api_version == "2024-06-20"

    @pytest.mark.parametrize(
        "status",
        [WebhookAuditStatus.SUCCESS, WebhookAuditStatus.IGNORED],
    )
    def test_final_record_is_duplicate(self, db, ledger, event, status):
        WebhookAuditRecordFactory(stripe_event_id="evt_ledger", status=status)

        handle = ledger.begin(event, "{}", "sig")

        assert handle.claim is Claim.DUPLICATE
        assert handle.is_duplicate
        assert not handle.claimed
        assert WebhookAuditRecord.objects.get(stripe_event_id="evt_ledger").status == status

    def test_processing_record_is_in_progress(self, db, ledger, event):
        WebhookAuditRecordFactory(
            stripe_event_id="evt_ledger",
            status=WebhookAuditStatus.PROCESSING,
        )

        handle = ledger.begin(event, "{}", "sig")

        assert handle.in_progress
        assert not handle.claimed

    def test_failed_record_is_reclaimed(self, db, ledger, event):
        WebhookAuditRecordFactory(
            stripe_event_id="evt_ledger",
            status=WebhookAuditStatus.FAILED,
            error_message="ValueError: boom",
            error_stack="Traceback...",
            signature="old",
        )

        handle = ledger.begin(event, "{}", "new")

        assert handle.claimed
        assert handle.attempt_count == 2

        record = WebhookAuditRecord.objects.get(stripe_event_id="evt_ledger")
        assert record.status == WebhookAuditStatus.PROCESSING
        assert record.attempt_count == 2
        assert record.error_message is None
        assert record.error_stack is None
        assert record.signature == "new"

    def test_reclaim_stores_the_redelivered_body(self, db, ledger, event, event_data):
        WebhookAuditRecordFactory(
            stripe_event_id="evt_ledger",
            event_type="invoice.paid",
            api_version="2023-10-16",
            status=WebhookAuditStatus.FAILED,
            request_body='{"id": "evt_ledger", "stale": true}',
        )

        ledger.begin(event, encode(event_data), "new")

        record = WebhookAuditRecord.objects.get(stripe_event_id="evt_ledger")
        assert record.request_body == encode(event_data)
        assert record.event_type == "invoice.payment_failed"
        assert record.api_version == "2024-06-20"

    def test_single_row_per_event(self, db, ledger, event, event_data):
        ledger.begin(event, encode(event_data), "sig")
        ledger.begin(event, encode(event_data), "sig")

        assert WebhookAuditRecord.objects.filter(stripe_event_id="evt_ledger").count() == 1


class TestReclaim:
    def test_reclaims_failed(self, db, ledger):
        record = WebhookAuditRecordFactory(status=WebhookAuditStatus.FAILED)
        original_body = record.request_body

        handle = ledger.reclaim(record.pk)

        assert handle.claimed
        record.refresh_from_db()
        assert record.status == WebhookAuditStatus.PROCESSING
        assert record.attempt_count == 2
        assert record.signature == "t=0,v1=test"
        assert record.request_body == original_body

    def test_success_is_not_reclaimed(self, db, ledger):
        record = WebhookAuditRecordFactory(status=WebhookAuditStatus.SUCCESS)

        handle = ledger.reclaim(record.pk)

        assert handle.is_duplicate
        record.refresh_from_db()
        assert record.attempt_count == 1


class TestFinish:
    """Tests for AuditLedger.finish()."""

    def test_success_writes_outcome_and_trace(self, db, ledger, event, event_data, user):
        handle = ledger.begin(event, encode(event_data), "sig")
        handle.annotate(user_id=user.pk, customer_id="cus_1", subscription_id="sub_1")

        ledger.finish(handle, WebhookAuditStatus.SUCCESS)

        record = WebhookAuditRecord.objects.get(pk=handle.record_id)
        assert record.status == WebhookAuditStatus.SUCCESS
        assert record.processed_at is not None
        assert record.processing_time_ms is not None
        assert record.processing_time_ms >= 0
        assert record.user_id == user.pk
        assert record.stripe_customer_id == "cus_1"
        assert record.stripe_subscription_id == "sub_1"
        assert record.error_message is None
        assert handle.status == WebhookAuditStatus.SUCCESS

    def test_failure_records_message_and_stack(self, db, ledger, event, event_data):
        handle = ledger.begin(event, encode(event_data), "sig")
        try:
            raise RuntimeError("database went away")
        except RuntimeError as exc:
            ledger.finish(handle, WebhookAuditStatus.FAILED, error=exc)

        record = WebhookAuditRecord.objects.get(pk=handle.record_id)
        assert record.status == WebhookAuditStatus.FAILED
        assert record.error_message == "RuntimeError: database went away"
        assert "Traceback" in record.error_stack
        assert "database went away" in record.error_stack

    def test_finishing_twice_raises(self, db, ledger, event, event_data):
        handle = ledger.begin(event, encode(event_data), "sig")
        ledger.finish(handle, WebhookAuditStatus.SUCCESS)

        with pytest.raises(AuditLedgerError):
            ledger.finish(handle, WebhookAuditStatus.FAILED)

        record = WebhookAuditRecord.objects.get(pk=handle.record_id)
        assert record.status == WebhookAuditStatus.SUCCESS

    def test_annotate_keeps_existing_values(self, db, ledger, event, event_data):
        handle = ledger.begin(event, encode(event_data), "sig")
        handle.annotate(customer_id="cus_1")
        handle.annotate(customer_id=None, subscription_id="sub_1")

        assert handle.customer_id == "cus_1"
        assert handle.subscription_id == "sub_1"
