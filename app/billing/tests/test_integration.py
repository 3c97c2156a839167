"""
End-to-end webhook scenarios.

Each test drives signed deliveries through POST /webhook and checks the
resulting Subscription, the audit ledger and the emails sent. Celery
runs eagerly and on_commit callbacks are executed, so a notification
shows up in mailoutbox exactly when it would be sent in production.
"""

import pytest
from django.conf import settings

from billing.models import Subscription, WebhookAuditRecord
from billing.state_machines import SubscriptionStatus, WebhookAuditStatus
from billing.tests.stripe_payloads import (
    NOW,
    checkout_session_event,
    encode,
    invoice_event,
    sign,
    subscription_event,
)


@pytest.fixture
def deliver(post_webhook, django_capture_on_commit_callbacks):
    """Post an event and run whatever it scheduled after commit."""

    def _deliver(event, **kwargs):
        with django_capture_on_commit_callbacks(execute=True):
            return post_webhook(event, **kwargs)

    return _deliver


class TestSubscriptionLifecycle:
    def test_trial_to_past_due_to_canceled(self, subscription, user, deliver, mailoutbox):
        responses = [
            deliver(
                subscription_event(
                    "customer.subscription.created",
                    status="trialing",
                    trial_end=NOW + 14 * 86400,
                    event_id="evt_1",
                    created=NOW,
                )
            ),
        ]
        subscription.refresh_from_db()
        assert subscription.status == SubscriptionStatus.TRIALING
        assert subscription.is_premium

        responses.append(
            deliver(invoice_event("invoice.payment_failed", event_id="evt_2", created=NOW + 100))
        )
        subscription.refresh_from_db()
        assert subscription.status == SubscriptionStatus.PAST_DUE
        assert len(mailoutbox) == 1
        assert mailoutbox[0].subject == f"{settings.APP_NAME} - Payment failed"
        assert mailoutbox[0].to == [user.email]

        responses.append(
            deliver(
                subscription_event(
                    "customer.subscription.deleted",
                    status="canceled",
                    canceled_at=NOW + 200,
                    event_id="evt_3",
                    created=NOW + 200,
                )
            )
        )

        assert all(r.status_code == 200 for r in responses)
        assert all(r.json() == {"received": True} for r in responses)
        subscription.refresh_from_db()
        assert subscription.status == SubscriptionStatus.CANCELED
        assert subscription.stripe_subscription_id is None
        assert subscription.canceled_at is not None
        assert len(mailoutbox) == 2
        assert mailoutbox[1].subject == f"{settings.APP_NAME} - Subscription canceled"
        assert user.username in mailoutbox[1].body

        records = WebhookAuditRecord.objects.all()
        assert sorted(r.stripe_event_id for r in records) == ["evt_1", "evt_2", "evt_3"]
        assert {r.status for r in records} == {WebhookAuditStatus.SUCCESS}
        assert all(r.user_id == user.pk for r in records)

    def test_checkout_links_customer_for_later_events(self, user, deliver):
        deliver(checkout_session_event(customer="cus_new", user_id=user.pk, event_id="evt_c"))
        deliver(
            subscription_event(
                "customer.subscription.created",
                customer="cus_new",
                status="active",
                event_id="evt_s",
                created=NOW + 1,
            )
        )

        subscription = Subscription.objects.get(user=user)
        assert subscription.stripe_customer_id == "cus_new"
        assert subscription.status == SubscriptionStatus.ACTIVE
        checkout_record = WebhookAuditRecord.objects.get(stripe_event_id="evt_c")
        assert checkout_record.stripe_customer_id == "cus_new"
        assert checkout_record.user_id == user.pk

    def test_recovered_payment(self, active_subscription, deliver, mailoutbox):
        deliver(invoice_event("invoice.payment_failed", event_id="evt_f", created=NOW))
        deliver(
            subscription_event(status="active", event_id="evt_u", created=NOW + 60)
        )
        deliver(
            invoice_event(
                "invoice.payment_succeeded",
                amount_paid=1900,
                next_payment_attempt=NOW + 30 * 86400,
                event_id="evt_s",
                created=NOW + 61,
            )
        )

        active_subscription.refresh_from_db()
        assert active_subscription.status == SubscriptionStatus.ACTIVE
        assert active_subscription.last_payment_amount == 1900
        assert active_subscription.next_payment_date is not None
        assert len(mailoutbox) == 1


class TestOrderingAndIdempotency:
    def test_late_update_does_not_revive_canceled(self, active_subscription, deliver, mailoutbox):
        deliver(
            subscription_event(
                "customer.subscription.deleted",
                status="canceled",
                event_id="evt_del",
                created=NOW + 10,
            )
        )
        late = deliver(
            subscription_event(status="active", event_id="evt_old", created=NOW)
        )

        assert late.status_code == 200
        active_subscription.refresh_from_db()
        assert active_subscription.status == SubscriptionStatus.CANCELED
        assert WebhookAuditRecord.objects.get(stripe_event_id="evt_old").status == (
            WebhookAuditStatus.SUCCESS
        )
        assert len(mailoutbox) == 1

    def test_payment_failure_after_deletion_at_same_second(
        self, active_subscription, deliver, mailoutbox
    ):
        deliver(
            subscription_event(
                "customer.subscription.deleted",
                status="canceled",
                event_id="evt_gone",
                created=NOW,
            )
        )
        response = deliver(invoice_event("invoice.payment_failed", event_id="evt_late", created=NOW))

        assert response.status_code == 200
        active_subscription.refresh_from_db()
        assert active_subscription.status == SubscriptionStatus.CANCELED
        assert len(mailoutbox) == 1
        assert mailoutbox[0].subject == f"{settings.APP_NAME} - Subscription canceled"
        assert WebhookAuditRecord.objects.get(stripe_event_id="evt_late").status == (
            WebhookAuditStatus.SUCCESS
        )

    def test_updated_before_created(self, subscription, deliver):
        updated = deliver(
            subscription_event(
                "customer.subscription.updated",
                status="active",
                event_id="evt_updated",
                created=NOW + 10,
            )
        )
        created = deliver(
            subscription_event(
                "customer.subscription.created",
                status="trialing",
                trial_end=NOW + 14 * 86400,
                event_id="evt_created",
                created=NOW,
            )
        )

        assert updated.status_code == 200
        assert created.status_code == 200
        subscription.refresh_from_db()
        assert subscription.status == SubscriptionStatus.ACTIVE
        assert subscription.is_premium
        records = WebhookAuditRecord.objects.filter(
            stripe_event_id__in=["evt_updated", "evt_created"]
        )
        assert {r.status for r in records} == {WebhookAuditStatus.SUCCESS}

    def test_redelivery_is_processed_once(self, active_subscription, deliver, mailoutbox):
        event = invoice_event("invoice.payment_failed", event_id="evt_dup", created=NOW)
        body = encode(event)
        version = active_subscription.version

        first = deliver(event, body=body, signature=sign(body))
        second = deliver(event, body=body, signature=sign(body))

        assert first.status_code == 200
        assert second.status_code == 200
        assert second.json() == {"received": True, "duplicate": True}
        assert WebhookAuditRecord.objects.filter(stripe_event_id="evt_dup").count() == 1
        assert len(mailoutbox) == 1
        active_subscription.refresh_from_db()
        assert active_subscription.version == version + 1

    def test_failed_delivery_then_redelivery(self, user, deliver, post_webhook):
        event = checkout_session_event(event_id="evt_meta")
        failed = post_webhook(event)

        assert failed.status_code == 500
        record = WebhookAuditRecord.objects.get(stripe_event_id="evt_meta")
        assert record.status == WebhookAuditStatus.FAILED
        assert "MissingMetadataError" in record.error_message

        # A fixed payload under the same event id is reclaimed, not duplicated
        fixed = checkout_session_event(user_id=user.pk, event_id="evt_meta")
        retried = deliver(fixed)

        assert retried.status_code == 200
        record.refresh_from_db()
        assert record.status == WebhookAuditStatus.SUCCESS
        assert record.attempt_count == 2
        assert record.request_body == encode(fixed)
        assert Subscription.objects.get(user=user).stripe_customer_id == "cus_test"

    def test_unsigned_delivery_changes_nothing(self, active_subscription, post_webhook):
        response = post_webhook(
            invoice_event("invoice.payment_failed", event_id="evt_forged"),
            signature="t=1,v1=deadbeef",
        )

        assert response.status_code == 400
        assert not WebhookAuditRecord.objects.exists()
        active_subscription.refresh_from_db()
        assert active_subscription.status == SubscriptionStatus.ACTIVE
