"""
Pytest fixtures shared by the billing test packages.

Usage:
    def test_payment_failed(active_subscription, post_webhook):
        event = invoice_event("invoice.payment_failed",
                              customer=active_subscription.stripe_customer_id)
        response = post_webhook(event)
        assert response.status_code == 200
"""

from unittest.mock import MagicMock

import pytest
from django.test import Client

from billing.adapters import StripeAdapter
from billing.tests.factories import (
    ActiveSubscriptionFactory,
    SubscriptionFactory,
)
from billing.tests.stripe_payloads import encode, sign
from notifications.dispatcher import NotificationDispatcher


# =============================================================================
# Subscription Fixtures
# =============================================================================


@pytest.fixture
def subscription(db, user):
    """The user's FREE subscription, linked to a Stripe customer."""
    return SubscriptionFactory(user=user, stripe_customer_id="cus_test")


@pytest.fixture
def active_subscription(db, user):
    """The user's ACTIVE subscription on customer cus_test / sub_test."""
    return ActiveSubscriptionFactory(
        user=user,
        stripe_customer_id="cus_test",
        stripe_subscription_id="sub_test",
    )


# =============================================================================
# Collaborator Fixtures
# =============================================================================


@pytest.fixture
def stripe_client():
    """Mock stripe.StripeClient."""
    return MagicMock()


@pytest.fixture
def adapter(stripe_client):
    """StripeAdapter around the mock client."""
    return StripeAdapter(stripe_client)


@pytest.fixture
def mock_adapter():
    """Fully mocked StripeAdapter for service tests."""
    return MagicMock(spec=StripeAdapter)


@pytest.fixture
def notifier():
    """Mocked NotificationDispatcher."""
    return MagicMock(spec=NotificationDispatcher)


# =============================================================================
# Webhook Delivery
# =============================================================================


@pytest.fixture
def webhook_client():
    """Plain Django client; the webhook endpoint does not use DRF."""
    return Client()


@pytest.fixture
def post_webhook(db, webhook_client):
    """
    POST a signed event to /webhook.

    Returns a callable: post_webhook(event, body=None, signature=None).
    Pass body to send exact bytes, signature to override the header
    (use "" to omit it).
    """

    def _post(event=None, body=None, signature=None, path="/webhook"):
        if body is None:
            body = encode(event)
        headers = {}
        if signature is None:
            signature = sign(body if isinstance(body, str) else body.decode())
        if signature:
            headers["HTTP_STRIPE_SIGNATURE"] = signature
        return webhook_client.post(
            path,
            data=body,
            content_type="application/json",
            **headers,
        )

    return _post
