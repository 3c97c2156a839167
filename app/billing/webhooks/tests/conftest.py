"""
Pytest fixtures for webhook tests.
"""

import pytest

from billing.tests.stripe_payloads import encode
from billing.webhooks.events import decode_event
from billing.webhooks.ledger import AuditLedger
from billing.webhooks.processor import HandlerContext


@pytest.fixture
def make_context(db, notifier):
    """
    Claim an audit record for an event dict and build its HandlerContext.

    Returns a callable: make_context(event_data) -> (event, context)
    """

    def _make(event_data):
        event = decode_event(event_data)
        handle = AuditLedger().begin(event, encode(event_data), "sig")
        return event, HandlerContext(handle=handle, notifier=notifier)

    return _make
