"""
Billing models.

Models:
    Subscription: Local mirror of a user's provider subscription
    WebhookAuditRecord: Idempotency and audit trail for webhook events
    Product: Pricing-page catalog mirrored from the provider
"""

from billing.models.product import Product
from billing.models.subscription import Subscription
from billing.models.webhook_audit import WebhookAuditRecord

__all__ = [
    "Product",
    "Subscription",
    "WebhookAuditRecord",
]
