"""
State enums for billing models.

These are Django TextChoices for database storage and admin integration.

State Machines Overview:

Subscription States (driven by provider webhooks only):
    FREE → ACTIVE / TRIALING / INCOMPLETE (first subscription event)
    ACTIVE ⇄ PAST_DUE (payment failure / recovery)
    any → CANCELED (customer.subscription.deleted)
    Provider statuses outside the known set collapse to FREE.

Webhook Audit States:
    PROCESSING → SUCCESS
    PROCESSING → IGNORED (no handler registered for the event type)
    PROCESSING → FAILED → PROCESSING (redelivery or retry task)
"""

from django.db import models


class SubscriptionStatus(models.TextChoices):
    """
    Local subscription status.

    FREE means the account has no paid plan: either it never had a billing
    identity or the provider reported a status this system does not know.
    """

    FREE = "free", "Free"
    ACTIVE = "active", "Active"
    TRIALING = "trialing", "Trialing"
    PAST_DUE = "past_due", "Past Due"
    CANCELED = "canceled", "Canceled"
    INCOMPLETE = "incomplete", "Incomplete"
    INCOMPLETE_EXPIRED = "incomplete_expired", "Incomplete Expired"
    UNPAID = "unpaid", "Unpaid"
    PAUSED = "paused", "Paused"


class WebhookAuditStatus(models.TextChoices):
    """
    Processing status for WebhookAuditRecord.

    Terminal states: SUCCESS, IGNORED. FAILED is terminal for the delivery
    that produced it but may be reclaimed for another attempt.
    """

    PROCESSING = "processing", "Processing"
    SUCCESS = "success", "Success"
    FAILED = "failed", "Failed"
    IGNORED = "ignored", "Ignored"


class BillingInterval(models.TextChoices):
    """Recurring interval of a catalog price."""

    MONTHLY = "monthly", "Monthly"
    YEARLY = "yearly", "Yearly"


# Provider subscription status → local status
PROVIDER_STATUS_MAP: dict[str, SubscriptionStatus] = {
    "active": SubscriptionStatus.ACTIVE,
    "canceled": SubscriptionStatus.CANCELED,
    "incomplete": SubscriptionStatus.INCOMPLETE,
    "incomplete_expired": SubscriptionStatus.INCOMPLETE_EXPIRED,
    "past_due": SubscriptionStatus.PAST_DUE,
    "trialing": SubscriptionStatus.TRIALING,
    "unpaid": SubscriptionStatus.UNPAID,
    "paused": SubscriptionStatus.PAUSED,
}

# Statuses that grant paid features
PREMIUM_STATUSES = frozenset({SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING})

# Statuses a failed invoice payment can move to PAST_DUE; CANCELED is final
PAST_DUE_SOURCES = [s for s in SubscriptionStatus.values if s != SubscriptionStatus.CANCELED]


def map_provider_status(provider_status: str | None) -> SubscriptionStatus:
    """
    Map a provider subscription status string to SubscriptionStatus.

    Unknown or missing values map to FREE instead of raising.
    """
    return PROVIDER_STATUS_MAP.get(provider_status or "", SubscriptionStatus.FREE)


__all__ = [
    "BillingInterval",
    "PAST_DUE_SOURCES",
    "PREMIUM_STATUSES",
    "PROVIDER_STATUS_MAP",
    "SubscriptionStatus",
    "WebhookAuditStatus",
    "map_provider_status",
]
