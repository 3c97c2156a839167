"""
State machine enums and helpers for billing models.
"""

from billing.state_machines.states import (
    PAST_DUE_SOURCES,
    PREMIUM_STATUSES,
    PROVIDER_STATUS_MAP,
    BillingInterval,
    SubscriptionStatus,
    WebhookAuditStatus,
    map_provider_status,
)

__all__ = [
    "BillingInterval",
    "PAST_DUE_SOURCES",
    "PREMIUM_STATUSES",
    "PROVIDER_STATUS_MAP",
    "SubscriptionStatus",
    "WebhookAuditStatus",
    "map_provider_status",
]
