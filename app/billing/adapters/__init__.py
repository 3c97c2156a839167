"""
External service adapters for billing.

Usage:
    from billing.adapters import StripeAdapter

    adapter = StripeAdapter.from_settings()
"""

from billing.adapters.stripe_adapter import (
    CatalogProduct,
    CheckoutSessionResult,
    CustomerResult,
    PortalSessionResult,
    StripeAdapter,
)

__all__ = [
    "CatalogProduct",
    "CheckoutSessionResult",
    "CustomerResult",
    "PortalSessionResult",
    "StripeAdapter",
]
