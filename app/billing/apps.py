"""
Django app configuration for billing.
"""

from django.apps import AppConfig
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

REQUIRED_STRIPE_SETTINGS = (
    "STRIPE_SECRET_KEY",
    "STRIPE_WEBHOOK_SECRET",
    "STRIPE_API_VERSION",
)


class BillingConfig(AppConfig):
    """Configuration for the billing application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "billing"
    verbose_name = "Billing"

    def ready(self):
        """
        Check Stripe settings, connect signals and register webhook handlers.

        Raises:
            ImproperlyConfigured: A required Stripe setting is blank
        """
        missing = [
            name for name in REQUIRED_STRIPE_SETTINGS
            if not getattr(settings, name, "")
        ]
        if missing:
            raise ImproperlyConfigured(
                f"Missing required billing settings: {', '.join(missing)}"
            )

        from billing import signals  # noqa: F401
        from billing.webhooks import handlers  # noqa: F401
