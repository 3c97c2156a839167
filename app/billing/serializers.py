"""
Serializers for the billing API.

This module provides DRF serializers for:
- Checkout / portal session requests and responses
- Subscription status (read only)
- Pricing plans (read only)

Related files:
    - views.py: Views that use these serializers
    - services.py: BillingService
"""

from rest_framework import serializers

from billing.models import Product, Subscription
from billing.state_machines import SubscriptionStatus


class CheckoutSessionRequestSerializer(serializers.Serializer):
    """Request body for POST checkout-session/."""

    price_id = serializers.CharField(max_length=255)
    success_url = serializers.URLField()
    cancel_url = serializers.URLField()


class CheckoutSessionResponseSerializer(serializers.Serializer):
    session_id = serializers.CharField()
    url = serializers.URLField(allow_null=True)


class PortalSessionRequestSerializer(serializers.Serializer):
    """Request body for POST portal-session/."""

    return_url = serializers.URLField()


class PortalSessionResponseSerializer(serializers.Serializer):
    url = serializers.URLField()


class SubscriptionSerializer(serializers.ModelSerializer):
    """
    The caller's subscription state.

    is_premium is true for ACTIVE and TRIALING.
    """

    is_premium = serializers.BooleanField(read_only=True)

    class Meta:
        model = Subscription
        fields = [
            "status",
            "is_premium",
            "stripe_price_id",
            "stripe_product_id",
            "current_period_start",
            "current_period_end",
            "cancel_at_period_end",
            "canceled_at",
            "trial_end",
            "last_payment_amount",
            "last_payment_date",
            "next_payment_date",
        ]
        read_only_fields = fields


class FreeSubscriptionSerializer(serializers.Serializer):
    """Response for users without a Subscription row."""

    status = serializers.CharField(default=SubscriptionStatus.FREE)
    is_premium = serializers.BooleanField(default=False)


class ProductSerializer(serializers.ModelSerializer):
    """A pricing plan."""

    class Meta:
        model = Product
        fields = [
            "id",
            "name",
            "description",
            "features",
            "stripe_price_id",
            "price",
            "currency",
            "interval",
            "interval_count",
            "max_projects",
            "max_users_per_project",
            "max_storage",
            "has_analytics",
            "has_priority_support",
            "has_custom_domain",
            "has_api_access",
            "display_order",
            "is_popular",
        ]
        read_only_fields = fields


class ErrorResponseSerializer(serializers.Serializer):
    success = serializers.BooleanField(default=False)
    error = serializers.CharField()
    error_code = serializers.CharField(required=False)
