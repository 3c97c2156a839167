"""
Root URL configuration.

URL Structure:
    /                              - ReDoc API documentation
    /admin/                        - Django admin interface
    /health/                       - Health check endpoint (load balancers, Docker)
    /schema/                       - OpenAPI schema (YAML)
    /webhook                       - Stripe webhook endpoint (POST, signed)
    /api/v1/billing/               - Billing endpoints
        checkout-session/          - Start a subscription checkout (POST)
        portal-session/            - Open the billing portal (POST)
        cancel/                    - Cancel at period end (POST)
        subscription/              - Current user's subscription (GET)
        plans/                     - Public pricing plans (GET)
        webhook/                   - Stripe webhook endpoint (POST, signed)
"""

from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView

from billing.webhooks.views import stripe_webhook
from core.views import health_check

# =============================================================================
# API v1 Routes
# =============================================================================
api_v1_patterns = [
    path("billing/", include("billing.urls")),
]

urlpatterns = [
    # Documentation
    path("", SpectacularRedocView.as_view(url_name="schema"), name="redoc"),
    path("schema/", SpectacularAPIView.as_view(), name="schema"),
    # Admin
    path("admin/", admin.site.urls),
    # Health check
    path("health/", health_check, name="health_check"),
    # Provider-facing alias of billing:webhook
    path("webhook", stripe_webhook, name="webhook"),
    # API v1
    path("api/v1/", include(api_v1_patterns)),
]

# =============================================================================
# Admin Site Customization
# =============================================================================
admin.site.site_header = "Billing Admin"
admin.site.site_title = "Billing Admin"
admin.site.index_title = "Subscriptions and webhook ledger"
