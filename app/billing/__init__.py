"""
Billing app: Stripe subscriptions driven by webhooks.

Subpackages:
    models: Subscription, WebhookAuditRecord, Product
    state_machines: Status enums and provider status mapping
    adapters: StripeAdapter, the only code that calls the Stripe API
    webhooks: Signature check, event decoding, audit ledger, handlers

Modules:
    services: BillingService (checkout, portal, cancel, catalog sync)
    tasks: Celery tasks for webhook retries and catalog sync
"""
