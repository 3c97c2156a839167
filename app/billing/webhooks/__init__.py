"""
Stripe webhook pipeline.

    signatures  verify the Stripe-Signature header over the raw body
    events      decode the verified body into typed event variants
    ledger      one audit record per event id, the idempotency boundary
    router      event type -> handler registry
    handlers    the subscription state machine
    processor   ties the above together
    views       the HTTP endpoint

Handlers register themselves on import; BillingConfig.ready() imports
billing.webhooks.handlers.
"""
