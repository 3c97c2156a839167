"""
Subscription model: the local mirror of a user's provider subscription.

One row per user, created with status FREE when the account is provisioned.
After that the row is only written by webhook handlers; user-facing code asks
the provider to change things and waits for the resulting event.

Usage:
    from billing.models import Subscription
    from billing.state_machines import SubscriptionStatus

    with transaction.atomic():
        subscription = (
            Subscription.objects.select_for_update()
            .filter(stripe_customer_id="cus_xxx")
            .first()
        )
        subscription.sync_status(SubscriptionStatus.ACTIVE)
        subscription.save()
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.conf import settings
from django.db import models
from django.db.models import F
from django.utils import timezone

from django_fsm import RETURN_VALUE, FSMField, transition

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from billing.state_machines import PAST_DUE_SOURCES, PREMIUM_STATUSES, SubscriptionStatus

if TYPE_CHECKING:
    from datetime import datetime


class Subscription(UUIDPrimaryKeyMixin, BaseModel):
    """
    A user's subscription state as last reported by the provider.

    Uses django-fsm for status changes and a version counter that is
    incremented on every save, so concurrent writers can be detected.

    Fields:
        user: Owner account (one subscription per user)
        stripe_customer_id: Billing identity (cus_xxx), unique when set
        stripe_subscription_id / stripe_price_id / stripe_product_id:
            Current plan references, cleared on cancellation
        status: Current FSM status
        current_period_start/end, cancel_at_period_end, canceled_at, trial_end:
            Period and cancellation facts copied from the provider
        last_payment_amount / last_payment_date / next_payment_date:
            Invoice facts from invoice.payment_succeeded
        last_event_at: Provider timestamp of the newest status event applied
        last_invoice_event_at: Provider timestamp of the newest payment event applied
        version: Incremented on each save
    """

    # ==========================================================================
    # Relationships
    # ==========================================================================

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="subscription",
        help_text="Account that owns this subscription",
    )

    # ==========================================================================
    # Stripe Integration
    # ==========================================================================

    stripe_customer_id = models.CharField(
        max_length=255,
        unique=True,
        null=True,
        blank=True,
        help_text="Stripe Customer ID (cus_xxx)",
    )

    stripe_subscription_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        db_index=True,
        help_text="Stripe Subscription ID (sub_xxx)",
    )

    stripe_price_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        help_text="Stripe Price ID (price_xxx)",
    )

    stripe_product_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        help_text="Stripe Product ID (prod_xxx)",
    )

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=SubscriptionStatus.FREE,
        choices=SubscriptionStatus.choices,
        db_index=True,
        help_text="Current subscription status (managed by FSM)",
    )

    # ==========================================================================
    # Billing Period
    # ==========================================================================

    current_period_start = models.DateTimeField(null=True, blank=True)
    current_period_end = models.DateTimeField(null=True, blank=True)

    # ==========================================================================
    # Cancellation & Trial
    # ==========================================================================

    cancel_at_period_end = models.BooleanField(
        default=False,
        help_text="Whether the subscription ends when the current period ends",
    )

    canceled_at = models.DateTimeField(null=True, blank=True)
    trial_end = models.DateTimeField(null=True, blank=True)

    # ==========================================================================
    # Payment Tracking
    # ==========================================================================

    last_payment_amount = models.PositiveIntegerField(
        null=True,
        blank=True,
        help_text="Amount of the last paid invoice in smallest currency unit",
    )

    last_payment_date = models.DateTimeField(null=True, blank=True)

    next_payment_date = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the provider will next attempt collection",
    )

    # ==========================================================================
    # Event Ordering & Concurrency Control
    # ==========================================================================

    last_event_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Provider timestamp of the newest status-bearing event applied",
    )

    last_invoice_event_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Provider timestamp of the newest invoice payment event applied",
    )

    version = models.PositiveIntegerField(
        default=1,
        help_text="Incremented on each save",
    )

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Subscription"
        verbose_name_plural = "Subscriptions"
        indexes = [
            models.Index(fields=["status", "current_period_end"], name="billing_sub_status_e7c1a9_idx"),
        ]

    def __str__(self) -> str:
        return f"Subscription({self.user_id}, {self.status})"

    def save(self, *args, **kwargs):
        """
        Save with version auto-increment.

        The increment happens in SQL so two writers that both loaded
        version N end up at N+2, never N+1.
        """
        is_update = not self._state.adding and not kwargs.get("force_insert", False)
        if is_update:
            self.version = F("version") + 1
            update_fields = kwargs.get("update_fields")
            if update_fields is not None:
                kwargs["update_fields"] = {*update_fields, "version"}
        super().save(*args, **kwargs)
        if is_update:
            self.refresh_from_db(fields=["version"])

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source="*",
        target=RETURN_VALUE(*SubscriptionStatus.values),
    )
    def sync_status(self, new_status: SubscriptionStatus) -> SubscriptionStatus:
        """
        Adopt the status the provider reported.

        Transition: any -> new_status
        """
        return new_status

    @transition(
        field=status,
        source=PAST_DUE_SOURCES,
        target=SubscriptionStatus.PAST_DUE,
    )
    def mark_past_due(self):
        """
        Mark subscription as past due after a failed invoice payment.

        Transition: any except CANCELED -> PAST_DUE
        """

    @transition(
        field=status,
        source="*",
        target=SubscriptionStatus.CANCELED,
    )
    def cancel(self):
        """
        Record that the provider subscription has ended.

        Transition: any -> CANCELED

        Clears the plan references; the customer id is kept so a later
        checkout reuses the same billing identity.
        """
        self.stripe_subscription_id = None
        self.stripe_price_id = None
        self.stripe_product_id = None
        self.canceled_at = timezone.now()

    # ==========================================================================
    # Helper Methods
    # ==========================================================================

    def is_stale_status_event(self, event_at: datetime) -> bool:
        """Check if a status-bearing event is older than the newest one applied."""
        return self.last_event_at is not None and event_at < self.last_event_at

    def is_stale_invoice_event(self, event_at: datetime) -> bool:
        """Check if an invoice payment event is older than the newest one applied."""
        return (
            self.last_invoice_event_at is not None
            and event_at < self.last_invoice_event_at
        )

    @property
    def is_premium(self) -> bool:
        """ACTIVE and TRIALING subscriptions unlock paid features."""
        return self.status in PREMIUM_STATUSES
