"""
Product: a purchasable plan mirrored from the provider catalog.

Rows are upserted by BillingService.sync_products from active products
whose default price is recurring. Plan limits and feature flags come from
the provider product's metadata.
"""

from __future__ import annotations

from django.db import models

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from billing.state_machines import BillingInterval


class ProductQuerySet(models.QuerySet):
    def active(self):
        return self.filter(is_active=True)


class Product(UUIDPrimaryKeyMixin, BaseModel):
    """
    Catalog entry shown on the pricing page.

    Fields:
        stripe_product_id / stripe_price_id: Provider references
        price: Unit amount of the default price in smallest currency unit
        interval / interval_count: Recurrence of the default price
        max_*: Plan limits (None means unlimited)
        has_*: Feature flags
        display_order: Ascending sort key on the pricing page
    """

    stripe_product_id = models.CharField(max_length=255, unique=True)
    stripe_price_id = models.CharField(max_length=255)

    name = models.CharField(max_length=255)
    description = models.TextField(null=True, blank=True)
    features = models.JSONField(default=list, blank=True)

    price = models.PositiveIntegerField(default=0)
    currency = models.CharField(max_length=3, default="usd")
    interval = models.CharField(
        max_length=10,
        choices=BillingInterval.choices,
        default=BillingInterval.MONTHLY,
    )
    interval_count = models.PositiveSmallIntegerField(default=1)

    # Plan limits
    max_projects = models.PositiveIntegerField(null=True, blank=True)
    max_users_per_project = models.PositiveIntegerField(null=True, blank=True)
    max_storage = models.PositiveBigIntegerField(null=True, blank=True)

    # Feature flags
    has_analytics = models.BooleanField(default=False)
    has_priority_support = models.BooleanField(default=False)
    has_custom_domain = models.BooleanField(default=False)
    has_api_access = models.BooleanField(default=False)

    display_order = models.IntegerField(default=0)
    is_active = models.BooleanField(default=True, db_index=True)
    is_popular = models.BooleanField(default=False)

    objects = ProductQuerySet.as_manager()

    class Meta:
        ordering = ["display_order", "price"]
        verbose_name = "Product"
        verbose_name_plural = "Products"

    def __str__(self) -> str:
        return f"Product({self.name}, {self.price} {self.currency.upper()}/{self.interval})"
