"""
Abstract model mixins combined with core.models.BaseModel.

Available Mixins:
    UUIDPrimaryKeyMixin: UUID primary key instead of an auto-increment id

Usage:
    class Subscription(UUIDPrimaryKeyMixin, BaseModel):
        ...
"""

from __future__ import annotations

import uuid

from django.db import models


class UUIDPrimaryKeyMixin(models.Model):
    """
    Replace the integer primary key with a random UUID.

    Audit records and subscriptions are referenced from admin URLs and
    task arguments, so their ids should not leak row counts.

    Fields:
        id: UUIDField primary key, generated with uuid4
    """

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
        help_text="Unique identifier for this record",
    )

    class Meta:
        abstract = True
