"""
Abstract base model shared by every table in the project.

Base Classes:
    BaseModel: Abstract model with created_at / updated_at timestamps

The UUID primary key lives in core.model_mixins so tables can opt in.

Usage:
    from core.models import BaseModel
    from core.model_mixins import UUIDPrimaryKeyMixin

    class WebhookAuditRecord(UUIDPrimaryKeyMixin, BaseModel):
        event_id = models.CharField(max_length=255, unique=True)

Note:
    List mixins before BaseModel so their fields come first in migrations.
"""

from __future__ import annotations

from django.db import models


class BaseModel(models.Model):
    """
    Abstract model carrying row timestamps.

    Fields:
        created_at: Set once on insert
        updated_at: Refreshed on every save()

    Note:
        auto_now is NOT applied by QuerySet.update(). Code that writes
        through update() must set updated_at itself (see the audit ledger).
    """

    created_at = models.DateTimeField(
        auto_now_add=True,
        db_index=True,
        help_text="When this row was inserted",
    )
    updated_at = models.DateTimeField(
        auto_now=True,
        help_text="When this row was last written",
    )

    class Meta:
        abstract = True
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"{self.__class__.__name__}(id={self.pk})"
