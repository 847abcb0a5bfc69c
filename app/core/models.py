"""
Abstract base model shared by every domain model.

Usage:
    from core.models import BaseModel
    from core.model_mixins import UUIDPrimaryKeyMixin

    class PaymentBatch(UUIDPrimaryKeyMixin, BaseModel):
        name = models.CharField(max_length=200)

Mixins go before BaseModel in the bases list.
"""

from __future__ import annotations

from django.db import models


class BaseModel(models.Model):
    """
    Abstract model adding creation and modification timestamps.

    Fields:
        created_at: Set once on insert (indexed for time-range queries)
        updated_at: Refreshed on every save
    """

    created_at = models.DateTimeField(
        auto_now_add=True,
        db_index=True,
        help_text="Timestamp when this record was created",
    )
    updated_at = models.DateTimeField(
        auto_now=True,
        help_text="Timestamp when this record was last modified",
    )

    class Meta:
        abstract = True
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"{self.__class__.__name__}(id={self.pk})"
