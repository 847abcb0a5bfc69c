"""
Reusable abstract model mixins.

Usage:
    from core.model_mixins import UUIDPrimaryKeyMixin, VersionedMixin

    class Payment(UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
        ...
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from django.db import models
from django.db.models import F

if TYPE_CHECKING:
    from typing import Any


class UUIDPrimaryKeyMixin(models.Model):
    """
    UUID primary key instead of an auto-increment integer.

    Ids are non-guessable and can be generated before the insert, which
    lets services derive idempotency keys from a record's id.
    """

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
        help_text="Unique identifier for this record",
    )

    class Meta:
        abstract = True


class VersionedMixin(models.Model):
    """
    Optimistic-lock counter incremented atomically on every update.

    The increment is done in SQL with an F() expression so two writers that
    loaded the same row cannot both persist the same version. After an
    update the new value is read back so the instance stays usable.

    Fields:
        version: Starts at 1, +1 per saved update
    """

    version = models.PositiveIntegerField(
        default=1,
        help_text="Version for optimistic locking - incremented on each save",
    )

    class Meta:
        abstract = True

    def save(self, *args: Any, **kwargs: Any) -> None:
        is_update = not self._state.adding and not kwargs.get("force_insert", False)
        if is_update:
            self.version = F("version") + 1
            update_fields = kwargs.get("update_fields")
            if update_fields is not None and "version" not in update_fields:
                kwargs["update_fields"] = [*update_fields, "version"]
        super().save(*args, **kwargs)
        if is_update:
            self.refresh_from_db(fields=["version"])
