"""
PaymentRetry model: a persisted, scheduled re-attempt of a failed payment.

Retries form a lineage per payment: retry_count 0 is created when a
retry-eligible attempt fails, and each failed re-attempt schedules the
next count until the maximum is reached. next_retry_date is the cooldown;
nothing waits in memory, so the schedule survives restarts.
"""

from __future__ import annotations

from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel
from settlement.state_machines import RetryStatus


class PaymentRetry(UUIDPrimaryKeyMixin, BaseModel):
    """
    A scheduled re-attempt.

    Status Flow:
        SCHEDULED -> PENDING -> SUCCESS | FAILED
    """

    payment = models.ForeignKey(
        "settlement.Payment",
        on_delete=models.CASCADE,
        related_name="retries",
        help_text="Payment to re-attempt",
    )

    status = models.CharField(
        max_length=20,
        choices=RetryStatus.choices,
        default=RetryStatus.SCHEDULED,
        db_index=True,
        help_text="Current state of the retry",
    )

    retry_count = models.PositiveSmallIntegerField(
        default=0,
        help_text="Position in the payment's retry lineage",
    )

    next_retry_date = models.DateTimeField(
        db_index=True,
        help_text="Earliest time the retry may run",
    )

    attempted_at = models.DateTimeField(null=True, blank=True)

    error_code = models.CharField(max_length=32, blank=True, default="")

    error_message = models.TextField(
        blank=True,
        default="",
        help_text="Failure reason of this attempt",
    )

    rail_transaction_id = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Rail reference when the retry settled",
    )

    class Meta:
        ordering = ["next_retry_date"]
        verbose_name = "Payment Retry"
        verbose_name_plural = "Payment Retries"
        indexes = [
            models.Index(fields=["status", "next_retry_date"], name="settlement__status_e2a7d5_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["payment", "retry_count"],
                name="settlement_retry_unique_count_per_payment",
            ),
        ]

    def __str__(self) -> str:
        return f"PaymentRetry({self.payment_id}, #{self.retry_count}, {self.status})"
