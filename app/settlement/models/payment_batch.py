"""
PaymentBatch model: the unit of work for paying out approved payments.

An operator creates a batch, adds APPROVED payments to it while it is a
DRAFT, then processes it through one payout rail. The batch status is
derived from the per-payment outcomes once every member has been tried.

Usage:
    batch = PaymentBatch.objects.create(name="Week 32 earnings")
    batch.start_processing(rail=PayoutRailType.STRIPE)  # draft -> processing
    batch.save()
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.utils import timezone
from django_fsm import FSMField, transition

from core.model_mixins import UUIDPrimaryKeyMixin, VersionedMixin
from core.models import BaseModel
from settlement.state_machines import BatchStatus, BatchType, PayoutRailType


class PaymentBatch(UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
    """
    Container for a payout run.

    State Flow:
        DRAFT -> PROCESSING -> COMPLETED (no failures)
        DRAFT -> PROCESSING -> FAILED (no successes)
        DRAFT -> PROCESSING -> PARTIAL (mixed)
        FAILED/PARTIAL -> PROCESSING (re-run of the failed members)

    Membership may only change in DRAFT. Only DRAFT and FAILED batches may
    be deleted. Counts always describe every payment the batch has run,
    so a re-run updates them instead of replacing them.
    """

    name = models.CharField(
        max_length=200,
        help_text="Operator-facing label",
    )

    batch_type = models.CharField(
        max_length=20,
        choices=BatchType.choices,
        default=BatchType.EARNINGS,
        help_text="Kind of payments the batch carries",
    )

    status = FSMField(
        default=BatchStatus.DRAFT,
        choices=BatchStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current state of the batch (managed by FSM)",
    )

    rail = models.CharField(
        max_length=20,
        choices=PayoutRailType.choices,
        null=True,
        blank=True,
        help_text="Rail selected for the last processing run",
    )

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="settlement_batches",
        help_text="Operator who created the batch",
    )

    # ==========================================================================
    # Timestamps
    # ==========================================================================

    scheduled_date = models.DateField(
        null=True,
        blank=True,
        help_text="Date the batch is intended to be paid",
    )

    processing_started_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the last processing run started",
    )

    completed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the last run finished (unset for FAILED runs)",
    )

    # ==========================================================================
    # Run Summary
    # ==========================================================================

    total_payments = models.PositiveIntegerField(default=0)
    success_count = models.PositiveIntegerField(default=0)
    failed_count = models.PositiveIntegerField(default=0)

    notes = models.TextField(
        blank=True,
        default="",
        help_text="Operator notes and run summary",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Payment Batch"
        verbose_name_plural = "Payment Batches"
        constraints = [
            models.CheckConstraint(
                condition=models.Q(
                    total_payments=models.F("success_count") + models.F("failed_count")
                ),
                name="settlement_batch_counts_consistent",
            ),
        ]

    def __str__(self) -> str:
        return f"PaymentBatch({self.id}, {self.name!r}, {self.status})"

    @property
    def is_editable(self) -> bool:
        return self.status == BatchStatus.DRAFT

    @property
    def is_deletable(self) -> bool:
        return self.status in (BatchStatus.DRAFT, BatchStatus.FAILED)

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=[BatchStatus.DRAFT, BatchStatus.FAILED, BatchStatus.PARTIAL],
        target=BatchStatus.PROCESSING,
    )
    def start_processing(self, rail: str):
        """
        Transition: DRAFT/FAILED/PARTIAL -> PROCESSING

        Freezes membership for the duration of the run.
        """
        self.rail = rail
        self.processing_started_at = timezone.now()
        self.completed_at = None

    def _record_counts(self, success_count: int, failed_count: int) -> None:
        self.success_count = success_count
        self.failed_count = failed_count
        self.total_payments = success_count + failed_count
        self.notes = (
            f"Processed {success_count} payments successfully. "
            f"{failed_count} payments failed."
        )

    @transition(
        field=status,
        source=BatchStatus.PROCESSING,
        target=BatchStatus.COMPLETED,
    )
    def complete(self, success_count: int):
        """Transition: PROCESSING -> COMPLETED (every payment succeeded)"""
        self._record_counts(success_count, 0)
        self.completed_at = timezone.now()

    @transition(
        field=status,
        source=BatchStatus.PROCESSING,
        target=BatchStatus.FAILED,
    )
    def fail(self, failed_count: int):
        """Transition: PROCESSING -> FAILED (no payment succeeded)"""
        self._record_counts(0, failed_count)

    @transition(
        field=status,
        source=BatchStatus.PROCESSING,
        target=BatchStatus.PARTIAL,
    )
    def mark_partial(self, success_count: int, failed_count: int):
        """Transition: PROCESSING -> PARTIAL"""
        self._record_counts(success_count, failed_count)
        self.completed_at = timezone.now()
