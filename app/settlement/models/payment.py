"""
Payment and Earning models.

A Payment is one monetary obligation owed by the platform to a payee:
a worker's share of a completed service, a referral fee, or a monthly
referral credit. Payments are grouped into PaymentBatch records and paid
through a payout rail.

An Earning is the worker-facing mirror of a SERVICE Payment. It exists for
exactly one completed billable unit and one employee, and copies the
Payment's status whenever the Payment moves.

Usage:
    from settlement.models import Payment
    from settlement.state_machines import PaymentType

    payment = Payment.objects.create(
        payee=employee,
        amount_cents=902,
        payment_type=PaymentType.SERVICE,
        service_id=job_id,
    )

    payment.approve(approved_by=operator)  # pending -> approved
    payment.save()
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.utils import timezone
from django_fsm import FSMField, transition

from core.model_mixins import UUIDPrimaryKeyMixin, VersionedMixin
from core.models import BaseModel
from settlement.state_machines import PaymentStatus, PaymentType, PayoutRailType


class Payment(UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
    """
    A single amount owed to a payee.

    State Flow:
        PENDING -> APPROVED -> PROCESSING -> PAID
        PROCESSING -> PENDING_MANUAL -> PAID (operator confirmation)
        PROCESSING -> FAILED -> PROCESSING (batch re-run)
        FAILED -> PAID (retry scheduler)
        FAILED -> APPROVED (requeue for a new batch)
        PAID -> REFUNDED

    Batch membership:
        A payment belongs to at most one batch, and only while APPROVED or
        PROCESSING. Every outcome of a rail attempt clears the batch;
        last_batch keeps the run that handled the payment. A FAILED
        payment is re-run through its last_batch or requeued.

    Fields:
        payee: User receiving the money (employee or referrer)
        amount_cents: Amount in the smallest currency unit, never negative
        payment_type: SERVICE / REFERRAL / MONTHLY_REFERRAL / EARNINGS
        status: FSM-managed lifecycle state
        service_id: External id of the completed billable unit, if any
        referral: Referral that produced this payment, if any
        subscription: Subscription whose billing this payment depends on
        batch: Batch currently carrying this payment
        last_batch: Batch whose run last handled this payment
        rail: Rail the payment was (last) sent through
        rail_transaction_id: Rail reference of the settling transfer
        attempt_count: Number of definitive rail failures so far; part of
            the idempotency key so a failed transfer is not replayed
    """

    # ==========================================================================
    # Parties & Sources
    # ==========================================================================

    payee = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="settlement_payments",
        help_text="User receiving this payment",
    )

    payment_type = models.CharField(
        max_length=20,
        choices=PaymentType.choices,
        db_index=True,
        help_text="What this payment pays for",
    )

    service_id = models.UUIDField(
        null=True,
        blank=True,
        db_index=True,
        help_text="External id of the completed service this payment comes from",
    )

    referral = models.ForeignKey(
        "settlement.Referral",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="payments",
        help_text="Referral that produced this payment",
    )

    subscription = models.ForeignKey(
        "settlement.Subscription",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="payments",
        help_text="Subscription this payment depends on (past-due escalation)",
    )

    # ==========================================================================
    # Amount & Currency
    # ==========================================================================

    amount_cents = models.PositiveBigIntegerField(
        help_text="Amount in smallest currency unit (e.g., cents)",
    )

    currency = models.CharField(
        max_length=3,
        default="usd",
        help_text="ISO 4217 currency code (lowercase)",
    )

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=PaymentStatus.PENDING,
        choices=PaymentStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current state of the payment (managed by FSM)",
    )

    batch = models.ForeignKey(
        "settlement.PaymentBatch",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="payments",
        help_text="Batch carrying this payment",
    )

    last_batch = models.ForeignKey(
        "settlement.PaymentBatch",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="processed_payments",
        help_text="Batch whose run last handled this payment",
    )

    # ==========================================================================
    # Rail Integration
    # ==========================================================================

    rail = models.CharField(
        max_length=20,
        choices=PayoutRailType.choices,
        null=True,
        blank=True,
        help_text="Rail this payment was sent through",
    )

    rail_transaction_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        unique=True,
        help_text="Rail reference of the settling transfer (e.g., tr_xxx)",
    )

    attempt_count = models.PositiveIntegerField(
        default=0,
        help_text="Definitive rail failures so far (idempotency key component)",
    )

    # ==========================================================================
    # Approval & Timestamps
    # ==========================================================================

    approved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="approved_settlement_payments",
        help_text="Operator who approved this payment",
    )

    approved_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the payment was approved",
    )

    paid_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the payment settled",
    )

    failed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the last attempt failed",
    )

    refunded_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the payment was marked refunded",
    )

    # ==========================================================================
    # Notes & Error Info
    # ==========================================================================

    failure_code = models.CharField(
        max_length=32,
        blank=True,
        default="",
        help_text="Error taxonomy code of the last failure",
    )

    failure_reason = models.TextField(
        blank=True,
        default="",
        help_text="Detailed reason of the last failure",
    )

    notes = models.TextField(
        blank=True,
        default="",
        help_text="Operator-facing notes (rail details, confirmations)",
    )

    metadata = models.JSONField(
        default=dict,
        blank=True,
        help_text="Fee split breakdown and other context",
    )

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Payment"
        verbose_name_plural = "Payments"
        indexes = [
            models.Index(fields=["status", "batch"], name="settlement__status_6b1f2c_idx"),
            models.Index(fields=["payee", "status"], name="settlement__payee_i_4d8e0a_idx"),
            models.Index(fields=["payment_type", "status"], name="settlement__payment_9c3a71_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount_cents__gte=0),
                name="settlement_payment_amount_non_negative",
            ),
        ]

    def __str__(self) -> str:
        amount_display = f"{self.amount_cents / 100:.2f} {self.currency.upper()}"
        return f"Payment({self.id}, {self.payment_type}, {self.status}, {amount_display})"

    @property
    def is_settled(self) -> bool:
        return self.status in (PaymentStatus.PAID, PaymentStatus.REFUNDED)

    def sync_earning(self) -> None:
        """Copy this payment's state onto its Earning, if it has one."""
        earning = Earning.objects.filter(payment=self).first()
        if earning is not None:
            earning.sync_from_payment(self)

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=PaymentStatus.PENDING,
        target=PaymentStatus.APPROVED,
    )
    def approve(self, approved_by=None):
        """
        Approve the payment for batching.

        Transition: PENDING -> APPROVED
        """
        self.approved_by = approved_by
        self.approved_at = timezone.now()

    @transition(
        field=status,
        source=[PaymentStatus.APPROVED, PaymentStatus.FAILED],
        target=PaymentStatus.PROCESSING,
    )
    def start_processing(self, rail: str, batch=None):
        """
        Hand the payment to a rail.

        Transition: APPROVED/FAILED -> PROCESSING

        FAILED is accepted so a batch can be re-run for its failed members.
        When a batch runs the payment, it becomes both its current and its
        last batch.
        """
        self.rail = rail
        if batch is not None:
            self.batch = batch
            self.last_batch = batch
        self.failure_code = ""
        self.failure_reason = ""

    @transition(
        field=status,
        source=PaymentStatus.PROCESSING,
        target=PaymentStatus.PENDING_MANUAL,
    )
    def await_manual_confirmation(self, details: str = ""):
        """
        Park the payment until an operator confirms the out-of-band transfer.

        Transition: PROCESSING -> PENDING_MANUAL
        """
        self.batch = None
        if details:
            self.notes = details

    @transition(
        field=status,
        source=[
            PaymentStatus.PROCESSING,
            PaymentStatus.PENDING_MANUAL,
            PaymentStatus.FAILED,
        ],
        target=PaymentStatus.PAID,
    )
    def mark_paid(self, transaction_id: str | None = None, details: str = ""):
        """
        Record settlement.

        Transition: PROCESSING/PENDING_MANUAL/FAILED -> PAID

        Args:
            transaction_id: Rail reference (None for cash and checks)
            details: Note appended for operators
        """
        self.paid_at = timezone.now()
        self.batch = None
        if transaction_id:
            self.rail_transaction_id = transaction_id
        if details:
            self.notes = details
        self.failure_code = ""
        self.failure_reason = ""

    @transition(
        field=status,
        source=PaymentStatus.PROCESSING,
        target=PaymentStatus.FAILED,
    )
    def fail(self, code: str, reason: str, definitive: bool = True):
        """
        Record a failed rail attempt.

        Transition: PROCESSING -> FAILED

        Args:
            code: Error taxonomy code (RAIL_DECLINED, RAIL_UNAVAILABLE, ...)
            reason: Human-readable reason
            definitive: False when the rail may still have executed the
                transfer (e.g. a timeout); the next attempt then reuses
                the same idempotency key
        """
        self.failed_at = timezone.now()
        self.batch = None
        self.failure_code = code
        self.failure_reason = reason
        if definitive:
            self.attempt_count += 1

    @transition(
        field=status,
        source=PaymentStatus.FAILED,
        target=PaymentStatus.APPROVED,
    )
    def requeue(self):
        """
        Return a failed payment to the approved pool so it can join a new
        batch, e.g. after the payee fixed their account or to switch rails.

        Transition: FAILED -> APPROVED

        attempt_count is kept, so the next transfer uses the key that
        follows the last definitive failure.
        """
        self.batch = None

    @transition(
        field=status,
        source=PaymentStatus.PAID,
        target=PaymentStatus.REFUNDED,
    )
    def mark_refunded(self, reason: str = ""):
        """
        Transition: PAID -> REFUNDED

        State only; any money movement happens outside the engine.
        """
        self.refunded_at = timezone.now()
        if reason:
            self.notes = reason


class Earning(UUIDPrimaryKeyMixin, BaseModel):
    """
    Worker-facing view of a SERVICE Payment's payee share.

    One Earning per (service, employee). Status, rail and transfer reference
    are copied from the Payment by sync_from_payment().
    """

    payment = models.OneToOneField(
        Payment,
        on_delete=models.CASCADE,
        related_name="earning",
        help_text="SERVICE payment this earning mirrors",
    )

    employee = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="earnings",
        help_text="Worker who performed the service",
    )

    service_id = models.UUIDField(
        help_text="External id of the completed service",
    )

    amount_cents = models.PositiveBigIntegerField(
        help_text="Payee share in smallest currency unit",
    )

    status = models.CharField(
        max_length=20,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING,
        db_index=True,
        help_text="Mirrors the payment status",
    )

    paid_via = models.CharField(
        max_length=20,
        choices=PayoutRailType.choices,
        blank=True,
        default="",
        help_text="Rail the earning was paid through",
    )

    transfer_reference = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Stripe transfer id or manual confirmation reference",
    )

    approved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="approved_earnings",
        help_text="Operator who approved the earning",
    )

    approved_at = models.DateTimeField(null=True, blank=True)

    paid_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Earning"
        verbose_name_plural = "Earnings"
        constraints = [
            models.UniqueConstraint(
                fields=["service_id", "employee"],
                name="settlement_earning_unique_service_employee",
            ),
        ]

    def __str__(self) -> str:
        return f"Earning({self.id}, {self.status}, {self.amount_cents / 100:.2f})"

    def sync_from_payment(self, payment: Payment | None = None) -> None:
        """Copy the mirrored fields from the payment and save."""
        payment = payment or self.payment
        self.status = payment.status
        self.paid_via = payment.rail or ""
        self.transfer_reference = payment.rail_transaction_id or ""
        self.approved_by_id = payment.approved_by_id
        self.approved_at = payment.approved_at
        self.paid_at = payment.paid_at
        self.save()
