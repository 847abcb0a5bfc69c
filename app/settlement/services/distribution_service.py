"""
Distribution service: turns completed services into payments.

Handles everything that happens to a payment outside a batch run:
    - record_service_payment: fee split + SERVICE payment + Earning
      (+ REFERRAL payment when the customer was referred)
    - approve_payments: PENDING -> APPROVED
    - requeue_payments: FAILED -> APPROVED, ready for a new batch
    - confirm_manual_payment: PENDING_MANUAL -> PAID (operator action)
    - refund_payment: PAID -> REFUNDED
    - get_earnings_summary: worker-facing totals

Usage:
    from settlement.services import DistributionService

    recording = DistributionService.record_service_payment(
        service_id=job.id,
        employee=job.employee,
        customer=job.customer,
        gross_amount_cents=5500,
        subscription=subscription,  # 4 visits per period
    )
    recording.payment.amount_cents  # 902
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING

from django.conf import settings
from django.db import IntegrityError
from django.db.models import Count, Q, Sum
from django_fsm import TransitionNotAllowed

from core.exceptions import ConflictError, NotFoundError, ValidationError
from core.services import BaseService, ServiceResult
from settlement.exceptions import InvalidStateTransitionError
from settlement.fees import FeeSchedule, FeeSplit, split
from settlement.models import Earning, Payment, Referral
from settlement.state_machines import PaymentStatus, PaymentType, ReferralStatus

if TYPE_CHECKING:
    from collections.abc import Iterable

    from django.contrib.auth.models import AbstractBaseUser

    from settlement.models import Subscription


@dataclass
class ServiceRecording:
    """Records created for one completed service."""

    payment: Payment
    earning: Earning
    fee_split: FeeSplit
    referral_payment: Payment | None = None


class DistributionService(BaseService):
    """Payment creation and the single-payment operator actions."""

    # =========================================================================
    # Recording
    # =========================================================================

    @classmethod
    def record_service_payment(
        cls,
        service_id: uuid.UUID,
        employee: AbstractBaseUser,
        customer: AbstractBaseUser,
        gross_amount_cents: int,
        visits: int | None = None,
        subscription: Subscription | None = None,
        auto_approve: bool = False,
        approved_by: AbstractBaseUser | None = None,
    ) -> ServiceRecording:
        """
        Split a completed service's charge and record what the worker is owed.

        The referral fee is deducted when the customer is the referred side
        of an ACTIVE referral. For one-off services (no subscription) the
        fee is paid to the referrer as a REFERRAL payment right away; for
        subscription visits the referrer is paid by the monthly cascade
        instead.

        visits defaults to the subscription's visits_per_period, or 1 for
        a one-off service.

        Raises:
            ValidationError: Negative amount or visits below 1
            ConflictError: The service is already recorded for this employee
        """
        logger = cls.get_logger()

        if gross_amount_cents < 0:
            raise ValidationError(
                "Gross amount must not be negative",
                details={"gross_amount_cents": gross_amount_cents},
            )
        if visits is None:
            visits = subscription.visits_per_period if subscription is not None else 1
        if visits < 1:
            raise ValidationError("Visits must be at least 1", details={"visits": visits})

        referral = (
            Referral.objects.select_related("referrer")
            .filter(referred=customer, status=ReferralStatus.ACTIVE)
            .first()
        )
        referral_fee = settings.SETTLEMENT_REFERRAL_FEE_CENTS if referral else 0
        fee_split = split(
            gross_amount_cents,
            referral_fee_cents=referral_fee,
            schedule=FeeSchedule.from_settings(),
            visits=visits,
        )
        currency = settings.SETTLEMENT_CURRENCY

        try:
            with cls.atomic():
                if Earning.objects.filter(service_id=service_id, employee=employee).exists():
                    raise ConflictError(
                        "Service payment already recorded for this employee",
                        details={"service_id": str(service_id), "employee_id": str(employee.pk)},
                    )

                payment = Payment(
                    payee=employee,
                    payment_type=PaymentType.SERVICE,
                    service_id=service_id,
                    subscription=subscription,
                    amount_cents=fee_split.payee_per_visit_cents,
                    currency=currency,
                    metadata={"fee_split": fee_split.as_dict()},
                )
                if auto_approve:
                    payment.approve(approved_by=approved_by)
                payment.save()

                earning = Earning(
                    payment=payment,
                    employee=employee,
                    service_id=service_id,
                    amount_cents=payment.amount_cents,
                )
                earning.sync_from_payment(payment)

                referral_payment = None
                if referral is not None and subscription is None and fee_split.referral_fee_cents:
                    referral_payment = Payment(
                        payee=referral.referrer,
                        payment_type=PaymentType.REFERRAL,
                        service_id=service_id,
                        referral=referral,
                        amount_cents=fee_split.referral_fee_cents,
                        currency=currency,
                    )
                    if auto_approve:
                        referral_payment.approve(approved_by=approved_by)
                    referral_payment.save()
        except IntegrityError as e:
            raise ConflictError(
                "Service payment already recorded for this employee",
                details={"service_id": str(service_id), "employee_id": str(employee.pk)},
            ) from e

        logger.info(
            "Recorded service payment",
            extra={
                "payment_id": str(payment.id),
                "service_id": str(service_id),
                "amount_cents": payment.amount_cents,
                "referral_id": str(referral.id) if referral else None,
                "status": payment.status,
            },
        )
        return ServiceRecording(
            payment=payment,
            earning=earning,
            fee_split=fee_split,
            referral_payment=referral_payment,
        )

    # =========================================================================
    # Approval
    # =========================================================================

    @classmethod
    def approve_payments(
        cls,
        payment_ids: Iterable[uuid.UUID],
        approver: AbstractBaseUser | None = None,
    ) -> int:
        """
        Approve every PENDING payment among payment_ids.

        Ids that are unknown or not PENDING are ignored.

        Returns:
            Number of payments approved
        """
        approved = 0
        with cls.atomic():
            payments = Payment.objects.select_for_update().filter(
                id__in=list(payment_ids), status=PaymentStatus.PENDING
            )
            for payment in payments:
                payment.approve(approved_by=approver)
                payment.save()
                payment.sync_earning()
                approved += 1

        cls.get_logger().info(
            "Approved payments",
            extra={
                "approved_count": approved,
                "approver_id": str(approver.pk) if approver else None,
            },
        )
        return approved

    @classmethod
    def requeue_payments(cls, payment_ids: Iterable[uuid.UUID]) -> int:
        """
        Return FAILED payments to APPROVED so they can join a new batch.

        Used once the cause of a terminal failure (missing linkage, decline)
        has been corrected, or to pay through another rail. Ids that are
        unknown or not FAILED are ignored. A scheduled retry of a requeued
        payment is closed as skipped when it comes due.

        Returns:
            Number of payments requeued
        """
        requeued = 0
        with cls.atomic():
            payments = Payment.objects.select_for_update().filter(
                id__in=list(payment_ids), status=PaymentStatus.FAILED
            )
            for payment in payments:
                payment.requeue()
                payment.save()
                payment.sync_earning()
                requeued += 1

        cls.get_logger().info("Requeued failed payments", extra={"requeued_count": requeued})
        return requeued

    # =========================================================================
    # Operator Actions
    # =========================================================================

    @classmethod
    def confirm_manual_payment(
        cls,
        payment_id: uuid.UUID,
        operator: AbstractBaseUser | None = None,
        reference: str = "",
    ) -> ServiceResult[Payment]:
        """
        Record that an operator completed a manual transfer.

        Confirming an already PAID payment succeeds without changing it.

        Args:
            payment_id: Payment awaiting confirmation
            operator: Operator confirming the transfer
            reference: Out-of-band reference (Cash App id, check number)

        Raises:
            NotFoundError: Unknown payment
            InvalidStateTransitionError: Payment is not PENDING_MANUAL or PAID
            ConflictError: Reference already used by another payment
        """
        logger = cls.get_logger()

        try:
            with cls.atomic():
                payment = cls._lock_payment(payment_id)

                if payment.status == PaymentStatus.PAID:
                    logger.info(
                        "Manual payment already confirmed",
                        extra={"payment_id": str(payment_id)},
                    )
                    return ServiceResult.success(payment)

                operator_label = operator.get_username() if operator else "operator"
                details = f"{payment.notes}\nConfirmed by {operator_label}".strip()
                if reference:
                    details += f" (reference {reference})"
                try:
                    payment.mark_paid(
                        transaction_id=f"{payment.rail}:{reference}" if reference else None,
                        details=details,
                    )
                except TransitionNotAllowed as e:
                    raise InvalidStateTransitionError(
                        f"Cannot confirm payment in '{payment.status}' status",
                        details={"payment_id": str(payment_id), "current_status": payment.status},
                    ) from e
                payment.save()
                payment.sync_earning()
        except IntegrityError as e:
            raise ConflictError(
                "Reference already recorded for another payment",
                details={"payment_id": str(payment_id), "reference": reference},
            ) from e

        logger.info(
            "Manual payment confirmed",
            extra={
                "payment_id": str(payment_id),
                "rail": payment.rail,
                "operator_id": str(operator.pk) if operator else None,
            },
        )
        return ServiceResult.success(payment)

    @classmethod
    def refund_payment(cls, payment_id: uuid.UUID, reason: str = "") -> Payment:
        """
        Mark a PAID payment refunded. No money is moved by the engine.

        Raises:
            NotFoundError: Unknown payment
            InvalidStateTransitionError: Payment is not PAID
        """
        with cls.atomic():
            payment = cls._lock_payment(payment_id)
            try:
                payment.mark_refunded(reason=reason)
            except TransitionNotAllowed as e:
                raise InvalidStateTransitionError(
                    f"Cannot refund payment in '{payment.status}' status",
                    details={"payment_id": str(payment_id), "current_status": payment.status},
                ) from e
            payment.save()
            payment.sync_earning()

        cls.get_logger().info(
            "Payment marked refunded",
            extra={"payment_id": str(payment_id), "reason": reason},
        )
        return payment

    # =========================================================================
    # Queries
    # =========================================================================

    @classmethod
    def get_earnings_summary(cls, employee: AbstractBaseUser) -> dict[str, int]:
        """
        Totals for a worker's earnings.

        Returns:
            {"total_earned_cents", "pending_cents", "total_jobs"}
        """
        totals = Earning.objects.filter(employee=employee).aggregate(
            total_earned_cents=Sum("amount_cents", filter=Q(status=PaymentStatus.PAID)),
            pending_cents=Sum(
                "amount_cents", filter=Q(status__in=PaymentStatus.outstanding())
            ),
            total_jobs=Count("id"),
        )
        return {
            "total_earned_cents": totals["total_earned_cents"] or 0,
            "pending_cents": totals["pending_cents"] or 0,
            "total_jobs": totals["total_jobs"],
        }

    # =========================================================================
    # Helpers
    # =========================================================================

    @classmethod
    def _lock_payment(cls, payment_id: uuid.UUID) -> Payment:
        try:
            return Payment.objects.select_for_update().get(id=payment_id)
        except Payment.DoesNotExist as e:
            raise NotFoundError(
                "Payment not found", details={"payment_id": str(payment_id)}
            ) from e
