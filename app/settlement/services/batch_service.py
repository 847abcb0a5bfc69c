"""
Batch orchestrator: assembles approved payments into batches and pays them.

Processing runs in three phases so no transaction ever spans a rail call:

1. Phase 1 (one transaction): lock the batch, check it is DRAFT, FAILED or
   PARTIAL, move it and every eligible member to PROCESSING and commit.
   The transition to PROCESSING under a row lock is the gate that rejects
   a second concurrent process() call.
2. Phase 2 (per payment): call the rail with an idempotency key derived
   from the payment id and its attempt count, then record the outcome in
   its own short transaction. One payment's failure never stops the rest.
3. Phase 3 (one transaction): derive COMPLETED / FAILED / PARTIAL from
   every payment the batch has run and store the counts.

Eligible members are the APPROVED payments still in the batch plus the
FAILED payments whose last run was this batch, so a FAILED or PARTIAL
batch re-runs only what failed. A payment that failed definitively moves
to a new idempotency key; a transient failure keeps its key, so the rail
deduplicates a transfer that did go through.

Usage:
    from settlement.services import BatchService

    batch = BatchService.create_batch(name="Week 32", created_by=operator)
    BatchService.add_payments(batch.id, payment_ids)
    result = BatchService.process_batch(batch.id, rail="stripe")
    result.status  # "completed" | "failed" | "partial"
"""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from datetime import date
from typing import TYPE_CHECKING, Any

from django.db.models import F, Q

from core.exceptions import NotFoundError, ValidationError
from core.services import BaseService, ServiceResult
from settlement.exceptions import (
    INTERNAL_ERROR,
    AlreadySettledError,
    BatchLockedError,
    InvalidStateTransitionError,
    RailError,
)
from settlement.models import Payment, PaymentBatch
from settlement.rails import TransferRequest, get_payout_rail
from settlement.services.notification_service import NotificationService
from settlement.services.retry_service import RetryService
from settlement.state_machines import BatchStatus, BatchType, PaymentStatus

if TYPE_CHECKING:
    from collections.abc import Iterable

    from django.contrib.auth.models import AbstractBaseUser

    from settlement.rails import PayoutRail


# Payment statuses that count as a successful batch outcome
SUCCESS_STATUSES = (PaymentStatus.PAID, PaymentStatus.PENDING_MANUAL)

# Batch statuses from which process() may start a run
RUNNABLE_STATUSES = (BatchStatus.DRAFT, BatchStatus.FAILED, BatchStatus.PARTIAL)


# =============================================================================
# Result Types
# =============================================================================


@dataclass
class PaymentOutcome:
    """
    Outcome of one payment in a batch run.

    Attributes:
        payment_id: Payment that was processed
        status: Payment status after the attempt
        rail: Rail used
        external_id: Rail reference when settled
        details: Human-readable description of the outcome
        error_code: Taxonomy code when the attempt failed
    """

    payment_id: str
    status: str
    rail: str
    external_id: str | None = None
    details: str = ""
    error_code: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status in SUCCESS_STATUSES


@dataclass
class BatchProcessResult:
    """
    Summary of one batch run.

    The counts cover every payment the batch has run so far; results
    covers this run only.
    """

    batch_id: str
    status: str
    total_payments: int
    success_count: int
    failed_count: int
    results: list[PaymentOutcome] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# =============================================================================
# Batch Service
# =============================================================================


class BatchService(BaseService):
    """
    Batch lifecycle: create, edit membership, process, delete.

    Membership edits and deletion raise settlement exceptions on invalid
    requests (no state is changed). process_batch() raises only when the
    run cannot start; once started it always returns a summary.
    """

    # =========================================================================
    # Lifecycle
    # =========================================================================

    @classmethod
    def create_batch(
        cls,
        name: str,
        batch_type: str = BatchType.EARNINGS,
        created_by: AbstractBaseUser | None = None,
        scheduled_date: date | None = None,
        notes: str = "",
    ) -> PaymentBatch:
        batch = PaymentBatch.objects.create(
            name=name,
            batch_type=batch_type,
            created_by=created_by,
            scheduled_date=scheduled_date,
            notes=notes,
        )
        cls.get_logger().info(
            "Created payment batch",
            extra={"batch_id": str(batch.id), "batch_type": batch_type},
        )
        return batch

    @classmethod
    def add_payments(
        cls, batch_id: uuid.UUID, payment_ids: Iterable[uuid.UUID]
    ) -> int:
        """
        Add APPROVED, unbatched payments to a DRAFT batch.

        All or nothing: if any id is unknown, not APPROVED or already in a
        batch, nothing is added. Ids already in this batch are ignored.

        Returns:
            Number of payments added

        Raises:
            NotFoundError: Unknown batch
            BatchLockedError: Batch is not DRAFT
            ValidationError: Some payments are not eligible
        """
        payment_ids = {uuid.UUID(str(pid)) for pid in payment_ids}

        with cls.atomic():
            batch = cls._lock_batch(batch_id)
            cls._ensure_editable(batch)

            payments = {
                p.id: p
                for p in Payment.objects.select_for_update().filter(id__in=payment_ids)
            }
            ineligible = []
            to_add = []
            for pid in payment_ids:
                payment = payments.get(pid)
                if payment is not None and payment.batch_id == batch.id:
                    continue
                if (
                    payment is None
                    or payment.status != PaymentStatus.APPROVED
                    or payment.batch_id is not None
                ):
                    ineligible.append(str(pid))
                    continue
                to_add.append(pid)

            if ineligible:
                raise ValidationError(
                    "Only approved payments that are not in a batch can be added",
                    details={"batch_id": str(batch_id), "ineligible_payment_ids": sorted(ineligible)},
                )

            added = Payment.objects.filter(id__in=to_add).update(
                batch=batch, version=F("version") + 1
            )

        cls.get_logger().info(
            "Added payments to batch",
            extra={"batch_id": str(batch_id), "added_count": added},
        )
        return added

    @classmethod
    def remove_payments(
        cls, batch_id: uuid.UUID, payment_ids: Iterable[uuid.UUID]
    ) -> int:
        """
        Release payments from a DRAFT batch. Ids not in the batch are ignored.

        Raises:
            NotFoundError: Unknown batch
            BatchLockedError: Batch is not DRAFT
        """
        with cls.atomic():
            batch = cls._lock_batch(batch_id)
            cls._ensure_editable(batch)
            removed = Payment.objects.filter(
                batch=batch, id__in=list(payment_ids)
            ).update(batch=None, version=F("version") + 1)

        cls.get_logger().info(
            "Removed payments from batch",
            extra={"batch_id": str(batch_id), "removed_count": removed},
        )
        return removed

    @classmethod
    def delete_batch(
        cls, batch_id: uuid.UUID, release_payments: bool = False
    ) -> ServiceResult[int]:
        """
        Delete a DRAFT or FAILED batch.

        A batch that still carries payments is only deleted with
        release_payments=True, which clears their batch reference first.
        Payments that failed in a run of this batch are requeued to
        APPROVED so they can join another batch.

        Returns:
            ServiceResult with the number of payments released
        """
        logger = cls.get_logger()
        try:
            with cls.atomic():
                batch = cls._lock_batch(batch_id)
                if not batch.is_deletable:
                    raise InvalidStateTransitionError(
                        f"Cannot delete batch in '{batch.status}' status",
                        details={"batch_id": str(batch_id), "current_status": batch.status},
                    )

                members = Payment.objects.filter(batch=batch)
                failed_members = list(
                    Payment.objects.select_for_update().filter(
                        last_batch=batch, batch__isnull=True, status=PaymentStatus.FAILED
                    )
                )
                payment_count = members.count() + len(failed_members)
                if payment_count and not release_payments:
                    raise ValidationError(
                        "Batch still has payments; release them to delete the batch",
                        details={"batch_id": str(batch_id), "payment_count": payment_count},
                    )

                released = members.update(batch=None, version=F("version") + 1)
                for payment in failed_members:
                    payment.requeue()
                    payment.save()
                    payment.sync_earning()
                released += len(failed_members)
                batch.delete()
        except (NotFoundError, ValidationError, InvalidStateTransitionError) as e:
            return cls.handle_exception(e, "Batch deletion")

        logger.info(
            "Deleted payment batch",
            extra={"batch_id": str(batch_id), "released_count": released},
        )
        return ServiceResult.success(released)

    # =========================================================================
    # Processing
    # =========================================================================

    @classmethod
    def process_batch(cls, batch_id: uuid.UUID, rail: str) -> BatchProcessResult:
        """
        Pay every eligible member of a batch through one rail.

        Args:
            batch_id: DRAFT batch, or FAILED/PARTIAL batch being re-run
                for its failed payments
            rail: Rail identifier (PayoutRailType value)

        Returns:
            BatchProcessResult with this run's per-payment outcomes and the
            batch's overall counts

        Raises:
            ValidationError: Unknown rail or nothing to process
            NotFoundError: Unknown batch
            InvalidStateTransitionError: Batch is PROCESSING or COMPLETED
        """
        logger = cls.get_logger()
        payout_rail = get_payout_rail(rail)

        payments = cls._start_processing(batch_id, payout_rail)
        logger.info(
            "Processing payment batch",
            extra={"batch_id": str(batch_id), "rail": rail, "payment_count": len(payments)},
        )

        results = []
        for payment in payments:
            try:
                outcome = cls._settle_payment(batch_id, payment, payout_rail)
            except Exception as e:
                # The payment stays PROCESSING; resubmitting reuses its key
                logger.error(
                    f"Failed to record payment outcome: {e}",
                    extra={"batch_id": str(batch_id), "payment_id": str(payment.id)},
                    exc_info=True,
                )
                outcome = PaymentOutcome(
                    payment_id=str(payment.id),
                    status=PaymentStatus.PROCESSING,
                    rail=payout_rail.rail_type,
                    details=str(e),
                    error_code=INTERNAL_ERROR,
                )
            results.append(outcome)

        return cls._finalize(batch_id, results)

    @classmethod
    def _start_processing(
        cls, batch_id: uuid.UUID, payout_rail: PayoutRail
    ) -> list[Payment]:
        with cls.atomic():
            batch = cls._lock_batch(batch_id)
            if batch.status not in RUNNABLE_STATUSES:
                raise InvalidStateTransitionError(
                    f"Cannot process batch in '{batch.status}' status",
                    details={"batch_id": str(batch_id), "current_status": batch.status},
                )

            payments = list(
                Payment.objects.select_for_update()
                .select_related("payee")
                .filter(
                    Q(batch=batch, status=PaymentStatus.APPROVED)
                    | Q(last_batch=batch, batch__isnull=True, status=PaymentStatus.FAILED)
                )
                .order_by("created_at")
            )
            if not payments:
                raise ValidationError(
                    "Batch has no payments to process",
                    details={"batch_id": str(batch_id)},
                )

            batch.start_processing(rail=payout_rail.rail_type)
            batch.save()
            for payment in payments:
                payment.start_processing(rail=payout_rail.rail_type, batch=batch)
                payment.save()
                payment.sync_earning()

        return payments

    @classmethod
    def _settle_payment(
        cls, batch_id: uuid.UUID, payment: Payment, payout_rail: PayoutRail
    ) -> PaymentOutcome:
        logger = cls.get_logger()
        log_context = {"batch_id": str(batch_id), "payment_id": str(payment.id)}

        if payment.amount_cents == 0:
            return cls._record_paid(payment.id, None, "Zero amount, nothing to transfer")

        try:
            outcome = payout_rail.transfer(TransferRequest.for_payment(payment))
        except AlreadySettledError as e:
            logger.info("Payment already settled on the rail", extra=log_context)
            return cls._record_paid(
                payment.id, e.external_id, "Already settled under this idempotency key"
            )
        except RailError as e:
            return cls._record_failure(payment.id, e.error_code, e.message, e.is_retryable)
        except Exception as e:
            logger.error(
                f"Unexpected error from payout rail: {e}",
                extra=log_context,
                exc_info=True,
            )
            return cls._record_failure(
                payment.id, INTERNAL_ERROR, str(e), retryable=False, definitive=False
            )

        if outcome.is_settled:
            return cls._record_paid(payment.id, outcome.external_id, outcome.details)
        return cls._record_manual(payment.id, outcome.details)

    @classmethod
    def _record_paid(
        cls, payment_id: uuid.UUID, external_id: str | None, details: str
    ) -> PaymentOutcome:
        with cls.atomic():
            payment = Payment.objects.select_for_update().get(id=payment_id)
            payment.mark_paid(transaction_id=external_id, details=details)
            payment.save()
            payment.sync_earning()

        cls.get_logger().info(
            "Payment paid",
            extra={"payment_id": str(payment_id), "rail_transaction_id": external_id},
        )
        return PaymentOutcome(
            payment_id=str(payment_id),
            status=payment.status,
            rail=payment.rail,
            external_id=external_id,
            details=details,
        )

    @classmethod
    def _record_manual(cls, payment_id: uuid.UUID, details: str) -> PaymentOutcome:
        with cls.atomic():
            payment = Payment.objects.select_for_update().select_related("payee").get(
                id=payment_id
            )
            payment.await_manual_confirmation(details=details)
            payment.save()
            payment.sync_earning()
            NotificationService.notify_manual_payout(payment)

        cls.get_logger().info(
            "Payment awaiting manual confirmation",
            extra={"payment_id": str(payment_id), "rail": payment.rail},
        )
        return PaymentOutcome(
            payment_id=str(payment_id),
            status=payment.status,
            rail=payment.rail,
            details=details,
        )

    @classmethod
    def _record_failure(
        cls,
        payment_id: uuid.UUID,
        error_code: str,
        message: str,
        retryable: bool,
        definitive: bool | None = None,
    ) -> PaymentOutcome:
        if definitive is None:
            definitive = not retryable

        with cls.atomic():
            payment = Payment.objects.select_for_update().select_related("payee").get(
                id=payment_id
            )
            # A non-definitive failure may have executed; keep the idempotency key
            payment.fail(code=error_code, reason=message, definitive=definitive)
            payment.save()
            payment.sync_earning()

            if retryable:
                RetryService.schedule_retry(payment, error_code=error_code, error_message=message)
            else:
                NotificationService.notify_terminal_failure(payment)

        cls.get_logger().warning(
            "Payment failed",
            extra={
                "payment_id": str(payment_id),
                "error_code": error_code,
                "retryable": retryable,
            },
        )
        return PaymentOutcome(
            payment_id=str(payment_id),
            status=payment.status,
            rail=payment.rail,
            details=message,
            error_code=error_code,
        )

    @classmethod
    def _finalize(
        cls, batch_id: uuid.UUID, results: list[PaymentOutcome]
    ) -> BatchProcessResult:
        with cls.atomic():
            batch = cls._lock_batch(batch_id)
            handled = Payment.objects.filter(last_batch=batch)
            success_count = handled.filter(
                status__in=[*SUCCESS_STATUSES, PaymentStatus.REFUNDED]
            ).count()
            # PROCESSING here means the outcome of its attempt was not recorded
            failed_count = handled.filter(
                status__in=[PaymentStatus.FAILED, PaymentStatus.PROCESSING]
            ).count()

            if failed_count == 0:
                batch.complete(success_count)
            elif success_count == 0:
                batch.fail(failed_count)
            else:
                batch.mark_partial(success_count, failed_count)
            batch.save()

        cls.get_logger().info(
            "Payment batch processed",
            extra={
                "batch_id": str(batch_id),
                "status": batch.status,
                "success_count": success_count,
                "failed_count": failed_count,
            },
        )
        return BatchProcessResult(
            batch_id=str(batch_id),
            status=batch.status,
            total_payments=batch.total_payments,
            success_count=success_count,
            failed_count=failed_count,
            results=results,
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    @classmethod
    def _lock_batch(cls, batch_id: uuid.UUID) -> PaymentBatch:
        try:
            return PaymentBatch.objects.select_for_update().get(id=batch_id)
        except PaymentBatch.DoesNotExist as e:
            raise NotFoundError(
                "Payment batch not found", details={"batch_id": str(batch_id)}
            ) from e

    @staticmethod
    def _ensure_editable(batch: PaymentBatch) -> None:
        if not batch.is_editable:
            raise BatchLockedError(
                f"Cannot change payments of a batch in '{batch.status}' status",
                details={"batch_id": str(batch.id), "current_status": batch.status},
            )

