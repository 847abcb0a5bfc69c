"""
Retry scheduler for failed payments.

Failed, retry-eligible payments get a PaymentRetry row with a persisted
next_retry_date. Each run picks up the SCHEDULED rows that are due and
re-attempts them through the payment's rail, one at a time, each in its
own try/except so a single bad row cannot abort the run.

Lineage per payment:
    retry_count 0 -> 1 -> 2 -> 3
    A transient failure below the maximum schedules retry_count + 1 after
    the cooldown. A transient failure at the maximum leaves the payment
    FAILED, moves the payment's subscription to PAST_DUE and notifies an
    operator. A definitive failure (decline, missing linkage) closes the
    lineage at once and notifies an operator.

Usage:
    from settlement.services import RetryService

    counts = RetryService.process_due_retries()
    # {"total": 4, "succeeded": 2, "failed": 1, "skipped": 1}
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from django.conf import settings
from django.db.models import Max
from django.utils import timezone

from core.services import BaseService
from settlement.exceptions import INTERNAL_ERROR, AlreadySettledError, RailError
from settlement.models import Payment, PaymentRetry
from settlement.rails import TransferRequest, get_payout_rail
from settlement.services.notification_service import NotificationService
from settlement.state_machines import (
    PaymentStatus,
    PayoutRailType,
    RetryStatus,
    SubscriptionStatus,
)

if TYPE_CHECKING:
    from settlement.rails import TransferOutcome


# Maximum retries picked up by one run
RETRY_RUN_SIZE = 200

SUCCEEDED = "succeeded"
FAILED = "failed"
SKIPPED = "skipped"


class RetryService(BaseService):
    """Scheduling and execution of PaymentRetry rows."""

    @classmethod
    def max_retries(cls) -> int:
        return settings.SETTLEMENT_MAX_RETRIES

    @classmethod
    def cooldown(cls) -> timedelta:
        return timedelta(days=settings.SETTLEMENT_RETRY_COOLDOWN_DAYS)

    # =========================================================================
    # Scheduling
    # =========================================================================

    @classmethod
    def schedule_retry(
        cls,
        payment: Payment,
        error_code: str = "",
        error_message: str = "",
    ) -> PaymentRetry | None:
        """
        Start or continue the retry lineage of a FAILED payment.

        Must be called inside the transaction that failed the payment.
        Nothing is scheduled while a retry is already open or once the
        lineage has reached the maximum.

        Returns:
            The new PaymentRetry, or None when nothing was scheduled
        """
        logger = cls.get_logger()
        retries = PaymentRetry.objects.filter(payment=payment)

        if retries.filter(status__in=[RetryStatus.SCHEDULED, RetryStatus.PENDING]).exists():
            return None

        last_count = retries.aggregate(last=Max("retry_count"))["last"]
        retry_count = 0 if last_count is None else last_count + 1
        if retry_count > cls.max_retries():
            logger.warning(
                "Retry lineage exhausted, not scheduling",
                extra={"payment_id": str(payment.id), "retry_count": retry_count},
            )
            return None

        retry = PaymentRetry.objects.create(
            payment=payment,
            retry_count=retry_count,
            next_retry_date=timezone.now() + cls.cooldown(),
            error_code=error_code,
            error_message=error_message,
        )
        logger.info(
            "Scheduled payment retry",
            extra={
                "payment_id": str(payment.id),
                "retry_id": str(retry.id),
                "retry_count": retry_count,
                "next_retry_date": retry.next_retry_date.isoformat(),
            },
        )
        return retry

    # =========================================================================
    # Execution
    # =========================================================================

    @classmethod
    def process_due_retries(cls, now: datetime | None = None) -> dict[str, int]:
        """
        Re-attempt every SCHEDULED retry whose next_retry_date has passed.

        Returns:
            {"total", "succeeded", "failed", "skipped"}
        """
        logger = cls.get_logger()
        now = now or timezone.now()

        due_ids = list(
            PaymentRetry.objects.filter(
                status=RetryStatus.SCHEDULED,
                next_retry_date__lte=now,
            )
            .order_by("next_retry_date")
            .values_list("id", flat=True)[:RETRY_RUN_SIZE]
        )

        counts = {"total": len(due_ids), SUCCEEDED: 0, FAILED: 0, SKIPPED: 0}
        logger.info("Starting payment retry run", extra={"due_count": len(due_ids)})

        for retry_id in due_ids:
            try:
                counts[cls.process_retry(retry_id)] += 1
            except Exception as e:
                logger.error(
                    f"Error processing payment retry: {e}",
                    extra={"retry_id": str(retry_id)},
                    exc_info=True,
                )
                counts[FAILED] += 1

        logger.info("Payment retry run complete", extra=counts)
        return counts

    @classmethod
    def process_retry(cls, retry_id: uuid.UUID) -> str:
        """
        Re-attempt one retry.

        Returns:
            "succeeded", "failed" or "skipped"
        """
        logger = cls.get_logger()

        # Phase 1: claim the retry and move the payment to PROCESSING
        with cls.atomic():
            retry = (
                PaymentRetry.objects.select_for_update()
                .filter(id=retry_id, status=RetryStatus.SCHEDULED)
                .first()
            )
            if retry is None:
                return SKIPPED

            payment = Payment.objects.select_for_update().get(id=retry.payment_id)

            if payment.status != PaymentStatus.FAILED:
                cls._close_retry(
                    retry,
                    RetryStatus.FAILED,
                    error_message=f"Payment is no longer failed (status {payment.status})",
                )
                return SKIPPED

            rail = get_payout_rail(payment.rail or PayoutRailType.STRIPE)
            if not rail.has_linkage(payment.payee):
                cls._close_retry(
                    retry,
                    RetryStatus.FAILED,
                    error_message="Payee has no linked payout account",
                )
                logger.warning(
                    "Skipping retry for payee without linked account",
                    extra={"retry_id": str(retry_id), "payment_id": str(payment.id)},
                )
                return SKIPPED

            retry.status = RetryStatus.PENDING
            retry.attempted_at = timezone.now()
            retry.save(update_fields=["status", "attempted_at", "updated_at"])
            payment.start_processing(rail=rail.rail_type)
            payment.save()

        # Phase 2: rail call, outside any transaction
        try:
            outcome = rail.transfer(TransferRequest.for_payment(payment))
        except AlreadySettledError as e:
            return cls._record_success(retry_id, e.external_id, "Already settled")
        except RailError as e:
            return cls._record_failure(
                retry_id, e.error_code, e.message, definitive=not e.is_retryable
            )
        except Exception as e:
            logger.error(
                f"Unexpected error during payment retry: {e}",
                extra={"retry_id": str(retry_id), "payment_id": str(payment.id)},
                exc_info=True,
            )
            return cls._record_failure(retry_id, INTERNAL_ERROR, str(e), definitive=False)

        # Phase 3: record the outcome
        return cls._record_success(retry_id, outcome.external_id, outcome.details, outcome)

    @classmethod
    def _record_success(
        cls,
        retry_id: uuid.UUID,
        external_id: str | None,
        details: str,
        outcome: TransferOutcome | None = None,
    ) -> str:
        with cls.atomic():
            retry = PaymentRetry.objects.select_for_update().get(id=retry_id)
            payment = Payment.objects.select_for_update().get(id=retry.payment_id)

            if outcome is not None and not outcome.is_settled:
                payment.await_manual_confirmation(details=details)
                payment.save()
                NotificationService.notify_manual_payout(payment)
            else:
                payment.mark_paid(transaction_id=external_id, details=details)
                payment.save()
                cls._reactivate_subscription(payment)

            retry.rail_transaction_id = external_id or ""
            cls._close_retry(retry, RetryStatus.SUCCESS)
            payment.sync_earning()

        cls.get_logger().info(
            "Payment retry succeeded",
            extra={
                "retry_id": str(retry_id),
                "payment_id": str(payment.id),
                "status": payment.status,
                "rail_transaction_id": external_id,
            },
        )
        return SUCCEEDED

    @classmethod
    def _record_failure(
        cls,
        retry_id: uuid.UUID,
        error_code: str,
        error_message: str,
        definitive: bool,
    ) -> str:
        logger = cls.get_logger()

        with cls.atomic():
            retry = PaymentRetry.objects.select_for_update().get(id=retry_id)
            payment = Payment.objects.select_for_update().get(id=retry.payment_id)

            payment.fail(code=error_code, reason=error_message, definitive=definitive)
            payment.save()
            payment.sync_earning()
            cls._close_retry(
                retry, RetryStatus.FAILED, error_code=error_code, error_message=error_message
            )

            if definitive:
                NotificationService.notify_terminal_failure(payment)
                logger.error(
                    "Payment retry failed definitively, lineage closed",
                    extra={
                        "retry_id": str(retry_id),
                        "payment_id": str(payment.id),
                        "error_code": error_code,
                    },
                )
                return FAILED

            if retry.retry_count < cls.max_retries():
                next_retry = PaymentRetry.objects.create(
                    payment=payment,
                    retry_count=retry.retry_count + 1,
                    next_retry_date=timezone.now() + cls.cooldown(),
                )
                logger.warning(
                    "Payment retry failed, next attempt scheduled",
                    extra={
                        "retry_id": str(retry_id),
                        "payment_id": str(payment.id),
                        "error_code": error_code,
                        "next_retry_id": str(next_retry.id),
                        "next_retry_count": next_retry.retry_count,
                    },
                )
                return FAILED

            subscription = cls._escalate_subscription(payment)
            NotificationService.notify_retries_exhausted(payment, subscription)

        logger.error(
            "Payment retries exhausted",
            extra={
                "retry_id": str(retry_id),
                "payment_id": str(payment.id),
                "error_code": error_code,
                "subscription_id": str(payment.subscription_id)
                if payment.subscription_id
                else None,
            },
        )
        return FAILED

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _close_retry(
        retry: PaymentRetry,
        status: str,
        error_code: str = "",
        error_message: str = "",
    ) -> None:
        retry.status = status
        if error_code:
            retry.error_code = error_code
        if error_message:
            retry.error_message = error_message
        if retry.attempted_at is None:
            retry.attempted_at = timezone.now()
        retry.save()

    @staticmethod
    def _reactivate_subscription(payment: Payment) -> None:
        subscription = payment.subscription
        if subscription is None or subscription.status == SubscriptionStatus.CANCELLED:
            return
        subscription.reactivate()
        subscription.save()

    @classmethod
    def _escalate_subscription(cls, payment: Payment):
        subscription = payment.subscription
        if subscription is None:
            return None
        if subscription.status == SubscriptionStatus.ACTIVE:
            subscription.mark_past_due()
            subscription.save()
            cls.get_logger().warning(
                "Subscription marked past due",
                extra={"subscription_id": str(subscription.id), "payment_id": str(payment.id)},
            )
        return subscription
