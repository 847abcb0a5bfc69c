"""
Referral management and the monthly referral cascade.

The cascade runs once a month. For every ACTIVE referral whose referred
customer has an ACTIVE subscription it issues one credit for the current
calendar month, as an APPROVED MONTHLY_REFERRAL payment ready for
batching, until the subscription is cap_months old.

Re-running the cascade within a month is a no-op for referrals already
credited: (referral, period_month) is unique in the database, so even two
concurrent runs cannot create a second credit.

Usage:
    from settlement.services import ReferralService

    summary = ReferralService.process_monthly_referrals()
    summary["processed_count"], summary["total_amount_cents"]
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import TYPE_CHECKING, Any

from django.conf import settings
from django.db import IntegrityError
from django.utils import timezone
from django_fsm import TransitionNotAllowed

from core.exceptions import ConflictError, NotFoundError, ValidationError
from core.services import BaseService
from settlement.exceptions import InvalidStateTransitionError
from settlement.models import Payment, Referral, ReferralPayout, Subscription
from settlement.state_machines import (
    PaymentType,
    ReferralPayoutStatus,
    ReferralStatus,
    SubscriptionStatus,
)

if TYPE_CHECKING:
    from django.contrib.auth.models import AbstractBaseUser


def months_between(start: datetime, end: datetime) -> int:
    """
    Whole calendar months from start to end, floored.

    A month counts once the same day-of-month and time is reached:
    Jan 15 -> Feb 14 is 0 months, Jan 15 -> Feb 15 is 1 month.
    """
    months = (end.year - start.year) * 12 + (end.month - start.month)
    if (end.day, end.time()) < (start.day, start.time()):
        months -= 1
    return max(months, 0)


class ReferralService(BaseService):
    """Referral lifecycle and monthly credit issuance."""

    # =========================================================================
    # Management
    # =========================================================================

    @classmethod
    def create_referral(
        cls,
        referrer: AbstractBaseUser,
        referred: AbstractBaseUser,
        code: str = "",
    ) -> Referral:
        """
        Record that referrer brought in referred.

        Raises:
            ValidationError: Self-referral
            ConflictError: The referred user already has a referral
        """
        if referrer.pk == referred.pk:
            raise ValidationError(
                "Users cannot refer themselves",
                details={"user_id": str(referrer.pk)},
            )

        conflict = ConflictError(
            "User has already been referred",
            details={"referred_id": str(referred.pk)},
        )
        if Referral.objects.filter(referred=referred).exists():
            raise conflict
        try:
            with cls.atomic():
                referral = Referral.objects.create(
                    referrer=referrer, referred=referred, code=code
                )
        except IntegrityError as e:
            raise conflict from e

        cls.get_logger().info(
            "Referral created",
            extra={
                "referral_id": str(referral.id),
                "referrer_id": str(referrer.pk),
                "referred_id": str(referred.pk),
            },
        )
        return referral

    @classmethod
    def activate_referral(cls, referral_id: uuid.UUID) -> Referral:
        return cls._transition(referral_id, "activate")

    @classmethod
    def cancel_referral(cls, referral_id: uuid.UUID) -> Referral:
        return cls._transition(referral_id, "cancel")

    @classmethod
    def _transition(cls, referral_id: uuid.UUID, action: str) -> Referral:
        with cls.atomic():
            try:
                referral = Referral.objects.select_for_update().get(id=referral_id)
            except Referral.DoesNotExist as e:
                raise NotFoundError(
                    "Referral not found", details={"referral_id": str(referral_id)}
                ) from e
            try:
                getattr(referral, action)()
            except TransitionNotAllowed as e:
                raise InvalidStateTransitionError(
                    f"Cannot {action} referral in '{referral.status}' status",
                    details={"referral_id": str(referral_id), "current_status": referral.status},
                ) from e
            referral.save()

        cls.get_logger().info(
            f"Referral {action} complete",
            extra={"referral_id": str(referral_id), "status": referral.status},
        )
        return referral

    # =========================================================================
    # Monthly Cascade
    # =========================================================================

    @classmethod
    def process_monthly_referrals(cls, now: datetime | None = None) -> dict[str, Any]:
        """
        Issue this month's credit for every eligible referral.

        Returns:
            {
                "processed_count": credits created,
                "total_amount_cents": sum of created credits,
                "skipped_count": referrals without an active subscription
                    or already credited this month,
                "capped_count": referrals past the cap,
                "failed_count": referrals that raised an error,
                "referral_payments": [{referral_id, payment_id, ...}, ...],
            }
        """
        logger = cls.get_logger()
        now = now or timezone.now()
        period_month = timezone.localdate(now).replace(day=1)

        summary: dict[str, Any] = {
            "processed_count": 0,
            "total_amount_cents": 0,
            "skipped_count": 0,
            "capped_count": 0,
            "failed_count": 0,
            "referral_payments": [],
        }

        referral_ids = list(
            Referral.objects.filter(status=ReferralStatus.ACTIVE)
            .order_by("created_at")
            .values_list("id", flat=True)
        )
        logger.info(
            "Starting referral cascade",
            extra={"period_month": period_month.isoformat(), "referral_count": len(referral_ids)},
        )

        for referral_id in referral_ids:
            try:
                credit = cls._credit_referral(referral_id, period_month, now)
            except Exception as e:
                logger.error(
                    f"Error processing referral credit: {e}",
                    extra={"referral_id": str(referral_id)},
                    exc_info=True,
                )
                summary["failed_count"] += 1
                continue

            if credit == "capped":
                summary["capped_count"] += 1
            elif credit is None:
                summary["skipped_count"] += 1
            else:
                summary["processed_count"] += 1
                summary["total_amount_cents"] += credit["amount_cents"]
                summary["referral_payments"].append(credit)

        logger.info(
            "Referral cascade complete",
            extra={
                "processed_count": summary["processed_count"],
                "total_amount_cents": summary["total_amount_cents"],
                "skipped_count": summary["skipped_count"],
                "capped_count": summary["capped_count"],
                "failed_count": summary["failed_count"],
            },
        )
        return summary

    @classmethod
    def _credit_referral(
        cls, referral_id: uuid.UUID, period_month: date, now: datetime
    ) -> dict[str, Any] | str | None:
        """
        Issue one month's credit for a referral.

        Returns:
            The credit as a dict, "capped", or None when skipped
        """
        referral = Referral.objects.select_related("referrer").get(id=referral_id)
        subscription = (
            Subscription.objects.filter(
                customer_id=referral.referred_id, status=SubscriptionStatus.ACTIVE
            )
            .order_by("start_date")
            .first()
        )
        if subscription is None:
            return None

        month_index = months_between(subscription.start_date, now)
        if month_index >= settings.SETTLEMENT_REFERRAL_CAP_MONTHS:
            if referral.payout_status != ReferralPayoutStatus.CAPPED:
                referral.payout_status = ReferralPayoutStatus.CAPPED
                referral.save(update_fields=["payout_status", "updated_at"])
                cls.get_logger().info(
                    "Referral reached its credit cap",
                    extra={"referral_id": str(referral_id), "month_index": month_index},
                )
            return "capped"

        if ReferralPayout.objects.filter(referral=referral, period_month=period_month).exists():
            return None

        amount_cents = settings.SETTLEMENT_REFERRAL_MONTHLY_CENTS
        try:
            with cls.atomic():
                payment = Payment(
                    payee=referral.referrer,
                    payment_type=PaymentType.MONTHLY_REFERRAL,
                    referral=referral,
                    subscription=subscription,
                    amount_cents=amount_cents,
                    currency=settings.SETTLEMENT_CURRENCY,
                    metadata={
                        "period_month": period_month.isoformat(),
                        "month_index": month_index,
                    },
                )
                payment.approve()
                payment.save()
                payout = ReferralPayout.objects.create(
                    referral=referral,
                    period_month=period_month,
                    month_index=month_index,
                    amount_cents=amount_cents,
                    payment=payment,
                )
                if referral.payout_status != ReferralPayoutStatus.EARNING:
                    referral.payout_status = ReferralPayoutStatus.EARNING
                    referral.save(update_fields=["payout_status", "updated_at"])
        except IntegrityError:
            cls.get_logger().info(
                "Referral already credited by a concurrent run",
                extra={"referral_id": str(referral_id), "period_month": period_month.isoformat()},
            )
            return None

        cls.get_logger().info(
            "Referral credit issued",
            extra={
                "referral_id": str(referral_id),
                "payment_id": str(payment.id),
                "month_index": month_index,
            },
        )
        return {
            "referral_id": str(referral.id),
            "referral_payout_id": str(payout.id),
            "payment_id": str(payment.id),
            "referrer_id": str(referral.referrer_id),
            "amount_cents": amount_cents,
            "period_month": period_month.isoformat(),
            "month_index": month_index,
        }
