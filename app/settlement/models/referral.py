"""
Referral and ReferralPayout models.

A Referral records that one user brought in another. While it is ACTIVE it
produces:
    - a one-off REFERRAL fee deducted from each service charge paid by the
      referred customer (see settlement.fees), and
    - one ReferralPayout per elapsed subscription month, capped, each
      backed by an APPROVED MONTHLY_REFERRAL Payment.
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.utils import timezone
from django_fsm import FSMField, transition

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel
from settlement.state_machines import ReferralPayoutStatus, ReferralStatus


class Referral(UUIDPrimaryKeyMixin, BaseModel):
    """
    A referrer -> referred relationship.

    Invariants (enforced by the database):
        - a referred user has at most one referral credit
        - nobody refers themselves
    """

    referrer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="referrals_made",
        help_text="User who made the referral and receives the credits",
    )

    referred = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="referral_received",
        help_text="User who was referred (one referral credit per user)",
    )

    code = models.CharField(
        max_length=64,
        db_index=True,
        help_text="Referral code used at signup",
    )

    status = FSMField(
        default=ReferralStatus.PENDING,
        choices=ReferralStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current state of the referral (managed by FSM)",
    )

    payout_status = models.CharField(
        max_length=20,
        choices=ReferralPayoutStatus.choices,
        default=ReferralPayoutStatus.PENDING,
        help_text="Progress of the monthly credit stream",
    )

    activated_at = models.DateTimeField(null=True, blank=True)

    cancelled_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Referral"
        verbose_name_plural = "Referrals"
        constraints = [
            models.CheckConstraint(
                condition=~models.Q(referrer=models.F("referred")),
                name="settlement_referral_no_self_referral",
            ),
        ]

    def __str__(self) -> str:
        return f"Referral({self.referrer_id} -> {self.referred_id}, {self.status})"

    @transition(
        field=status,
        source=ReferralStatus.PENDING,
        target=ReferralStatus.ACTIVE,
    )
    def activate(self):
        """Transition: PENDING -> ACTIVE (referred customer subscribed)"""
        self.activated_at = timezone.now()

    @transition(
        field=status,
        source=[ReferralStatus.PENDING, ReferralStatus.ACTIVE],
        target=ReferralStatus.CANCELLED,
    )
    def cancel(self):
        """Transition: PENDING/ACTIVE -> CANCELLED"""
        self.cancelled_at = timezone.now()


class ReferralPayout(UUIDPrimaryKeyMixin, BaseModel):
    """
    One monthly referral credit.

    period_month is the first day of the calendar month the credit was
    issued for. (referral, period_month) is unique, so re-running the
    cascade within a month cannot create a second credit.
    """

    referral = models.ForeignKey(
        Referral,
        on_delete=models.PROTECT,
        related_name="payouts",
        help_text="Referral this credit belongs to",
    )

    period_month = models.DateField(
        help_text="First day of the calendar month this credit covers",
    )

    month_index = models.PositiveSmallIntegerField(
        help_text="Whole months elapsed since the subscription started",
    )

    amount_cents = models.PositiveBigIntegerField(
        help_text="Credit amount in smallest currency unit",
    )

    payment = models.OneToOneField(
        "settlement.Payment",
        on_delete=models.PROTECT,
        related_name="referral_payout",
        help_text="APPROVED MONTHLY_REFERRAL payment carrying the credit",
    )

    class Meta:
        ordering = ["-period_month"]
        verbose_name = "Referral Payout"
        verbose_name_plural = "Referral Payouts"
        constraints = [
            models.UniqueConstraint(
                fields=["referral", "period_month"],
                name="settlement_referral_payout_unique_month",
            ),
        ]

    def __str__(self) -> str:
        return f"ReferralPayout({self.referral_id}, {self.period_month:%Y-%m})"
