"""
Subscription model: the billing relationship settlement depends on.

The subscription lifecycle itself is owned by billing. Settlement needs
the start date (referral cap) and the status, which it moves to PAST_DUE
when payout retries are exhausted and back to ACTIVE when a retry settles.
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.utils import timezone
from django_fsm import FSMField, transition

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel
from settlement.state_machines import SubscriptionStatus


def default_visits_per_period() -> int:
    return settings.SETTLEMENT_VISITS_PER_PERIOD


class Subscription(UUIDPrimaryKeyMixin, BaseModel):
    """
    A customer's recurring service plan.

    State Flow:
        ACTIVE -> PAST_DUE -> ACTIVE
        ACTIVE/PAST_DUE -> CANCELLED
    """

    customer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="settlement_subscriptions",
        help_text="Paying customer",
    )

    plan_name = models.CharField(max_length=100, blank=True, default="")

    amount_cents = models.PositiveBigIntegerField(
        help_text="Gross charge per billing period",
    )

    visits_per_period = models.PositiveSmallIntegerField(
        default=default_visits_per_period,
        help_text="Visits included per billing period",
    )

    status = FSMField(
        default=SubscriptionStatus.ACTIVE,
        choices=SubscriptionStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current state of the subscription (managed by FSM)",
    )

    start_date = models.DateTimeField(
        default=timezone.now,
        help_text="When the subscription started (referral cap anchor)",
    )

    last_payment_date = models.DateTimeField(null=True, blank=True)

    past_due_since = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Subscription"
        verbose_name_plural = "Subscriptions"

    def __str__(self) -> str:
        return f"Subscription({self.id}, {self.customer_id}, {self.status})"

    @transition(
        field=status,
        source=SubscriptionStatus.ACTIVE,
        target=SubscriptionStatus.PAST_DUE,
    )
    def mark_past_due(self):
        """Transition: ACTIVE -> PAST_DUE (automatic retries exhausted)"""
        self.past_due_since = timezone.now()

    @transition(
        field=status,
        source=[SubscriptionStatus.ACTIVE, SubscriptionStatus.PAST_DUE],
        target=SubscriptionStatus.ACTIVE,
    )
    def reactivate(self):
        """Transition: ACTIVE/PAST_DUE -> ACTIVE (a payment settled)"""
        self.past_due_since = None
        self.last_payment_date = timezone.now()

    @transition(
        field=status,
        source=[SubscriptionStatus.ACTIVE, SubscriptionStatus.PAST_DUE],
        target=SubscriptionStatus.CANCELLED,
    )
    def cancel(self):
        """Transition: ACTIVE/PAST_DUE -> CANCELLED"""
