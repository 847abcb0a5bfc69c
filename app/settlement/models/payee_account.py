"""
PayeeAccount model: how a user can be paid.

Holds the Stripe Connect account used by the card/bank rail and the handle
used by manual rails (e.g. a Cash App $cashtag). Card-rail accounts are
created on demand the first time a payee is paid through Stripe.
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel


class PayeeAccount(UUIDPrimaryKeyMixin, BaseModel):
    """
    Payout destinations for one user.

    Fields:
        user: Owner of the account
        stripe_account_id: Connect account (acct_xxx), null until linked
        payouts_enabled: Stripe reports the account can receive payouts
        manual_handle: Handle for manual rails (cashtag, mailing name)
    """

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="payee_account",
        help_text="User these payout details belong to",
    )

    stripe_account_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        unique=True,
        help_text="Stripe Connect account ID (acct_xxx)",
    )

    payouts_enabled = models.BooleanField(
        default=False,
        help_text="Whether Stripe reports payouts enabled for the account",
    )

    manual_handle = models.CharField(
        max_length=100,
        blank=True,
        default="",
        help_text="Handle for manual rails (e.g., Cash App $cashtag)",
    )

    class Meta:
        verbose_name = "Payee Account"
        verbose_name_plural = "Payee Accounts"

    def __str__(self) -> str:
        return f"PayeeAccount({self.user_id}, {self.stripe_account_id or 'unlinked'})"

    @property
    def has_linked_account(self) -> bool:
        return bool(self.stripe_account_id)
