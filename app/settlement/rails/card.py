"""
Card/bank payout rail backed by Stripe Connect transfers.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from settlement.adapters import IdempotencyKeyGenerator, StripeAdapter
from settlement.exceptions import NoLinkedAccountError, RailError
from settlement.models import PayeeAccount
from settlement.rails.base import (
    PayoutRail,
    TransferOutcome,
    TransferRequest,
    TransferStatus,
)
from settlement.state_machines import PayoutRailType

if TYPE_CHECKING:
    from django.contrib.auth.models import AbstractBaseUser

logger = logging.getLogger(__name__)


class StripeCardRail(PayoutRail):
    """
    Pays a payee's Stripe Connect account.

    A payee without a linked account gets an Express account created on
    demand before the transfer. When that creation fails the transfer
    fails with NO_LINKED_ACCOUNT, which is terminal.

    Args:
        create_missing_accounts: Create accounts on demand (default True)
    """

    rail_type = PayoutRailType.STRIPE

    def __init__(self, create_missing_accounts: bool = True) -> None:
        self.create_missing_accounts = create_missing_accounts

    def has_linkage(self, payee: AbstractBaseUser) -> bool:
        return PayeeAccount.objects.filter(
            user=payee, stripe_account_id__isnull=False
        ).exists()

    def transfer(self, request: TransferRequest) -> TransferOutcome:
        destination = self._resolve_destination(request.payee)

        result = StripeAdapter.create_transfer(
            amount_cents=request.amount_cents,
            destination_account=destination,
            idempotency_key=request.idempotency_key,
            currency=request.currency,
            description=request.memo,
            metadata={"payment_id": str(request.payment_id)},
            transfer_group=f"payment_{request.payment_id}",
        )
        return TransferOutcome(
            status=TransferStatus.SETTLED,
            rail=self.rail_type,
            external_id=result.id,
            details=f"Stripe transfer {result.id} to {destination}",
        )

    def _resolve_destination(self, payee: AbstractBaseUser) -> str:
        """
        Return the payee's Connect account id, creating one if allowed.

        Raises:
            NoLinkedAccountError: No account and none could be created
        """
        account = PayeeAccount.objects.filter(user=payee).first()
        if account is not None and account.stripe_account_id:
            return account.stripe_account_id

        if not self.create_missing_accounts:
            raise NoLinkedAccountError(
                "Payee has no linked Stripe account",
                rail=self.rail_type,
                details={"payee_id": str(payee.pk)},
            )

        logger.info(
            "Creating Stripe account on demand",
            extra={"payee_id": str(payee.pk)},
        )
        try:
            created = StripeAdapter.create_express_account(
                email=getattr(payee, "email", ""),
                idempotency_key=IdempotencyKeyGenerator.generate(
                    "connect_account", payee.pk
                ),
                metadata={"user_id": str(payee.pk)},
            )
        except RailError as e:
            raise NoLinkedAccountError(
                f"Payee has no linked Stripe account and creating one failed: {e.message}",
                rail=self.rail_type,
                provider_code=e.provider_code,
                details={"payee_id": str(payee.pk)},
            ) from e

        PayeeAccount.objects.update_or_create(
            user=payee,
            defaults={
                "stripe_account_id": created.id,
                "payouts_enabled": created.payouts_enabled,
            },
        )
        return created.id
