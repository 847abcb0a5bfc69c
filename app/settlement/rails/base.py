"""
Payout rail contract.

A rail is one way of actually paying a payee. Every rail implements the
same `transfer` capability so the batch orchestrator and the retry
scheduler never branch on which rail they are using.

Outcomes:
    SETTLED        - money moved; external_id is the rail reference
    PENDING_MANUAL - a person must complete the transfer out-of-band

Failures are raised as settlement.exceptions.RailError subclasses.

Adding a rail means adding one PayoutRail subclass and registering it in
settlement.rails.RAIL_REGISTRY.
"""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING

from settlement.adapters import IdempotencyKeyGenerator

if TYPE_CHECKING:
    from django.contrib.auth.models import AbstractBaseUser

    from settlement.models import Payment


class TransferStatus:
    SETTLED = "settled"
    PENDING_MANUAL = "pending_manual"


@dataclass(frozen=True)
class TransferRequest:
    """
    One transfer to be made through a rail.

    Attributes:
        payment_id: Payment being paid (correlation only)
        payee: User receiving the money; the rail resolves the destination
        amount_cents: Amount in cents
        currency: Currency code
        idempotency_key: Key identifying this logical transfer
        memo: Human-readable description
    """

    payment_id: uuid.UUID
    payee: AbstractBaseUser
    amount_cents: int
    currency: str
    idempotency_key: str
    memo: str = ""

    @classmethod
    def for_payment(cls, payment: Payment) -> TransferRequest:
        """
        Build the transfer for a payment's current attempt.

        Every field comes from the payment, so a batch run and a later retry
        send the same request under the same idempotency key.
        """
        return cls(
            payment_id=payment.id,
            payee=payment.payee,
            amount_cents=payment.amount_cents,
            currency=payment.currency,
            idempotency_key=IdempotencyKeyGenerator.generate(
                "payout", payment.id, payment.attempt_count
            ),
            memo=f"{payment.get_payment_type_display()} payment {payment.id}",
        )


@dataclass(frozen=True)
class TransferOutcome:
    status: str
    rail: str
    external_id: str | None = None
    details: str = ""

    @property
    def is_settled(self) -> bool:
        return self.status == TransferStatus.SETTLED


class PayoutRail(ABC):
    """Base class for payout rails."""

    rail_type: str

    @abstractmethod
    def transfer(self, request: TransferRequest) -> TransferOutcome:
        """
        Pay request.amount_cents to request.payee.

        Must be safe to call again with the same idempotency key.

        Raises:
            RailError subclass on failure
        """

    @abstractmethod
    def has_linkage(self, payee: AbstractBaseUser) -> bool:
        """Whether the payee can be paid on this rail without further setup."""

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(rail_type={self.rail_type!r})"
