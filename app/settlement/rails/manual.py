"""
Manual payout rails: Cash App, cash and check.

No network call is made. The transfer is handed to a person, so the
outcome is always PENDING_MANUAL and the payment stays open until an
operator confirms it (DistributionService.confirm_manual_payment).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

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


class ManualRail(PayoutRail):
    """One manual rail variant (PayoutRailType.manual())."""

    def __init__(self, rail_type: str) -> None:
        if rail_type not in PayoutRailType.manual():
            raise ValueError(f"{rail_type!r} is not a manual rail")
        self.rail_type = rail_type

    def has_linkage(self, payee: AbstractBaseUser) -> bool:
        return True

    def transfer(self, request: TransferRequest) -> TransferOutcome:
        label = PayoutRailType(self.rail_type).label
        amount = f"${request.amount_cents / 100:.2f}"
        details = f"{label} payment of {amount} awaiting operator confirmation"

        if self.rail_type == PayoutRailType.CASH_APP:
            handle = (
                PayeeAccount.objects.filter(user=request.payee)
                .values_list("manual_handle", flat=True)
                .first()
            )
            details += f" (send to {handle})" if handle else " (no Cash App handle on file)"

        return TransferOutcome(
            status=TransferStatus.PENDING_MANUAL,
            rail=self.rail_type,
            details=details,
        )
