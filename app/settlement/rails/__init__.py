"""
Payout rails.

Usage:
    from settlement.rails import get_payout_rail

    rail = get_payout_rail("stripe")
    outcome = rail.transfer(request)
"""

from core.exceptions import ValidationError
from settlement.rails.base import (
    PayoutRail,
    TransferOutcome,
    TransferRequest,
    TransferStatus,
)
from settlement.rails.card import StripeCardRail
from settlement.rails.manual import ManualRail
from settlement.state_machines import PayoutRailType

RAIL_REGISTRY = {
    PayoutRailType.STRIPE.value: StripeCardRail,
    PayoutRailType.CASH_APP.value: lambda: ManualRail(PayoutRailType.CASH_APP),
    PayoutRailType.CASH.value: lambda: ManualRail(PayoutRailType.CASH),
    PayoutRailType.CHECK.value: lambda: ManualRail(PayoutRailType.CHECK),
}


def get_payout_rail(rail_type: str) -> PayoutRail:
    """
    Build the rail for a rail identifier.

    Raises:
        ValidationError: Unknown rail identifier
    """
    factory = RAIL_REGISTRY.get(rail_type)
    if factory is None:
        raise ValidationError(
            f"Unknown payout rail '{rail_type}'",
            details={"rail": rail_type, "allowed": list(PayoutRailType.values)},
        )
    return factory()


__all__ = [
    "ManualRail",
    "PayoutRail",
    "RAIL_REGISTRY",
    "StripeCardRail",
    "TransferOutcome",
    "TransferRequest",
    "TransferStatus",
    "get_payout_rail",
]
