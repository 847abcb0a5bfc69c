"""
Adapters for external payout providers.
"""

from settlement.adapters.stripe_adapter import (
    ConnectedAccountResult,
    IdempotencyKeyGenerator,
    StripeAdapter,
    TransferResult,
)

__all__ = [
    "ConnectedAccountResult",
    "IdempotencyKeyGenerator",
    "StripeAdapter",
    "TransferResult",
]
