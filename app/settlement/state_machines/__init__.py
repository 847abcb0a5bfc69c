"""
Status enums for settlement models (used with django-fsm).
"""

from settlement.state_machines.states import (
    BatchStatus,
    BatchType,
    PaymentStatus,
    PaymentType,
    PayoutRailType,
    ReferralPayoutStatus,
    ReferralStatus,
    RetryStatus,
    SubscriptionStatus,
)

__all__ = [
    "BatchStatus",
    "BatchType",
    "PaymentStatus",
    "PaymentType",
    "PayoutRailType",
    "ReferralPayoutStatus",
    "ReferralStatus",
    "RetryStatus",
    "SubscriptionStatus",
]
