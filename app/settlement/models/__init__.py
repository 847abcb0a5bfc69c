"""
Settlement ledger models.

- Payment: A monetary obligation to a payee (FSM-managed)
- Earning: Worker-facing mirror of a SERVICE payment
- PaymentBatch: Unit of work for paying approved payments
- Referral / ReferralPayout: Referral relationship and its monthly credits
- PaymentRetry: Scheduled re-attempt of a failed payment
- Subscription: Billing relationship used for caps and past-due escalation
- PayeeAccount: Rail destinations for a payee
"""

from settlement.models.payee_account import PayeeAccount
from settlement.models.payment import Earning, Payment
from settlement.models.payment_batch import PaymentBatch
from settlement.models.payment_retry import PaymentRetry
from settlement.models.referral import Referral, ReferralPayout
from settlement.models.subscription import Subscription

__all__ = [
    "Earning",
    "PayeeAccount",
    "Payment",
    "PaymentBatch",
    "PaymentRetry",
    "Referral",
    "ReferralPayout",
    "Subscription",
]
