"""
Status enums for settlement models.

All enums are Django TextChoices so they store as short strings and render
in the admin. Transitions themselves live on the models (django-fsm).

State Machines Overview:

Payment:
    pending → approved → processing → paid
    processing → pending_manual → paid (manual rails, operator confirmation)
    processing → failed → processing (batch resubmission)
    failed → paid (retry scheduler success)
    paid → refunded

PaymentBatch:
    draft → processing → completed | failed | partial
    failed → processing (whole-batch resubmission)

Referral:
    pending → active → cancelled

PaymentRetry:
    scheduled → pending → success | failed

Subscription:
    active ⇄ past_due, active/past_due → cancelled
"""

from django.db import models


class PaymentType(models.TextChoices):
    """What a Payment pays for."""

    SERVICE = "service", "Service"
    REFERRAL = "referral", "Referral"
    MONTHLY_REFERRAL = "monthly_referral", "Monthly Referral"
    EARNINGS = "earnings", "Earnings"


class PaymentStatus(models.TextChoices):
    """
    States for the Payment lifecycle.

    Terminal states: PAID, REFUNDED.
    FAILED is terminal for the batch that produced it but can still be
    settled by the retry scheduler or a resubmitted batch.
    """

    PENDING = "pending", "Pending"
    APPROVED = "approved", "Approved"
    PROCESSING = "processing", "Processing"
    PENDING_MANUAL = "pending_manual", "Pending Manual Confirmation"
    PAID = "paid", "Paid"
    FAILED = "failed", "Failed"
    REFUNDED = "refunded", "Refunded"

    @classmethod
    def outstanding(cls) -> list[str]:
        """Statuses that still represent money owed to the payee."""
        return [cls.PENDING, cls.APPROVED, cls.PROCESSING, cls.PENDING_MANUAL]


class BatchType(models.TextChoices):
    """Which kind of payments a batch is meant to carry."""

    EARNINGS = "earnings", "Earnings"
    REFERRAL = "referral", "Referral"
    MIXED = "mixed", "Mixed"


class BatchStatus(models.TextChoices):
    """
    States for the PaymentBatch lifecycle.

    Membership can only change in DRAFT. PROCESSING acts as the mutual
    exclusion gate for process().
    """

    DRAFT = "draft", "Draft"
    PROCESSING = "processing", "Processing"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"
    PARTIAL = "partial", "Partial"


class ReferralStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    ACTIVE = "active", "Active"
    CANCELLED = "cancelled", "Cancelled"


class ReferralPayoutStatus(models.TextChoices):
    """Where a referral is in its monthly credit stream."""

    PENDING = "pending", "Pending"
    EARNING = "earning", "Earning"
    CAPPED = "capped", "Capped"


class RetryStatus(models.TextChoices):
    SCHEDULED = "scheduled", "Scheduled"
    PENDING = "pending", "Pending"
    SUCCESS = "success", "Success"
    FAILED = "failed", "Failed"


class SubscriptionStatus(models.TextChoices):
    ACTIVE = "active", "Active"
    PAST_DUE = "past_due", "Past Due"
    CANCELLED = "cancelled", "Cancelled"


class PayoutRailType(models.TextChoices):
    """
    Settlement mechanisms a batch can be processed through.

    STRIPE is the card/bank rail (Stripe Connect transfers). The others
    are manual rails completed out-of-band by a person.
    """

    STRIPE = "stripe", "Stripe (card/bank)"
    CASH_APP = "cash_app", "Cash App"
    CASH = "cash", "Cash"
    CHECK = "check", "Check"

    @classmethod
    def manual(cls) -> list[str]:
        return [cls.CASH_APP, cls.CASH, cls.CHECK]
