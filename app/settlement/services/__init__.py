"""
Settlement services.

This module provides:
- DistributionService: Records service payments, approvals, manual
  confirmations and refunds
- BatchService: Batch lifecycle and processing through a payout rail
- RetryService: Scheduled re-attempts of failed payments
- ReferralService: Referral lifecycle and the monthly referral cascade
- NotificationService: Emails for payouts that need a person

Usage:
    from settlement.services import BatchService

    result = BatchService.process_batch(batch.id, rail="stripe")
    result.success_count, result.failed_count
"""

from settlement.services.batch_service import (
    BatchProcessResult,
    BatchService,
    PaymentOutcome,
)
from settlement.services.distribution_service import (
    DistributionService,
    ServiceRecording,
)
from settlement.services.notification_service import NotificationService
from settlement.services.referral_service import ReferralService, months_between
from settlement.services.retry_service import RetryService

__all__ = [
    "BatchProcessResult",
    "BatchService",
    "DistributionService",
    "NotificationService",
    "PaymentOutcome",
    "ReferralService",
    "RetryService",
    "ServiceRecording",
    "months_between",
]
