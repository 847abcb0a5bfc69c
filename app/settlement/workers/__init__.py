"""
Workers for scheduled settlement runs.

- RetryRunner: Re-attempts due payment retries (hourly)
- ReferralCascade: Issues monthly referral credits (1st of the month)

Usage:
    from settlement.workers import process_payment_retries, run_payment_retries

    # Queue a run
    process_payment_retries.delay()

    # Run inline (cron HTTP trigger)
    counts = run_payment_retries()
"""

from settlement.workers.referral_cascade import (
    process_referral_cascade,
    run_referral_cascade,
)
from settlement.workers.retry_runner import (
    process_payment_retries,
    run_payment_retries,
)

__all__ = [
    # Referral Cascade
    "process_referral_cascade",
    "run_referral_cascade",
    # Retry Runner
    "process_payment_retries",
    "run_payment_retries",
]
