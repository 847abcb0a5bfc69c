"""
Referral cascade worker.

Issues the monthly referral credits under a Redis lock. Scheduled on the
1st of every month by django-celery-beat and also invoked from the cron
HTTP trigger. Safe to re-run: credits are unique per referral and month.
"""

from __future__ import annotations

import logging
from typing import Any

from celery import shared_task

from settlement.exceptions import LockAcquisitionError
from settlement.locks import referral_cascade_lock
from settlement.services import ReferralService

logger = logging.getLogger(__name__)


def run_referral_cascade() -> dict[str, Any]:
    """
    Run the cascade while holding the cascade lock.

    Raises:
        LockAcquisitionError: Another run is in progress
    """
    with referral_cascade_lock():
        return ReferralService.process_monthly_referrals()


@shared_task(bind=True)
def process_referral_cascade(self) -> dict:
    logger.info("Starting scheduled referral cascade")

    try:
        summary = run_referral_cascade()
    except LockAcquisitionError as e:
        logger.warning(
            f"Referral cascade already in progress: {e}",
            extra={"task_id": self.request.id},
        )
        return {"status": "lock_failed", "error": str(e)}

    return {
        "status": "completed",
        "processed_count": summary["processed_count"],
        "total_amount_cents": summary["total_amount_cents"],
        "capped_count": summary["capped_count"],
        "failed_count": summary["failed_count"],
    }
