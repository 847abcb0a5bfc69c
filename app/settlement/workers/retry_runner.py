"""
Retry runner worker.

Runs the retry scheduler under a Redis lock so only one run is active at a
time. Scheduled hourly by django-celery-beat (see the settlement data
migrations) and also invoked from the cron HTTP trigger.

Usage:
    from settlement.workers import process_payment_retries

    process_payment_retries.delay()
"""

from __future__ import annotations

import logging

from celery import shared_task

from settlement.exceptions import LockAcquisitionError
from settlement.locks import retry_run_lock
from settlement.services import RetryService

logger = logging.getLogger(__name__)


def run_payment_retries() -> dict[str, int]:
    """
    Process due retries while holding the retry run lock.

    Raises:
        LockAcquisitionError: Another run is in progress
    """
    with retry_run_lock():
        return RetryService.process_due_retries()


@shared_task(bind=True)
def process_payment_retries(self) -> dict:
    """
    Periodic task re-attempting due payment retries.

    Returns:
        Dict with total/succeeded/failed/skipped counts, or
        {"status": "lock_failed"} when another run holds the lock
    """
    logger.info("Starting scheduled payment retry run")

    try:
        counts = run_payment_retries()
    except LockAcquisitionError as e:
        logger.warning(
            f"Payment retry run already in progress: {e}",
            extra={"task_id": self.request.id},
        )
        return {"status": "lock_failed", "error": str(e)}

    return {"status": "completed", **counts}
