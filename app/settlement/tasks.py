"""
Celery tasks for settlement.

Tasks:
    send_settlement_notification: Email operators, payees and customers
        about payouts that need a person (manual rails, terminal failures,
        exhausted retries)

The scheduled runs (payout retries, referral cascade) live in
settlement.workers and are re-exported here so Celery autodiscovery finds
them.

Usage:
    from settlement.tasks import send_settlement_notification

    send_settlement_notification.delay(
        recipients=["ops@example.com"],
        subject="Manual payout pending",
        body="...",
    )
"""

from __future__ import annotations

import logging

from celery import shared_task
from django.conf import settings
from django.core.mail import send_mail

logger = logging.getLogger(__name__)


@shared_task(
    bind=True,
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_kwargs={"max_retries": 3},
)
def send_settlement_notification(
    self, recipients: list[str], subject: str, body: str
) -> int:
    """
    Send one settlement notification email.

    Delivery is best effort: the task retries with backoff and the payment
    state it describes is already persisted before it is queued.

    Args:
        recipients: Email addresses; blanks are dropped
        subject: Email subject
        body: Plain-text body

    Returns:
        Number of messages sent (0 when no recipient is left)
    """
    recipients = [address for address in recipients if address]
    if not recipients:
        logger.info(
            "Skipping settlement notification without recipients",
            extra={"subject": subject},
        )
        return 0

    sent = send_mail(
        subject=subject,
        message=body,
        from_email=settings.DEFAULT_FROM_EMAIL,
        recipient_list=recipients,
    )

    logger.info(
        "Settlement notification sent",
        extra={
            "subject": subject,
            "recipient_count": len(recipients),
            "attempt": self.request.retries + 1,
        },
    )
    return sent


# =============================================================================
# Re-exported Worker Tasks
# =============================================================================
# Defined in settlement.workers, re-exported so Celery autodiscover finds them.

from settlement.workers import (  # noqa: E402, F401
    process_payment_retries,
    process_referral_cascade,
)
