"""
Notification collaborator for settlement.

Builds the messages for payouts that need a person and queues them on the
send_settlement_notification task once the surrounding transaction has
committed. Queueing problems are logged and never raised: the payment
record (PENDING_MANUAL, FAILED with a reason, PAST_DUE subscription) is
the durable trail, the email is only a nudge.

Events:
    manual payout pending  -> payee + operator
    terminal payout failure -> operator
    retries exhausted       -> operator + customer
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.conf import settings
from django.db import transaction

from core.services import BaseService

if TYPE_CHECKING:
    from settlement.models import Payment, Subscription


def _format_amount(amount_cents: int, currency: str = "usd") -> str:
    return f"{amount_cents / 100:.2f} {currency.upper()}"


class NotificationService(BaseService):
    """Queue settlement emails. All methods return None."""

    @classmethod
    def notify_manual_payout(cls, payment: Payment) -> None:
        """Ask an operator to complete a manual payout and tell the payee."""
        amount = _format_amount(payment.amount_cents, payment.currency)
        body = (
            f"Payment {payment.id} of {amount} to {payment.payee} is waiting for "
            f"a manual {payment.get_rail_display()} transfer.\n\n"
            f"{payment.notes}\n\n"
            "Confirm it once the transfer has been made."
        )
        cls._dispatch(
            recipients=[settings.SETTLEMENT_OPERATOR_EMAIL, payment.payee.email],
            subject=f"Manual payout pending: {amount}",
            body=body,
            context={"payment_id": str(payment.id), "event": "manual_payout"},
        )

    @classmethod
    def notify_terminal_failure(cls, payment: Payment) -> None:
        """Tell the operator a payout failed in a way retries will not fix."""
        amount = _format_amount(payment.amount_cents, payment.currency)
        body = (
            f"Payment {payment.id} of {amount} to {payment.payee} failed "
            f"with {payment.failure_code}: {payment.failure_reason}\n\n"
            "It will not be retried automatically."
        )
        cls._dispatch(
            recipients=[settings.SETTLEMENT_OPERATOR_EMAIL],
            subject=f"Payout failed: {payment.failure_code}",
            body=body,
            context={"payment_id": str(payment.id), "event": "terminal_failure"},
        )

    @classmethod
    def notify_retries_exhausted(
        cls, payment: Payment, subscription: Subscription | None = None
    ) -> None:
        """Escalate a payment whose automatic retries are used up."""
        amount = _format_amount(payment.amount_cents, payment.currency)
        recipients = [settings.SETTLEMENT_OPERATOR_EMAIL]
        body = (
            f"Automatic retries for payment {payment.id} of {amount} are "
            f"exhausted. Last error: {payment.failure_reason or 'unknown'}."
        )
        if subscription is not None:
            recipients.append(subscription.customer.email)
            body += (
                f"\n\nSubscription {subscription.id} is now past due and needs "
                "manual follow-up."
            )
        cls._dispatch(
            recipients=recipients,
            subject="Payment retries exhausted",
            body=body,
            context={"payment_id": str(payment.id), "event": "retries_exhausted"},
        )

    @classmethod
    def _dispatch(
        cls,
        recipients: list[str],
        subject: str,
        body: str,
        context: dict[str, str],
    ) -> None:
        # Import here to avoid circular imports (settlement.tasks re-exports workers)
        from settlement.tasks import send_settlement_notification

        logger = cls.get_logger()

        def enqueue() -> None:
            try:
                send_settlement_notification.delay(
                    recipients=[address for address in recipients if address],
                    subject=subject,
                    body=body,
                )
            except Exception:
                logger.exception("Failed to queue settlement notification", extra=context)

        transaction.on_commit(enqueue)
        logger.info("Settlement notification scheduled", extra=context)
