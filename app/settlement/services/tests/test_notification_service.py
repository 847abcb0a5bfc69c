"""
Tests for NotificationService.

Notifications are queued on commit, so every test captures the on_commit
callbacks and runs them against the eager Celery task.
"""

from django.core import mail

from settlement.services import NotificationService
from settlement.state_machines import PayoutRailType
from settlement.tests.factories import (
    SubscriptionFactory,
    UserFactory,
    failed_payment,
    pending_manual_payment,
)


class TestNotifyManualPayout:
    def test_emails_operator_and_payee(self, db, settings, django_capture_on_commit_callbacks):
        payee = UserFactory(email="worker@example.com")
        payment = pending_manual_payment(
            rail=PayoutRailType.CASH_APP, payee=payee, amount_cents=1500
        )

        with django_capture_on_commit_callbacks(execute=True):
            NotificationService.notify_manual_payout(payment)

        assert len(mail.outbox) == 1
        message = mail.outbox[0]
        assert message.subject == "Manual payout pending: 15.00 USD"
        assert set(message.to) == {settings.SETTLEMENT_OPERATOR_EMAIL, "worker@example.com"}
        assert "Cash App" in message.body
        assert str(payment.id) in message.body

    def test_nothing_sent_before_commit(self, db, django_capture_on_commit_callbacks):
        payment = pending_manual_payment()

        with django_capture_on_commit_callbacks() as callbacks:
            NotificationService.notify_manual_payout(payment)

        assert len(callbacks) == 1
        assert mail.outbox == []

    def test_payee_without_email(self, db, settings, django_capture_on_commit_callbacks):
        payment = pending_manual_payment(payee=UserFactory(email=""))

        with django_capture_on_commit_callbacks(execute=True):
            NotificationService.notify_manual_payout(payment)

        assert mail.outbox[0].to == [settings.SETTLEMENT_OPERATOR_EMAIL]


class TestNotifyTerminalFailure:
    def test_emails_operator(self, db, settings, django_capture_on_commit_callbacks):
        payment = failed_payment(code="RAIL_DECLINED", reason="Account restricted")

        with django_capture_on_commit_callbacks(execute=True):
            NotificationService.notify_terminal_failure(payment)

        message = mail.outbox[0]
        assert message.subject == "Payout failed: RAIL_DECLINED"
        assert message.to == [settings.SETTLEMENT_OPERATOR_EMAIL]
        assert "Account restricted" in message.body


class TestNotifyRetriesExhausted:
    def test_includes_subscription_customer(self, db, django_capture_on_commit_callbacks):
        subscription = SubscriptionFactory(customer=UserFactory(email="customer@example.com"))
        payment = failed_payment(subscription=subscription)

        with django_capture_on_commit_callbacks(execute=True):
            NotificationService.notify_retries_exhausted(payment, subscription)

        message = mail.outbox[0]
        assert message.subject == "Payment retries exhausted"
        assert "customer@example.com" in message.to
        assert "past due" in message.body

    def test_without_subscription(self, db, settings, django_capture_on_commit_callbacks):
        payment = failed_payment()

        with django_capture_on_commit_callbacks(execute=True):
            NotificationService.notify_retries_exhausted(payment)

        assert mail.outbox[0].to == [settings.SETTLEMENT_OPERATOR_EMAIL]


class TestQueueFailures:
    def test_queue_error_is_not_raised(self, db, mocker, django_capture_on_commit_callbacks):
        mocker.patch(
            "settlement.tasks.send_settlement_notification.delay",
            side_effect=ConnectionError("broker down"),
        )
        payment = failed_payment()

        with django_capture_on_commit_callbacks(execute=True):
            NotificationService.notify_terminal_failure(payment)

        assert mail.outbox == []
