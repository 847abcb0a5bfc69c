"""
Pytest fixtures shared by every settlement test package.

Usage:
    def test_process_batch(draft_batch_with_payments, mock_stripe_transfer):
        result = BatchService.process_batch(draft_batch_with_payments.id, rail="stripe")
"""

import uuid

import pytest

from settlement.adapters import TransferResult
from settlement.tests.factories import (
    OperatorFactory,
    PayeeAccountFactory,
    PaymentBatchFactory,
    UserFactory,
    approved_payment,
)


# =============================================================================
# User Fixtures
# =============================================================================


@pytest.fixture
def user(db):
    return UserFactory()


@pytest.fixture
def operator(db):
    """Staff user allowed to run settlement operations."""
    return OperatorFactory()


@pytest.fixture
def linked_payee(db):
    """User with a linked Stripe Connect account."""
    return PayeeAccountFactory().user


# =============================================================================
# Batch Fixtures
# =============================================================================


@pytest.fixture
def draft_batch(db):
    return PaymentBatchFactory()


@pytest.fixture
def draft_batch_with_payments(db, draft_batch, linked_payee):
    """DRAFT batch holding three APPROVED payments to a linked payee."""
    for amount in (902, 1500, 2500):
        payment = approved_payment(payee=linked_payee, amount_cents=amount)
        payment.batch = draft_batch
        payment.save()
    return draft_batch


# =============================================================================
# Infrastructure Mocks
# =============================================================================


@pytest.fixture
def mock_redis(mocker):
    """
    Mock Redis client for distributed lock tests.

    Returns a MagicMock configured so every lock is free.
    """
    mock_client = mocker.MagicMock()
    mock_client.set.return_value = True
    mock_client.get.return_value = None
    mock_client.eval.return_value = 1

    mocker.patch("settlement.locks.get_redis_connection", return_value=mock_client)
    return mock_client


@pytest.fixture
def mock_stripe_transfer(mocker):
    """Patch StripeAdapter.create_transfer to succeed with a fresh transfer id."""

    def create_transfer(amount_cents, destination_account, idempotency_key, **kwargs):
        return TransferResult(
            id=f"tr_mock_{uuid.uuid4().hex[:12]}",
            amount_cents=amount_cents,
            currency=kwargs.get("currency", "usd"),
            destination_account=destination_account,
        )

    return mocker.patch(
        "settlement.rails.card.StripeAdapter.create_transfer",
        side_effect=create_transfer,
    )


@pytest.fixture
def mock_notification_task(mocker):
    """Patch the notification task so no email is queued."""
    return mocker.patch("settlement.tasks.send_settlement_notification.delay")
