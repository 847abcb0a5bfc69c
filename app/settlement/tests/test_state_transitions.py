"""
Tests for state machine transitions using django-fsm.

Tests valid and invalid transitions for Payment, PaymentBatch, Referral
and Subscription.
"""

import pytest
from django_fsm import TransitionNotAllowed

from settlement.state_machines import (
    BatchStatus,
    PaymentStatus,
    PayoutRailType,
    ReferralStatus,
    SubscriptionStatus,
)
from settlement.tests.factories import (
    PaymentBatchFactory,
    PaymentFactory,
    ReferralFactory,
    SubscriptionFactory,
    approved_payment,
    failed_payment,
    paid_payment,
    pending_manual_payment,
    processing_payment,
)


# =============================================================================
# Payment State Transition Tests
# =============================================================================


class TestPaymentTransitions:
    """Tests for Payment state machine transitions."""

    # -------------------------------------------------------------------------
    # Valid Transitions
    # -------------------------------------------------------------------------

    def test_pending_to_approved(self, db, operator):
        payment = PaymentFactory()

        payment.approve(approved_by=operator)
        payment.save()

        assert payment.status == PaymentStatus.APPROVED
        assert payment.approved_by == operator
        assert payment.approved_at is not None

    def test_approved_to_processing_records_rail(self, db):
        payment = approved_payment()

        payment.start_processing(rail=PayoutRailType.STRIPE)
        payment.save()

        assert payment.status == PaymentStatus.PROCESSING
        assert payment.rail == PayoutRailType.STRIPE

    def test_processing_to_paid(self, db):
        payment = processing_payment()

        payment.mark_paid(transaction_id="tr_123", details="Stripe transfer tr_123")
        payment.save()

        assert payment.status == PaymentStatus.PAID
        assert payment.rail_transaction_id == "tr_123"
        assert payment.paid_at is not None

    def test_processing_to_pending_manual(self, db):
        payment = processing_payment(rail=PayoutRailType.CHECK)

        payment.await_manual_confirmation(details="Mail check")
        payment.save()

        assert payment.status == PaymentStatus.PENDING_MANUAL
        assert payment.notes == "Mail check"

    def test_pending_manual_to_paid(self, db):
        payment = pending_manual_payment()

        payment.mark_paid(details="Confirmed")
        payment.save()

        assert payment.status == PaymentStatus.PAID
        assert payment.rail_transaction_id is None

    def test_definitive_failure_increments_attempt_count(self, db):
        payment = processing_payment()

        payment.fail(code="RAIL_DECLINED", reason="Insufficient balance")
        payment.save()

        assert payment.status == PaymentStatus.FAILED
        assert payment.attempt_count == 1
        assert payment.failure_code == "RAIL_DECLINED"
        assert payment.failed_at is not None

    def test_transient_failure_keeps_attempt_count(self, db):
        payment = processing_payment()

        payment.fail(code="RAIL_UNAVAILABLE", reason="Timeout", definitive=False)
        payment.save()

        assert payment.attempt_count == 0

    def test_failed_to_processing_clears_failure(self, db):
        payment = failed_payment()

        payment.start_processing(rail=PayoutRailType.STRIPE)
        payment.save()

        assert payment.status == PaymentStatus.PROCESSING
        assert payment.failure_code == ""
        assert payment.failure_reason == ""

    def test_failed_to_paid(self, db):
        payment = failed_payment()

        payment.mark_paid(transaction_id="tr_late")
        payment.save()

        assert payment.status == PaymentStatus.PAID

    def test_batch_is_held_only_while_in_flight(self, db):
        batch = PaymentBatchFactory()
        payment = approved_payment(batch=batch)

        payment.start_processing(rail=PayoutRailType.STRIPE, batch=batch)
        assert payment.batch == batch
        assert payment.last_batch == batch

        payment.fail(code="RAIL_DECLINED", reason="Declined")
        payment.save()

        assert payment.batch is None
        assert payment.last_batch == batch

    def test_failed_payment_can_be_requeued(self, db):
        payment = failed_payment()
        payment.attempt_count = 1

        payment.requeue()
        payment.save()

        assert payment.status == PaymentStatus.APPROVED
        assert payment.batch is None
        assert payment.attempt_count == 1

    def test_paid_to_refunded(self, db):
        payment = paid_payment()

        payment.mark_refunded(reason="Customer dispute")
        payment.save()

        assert payment.status == PaymentStatus.REFUNDED
        assert payment.refunded_at is not None

    # -------------------------------------------------------------------------
    # Invalid Transitions
    # -------------------------------------------------------------------------

    def test_cannot_process_pending_payment(self, db):
        payment = PaymentFactory()

        with pytest.raises(TransitionNotAllowed):
            payment.start_processing(rail=PayoutRailType.STRIPE)

    def test_cannot_pay_approved_payment(self, db):
        payment = approved_payment()

        with pytest.raises(TransitionNotAllowed):
            payment.mark_paid(transaction_id="tr_123")

    def test_cannot_leave_paid_except_refund(self, db):
        payment = paid_payment()

        with pytest.raises(TransitionNotAllowed):
            payment.start_processing(rail=PayoutRailType.STRIPE)
        with pytest.raises(TransitionNotAllowed):
            payment.fail(code="RAIL_DECLINED", reason="late")

    def test_cannot_refund_unpaid_payment(self, db):
        payment = pending_manual_payment()

        with pytest.raises(TransitionNotAllowed):
            payment.mark_refunded()

    def test_status_cannot_be_assigned_directly(self, db):
        payment = PaymentFactory()

        with pytest.raises(AttributeError):
            payment.status = PaymentStatus.PAID


# =============================================================================
# PaymentBatch State Transition Tests
# =============================================================================


class TestPaymentBatchTransitions:
    def test_draft_to_processing(self, db):
        batch = PaymentBatchFactory()

        batch.start_processing(rail=PayoutRailType.STRIPE)
        batch.save()

        assert batch.status == BatchStatus.PROCESSING
        assert batch.rail == PayoutRailType.STRIPE
        assert batch.processing_started_at is not None
        assert batch.is_editable is False

    def test_processing_to_completed(self, db):
        batch = PaymentBatchFactory()
        batch.start_processing(rail=PayoutRailType.STRIPE)

        batch.complete(success_count=3)
        batch.save()

        assert batch.status == BatchStatus.COMPLETED
        assert batch.total_payments == 3
        assert batch.completed_at is not None
        assert batch.is_deletable is False

    def test_processing_to_partial(self, db):
        batch = PaymentBatchFactory()
        batch.start_processing(rail=PayoutRailType.STRIPE)

        batch.mark_partial(success_count=2, failed_count=1)
        batch.save()

        assert batch.status == BatchStatus.PARTIAL
        assert batch.total_payments == 3
        assert "2 payments successfully" in batch.notes

    def test_failed_batch_can_be_resubmitted(self, db):
        batch = PaymentBatchFactory()
        batch.start_processing(rail=PayoutRailType.STRIPE)
        batch.fail(failed_count=2)
        batch.save()

        assert batch.completed_at is None
        assert batch.is_deletable is True

        batch.start_processing(rail=PayoutRailType.CASH)
        batch.save()

        assert batch.status == BatchStatus.PROCESSING
        assert batch.rail == PayoutRailType.CASH

    def test_partial_batch_can_be_rerun(self, db):
        batch = PaymentBatchFactory()
        batch.start_processing(rail=PayoutRailType.STRIPE)
        batch.mark_partial(success_count=1, failed_count=1)
        batch.save()

        batch.start_processing(rail=PayoutRailType.STRIPE)
        batch.save()

        assert batch.status == BatchStatus.PROCESSING

    def test_cannot_reprocess_completed_batch(self, db):
        batch = PaymentBatchFactory()
        batch.start_processing(rail=PayoutRailType.STRIPE)
        batch.complete(success_count=1)
        batch.save()

        with pytest.raises(TransitionNotAllowed):
            batch.start_processing(rail=PayoutRailType.STRIPE)

    def test_cannot_complete_draft_batch(self, db):
        batch = PaymentBatchFactory()

        with pytest.raises(TransitionNotAllowed):
            batch.complete(success_count=0)


# =============================================================================
# Referral and Subscription Transition Tests
# =============================================================================


class TestReferralTransitions:
    def test_pending_to_active(self, db):
        referral = ReferralFactory()

        referral.activate()
        referral.save()

        assert referral.status == ReferralStatus.ACTIVE
        assert referral.activated_at is not None

    def test_active_to_cancelled(self, db):
        referral = ReferralFactory()
        referral.activate()
        referral.cancel()
        referral.save()

        assert referral.status == ReferralStatus.CANCELLED
        assert referral.cancelled_at is not None

    def test_cancelled_cannot_be_reactivated(self, db):
        referral = ReferralFactory()
        referral.cancel()

        with pytest.raises(TransitionNotAllowed):
            referral.activate()


class TestSubscriptionTransitions:
    def test_active_to_past_due_and_back(self, db):
        subscription = SubscriptionFactory()

        subscription.mark_past_due()
        subscription.save()
        assert subscription.status == SubscriptionStatus.PAST_DUE
        assert subscription.past_due_since is not None

        subscription.reactivate()
        subscription.save()
        assert subscription.status == SubscriptionStatus.ACTIVE
        assert subscription.past_due_since is None
        assert subscription.last_payment_date is not None

    def test_cancelled_cannot_go_past_due(self, db):
        subscription = SubscriptionFactory()
        subscription.cancel()

        with pytest.raises(TransitionNotAllowed):
            subscription.mark_past_due()
