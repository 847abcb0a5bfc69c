"""
Tests for DistributionService.

Tests cover:
- Recording a completed service (fee split, Payment + Earning)
- Referral fee deduction and the one-off REFERRAL payment
- Duplicate service recordings
- Bulk approval and requeueing failed payments
- Visits defaulting to the subscription period
- Manual payout confirmation
- Refunds
- Earnings summary
"""

import uuid

import pytest

from core.exceptions import ConflictError, NotFoundError, ValidationError
from settlement.exceptions import InvalidStateTransitionError
from settlement.models import Earning, Payment, Subscription
from settlement.services import DistributionService
from settlement.state_machines import PaymentStatus, PaymentType, PayoutRailType
from settlement.tests.factories import (
    PaymentFactory,
    ReferralFactory,
    SubscriptionFactory,
    UserFactory,
    active_referral,
    failed_payment,
    get_fresh,
    paid_payment,
    pending_manual_payment,
    processing_payment,
)


def record(employee, customer, **kwargs):
    params = {
        "service_id": uuid.uuid4(),
        "employee": employee,
        "customer": customer,
        "gross_amount_cents": 5500,
        "visits": 4,
    }
    params.update(kwargs)
    return DistributionService.record_service_payment(**params)


# =============================================================================
# Recording
# =============================================================================


class TestRecordServicePayment:
    def test_subscription_visit_for_referred_customer(self, db, linked_payee):
        """$55 subscription, referred customer, four visits: $9.02 per visit."""
        customer = UserFactory()
        referral = active_referral(referred=customer)
        subscription = SubscriptionFactory(customer=customer)

        recording = record(linked_payee, customer, subscription=subscription)

        assert recording.fee_split.rail_fee_cents == 190
        assert recording.fee_split.referral_fee_cents == 500
        assert recording.fee_split.platform_share_cents == 1203
        assert recording.fee_split.payee_share_cents == 3608

        payment = get_fresh(Payment, recording.payment.id)
        assert payment.amount_cents == 902
        assert payment.payment_type == PaymentType.SERVICE
        assert payment.status == PaymentStatus.PENDING
        assert payment.subscription == subscription
        assert payment.metadata["fee_split"]["payee_per_visit_cents"] == 902

        # Subscription referrers are paid by the monthly cascade instead
        assert recording.referral_payment is None
        assert not Payment.objects.filter(referral=referral).exists()

    def test_one_off_service_pays_referrer(self, db, linked_payee):
        customer = UserFactory()
        referral = active_referral(referred=customer)

        recording = record(linked_payee, customer, visits=1)

        referral_payment = recording.referral_payment
        assert referral_payment is not None
        assert referral_payment.payee == referral.referrer
        assert referral_payment.payment_type == PaymentType.REFERRAL
        assert referral_payment.amount_cents == 500
        assert referral_payment.referral == referral

    def test_pending_referral_is_not_deducted(self, db, linked_payee):
        customer = UserFactory()
        ReferralFactory(referred=customer)

        recording = record(linked_payee, customer, visits=1)

        assert recording.fee_split.referral_fee_cents == 0
        assert recording.referral_payment is None
        assert recording.payment.amount_cents == 3983

    def test_visits_default_to_subscription_period(self, db, linked_payee):
        """$55 with no referral over the subscription's four visits."""
        subscription = SubscriptionFactory(visits_per_period=4)

        recording = DistributionService.record_service_payment(
            service_id=uuid.uuid4(),
            employee=linked_payee,
            customer=subscription.customer,
            gross_amount_cents=5500,
            subscription=subscription,
        )

        assert recording.fee_split.payee_share_cents == 3983
        assert recording.fee_split.visits == 4
        assert recording.payment.amount_cents == 996

    def test_one_off_service_defaults_to_one_visit(self, db, linked_payee):
        recording = DistributionService.record_service_payment(
            service_id=uuid.uuid4(),
            employee=linked_payee,
            customer=UserFactory(),
            gross_amount_cents=5500,
        )

        assert recording.payment.amount_cents == 3983

    def test_subscription_period_default_comes_from_settings(self, settings):
        settings.SETTLEMENT_VISITS_PER_PERIOD = 5

        assert Subscription._meta.get_field("visits_per_period").get_default() == 5

    def test_creates_earning(self, db, linked_payee):
        recording = record(linked_payee, UserFactory())

        earning = Earning.objects.get(payment=recording.payment)
        assert earning.employee == linked_payee
        assert earning.service_id == recording.payment.service_id
        assert earning.amount_cents == recording.payment.amount_cents
        assert earning.status == PaymentStatus.PENDING

    def test_auto_approve(self, db, linked_payee, operator):
        recording = record(linked_payee, UserFactory(), auto_approve=True, approved_by=operator)

        payment = get_fresh(Payment, recording.payment.id)
        assert payment.status == PaymentStatus.APPROVED
        assert payment.approved_by == operator
        assert Earning.objects.get(payment=payment).status == PaymentStatus.APPROVED

    def test_duplicate_service_is_rejected(self, db, linked_payee):
        customer = UserFactory()
        service_id = uuid.uuid4()
        record(linked_payee, customer, service_id=service_id)

        with pytest.raises(ConflictError):
            record(linked_payee, customer, service_id=service_id)

        assert Payment.objects.filter(service_id=service_id).count() == 1

    def test_same_service_for_another_employee(self, db, linked_payee):
        service_id = uuid.uuid4()
        record(linked_payee, UserFactory(), service_id=service_id)

        record(UserFactory(), UserFactory(), service_id=service_id)

        assert Earning.objects.filter(service_id=service_id).count() == 2

    @pytest.mark.parametrize(
        ("overrides", "field"),
        [
            ({"gross_amount_cents": -1}, "gross_amount_cents"),
            ({"visits": 0}, "visits"),
        ],
    )
    def test_invalid_input(self, db, linked_payee, overrides, field):
        with pytest.raises(ValidationError) as exc_info:
            record(linked_payee, UserFactory(), **overrides)

        assert field in exc_info.value.details
        assert not Payment.objects.exists()


# =============================================================================
# Approval
# =============================================================================


class TestApprovePayments:
    def test_approves_pending_only(self, db, operator):
        pending = [PaymentFactory(), PaymentFactory()]
        already_paid = paid_payment()

        approved = DistributionService.approve_payments(
            [p.id for p in pending] + [already_paid.id, uuid.uuid4()],
            approver=operator,
        )

        assert approved == 2
        for payment in pending:
            fresh = get_fresh(Payment, payment.id)
            assert fresh.status == PaymentStatus.APPROVED
            assert fresh.approved_by == operator
            assert fresh.approved_at is not None
        assert get_fresh(Payment, already_paid.id).status == PaymentStatus.PAID

    def test_nothing_to_approve(self, db):
        assert DistributionService.approve_payments([]) == 0


class TestRequeuePayments:
    def test_requeues_failed_only(self, db):
        declined = failed_payment(code="RAIL_DECLINED", reason="Declined")
        still_processing = processing_payment()

        requeued = DistributionService.requeue_payments(
            [declined.id, still_processing.id, uuid.uuid4()]
        )

        assert requeued == 1
        fresh = get_fresh(Payment, declined.id)
        assert fresh.status == PaymentStatus.APPROVED
        assert fresh.batch_id is None
        assert get_fresh(Payment, still_processing.id).status == PaymentStatus.PROCESSING

    def test_keeps_attempt_count(self, db):
        payment = failed_payment()
        Payment.objects.filter(id=payment.id).update(attempt_count=2)

        DistributionService.requeue_payments([payment.id])

        assert get_fresh(Payment, payment.id).attempt_count == 2

    def test_earning_follows(self, db, linked_payee):
        recording = record(linked_payee, UserFactory(), auto_approve=True)
        payment = recording.payment
        payment.start_processing(rail=PayoutRailType.STRIPE)
        payment.fail(code="RAIL_DECLINED", reason="Declined", definitive=True)
        payment.save()
        payment.sync_earning()

        DistributionService.requeue_payments([payment.id])

        assert Earning.objects.get(payment=payment).status == PaymentStatus.APPROVED


# =============================================================================
# Manual Confirmation
# =============================================================================


class TestConfirmManualPayment:
    def test_confirms_pending_manual(self, db, operator):
        payment = pending_manual_payment(rail=PayoutRailType.CASH_APP)

        result = DistributionService.confirm_manual_payment(
            payment.id, operator=operator, reference="CA-123"
        )

        assert result.success
        fresh = get_fresh(Payment, payment.id)
        assert fresh.status == PaymentStatus.PAID
        assert fresh.rail_transaction_id == "cash_app:CA-123"
        assert operator.get_username() in fresh.notes
        assert fresh.paid_at is not None

    def test_without_reference(self, db, operator):
        payment = pending_manual_payment(rail=PayoutRailType.CASH)

        DistributionService.confirm_manual_payment(payment.id, operator=operator)

        fresh = get_fresh(Payment, payment.id)
        assert fresh.status == PaymentStatus.PAID
        assert fresh.rail_transaction_id is None

    def test_already_paid_is_a_no_op(self, db, operator):
        payment = paid_payment(transaction_id="tr_original")

        result = DistributionService.confirm_manual_payment(
            payment.id, operator=operator, reference="again"
        )

        assert result.success
        fresh = get_fresh(Payment, payment.id)
        assert fresh.rail_transaction_id == "tr_original"
        assert fresh.version == payment.version

    def test_rejects_payment_not_awaiting_confirmation(self, db, operator):
        payment = PaymentFactory()

        with pytest.raises(InvalidStateTransitionError):
            DistributionService.confirm_manual_payment(payment.id, operator=operator)

        assert get_fresh(Payment, payment.id).status == PaymentStatus.PENDING

    def test_reference_reuse_is_a_conflict(self, db, operator):
        first = pending_manual_payment(rail=PayoutRailType.CHECK)
        second = pending_manual_payment(rail=PayoutRailType.CHECK)
        DistributionService.confirm_manual_payment(first.id, operator=operator, reference="1042")

        with pytest.raises(ConflictError):
            DistributionService.confirm_manual_payment(
                second.id, operator=operator, reference="1042"
            )

        assert get_fresh(Payment, second.id).status == PaymentStatus.PENDING_MANUAL

    def test_unknown_payment(self, db):
        with pytest.raises(NotFoundError):
            DistributionService.confirm_manual_payment(uuid.uuid4())


# =============================================================================
# Refunds
# =============================================================================


class TestRefundPayment:
    def test_refunds_paid_payment(self, db):
        payment = paid_payment()

        refunded = DistributionService.refund_payment(payment.id, reason="Customer dispute")

        assert refunded.status == PaymentStatus.REFUNDED
        fresh = get_fresh(Payment, payment.id)
        assert fresh.status == PaymentStatus.REFUNDED
        assert fresh.refunded_at is not None
        assert fresh.notes == "Customer dispute"

    def test_rejects_unpaid_payment(self, db):
        payment = processing_payment()

        with pytest.raises(InvalidStateTransitionError) as exc_info:
            DistributionService.refund_payment(payment.id)

        assert exc_info.value.details["current_status"] == PaymentStatus.PROCESSING


# =============================================================================
# Earnings Summary
# =============================================================================


class TestEarningsSummary:
    def test_totals(self, db, linked_payee):
        paid = record(linked_payee, UserFactory(), auto_approve=True)
        record(linked_payee, UserFactory())
        record(linked_payee, UserFactory(), auto_approve=True)

        payment = get_fresh(Payment, paid.payment.id)
        payment.start_processing(rail=PayoutRailType.STRIPE)
        payment.mark_paid(transaction_id="tr_summary")
        payment.save()
        payment.sync_earning()

        summary = DistributionService.get_earnings_summary(linked_payee)

        per_visit = paid.payment.amount_cents
        assert summary == {
            "total_earned_cents": per_visit,
            "pending_cents": per_visit * 2,
            "total_jobs": 3,
        }

    def test_no_earnings(self, db, user):
        assert DistributionService.get_earnings_summary(user) == {
            "total_earned_cents": 0,
            "pending_cents": 0,
            "total_jobs": 0,
        }
