"""
Tests for the settlement API.

Tests cover:
- Operator-only access
- Batch CRUD, membership and processing endpoints
- Payment listing, approval, requeue, manual confirmation and refund
- Cron trigger authentication and lock conflicts
"""

import uuid

import pytest
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APIClient

from settlement.models import Payment, PaymentBatch
from settlement.state_machines import BatchStatus, PaymentStatus, PayoutRailType
from settlement.tests.factories import (
    PaymentFactory,
    approved_payment,
    failed_payment,
    get_fresh,
    paid_payment,
    pending_manual_payment,
)


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def operator_client(api_client, operator):
    api_client.force_authenticate(user=operator)
    return api_client


@pytest.fixture
def cron_client(api_client, settings):
    settings.CRON_SECRET = "test-cron-secret"
    api_client.credentials(HTTP_AUTHORIZATION="Bearer test-cron-secret")
    return api_client


# =============================================================================
# Access
# =============================================================================


class TestOperatorAccess:
    def test_anonymous_rejected(self, db, api_client):
        response = api_client.get(reverse("settlement:batch-list"))

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_non_staff_rejected(self, api_client, user):
        api_client.force_authenticate(user=user)

        response = api_client.get(reverse("settlement:batch-list"))

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_cron_token_does_not_grant_operator_access(self, db, cron_client):
        response = cron_client.get(reverse("settlement:payment-list"))

        assert response.status_code in (
            status.HTTP_401_UNAUTHORIZED,
            status.HTTP_403_FORBIDDEN,
        )


# =============================================================================
# Batches
# =============================================================================


class TestBatchEndpoints:
    def test_create_batch(self, operator_client, operator):
        response = operator_client.post(
            reverse("settlement:batch-list"),
            {"name": "Week 32", "batch_type": "earnings"},
            format="json",
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data["status"] == BatchStatus.DRAFT
        assert response.data["payments"] == []
        assert PaymentBatch.objects.get(id=response.data["id"]).created_by == operator

    def test_list_batches(self, operator_client, draft_batch):
        response = operator_client.get(reverse("settlement:batch-list"))

        assert response.status_code == status.HTTP_200_OK
        assert response.data["count"] == 1
        assert "payments" not in response.data["results"][0]

    def test_get_batch(self, operator_client, draft_batch_with_payments):
        response = operator_client.get(
            reverse("settlement:batch-detail", args=[draft_batch_with_payments.id])
        )

        assert response.status_code == status.HTTP_200_OK
        assert len(response.data["payments"]) == 3

    def test_get_processed_batch_lists_its_payments(
        self, operator_client, draft_batch_with_payments, mock_stripe_transfer
    ):
        operator_client.post(
            reverse("settlement:batch-process", args=[draft_batch_with_payments.id]),
            {"rail": PayoutRailType.STRIPE},
            format="json",
        )

        response = operator_client.get(
            reverse("settlement:batch-detail", args=[draft_batch_with_payments.id])
        )

        payments = response.data["payments"]
        assert len(payments) == 3
        assert all(p["batch_id"] is None for p in payments)
        assert all(p["last_batch_id"] == str(draft_batch_with_payments.id) for p in payments)

    def test_get_missing_batch(self, operator_client):
        response = operator_client.get(reverse("settlement:batch-detail", args=[uuid.uuid4()]))

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.data["error_code"] == "NOT_FOUND"

    def test_add_and_remove_payments(self, operator_client, draft_batch):
        payment = approved_payment()

        add = operator_client.post(
            reverse("settlement:batch-add-payments", args=[draft_batch.id]),
            {"payment_ids": [str(payment.id)]},
            format="json",
        )
        assert add.status_code == status.HTTP_200_OK
        assert [p["id"] for p in add.data["payments"]] == [str(payment.id)]

        remove = operator_client.post(
            reverse("settlement:batch-remove-payments", args=[draft_batch.id]),
            {"payment_ids": [str(payment.id)]},
            format="json",
        )
        assert remove.status_code == status.HTTP_200_OK
        assert remove.data["payments"] == []

    def test_add_ineligible_payment(self, operator_client, draft_batch):
        pending = PaymentFactory()

        response = operator_client.post(
            reverse("settlement:batch-add-payments", args=[draft_batch.id]),
            {"payment_ids": [str(pending.id)]},
            format="json",
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data["error_code"] == "VALIDATION"

    def test_add_requires_ids(self, operator_client, draft_batch):
        response = operator_client.post(
            reverse("settlement:batch-add-payments", args=[draft_batch.id]),
            {"payment_ids": []},
            format="json",
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_delete_requires_release(self, operator_client, draft_batch_with_payments):
        url = reverse("settlement:batch-detail", args=[draft_batch_with_payments.id])

        refused = operator_client.delete(url)
        assert refused.status_code == status.HTTP_400_BAD_REQUEST

        response = operator_client.delete(f"{url}?release_payments=true")
        assert response.status_code == status.HTTP_200_OK
        assert response.data["payments_released"] == 3
        assert not PaymentBatch.objects.filter(id=draft_batch_with_payments.id).exists()

    def test_delete_missing_batch(self, operator_client):
        response = operator_client.delete(
            reverse("settlement:batch-detail", args=[uuid.uuid4()])
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_process_batch(self, operator_client, draft_batch_with_payments, mock_stripe_transfer):
        response = operator_client.post(
            reverse("settlement:batch-process", args=[draft_batch_with_payments.id]),
            {"rail": PayoutRailType.STRIPE},
            format="json",
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data["status"] == BatchStatus.COMPLETED
        assert response.data["success_count"] == 3
        assert len(response.data["results"]) == 3

    def test_process_twice_is_rejected(
        self, operator_client, draft_batch_with_payments, mock_stripe_transfer
    ):
        url = reverse("settlement:batch-process", args=[draft_batch_with_payments.id])
        operator_client.post(url, {"rail": PayoutRailType.STRIPE}, format="json")

        response = operator_client.post(url, {"rail": PayoutRailType.STRIPE}, format="json")

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data["error_code"] == "VALIDATION"
        assert mock_stripe_transfer.call_count == 3

    def test_process_unknown_rail(self, operator_client, draft_batch_with_payments):
        response = operator_client.post(
            reverse("settlement:batch-process", args=[draft_batch_with_payments.id]),
            {"rail": "venmo"},
            format="json",
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_process_missing_batch(self, operator_client):
        response = operator_client.post(
            reverse("settlement:batch-process", args=[uuid.uuid4()]),
            {"rail": PayoutRailType.CASH},
            format="json",
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND


# =============================================================================
# Payments
# =============================================================================


class TestPaymentEndpoints:
    def test_list_filters(self, operator_client, draft_batch):
        unbatched = approved_payment()
        batched = approved_payment()
        batched.batch = draft_batch
        batched.save()
        PaymentFactory()

        response = operator_client.get(
            reverse("settlement:payment-list"),
            {"status": PaymentStatus.APPROVED, "unbatched": "true"},
        )

        assert response.status_code == status.HTTP_200_OK
        assert [p["id"] for p in response.data["results"]] == [str(unbatched.id)]

    def test_approve(self, operator_client, operator):
        payments = [PaymentFactory(), PaymentFactory()]

        response = operator_client.post(
            reverse("settlement:payment-approve"),
            {"payment_ids": [str(p.id) for p in payments]},
            format="json",
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data == {"success": True, "approved_count": 2}
        assert get_fresh(Payment, payments[0].id).approved_by == operator

    def test_requeue(self, operator_client):
        declined = failed_payment(code="RAIL_DECLINED", reason="Declined")

        response = operator_client.post(
            reverse("settlement:payment-requeue"),
            {"payment_ids": [str(declined.id), str(paid_payment().id)]},
            format="json",
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data == {"success": True, "requeued_count": 1}
        assert get_fresh(Payment, declined.id).status == PaymentStatus.APPROVED

    def test_requeue_requires_ids(self, operator_client):
        response = operator_client.post(
            reverse("settlement:payment-requeue"), {"payment_ids": []}, format="json"
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_confirm_manual(self, operator_client):
        payment = pending_manual_payment(rail=PayoutRailType.CHECK)

        response = operator_client.post(
            reverse("settlement:payment-confirm-manual", args=[payment.id]),
            {"reference": "1042"},
            format="json",
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data["status"] == PaymentStatus.PAID
        assert response.data["rail_transaction_id"] == "check:1042"

    def test_confirm_manual_wrong_state(self, operator_client):
        payment = PaymentFactory()

        response = operator_client.post(
            reverse("settlement:payment-confirm-manual", args=[payment.id]),
            {},
            format="json",
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data["details"]["current_status"] == PaymentStatus.PENDING

    def test_confirm_manual_missing_payment(self, operator_client):
        response = operator_client.post(
            reverse("settlement:payment-confirm-manual", args=[uuid.uuid4()]),
            {},
            format="json",
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_refund(self, operator_client):
        payment = paid_payment()

        response = operator_client.post(
            reverse("settlement:payment-refund", args=[payment.id]),
            {"reason": "Chargeback"},
            format="json",
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data["status"] == PaymentStatus.REFUNDED


# =============================================================================
# Cron Triggers
# =============================================================================


class TestCronEndpoints:
    @pytest.mark.parametrize(
        "url_name", ["settlement:cron-retry-payments", "settlement:cron-referral-payouts"]
    )
    def test_missing_token(self, db, api_client, settings, url_name):
        settings.CRON_SECRET = "test-cron-secret"

        response = api_client.post(reverse(url_name))

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    @pytest.mark.parametrize(
        "url_name", ["settlement:cron-retry-payments", "settlement:cron-referral-payouts"]
    )
    def test_wrong_token(self, db, api_client, settings, url_name):
        settings.CRON_SECRET = "test-cron-secret"
        api_client.credentials(HTTP_AUTHORIZATION="Bearer wrong-secret")

        response = api_client.post(reverse(url_name))

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_empty_secret_rejects_everything(self, db, api_client, settings):
        settings.CRON_SECRET = ""
        api_client.credentials(HTTP_AUTHORIZATION="Bearer ")

        response = api_client.post(reverse("settlement:cron-retry-payments"))

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_staff_session_is_not_enough(self, api_client, operator):
        api_client.force_authenticate(user=operator)

        response = api_client.post(reverse("settlement:cron-retry-payments"))

        assert response.status_code in (
            status.HTTP_401_UNAUTHORIZED,
            status.HTTP_403_FORBIDDEN,
        )

    def test_retry_payments(self, db, cron_client, mock_redis):
        response = cron_client.post(reverse("settlement:cron-retry-payments"))

        assert response.status_code == status.HTTP_200_OK
        assert response.data == {"total": 0, "succeeded": 0, "failed": 0, "skipped": 0}

    def test_referral_payouts(self, db, cron_client, mock_redis):
        response = cron_client.post(reverse("settlement:cron-referral-payouts"))

        assert response.status_code == status.HTTP_200_OK
        assert response.data["processed_count"] == 0

    @pytest.mark.parametrize(
        "url_name", ["settlement:cron-retry-payments", "settlement:cron-referral-payouts"]
    )
    def test_run_in_progress(self, db, cron_client, mock_redis, url_name):
        mock_redis.set.return_value = False

        response = cron_client.post(reverse(url_name))

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.data["error_code"] == "LOCK_ACQUISITION_FAILED"
