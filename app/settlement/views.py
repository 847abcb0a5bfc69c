"""
API views for settlement.

Provides:
- PaymentBatchListCreateView / PaymentBatchDetailView: Batch CRUD
- PaymentBatchAddPaymentsView / PaymentBatchRemovePaymentsView: Membership
- PaymentBatchProcessView: Pay a batch through a rail
- PaymentListView / PaymentApproveView: Payment listing and approval
- PaymentRequeueView: Return failed payments to APPROVED for a new batch
- PaymentConfirmManualView / PaymentRefundView: Single-payment operator actions
- RetryPaymentsCronView / ReferralPayoutsCronView: Scheduler triggers

Operator endpoints require a staff user. Cron endpoints authenticate with
"Authorization: Bearer <CRON_SECRET>" only.

Errors are returned as:
    {"success": false, "error": "...", "error_code": "...", "details": {...}}
"""

from __future__ import annotations

import logging

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, OpenApiResponse, extend_schema
from rest_framework import generics, status
from rest_framework.response import Response
from rest_framework.views import APIView

from core.exceptions import BaseApplicationError
from settlement.authentication import CronSecretAuthentication
from settlement.models import Payment, PaymentBatch
from settlement.permissions import IsCronScheduler, IsOperator
from settlement.serializers import (
    BatchProcessResultSerializer,
    ConfirmManualPaymentSerializer,
    PaymentBatchCreateSerializer,
    PaymentBatchListSerializer,
    PaymentBatchSerializer,
    PaymentIdsSerializer,
    PaymentSerializer,
    ProcessBatchSerializer,
    ReferralRunSerializer,
    RefundPaymentSerializer,
    RetryRunSerializer,
)
from settlement.services import BatchService, DistributionService
from settlement.workers import run_payment_retries, run_referral_cascade

logger = logging.getLogger(__name__)

TRUE_VALUES = {"1", "true", "yes"}


def error_response(exc: BaseApplicationError) -> Response:
    """Render an application error with its HTTP status."""
    return Response(exc.to_dict(), status=exc.http_status)


def batches_with_payments():
    return PaymentBatch.objects.prefetch_related("payments", "processed_payments")


# =============================================================================
# Batches
# =============================================================================


class PaymentBatchListCreateView(generics.ListAPIView):
    """
    GET  /api/v1/settlement/batches/ - List batches (newest first)
    POST /api/v1/settlement/batches/ - Create a DRAFT batch
    """

    permission_classes = [IsOperator]
    serializer_class = PaymentBatchListSerializer
    queryset = PaymentBatch.objects.all()

    @extend_schema(
        operation_id="create_payment_batch",
        summary="Create payment batch",
        request=PaymentBatchCreateSerializer,
        responses={201: PaymentBatchSerializer},
        tags=["Settlement - Batches"],
    )
    def post(self, request):
        serializer = PaymentBatchCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        batch = BatchService.create_batch(created_by=request.user, **serializer.validated_data)
        return Response(PaymentBatchSerializer(batch).data, status=status.HTTP_201_CREATED)


class PaymentBatchDetailView(APIView):
    """
    GET    /api/v1/settlement/batches/{id}/ - Batch with its payments
    DELETE /api/v1/settlement/batches/{id}/?release_payments=true - Delete
        a DRAFT or FAILED batch, releasing its payments
    """

    permission_classes = [IsOperator]

    @extend_schema(
        operation_id="get_payment_batch",
        summary="Get payment batch",
        responses={200: PaymentBatchSerializer, 404: OpenApiResponse(description="Not found")},
        tags=["Settlement - Batches"],
    )
    def get(self, request, batch_id):
        batch = batches_with_payments().filter(id=batch_id).first()
        if batch is None:
            return Response(
                {"success": False, "error": "Payment batch not found", "error_code": "NOT_FOUND"},
                status=status.HTTP_404_NOT_FOUND,
            )
        return Response(PaymentBatchSerializer(batch).data)

    @extend_schema(
        operation_id="delete_payment_batch",
        summary="Delete payment batch",
        parameters=[
            OpenApiParameter(
                name="release_payments",
                type=OpenApiTypes.BOOL,
                location=OpenApiParameter.QUERY,
                description="Release member payments and requeue failed ones before deleting",
            ),
        ],
        responses={
            200: OpenApiResponse(description="Batch deleted"),
            400: OpenApiResponse(description="Batch not deletable"),
            404: OpenApiResponse(description="Not found"),
        },
        tags=["Settlement - Batches"],
    )
    def delete(self, request, batch_id):
        release = request.query_params.get("release_payments", "").lower() in TRUE_VALUES
        result = BatchService.delete_batch(batch_id, release_payments=release)

        if not result.success:
            http_status = (
                status.HTTP_404_NOT_FOUND
                if result.error_code == "NOT_FOUND"
                else status.HTTP_400_BAD_REQUEST
            )
            return Response(result.to_response(), status=http_status)

        return Response(
            {
                "success": True,
                "message": "Payment batch deleted",
                "payments_released": result.data,
            }
        )


class PaymentBatchAddPaymentsView(APIView):
    """POST /api/v1/settlement/batches/{id}/add-payments/"""

    permission_classes = [IsOperator]

    @extend_schema(
        operation_id="add_batch_payments",
        summary="Add payments to batch",
        request=PaymentIdsSerializer,
        responses={200: PaymentBatchSerializer},
        tags=["Settlement - Batches"],
    )
    def post(self, request, batch_id):
        serializer = PaymentIdsSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            BatchService.add_payments(batch_id, serializer.validated_data["payment_ids"])
        except BaseApplicationError as e:
            return error_response(e)

        batch = batches_with_payments().get(id=batch_id)
        return Response(PaymentBatchSerializer(batch).data)


class PaymentBatchRemovePaymentsView(APIView):
    """POST /api/v1/settlement/batches/{id}/remove-payments/"""

    permission_classes = [IsOperator]

    @extend_schema(
        operation_id="remove_batch_payments",
        summary="Remove payments from batch",
        request=PaymentIdsSerializer,
        responses={200: PaymentBatchSerializer},
        tags=["Settlement - Batches"],
    )
    def post(self, request, batch_id):
        serializer = PaymentIdsSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            BatchService.remove_payments(batch_id, serializer.validated_data["payment_ids"])
        except BaseApplicationError as e:
            return error_response(e)

        batch = batches_with_payments().get(id=batch_id)
        return Response(PaymentBatchSerializer(batch).data)


class PaymentBatchProcessView(APIView):
    """
    POST /api/v1/settlement/batches/{id}/process/

    Request body:
        {"rail": "stripe" | "cash_app" | "cash" | "check"}

    Returns the run summary. A batch that is not DRAFT or FAILED is
    rejected with 400 VALIDATION.
    """

    permission_classes = [IsOperator]

    @extend_schema(
        operation_id="process_payment_batch",
        summary="Process payment batch",
        request=ProcessBatchSerializer,
        responses={
            200: BatchProcessResultSerializer,
            400: OpenApiResponse(description="Batch cannot be processed"),
            404: OpenApiResponse(description="Not found"),
        },
        tags=["Settlement - Batches"],
    )
    def post(self, request, batch_id):
        serializer = ProcessBatchSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            result = BatchService.process_batch(batch_id, rail=serializer.validated_data["rail"])
        except BaseApplicationError as e:
            logger.warning(
                f"Batch processing rejected: {e.message}",
                extra={"batch_id": str(batch_id), "error_code": e.error_code},
            )
            return error_response(e)

        return Response(result.to_dict())


# =============================================================================
# Payments
# =============================================================================


class PaymentListView(generics.ListAPIView):
    """
    GET /api/v1/settlement/payments/?status=approved&type=service&unbatched=true
    """

    permission_classes = [IsOperator]
    serializer_class = PaymentSerializer

    def get_queryset(self):
        queryset = Payment.objects.select_related("payee").order_by("-created_at")
        params = self.request.query_params

        if params.get("status"):
            queryset = queryset.filter(status=params["status"])
        if params.get("type"):
            queryset = queryset.filter(payment_type=params["type"])
        if params.get("unbatched", "").lower() in TRUE_VALUES:
            queryset = queryset.filter(batch__isnull=True)
        return queryset

    @extend_schema(
        operation_id="list_payments",
        summary="List payments",
        parameters=[
            OpenApiParameter(name="status", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY),
            OpenApiParameter(name="type", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY),
            OpenApiParameter(
                name="unbatched", type=OpenApiTypes.BOOL, location=OpenApiParameter.QUERY
            ),
        ],
        tags=["Settlement - Payments"],
    )
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)


class PaymentApproveView(APIView):
    """POST /api/v1/settlement/payments/approve/"""

    permission_classes = [IsOperator]

    @extend_schema(
        operation_id="approve_payments",
        summary="Approve pending payments",
        request=PaymentIdsSerializer,
        responses={200: OpenApiResponse(description="{'approved_count': n}")},
        tags=["Settlement - Payments"],
    )
    def post(self, request):
        serializer = PaymentIdsSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        approved = DistributionService.approve_payments(
            serializer.validated_data["payment_ids"], approver=request.user
        )
        return Response({"success": True, "approved_count": approved})


class PaymentRequeueView(APIView):
    """POST /api/v1/settlement/payments/requeue/"""

    permission_classes = [IsOperator]

    @extend_schema(
        operation_id="requeue_payments",
        summary="Requeue failed payments",
        description="Move FAILED payments back to APPROVED so they can join a new batch.",
        request=PaymentIdsSerializer,
        responses={200: OpenApiResponse(description="{'requeued_count': n}")},
        tags=["Settlement - Payments"],
    )
    def post(self, request):
        serializer = PaymentIdsSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        requeued = DistributionService.requeue_payments(serializer.validated_data["payment_ids"])
        return Response({"success": True, "requeued_count": requeued})


class PaymentConfirmManualView(APIView):
    """POST /api/v1/settlement/payments/{id}/confirm-manual/"""

    permission_classes = [IsOperator]

    @extend_schema(
        operation_id="confirm_manual_payment",
        summary="Confirm manual payout",
        request=ConfirmManualPaymentSerializer,
        responses={
            200: PaymentSerializer,
            400: OpenApiResponse(description="Payment is not awaiting confirmation"),
            404: OpenApiResponse(description="Not found"),
            409: OpenApiResponse(description="Reference already used"),
        },
        tags=["Settlement - Payments"],
    )
    def post(self, request, payment_id):
        serializer = ConfirmManualPaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            result = DistributionService.confirm_manual_payment(
                payment_id,
                operator=request.user,
                reference=serializer.validated_data["reference"],
            )
        except BaseApplicationError as e:
            return error_response(e)

        return Response(PaymentSerializer(result.data).data)


class PaymentRefundView(APIView):
    """POST /api/v1/settlement/payments/{id}/refund/"""

    permission_classes = [IsOperator]

    @extend_schema(
        operation_id="refund_payment",
        summary="Mark payment refunded",
        request=RefundPaymentSerializer,
        responses={200: PaymentSerializer},
        tags=["Settlement - Payments"],
    )
    def post(self, request, payment_id):
        serializer = RefundPaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            payment = DistributionService.refund_payment(
                payment_id, reason=serializer.validated_data["reason"]
            )
        except BaseApplicationError as e:
            return error_response(e)

        return Response(PaymentSerializer(payment).data)


# =============================================================================
# Cron Triggers
# =============================================================================


class RetryPaymentsCronView(APIView):
    """
    POST /api/v1/settlement/cron/retry-payments/

    Runs the retry scheduler inline and returns its counts.
    """

    authentication_classes = [CronSecretAuthentication]
    permission_classes = [IsCronScheduler]
    throttle_classes = []

    @extend_schema(
        operation_id="cron_retry_payments",
        summary="Run payment retries",
        request=None,
        responses={
            200: RetryRunSerializer,
            401: OpenApiResponse(description="Invalid cron token"),
            409: OpenApiResponse(description="A run is already in progress"),
        },
        tags=["Settlement - Cron"],
    )
    def post(self, request):
        try:
            counts = run_payment_retries()
        except BaseApplicationError as e:
            return error_response(e)
        return Response(counts)


class ReferralPayoutsCronView(APIView):
    """
    POST /api/v1/settlement/cron/referral-payouts/

    Runs the referral cascade inline and returns its summary.
    """

    authentication_classes = [CronSecretAuthentication]
    permission_classes = [IsCronScheduler]
    throttle_classes = []

    @extend_schema(
        operation_id="cron_referral_payouts",
        summary="Run referral cascade",
        request=None,
        responses={
            200: ReferralRunSerializer,
            401: OpenApiResponse(description="Invalid cron token"),
            409: OpenApiResponse(description="A run is already in progress"),
        },
        tags=["Settlement - Cron"],
    )
    def post(self, request):
        try:
            summary = run_referral_cascade()
        except BaseApplicationError as e:
            return error_response(e)
        return Response(summary)
