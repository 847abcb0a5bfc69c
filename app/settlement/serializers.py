"""
Serializers for the settlement API.

Provides:
- PaymentSerializer / PaymentBatchSerializer: Read-only responses
- PaymentBatchCreateSerializer: Create a DRAFT batch
- PaymentIdsSerializer: Payment id lists for add/remove/approve/requeue
- ProcessBatchSerializer: Rail selection for process()
- ConfirmManualPaymentSerializer / RefundPaymentSerializer: Operator actions
- BatchProcessResultSerializer, RetryRunSerializer, ReferralRunSerializer:
  Run summaries (schema documentation)
"""

from __future__ import annotations

from drf_spectacular.utils import extend_schema_field
from rest_framework import serializers

from settlement.models import Payment, PaymentBatch
from settlement.state_machines import BatchType, PayoutRailType


class PaymentSerializer(serializers.ModelSerializer):
    """Read-only payment representation."""

    payee_id = serializers.IntegerField(read_only=True)
    batch_id = serializers.UUIDField(read_only=True, allow_null=True)
    last_batch_id = serializers.UUIDField(read_only=True, allow_null=True)

    class Meta:
        model = Payment
        fields = [
            "id",
            "payee_id",
            "payment_type",
            "status",
            "amount_cents",
            "currency",
            "service_id",
            "batch_id",
            "last_batch_id",
            "rail",
            "rail_transaction_id",
            "attempt_count",
            "failure_code",
            "failure_reason",
            "notes",
            "approved_at",
            "paid_at",
            "failed_at",
            "refunded_at",
            "created_at",
        ]
        read_only_fields = fields


class PaymentBatchSerializer(serializers.ModelSerializer):
    """Batch with its summary counts; payments are included on detail views."""

    payments = serializers.SerializerMethodField(
        help_text="Current members and every payment the batch has run",
    )

    class Meta:
        model = PaymentBatch
        fields = [
            "id",
            "name",
            "batch_type",
            "status",
            "rail",
            "scheduled_date",
            "processing_started_at",
            "completed_at",
            "total_payments",
            "success_count",
            "failed_count",
            "notes",
            "created_at",
            "payments",
        ]
        read_only_fields = fields

    @extend_schema_field(PaymentSerializer(many=True))
    def get_payments(self, obj: PaymentBatch) -> list[dict]:
        payments = {payment.id: payment for payment in obj.processed_payments.all()}
        payments.update((payment.id, payment) for payment in obj.payments.all())
        ordered = sorted(payments.values(), key=lambda payment: payment.created_at)
        return PaymentSerializer(ordered, many=True).data


class PaymentBatchListSerializer(PaymentBatchSerializer):
    class Meta(PaymentBatchSerializer.Meta):
        fields = [f for f in PaymentBatchSerializer.Meta.fields if f != "payments"]
        read_only_fields = fields


class PaymentBatchCreateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=200)
    batch_type = serializers.ChoiceField(
        choices=BatchType.choices,
        default=BatchType.EARNINGS,
    )
    scheduled_date = serializers.DateField(required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class PaymentIdsSerializer(serializers.Serializer):
    payment_ids = serializers.ListField(
        child=serializers.UUIDField(),
        allow_empty=False,
        max_length=1000,
        help_text="Payment ids to act on",
    )


class ProcessBatchSerializer(serializers.Serializer):
    rail = serializers.ChoiceField(
        choices=PayoutRailType.choices,
        help_text="Payout rail used for every payment in the batch",
    )


class ConfirmManualPaymentSerializer(serializers.Serializer):
    reference = serializers.CharField(
        max_length=200,
        required=False,
        allow_blank=True,
        default="",
        help_text="Out-of-band reference (Cash App id, check number)",
    )


class RefundPaymentSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default="")


# =============================================================================
# Run Summaries
# =============================================================================


class PaymentOutcomeSerializer(serializers.Serializer):
    payment_id = serializers.UUIDField()
    status = serializers.CharField()
    rail = serializers.CharField()
    external_id = serializers.CharField(allow_null=True)
    details = serializers.CharField()
    error_code = serializers.CharField(allow_null=True)


class BatchProcessResultSerializer(serializers.Serializer):
    batch_id = serializers.UUIDField()
    status = serializers.CharField()
    total_payments = serializers.IntegerField()
    success_count = serializers.IntegerField()
    failed_count = serializers.IntegerField()
    results = PaymentOutcomeSerializer(many=True)


class RetryRunSerializer(serializers.Serializer):
    total = serializers.IntegerField()
    succeeded = serializers.IntegerField()
    failed = serializers.IntegerField()
    skipped = serializers.IntegerField()


class ReferralRunSerializer(serializers.Serializer):
    processed_count = serializers.IntegerField()
    total_amount_cents = serializers.IntegerField()
    skipped_count = serializers.IntegerField()
    capped_count = serializers.IntegerField()
    failed_count = serializers.IntegerField()
    referral_payments = serializers.ListField(child=serializers.DictField())
