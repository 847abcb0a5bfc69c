import uuid

import django.db.models.deletion
import django.utils.timezone
import django_fsm
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="PaymentBatch",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "version",
                    models.PositiveIntegerField(
                        default=1,
                        help_text="Version for optimistic locking - incremented on each save",
                    ),
                ),
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True, help_text="Timestamp when this record was last modified"
                    ),
                ),
                ("name", models.CharField(help_text="Operator-facing label", max_length=200)),
                (
                    "batch_type",
                    models.CharField(
                        choices=[
                            ("earnings", "Earnings"),
                            ("referral", "Referral"),
                            ("mixed", "Mixed"),
                        ],
                        default="earnings",
                        help_text="Kind of payments the batch carries",
                        max_length=20,
                    ),
                ),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("draft", "Draft"),
                            ("processing", "Processing"),
                            ("completed", "Completed"),
                            ("failed", "Failed"),
                            ("partial", "Partial"),
                        ],
                        db_index=True,
                        default="draft",
                        help_text="Current state of the batch (managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                (
                    "rail",
                    models.CharField(
                        blank=True,
                        choices=[
                            ("stripe", "Stripe (card/bank)"),
                            ("cash_app", "Cash App"),
                            ("cash", "Cash"),
                            ("check", "Check"),
                        ],
                        help_text="Rail selected for the last processing run",
                        max_length=20,
                        null=True,
                    ),
                ),
                (
                    "scheduled_date",
                    models.DateField(
                        blank=True, help_text="Date the batch is intended to be paid", null=True
                    ),
                ),
                (
                    "processing_started_at",
                    models.DateTimeField(
                        blank=True, help_text="When the last processing run started", null=True
                    ),
                ),
                (
                    "completed_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When the last run finished (unset for FAILED runs)",
                        null=True,
                    ),
                ),
                ("total_payments", models.PositiveIntegerField(default=0)),
                ("success_count", models.PositiveIntegerField(default=0)),
                ("failed_count", models.PositiveIntegerField(default=0)),
                (
                    "notes",
                    models.TextField(
                        blank=True, default="", help_text="Operator notes and run summary"
                    ),
                ),
                (
                    "created_by",
                    models.ForeignKey(
                        blank=True,
                        help_text="Operator who created the batch",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="settlement_batches",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Payment Batch",
                "verbose_name_plural": "Payment Batches",
                "ordering": ["-created_at"],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(
                            ("total_payments", models.F("success_count") + models.F("failed_count"))
                        ),
                        name="settlement_batch_counts_consistent",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="Referral",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True, help_text="Timestamp when this record was last modified"
                    ),
                ),
                (
                    "code",
                    models.CharField(
                        db_index=True, help_text="Referral code used at signup", max_length=64
                    ),
                ),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("pending", "Pending"),
                            ("active", "Active"),
                            ("cancelled", "Cancelled"),
                        ],
                        db_index=True,
                        default="pending",
                        help_text="Current state of the referral (managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                (
                    "payout_status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("earning", "Earning"),
                            ("capped", "Capped"),
                        ],
                        default="pending",
                        help_text="Progress of the monthly credit stream",
                        max_length=20,
                    ),
                ),
                ("activated_at", models.DateTimeField(blank=True, null=True)),
                ("cancelled_at", models.DateTimeField(blank=True, null=True)),
                (
                    "referred",
                    models.OneToOneField(
                        help_text="User who was referred (one referral credit per user)",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="referral_received",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "referrer",
                    models.ForeignKey(
                        help_text="User who made the referral and receives the credits",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="referrals_made",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Referral",
                "verbose_name_plural": "Referrals",
                "ordering": ["-created_at"],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("referrer", models.F("referred")), _negated=True),
                        name="settlement_referral_no_self_referral",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="Subscription",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True, help_text="Timestamp when this record was last modified"
                    ),
                ),
                ("plan_name", models.CharField(blank=True, default="", max_length=100)),
                (
                    "amount_cents",
                    models.PositiveBigIntegerField(help_text="Gross charge per billing period"),
                ),
                (
                    "visits_per_period",
                    models.PositiveSmallIntegerField(
                        default=4, help_text="Visits included per billing period"
                    ),
                ),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("active", "Active"),
                            ("past_due", "Past Due"),
                            ("cancelled", "Cancelled"),
                        ],
                        db_index=True,
                        default="active",
                        help_text="Current state of the subscription (managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                (
                    "start_date",
                    models.DateTimeField(
                        default=django.utils.timezone.now,
                        help_text="When the subscription started (referral cap anchor)",
                    ),
                ),
                ("last_payment_date", models.DateTimeField(blank=True, null=True)),
                ("past_due_since", models.DateTimeField(blank=True, null=True)),
                (
                    "customer",
                    models.ForeignKey(
                        help_text="Paying customer",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="settlement_subscriptions",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Subscription",
                "verbose_name_plural": "Subscriptions",
                "ordering": ["-created_at"],
            },
        ),
        migrations.CreateModel(
            name="Payment",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "version",
                    models.PositiveIntegerField(
                        default=1,
                        help_text="Version for optimistic locking - incremented on each save",
                    ),
                ),
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True, help_text="Timestamp when this record was last modified"
                    ),
                ),
                (
                    "payment_type",
                    models.CharField(
                        choices=[
                            ("service", "Service"),
                            ("referral", "Referral"),
                            ("monthly_referral", "Monthly Referral"),
                            ("earnings", "Earnings"),
                        ],
                        db_index=True,
                        help_text="What this payment pays for",
                        max_length=20,
                    ),
                ),
                (
                    "service_id",
                    models.UUIDField(
                        blank=True,
                        db_index=True,
                        help_text="External id of the completed service this payment comes from",
                        null=True,
                    ),
                ),
                (
                    "amount_cents",
                    models.PositiveBigIntegerField(
                        help_text="Amount in smallest currency unit (e.g., cents)"
                    ),
                ),
                (
                    "currency",
                    models.CharField(
                        default="usd",
                        help_text="ISO 4217 currency code (lowercase)",
                        max_length=3,
                    ),
                ),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("pending", "Pending"),
                            ("approved", "Approved"),
                            ("processing", "Processing"),
                            ("pending_manual", "Pending Manual Confirmation"),
                            ("paid", "Paid"),
                            ("failed", "Failed"),
                            ("refunded", "Refunded"),
                        ],
                        db_index=True,
                        default="pending",
                        help_text="Current state of the payment (managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                (
                    "rail",
                    models.CharField(
                        blank=True,
                        choices=[
                            ("stripe", "Stripe (card/bank)"),
                            ("cash_app", "Cash App"),
                            ("cash", "Cash"),
                            ("check", "Check"),
                        ],
                        help_text="Rail this payment was sent through",
                        max_length=20,
                        null=True,
                    ),
                ),
                (
                    "rail_transaction_id",
                    models.CharField(
                        blank=True,
                        help_text="Rail reference of the settling transfer (e.g., tr_xxx)",
                        max_length=255,
                        null=True,
                        unique=True,
                    ),
                ),
                (
                    "attempt_count",
                    models.PositiveIntegerField(
                        default=0,
                        help_text="Definitive rail failures so far (idempotency key component)",
                    ),
                ),
                (
                    "approved_at",
                    models.DateTimeField(
                        blank=True, help_text="When the payment was approved", null=True
                    ),
                ),
                (
                    "paid_at",
                    models.DateTimeField(blank=True, help_text="When the payment settled", null=True),
                ),
                (
                    "failed_at",
                    models.DateTimeField(
                        blank=True, help_text="When the last attempt failed", null=True
                    ),
                ),
                (
                    "refunded_at",
                    models.DateTimeField(
                        blank=True, help_text="When the payment was marked refunded", null=True
                    ),
                ),
                (
                    "failure_code",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Error taxonomy code of the last failure",
                        max_length=32,
                    ),
                ),
                (
                    "failure_reason",
                    models.TextField(
                        blank=True, default="", help_text="Detailed reason of the last failure"
                    ),
                ),
                (
                    "notes",
                    models.TextField(
                        blank=True,
                        default="",
                        help_text="Operator-facing notes (rail details, confirmations)",
                    ),
                ),
                (
                    "metadata",
                    models.JSONField(
                        blank=True, default=dict, help_text="Fee split breakdown and other context"
                    ),
                ),
                (
                    "approved_by",
                    models.ForeignKey(
                        blank=True,
                        help_text="Operator who approved this payment",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="approved_settlement_payments",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "batch",
                    models.ForeignKey(
                        blank=True,
                        help_text="Batch carrying this payment",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="payments",
                        to="settlement.paymentbatch",
                    ),
                ),
                (
                    "payee",
                    models.ForeignKey(
                        help_text="User receiving this payment",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="settlement_payments",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "referral",
                    models.ForeignKey(
                        blank=True,
                        help_text="Referral that produced this payment",
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payments",
                        to="settlement.referral",
                    ),
                ),
                (
                    "subscription",
                    models.ForeignKey(
                        blank=True,
                        help_text="Subscription this payment depends on (past-due escalation)",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="payments",
                        to="settlement.subscription",
                    ),
                ),
            ],
            options={
                "verbose_name": "Payment",
                "verbose_name_plural": "Payments",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["status", "batch"], name="settlement__status_6b1f2c_idx"
                    ),
                    models.Index(
                        fields=["payee", "status"], name="settlement__payee_i_4d8e0a_idx"
                    ),
                    models.Index(
                        fields=["payment_type", "status"], name="settlement__payment_9c3a71_idx"
                    ),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("amount_cents__gte", 0)),
                        name="settlement_payment_amount_non_negative",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="Earning",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True, help_text="Timestamp when this record was last modified"
                    ),
                ),
                ("service_id", models.UUIDField(help_text="External id of the completed service")),
                (
                    "amount_cents",
                    models.PositiveBigIntegerField(
                        help_text="Payee share in smallest currency unit"
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("approved", "Approved"),
                            ("processing", "Processing"),
                            ("pending_manual", "Pending Manual Confirmation"),
                            ("paid", "Paid"),
                            ("failed", "Failed"),
                            ("refunded", "Refunded"),
                        ],
                        db_index=True,
                        default="pending",
                        help_text="Mirrors the payment status",
                        max_length=20,
                    ),
                ),
                (
                    "paid_via",
                    models.CharField(
                        blank=True,
                        choices=[
                            ("stripe", "Stripe (card/bank)"),
                            ("cash_app", "Cash App"),
                            ("cash", "Cash"),
                            ("check", "Check"),
                        ],
                        default="",
                        help_text="Rail the earning was paid through",
                        max_length=20,
                    ),
                ),
                (
                    "transfer_reference",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Stripe transfer id or manual confirmation reference",
                        max_length=255,
                    ),
                ),
                ("approved_at", models.DateTimeField(blank=True, null=True)),
                ("paid_at", models.DateTimeField(blank=True, null=True)),
                (
                    "approved_by",
                    models.ForeignKey(
                        blank=True,
                        help_text="Operator who approved the earning",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="approved_earnings",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "employee",
                    models.ForeignKey(
                        help_text="Worker who performed the service",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="earnings",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "payment",
                    models.OneToOneField(
                        help_text="SERVICE payment this earning mirrors",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="earning",
                        to="settlement.payment",
                    ),
                ),
            ],
            options={
                "verbose_name": "Earning",
                "verbose_name_plural": "Earnings",
                "ordering": ["-created_at"],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("service_id", "employee"),
                        name="settlement_earning_unique_service_employee",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="PaymentRetry",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True, help_text="Timestamp when this record was last modified"
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("scheduled", "Scheduled"),
                            ("pending", "Pending"),
                            ("success", "Success"),
                            ("failed", "Failed"),
                        ],
                        db_index=True,
                        default="scheduled",
                        help_text="Current state of the retry",
                        max_length=20,
                    ),
                ),
                (
                    "retry_count",
                    models.PositiveSmallIntegerField(
                        default=0, help_text="Position in the payment's retry lineage"
                    ),
                ),
                (
                    "next_retry_date",
                    models.DateTimeField(
                        db_index=True, help_text="Earliest time the retry may run"
                    ),
                ),
                ("attempted_at", models.DateTimeField(blank=True, null=True)),
                ("error_code", models.CharField(blank=True, default="", max_length=32)),
                (
                    "error_message",
                    models.TextField(
                        blank=True, default="", help_text="Failure reason of this attempt"
                    ),
                ),
                (
                    "rail_transaction_id",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Rail reference when the retry settled",
                        max_length=255,
                    ),
                ),
                (
                    "payment",
                    models.ForeignKey(
                        help_text="Payment to re-attempt",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="retries",
                        to="settlement.payment",
                    ),
                ),
            ],
            options={
                "verbose_name": "Payment Retry",
                "verbose_name_plural": "Payment Retries",
                "ordering": ["next_retry_date"],
                "indexes": [
                    models.Index(
                        fields=["status", "next_retry_date"],
                        name="settlement__status_e2a7d5_idx",
                    )
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("payment", "retry_count"),
                        name="settlement_retry_unique_count_per_payment",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="ReferralPayout",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True, help_text="Timestamp when this record was last modified"
                    ),
                ),
                (
                    "period_month",
                    models.DateField(
                        help_text="First day of the calendar month this credit covers"
                    ),
                ),
                (
                    "month_index",
                    models.PositiveSmallIntegerField(
                        help_text="Whole months elapsed since the subscription started"
                    ),
                ),
                (
                    "amount_cents",
                    models.PositiveBigIntegerField(
                        help_text="Credit amount in smallest currency unit"
                    ),
                ),
                (
                    "payment",
                    models.OneToOneField(
                        help_text="APPROVED MONTHLY_REFERRAL payment carrying the credit",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="referral_payout",
                        to="settlement.payment",
                    ),
                ),
                (
                    "referral",
                    models.ForeignKey(
                        help_text="Referral this credit belongs to",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payouts",
                        to="settlement.referral",
                    ),
                ),
            ],
            options={
                "verbose_name": "Referral Payout",
                "verbose_name_plural": "Referral Payouts",
                "ordering": ["-period_month"],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("referral", "period_month"),
                        name="settlement_referral_payout_unique_month",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="PayeeAccount",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True, help_text="Timestamp when this record was last modified"
                    ),
                ),
                (
                    "stripe_account_id",
                    models.CharField(
                        blank=True,
                        help_text="Stripe Connect account ID (acct_xxx)",
                        max_length=255,
                        null=True,
                        unique=True,
                    ),
                ),
                (
                    "payouts_enabled",
                    models.BooleanField(
                        default=False,
                        help_text="Whether Stripe reports payouts enabled for the account",
                    ),
                ),
                (
                    "manual_handle",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Handle for manual rails (e.g., Cash App $cashtag)",
                        max_length=100,
                    ),
                ),
                (
                    "user",
                    models.OneToOneField(
                        help_text="User these payout details belong to",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="payee_account",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Payee Account",
                "verbose_name_plural": "Payee Accounts",
            },
        ),
    ]
