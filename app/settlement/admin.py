"""
Settlement admin configuration.

State changes should be made through the service layer; FSM status fields
are read-only here.
"""

from django.contrib import admin

from settlement.models import (
    Earning,
    PayeeAccount,
    Payment,
    PaymentBatch,
    PaymentRetry,
    Referral,
    ReferralPayout,
    Subscription,
)


def cents_display(amount_cents: int, currency: str = "usd") -> str:
    return f"${amount_cents / 100:.2f} {currency.upper()}"


class PaymentInline(admin.TabularInline):
    model = Payment
    fk_name = "batch"
    verbose_name_plural = "current members"
    fields = ["id", "payee", "payment_type", "status", "amount_cents", "rail"]
    readonly_fields = fields
    extra = 0
    can_delete = False
    show_change_link = True


class ProcessedPaymentInline(PaymentInline):
    fk_name = "last_batch"
    verbose_name_plural = "processed payments"


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    """
    Admin configuration for Payment.

    Payments are the audit trail of money owed; deletion is disabled.
    """

    list_display = [
        "id",
        "payee",
        "payment_type",
        "amount_display",
        "status",
        "rail",
        "batch",
        "attempt_count",
        "created_at",
    ]
    list_filter = ["status", "payment_type", "rail", "created_at"]
    search_fields = ["id", "payee__email", "rail_transaction_id", "service_id"]
    readonly_fields = [
        "id",
        "status",
        "rail_transaction_id",
        "attempt_count",
        "approved_at",
        "paid_at",
        "failed_at",
        "refunded_at",
        "created_at",
        "updated_at",
        "version",
    ]
    raw_id_fields = [
        "payee",
        "referral",
        "subscription",
        "batch",
        "last_batch",
        "approved_by",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    fieldsets = (
        (None, {"fields": ("id", "payee", "payment_type", "status")}),
        ("Amount", {"fields": ("amount_cents", "currency")}),
        ("Sources", {"fields": ("service_id", "referral", "subscription")}),
        (
            "Payout",
            {"fields": ("batch", "last_batch", "rail", "rail_transaction_id", "attempt_count")},
        ),
        (
            "State Timestamps",
            {
                "fields": ("approved_by", "approved_at", "paid_at", "failed_at", "refunded_at"),
                "classes": ("collapse",),
            },
        ),
        (
            "Failure Info",
            {"fields": ("failure_code", "failure_reason", "notes"), "classes": ("collapse",)},
        ),
        ("Metadata", {"fields": ("metadata", "version"), "classes": ("collapse",)}),
        ("Timestamps", {"fields": ("created_at", "updated_at")}),
    )

    def amount_display(self, obj: Payment) -> str:
        return cents_display(obj.amount_cents, obj.currency)

    amount_display.short_description = "Amount"

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


@admin.register(PaymentBatch)
class PaymentBatchAdmin(admin.ModelAdmin):
    list_display = [
        "id",
        "name",
        "batch_type",
        "status",
        "rail",
        "total_payments",
        "success_count",
        "failed_count",
        "created_at",
    ]
    list_filter = ["status", "batch_type", "rail"]
    search_fields = ["id", "name"]
    readonly_fields = [
        "id",
        "status",
        "rail",
        "processing_started_at",
        "completed_at",
        "total_payments",
        "success_count",
        "failed_count",
        "created_at",
        "updated_at",
        "version",
    ]
    inlines = [PaymentInline, ProcessedPaymentInline]
    ordering = ["-created_at"]


@admin.register(Earning)
class EarningAdmin(admin.ModelAdmin):
    list_display = ["id", "employee", "service_id", "amount_cents", "status", "paid_via", "paid_at"]
    list_filter = ["status", "paid_via"]
    search_fields = ["id", "service_id", "employee__email", "transfer_reference"]
    readonly_fields = [f.name for f in Earning._meta.fields]
    ordering = ["-created_at"]

    def has_add_permission(self, request) -> bool:
        """Earnings are created by the distribution service only."""
        return False


@admin.register(PaymentRetry)
class PaymentRetryAdmin(admin.ModelAdmin):
    list_display = [
        "id",
        "payment",
        "retry_count",
        "status",
        "next_retry_date",
        "attempted_at",
        "error_code",
    ]
    list_filter = ["status", "error_code"]
    search_fields = ["id", "payment__id"]
    readonly_fields = ["id", "attempted_at", "rail_transaction_id", "created_at", "updated_at"]
    raw_id_fields = ["payment"]
    ordering = ["next_retry_date"]


class ReferralPayoutInline(admin.TabularInline):
    model = ReferralPayout
    fields = ["period_month", "month_index", "amount_cents", "payment"]
    readonly_fields = fields
    extra = 0
    can_delete = False


@admin.register(Referral)
class ReferralAdmin(admin.ModelAdmin):
    list_display = ["id", "referrer", "referred", "code", "status", "payout_status", "created_at"]
    list_filter = ["status", "payout_status"]
    search_fields = ["id", "code", "referrer__email", "referred__email"]
    readonly_fields = ["id", "status", "activated_at", "cancelled_at", "created_at", "updated_at"]
    raw_id_fields = ["referrer", "referred"]
    inlines = [ReferralPayoutInline]


@admin.register(Subscription)
class SubscriptionAdmin(admin.ModelAdmin):
    list_display = ["id", "customer", "plan_name", "amount_cents", "status", "start_date"]
    list_filter = ["status"]
    search_fields = ["id", "customer__email", "plan_name"]
    readonly_fields = ["id", "status", "past_due_since", "created_at", "updated_at"]
    raw_id_fields = ["customer"]


@admin.register(PayeeAccount)
class PayeeAccountAdmin(admin.ModelAdmin):
    list_display = ["id", "user", "stripe_account_id", "payouts_enabled", "manual_handle"]
    list_filter = ["payouts_enabled"]
    search_fields = ["id", "user__email", "stripe_account_id", "manual_handle"]
    readonly_fields = ["id", "created_at", "updated_at"]
    raw_id_fields = ["user"]
