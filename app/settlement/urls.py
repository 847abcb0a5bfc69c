"""
URL routes for settlement, mounted at /api/v1/settlement/.
"""

from django.urls import path

from settlement import views

app_name = "settlement"

urlpatterns = [
    # Batches
    path("batches/", views.PaymentBatchListCreateView.as_view(), name="batch-list"),
    path(
        "batches/<uuid:batch_id>/",
        views.PaymentBatchDetailView.as_view(),
        name="batch-detail",
    ),
    path(
        "batches/<uuid:batch_id>/add-payments/",
        views.PaymentBatchAddPaymentsView.as_view(),
        name="batch-add-payments",
    ),
    path(
        "batches/<uuid:batch_id>/remove-payments/",
        views.PaymentBatchRemovePaymentsView.as_view(),
        name="batch-remove-payments",
    ),
    path(
        "batches/<uuid:batch_id>/process/",
        views.PaymentBatchProcessView.as_view(),
        name="batch-process",
    ),
    # Payments
    path("payments/", views.PaymentListView.as_view(), name="payment-list"),
    path("payments/approve/", views.PaymentApproveView.as_view(), name="payment-approve"),
    path("payments/requeue/", views.PaymentRequeueView.as_view(), name="payment-requeue"),
    path(
        "payments/<uuid:payment_id>/confirm-manual/",
        views.PaymentConfirmManualView.as_view(),
        name="payment-confirm-manual",
    ),
    path(
        "payments/<uuid:payment_id>/refund/",
        views.PaymentRefundView.as_view(),
        name="payment-refund",
    ),
    # Cron triggers
    path(
        "cron/retry-payments/",
        views.RetryPaymentsCronView.as_view(),
        name="cron-retry-payments",
    ),
    path(
        "cron/referral-payouts/",
        views.ReferralPayoutsCronView.as_view(),
        name="cron-referral-payouts",
    ),
]
