"""
Root URL configuration.

URL Structure:
    /                                   - ReDoc API documentation
    /schema/                            - OpenAPI schema
    /admin/                             - Django admin
    /health/                            - Health check (load balancers, Docker)
    /api/v1/auth/token/                 - Obtain JWT pair
    /api/v1/auth/token/refresh/         - Refresh JWT
    /api/v1/settlement/                 - Settlement endpoints
        batches/                        - Batch list/create
        batches/{id}/                   - Batch detail/delete
        batches/{id}/add-payments/      - Add approved payments
        batches/{id}/remove-payments/   - Remove payments
        batches/{id}/process/           - Process through a payout rail
        payments/                       - Payment list
        payments/approve/               - Approve pending payments
        payments/{id}/confirm-manual/   - Confirm a manual payout
        payments/{id}/refund/           - Mark a payment refunded
        cron/retry-payments/            - Scheduler trigger: payout retries
        cron/referral-payouts/          - Scheduler trigger: referral cascade
"""

from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

from core.views import health_check

# =============================================================================
# API v1 Routes
# =============================================================================
api_v1_patterns = [
    path("auth/token/", TokenObtainPairView.as_view(), name="token_obtain_pair"),
    path("auth/token/refresh/", TokenRefreshView.as_view(), name="token_refresh"),
    path("settlement/", include("settlement.urls")),
]

urlpatterns = [
    path("", SpectacularRedocView.as_view(url_name="schema"), name="redoc"),
    path("schema/", SpectacularAPIView.as_view(), name="schema"),
    path("admin/", admin.site.urls),
    path("health/", health_check, name="health_check"),
    path("api/v1/", include(api_v1_patterns)),
]

admin.site.site_header = "Settlement Admin"
admin.site.site_title = "Settlement Admin"
admin.site.index_title = "Payouts, batches and referrals"
