"""
Permission classes for the settlement API.

- IsOperator: Staff users running payouts (batches, approvals, confirmations)
- IsCronScheduler: Requests authenticated by CronSecretAuthentication
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rest_framework import permissions

from settlement.authentication import CRON_AUTH

if TYPE_CHECKING:
    from rest_framework.request import Request
    from rest_framework.views import APIView


class IsOperator(permissions.BasePermission):
    """Allows access only to authenticated staff users."""

    message = "Settlement operations require a staff account."

    def has_permission(self, request: Request, view: APIView) -> bool:
        user = request.user
        return bool(user and user.is_authenticated and user.is_staff)


class IsCronScheduler(permissions.BasePermission):
    """Allows access only to requests carrying a valid cron token."""

    def has_permission(self, request: Request, view: APIView) -> bool:
        return request.auth == CRON_AUTH
