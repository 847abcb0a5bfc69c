"""
Settlement app configuration.

Turns completed, billable work into split payouts: fee calculation, the
payment ledger, payout batches across rails, payout retries and the
monthly referral cascade.
"""

from django.apps import AppConfig


class SettlementConfig(AppConfig):
    """Configuration for the settlement application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "settlement"
    verbose_name = "Settlement"
