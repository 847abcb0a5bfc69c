"""
Stripe Connect adapter for the card/bank payout rail.

Every Stripe call made by settlement goes through StripeAdapter so that
timeouts, idempotency keys, logging and error translation are applied in
one place. Stripe SDK exceptions never leave this module: they are
translated into the settlement rail taxonomy (settlement.exceptions).

Configuration (via settings):
- STRIPE_SECRET_KEY: Stripe API secret key
- STRIPE_API_VERSION: Pinned API version (optional)
- STRIPE_API_TIMEOUT_SECONDS: Per-request timeout (default: 10)
- STRIPE_MAX_RETRIES: SDK-level network retries (default: 2)
- STRIPE_CONNECT_COUNTRY: Country for on-demand Express accounts

Usage:
    from settlement.adapters import IdempotencyKeyGenerator, StripeAdapter

    key = IdempotencyKeyGenerator.generate("payout", payment.id, payment.attempt_count)
    result = StripeAdapter.create_transfer(
        amount_cents=payment.amount_cents,
        destination_account="acct_123",
        idempotency_key=key,
        metadata={"payment_id": str(payment.id)},
    )
"""

from __future__ import annotations

import hashlib
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any

import stripe
from django.conf import settings

from settlement.exceptions import (
    AlreadySettledError,
    NoLinkedAccountError,
    RailDeclinedError,
    RailUnavailableError,
    RailValidationError,
)
from settlement.state_machines import PayoutRailType

RAIL = PayoutRailType.STRIPE

# Stripe codes meaning the destination account cannot receive transfers
ACCOUNT_ERROR_CODES = frozenset(
    {
        "account_invalid",
        "account_closed",
        "no_account",
        "resource_missing",
    }
)

# Stripe codes meaning the platform or destination refused the money
DECLINE_ERROR_CODES = frozenset(
    {
        "balance_insufficient",
        "insufficient_funds",
        "transfers_not_allowed",
        "account_restricted",
    }
)


# =============================================================================
# Data Types
# =============================================================================


@dataclass
class TransferResult:
    """
    Result of a Stripe Transfer.

    Attributes:
        id: Transfer ID (tr_xxx)
        amount_cents: Amount transferred
        currency: Currency code
        destination_account: Connect account the money went to
        raw_response: Full Stripe response (debugging only)
    """

    id: str
    amount_cents: int
    currency: str
    destination_account: str
    metadata: dict[str, str] = field(default_factory=dict)
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class ConnectedAccountResult:
    """Result of creating a Stripe Connect Express account."""

    id: str
    payouts_enabled: bool = False
    charges_enabled: bool = False
    raw_response: dict[str, Any] = field(default_factory=dict)


# =============================================================================
# Idempotency Key Generator
# =============================================================================


class IdempotencyKeyGenerator:
    """
    Deterministic idempotency keys for Stripe calls.

    Format: "{operation}:{entity_id}:{attempt}:{hash8}"

    The same (operation, entity, attempt) always yields the same key, so a
    re-sent request for the same logical transfer is deduplicated by
    Stripe. The hash is salted with SECRET_KEY so keys cannot be guessed
    from ids alone.

    Example:
        IdempotencyKeyGenerator.generate("payout", payment.id, 0)
        # "payout:550e8400-e29b-41d4-a716-446655440000:0:a1b2c3d4"
    """

    @staticmethod
    def generate(
        operation: str,
        entity_id: uuid.UUID | str,
        attempt: int = 0,
    ) -> str:
        entity_str = str(entity_id)
        digest_input = f"{operation}:{entity_str}:{attempt}:{settings.SECRET_KEY}"
        short_hash = hashlib.sha256(digest_input.encode()).hexdigest()[:8]
        return f"{operation}:{entity_str}:{attempt}:{short_hash}"


# =============================================================================
# Stripe Adapter
# =============================================================================


class StripeAdapter:
    """
    Stateless wrapper over the Stripe SDK calls settlement needs.

    Methods raise only settlement RailError subclasses:
        RailValidationError   - malformed request, bad API key
        NoLinkedAccountError  - destination account missing or unusable
        RailDeclinedError     - insufficient balance, restricted account
        RailUnavailableError  - network errors, rate limits, Stripe 5xx
        AlreadySettledError   - reused key whose earlier transfer exists
    """

    @staticmethod
    def _configure_stripe() -> None:
        stripe.api_key = settings.STRIPE_SECRET_KEY
        if settings.STRIPE_API_VERSION:
            stripe.api_version = settings.STRIPE_API_VERSION
        stripe.max_network_retries = settings.STRIPE_MAX_RETRIES
        stripe.default_http_client = stripe.RequestsClient(
            timeout=settings.STRIPE_API_TIMEOUT_SECONDS
        )

    @classmethod
    def get_logger(cls) -> logging.Logger:
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    # =========================================================================
    # Transfers
    # =========================================================================

    @classmethod
    def create_transfer(
        cls,
        amount_cents: int,
        destination_account: str,
        idempotency_key: str,
        currency: str = "usd",
        description: str = "",
        metadata: dict[str, str] | None = None,
        transfer_group: str = "",
    ) -> TransferResult:
        """
        Move money from the platform balance to a connected account.

        Args:
            amount_cents: Amount in cents (must be positive)
            destination_account: Connect account ID (acct_xxx)
            idempotency_key: Key identifying this logical transfer
            currency: Currency code
            description: Memo shown in the Stripe dashboard
            metadata: Correlation ids (payment_id)
            transfer_group: Stable group used to find the transfer again
                when Stripe reports a reused idempotency key

        Returns:
            TransferResult

        Raises:
            RailError subclass, see class docstring
        """
        if amount_cents <= 0:
            raise RailValidationError(
                "Transfer amount must be positive",
                rail=RAIL,
                details={"amount_cents": amount_cents},
            )

        cls._configure_stripe()
        logger = cls.get_logger()
        log_context = {
            "operation": "create_transfer",
            "amount_cents": amount_cents,
            "destination_account": destination_account,
            "idempotency_key": idempotency_key,
        }

        start_time = time.monotonic()
        logger.info("Starting Stripe operation", extra=log_context)

        transfer_params: dict[str, Any] = {
            "amount": amount_cents,
            "currency": currency,
            "destination": destination_account,
            "metadata": metadata or {},
        }
        if description:
            transfer_params["description"] = description
        if transfer_group:
            transfer_params["transfer_group"] = transfer_group

        try:
            transfer = stripe.Transfer.create(
                idempotency_key=idempotency_key,
                **transfer_params,
            )
        except stripe.IdempotencyError:
            cls._resolve_idempotency_conflict(
                transfer_group, destination_account, log_context, start_time
            )
            raise
        except stripe.StripeError as e:
            cls._handle_stripe_error(e, log_context, start_time)
            raise

        logger.info(
            "Stripe operation completed",
            extra={
                **log_context,
                "transfer_id": transfer.id,
                "duration_ms": (time.monotonic() - start_time) * 1000,
            },
        )
        return cls._to_transfer_result(transfer)

    @classmethod
    def find_transfer(
        cls, transfer_group: str, destination_account: str
    ) -> TransferResult | None:
        """
        Return the transfer made to an account under a transfer group.

        Returns:
            TransferResult, or None if no such transfer exists

        Raises:
            RailError subclass, see class docstring
        """
        cls._configure_stripe()
        log_context = {
            "operation": "list_transfers",
            "transfer_group": transfer_group,
            "destination_account": destination_account,
        }
        start_time = time.monotonic()

        try:
            transfers = stripe.Transfer.list(
                transfer_group=transfer_group,
                destination=destination_account,
                limit=1,
            )
        except stripe.StripeError as e:
            cls._handle_stripe_error(e, log_context, start_time)
            raise

        if not transfers.data:
            return None
        return cls._to_transfer_result(transfers.data[0])

    @staticmethod
    def _to_transfer_result(transfer: Any) -> TransferResult:
        return TransferResult(
            id=transfer.id,
            amount_cents=transfer.amount,
            currency=transfer.currency,
            destination_account=transfer.destination,
            metadata=dict(transfer.metadata or {}),
            raw_response=transfer.to_dict(),
        )

    @classmethod
    def _resolve_idempotency_conflict(
        cls,
        transfer_group: str,
        destination_account: str,
        log_context: dict[str, Any],
        start_time: float,
    ) -> None:
        """
        Handle a transfer key that Stripe has seen with different parameters.

        Stripe does not say whether the earlier request moved money, so the
        transfer group is searched. A transfer found there means the payment
        is settled; otherwise the key can never succeed and the attempt is
        declined, which moves the payment to a fresh key.
        """
        logger = cls.get_logger()
        logger.warning(
            "Stripe reports idempotency key reuse",
            extra={**log_context, "duration_ms": (time.monotonic() - start_time) * 1000},
        )

        original = (
            cls.find_transfer(transfer_group, destination_account) if transfer_group else None
        )
        if original is not None:
            raise AlreadySettledError(
                "A transfer for this payment was already made",
                external_id=original.id,
                rail=RAIL,
                provider_code="idempotency_error",
            )

        raise RailDeclinedError(
            "Idempotency key was reused with different parameters and no earlier "
            "transfer exists",
            rail=RAIL,
            provider_code="idempotency_error",
        )

    # =========================================================================
    # Connected Accounts
    # =========================================================================

    @classmethod
    def create_express_account(
        cls,
        email: str,
        idempotency_key: str,
        metadata: dict[str, str] | None = None,
    ) -> ConnectedAccountResult:
        """
        Create an Express account able to receive transfers.

        The account still has to finish Stripe onboarding before payouts
        reach the payee's bank, but transfers can be made to it at once.
        """
        cls._configure_stripe()
        logger = cls.get_logger()
        log_context = {
            "operation": "create_express_account",
            "idempotency_key": idempotency_key,
        }

        start_time = time.monotonic()
        logger.info("Starting Stripe operation", extra=log_context)

        account_params: dict[str, Any] = {
            "type": "express",
            "country": settings.STRIPE_CONNECT_COUNTRY,
            "capabilities": {"transfers": {"requested": True}},
            "metadata": metadata or {},
        }
        if email:
            account_params["email"] = email

        try:
            account = stripe.Account.create(
                idempotency_key=idempotency_key,
                **account_params,
            )
        except stripe.StripeError as e:
            cls._handle_stripe_error(e, log_context, start_time)
            raise

        logger.info(
            "Stripe operation completed",
            extra={
                **log_context,
                "account_id": account.id,
                "duration_ms": (time.monotonic() - start_time) * 1000,
            },
        )
        return ConnectedAccountResult(
            id=account.id,
            payouts_enabled=bool(getattr(account, "payouts_enabled", False)),
            charges_enabled=bool(getattr(account, "charges_enabled", False)),
            raw_response=account.to_dict(),
        )

    # =========================================================================
    # Error Translation
    # =========================================================================

    @classmethod
    def _handle_stripe_error(
        cls,
        error: stripe.StripeError,
        log_context: dict[str, Any],
        start_time: float,
    ) -> None:
        """
        Translate a Stripe SDK exception into the rail taxonomy and raise it.
        """
        logger = cls.get_logger()
        code = getattr(error, "code", None)
        log_context = {
            **log_context,
            "stripe_code": code,
            "duration_ms": (time.monotonic() - start_time) * 1000,
        }
        message = str(getattr(error, "user_message", None) or error)

        if isinstance(error, stripe.IdempotencyError):
            logger.error("Idempotency key reused with different parameters", extra=log_context)
            raise RailValidationError(
                "Idempotency key was reused with different parameters",
                rail=RAIL,
                provider_code=code or "idempotency_error",
            )

        if isinstance(error, stripe.CardError):
            logger.warning("Stripe declined the operation", extra=log_context)
            raise RailDeclinedError(message, rail=RAIL, provider_code=code)

        if isinstance(error, stripe.InvalidRequestError):
            param = getattr(error, "param", None)
            if code in ACCOUNT_ERROR_CODES or param == "destination":
                logger.warning("Stripe destination account unusable", extra=log_context)
                raise NoLinkedAccountError(message, rail=RAIL, provider_code=code)
            if code in DECLINE_ERROR_CODES:
                logger.warning("Stripe declined the transfer", extra=log_context)
                raise RailDeclinedError(message, rail=RAIL, provider_code=code)
            logger.error("Invalid request to Stripe", extra=log_context)
            raise RailValidationError(message, rail=RAIL, provider_code=code)

        if isinstance(error, (stripe.AuthenticationError, stripe.PermissionError)):
            logger.critical(
                "Stripe authentication failed - check API key", extra=log_context
            )
            raise RailValidationError(
                "Stripe authentication failed",
                rail=RAIL,
                provider_code="authentication_error",
            )

        if isinstance(error, stripe.RateLimitError):
            logger.warning("Rate limited by Stripe", extra=log_context)
            raise RailUnavailableError(
                "Stripe rate limit exceeded",
                rail=RAIL,
                provider_code="rate_limit",
            )

        if isinstance(error, stripe.APIConnectionError):
            logger.error("Connection error to Stripe", extra=log_context, exc_info=True)
            raise RailUnavailableError(
                "Could not connect to Stripe",
                rail=RAIL,
                provider_code="api_connection_error",
            )

        logger.error(
            f"Unexpected error from Stripe: {type(error).__name__}",
            extra=log_context,
            exc_info=True,
        )
        raise RailUnavailableError(
            f"Stripe service error: {message}",
            rail=RAIL,
            provider_code=code or "api_error",
        )
