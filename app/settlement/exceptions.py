"""
Settlement exceptions.

Rail failures are classified into a small taxonomy so the orchestrator and
the retry scheduler decide retry-eligibility from the exception type alone,
never from provider error strings.

Exception Hierarchy:
    SettlementError (base, BaseApplicationError)
    ├── InvalidStateTransitionError - FSM transition rejected (VALIDATION)
    ├── BatchLockedError - Membership change on a non-DRAFT batch (VALIDATION)
    └── RailError - Base for payout rail failures
        ├── RailValidationError - Request rejected as malformed (VALIDATION)
        ├── NoLinkedAccountError - Payee has no usable rail account (NO_LINKED_ACCOUNT)
        ├── RailDeclinedError - Transfer refused by the rail (RAIL_DECLINED)
        ├── RailUnavailableError - Transient outage or timeout (RAIL_UNAVAILABLE, retryable)
        └── AlreadySettledError - Idempotency key already settled (ALREADY_SETTLED)

    LockAcquisitionError - Distributed lock held elsewhere (ConflictError)

Usage:
    from settlement.exceptions import RailError

    try:
        outcome = rail.transfer(request)
    except AlreadySettledError as e:
        payment.mark_paid(transaction_id=e.external_id)
    except RailError as e:
        payment.fail(code=e.error_code, reason=e.message)
        if e.is_retryable:
            schedule_retry(payment)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import BaseApplicationError, ConflictError

if TYPE_CHECKING:
    from typing import Any


# Error taxonomy codes
VALIDATION = "VALIDATION"
NO_LINKED_ACCOUNT = "NO_LINKED_ACCOUNT"
RAIL_DECLINED = "RAIL_DECLINED"
RAIL_UNAVAILABLE = "RAIL_UNAVAILABLE"
ALREADY_SETTLED = "ALREADY_SETTLED"
INTERNAL_ERROR = "INTERNAL_ERROR"


# =============================================================================
# Settlement Domain Exceptions
# =============================================================================


class SettlementError(BaseApplicationError):
    """
    Base exception for settlement operations.

    Attributes:
        is_retryable: Whether the retry scheduler may re-attempt the payment
    """

    default_error_code: str = VALIDATION
    http_status: int = 400
    is_retryable: bool = False


class InvalidStateTransitionError(SettlementError):
    """
    Raised when a django-fsm transition is not allowed from the current state.

    Example:
        try:
            batch.start_processing(rail=rail)
        except TransitionNotAllowed:
            raise InvalidStateTransitionError(
                f"Cannot process batch in '{batch.status}' status",
                details={"batch_id": str(batch.id), "current_status": batch.status},
            )
    """


class BatchLockedError(SettlementError):
    """Raised when batch membership is changed after the batch left DRAFT."""


# =============================================================================
# Payout Rail Exceptions
# =============================================================================


class RailError(SettlementError):
    """
    Base exception for payout rail failures.

    Attributes:
        rail: Rail that produced the error
        provider_code: Raw provider code, kept for logs only
    """

    http_status = 502

    def __init__(
        self,
        message: str,
        rail: str | None = None,
        provider_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if rail:
            details["rail"] = rail
        if provider_code:
            details["provider_code"] = provider_code
        super().__init__(message, details=details)
        self.rail = rail
        self.provider_code = provider_code


class RailValidationError(RailError):
    """The rail rejected the request as malformed (bad amount, bad params)."""

    default_error_code = VALIDATION


class NoLinkedAccountError(RailError):
    """
    The payee has no account on the rail and one could not be created.

    Terminal for the attempt; an operator must fix the payee's details.
    """

    default_error_code = NO_LINKED_ACCOUNT


class RailDeclinedError(RailError):
    """The rail refused the transfer (insufficient balance, restricted account)."""

    default_error_code = RAIL_DECLINED


class RailUnavailableError(RailError):
    """
    Transient failure: network error, timeout, rate limit or provider 5xx.

    The transfer may or may not have executed, so the next attempt must
    reuse the same idempotency key.
    """

    default_error_code = RAIL_UNAVAILABLE
    http_status = 503
    is_retryable = True


class AlreadySettledError(RailError):
    """
    The rail already settled a transfer under this idempotency key.

    Callers treat this as success.

    Attributes:
        external_id: Rail reference of the original transfer, when known
    """

    default_error_code = ALREADY_SETTLED

    def __init__(self, message: str, external_id: str | None = None, **kwargs):
        super().__init__(message, **kwargs)
        self.external_id = external_id


# =============================================================================
# Concurrency Control Exceptions
# =============================================================================


class LockAcquisitionError(ConflictError):
    """
    Raised when a distributed lock is held by another worker.

    Example:
        try:
            with DistributedLock("settlement:retry-run", ttl=600):
                RetryService.process_due_retries()
        except LockAcquisitionError:
            return {"status": "lock_failed"}
    """

    default_error_code: str = "LOCK_ACQUISITION_FAILED"
