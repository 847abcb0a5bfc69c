"""
Service layer base classes.

- ServiceResult: explicit success/failure wrapper for expected outcomes
- BaseService: logger and transaction helpers shared by service classes

Services hold the business logic. Views translate HTTP into service calls,
models hold data and state transitions.

Pattern Comparison:
    - ServiceResult: expected failures an operator can act on
    - Exceptions: invalid requests and unexpected failures

Usage:
    from core.services import BaseService, ServiceResult

    class BatchService(BaseService):
        @classmethod
        def delete_batch(cls, batch_id) -> ServiceResult[int]:
            with cls.atomic():
                ...
            cls.get_logger().info("Deleted batch", extra={"batch_id": str(batch_id)})
            return ServiceResult.success(released)
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Generic, TypeVar

from django.db import transaction

if TYPE_CHECKING:
    from collections.abc import Callable, Generator
    from typing import Any

    from core.exceptions import BaseApplicationError

T = TypeVar("T")


@dataclass
class ServiceResult(Generic[T]):
    """
    Result wrapper for service operations.

    Attributes:
        success: Whether the operation succeeded
        data: Result data if successful
        error: Error message if failed
        error_code: Machine-readable error code
        errors: Field-level errors for validation failures

    Usage:
        result = DistributionService.confirm_manual_payment(payment_id, operator)
        if not result.success:
            return Response(result.to_response(), status=400)
    """

    success: bool
    data: T | None = None
    error: str | None = None
    error_code: str | None = None
    errors: dict[str, list[str]] | None = field(default=None)

    @classmethod
    def success(cls, data: T) -> ServiceResult[T]:
        return cls(success=True, data=data)

    @classmethod
    def failure(
        cls,
        error: str,
        error_code: str | None = None,
        errors: dict[str, list[str]] | None = None,
    ) -> ServiceResult[T]:
        return cls(
            success=False,
            error=error,
            error_code=error_code,
            errors=errors,
        )

    @classmethod
    def from_exception(cls, exc: BaseApplicationError) -> ServiceResult[T]:
        """Build a failed result from an application error."""
        return cls(
            success=False,
            error=exc.message,
            error_code=exc.error_code,
        )

    def to_response(self) -> dict[str, Any]:
        """
        Convert to API response format.

        Returns:
            {"success": True, "data": ...} or
            {"success": False, "error": ..., "error_code": ..., "errors": ...}
        """
        if self.success:
            return {"success": True, "data": self.data}

        response: dict[str, Any] = {
            "success": False,
            "error": self.error,
        }
        if self.error_code:
            response["error_code"] = self.error_code
        if self.errors:
            response["errors"] = self.errors
        return response

    def map(self, func: Callable[[T], Any]) -> ServiceResult:
        """Apply func to the data of a successful result."""
        if self.success and self.data is not None:
            return ServiceResult.success(func(self.data))
        return self

    def __bool__(self) -> bool:
        return self.success


class BaseService:
    """
    Base class for stateless service classes.

    Services expose classmethods only. Expected outcomes are returned as
    ServiceResult, invalid requests raise core.exceptions errors.
    """

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """
        Logger named after the service class, e.g.
        "settlement.services.batch_service.BatchService".
        """
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    @contextmanager
    def atomic(cls) -> Generator[None, None, None]:
        """
        Run the block in a database transaction.

        Keep these blocks short: they hold row locks taken with
        select_for_update() until the block exits, so no network call to a
        payout rail may happen inside one.
        """
        with transaction.atomic():
            yield

    @classmethod
    def handle_exception(
        cls,
        exc: BaseApplicationError,
        context: str = "",
        log_level: int = logging.WARNING,
    ) -> ServiceResult:
        """
        Log an application error and convert it to a failed result.

        Example:
            try:
                batch = cls._lock_batch(batch_id)
            except NotFoundError as e:
                return cls.handle_exception(e, "batch deletion")
        """
        message = f"{context}: {exc.message}" if context else exc.message
        cls.get_logger().log(
            log_level,
            message,
            extra={"error_code": exc.error_code, "details": exc.details},
        )
        return ServiceResult.from_exception(exc)
