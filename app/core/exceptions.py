"""
Application-wide exception hierarchy.

Every domain error carries a human-readable message, a machine-readable
error code and optional details, so views can render a consistent payload
and clients can branch on the code.

Exception Hierarchy:
    BaseApplicationError
    ├── ValidationError        - Rejected input or state change (HTTP 400)
    ├── NotFoundError          - Missing resource (HTTP 404)
    ├── PermissionDeniedError  - Caller may not perform the action (HTTP 403)
    └── ConflictError          - Duplicate or concurrent modification (HTTP 409)

Usage:
    from core.exceptions import ValidationError

    raise ValidationError(
        "Batch is not editable",
        error_code="BATCH_LOCKED",
        details={"batch_id": str(batch.id), "status": batch.status},
    )
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any


class BaseApplicationError(Exception):
    """
    Base exception for all application-specific errors.

    Attributes:
        message: Human-readable error description
        error_code: Machine-readable code for client-side handling
        details: Additional error context
        http_status: Status code views use when rendering the error
    """

    default_error_code: str = "APPLICATION_ERROR"
    http_status: int = 500

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert to the API error payload.

        Example:
            {
                "success": False,
                "error": "Payment not found",
                "error_code": "NOT_FOUND",
                "details": {"payment_id": "..."}
            }
        """
        result: dict[str, Any] = {
            "success": False,
            "error": self.message,
            "error_code": self.error_code,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"details={self.details!r})"
        )


class ValidationError(BaseApplicationError):
    """Raised when a request or a requested state change is invalid."""

    default_error_code = "VALIDATION"
    http_status = 400


class NotFoundError(BaseApplicationError):
    """Raised when a requested record does not exist."""

    default_error_code = "NOT_FOUND"
    http_status = 404


class PermissionDeniedError(BaseApplicationError):
    """Raised when the caller is not allowed to perform the action."""

    default_error_code = "PERMISSION_DENIED"
    http_status = 403


class ConflictError(BaseApplicationError):
    """
    Raised when an operation conflicts with existing state.

    Typical causes are unique-constraint collisions (a second Earning for
    the same service) and optimistic-lock version mismatches.
    """

    default_error_code = "CONFLICT"
    http_status = 409
