"""
Custom exceptions for the client core.
Project: DermaCare Client

Domain-specific exceptions so every failure path can be surfaced to the
user with a message naming the affected entity.

NOTE: InvalidInputError is distinct from pydantic.ValidationError.
- pydantic.ValidationError: malformed data at the API boundary
- InvalidInputError: a user-entered value that breaks a business rule
"""

from typing import Any, Dict, Optional

__all__ = [
    "AppException",
    "InvalidInputError",
    "NotFoundError",
    "InsufficientStockError",
    "InvalidStatusTransitionError",
    "BackendError",
    "PartialFailureError",
]


class AppException(Exception):
    """
    Base exception for the client.

    Attributes:
        error_code: Stable identifier the UI can switch on
        detail: Human-readable message
        extra: Additional data for the caller
    """

    error_code: str = "INTERNAL_ERROR"

    def __init__(
        self,
        detail: str,
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.detail = detail
        self.error_code = error_code if error_code is not None else self.error_code
        self.extra = extra
        super().__init__(detail)


class InvalidInputError(ValueError, AppException):
    """
    Raised when a user-entered value breaks a business rule.

    Inherits from ValueError so pydantic validators can raise it.

    Examples:
        - "Service 'Botox' has an invalid quantity"
        - "Invoice INV-12 is not a draft"
    """

    error_code: str = "INVALID_INPUT"

    def __init__(
        self,
        detail: str = "Invalid input",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        AppException.__init__(self, detail, error_code, extra)


class NotFoundError(AppException):
    """Raised when an entity is not known locally."""

    error_code: str = "RESOURCE_NOT_FOUND"

    def __init__(
        self,
        detail: str = "Resource not found",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(detail, error_code, extra)


class InsufficientStockError(AppException):
    """
    Raised when a use request exceeds the locally known quantity.

    The action is blocked before any network call.
    """

    error_code: str = "INSUFFICIENT_STOCK"

    def __init__(
        self,
        detail: str = "Insufficient stock",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(detail, error_code, extra)


class InvalidStatusTransitionError(AppException):
    """Raised when an invoice payment status change is not allowed."""

    error_code: str = "INVALID_STATUS_TRANSITION"

    def __init__(
        self,
        detail: str = "Status transition not allowed",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(detail, error_code, extra)


class BackendError(AppException):
    """
    Raised for any network or API failure.

    Attributes:
        status_code: HTTP status returned by the backend, if any
    """

    error_code: str = "BACKEND_ERROR"

    def __init__(
        self,
        detail: str = "Backend request failed",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(detail, error_code, extra)
        self.status_code = status_code


class PartialFailureError(AppException):
    """
    Raised when some items of a multi-item deduction failed.

    extra["failures"] lists every failed item; the message names all of them.
    """

    error_code: str = "PARTIAL_FAILURE"

    def __init__(
        self,
        detail: str = "Some items could not be processed",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(detail, error_code, extra)
