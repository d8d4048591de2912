"""
Uniform API response envelope
Project: DermaCare Client

Every backend wrapper returns {success, data?, error?} instead of raising,
so callers decide at the point of the user action how to report failures.
"""

from typing import Any, Optional

from pydantic import BaseModel, Field

from dermacare.core.exceptions import BackendError

GENERIC_ERROR = "Backend request failed"


class ApiResponse(BaseModel):
    """Result of one backend call."""

    success: bool
    data: Any = None
    error: Optional[str] = None
    status_code: Optional[int] = Field(None, description="HTTP status, None on transport errors")

    @classmethod
    def ok(cls, data: Any = None, status_code: Optional[int] = None) -> "ApiResponse":
        return cls(success=True, data=data, status_code=status_code)

    @classmethod
    def fail(cls, error: str, status_code: Optional[int] = None) -> "ApiResponse":
        return cls(success=False, error=error, status_code=status_code)

    def unwrap(self, context: Optional[str] = None) -> Any:
        """
        Returns data or raises BackendError.

        Args:
            context: Entity the call was about, prefixed to the message

        Raises:
            BackendError: if the call failed
        """
        if self.success:
            return self.data
        message = self.error or GENERIC_ERROR
        if context:
            message = f"{context}: {message}"
        raise BackendError(message, status_code=self.status_code)
