"""
Shared error handling for the Mirror service.
"""

from dataclasses import dataclass
from typing import Dict, Any, Optional
from pydantic import BaseModel

from shared.logging import request_id_var


FAILURE_MESSAGE = "Something went wrong!"


class ErrorResponse(BaseModel):
    """Standard error response format."""

    request_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = {}


class MirrorException(Exception):
    """Base exception for Mirror service components."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            request_id=request_id_var.get(),
            code=self.code,
            message=self.message,
            details=self.details
        )


class TransportError(MirrorException):
    """A remote call failed or answered with a non-success status."""

    def __init__(
        self,
        method: str,
        url: str,
        message: str = "Remote call failed",
        status_code: Optional[int] = None,
        body: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        details: Dict[str, Any] = {"method": method, "url": url}
        if status_code is not None:
            details["status_code"] = status_code
        if body:
            details["body"] = body
        super().__init__("TRANSPORT_ERROR", message, details)
        self.method = method
        self.url = url
        self.status_code = status_code
        self.body = body
        self.cause = cause


class DecodeError(MirrorException):
    """A remote payload could not be turned into an item."""

    def __init__(self, message: str = "Malformed payload", details: Optional[Dict[str, Any]] = None):
        super().__init__("DECODE_ERROR", message, details)


class ValidationError(MirrorException):
    """Validation-related errors."""

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class ItemNotFoundError(MirrorException):
    """An item could not be located in the mirrored collection."""

    def __init__(self, item_id: Any, message: str = "Item not found"):
        super().__init__("ITEM_NOT_FOUND", message, {"item_id": item_id})
        self.item_id = item_id


@dataclass
class ErrorRecord:
    """Structured failure record handed to a diagnostic sink."""
    http_method: str
    error: BaseException
    message: str = FAILURE_MESSAGE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "httpMethod": self.http_method,
            "error": repr(self.error),
        }


def render_error(method: str, error: BaseException) -> ErrorRecord:
    """Build the failure record for a remote call that gave up."""
    return ErrorRecord(http_method=method, error=error)
