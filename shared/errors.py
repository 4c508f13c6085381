"""
Shared error handling for the Entity Service.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel, Field

from shared.logging import request_id_var


class ErrorResponse(BaseModel):
    """Standard error response format."""

    trace_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class AccessLayerException(Exception):
    """Base exception for the service; carries the HTTP status it maps to."""

    status_code: int = 400

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ):
        self.code = code
        self.message = message
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            trace_id=request_id_var.get(),
            code=self.code,
            message=self.message,
            details=self.details
        )


class MalformedInputError(AccessLayerException):
    """Request body or path parameter could not be parsed."""

    def __init__(self, message: str = "Malformed input", details: Optional[Dict[str, Any]] = None):
        super().__init__("MALFORMED_INPUT", message, details, status_code=400)


class StoreError(AccessLayerException):
    """Base class for errors raised by the store gateway."""

    status_code = 500


class NotFoundError(StoreError):
    """Update target does not exist in the store."""

    status_code = 400

    def __init__(self, message: str = "Entity not found", details: Optional[Dict[str, Any]] = None):
        super().__init__("NOT_FOUND", message, details)


class StoreUnavailableError(StoreError):
    """Store connection failed or an operation timed out."""

    def __init__(self, message: str = "Document store unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__("STORE_UNAVAILABLE", message, details)


class EncodingError(StoreError):
    """A stored document or a response could not be serialized."""

    def __init__(self, message: str = "Encoding error", details: Optional[Dict[str, Any]] = None):
        super().__init__("ENCODING_ERROR", message, details)
