"""
Shared error handling for the notification pipeline.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response format."""

    request_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = {}


class PipelineException(Exception):
    """Base exception for pipeline services."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self, request_id: Optional[str] = None) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            request_id=request_id,
            code=self.code,
            message=self.message,
            details=self.details
        )


class ValidationError(PipelineException):
    """Validation-related errors."""

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class DecodeError(PipelineException):
    """A consumed payload could not be decoded into an event."""

    def __init__(self, message: str = "Malformed event payload", details: Optional[Dict[str, Any]] = None):
        super().__init__("DECODE_ERROR", message, details)


class LimiterUnavailable(PipelineException):
    """The rate limiter store is unreachable or timed out."""

    def __init__(self, message: str = "Rate limiter store unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__("LIMITER_UNAVAILABLE", message, details)


class PublishError(PipelineException):
    """The transport failed to enqueue a record."""

    def __init__(self, topic: str, message: str = "Publish failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("PUBLISH_ERROR", f"{topic}: {message}", details)
        self.topic = topic


class DownstreamDeliveryError(PipelineException):
    """The downstream provider rejected or failed a delivery."""

    def __init__(self, message: str = "Downstream delivery failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("DOWNSTREAM_DELIVERY_ERROR", message, details)
