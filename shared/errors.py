"""
Shared error handling for the entitlement engine.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Standard error response format."""

    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class AccessLayerException(Exception):
    """Base exception for entitlement services."""

    http_status = 400

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            code=self.code,
            message=self.message,
            details=self.details
        )


class ValidationError(AccessLayerException):
    """Validation-related errors."""

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class ExternalServiceError(AccessLayerException):
    """External service errors."""

    http_status = 502

    def __init__(self, service: str, message: str = "External service error",
                 details: Optional[Dict[str, Any]] = None, code: str = "EXTERNAL_SERVICE_ERROR"):
        self.service = service
        super().__init__(code, f"{service}: {message}", details)


class AuthorityUnavailableError(ExternalServiceError):
    """The entitlement authority could not be reached (transport failure or timeout)."""

    http_status = 503

    def __init__(self, message: str = "Authority unreachable", details: Optional[Dict[str, Any]] = None):
        super().__init__("entitlement_authority", message, details, code="AUTHORITY_UNAVAILABLE")


class AuthorityRejectedError(ExternalServiceError):
    """The entitlement authority answered, but not with a usable success response."""

    def __init__(self, message: str = "Authority rejected request", status_code: Optional[int] = None,
                 body: Optional[Dict[str, Any]] = None):
        self.status_code = status_code
        self.body = body or {}
        super().__init__(
            "entitlement_authority",
            message,
            {"status_code": status_code},
            code="AUTHORITY_REJECTED"
        )

    @property
    def authority_message(self) -> Optional[str]:
        """Human-readable message supplied by the authority, if any."""
        return self.body.get("message") or self.body.get("error")


class CacheError(AccessLayerException):
    """Local entitlement cache backend failure."""

    http_status = 503

    def __init__(self, message: str = "Cache error", details: Optional[Dict[str, Any]] = None):
        super().__init__("CACHE_ERROR", message, details)
