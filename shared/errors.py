"""
Shared error handling for the portfolio cache layer.

Cache backend failures are never raised to callers; the exceptions below cover
the cases that are caller programming errors.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel, Field

from shared.logging import request_id_var


class ErrorResponse(BaseModel):
    """Standard error response format."""

    request_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class PortfolioCacheException(Exception):
    """Base exception for the portfolio cache layer."""

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


class ValidationError(PortfolioCacheException):
    """Validation-related errors."""

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class CacheSerializationError(PortfolioCacheException):
    """A value could not be encoded for, or decoded from, the cache."""

    def __init__(self, message: str = "Cache value serialization failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("CACHE_SERIALIZATION_ERROR", message, details)


class EntityTagError(PortfolioCacheException):
    """An entity tag was requested for a payload that cannot be serialized."""

    def __init__(self, message: str = "Payload cannot be fingerprinted", details: Optional[Dict[str, Any]] = None):
        super().__init__("ENTITY_TAG_ERROR", message, details)


class UnknownEndpointClassError(PortfolioCacheException):
    """No freshness configuration exists for the endpoint class."""

    def __init__(self, endpoint_class: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            "UNKNOWN_ENDPOINT_CLASS",
            f"No freshness configuration for endpoint class '{endpoint_class}'",
            details or {"endpoint_class": endpoint_class},
        )
        self.endpoint_class = endpoint_class
