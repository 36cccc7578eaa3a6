"""
Security module for the care-team service.

Provides the standardized error envelope, request correlation and the
actor identity taken from the gateway.
"""

from .api_errors import (
    APIError,
    ErrorCode,
    ErrorResponse,
    RequestIDMiddleware,
    register_exception_handlers,
)

__all__ = [
    "APIError",
    "ErrorCode",
    "ErrorResponse",
    "RequestIDMiddleware",
    "register_exception_handlers",
]
