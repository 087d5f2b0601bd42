"""
Service Error Hierarchy

Every typed error raised by a pipeline operation derives from ServiceError.
The HTTP layer maps them to ``{"error": code, "message": msg}`` responses.
"""

from fastapi import HTTPException


class ServiceError(Exception):
    """Base exception for service errors."""

    def __init__(self, message: str, error_code: str, status_code: int = 400):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        super().__init__(message)


class ValidationError(ServiceError):
    """Input rejected before any state was touched."""

    def __init__(self, message: str, error_code: str = "VALIDATION_ERROR"):
        super().__init__(message=message, error_code=error_code, status_code=422)


class NotFoundError(ServiceError):
    def __init__(self, message: str, error_code: str = "NOT_FOUND"):
        super().__init__(message=message, error_code=error_code, status_code=404)


class PermissionDeniedError(ServiceError):
    def __init__(self, message: str = "You are not allowed to perform this action."):
        super().__init__(message=message, error_code="PERMISSION_DENIED", status_code=403)


class InvalidStateTransitionError(ServiceError):
    """Operation is not valid for the record's current status."""

    def __init__(self, message: str, error_code: str = "INVALID_STATE_TRANSITION"):
        super().__init__(message=message, error_code=error_code, status_code=409)


class RetryableError(ServiceError):
    """The unit of work rolled back; the caller may safely retry."""

    def __init__(self, message: str, error_code: str = "RETRYABLE_ERROR"):
        super().__init__(message=message, error_code=error_code, status_code=503)


def to_http_exception(error: ServiceError) -> HTTPException:
    """Convert a service error to an HTTPException with a structured detail."""
    return HTTPException(
        status_code=error.status_code,
        detail={
            "error": error.error_code,
            "message": error.message,
        },
    )


__all__ = [
    "ServiceError",
    "ValidationError",
    "NotFoundError",
    "PermissionDeniedError",
    "InvalidStateTransitionError",
    "RetryableError",
    "to_http_exception",
]
