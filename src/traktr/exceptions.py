"""
Traktr - Custom Exceptions.

Centralized exception handling with standardized error responses.
Read paths never raise these for store faults; user-initiated writes do.
"""

from typing import Any


class TraktrException(Exception):
    """Base exception for Traktr application."""

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: dict[str, Any] | None = None,
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(message)


class UnauthorizedException(TraktrException):
    """Raised when no authenticated principal is present."""

    def __init__(self, message: str = "Invalid or missing authentication token"):
        super().__init__(
            code="UNAUTHORIZED",
            message=message,
            status_code=401,
        )


class ForbiddenException(TraktrException):
    """Raised when the session's role does not allow an operation."""

    def __init__(self, message: str = "Insufficient permissions", required_role: str | None = None):
        details = {"required_role": required_role} if required_role else None
        super().__init__(
            code="FORBIDDEN",
            message=message,
            status_code=403,
            details=details,
        )


class NotFoundException(TraktrException):
    """Raised when a resource is not found."""

    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(
            code="NOT_FOUND",
            message=f"{resource_type} not found: {resource_id}",
            status_code=404,
            details={"resource_type": resource_type, "resource_id": str(resource_id)},
        )


class JoinCodeNotFoundException(TraktrException):
    """Raised when no company matches a join code. A user error, not a fault."""

    def __init__(self, join_code: str):
        super().__init__(
            code="JOIN_CODE_NOT_FOUND",
            message="That join code was not found. Check the code and try again.",
            status_code=404,
            details={"join_code": join_code},
        )


class ValidationException(TraktrException):
    """Raised for validation errors."""

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None):
        super().__init__(
            code="VALIDATION_ERROR",
            message=message,
            status_code=400,
            details={"errors": errors} if errors else None,
        )


class ConflictException(TraktrException):
    """Raised when a write collides with an existing, immutable record."""

    def __init__(self, message: str, resource_type: str | None = None, resource_id: str | None = None):
        details = {"resource_type": resource_type, "resource_id": resource_id} if resource_type else None
        super().__init__(
            code="CONFLICT",
            message=message,
            status_code=409,
            details=details,
        )


class ExternalServiceException(TraktrException):
    """Raised when a store fails during a user-initiated write."""

    def __init__(self, service_name: str, message: str):
        super().__init__(
            code="EXTERNAL_SERVICE_ERROR",
            message=f"{service_name} error: {message}",
            status_code=502,
            details={"service": service_name},
        )
