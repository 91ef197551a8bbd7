"""Application error hierarchy.

Every error carries a stable machine-readable ``code`` and the HTTP status the
API layer should answer with. Services raise these; the exception handlers in
``main`` turn them into ``{"error": ..., "code": ...}`` bodies.
"""

from typing import Any, Dict, Optional


class AppError(Exception):
    """Base class for operational (expected) errors."""

    code = "INTERNAL_ERROR"
    status_code = 500
    default_message = "An unexpected error occurred"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, "code": self.code}


class ValidationError(AppError):
    code = "VALIDATION_ERROR"
    status_code = 400
    default_message = "Validation failed"


class InvalidCredentialsError(AppError):
    code = "INVALID_CREDENTIALS"
    status_code = 401
    default_message = "Invalid email or password"


class UnauthorizedError(AppError):
    code = "UNAUTHORIZED"
    status_code = 401
    default_message = "Authentication required"


class ForbiddenError(AppError):
    code = "FORBIDDEN"
    status_code = 403
    default_message = "Access forbidden"


class NotFoundError(AppError):
    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, resource: str = "Resource"):
        self.resource = resource
        super().__init__(f"{resource} not found")


class ConflictError(AppError):
    code = "CONFLICT"
    status_code = 409
    default_message = "Resource already exists"


class AccountLockedError(AppError):
    code = "ACCOUNT_LOCKED"
    status_code = 423
    default_message = "Account temporarily locked due to multiple failed login attempts"


class RateLimitError(AppError):
    code = "RATE_LIMIT_EXCEEDED"
    status_code = 429
    default_message = "Too many requests, please try again later"


class InternalError(AppError):
    """Catch-all for unexpected failures."""
