# orbit_api/core/exceptions.py
from __future__ import annotations

from typing import Any, Dict, Optional

import httpx
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError

# Codes surfaced to clients, grouped by category.
ERROR_CATEGORIES: Dict[str, str] = {
    "VALIDATION_ERROR": "validation",
    "BAD_REQUEST": "validation",
    "CONSTRAINT_VIOLATION": "validation",
    "UNAUTHORIZED": "auth",
    "FORBIDDEN": "auth",
    "NOT_FOUND": "not_found",
    "DUPLICATE_ENTRY": "conflict",
    "RESOURCE_IN_USE": "conflict",
    "INVALID_STATE": "conflict",
    "RATE_LIMITED": "rate_limit",
    "NETWORK_ERROR": "network",
    "SERVICE_UNAVAILABLE": "network",
    "DATABASE_ERROR": "server",
    "SERVER_ERROR": "server",
}

# PostgreSQL SQLSTATE values we translate.
PG_UNIQUE_VIOLATION = "23505"
PG_FOREIGN_KEY_VIOLATION = "23503"
PG_NOT_NULL_VIOLATION = "23502"
PG_CHECK_VIOLATION = "23514"


class BaseAPIException(Exception):
    """Base exception for all API errors."""

    default_code = "SERVER_ERROR"

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.code = code or self.default_code
        self.details = details or {}
        super().__init__(self.message)

    @property
    def category(self) -> str:
        return ERROR_CATEGORIES.get(self.code, "server")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": False,
            "code": self.code,
            "category": self.category,
            "message": self.message,
            "details": self.details,
        }


class APIError(BaseAPIException):
    """Generic API error."""
    def __init__(self, message: str = "An error occurred", **kwargs):
        super().__init__(message, status_code=500, **kwargs)


class AuthenticationError(BaseAPIException):
    """Authentication failed."""
    default_code = "UNAUTHORIZED"

    def __init__(self, message: str = "Authentication failed", **kwargs):
        super().__init__(message, status_code=401, **kwargs)


class AuthorizationError(BaseAPIException):
    """Authorization failed."""
    default_code = "FORBIDDEN"

    def __init__(self, message: str = "Authorization failed", **kwargs):
        super().__init__(message, status_code=403, **kwargs)


class NotFoundError(BaseAPIException):
    """Resource not found."""
    default_code = "NOT_FOUND"

    def __init__(self, message: str = "Resource not found", **kwargs):
        super().__init__(message, status_code=404, **kwargs)


class ValidationError(BaseAPIException):
    """Validation error."""
    default_code = "VALIDATION_ERROR"

    def __init__(self, message: str = "Validation error", **kwargs):
        super().__init__(message, status_code=422, **kwargs)


class BadRequestError(BaseAPIException):
    """Malformed or semantically empty request."""
    default_code = "BAD_REQUEST"

    def __init__(self, message: str = "Bad request", **kwargs):
        super().__init__(message, status_code=400, **kwargs)


class ConflictError(BaseAPIException):
    """Resource conflict."""
    default_code = "DUPLICATE_ENTRY"

    def __init__(self, message: str = "Resource conflict", **kwargs):
        super().__init__(message, status_code=409, **kwargs)


class BusinessRuleError(BaseAPIException):
    """Business rule violation."""
    default_code = "CONSTRAINT_VIOLATION"

    def __init__(self, message: str = "Business rule violation", **kwargs):
        super().__init__(message, status_code=400, **kwargs)


class RateLimitError(BaseAPIException):
    """Rate limit exceeded."""
    default_code = "RATE_LIMITED"

    def __init__(self, message: str = "Rate limit exceeded", retry_after: Optional[int] = None, **kwargs):
        super().__init__(message, status_code=429, **kwargs)
        self.retry_after = retry_after


class DatabaseError(BaseAPIException):
    """Database error."""
    default_code = "DATABASE_ERROR"

    def __init__(self, message: str = "Database error", **kwargs):
        super().__init__(message, status_code=500, **kwargs)


class ExternalServiceError(BaseAPIException):
    """External service error."""
    default_code = "NETWORK_ERROR"

    def __init__(self, message: str = "External service error", **kwargs):
        super().__init__(message, status_code=502, **kwargs)


class ServiceUnavailableError(BaseAPIException):
    """Service unavailable."""
    default_code = "SERVICE_UNAVAILABLE"

    def __init__(self, message: str = "Service unavailable", **kwargs):
        super().__init__(message, status_code=503, **kwargs)


def _integrity_code(exc: IntegrityError) -> Optional[str]:
    orig = getattr(exc, "orig", None)
    for attr in ("sqlstate", "pgcode"):
        value = getattr(orig, attr, None)
        if value:
            return value
    text = str(orig or exc).lower()
    if "unique" in text or "duplicate key" in text:
        return PG_UNIQUE_VIOLATION
    if "foreign key" in text:
        return PG_FOREIGN_KEY_VIOLATION
    if "not null" in text:
        return PG_NOT_NULL_VIOLATION
    if "check constraint" in text:
        return PG_CHECK_VIOLATION
    return None


def normalize_error(exc: BaseException) -> BaseAPIException:
    """Map any exception onto the API error taxonomy."""
    if isinstance(exc, BaseAPIException):
        return exc

    if isinstance(exc, IntegrityError):
        code = _integrity_code(exc)
        if code == PG_UNIQUE_VIOLATION:
            return ConflictError(message="A record with this value already exists")
        if code == PG_FOREIGN_KEY_VIOLATION:
            return BusinessRuleError(message="Referenced record does not exist or is still in use")
        if code in (PG_NOT_NULL_VIOLATION, PG_CHECK_VIOLATION):
            return BusinessRuleError(message="Record violates a database constraint")
        return DatabaseError(message="Database integrity error")

    if isinstance(exc, OperationalError):
        return ServiceUnavailableError(message="Database unavailable")

    if isinstance(exc, SQLAlchemyError):
        return DatabaseError()

    if isinstance(exc, httpx.TimeoutException):
        return ExternalServiceError(message="Upstream request timed out")

    if isinstance(exc, httpx.TransportError):
        return ExternalServiceError(message="Network error contacting upstream service")

    if isinstance(exc, httpx.HTTPStatusError):
        return ExternalServiceError(
            message="Upstream service returned an error",
            details={"status_code": exc.response.status_code},
        )

    if isinstance(exc, (ValueError, TypeError)):
        return BadRequestError(message=str(exc) or "Invalid value")

    return APIError(message="An unexpected error occurred")
