"""Error Hierarchy — typed, categorized exceptions for all portal failure modes.

Invariants:
    - Every error has a code (str), category (ErrorCategory), severity (ErrorSeverity)
    - Domain errors (400-level) are recoverable; infrastructure errors (500-level) are critical
    - to_response() produces the REST envelope used by every error handler
    - No internal details leaked in user-facing messages

Design Decisions:
    - Single hierarchy with PortalError base: FastAPI global handler catches all (ADR: uniform error shape)
    - ErrorContext as dataclass: rich observability without coupling to logging framework
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from datetime import datetime, timezone


class ErrorSeverity(str, Enum):
    """Error severity for observability and client handling."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """High-level error categories for routing and handling."""
    VALIDATION = "validation"
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    BUSINESS_RULE = "business_rule"
    RESOURCE_NOT_FOUND = "resource_not_found"
    DATABASE = "database"
    EXTERNAL_API = "external_api"
    INTERNAL = "internal"
    CONFLICT = "conflict"


@dataclass
class ErrorContext:
    """Rich context for error observability and debugging."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    owner_id: str | None = None
    resource: str | None = None
    debug_info: dict[str, Any] | None = None


class PortalError(Exception):
    """Base exception for all portal errors."""

    def __init__(
        self,
        message: str,
        code: str,
        category: ErrorCategory,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: ErrorContext | None = None,
        http_status: int = 500,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()
        self.http_status = http_status

    def to_response(self) -> dict:
        """Convert to standardized REST error response."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "category": self.category.value,
                "severity": self.severity.value,
                "timestamp": self.context.timestamp.isoformat(),
                "context": {
                    "owner_id": self.context.owner_id,
                    "resource": self.context.resource,
                },
            }
        }


# ─── Domain Errors (400-level) ──────────────────────────────────

class InvalidRequestError(PortalError):
    """Request passed schema validation but violates a domain rule."""
    def __init__(self, message: str, field: str | None = None, context: ErrorContext | None = None):
        super().__init__(
            message, "INVALID_REQUEST", ErrorCategory.VALIDATION,
            ErrorSeverity.WARNING, context, 400,
        )
        self.field = field


class LimitExceededError(PortalError):
    """A size or count limit was exceeded (uploads, zip downloads)."""
    def __init__(self, message: str, limit: int, context: ErrorContext | None = None):
        super().__init__(
            message, "LIMIT_EXCEEDED", ErrorCategory.BUSINESS_RULE,
            ErrorSeverity.WARNING, context, 400,
        )
        self.limit = limit


class AuthenticationRequiredError(PortalError):
    """Caller identity missing or unknown."""
    def __init__(self, message: str = "Unauthorized", context: ErrorContext | None = None):
        super().__init__(
            message, "UNAUTHORIZED", ErrorCategory.AUTHENTICATION,
            ErrorSeverity.WARNING, context, 401,
        )


class PermissionDeniedError(PortalError):
    """Caller is authenticated but its role does not allow the operation."""
    def __init__(self, message: str = "Forbidden", context: ErrorContext | None = None):
        super().__init__(
            message, "FORBIDDEN", ErrorCategory.AUTHORIZATION,
            ErrorSeverity.WARNING, context, 403,
        )


class ResourceNotFoundError(PortalError):
    """Requested resource does not exist."""
    def __init__(
        self, resource_type: str, resource_id: str, context: ErrorContext | None = None,
    ):
        super().__init__(
            f"{resource_type} '{resource_id}' not found",
            "RESOURCE_NOT_FOUND", ErrorCategory.RESOURCE_NOT_FOUND,
            ErrorSeverity.ERROR, context, 404,
        )
        self.resource_type = resource_type


class ConflictError(PortalError):
    """Request conflicts with current state (no free closer, duplicate name)."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "CONFLICT", ErrorCategory.CONFLICT,
            ErrorSeverity.ERROR, context, 409,
        )


# ─── Infrastructure Errors (500-level) ──────────────────────────

class DatabaseError(PortalError):
    """Database operation failed."""
    def __init__(self, message: str, operation: str, context: ErrorContext | None = None):
        super().__init__(
            f"Database {operation} failed: {message}",
            "DATABASE_ERROR", ErrorCategory.DATABASE,
            ErrorSeverity.CRITICAL, context, 503,
        )
        self.operation = operation


class TwilioAPIError(PortalError):
    """Twilio REST call failed."""
    def __init__(
        self,
        message: str,
        api_error_type: str,
        status_code: int | None = None,
        context: ErrorContext | None = None,
    ):
        super().__init__(
            f"Twilio API error ({api_error_type}): {message}",
            "TWILIO_API_ERROR", ErrorCategory.EXTERNAL_API,
            ErrorSeverity.ERROR, context, 502,
        )
        self.api_error_type = api_error_type
        self.status_code = status_code
