"""
Expense Tracker Backend — Custom Exception Hierarchy
=====================================================

What:  Defines the closed set of application failure kinds.
How:   Each exception class carries a client-safe message, an HTTP status and
       optional details. The error translator (error_handlers.py) matches on
       these classes and turns any of them into the uniform error envelope.
Who:   Raised by services, dependencies and middleware; caught by global handlers.

Exception Hierarchy:
    ExpenseTrackerError (base)                         → 500
    ├── AuthenticationError                            → 401 / 403
    │   ├── MissingCredentialError                     → 401 "Access token is required"
    │   ├── InvalidCredentialError                     → 403 "Invalid or expired token"
    │   ├── IdentityNotFoundError                      → 403 "User no longer exists"
    │   ├── AuthenticationBackendError                 → 500 "Authentication error"
    │   └── IdentityRequiredError                      → 401 "Authentication required"
    ├── AuthorizationError                             → 403
    ├── QuotaExceededError                             → 429 (+ retry_after)
    ├── ValidationError                                → 400
    ├── ConstraintViolationError                       → 409 / 400
    ├── UploadLimitError                               → 413 / 400
    ├── UpstreamServiceError                           → 503
    │   └── CircuitBreakerOpenError                    → 503 (+ retry_after)
    └── AppError (operational, caller-chosen status)
        └── NotFoundError                              → 404
"""

from typing import Any, Dict, Optional


class ExpenseTrackerError(Exception):
    """
    Base exception for all application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        status:   HTTP status code the translator will use
        details:  Extra context; returned outside production only
    """

    status: int = 500
    default_message: str = "Internal server error"

    def __init__(
        self,
        message: Optional[str] = None,
        status: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message or self.default_message
        if status is not None:
            self.status = status
        self.details = details or {}
        super().__init__(self.message)


# ══════════════════════════════════════════════════════════════════════════
# Authentication
# ══════════════════════════════════════════════════════════════════════════


class AuthenticationError(ExpenseTrackerError):
    """Missing, invalid or expired credential, or a vanished identity."""

    status = 401
    default_message = "Authentication failed"


class MissingCredentialError(AuthenticationError):
    status = 401
    default_message = "Access token is required"


class InvalidCredentialError(AuthenticationError):
    """Signature mismatch, malformed token, or expiry in the past."""

    status = 403
    default_message = "Invalid or expired token"


class IdentityNotFoundError(AuthenticationError):
    """
    The credential verified but its subject no longer exists.

    Reachable through normal client behaviour (stale token after account
    deletion), so it is an authentication failure rather than a 500.
    """

    status = 403
    default_message = "User no longer exists"


class AuthenticationBackendError(AuthenticationError):
    """The store failed while resolving an identity."""

    status = 500
    default_message = "Authentication error"


class IdentityRequiredError(AuthenticationError):
    status = 401
    default_message = "Authentication required"


class AuthorizationError(ExpenseTrackerError):
    """Identity present but lacking permission for the resource."""

    status = 403
    default_message = "Forbidden"


# ══════════════════════════════════════════════════════════════════════════
# Quotas
# ══════════════════════════════════════════════════════════════════════════


class QuotaExceededError(ExpenseTrackerError):
    """
    Raised when a key exhausts a quota policy.

    retry_after is whole seconds, never below 1.
    """

    status = 429
    default_message = "Too many requests"

    def __init__(
        self,
        retry_after: int = 1,
        message: Optional[str] = None,
        policy: Optional[str] = None,
    ):
        details = {"policy": policy} if policy else None
        super().__init__(message=message, details=details)
        self.retry_after = max(1, int(retry_after))
        self.policy = policy


# ══════════════════════════════════════════════════════════════════════════
# Client input and storage constraints
# ══════════════════════════════════════════════════════════════════════════


class ValidationError(ExpenseTrackerError):
    """Client input failed validation; the client can fix and resend."""

    status = 400
    default_message = "Validation failed"

    def __init__(
        self,
        message: Optional[str] = None,
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        ctx = details or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, details=ctx)
        self.field = field


class ConstraintViolationError(ExpenseTrackerError):
    """Uniqueness or referential integrity failure reported by the store."""

    UNIQUE = "unique"
    FOREIGN_KEY = "foreign_key"

    status = 409
    default_message = "Resource already exists"

    def __init__(self, kind: str = UNIQUE, details: Optional[Dict[str, Any]] = None):
        if kind == self.FOREIGN_KEY:
            super().__init__(
                message="Referenced resource does not exist", status=400, details=details
            )
        else:
            super().__init__(details=details)
        self.kind = kind


class UploadLimitError(ExpenseTrackerError):
    """Upload exceeded a size or count limit."""

    FILE_SIZE = "file_size"
    FILE_COUNT = "file_count"

    status = 413
    default_message = "File too large"

    def __init__(self, kind: str = FILE_SIZE, details: Optional[Dict[str, Any]] = None):
        if kind == self.FILE_COUNT:
            super().__init__(message="Too many files", status=400, details=details)
        else:
            super().__init__(details=details)
        self.kind = kind


class FileStorageError(ExpenseTrackerError):
    """Reading or writing an uploaded file on disk failed."""

    status = 500
    default_message = "File storage operation failed"


# ══════════════════════════════════════════════════════════════════════════
# Upstream AI service
# ══════════════════════════════════════════════════════════════════════════


class UpstreamServiceError(ExpenseTrackerError):
    """The AI/OCR collaborator is disabled, failing, or returned garbage."""

    status = 503
    default_message = "AI service unavailable"

    def __init__(
        self,
        message: Optional[str] = None,
        retry_after: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, details=details)
        self.retry_after = retry_after


class CircuitBreakerOpenError(UpstreamServiceError):
    """Too many consecutive Gemini failures; calls are rejected until recovery."""

    def __init__(self, recovery_time: int = 60):
        super().__init__(
            message=(
                "AI service is temporarily unavailable due to repeated failures. "
                f"Try again in approximately {recovery_time} seconds."
            ),
            retry_after=recovery_time,
            details={"recovery_time": recovery_time},
        )
        self.recovery_time = recovery_time


# ══════════════════════════════════════════════════════════════════════════
# Operational errors raised explicitly by route logic
# ══════════════════════════════════════════════════════════════════════════


class AppError(ExpenseTrackerError):
    """An explicitly raised error whose message and status are returned as-is."""

    status = 400
    default_message = "Request could not be processed"


class NotFoundError(AppError):
    status = 404

    def __init__(self, resource: str = "Resource"):
        super().__init__(message=f"{resource} not found")
        self.resource = resource
