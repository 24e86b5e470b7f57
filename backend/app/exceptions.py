"""
PeakSelf Backend — Custom Exception Hierarchy
===============================================

What:  Application-specific exceptions for the error kinds the API reports.
Why:   Services and guards raise a typed error; the global handlers in
       main.py turn it into the right status code and JSON body, so no route
       builds error responses by hand.
How:   Each exception carries a message, an optional details payload and a
       fixed status_code / error type used by the handler.
Who:   Raised by services, dependencies and routes; caught by global handlers.

Exception Hierarchy:
    PeakSelfError (base)                → 500
    ├── ValidationError                 → 400 Bad Request
    ├── AuthenticationError             → 401 Unauthorized
    │   └── GoogleOAuthError            → redirect to /login?error=oauth_failed
    ├── AuthorizationError              → 403 Forbidden
    │   └── CsrfError                   → 403 Forbidden
    ├── NotFoundError                   → 404 Not Found
    ├── ConflictError                   → 409 Conflict
    ├── RateLimitExceededError          → 429 Too Many Requests
    │   └── OAuthRateLimitExceededError → 302 redirect to the client
    ├── ServiceUnavailableError         → 503 Service Unavailable
    └── DatabaseError                   → 500 Internal Server Error
"""

from datetime import datetime
from typing import Any, Dict, Optional


class PeakSelfError(Exception):
    """
    Base exception for all PeakSelf application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        details:  Extra structured information. Returned to the client only
                  outside production.
    """

    status_code: int = 500
    error_type: str = "PeakSelfError"

    def __init__(
        self,
        message: str = "Internal server error",
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(PeakSelfError):
    """Client input failed validation (missing field, bad token, duplicate sign-up)."""

    status_code = 400
    error_type = "ValidationError"

    def __init__(
        self,
        message: str = "Validation failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, details=details)


class AuthenticationError(PeakSelfError):
    """No valid identity on the request."""

    status_code = 401
    error_type = "AuthenticationError"

    def __init__(
        self,
        message: str = "Authentication failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, details=details)


class AuthorizationError(PeakSelfError):
    """Identity is known but not allowed to perform the action."""

    status_code = 403
    error_type = "AuthorizationError"

    def __init__(
        self,
        message: str = "Access denied",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, details=details)


class CsrfError(AuthorizationError):
    """
    Double-submit token missing or mismatched.

    The error code matches what the frontend's fetch wrapper checks before
    refreshing its cached token and retrying once.
    """

    error_type = "CsrfError"
    code = "EBADCSRFTOKEN"

    def __init__(self, message: str = "Invalid CSRF token"):
        super().__init__(message=message)


class GoogleOAuthError(AuthenticationError):
    """Code exchange or profile fetch with Google failed; the callback redirects to the login page."""

    error_type = "GoogleOAuthError"

    def __init__(self, message: str = "Google authentication failed", details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, details=details)


class NotFoundError(PeakSelfError):
    """Requested resource does not exist."""

    status_code = 404
    error_type = "NotFoundError"

    def __init__(
        self,
        message: str = "Resource not found",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, details=details)


class ConflictError(PeakSelfError):
    """Write would violate a uniqueness rule."""

    status_code = 409
    error_type = "ConflictError"

    def __init__(
        self,
        message: str = "Resource conflict",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, details=details)


class ServiceUnavailableError(PeakSelfError):
    """An optional integration (Google OAuth, SMTP) is not configured."""

    status_code = 503
    error_type = "ServiceUnavailableError"

    def __init__(
        self,
        message: str = "Service unavailable",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, details=details)


class DatabaseError(PeakSelfError):
    """
    A database operation failed unexpectedly.

    What:    Wraps the driver/ORM exception so the handler can log it while
             the client only sees a generic message.
    HTTP:    500 Internal Server Error
    """

    status_code = 500
    error_type = "DatabaseError"

    def __init__(
        self,
        message: str = "Database operation failed",
        original_error: Optional[BaseException] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        ctx = details or {}
        if original_error is not None:
            ctx["original_error"] = str(original_error)
        super().__init__(message=message, details=ctx)
        self.original_error = original_error


class RateLimitExceededError(PeakSelfError):
    """
    Raised when a client exceeds a rate limiter's window budget.

    Attributes:
        limiter:    Name of the limiter that tripped (e.g. "auth_password")
        reset_at:   UTC datetime when the current window ends
        retry_after: Whole seconds until reset_at (for the Retry-After header)
    """

    status_code = 429
    error_type = "RateLimitExceededError"

    def __init__(
        self,
        limiter: str,
        reset_at: datetime,
        retry_after: int,
        limit: int,
    ):
        super().__init__(
            message="You have exceeded the rate limit. Please try again later.",
            details={"limiter": limiter, "retry_after": retry_after},
        )
        self.limiter = limiter
        self.reset_at = reset_at
        self.retry_after = retry_after
        self.limit = limit


class OAuthRateLimitExceededError(RateLimitExceededError):
    """OAuth flows are browser redirects, so the handler redirects instead of returning JSON."""

    error_type = "OAuthRateLimitExceededError"
