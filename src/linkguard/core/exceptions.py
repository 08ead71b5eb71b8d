"""
Custom exceptions for LinkGuard service.

Provides structured error handling with appropriate HTTP status codes
and error details for API responses.
"""

from typing import Any, Dict, Optional


class LinkGuardException(Exception):
    """Base exception for LinkGuard service."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        error_code: str = "internal_error",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}


class ValidationError(LinkGuardException):
    """Raised for malformed input: bad phone number, oversized message, missing fields."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(
            message=message,
            status_code=400,
            error_code="validation_error",
            details=details,
        )


class AuthenticationError(LinkGuardException):
    """Raised when admin authentication fails or a session is missing."""

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(
            message=message,
            status_code=401,
            error_code="authentication_error",
        )


class RateLimitError(LinkGuardException):
    """Raised when an IP exceeds its request quota."""

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        retry_after: Optional[int] = None,
    ) -> None:
        details = {}
        if retry_after:
            details["retry_after"] = retry_after

        super().__init__(
            message=message,
            status_code=429,
            error_code="rate_limit_exceeded",
            details=details,
        )


class BlockedError(LinkGuardException):
    """Raised when a request comes from a blocked IP."""

    def __init__(
        self,
        message: str = "Your IP has been temporarily blocked due to excessive requests.",
    ) -> None:
        super().__init__(
            message=message,
            status_code=403,
            error_code="ip_blocked",
        )


class CsrfError(LinkGuardException):
    """
    Raised when CSRF verification fails.

    The message is identical for every cause so callers learn nothing
    about which check failed.
    """

    def __init__(self) -> None:
        super().__init__(
            message="Invalid or missing CSRF token",
            status_code=403,
            error_code="csrf_rejected",
        )


class NotFoundError(LinkGuardException):
    """Raised for unknown routes."""

    def __init__(self, message: str = "Not found") -> None:
        super().__init__(
            message=message,
            status_code=404,
            error_code="not_found",
        )


class DecryptionError(LinkGuardException):
    """
    Raised when a sealed record cannot be opened.

    Covers tampered or corrupted ciphertext and anonymized rows. Readers
    turn this into a placeholder instead of failing the request.
    """

    def __init__(self, message: str = "Sealed record could not be opened") -> None:
        super().__init__(
            message=message,
            status_code=500,
            error_code="decryption_error",
        )


class ConfigurationError(LinkGuardException):
    """Raised at startup when required configuration is missing or invalid."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(
            message=message,
            status_code=500,
            error_code="configuration_error",
            details=details,
        )


class PersistenceError(LinkGuardException):
    """
    Raised when the record store is unavailable or a write fails.

    Carries no driver text; statements and bound values stay out of responses.
    """

    def __init__(self, message: str = "Storage operation failed", details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(
            message=message,
            status_code=500,
            error_code="persistence_error",
            details=details,
        )
