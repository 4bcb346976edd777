"""
Error taxonomy for calls to the completion service, plus the errors the
session raises for caller misuse.
"""

from enum import Enum

import httpx


class ErrorCategory(str, Enum):
    """Failure categories of an upstream completion call."""

    NETWORK_ERROR = "NETWORK_ERROR"
    TIMEOUT_ERROR = "TIMEOUT_ERROR"
    AUTH_ERROR = "AUTH_ERROR"
    RATE_LIMIT_ERROR = "RATE_LIMIT_ERROR"
    SERVER_ERROR = "SERVER_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


RETRYABLE_CATEGORIES = frozenset({
    ErrorCategory.NETWORK_ERROR,
    ErrorCategory.TIMEOUT_ERROR,
    ErrorCategory.RATE_LIMIT_ERROR,
    ErrorCategory.SERVER_ERROR,
})


class CompletionError(Exception):
    """Base exception for completion service failures."""

    category: ErrorCategory = ErrorCategory.UNKNOWN_ERROR

    def __init__(
        self,
        message: str,
        status: int | None = None,
        original: BaseException | None = None,
    ):
        super().__init__(message)
        self.status = status
        self.original = original

    @property
    def retryable(self) -> bool:
        return self.category in RETRYABLE_CATEGORIES


class NetworkError(CompletionError):
    """Network connectivity issues."""
    category = ErrorCategory.NETWORK_ERROR


class RequestTimeoutError(CompletionError):
    """The request took too long to complete."""
    category = ErrorCategory.TIMEOUT_ERROR


class AuthError(CompletionError):
    """Missing or rejected API credentials."""
    category = ErrorCategory.AUTH_ERROR


class RateLimitError(CompletionError):
    """API rate limit exceeded."""
    category = ErrorCategory.RATE_LIMIT_ERROR


class ServerError(CompletionError):
    """The service failed or returned nothing."""
    category = ErrorCategory.SERVER_ERROR


class ResponseValidationError(CompletionError):
    """The service returned an unexpected response shape."""
    category = ErrorCategory.VALIDATION_ERROR


def error_for_status(status: int, message: str) -> CompletionError:
    """Map an HTTP error status onto the taxonomy."""
    if status in (401, 403):
        return AuthError(message, status=status)
    if status == 408:
        return RequestTimeoutError(message, status=status)
    if status == 429:
        return RateLimitError(message, status=status)
    if status >= 500:
        return ServerError(message, status=status)
    return ResponseValidationError(message, status=status)


def categorize_error(exc: BaseException) -> CompletionError:
    """Convert any exception into a categorized CompletionError."""
    if isinstance(exc, CompletionError):
        return exc
    if isinstance(exc, httpx.TimeoutException):
        return RequestTimeoutError(f"Request timeout: {exc}", original=exc)
    if isinstance(exc, httpx.HTTPStatusError):
        return error_for_status(
            exc.response.status_code,
            f"HTTP {exc.response.status_code}: {exc.response.reason_phrase}",
        )
    if isinstance(exc, httpx.TransportError):
        return NetworkError(f"Network connection failed: {exc}", original=exc)

    text = str(exc).lower()
    if "timeout" in text or "timed out" in text:
        return RequestTimeoutError(str(exc), original=exc)
    if "rate limit" in text:
        return RateLimitError(str(exc), original=exc)
    if "api key" in text or "unauthorized" in text or "authentication" in text:
        return AuthError(str(exc), original=exc)
    if "network" in text or "connection" in text:
        return NetworkError(str(exc), original=exc)
    if "invalid" in text or "validation" in text:
        return ResponseValidationError(str(exc), original=exc)
    return CompletionError(str(exc) or exc.__class__.__name__, original=exc)


class StateTransitionError(Exception):
    """Raised when an invalid session state transition is attempted."""
    pass


class NavigationError(Exception):
    """Raised when a navigation or answer operation is not available."""
    pass
