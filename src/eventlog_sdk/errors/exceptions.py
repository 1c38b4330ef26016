"""
Unified exception hierarchy for eventlog_sdk.

Provides typed exceptions with retry classification so the token manager,
the API requester and the event streams can decide whether to retry, refresh
credentials or give up.
"""

import asyncio
import email.utils
from datetime import UTC, datetime
from typing import Any

import aiohttp

# Import ErrorCategory from canonical source to avoid duplicate enum issues
# (comparing enums from different classes always returns False)
from eventlog_sdk.types import ErrorCategory


class SDKError(Exception):
    """
    Base exception for all SDK errors.

    Attributes:
        message: Human-readable error description
        category: Error classification for retry decisions
        cause: Original exception if wrapping
        context: Additional context dict for debugging
        status_code: HTTP status of the failed response, if any
        response_body: Decoded response body, if any
        response_headers: Response headers, if any
    """

    category: ErrorCategory = ErrorCategory.UNKNOWN

    def __init__(
        self,
        message: str,
        cause: Exception | None = None,
        context: dict | None = None,
        *,
        status_code: int | None = None,
        response_body: Any = None,
        response_headers: dict[str, str] | None = None,
    ):
        self.message = message
        self.cause = cause
        self.context = context or {}
        self.status_code = status_code
        self.response_body = response_body
        self.response_headers = response_headers or {}
        super().__init__(message)

    @property
    def is_retryable(self) -> bool:
        return self.category in (
            ErrorCategory.TRANSIENT,
            ErrorCategory.AUTH,
            ErrorCategory.UNKNOWN,
        )

    @property
    def should_refresh_auth(self) -> bool:
        return self.category == ErrorCategory.AUTH

    def __str__(self) -> str:
        parts = [self.message]
        if self.status_code is not None:
            parts.append(f"HTTP {self.status_code}")
        if self.cause:
            parts.append(f"Caused by: {self.cause}")
        return " | ".join(parts)


# =============================================================================
# Authentication Errors
# =============================================================================


class AuthError(SDKError):
    """API rejected the bearer token (401); refresh and retry."""

    category = ErrorCategory.AUTH


# =============================================================================
# Network/Connection Errors (Transient)
# =============================================================================


class TransientError(SDKError):
    """Base class for transient/retriable errors."""

    category = ErrorCategory.TRANSIENT


class ThrottlingError(TransientError):
    """Rate limited (429) - should back off."""

    def __init__(
        self,
        message: str,
        retry_after: float | None = None,
        cause: Exception | None = None,
        context: dict | None = None,
        **kwargs: Any,
    ):
        super().__init__(message, cause, context, **kwargs)
        self.retry_after = retry_after  # Seconds to wait if provided


# =============================================================================
# Permanent Errors (Don't Retry)
# =============================================================================


class PermanentError(SDKError):
    """Base class for permanent/non-retriable errors."""

    category = ErrorCategory.PERMANENT


class MalformedResponseError(PermanentError):
    """Response was missing fields the caller depends on."""

    pass


class InvalidConfigurationError(PermanentError):
    """Client or grant configuration is invalid."""

    pass


# =============================================================================
# Error Classification Utilities
# =============================================================================


def is_retryable_error(exc: Exception) -> bool:
    """
    Check if exception should be retried.

    Retryable errors include:
    - Transient errors (connection, timeout, 5xx, 429)
    - Auth errors (after token refresh)
    - Unknown errors (conservative retry)
    """
    if isinstance(exc, SDKError):
        return exc.is_retryable

    category = classify_exception(exc)
    return category in (
        ErrorCategory.TRANSIENT,
        ErrorCategory.AUTH,
        ErrorCategory.UNKNOWN,
    )


def classify_http_status(status_code: int) -> ErrorCategory:
    """Classify HTTP status code into error category."""
    if 200 <= status_code < 300:
        return ErrorCategory.UNKNOWN  # Not an error

    if status_code == 401:
        return ErrorCategory.AUTH

    if status_code == 429:
        return ErrorCategory.TRANSIENT  # Rate limited

    if 400 <= status_code < 500:
        return ErrorCategory.PERMANENT  # Client errors, won't fix with retry

    if status_code >= 500:
        return ErrorCategory.TRANSIENT  # Server errors, may recover

    return ErrorCategory.UNKNOWN


def classify_exception(exc: Exception) -> ErrorCategory:
    """Classify an exception into error category."""
    # Already classified
    if isinstance(exc, SDKError):
        return exc.category

    if isinstance(exc, aiohttp.ClientResponseError):
        return classify_http_status(exc.status)

    if isinstance(exc, (aiohttp.ClientError, asyncio.TimeoutError, ConnectionError)):
        return ErrorCategory.TRANSIENT

    exc_type = type(exc).__name__.lower()
    exc_str = str(exc).lower()

    connection_markers = (
        "connection refused",
        "connection reset",
        "connection aborted",
        "network unreachable",
        "name resolution",
        "broken pipe",
    )
    if any(m in exc_str for m in connection_markers):
        return ErrorCategory.TRANSIENT

    if "timeout" in exc_type or "timeout" in exc_str:
        return ErrorCategory.TRANSIENT

    if "429" in exc_str or "rate limit" in exc_str:
        return ErrorCategory.TRANSIENT

    if "401" in exc_str or "unauthorized" in exc_str:
        return ErrorCategory.AUTH

    if "403" in exc_str or "forbidden" in exc_str:
        return ErrorCategory.PERMANENT

    if "404" in exc_str or "not found" in exc_str:
        return ErrorCategory.PERMANENT

    return ErrorCategory.UNKNOWN


def wrap_exception(
    exc: Exception,
    default_class: type = SDKError,
    context: dict | None = None,
) -> SDKError:
    """Wrap a generic exception in appropriate SDKError subclass."""
    if isinstance(exc, SDKError):
        if context:
            exc.context.update(context)
        return exc

    category = classify_exception(exc)
    context = context or {}
    context.setdefault("error_type", type(exc).__name__)

    if category == ErrorCategory.AUTH:
        return AuthError(str(exc), cause=exc, context=context)

    if category == ErrorCategory.TRANSIENT:
        return TransientError(str(exc) or type(exc).__name__, cause=exc, context=context)

    if category == ErrorCategory.PERMANENT:
        return PermanentError(str(exc), cause=exc, context=context)

    return default_class(str(exc), cause=exc, context=context)


def parse_retry_after(value: str | None) -> float | None:
    """
    Parse a Retry-After header (delta-seconds or HTTP-date) into seconds.

    Returns None when the header is missing or unparseable.
    """
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        when = email.utils.parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=UTC)
    return max(0.0, (when - datetime.now(UTC)).total_seconds())


def build_response_error(
    status: int,
    body: Any = None,
    headers: dict[str, str] | None = None,
    message: str | None = None,
) -> SDKError:
    """
    Build the typed error for an unexpected HTTP response.

    Args:
        status: HTTP status code
        body: Decoded response body (dict for JSON, str otherwise)
        headers: Response headers
        message: Optional message prefix, defaults to "Unexpected API response"

    Returns:
        AuthError (401), ThrottlingError (429), TransientError (5xx) or
        PermanentError (everything else)
    """
    headers = dict(headers or {})
    prefix = message or "Unexpected API response"
    detail = ""
    if isinstance(body, dict):
        detail = str(body.get("message") or body.get("error_description") or body.get("error") or "")
    text = f"{prefix}: {detail}" if detail else prefix
    kwargs = {
        "status_code": status,
        "response_body": body,
        "response_headers": headers,
    }

    if status == 429:
        retry_after = parse_retry_after(
            headers.get("Retry-After") or headers.get("retry-after")
        )
        return ThrottlingError(text, retry_after=retry_after, **kwargs)

    category = classify_http_status(status)
    if category == ErrorCategory.AUTH:
        return AuthError(text, **kwargs)
    if category == ErrorCategory.TRANSIENT:
        return TransientError(text, **kwargs)
    return PermanentError(text, **kwargs)


__all__ = [
    "SDKError",
    "AuthError",
    "TransientError",
    "ThrottlingError",
    "PermanentError",
    "MalformedResponseError",
    "InvalidConfigurationError",
    "is_retryable_error",
    "classify_http_status",
    "classify_exception",
    "wrap_exception",
    "parse_retry_after",
    "build_response_error",
]
