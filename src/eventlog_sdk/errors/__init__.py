"""
Error classification and exception hierarchy.

Provides:
- SDKError hierarchy for typed exceptions
- Classification utilities for retry decisions
- Response-to-exception mapping for HTTP collaborators
"""

from eventlog_sdk.errors.exceptions import (
    AuthError,
    InvalidConfigurationError,
    # Base classes
    SDKError,
    MalformedResponseError,
    PermanentError,
    # Transient errors
    ThrottlingError,
    TransientError,
    build_response_error,
    classify_exception,
    classify_http_status,
    # Classification utilities
    is_retryable_error,
    parse_retry_after,
    wrap_exception,
)
from eventlog_sdk.types import ErrorCategory

__all__ = [
    # Enums
    "ErrorCategory",
    # Base classes
    "SDKError",
    "AuthError",
    "TransientError",
    "PermanentError",
    "MalformedResponseError",
    "InvalidConfigurationError",
    # Transient errors
    "ThrottlingError",
    # Classification utilities
    "is_retryable_error",
    "classify_http_status",
    "classify_exception",
    "wrap_exception",
    "parse_retry_after",
    "build_response_error",
]
