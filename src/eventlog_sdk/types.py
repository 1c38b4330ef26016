"""
Core types and protocols used across modules.

This module provides base types, enums, and protocol definitions that are
shared across the SDK to ensure consistency and type safety.
"""

from enum import Enum
from typing import Protocol


class ErrorCategory(Enum):
    """
    Classification of error types for handling decisions.

    Categories:
        TRANSIENT: Temporary failures that should retry with backoff
                   (e.g., network timeouts, 429/5xx responses)
        AUTH: Authentication failures requiring credential refresh
              (e.g., 401 from an API call)
        PERMANENT: Non-retriable failures that won't succeed on retry
                   (e.g., 404, malformed token responses, bad configuration)
        UNKNOWN: Unclassified errors, may retry conservatively
    """

    TRANSIENT = "transient"
    AUTH = "auth"
    PERMANENT = "permanent"
    UNKNOWN = "unknown"


class TokenProvider(Protocol):
    """
    Protocol for bearer token providers.

    Sessions implement this; the API requester only depends on it.
    """

    async def get_access_token(self) -> str:
        """
        Get a currently valid access token.

        Raises:
            ExpiredAuthError: If the credentials can no longer mint tokens
        """
        ...

    async def auth_headers(self) -> dict[str, str]:
        """Authorization (and impersonation) headers for one request."""
        ...

    def invalidate(self) -> None:
        """Drop the cached access token so the next call refreshes it."""
        ...


__all__ = [
    "ErrorCategory",
    "TokenProvider",
]
