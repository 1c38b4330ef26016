"""OAuth2-specific exceptions."""

from datetime import datetime
from typing import Any

from eventlog_sdk.errors.exceptions import SDKError
from eventlog_sdk.types import ErrorCategory


class OAuth2Error(SDKError):
    """Base exception for OAuth2 operations."""

    pass


class ExpiredAuthError(OAuth2Error):
    """
    Credentials can no longer mint tokens (invalid_grant, invalid_token,
    revoked client). Terminal: re-authentication is required.

    Attributes:
        error_code: OAuth2 "error" field from the response, if any
        description: OAuth2 "error_description" field, if any
    """

    category = ErrorCategory.AUTH

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        description: str | None = None,
        cause: Exception | None = None,
        context: dict | None = None,
        **kwargs: Any,
    ):
        super().__init__(message, cause, context, **kwargs)
        self.error_code = error_code
        self.description = description

    @property
    def is_retryable(self) -> bool:
        return False

    @property
    def should_refresh_auth(self) -> bool:
        return False


class TokenAcquisitionError(ExpiredAuthError):
    """No grant is available to mint a token (e.g. revoked fixed token)."""

    pass


class RetryableJWTAuthError(OAuth2Error):
    """
    JWT assertion rejected for a clock-skew reason (exp/jti) while the server
    reported its own time. Retried once with a corrected assertion.
    """

    category = ErrorCategory.TRANSIENT

    def __init__(
        self,
        message: str,
        server_date: datetime | None = None,
        cause: Exception | None = None,
        context: dict | None = None,
        **kwargs: Any,
    ):
        super().__init__(message, cause, context, **kwargs)
        self.server_date = server_date


class MalformedTokenResponseError(OAuth2Error):
    """Token endpoint returned 200 with a body missing required fields."""

    category = ErrorCategory.PERMANENT


class TokenStoreError(OAuth2Error):
    """Token store failed to read, write or clear (distinct from "absent")."""

    category = ErrorCategory.PERMANENT


__all__ = [
    "OAuth2Error",
    "ExpiredAuthError",
    "TokenAcquisitionError",
    "RetryableJWTAuthError",
    "MalformedTokenResponseError",
    "TokenStoreError",
]
