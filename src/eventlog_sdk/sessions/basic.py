"""Basic session: one fixed access token, never refreshed."""

from datetime import UTC, datetime, timedelta

from eventlog_sdk.config.config import ClientConfig
from eventlog_sdk.oauth2.endpoint import TokenEndpoint
from eventlog_sdk.oauth2.models import Token
from eventlog_sdk.sessions.base import BaseSession

# A developer token has no expiry the client knows about
FIXED_TOKEN_LIFETIME = timedelta(days=365 * 100)


class BasicSession(BaseSession):
    """
    Session around a single access token (e.g. a developer token).

    There is no grant behind it: once the token is revoked or invalidated,
    get_token() raises TokenAcquisitionError.
    """

    def __init__(
        self,
        access_token: str,
        config: ClientConfig | None = None,
        endpoint: TokenEndpoint | None = None,
        **kwargs,
    ):
        if not access_token:
            raise ValueError("access_token must be a non-empty string")
        token = Token(
            access_token=access_token,
            expires_at=datetime.now(UTC) + FIXED_TOKEN_LIFETIME,
        )
        super().__init__(config or ClientConfig(), endpoint=endpoint, token=token, **kwargs)


__all__ = ["BasicSession"]
