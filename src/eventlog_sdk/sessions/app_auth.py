"""App auth session: JWT bearer grant for an enterprise or app user."""

from eventlog_sdk.config.config import ClientConfig
from eventlog_sdk.errors.exceptions import InvalidConfigurationError
from eventlog_sdk.oauth2.endpoint import TokenEndpoint
from eventlog_sdk.oauth2.grants import JWTBearerGrant
from eventlog_sdk.sessions.base import BaseSession


class AppAuthSession(BaseSession):
    """
    Session using signed JWT assertions.

    Tokens are re-minted from the private key when they expire. When
    config.stale_buffer_seconds is set, a token inside the stale window is
    still served while a background refresh replaces it.
    """

    def __init__(
        self,
        subject_type: str,
        subject_id: str,
        config: ClientConfig,
        endpoint: TokenEndpoint | None = None,
        **kwargs,
    ):
        if config.app_auth is None:
            raise InvalidConfigurationError("App auth session requires app_auth settings")
        config.require_client_credentials()
        grant = JWTBearerGrant(config, subject_type, subject_id)
        self.subject_type = grant.subject_type
        self.subject_id = grant.subject_id
        super().__init__(
            config,
            grant=grant,
            endpoint=endpoint,
            stale_refresh=True,
            **kwargs,
        )

    def __repr__(self) -> str:
        return f"AppAuthSession(subject={self.subject_type}:{self.subject_id}, as_user={self.as_user_id!r})"


__all__ = ["AppAuthSession"]
