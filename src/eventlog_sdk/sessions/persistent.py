"""Persistent session: refresh-token based, optionally backed by a token store."""

import logging

from eventlog_sdk.config.config import ClientConfig
from eventlog_sdk.errors.exceptions import InvalidConfigurationError
from eventlog_sdk.oauth2.endpoint import HttpTokenEndpoint, TokenEndpoint
from eventlog_sdk.oauth2.grants import AuthorizationCodeGrant
from eventlog_sdk.oauth2.manager import TokenManager
from eventlog_sdk.oauth2.models import Token, TokenRequestOptions
from eventlog_sdk.oauth2.store import TokenStore
from eventlog_sdk.resilience.retry import RetryConfig
from eventlog_sdk.sessions.base import BaseSession

logger = logging.getLogger(__name__)


class PersistentSession(BaseSession):
    """
    Session around an access/refresh token pair.

    Refreshed tokens are written to the store. When a refresh is rejected
    because another process already rotated the refresh token, the newer
    token is adopted from the store. A terminal failure clears the store.

    Usage:
        store = JsonFileTokenStore("token.json")
        session = await PersistentSession.from_authorization_code(code, config, store=store)
        ...
        # Later, in another process:
        session = PersistentSession(None, config, store=store)
    """

    def __init__(
        self,
        token: Token | None,
        config: ClientConfig,
        endpoint: TokenEndpoint | None = None,
        store: TokenStore | None = None,
        **kwargs,
    ):
        if token is None and store is None:
            raise InvalidConfigurationError(
                "Persistent session requires a token or a token store to read one from"
            )
        if token is not None and not token.refresh_token:
            raise InvalidConfigurationError("Persistent session token must include a refresh token")
        config.require_client_credentials()
        super().__init__(config, endpoint=endpoint, store=store, token=token, **kwargs)

    @classmethod
    async def from_authorization_code(
        cls,
        code: str,
        config: ClientConfig,
        endpoint: TokenEndpoint | None = None,
        store: TokenStore | None = None,
        options: TokenRequestOptions | None = None,
        **kwargs,
    ) -> "PersistentSession":
        """Exchange an authorization code and wrap the resulting token pair."""
        owns_endpoint = endpoint is None
        endpoint = endpoint or HttpTokenEndpoint(config)
        bootstrap = TokenManager(
            endpoint,
            retry_config=kwargs.get("retry_config") or RetryConfig.from_client_config(config),
            clock=kwargs.get("clock"),
        )
        try:
            token = await bootstrap.exchange(AuthorizationCodeGrant(code), options)
            if store is not None:
                await store.write(token)
        except BaseException:
            if owns_endpoint:
                await endpoint.close()
            raise

        session = cls(token, config, endpoint=endpoint, store=store, **kwargs)
        session._owns_endpoint = owns_endpoint
        logger.info("Authorization code exchanged for token pair")
        return session


__all__ = ["PersistentSession"]
