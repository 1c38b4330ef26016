"""Session base class: a thin facade over one TokenManager."""

import logging
from abc import ABC
from collections.abc import Iterable
from typing import Any

from eventlog_sdk.config.config import ClientConfig
from eventlog_sdk.oauth2.endpoint import HttpTokenEndpoint, TokenEndpoint
from eventlog_sdk.oauth2.grants import BaseGrant, TokenExchangeGrant
from eventlog_sdk.oauth2.manager import Clock, TokenManager
from eventlog_sdk.oauth2.models import ActorParams, Token, TokenRequestOptions
from eventlog_sdk.oauth2.store import TokenStore
from eventlog_sdk.resilience.retry import RetryConfig

logger = logging.getLogger(__name__)


class BaseSession(ABC):
    """
    Capability facade over a private TokenManager.

    Every variant exposes get_token(); the variants differ only in the grant
    and store their manager is built with. Impersonation (as_user) is state
    carried alongside the token on outbound requests, not a new token.
    """

    def __init__(
        self,
        config: ClientConfig,
        grant: BaseGrant | None = None,
        endpoint: TokenEndpoint | None = None,
        store: TokenStore | None = None,
        token: Token | None = None,
        stale_refresh: bool = False,
        revocable: bool = True,
        retry_config: RetryConfig | None = None,
        clock: Clock | None = None,
    ):
        self.config = config
        self._owns_endpoint = endpoint is None
        self._endpoint = endpoint or HttpTokenEndpoint(config)
        self._as_user: str | None = None
        self._manager = TokenManager(
            self._endpoint,
            grant=grant,
            store=store,
            refresh_buffer_seconds=config.expired_buffer_seconds,
            stale_buffer_seconds=config.stale_buffer_seconds if stale_refresh else 0,
            retry_config=retry_config or RetryConfig.from_client_config(config),
            revocable=revocable,
            clock=clock,
            token=token,
        )

    @property
    def token_manager(self) -> TokenManager:
        return self._manager

    @property
    def as_user_id(self) -> str | None:
        """User id sent in the As-User header, or None when acting as self."""
        return self._as_user

    async def get_token(self, options: TokenRequestOptions | None = None) -> Token:
        """Get a currently valid token, refreshing it if needed."""
        return await self._manager.get_token(options)

    async def get_access_token(self, options: TokenRequestOptions | None = None) -> str:
        token = await self.get_token(options)
        return token.access_token

    def invalidate(self) -> None:
        """Drop the cached access token so the next request refreshes it."""
        self._manager.invalidate()

    async def revoke(self, options: TokenRequestOptions | None = None) -> None:
        """Revoke the session's token; the next request re-authenticates."""
        await self._manager.revoke(options)

    async def exchange_token(
        self,
        scopes: str | Iterable[str],
        resource: str | None = None,
        shared_link: str | None = None,
        actor: ActorParams | None = None,
        options: TokenRequestOptions | None = None,
    ) -> Token:
        """
        Exchange the session's token for a downscoped, independent token.

        The session's own cached token is not modified.

        Args:
            scopes: Scope(s) of the new token
            resource: Absolute API URL to restrict the new token to
            shared_link: Shared link URL to restrict the new token to
            actor: External actor to annotate the new token with
            options: Token request options

        Returns:
            New Token, never cached by this session
        """
        token = await self.get_token(options)
        grant = TokenExchangeGrant(
            token.access_token,
            scopes,
            resource=resource,
            shared_link=shared_link,
            actor=actor,
            client_id=self.config.client_id,
            audience=self.config.token_url,
        )
        return await self._manager.exchange(grant, options)

    def as_user(self, user_id: str) -> "BaseSession":
        """Make subsequent requests on behalf of another user."""
        if not user_id:
            raise ValueError("user_id must be a non-empty string")
        self._as_user = str(user_id)
        logger.debug("Impersonation enabled", extra={"as_user": self._as_user})
        return self

    def as_self(self) -> "BaseSession":
        """Stop impersonating; requests act as the session's own subject."""
        self._as_user = None
        return self

    async def auth_headers(self, options: TokenRequestOptions | None = None) -> dict[str, str]:
        """Authorization (and As-User) headers for an outbound request."""
        headers = {"Authorization": f"Bearer {await self.get_access_token(options)}"}
        if self._as_user:
            headers["As-User"] = self._as_user
        return headers

    def get_cached_token_info(self) -> dict[str, Any] | None:
        return self._manager.get_cached_token_info()

    async def close(self) -> None:
        await self._manager.close()
        if self._owns_endpoint:
            await self._endpoint.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False

    def __repr__(self) -> str:
        return f"{type(self).__name__}(as_user={self._as_user!r})"


__all__ = ["BaseSession"]
