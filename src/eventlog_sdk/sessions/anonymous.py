"""Anonymous session: client credentials without a subject."""

from collections.abc import Iterable

from eventlog_sdk.config.config import ClientConfig
from eventlog_sdk.oauth2.endpoint import TokenEndpoint
from eventlog_sdk.oauth2.grants import ClientCredentialsGrant
from eventlog_sdk.oauth2.models import ActorParams, Token, TokenRequestOptions
from eventlog_sdk.sessions.base import BaseSession


class AnonymousSession(BaseSession):
    """
    Session for unauthenticated (public) access.

    Tokens come from the client credentials grant with no subject and are
    re-exchanged when they expire.
    """

    def __init__(self, config: ClientConfig, endpoint: TokenEndpoint | None = None, **kwargs):
        config.require_client_credentials()
        super().__init__(config, grant=ClientCredentialsGrant(), endpoint=endpoint, **kwargs)

    async def exchange_token(
        self,
        scopes: str | Iterable[str],
        resource: str | None = None,
        shared_link: str | None = None,
        actor: ActorParams | None = None,
        options: TokenRequestOptions | None = None,
    ) -> Token:
        """Anonymous tokens are already minimal; the session's own token is returned."""
        return await self.get_token(options)


__all__ = ["AnonymousSession"]
