"""
OAuth2 token lifecycle: grants, token endpoint, token stores and the manager.

Basic Usage:
    from eventlog_sdk.config import ClientConfig
    from eventlog_sdk.oauth2 import (
        ClientCredentialsGrant,
        HttpTokenEndpoint,
        TokenManager,
    )

    config = ClientConfig(client_id="...", client_secret="...")
    endpoint = HttpTokenEndpoint(config)
    manager = TokenManager(
        endpoint,
        grant=ClientCredentialsGrant("enterprise", "12345"),
        refresh_buffer_seconds=config.expired_buffer_seconds,
    )

    # Cached, refreshed once when close to expiry, even under concurrency
    token = await manager.get_token()
    headers = {"Authorization": f"Bearer {token.access_token}"}

Most applications use a session from eventlog_sdk.sessions instead of
building a manager directly.
"""

from eventlog_sdk.oauth2.endpoint import (
    HttpTokenEndpoint,
    TokenEndpoint,
    validate_token_response,
)
from eventlog_sdk.oauth2.exceptions import (
    ExpiredAuthError,
    MalformedTokenResponseError,
    OAuth2Error,
    RetryableJWTAuthError,
    TokenAcquisitionError,
    TokenStoreError,
)
from eventlog_sdk.oauth2.grants import (
    AuthorizationCodeGrant,
    BaseGrant,
    ClientCredentialsGrant,
    JWTBearerGrant,
    RefreshTokenGrant,
    SubjectType,
    TokenExchangeGrant,
)
from eventlog_sdk.oauth2.manager import (
    DEFAULT_REFRESH_BUFFER_SECONDS,
    TokenManager,
)
from eventlog_sdk.oauth2.models import ActorParams, GrantKind, Token, TokenRequestOptions
from eventlog_sdk.oauth2.store import JsonFileTokenStore, MemoryTokenStore, TokenStore

__all__ = [
    # Manager
    "TokenManager",
    "DEFAULT_REFRESH_BUFFER_SECONDS",
    # Grants
    "BaseGrant",
    "AuthorizationCodeGrant",
    "RefreshTokenGrant",
    "ClientCredentialsGrant",
    "JWTBearerGrant",
    "TokenExchangeGrant",
    "SubjectType",
    # Endpoint
    "TokenEndpoint",
    "HttpTokenEndpoint",
    "validate_token_response",
    # Stores
    "TokenStore",
    "MemoryTokenStore",
    "JsonFileTokenStore",
    # Models
    "Token",
    "GrantKind",
    "TokenRequestOptions",
    "ActorParams",
    # Exceptions
    "OAuth2Error",
    "ExpiredAuthError",
    "TokenAcquisitionError",
    "RetryableJWTAuthError",
    "MalformedTokenResponseError",
    "TokenStoreError",
]
