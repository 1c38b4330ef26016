"""
Grant strategies: one recipe per OAuth2-family grant type.

A grant builds the form body for the token endpoint. It performs no I/O; the
token manager sends what it builds through a TokenEndpoint. The JWT bearer
grant additionally translates clock-skew rejections into a retryable error
and corrects its clock for the next assertion.
"""

import logging
import uuid
from abc import ABC, abstractmethod
from collections.abc import Iterable
from datetime import UTC, datetime, timedelta
from email.utils import parsedate_to_datetime

import jwt
from cryptography.hazmat.primitives import serialization

from eventlog_sdk.config.config import ClientConfig
from eventlog_sdk.errors.exceptions import InvalidConfigurationError
from eventlog_sdk.oauth2.exceptions import ExpiredAuthError, RetryableJWTAuthError
from eventlog_sdk.oauth2.models import ActorParams, GrantKind

logger = logging.getLogger(__name__)

ACCESS_TOKEN_TYPE = "urn:ietf:params:oauth:token-type:access_token"
ACTOR_TOKEN_TYPE = "urn:ietf:params:oauth:token-type:id_token"

ACTOR_TOKEN_LIFETIME_SECONDS = 60


class SubjectType:
    """Valid box_sub_type values for JWT and client-credentials grants."""

    ENTERPRISE = "enterprise"
    USER = "user"

    ALL = (ENTERPRISE, USER)


def _validate_subject(subject_type: str | None, subject_id: str | None) -> None:
    if subject_type is None and subject_id is None:
        return
    if subject_type not in SubjectType.ALL:
        raise InvalidConfigurationError(
            f"subject_type must be one of {list(SubjectType.ALL)}, got '{subject_type}'"
        )
    if not subject_id:
        raise InvalidConfigurationError(f"A {subject_type} subject requires an id")


class BaseGrant(ABC):
    """
    Abstract grant strategy.

    Subclasses set ``kind`` and implement ``build_params``.
    """

    kind: GrantKind

    # Whether a successful response must carry a refresh token
    requires_refresh_token: bool = False

    @abstractmethod
    def build_params(self, now: datetime) -> dict[str, str]:
        """
        Build the token endpoint form body (without client credentials).

        Args:
            now: Current time from the manager's clock

        Returns:
            Form parameters including grant_type
        """
        pass

    def start_exchange(self) -> None:
        """Reset per-exchange state before the first attempt."""

    def translate_error(self, error: Exception, now: datetime) -> Exception:
        """Map an endpoint error to the error the retry policy should see."""
        return error

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind.name})"


class AuthorizationCodeGrant(BaseGrant):
    """Exchange an authorization code for a token pair."""

    kind = GrantKind.AUTHORIZATION_CODE
    requires_refresh_token = True

    def __init__(self, code: str):
        if not code:
            raise ValueError("Authorization code must be a non-empty string")
        self._code = code

    def build_params(self, now: datetime) -> dict[str, str]:
        return {"grant_type": self.kind.value, "code": self._code}


class RefreshTokenGrant(BaseGrant):
    """Exchange a refresh token for a new token pair."""

    kind = GrantKind.REFRESH_TOKEN
    requires_refresh_token = True

    def __init__(self, refresh_token: str):
        if not refresh_token:
            raise ValueError("Refresh token must be a non-empty string")
        self.refresh_token = refresh_token

    def build_params(self, now: datetime) -> dict[str, str]:
        return {"grant_type": self.kind.value, "refresh_token": self.refresh_token}


class ClientCredentialsGrant(BaseGrant):
    """Client credentials grant, optionally for an enterprise or user subject."""

    kind = GrantKind.CLIENT_CREDENTIALS

    def __init__(self, subject_type: str | None = None, subject_id: str | None = None):
        _validate_subject(subject_type, subject_id)
        self.subject_type = subject_type
        self.subject_id = subject_id

    def build_params(self, now: datetime) -> dict[str, str]:
        params = {"grant_type": self.kind.value}
        if self.subject_type:
            params["box_subject_type"] = self.subject_type
            params["box_subject_id"] = str(self.subject_id)
        return params


def load_private_key(pem: str, passphrase: str | None):
    """Load a PEM private key, decrypting it with the passphrase when given."""
    try:
        return serialization.load_pem_private_key(
            pem.encode("utf-8"),
            password=passphrase.encode("utf-8") if passphrase else None,
        )
    except (ValueError, TypeError) as e:
        raise InvalidConfigurationError(
            f"Unable to load app auth private key: {e}", cause=e
        ) from e


class JWTBearerGrant(BaseGrant):
    """
    JWT bearer grant for an enterprise or app-user subject.

    Each call to build_params signs a fresh assertion with a new jti. When the
    server rejects an assertion because of its exp or jti claim and reports
    its own time in a Date header, translate_error records the clock offset
    and returns a RetryableJWTAuthError, once per exchange. The next assertion
    is then computed on the server's clock.
    """

    kind = GrantKind.JWT_BEARER

    def __init__(self, config: ClientConfig, subject_type: str, subject_id: str):
        if config.app_auth is None:
            raise InvalidConfigurationError("JWT bearer grant requires app_auth settings")
        if not config.client_id:
            raise InvalidConfigurationError("JWT bearer grant requires client_id")
        _validate_subject(subject_type, subject_id)

        self.subject_type = subject_type
        self.subject_id = str(subject_id)
        self._client_id = config.client_id
        self._audience = config.token_url
        self._app_auth = config.app_auth
        self._private_key = load_private_key(
            config.app_auth.private_key, config.app_auth.passphrase
        )
        self._clock_offset = timedelta(0)
        self._skew_retried = False

    @property
    def clock_offset(self) -> timedelta:
        return self._clock_offset

    def build_params(self, now: datetime) -> dict[str, str]:
        return {"grant_type": self.kind.value, "assertion": self._sign(now)}

    def _sign(self, now: datetime) -> str:
        server_now = now + self._clock_offset
        claims = {
            "iss": self._client_id,
            "sub": self.subject_id,
            "aud": self._audience,
            "jti": str(uuid.uuid4()),
            "exp": int(server_now.timestamp()) + self._app_auth.expiration_time,
            "box_sub_type": self.subject_type,
        }
        if self._app_auth.verify_timestamp:
            claims["iat"] = int(server_now.timestamp())

        return jwt.encode(
            claims,
            self._private_key,
            algorithm=self._app_auth.algorithm,
            headers={"kid": self._app_auth.key_id},
        )

    def start_exchange(self) -> None:
        self._skew_retried = False

    def translate_error(self, error: Exception, now: datetime) -> Exception:
        if self._skew_retried or not _is_clock_skew_error(error):
            return error

        server_date = _parse_date_header(error.response_headers)
        if server_date is None:
            return error

        self._skew_retried = True
        self._clock_offset = server_date - now
        logger.warning(
            "JWT assertion rejected for clock skew, retrying with server time",
            extra={
                "grant_type": self.kind.value,
                "clock_offset_seconds": self._clock_offset.total_seconds(),
            },
        )
        return RetryableJWTAuthError(
            f"JWT assertion rejected: {error.description or error.message}",
            server_date=server_date,
            cause=error,
            status_code=error.status_code,
            response_body=error.response_body,
            response_headers=error.response_headers,
        )


def _is_clock_skew_error(error: Exception) -> bool:
    if not isinstance(error, ExpiredAuthError) or error.error_code != "invalid_grant":
        return False
    description = (error.description or "").lower()
    return "exp" in description or "jti" in description


def _parse_date_header(headers: dict[str, str]) -> datetime | None:
    value = None
    for name, header_value in headers.items():
        if name.lower() == "date":
            value = header_value
            break
    if not value:
        return None
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


class TokenExchangeGrant(BaseGrant):
    """
    Downscope an access token, or delegate it to an external actor.

    The resulting token is never cached by the manager.
    """

    kind = GrantKind.TOKEN_EXCHANGE

    def __init__(
        self,
        subject_token: str,
        scopes: str | Iterable[str],
        resource: str | None = None,
        shared_link: str | None = None,
        actor: ActorParams | None = None,
        client_id: str | None = None,
        audience: str | None = None,
    ):
        if not subject_token:
            raise ValueError("Subject token must be a non-empty string")
        scope = scopes if isinstance(scopes, str) else " ".join(scopes)
        if not scope:
            raise ValueError("At least one scope is required for a token exchange")
        if actor is not None and not (client_id and audience):
            raise InvalidConfigurationError("Actor tokens require client_id and audience")

        self._subject_token = subject_token
        self.scope = scope
        self.resource = resource
        self.shared_link = shared_link
        self.actor = actor
        self._client_id = client_id
        self._audience = audience

    def build_params(self, now: datetime) -> dict[str, str]:
        params = {
            "grant_type": self.kind.value,
            "subject_token_type": ACCESS_TOKEN_TYPE,
            "subject_token": self._subject_token,
            "scope": self.scope,
        }
        if self.resource:
            params["resource"] = self.resource
        if self.shared_link:
            params["box_shared_link"] = self.shared_link
        if self.actor:
            params["actor_token"] = self._actor_token(now)
            params["actor_token_type"] = ACTOR_TOKEN_TYPE
        return params

    def _actor_token(self, now: datetime) -> str:
        # Unsigned: the platform only reads the actor claims
        claims = {
            "iss": self._client_id,
            "sub": self.actor.id,
            "aud": self._audience,
            "box_sub_type": "external",
            "name": self.actor.name,
            "jti": str(uuid.uuid4()),
            "exp": int(now.timestamp()) + ACTOR_TOKEN_LIFETIME_SECONDS,
        }
        return jwt.encode(claims, None, algorithm="none")


__all__ = [
    "SubjectType",
    "BaseGrant",
    "AuthorizationCodeGrant",
    "RefreshTokenGrant",
    "ClientCredentialsGrant",
    "JWTBearerGrant",
    "TokenExchangeGrant",
    "load_private_key",
    "ACCESS_TOKEN_TYPE",
    "ACTOR_TOKEN_TYPE",
]
