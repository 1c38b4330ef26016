"""OAuth2 data models."""

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any


class GrantKind(Enum):
    """Grant type tag recorded on every token (wire value of grant_type)."""

    AUTHORIZATION_CODE = "authorization_code"
    REFRESH_TOKEN = "refresh_token"
    CLIENT_CREDENTIALS = "client_credentials"
    JWT_BEARER = "urn:ietf:params:oauth:grant-type:jwt-bearer"
    TOKEN_EXCHANGE = "urn:ietf:params:oauth:grant-type:token-exchange"


@dataclass(frozen=True)
class Token:
    """
    Immutable snapshot of credential material and its expiry.

    A refresh produces a new Token; a Token is never mutated in place.

    Attributes:
        access_token: Opaque bearer token
        expires_at: UTC timestamp when the token expires (issuance + expires_in)
        token_type: Token type (always "bearer" for this platform)
        refresh_token: Refresh token, absent for non-refreshable grants
        scopes: Scopes granted, when the server reported them
        acquired_via: Grant kind that produced this token, None if seeded out of band
    """

    access_token: str
    expires_at: datetime
    token_type: str = "bearer"
    refresh_token: str | None = None
    scopes: frozenset[str] = field(default_factory=frozenset)
    acquired_via: GrantKind | None = None

    @classmethod
    def from_response(
        cls,
        response: dict[str, Any],
        acquired_via: GrantKind | None = None,
        now: datetime | None = None,
    ) -> "Token":
        """
        Create token from a validated token endpoint response.

        Args:
            response: Token response dict (access_token, expires_in, ...)
            acquired_via: Grant kind used for the exchange
            now: Issuance time, defaults to the current UTC time

        Returns:
            Token instance
        """
        issued_at = now or datetime.now(UTC)
        scope = response.get("scope")
        if isinstance(scope, str):
            scopes = frozenset(scope.split())
        elif isinstance(scope, (list, tuple)):
            scopes = frozenset(scope)
        else:
            scopes = frozenset()

        return cls(
            access_token=response["access_token"],
            expires_at=issued_at + timedelta(seconds=float(response["expires_in"])),
            token_type=str(response.get("token_type") or "bearer").lower(),
            refresh_token=response.get("refresh_token") or None,
            scopes=scopes,
            acquired_via=acquired_via,
        )

    def is_expired(self, buffer_seconds: float = 60, now: datetime | None = None) -> bool:
        """
        Check if token is expired or close to expiry.

        Args:
            buffer_seconds: Safety margin before actual expiry (default: 60s)
            now: Current time, defaults to the current UTC time

        Returns:
            True if token should be refreshed
        """
        now = now or datetime.now(UTC)
        return now >= self.expires_at - timedelta(seconds=buffer_seconds)

    def remaining_seconds(self, now: datetime | None = None) -> float:
        return (self.expires_at - (now or datetime.now(UTC))).total_seconds()

    @property
    def remaining_lifetime(self) -> timedelta:
        """Get remaining time before token expires."""
        return self.expires_at - datetime.now(UTC)

    def to_dict(self) -> dict[str, Any]:
        return {
            "access_token": self.access_token,
            "expires_at": self.expires_at.isoformat(),
            "token_type": self.token_type,
            "refresh_token": self.refresh_token,
            "scopes": sorted(self.scopes),
            "acquired_via": self.acquired_via.value if self.acquired_via else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Token":
        expires_at = datetime.fromisoformat(data["expires_at"])
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=UTC)
        acquired_via = data.get("acquired_via")
        return cls(
            access_token=data["access_token"],
            expires_at=expires_at,
            token_type=data.get("token_type") or "bearer",
            refresh_token=data.get("refresh_token"),
            scopes=frozenset(data.get("scopes") or ()),
            acquired_via=GrantKind(acquired_via) if acquired_via else None,
        )

    def __repr__(self) -> str:
        # Secrets stay out of reprs and logs
        via = self.acquired_via.name if self.acquired_via else None
        return (
            f"Token(expires_at={self.expires_at.isoformat()}, "
            f"refreshable={self.refresh_token is not None}, acquired_via={via})"
        )


@dataclass(frozen=True)
class TokenRequestOptions:
    """Per-request options for token endpoint calls.

    Attributes:
        ip: End-user IP forwarded to the authorization server (X-Forwarded-For)
    """

    ip: str | None = None

    def headers(self) -> dict[str, str]:
        if self.ip:
            return {"X-Forwarded-For": self.ip}
        return {}


@dataclass(frozen=True)
class ActorParams:
    """External actor annotated on a downscoped token.

    Attributes:
        id: External user id
        name: External user display name
    """

    id: str
    name: str


__all__ = [
    "GrantKind",
    "Token",
    "TokenRequestOptions",
    "ActorParams",
]
