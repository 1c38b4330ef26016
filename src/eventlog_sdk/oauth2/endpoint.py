"""
Token endpoint collaborator.

The token manager talks to the authorization server only through the
TokenEndpoint protocol: "given grant parameters, return token material" and
"revoke this token". HttpTokenEndpoint is the aiohttp implementation.
"""

import asyncio
import json
import logging
from typing import Any, Protocol, runtime_checkable

import aiohttp

from eventlog_sdk.config.config import ClientConfig
from eventlog_sdk.errors.exceptions import TransientError, build_response_error
from eventlog_sdk.oauth2.exceptions import ExpiredAuthError, MalformedTokenResponseError
from eventlog_sdk.oauth2.models import TokenRequestOptions

logger = logging.getLogger(__name__)

# OAuth2 error codes that mean the credential itself is dead
TERMINAL_ERROR_CODES = frozenset(
    {"invalid_grant", "invalid_token", "invalid_client", "unauthorized_client"}
)


@runtime_checkable
class TokenEndpoint(Protocol):
    """Exchanges grant parameters for token material at the authorization server."""

    async def request_token(
        self,
        params: dict[str, str],
        options: TokenRequestOptions | None = None,
    ) -> dict[str, Any]:
        """
        POST a grant to the token endpoint.

        Returns:
            Decoded JSON response body

        Raises:
            ExpiredAuthError: invalid_grant / invalid_token and similar
            ThrottlingError: 429
            TransientError: 5xx, network failure, timeout
            PermanentError: other unexpected responses
            MalformedTokenResponseError: 200 with an undecodable body
        """
        ...

    async def revoke(self, token: str, options: TokenRequestOptions | None = None) -> None:
        """Revoke an access or refresh token."""
        ...

    async def close(self) -> None:
        ...


def validate_token_response(body: Any, requires_refresh_token: bool = False) -> dict[str, Any]:
    """
    Check a token response has the fields a Token needs.

    Args:
        body: Decoded response body
        requires_refresh_token: Whether the grant must return a refresh token

    Returns:
        The body, unchanged

    Raises:
        MalformedTokenResponseError: If a required field is missing or mistyped
    """
    if not isinstance(body, dict):
        raise MalformedTokenResponseError(
            "Token response is not a JSON object", response_body=body
        )

    access_token = body.get("access_token")
    if not isinstance(access_token, str) or not access_token:
        raise MalformedTokenResponseError(
            "Token response is missing access_token", response_body=_redact(body)
        )

    expires_in = body.get("expires_in")
    if isinstance(expires_in, bool) or not isinstance(expires_in, (int, float)):
        raise MalformedTokenResponseError(
            "Token response is missing a numeric expires_in", response_body=_redact(body)
        )

    if requires_refresh_token:
        refresh_token = body.get("refresh_token")
        if not isinstance(refresh_token, str) or not refresh_token:
            raise MalformedTokenResponseError(
                "Token response is missing refresh_token", response_body=_redact(body)
            )

    return body


def _redact(body: dict[str, Any]) -> dict[str, Any]:
    return {
        key: ("[REDACTED]" if key in ("access_token", "refresh_token") else value)
        for key, value in body.items()
    }


class HttpTokenEndpoint:
    """
    aiohttp implementation of TokenEndpoint.

    Posts form-encoded bodies with the client credentials to
    {api_root_url}/oauth2/token and {api_root_url}/oauth2/revoke.
    """

    def __init__(
        self,
        config: ClientConfig,
        session: aiohttp.ClientSession | None = None,
    ):
        self.config = config
        self._session = session
        self._owns_session = session is None

        logger.debug(
            "Initialized token endpoint",
            extra={"url": config.token_url},
        )

    async def _ensure_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP client session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    def _credentials(self) -> dict[str, str]:
        creds = {}
        if self.config.client_id:
            creds["client_id"] = self.config.client_id
        if self.config.client_secret:
            creds["client_secret"] = self.config.client_secret
        return creds

    async def _post(
        self,
        url: str,
        form: dict[str, str],
        options: TokenRequestOptions | None,
    ) -> tuple[int, Any, dict[str, str]]:
        session = await self._ensure_session()
        headers = dict(self.config.extra_headers)
        if options:
            headers.update(options.headers())

        try:
            async with session.post(
                url,
                data=form,
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=self.config.request_timeout_seconds),
            ) as response:
                text = await response.text()
                response_headers = dict(response.headers)
                status = response.status
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(
                f"HTTP error calling token endpoint: {e}",
                extra={"url": url, "error_type": type(e).__name__},
            )
            raise TransientError(
                f"Token endpoint request failed: {type(e).__name__}", cause=e
            ) from e

        body: Any = text
        if text:
            try:
                body = json.loads(text)
            except ValueError:
                body = text
        return status, body, response_headers

    async def request_token(
        self,
        params: dict[str, str],
        options: TokenRequestOptions | None = None,
    ) -> dict[str, Any]:
        form = {**params, **self._credentials()}
        grant_type = params.get("grant_type")
        status, body, headers = await self._post(self.config.token_url, form, options)

        if status == 200:
            if not isinstance(body, dict):
                raise MalformedTokenResponseError(
                    "Token response is not a JSON object",
                    status_code=status,
                    response_headers=headers,
                )
            logger.debug(
                "Token endpoint returned token",
                extra={"grant_type": grant_type, "http_status": status},
            )
            return body

        error_code = body.get("error") if isinstance(body, dict) else None
        description = body.get("error_description") if isinstance(body, dict) else None

        if error_code in TERMINAL_ERROR_CODES or status == 401:
            logger.warning(
                f"Token endpoint rejected grant: {error_code}",
                extra={
                    "grant_type": grant_type,
                    "http_status": status,
                    "error_code": error_code,
                },
            )
            raise ExpiredAuthError(
                f"Token endpoint rejected grant: {error_code or status}",
                error_code=error_code,
                description=description,
                status_code=status,
                response_body=body,
                response_headers=headers,
            )

        logger.warning(
            f"Unexpected token endpoint response: HTTP {status}",
            extra={"grant_type": grant_type, "http_status": status, "error_code": error_code},
        )
        raise build_response_error(status, body, headers, "Token endpoint error")

    async def revoke(self, token: str, options: TokenRequestOptions | None = None) -> None:
        form = {"token": token, **self._credentials()}
        status, body, headers = await self._post(self.config.revoke_url, form, options)
        if status != 200:
            raise build_response_error(status, body, headers, "Token revoke failed")
        logger.debug("Token revoked", extra={"http_status": status})

    async def close(self) -> None:
        """Close HTTP client session."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()


__all__ = [
    "TokenEndpoint",
    "HttpTokenEndpoint",
    "validate_token_response",
    "TERMINAL_ERROR_CODES",
]
