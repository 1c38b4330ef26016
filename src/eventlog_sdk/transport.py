"""
API request collaborator.

The event streams issue HTTP calls only through the ApiRequester protocol.
HttpApiRequester is the aiohttp implementation: it resolves paths against
the API base URL, attaches the session's auth headers and retries transient
failures, invalidating the session's token once on a 401.
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

import aiohttp

from eventlog_sdk.config.config import ClientConfig
from eventlog_sdk.errors.exceptions import TransientError, build_response_error
from eventlog_sdk.resilience.retry import RetryConfig, with_retry_async
from eventlog_sdk.types import TokenProvider

logger = logging.getLogger(__name__)


@dataclass
class ApiResponse:
    """Decoded HTTP response."""

    status: int
    headers: dict[str, str] = field(default_factory=dict)
    body: Any = None


@runtime_checkable
class ApiRequester(Protocol):
    """Issues an authenticated HTTP request and returns the decoded response."""

    async def request(
        self,
        method: str,
        path_or_url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        json_body: Any = None,
        timeout: float | None = None,
    ) -> ApiResponse:
        """
        Issue one request.

        Returns:
            ApiResponse for any 2xx status

        Raises:
            AuthError: 401 after the token was refreshed and the retry failed
            ThrottlingError: 429 after all retries
            TransientError: 5xx, timeout or network failure after all retries
            PermanentError: other non-2xx responses
            ExpiredAuthError: the session can no longer obtain a token
        """
        ...


def _encode_params(params: dict[str, Any] | None) -> dict[str, str] | None:
    if not params:
        return None
    return {key: str(value) for key, value in params.items() if value is not None}


class HttpApiRequester:
    """
    aiohttp implementation of ApiRequester bound to one session.

    Usage:
        async with HttpApiRequester(config, session) as requester:
            response = await requester.request("GET", "/events", params={...})
    """

    def __init__(
        self,
        config: ClientConfig,
        session: TokenProvider,
        http_session: aiohttp.ClientSession | None = None,
        retry_config: RetryConfig | None = None,
    ):
        self.config = config
        self.session = session
        self._http_session = http_session
        self._owns_http_session = http_session is None
        self._retry_config = retry_config or RetryConfig.from_client_config(config)

        logger.debug(
            "Initialized API requester",
            extra={"url": config.api_base_url},
        )

    async def _ensure_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP client session."""
        if self._http_session is None or self._http_session.closed:
            self._http_session = aiohttp.ClientSession()
            self._owns_http_session = True
        return self._http_session

    def resolve_url(self, path_or_url: str) -> str:
        if path_or_url.startswith(("http://", "https://")):
            return path_or_url
        return f"{self.config.api_base_url}/{path_or_url.lstrip('/')}"

    async def request(
        self,
        method: str,
        path_or_url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        json_body: Any = None,
        timeout: float | None = None,
    ) -> ApiResponse:
        url = self.resolve_url(path_or_url)
        method = method.upper()
        total_timeout = timeout if timeout is not None else self.config.request_timeout_seconds

        @with_retry_async(config=self._retry_config, on_auth_error=self.session.invalidate)
        async def send() -> ApiResponse:
            request_headers = dict(self.config.extra_headers)
            request_headers.update(headers or {})
            request_headers.update(await self.session.auth_headers())
            return await self._send(
                method, url, _encode_params(params), request_headers, json_body, total_timeout
            )

        return await send()

    async def _send(
        self,
        method: str,
        url: str,
        params: dict[str, str] | None,
        headers: dict[str, str],
        json_body: Any,
        timeout: float,
    ) -> ApiResponse:
        http_session = await self._ensure_session()
        start = time.monotonic()

        logger.debug(
            "API request starting",
            extra={"http_method": method, "http_url": url},
        )

        try:
            async with http_session.request(
                method,
                url,
                params=params,
                json=json_body,
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=timeout),
            ) as response:
                text = await response.text()
                status = response.status
                response_headers = dict(response.headers)
        except asyncio.TimeoutError as e:
            logger.warning(
                "API request timeout",
                extra={
                    "http_method": method,
                    "http_url": url,
                    "duration_ms": round((time.monotonic() - start) * 1000, 1),
                    "error_category": "transient",
                },
            )
            raise TransientError(f"Timeout after {timeout}s: {method} {url}", cause=e) from e
        except aiohttp.ClientError as e:
            logger.warning(
                "API connection error",
                extra={
                    "http_method": method,
                    "http_url": url,
                    "error_type": type(e).__name__,
                    "error_category": "transient",
                },
            )
            raise TransientError(f"Connection error: {e}", cause=e) from e

        duration_ms = round((time.monotonic() - start) * 1000, 1)
        body: Any = text
        if text:
            try:
                body = json.loads(text)
            except ValueError:
                body = text

        if not 200 <= status < 300:
            error = build_response_error(status, body, response_headers)
            logger.warning(
                f"API returned HTTP {status}",
                extra={
                    "http_method": method,
                    "http_url": url,
                    "http_status": status,
                    "duration_ms": duration_ms,
                    "error_category": error.category.value,
                },
            )
            raise error

        logger.debug(
            "API request succeeded",
            extra={
                "http_method": method,
                "http_url": url,
                "http_status": status,
                "duration_ms": duration_ms,
            },
        )
        return ApiResponse(status=status, headers=response_headers, body=body)

    async def close(self) -> None:
        """Close HTTP client session."""
        if self._owns_http_session and self._http_session and not self._http_session.closed:
            await self._http_session.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False


__all__ = [
    "ApiResponse",
    "ApiRequester",
    "HttpApiRequester",
]
