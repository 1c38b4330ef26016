"""
Tests for the token endpoint collaborator.

Tests cover:
- Form body and headers sent to the token and revoke URLs
- Mapping of OAuth2 error responses to terminal vs. retryable errors
- Network failures and malformed bodies
"""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest

from eventlog_sdk.config.config import ClientConfig
from eventlog_sdk.errors.exceptions import PermanentError, ThrottlingError, TransientError
from eventlog_sdk.oauth2.endpoint import HttpTokenEndpoint, TokenEndpoint, validate_token_response
from eventlog_sdk.oauth2.exceptions import ExpiredAuthError, MalformedTokenResponseError
from eventlog_sdk.oauth2.models import TokenRequestOptions


def mock_response(status=200, body=None, headers=None):
    response = AsyncMock()
    response.status = status
    response.headers = headers or {}
    text = body if isinstance(body, str) else json.dumps(body) if body is not None else ""
    response.text = AsyncMock(return_value=text)
    response.__aenter__ = AsyncMock(return_value=response)
    response.__aexit__ = AsyncMock(return_value=None)
    return response


def mock_session(*responses):
    session = AsyncMock()
    session.closed = False
    session.post = MagicMock(side_effect=list(responses))
    return session


@pytest.fixture
def client_config():
    return ClientConfig(client_id="client-id", client_secret="client-secret", extra_headers={"X-App": "test"})


class TestValidateTokenResponse:
    def test_valid(self):
        body = {"access_token": "a", "expires_in": 3600}
        assert validate_token_response(body) is body

    @pytest.mark.parametrize(
        "body",
        [
            "not a dict",
            {"expires_in": 3600},
            {"access_token": "", "expires_in": 3600},
            {"access_token": "a"},
            {"access_token": "a", "expires_in": "soon"},
            {"access_token": "a", "expires_in": True},
        ],
    )
    def test_malformed(self, body):
        with pytest.raises(MalformedTokenResponseError):
            validate_token_response(body)

    def test_missing_refresh_token(self):
        with pytest.raises(MalformedTokenResponseError, match="refresh_token"):
            validate_token_response({"access_token": "a", "expires_in": 1}, requires_refresh_token=True)

    def test_error_body_redacts_tokens(self):
        with pytest.raises(MalformedTokenResponseError) as exc_info:
            validate_token_response({"access_token": "secret"}, requires_refresh_token=True)
        assert exc_info.value.response_body["access_token"] == "[REDACTED]"


class TestHttpTokenEndpoint:
    @pytest.mark.asyncio
    async def test_request_token_posts_form(self, client_config):
        session = mock_session(mock_response(200, {"access_token": "a", "expires_in": 3600}))
        endpoint = HttpTokenEndpoint(client_config, session=session)
        assert isinstance(endpoint, TokenEndpoint)

        body = await endpoint.request_token(
            {"grant_type": "client_credentials"}, TokenRequestOptions(ip="10.1.1.1")
        )

        assert body["access_token"] == "a"
        args, kwargs = session.post.call_args
        assert args[0] == "https://api.box.com/oauth2/token"
        assert kwargs["data"] == {
            "grant_type": "client_credentials",
            "client_id": "client-id",
            "client_secret": "client-secret",
        }
        assert kwargs["headers"] == {"X-App": "test", "X-Forwarded-For": "10.1.1.1"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("code", ["invalid_grant", "invalid_token", "invalid_client", "unauthorized_client"])
    async def test_terminal_error_codes(self, client_config, code):
        session = mock_session(
            mock_response(400, {"error": code, "error_description": "nope"}, {"Date": "Thu, 15 Jan 2026 12:00:00 GMT"})
        )
        endpoint = HttpTokenEndpoint(client_config, session=session)

        with pytest.raises(ExpiredAuthError) as exc_info:
            await endpoint.request_token({"grant_type": "refresh_token", "refresh_token": "r"})

        error = exc_info.value
        assert error.error_code == code
        assert error.description == "nope"
        assert error.status_code == 400
        assert error.response_headers["Date"] == "Thu, 15 Jan 2026 12:00:00 GMT"

    @pytest.mark.asyncio
    async def test_401_is_terminal(self, client_config):
        session = mock_session(mock_response(401, "Unauthorized"))
        with pytest.raises(ExpiredAuthError):
            await HttpTokenEndpoint(client_config, session=session).request_token({"grant_type": "x"})

    @pytest.mark.asyncio
    async def test_429_throttled(self, client_config):
        session = mock_session(mock_response(429, {"error": "rate_limited"}, {"Retry-After": "3"}))
        with pytest.raises(ThrottlingError) as exc_info:
            await HttpTokenEndpoint(client_config, session=session).request_token({"grant_type": "x"})
        assert exc_info.value.retry_after == 3.0

    @pytest.mark.asyncio
    async def test_5xx_transient(self, client_config):
        session = mock_session(mock_response(503, "Service Unavailable"))
        with pytest.raises(TransientError):
            await HttpTokenEndpoint(client_config, session=session).request_token({"grant_type": "x"})

    @pytest.mark.asyncio
    async def test_other_4xx_permanent(self, client_config):
        session = mock_session(mock_response(400, {"error": "invalid_request"}))
        with pytest.raises(PermanentError):
            await HttpTokenEndpoint(client_config, session=session).request_token({"grant_type": "x"})

    @pytest.mark.asyncio
    async def test_network_error_transient(self, client_config):
        session = AsyncMock()
        session.closed = False
        session.post = MagicMock(side_effect=aiohttp.ClientConnectionError("reset"))
        with pytest.raises(TransientError):
            await HttpTokenEndpoint(client_config, session=session).request_token({"grant_type": "x"})

    @pytest.mark.asyncio
    async def test_timeout_transient(self, client_config):
        session = AsyncMock()
        session.closed = False
        session.post = MagicMock(side_effect=asyncio.TimeoutError())
        with pytest.raises(TransientError):
            await HttpTokenEndpoint(client_config, session=session).request_token({"grant_type": "x"})

    @pytest.mark.asyncio
    async def test_200_with_html_body_malformed(self, client_config):
        session = mock_session(mock_response(200, "<html>oops</html>"))
        with pytest.raises(MalformedTokenResponseError):
            await HttpTokenEndpoint(client_config, session=session).request_token({"grant_type": "x"})

    @pytest.mark.asyncio
    async def test_revoke(self, client_config):
        session = mock_session(mock_response(200, ""))
        await HttpTokenEndpoint(client_config, session=session).revoke("tok")

        args, kwargs = session.post.call_args
        assert args[0] == "https://api.box.com/oauth2/revoke"
        assert kwargs["data"]["token"] == "tok"

    @pytest.mark.asyncio
    async def test_revoke_failure(self, client_config):
        session = mock_session(mock_response(500, ""))
        with pytest.raises(TransientError):
            await HttpTokenEndpoint(client_config, session=session).revoke("tok")

    @pytest.mark.asyncio
    async def test_close_leaves_injected_session_open(self, client_config):
        session = mock_session()
        await HttpTokenEndpoint(client_config, session=session).close()
        session.close.assert_not_awaited()
