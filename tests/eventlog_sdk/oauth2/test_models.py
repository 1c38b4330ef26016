"""Tests for OAuth2 data models."""

from datetime import UTC, datetime, timedelta

import pytest

from eventlog_sdk.oauth2.models import ActorParams, GrantKind, Token, TokenRequestOptions

NOW = datetime(2026, 1, 15, 12, 0, 0, tzinfo=UTC)


class TestToken:
    def test_from_response(self):
        token = Token.from_response(
            {
                "access_token": "abc",
                "expires_in": 3600,
                "token_type": "Bearer",
                "refresh_token": "def",
                "scope": "root_readwrite item_preview",
            },
            GrantKind.REFRESH_TOKEN,
            now=NOW,
        )
        assert token.access_token == "abc"
        assert token.expires_at == NOW + timedelta(seconds=3600)
        assert token.token_type == "bearer"
        assert token.refresh_token == "def"
        assert token.scopes == frozenset({"root_readwrite", "item_preview"})
        assert token.acquired_via is GrantKind.REFRESH_TOKEN

    def test_from_response_without_refresh_token(self):
        token = Token.from_response({"access_token": "abc", "expires_in": 60}, now=NOW)
        assert token.refresh_token is None
        assert token.scopes == frozenset()

    def test_is_expired_with_buffer(self):
        token = Token(access_token="abc", expires_at=NOW + timedelta(seconds=3600))
        assert not token.is_expired(60, now=NOW)
        assert not token.is_expired(60, now=NOW + timedelta(seconds=3539))
        assert token.is_expired(60, now=NOW + timedelta(seconds=3540))
        assert token.is_expired(0, now=NOW + timedelta(seconds=3600))

    def test_remaining_seconds(self):
        token = Token(access_token="abc", expires_at=NOW + timedelta(seconds=100))
        assert token.remaining_seconds(NOW) == 100

    def test_immutable(self):
        token = Token(access_token="abc", expires_at=NOW)
        with pytest.raises(AttributeError):
            token.access_token = "other"

    def test_dict_roundtrip(self):
        token = Token(
            access_token="abc",
            expires_at=NOW,
            refresh_token="def",
            scopes=frozenset({"a"}),
            acquired_via=GrantKind.AUTHORIZATION_CODE,
        )
        assert Token.from_dict(token.to_dict()) == token

    def test_repr_hides_secrets(self):
        token = Token(access_token="secret-access", expires_at=NOW, refresh_token="secret-refresh")
        text = repr(token)
        assert "secret-access" not in text
        assert "secret-refresh" not in text
        assert "refreshable=True" in text


class TestTokenRequestOptions:
    def test_forwarded_for(self):
        assert TokenRequestOptions(ip="10.0.0.1").headers() == {"X-Forwarded-For": "10.0.0.1"}

    def test_empty(self):
        assert TokenRequestOptions().headers() == {}


def test_actor_params():
    actor = ActorParams(id="ext-1", name="Jane")
    assert actor.id == "ext-1"
    assert actor.name == "Jane"
