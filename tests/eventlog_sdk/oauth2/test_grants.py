"""Tests for grant strategies."""

from datetime import UTC, datetime, timedelta

import jwt
import pytest
from cryptography.hazmat.primitives import serialization

from eventlog_sdk.config.config import AppAuthConfig, ClientConfig
from eventlog_sdk.errors.exceptions import InvalidConfigurationError, TransientError
from eventlog_sdk.oauth2.exceptions import ExpiredAuthError, RetryableJWTAuthError
from eventlog_sdk.oauth2.grants import (
    ACCESS_TOKEN_TYPE,
    ACTOR_TOKEN_TYPE,
    AuthorizationCodeGrant,
    ClientCredentialsGrant,
    JWTBearerGrant,
    RefreshTokenGrant,
    TokenExchangeGrant,
    load_private_key,
)
from eventlog_sdk.oauth2.models import ActorParams, GrantKind

NOW = datetime(2026, 1, 15, 12, 0, 0, tzinfo=UTC)


def decode(assertion, rsa_key, audience):
    return jwt.decode(
        assertion,
        rsa_key.public_key(),
        algorithms=["RS256"],
        audience=audience,
        options={"verify_exp": False},
    )


def skew_error(description="Please check the 'exp' claim.", date="Thu, 15 Jan 2026 12:05:00 GMT"):
    headers = {"Date": date} if date else {}
    return ExpiredAuthError(
        "Token endpoint rejected grant: invalid_grant",
        error_code="invalid_grant",
        description=description,
        status_code=400,
        response_headers=headers,
    )


class TestSimpleGrants:
    def test_authorization_code(self):
        grant = AuthorizationCodeGrant("the-code")
        assert grant.build_params(NOW) == {"grant_type": "authorization_code", "code": "the-code"}
        assert grant.requires_refresh_token

    def test_refresh_token(self):
        grant = RefreshTokenGrant("r1")
        assert grant.build_params(NOW) == {"grant_type": "refresh_token", "refresh_token": "r1"}
        assert grant.kind is GrantKind.REFRESH_TOKEN

    @pytest.mark.parametrize("grant_class", [AuthorizationCodeGrant, RefreshTokenGrant])
    def test_empty_input_rejected(self, grant_class):
        with pytest.raises(ValueError):
            grant_class("")

    def test_client_credentials_without_subject(self):
        assert ClientCredentialsGrant().build_params(NOW) == {"grant_type": "client_credentials"}

    def test_client_credentials_with_subject(self):
        params = ClientCredentialsGrant("enterprise", "11111").build_params(NOW)
        assert params == {
            "grant_type": "client_credentials",
            "box_subject_type": "enterprise",
            "box_subject_id": "11111",
        }

    def test_client_credentials_bad_subject(self):
        with pytest.raises(InvalidConfigurationError):
            ClientCredentialsGrant("group", "1")
        with pytest.raises(InvalidConfigurationError):
            ClientCredentialsGrant("user", None)

    def test_default_translate_error_is_identity(self):
        error = TransientError("x")
        assert RefreshTokenGrant("r").translate_error(error, NOW) is error


class TestJWTBearerGrant:
    def test_claims_and_header(self, app_config, rsa_key):
        grant = JWTBearerGrant(app_config, "enterprise", "11111")
        params = grant.build_params(NOW)

        assert params["grant_type"] == GrantKind.JWT_BEARER.value
        claims = decode(params["assertion"], rsa_key, app_config.token_url)
        assert claims["iss"] == "client-id"
        assert claims["sub"] == "11111"
        assert claims["box_sub_type"] == "enterprise"
        assert claims["exp"] == int(NOW.timestamp()) + 30
        assert "iat" not in claims
        assert jwt.get_unverified_header(params["assertion"])["kid"] == "key-1"

    def test_fresh_jti_per_assertion(self, app_config, rsa_key):
        grant = JWTBearerGrant(app_config, "user", "42")
        first = decode(grant.build_params(NOW)["assertion"], rsa_key, app_config.token_url)
        second = decode(grant.build_params(NOW)["assertion"], rsa_key, app_config.token_url)
        assert first["jti"] != second["jti"]

    def test_iat_when_verify_timestamp(self, rsa_pem, rsa_key):
        config = ClientConfig(
            client_id="client-id",
            client_secret="secret",
            app_auth=AppAuthConfig(key_id="k", private_key=rsa_pem, verify_timestamp=True, expiration_time=45),
        )
        claims = decode(
            JWTBearerGrant(config, "enterprise", "1").build_params(NOW)["assertion"], rsa_key, config.token_url
        )
        assert claims["iat"] == int(NOW.timestamp())
        assert claims["exp"] == int(NOW.timestamp()) + 45

    def test_encrypted_key(self, rsa_key):
        encrypted = rsa_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.BestAvailableEncryption(b"hunter2"),
        ).decode()
        assert load_private_key(encrypted, "hunter2") is not None
        with pytest.raises(InvalidConfigurationError):
            load_private_key(encrypted, "wrong")

    def test_requires_app_auth(self):
        with pytest.raises(InvalidConfigurationError):
            JWTBearerGrant(ClientConfig(client_id="id", client_secret="s"), "enterprise", "1")

    def test_clock_skew_translated_once(self, app_config, rsa_key):
        grant = JWTBearerGrant(app_config, "enterprise", "11111")
        grant.start_exchange()

        translated = grant.translate_error(skew_error(), NOW)

        assert isinstance(translated, RetryableJWTAuthError)
        assert translated.is_retryable
        assert grant.clock_offset == timedelta(minutes=5)

        # The next assertion is computed on the server's clock
        claims = decode(grant.build_params(NOW)["assertion"], rsa_key, app_config.token_url)
        assert claims["exp"] == int((NOW + timedelta(minutes=5)).timestamp()) + 30

        # Only once per exchange
        second = skew_error()
        assert grant.translate_error(second, NOW) is second

        grant.start_exchange()
        assert isinstance(grant.translate_error(skew_error(), NOW), RetryableJWTAuthError)

    def test_jti_description_is_skew(self, app_config):
        grant = JWTBearerGrant(app_config, "enterprise", "11111")
        grant.start_exchange()
        error = skew_error(description="Please check the 'jti' claim.")
        assert isinstance(grant.translate_error(error, NOW), RetryableJWTAuthError)

    def test_not_skew_without_date_header(self, app_config):
        grant = JWTBearerGrant(app_config, "enterprise", "11111")
        grant.start_exchange()
        error = skew_error(date=None)
        assert grant.translate_error(error, NOW) is error

    def test_other_invalid_grant_not_skew(self, app_config):
        grant = JWTBearerGrant(app_config, "enterprise", "11111")
        grant.start_exchange()
        error = skew_error(description="Invalid signature")
        assert grant.translate_error(error, NOW) is error


class TestTokenExchangeGrant:
    def test_downscope_params(self):
        grant = TokenExchangeGrant(
            "parent-token",
            ["item_preview", "item_download"],
            resource="https://api.box.com/2.0/files/123",
            shared_link="https://app.box.com/s/abc",
        )
        params = grant.build_params(NOW)
        assert params == {
            "grant_type": GrantKind.TOKEN_EXCHANGE.value,
            "subject_token_type": ACCESS_TOKEN_TYPE,
            "subject_token": "parent-token",
            "scope": "item_preview item_download",
            "resource": "https://api.box.com/2.0/files/123",
            "box_shared_link": "https://app.box.com/s/abc",
        }

    def test_actor_token(self):
        grant = TokenExchangeGrant(
            "parent-token",
            "item_preview",
            actor=ActorParams(id="ext-1", name="Jane"),
            client_id="client-id",
            audience="https://api.box.com/oauth2/token",
        )
        params = grant.build_params(NOW)

        assert params["actor_token_type"] == ACTOR_TOKEN_TYPE
        claims = jwt.decode(params["actor_token"], options={"verify_signature": False})
        assert claims["sub"] == "ext-1"
        assert claims["name"] == "Jane"
        assert claims["box_sub_type"] == "external"
        assert claims["iss"] == "client-id"

    def test_requires_scope(self):
        with pytest.raises(ValueError):
            TokenExchangeGrant("parent-token", [])

    def test_actor_requires_client_id(self):
        with pytest.raises(InvalidConfigurationError):
            TokenExchangeGrant("t", "item_preview", actor=ActorParams(id="1", name="n"))
