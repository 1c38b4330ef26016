"""
Tests for retry logic with exponential backoff and jitter.

Review checklist:
    [x] Jitter stays within the equal-jitter band
    [x] Respects Retry-After from ThrottlingError
    [x] Auth errors invoke the refresh callback before retrying
    [x] Terminal credential errors are never retried
"""

from unittest.mock import Mock

import pytest

from eventlog_sdk.config.config import ClientConfig
from eventlog_sdk.errors.exceptions import (
    AuthError,
    PermanentError,
    SDKError,
    ThrottlingError,
    TransientError,
)
from eventlog_sdk.oauth2.exceptions import ExpiredAuthError
from eventlog_sdk.resilience.retry import RetryConfig, with_retry_async

FAST = RetryConfig(max_attempts=3, base_delay=0.001, max_delay=0.005)


class TestRetryConfig:
    """Tests for RetryConfig."""

    def test_default_values(self):
        config = RetryConfig()
        assert config.max_attempts == 3
        assert config.base_delay == 1.0
        assert config.max_delay == 30.0
        assert config.respect_retry_after is True

    def test_rejects_zero_attempts(self):
        with pytest.raises(ValueError):
            RetryConfig(max_attempts=0)

    def test_from_client_config(self):
        """One attempt plus num_max_retries, backoff from retry_interval_seconds."""
        client = ClientConfig(num_max_retries=5, retry_interval_seconds=2)
        config = RetryConfig.from_client_config(client)
        assert config.max_attempts == 6
        assert config.base_delay == 2.0

    def test_exponential_backoff_with_equal_jitter(self):
        config = RetryConfig(base_delay=1.0, exponential_base=2.0, max_delay=30.0)
        for _ in range(20):
            assert 0.5 <= config.get_delay(0) <= 1.0
            assert 1.0 <= config.get_delay(1) <= 2.0
            assert 2.0 <= config.get_delay(2) <= 4.0

    def test_delay_capped(self):
        config = RetryConfig(base_delay=10.0, max_delay=15.0)
        assert config.get_delay(5) == 15.0

    def test_retry_after_respected(self):
        config = RetryConfig(max_delay=60.0)
        assert config.get_delay(0, ThrottlingError("429", retry_after=7)) == 7

    def test_should_retry(self):
        config = RetryConfig(max_attempts=3)
        assert config.should_retry(TransientError("x"), 0)
        assert not config.should_retry(TransientError("x"), 2)
        assert not config.should_retry(PermanentError("x"), 0)
        assert not config.should_retry(ExpiredAuthError("x"), 0)

    def test_retry_after_ignored_when_disabled(self):
        config = RetryConfig(base_delay=1.0, respect_retry_after=False)
        assert config.get_delay(0, ThrottlingError("429", retry_after=7)) <= 1.0


def flaky(outcomes):
    """Async operation that raises or returns the scripted outcomes in order."""
    calls = []

    async def operation():
        calls.append(1)
        outcome = outcomes[len(calls) - 1]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    operation.calls = calls
    return operation


class TestWithRetryAsync:
    """Tests for the with_retry_async decorator."""

    @pytest.mark.asyncio
    async def test_success_first_try(self):
        operation = flaky(["ok"])
        assert await with_retry_async(config=FAST)(operation)() == "ok"
        assert len(operation.calls) == 1

    @pytest.mark.asyncio
    async def test_transient_then_success(self):
        operation = flaky([TransientError("503"), TransientError("503"), "ok"])
        assert await with_retry_async(config=FAST)(operation)() == "ok"
        assert len(operation.calls) == 3

    @pytest.mark.asyncio
    async def test_exhausted_raises_last_error(self):
        operation = flaky([TransientError("still down")] * 3)
        with pytest.raises(TransientError, match="still down"):
            await with_retry_async(config=FAST)(operation)()
        assert len(operation.calls) == 3

    @pytest.mark.asyncio
    async def test_permanent_not_retried(self):
        operation = flaky([PermanentError("400"), "ok"])
        with pytest.raises(PermanentError):
            await with_retry_async(config=FAST)(operation)()
        assert len(operation.calls) == 1

    @pytest.mark.asyncio
    async def test_expired_auth_not_retried_and_no_refresh(self):
        on_auth_error = Mock()
        operation = flaky([ExpiredAuthError("invalid_grant"), "ok"])
        with pytest.raises(ExpiredAuthError):
            await with_retry_async(config=FAST, on_auth_error=on_auth_error)(operation)()
        assert len(operation.calls) == 1
        on_auth_error.assert_not_called()

    @pytest.mark.asyncio
    async def test_auth_error_invokes_callback_then_retries(self):
        on_auth_error = Mock()
        operation = flaky([AuthError("401"), "ok"])
        assert await with_retry_async(config=FAST, on_auth_error=on_auth_error)(operation)() == "ok"
        on_auth_error.assert_called_once()

    @pytest.mark.asyncio
    async def test_async_auth_callback(self):
        refreshed = []

        async def on_auth_error():
            refreshed.append(True)

        operation = flaky([AuthError("401"), "ok"])
        assert await with_retry_async(config=FAST, on_auth_error=on_auth_error)(operation)() == "ok"
        assert refreshed == [True]

    @pytest.mark.asyncio
    async def test_unknown_errors_wrapped(self):
        operation = flaky([RuntimeError("weird")])
        with pytest.raises(SDKError) as exc_info:
            await with_retry_async(config=RetryConfig(max_attempts=1))(operation)()
        assert isinstance(exc_info.value.cause, RuntimeError)

    @pytest.mark.asyncio
    async def test_connection_errors_wrapped_and_retried(self):
        operation = flaky([ConnectionResetError("connection reset"), "ok"])
        assert await with_retry_async(config=FAST)(operation)() == "ok"
        assert len(operation.calls) == 2

    @pytest.mark.asyncio
    async def test_exhausted_connection_errors_raise_transient(self):
        operation = flaky([ConnectionResetError("connection reset")] * 3)
        with pytest.raises(TransientError) as exc_info:
            await with_retry_async(config=FAST)(operation)()
        assert isinstance(exc_info.value.cause, ConnectionResetError)
        assert len(operation.calls) == 3
