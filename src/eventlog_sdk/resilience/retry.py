"""
Backoff policy shared by the API requester and the token manager.

An operation is attempted up to ``max_attempts`` times. Errors are first
normalized to the SDKError hierarchy, then:
- transient errors (5xx, 429, network) wait and try again
- auth errors (API 401) call ``on_auth_error`` so the next attempt sends a
  fresh token, then try again
- everything else, including expired credentials, is raised at once
"""

import asyncio
import inspect
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from functools import wraps
from typing import TYPE_CHECKING

from eventlog_sdk.errors.exceptions import (
    SDKError,
    ThrottlingError,
    is_retryable_error,
    wrap_exception,
)

if TYPE_CHECKING:
    from eventlog_sdk.config.config import ClientConfig

logger = logging.getLogger(__name__)

AuthErrorCallback = Callable[[], None] | Callable[[], Awaitable[None]]


@dataclass
class RetryConfig:
    """How many times to attempt an operation and how long to wait in between."""

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    exponential_base: float = 2.0

    # Honor the server's Retry-After on 429 responses
    respect_retry_after: bool = True

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")

    @classmethod
    def from_client_config(cls, config: "ClientConfig") -> "RetryConfig":
        """Build the retry policy for a client: one attempt plus num_max_retries."""
        return cls(
            max_attempts=config.num_max_retries + 1,
            base_delay=config.retry_interval_seconds,
            max_delay=max(config.retry_interval_seconds, 60.0),
        )

    def get_delay(self, attempt: int, error: Exception | None = None) -> float:
        """
        Seconds to wait before the attempt after ``attempt`` (0-indexed).

        A server-supplied Retry-After wins when present. Otherwise the delay
        grows exponentially with equal jitter: half fixed, half random, so
        clients that failed together do not retry together.
        """
        if self.respect_retry_after and isinstance(error, ThrottlingError) and error.retry_after:
            return min(error.retry_after, self.max_delay)

        backoff = self.base_delay * (self.exponential_base**attempt)
        delay = backoff / 2 + random.uniform(0, backoff / 2)
        return min(delay, self.max_delay)

    def should_retry(self, error: Exception, attempt: int) -> bool:
        """Whether a failure of 0-indexed ``attempt`` earns another attempt."""
        if attempt >= self.max_attempts - 1:
            return False
        return is_retryable_error(error)


def _describe(error: SDKError) -> dict[str, object]:
    return {
        "error_type": type(error).__name__,
        "error_category": error.category.value,
        "status_code": error.status_code,
        "error_message": str(error)[:200],
    }


async def _notify_auth_error(callback: AuthErrorCallback) -> None:
    if inspect.iscoroutinefunction(callback):
        await callback()
    else:
        callback()


def with_retry_async(
    config: RetryConfig | None = None,
    on_auth_error: AuthErrorCallback | None = None,
):
    """
    Retry an async operation according to ``config``.

    Errors outside the SDKError hierarchy are wrapped (original kept as
    ``cause``) so callers only ever see SDK exceptions.

    Usage:
        @with_retry_async(config=retry_config, on_auth_error=session.invalidate)
        async def send():
            ...
    """
    config = config or RetryConfig()

    def decorator(func: Callable):
        operation = func.__name__

        @wraps(func)
        async def wrapper(*args, **kwargs):
            attempt = 0
            while True:
                try:
                    result = await func(*args, **kwargs)
                except Exception as e:
                    error = wrap_exception(e)

                    if error.should_refresh_auth and on_auth_error is not None:
                        logger.info(f"{operation}: auth rejected, dropping cached token")
                        await _notify_auth_error(on_auth_error)

                    if not config.should_retry(error, attempt):
                        if error.is_retryable:
                            logger.error(
                                f"{operation}: giving up after {attempt + 1} attempts",
                                extra={"operation": operation, **_describe(error)},
                            )
                        else:
                            logger.warning(
                                f"{operation}: not retryable: {error}",
                                extra={"operation": operation, **_describe(error)},
                            )
                        if error is e:
                            raise
                        raise error from e

                    delay = config.get_delay(attempt, error)
                    logger.warning(
                        f"{operation}: attempt {attempt + 1}/{config.max_attempts} failed, "
                        f"retrying in {delay:.2f}s",
                        extra={"operation": operation, "delay_seconds": round(delay, 2), **_describe(error)},
                    )
                    attempt += 1
                    await asyncio.sleep(delay)
                    continue

                if attempt:
                    logger.info(
                        f"{operation}: succeeded on attempt {attempt + 1}",
                        extra={"operation": operation, "attempt": attempt + 1},
                    )
                return result

        return wrapper

    return decorator


__all__ = [
    "RetryConfig",
    "with_retry_async",
]
