"""Token manager with caching, proactive refresh and single-flight coordination."""

import asyncio
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from eventlog_sdk.errors.exceptions import SDKError
from eventlog_sdk.oauth2.endpoint import TokenEndpoint, validate_token_response
from eventlog_sdk.oauth2.exceptions import ExpiredAuthError, TokenAcquisitionError
from eventlog_sdk.oauth2.grants import BaseGrant, RefreshTokenGrant
from eventlog_sdk.oauth2.models import Token, TokenRequestOptions
from eventlog_sdk.oauth2.store import TokenStore
from eventlog_sdk.resilience.retry import RetryConfig, with_retry_async

logger = logging.getLogger(__name__)

# Refresh when the token is this close to expiry
DEFAULT_REFRESH_BUFFER_SECONDS = 60

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(UTC)


class TokenManager:
    """
    Produces a currently valid Token for one credential set.

    The cached token is returned without any network call while it is outside
    the refresh buffer. Otherwise a refresh is started, and every caller that
    arrives while it runs awaits the same asyncio.Task, so exactly one token
    endpoint exchange is in flight per manager. The task clears the in-flight
    marker as its last step, after the cache is updated, so a caller can never
    elect a second leader against a stale marker.

    Refresh grant selection:
        - cached (or invalidated) token with a refresh token -> refresh_token grant
        - otherwise the configured grant (client credentials, JWT bearer, ...)
        - neither -> TokenAcquisitionError

    Usage:
        manager = TokenManager(endpoint, grant=ClientCredentialsGrant("enterprise", "123"))
        token = await manager.get_token()
        headers = {"Authorization": f"Bearer {token.access_token}"}
    """

    def __init__(
        self,
        endpoint: TokenEndpoint,
        grant: BaseGrant | None = None,
        store: TokenStore | None = None,
        refresh_buffer_seconds: float = DEFAULT_REFRESH_BUFFER_SECONDS,
        stale_buffer_seconds: float = 0,
        retry_config: RetryConfig | None = None,
        revocable: bool = True,
        clock: Clock | None = None,
        token: Token | None = None,
    ):
        """
        Initialize token manager.

        Args:
            endpoint: Token endpoint collaborator
            grant: Grant used for initial acquisition and, for grants without
                refresh tokens, for every re-acquisition
            store: Optional durable copy of the token
            refresh_buffer_seconds: Time before expiry that forces a refresh
            stale_buffer_seconds: Extra window before the refresh buffer in which
                the current token is still returned but a background refresh starts
            retry_config: Backoff policy for transient token endpoint failures
            revocable: Whether revoke() calls the revoke endpoint
            clock: Returns the current UTC time (injectable for tests)
            token: Initial token (e.g. a fixed or previously persisted token)
        """
        self._endpoint = endpoint
        self._grant = grant
        self._store = store
        self.refresh_buffer_seconds = refresh_buffer_seconds
        self.stale_buffer_seconds = stale_buffer_seconds
        self._retry_config = retry_config or RetryConfig()
        self._revocable = revocable
        self._clock = clock or utc_now

        self._token: Token | None = token
        self._refresh_token_hint: str | None = None
        self._inflight: asyncio.Task | None = None
        self._store_load: asyncio.Task | None = None
        self._generation = 0
        self._store_loaded = store is None or token is not None
        self._exchange_count = 0

        logger.debug(
            f"Initialized TokenManager with {refresh_buffer_seconds}s refresh buffer",
            extra={"grant_type": grant.kind.value if grant else None},
        )

    @property
    def token(self) -> Token | None:
        """Currently cached token, without validity checks."""
        return self._token

    @property
    def exchange_count(self) -> int:
        """Number of token endpoint exchanges started by this manager."""
        return self._exchange_count

    @property
    def refresh_in_flight(self) -> bool:
        return self._inflight is not None

    async def get_token(self, options: TokenRequestOptions | None = None) -> Token:
        """
        Get a valid token, acquiring or refreshing it if needed.

        Args:
            options: Token request options for any exchange this call triggers

        Returns:
            Token outside the refresh buffer

        Raises:
            ExpiredAuthError: Credentials can no longer mint tokens
            TransientError: Token endpoint unavailable after all retries
        """
        await self._load_from_store()

        token = self._token
        now = self._clock()
        if token is not None and not token.is_expired(self.refresh_buffer_seconds, now):
            if self.stale_buffer_seconds and token.is_expired(
                self.refresh_buffer_seconds + self.stale_buffer_seconds, now
            ):
                logger.debug("Token is stale, refreshing in background")
                self._start_refresh(options)
            return token

        return await asyncio.shield(self._start_refresh(options))

    async def refresh(self, options: TokenRequestOptions | None = None) -> Token:
        """Force a refresh regardless of cached validity (joins one in flight)."""
        await self._load_from_store()
        return await asyncio.shield(self._start_refresh(options))

    def invalidate(self) -> None:
        """
        Drop the cached access token (e.g. after an API 401).

        The refresh token is kept so the next call refreshes rather than
        re-authenticating from scratch.
        """
        if self._token is not None:
            self._refresh_token_hint = self._token.refresh_token
            self._token = None
            logger.debug("Cached access token invalidated")

    async def set_token(self, token: Token, persist: bool = False) -> None:
        """
        Seed the cache with a token obtained out of band.

        Args:
            token: Token to cache
            persist: Also write it to the token store
        """
        self._generation += 1
        self._inflight = None
        self._token = token
        self._refresh_token_hint = None
        self._store_loaded = True
        if persist and self._store is not None:
            await self._store.write(token)

    async def revoke(self, options: TokenRequestOptions | None = None) -> None:
        """
        Discard the cached token and revoke it at the platform.

        The next get_token() performs a fresh acquisition through the
        configured grant. A refresh already in flight is not cancelled, but
        its result is not cached.
        """
        token = self._token
        refresh_hint = self._refresh_token_hint

        self._generation += 1
        self._inflight = None
        self._token = None
        self._refresh_token_hint = None
        self._store_loaded = True
        if self._store is not None:
            await self._store.clear()

        if not self._revocable:
            return

        target = (token.refresh_token or token.access_token) if token else refresh_hint
        if target:
            await self._endpoint.revoke(target, options)
            logger.info("Token revoked")

    async def exchange(
        self,
        grant: BaseGrant,
        options: TokenRequestOptions | None = None,
    ) -> Token:
        """
        One-shot exchange that never touches the cached token.

        Used for downscoping: the returned Token is independent of this manager.
        """
        return await self._exchange(grant, options)

    def get_cached_token_info(self) -> dict[str, Any] | None:
        """
        Get information about the cached token for diagnostics.

        Returns:
            Dict with token info, or None if no token cached
        """
        token = self._token
        if token is None:
            return None

        now = self._clock()
        return {
            "expires_at": token.expires_at.isoformat(),
            "remaining_seconds": token.remaining_seconds(now),
            "is_expired": token.is_expired(self.refresh_buffer_seconds, now),
            "token_type": token.token_type,
            "scopes": sorted(token.scopes),
            "refreshable": token.refresh_token is not None,
            "acquired_via": token.acquired_via.value if token.acquired_via else None,
        }

    async def close(self) -> None:
        """Cancel any background refresh or store read and drop the cached token."""
        for task in (self._inflight, self._store_load):
            if task is None or task.done():
                continue
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.debug(f"Refresh failed during close: {e}")
        self._inflight = None
        self._store_load = None
        self._token = None
        logger.debug("TokenManager closed")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _load_from_store(self) -> None:
        """Read the store once; concurrent first callers share one read."""
        if self._store_loaded:
            return
        if self._store_load is None:
            self._store_load = asyncio.create_task(self._read_store())
            self._store_load.add_done_callback(self._on_task_done)
        await asyncio.shield(self._store_load)

    async def _read_store(self) -> None:
        generation = self._generation
        try:
            # A failed read leaves the store unloaded so the next call reads again
            stored = await self._store.read()
        finally:
            if self._store_load is asyncio.current_task():
                self._store_load = None

        if generation != self._generation:
            return
        self._store_loaded = True
        if stored is not None and self._token is None:
            self._token = stored
            logger.debug("Loaded token from store", extra={"expires_at": stored.expires_at})

    def _start_refresh(self, options: TokenRequestOptions | None) -> asyncio.Task:
        """Return the in-flight refresh task, creating it if there is none."""
        if self._inflight is None:
            # Bind the generation now; revoke() may run before the task starts
            self._inflight = asyncio.create_task(self._run_refresh(options, self._generation))
            self._inflight.add_done_callback(self._on_task_done)
        return self._inflight

    @staticmethod
    def _on_task_done(task: asyncio.Task) -> None:
        # Background tasks may have no waiter; their callers see or log the failure
        if not task.cancelled():
            task.exception()

    async def _run_refresh(self, options: TokenRequestOptions | None, generation: int) -> Token:
        try:
            try:
                token = await self._acquire(options)
            except ExpiredAuthError as e:
                logger.warning(
                    f"Credentials rejected, clearing cached token: {e}",
                    extra={"error_code": e.error_code, "status_code": e.status_code},
                )
                if generation == self._generation:
                    self._token = None
                    self._refresh_token_hint = None
                    if self._store is not None:
                        await self._store.clear()
                raise
            except Exception as e:
                logger.warning(f"Token refresh failed: {e}")
                raise

            if generation != self._generation:
                logger.info("Token changed during refresh, not caching refreshed token")
                return token

            self._token = token
            self._refresh_token_hint = None
            logger.info(
                f"Token valid until {token.expires_at.isoformat()}",
                extra={
                    "grant_type": token.acquired_via.value if token.acquired_via else None,
                    "remaining_seconds": token.remaining_seconds(self._clock()),
                },
            )
            if self._store is not None:
                await self._store.write(token)
            return token
        finally:
            if self._inflight is asyncio.current_task():
                self._inflight = None

    async def _acquire(self, options: TokenRequestOptions | None) -> Token:
        current = self._token
        refresh_token = current.refresh_token if current else self._refresh_token_hint

        if refresh_token:
            try:
                return await self._exchange(RefreshTokenGrant(refresh_token), options)
            except ExpiredAuthError:
                recovered = await self._recover_from_store(refresh_token, options)
                if recovered is None:
                    raise
                return recovered

        if self._grant is None:
            raise TokenAcquisitionError(
                "No refresh token or grant available to obtain a token"
            )
        return await self._exchange(self._grant, options)

    async def _recover_from_store(
        self,
        failed_refresh_token: str,
        options: TokenRequestOptions | None,
    ) -> Token | None:
        """
        Adopt a token another process refreshed into the shared store.

        Returns None when the store holds nothing newer than what just failed.
        """
        if self._store is None:
            return None

        stored = await self._store.read()
        if (
            stored is None
            or not stored.refresh_token
            or stored.refresh_token == failed_refresh_token
        ):
            return None

        logger.info("Refresh token rejected, adopting newer token from store")
        if not stored.is_expired(self.refresh_buffer_seconds, self._clock()):
            return stored
        return await self._exchange(RefreshTokenGrant(stored.refresh_token), options)

    async def _exchange(
        self,
        grant: BaseGrant,
        options: TokenRequestOptions | None,
    ) -> Token:
        grant.start_exchange()
        self._exchange_count += 1

        @with_retry_async(config=self._retry_config)
        async def exchange_grant() -> Token:
            now = self._clock()
            params = grant.build_params(now)
            try:
                body = await self._endpoint.request_token(params, options)
            except SDKError as e:
                translated = grant.translate_error(e, now)
                if translated is e:
                    raise
                raise translated from e
            validate_token_response(body, grant.requires_refresh_token)
            return Token.from_response(body, grant.kind, now)

        logger.debug("Requesting token", extra={"grant_type": grant.kind.value})
        return await exchange_grant()


__all__ = [
    "TokenManager",
    "DEFAULT_REFRESH_BUFFER_SECONDS",
    "utc_now",
]
