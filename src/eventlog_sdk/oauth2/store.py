"""Token stores for persisting a session's token across processes.

Contract:
- read() returns the stored Token, or None when nothing is stored
- read/write/clear raise TokenStoreError on failure, never return None for errors
- write() and clear() are idempotent

Usage:
    store = JsonFileTokenStore("~/.eventlog/token.json")
    session = PersistentSession(token, config, endpoint, store=store)
"""

import json
import logging
import os
from pathlib import Path
from typing import Protocol, runtime_checkable

from eventlog_sdk.oauth2.exceptions import TokenStoreError
from eventlog_sdk.oauth2.models import Token

logger = logging.getLogger(__name__)


@runtime_checkable
class TokenStore(Protocol):
    """Durable storage for a single Token."""

    async def read(self) -> Token | None:
        """Return the stored token, or None if absent.

        Raises:
            TokenStoreError: If the store cannot be read
        """
        ...

    async def write(self, token: Token) -> None:
        """Replace the stored token."""
        ...

    async def clear(self) -> None:
        """Remove the stored token; no-op when already empty."""
        ...


class MemoryTokenStore:
    """In-process token store. Useful for tests and short-lived tools."""

    def __init__(self, token: Token | None = None):
        self._token = token

    async def read(self) -> Token | None:
        return self._token

    async def write(self, token: Token) -> None:
        self._token = token

    async def clear(self) -> None:
        self._token = None


class JsonFileTokenStore:
    """Local JSON file token store.

    Uses atomic write pattern (write to temp file, then os.replace) so a
    reader never observes a half-written token.
    """

    def __init__(self, path: str | Path):
        self._path = Path(path).expanduser()

        logger.debug(
            "JsonFileTokenStore initialized",
            extra={"path": str(self._path)},
        )

    @property
    def path(self) -> Path:
        return self._path

    async def read(self) -> Token | None:
        if not self._path.exists():
            return None

        try:
            with open(self._path) as f:
                data = json.load(f)
            return Token.from_dict(data)
        except (OSError, json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            raise TokenStoreError(
                f"Failed to read token store {self._path}", cause=e
            ) from e

    async def write(self, token: Token) -> None:
        temp_path = self._path.with_suffix(".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with open(temp_path, "w") as f:
                json.dump(token.to_dict(), f, indent=2)
            os.chmod(temp_path, 0o600)

            # Atomic replace
            os.replace(temp_path, self._path)
        except OSError as e:
            raise TokenStoreError(
                f"Failed to write token store {self._path}", cause=e
            ) from e

        logger.debug("Saved token to JSON file", extra={"path": str(self._path)})

    async def clear(self) -> None:
        try:
            self._path.unlink(missing_ok=True)
        except OSError as e:
            raise TokenStoreError(
                f"Failed to clear token store {self._path}", cause=e
            ) from e


__all__ = [
    "TokenStore",
    "MemoryTokenStore",
    "JsonFileTokenStore",
]
