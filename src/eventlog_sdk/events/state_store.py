"""State stores for enterprise event stream cursors.

Persists the stream state (position, date range, event type filter) so an
enterprise stream can resume after a restart.

Contract:
- load() returns the saved state, or None when nothing has been saved
- load/save/clear raise StreamStateStoreError on failure, never return None for errors

Usage:
    store = JsonStreamStateStore("state/admin_logs.json")
    stream = EnterpriseEventStream(events_api, sink, options, state_store=store)
"""

import json
import logging
import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Protocol, runtime_checkable

from eventlog_sdk.errors.exceptions import PermanentError

logger = logging.getLogger(__name__)


class StreamStateStoreError(PermanentError):
    """Stream state could not be read or written."""

    pass


@dataclass
class EnterpriseStreamState:
    """Cursor and filters of an enterprise event stream.

    stream_position stays None until the first non-empty fetch, so the
    start/end dates are kept alongside it.
    """

    stream_position: str | int | None = None
    start_date: str | None = None
    end_date: str | None = None
    event_type_filter: list[str] | None = None

    def to_dict(self) -> dict:
        """Convert to dict for serialization."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "EnterpriseStreamState":
        """Create from dict after deserialization."""
        event_types = data.get("event_type_filter")
        return cls(
            stream_position=data.get("stream_position"),
            start_date=data.get("start_date"),
            end_date=data.get("end_date"),
            event_type_filter=list(event_types) if event_types is not None else None,
        )


@runtime_checkable
class StreamStateStore(Protocol):
    """Durable storage for one enterprise stream's state."""

    async def load(self) -> EnterpriseStreamState | None:
        """Load the saved state, or None if nothing is saved.

        Raises:
            StreamStateStoreError: If the store cannot be read
        """
        ...

    async def save(self, state: EnterpriseStreamState) -> None:
        ...

    async def clear(self) -> None:
        ...


class MemoryStreamStateStore:
    """In-process state store."""

    def __init__(self, state: EnterpriseStreamState | None = None):
        self._state = state
        self.save_count = 0

    async def load(self) -> EnterpriseStreamState | None:
        return self._state

    async def save(self, state: EnterpriseStreamState) -> None:
        self._state = EnterpriseStreamState.from_dict(state.to_dict())
        self.save_count += 1

    async def clear(self) -> None:
        self._state = None


class JsonStreamStateStore:
    """Local JSON file state store.

    Uses atomic write pattern (write to temp file, then os.replace).
    """

    def __init__(self, path: str | Path):
        self._path = Path(path).expanduser()

        logger.debug(
            "JsonStreamStateStore initialized",
            extra={"path": str(self._path)},
        )

    @property
    def path(self) -> Path:
        return self._path

    async def load(self) -> EnterpriseStreamState | None:
        if not self._path.exists():
            logger.info("No stream state file found", extra={"path": str(self._path)})
            return None

        try:
            with open(self._path) as f:
                data = json.load(f)
            state = EnterpriseStreamState.from_dict(data)
        except (OSError, json.JSONDecodeError, AttributeError, TypeError) as e:
            raise StreamStateStoreError(
                f"Failed to read stream state {self._path}", cause=e
            ) from e

        logger.info(
            "Loaded stream state from JSON file",
            extra={"path": str(self._path), "stream_position": state.stream_position},
        )
        return state

    async def save(self, state: EnterpriseStreamState) -> None:
        temp_path = self._path.with_suffix(".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with open(temp_path, "w") as f:
                json.dump(state.to_dict(), f, indent=2)

            # Atomic replace
            os.replace(temp_path, self._path)
        except OSError as e:
            raise StreamStateStoreError(
                f"Failed to write stream state {self._path}", cause=e
            ) from e

        logger.debug(
            "Saved stream state to JSON file",
            extra={"path": str(self._path), "stream_position": state.stream_position},
        )

    async def clear(self) -> None:
        try:
            self._path.unlink(missing_ok=True)
        except OSError as e:
            raise StreamStateStoreError(
                f"Failed to clear stream state {self._path}", cause=e
            ) from e


__all__ = [
    "EnterpriseStreamState",
    "StreamStateStore",
    "StreamStateStoreError",
    "MemoryStreamStateStore",
    "JsonStreamStateStore",
]
