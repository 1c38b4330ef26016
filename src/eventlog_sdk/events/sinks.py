"""
Consumer interface for event streams.

A stream pushes every event into a sink and awaits the write before fetching
the next chunk, so a slow sink throttles the stream. Out-of-band signals
(errors, waits, state changes, close) arrive through the on_* hooks.
"""

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from eventlog_sdk.events.state_store import EnterpriseStreamState

logger = logging.getLogger(__name__)

Event = dict[str, Any]


@runtime_checkable
class EventSink(Protocol):
    """Receives events and stream notifications."""

    async def write(self, event: Event) -> None:
        """Deliver one event. The stream does not fetch again until this returns."""
        ...

    async def on_error(self, error: Exception) -> None:
        """Non-fatal failure; the stream keeps running."""
        ...

    async def on_wait(self, delay: float) -> None:
        """The stream is about to sleep for ``delay`` seconds."""
        ...

    async def on_state(self, state: EnterpriseStreamState) -> None:
        """The enterprise stream cursor advanced."""
        ...

    async def close(self) -> None:
        """No more events will be written."""
        ...


class BaseEventSink:
    """No-op hooks; subclasses override what they need."""

    async def write(self, event: Event) -> None:
        pass

    async def on_error(self, error: Exception) -> None:
        pass

    async def on_wait(self, delay: float) -> None:
        pass

    async def on_state(self, state: EnterpriseStreamState) -> None:
        pass

    async def close(self) -> None:
        pass


_CLOSED = object()


class QueueEventSink(BaseEventSink):
    """
    Bounded asyncio queue that can be consumed with ``async for``.

    write() blocks while the queue is full, which holds the stream before
    its next fetch.

    Usage:
        sink = QueueEventSink(maxsize=100)
        stream = EventStream(events_api, sink)
        await stream.start()
        async for event in sink:
            ...
    """

    def __init__(self, maxsize: int = 1000):
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.errors: list[Exception] = []
        self.waits: list[float] = []
        self.states: list[EnterpriseStreamState] = []
        self.closed = False

    async def write(self, event: Event) -> None:
        await self._queue.put(event)

    async def on_error(self, error: Exception) -> None:
        self.errors.append(error)

    async def on_wait(self, delay: float) -> None:
        self.waits.append(delay)

    async def on_state(self, state: EnterpriseStreamState) -> None:
        self.states.append(state)

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        await self._queue.put(_CLOSED)

    def qsize(self) -> int:
        return self._queue.qsize()

    async def get(self) -> Event | None:
        """Next event, or None once the sink is closed and drained."""
        item = await self._queue.get()
        if item is _CLOSED:
            # Leave the marker for other consumers
            self._queue.put_nowait(_CLOSED)
            return None
        return item

    def __aiter__(self) -> AsyncIterator[Event]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[Event]:
        while True:
            event = await self.get()
            if event is None:
                return
            yield event


class JsonLinesEventSink(BaseEventSink):
    """Appends each event to a file as one JSON object per line."""

    def __init__(self, path: str | Path):
        self._path = Path(path).expanduser()
        self._file = None
        self.count = 0

    @property
    def path(self) -> Path:
        return self._path

    async def write(self, event: Event) -> None:
        if self._file is None:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._file = open(self._path, "a", encoding="utf-8")
        self._file.write(json.dumps(event, default=str) + "\n")
        self.count += 1

    async def on_wait(self, delay: float) -> None:
        # Flush buffered events while the stream is idle
        if self._file is not None:
            self._file.flush()

    async def on_error(self, error: Exception) -> None:
        logger.warning(f"Event stream error: {error}", extra={"path": str(self._path)})

    async def close(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None
            logger.debug(
                "Closed JSON lines sink",
                extra={"path": str(self._path), "events_delivered": self.count},
            )


__all__ = [
    "Event",
    "EventSink",
    "BaseEventSink",
    "QueueEventSink",
    "JsonLinesEventSink",
]
