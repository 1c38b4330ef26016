"""
User event stream (long-poll).

State machine::

    IDLE -> POLLING -> DELIVERING -> POLLING -> ... -> CLOSED

Each iteration looks up a realtime server, long-polls it until it signals
new_change, fetches the chunk at the current position and delivers the
events not seen recently to the sink. Fetch and long-poll failures are
reported to the sink and retried after a fixed delay; only stop() or a
terminal credential error closes the stream.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from eventlog_sdk.events.dedup import DEFAULT_DEDUP_SIZE, DedupCache
from eventlog_sdk.events.sinks import EventSink
from eventlog_sdk.logging.context import set_log_context
from eventlog_sdk.oauth2.exceptions import ExpiredAuthError

logger = logging.getLogger(__name__)


class StreamStatus(str, Enum):
    IDLE = "idle"
    POLLING = "polling"
    DELIVERING = "delivering"
    CLOSED = "closed"


@dataclass
class EventStreamOptions:
    """Tuning for EventStream."""

    # Wait after a failed long poll or fetch
    retry_delay_seconds: float = 1.0
    dedup_size: int = DEFAULT_DEDUP_SIZE
    # Minimum time between two chunk fetches
    fetch_interval_seconds: float = 1.0

    def __post_init__(self):
        self.retry_delay_seconds = float(self.retry_delay_seconds)
        self.fetch_interval_seconds = float(self.fetch_interval_seconds)
        self.dedup_size = int(self.dedup_size)
        if self.retry_delay_seconds < 0 or self.fetch_interval_seconds < 0:
            raise ValueError("Stream delays must be >= 0")


class EventStream:
    """
    Long-poll consumer of a user's event log.

    Usage:
        sink = QueueEventSink()
        async with EventStream(events_api, sink) as stream:
            async for event in sink:
                handle(event)
    """

    def __init__(
        self,
        events_api,
        sink: EventSink,
        stream_position: str | int | None = None,
        options: EventStreamOptions | None = None,
    ):
        self._events_api = events_api
        self._sink = sink
        self._position = stream_position
        self.options = options or EventStreamOptions()

        self._dedup = DedupCache(self.options.dedup_size)
        self._long_poll_info = None
        self._long_poll_retries = 0
        self._last_fetch: float | None = None

        self._status = StreamStatus.IDLE
        self._resume_event = asyncio.Event()
        self._resume_event.set()
        self._shutdown_event = asyncio.Event()
        self._task: asyncio.Task | None = None

        self.events_delivered = 0
        self.events_dropped = 0
        self.error_count = 0

    @property
    def status(self) -> StreamStatus:
        return self._status

    @property
    def stream_position(self) -> str | int | None:
        return self._position

    @property
    def paused(self) -> bool:
        return not self._resume_event.is_set()

    @property
    def closed(self) -> bool:
        return self._status == StreamStatus.CLOSED

    async def start(self) -> asyncio.Task:
        """Run the stream in a background task."""
        if self._task is None:
            self._task = asyncio.create_task(self.run())
        return self._task

    def pause(self) -> None:
        """
        Stop polling before the next suspension point.

        A long poll or fetch already in flight completes, but no further one
        is started until resume().
        """
        if not self.closed:
            self._resume_event.clear()
            logger.info("Event stream paused", extra={"stream_position": self._position})

    def resume(self) -> None:
        """Continue from the last known position."""
        if self.paused:
            self._resume_event.set()
            logger.info("Event stream resumed", extra={"stream_position": self._position})

    async def stop(self) -> None:
        """Close the stream; the sink receives close()."""
        self._shutdown_event.set()
        self._resume_event.set()
        task = self._task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        await self._close()

    async def run(self) -> None:
        """Main polling loop; returns once the stream is closed."""
        set_log_context(stream="user")
        logger.info("Event stream started", extra={"stream_position": self._position})
        try:
            while not self._shutdown_event.is_set():
                if self.paused:
                    self._status = StreamStatus.IDLE
                    await self._resume_event.wait()
                    continue

                try:
                    await self._iterate()
                except ExpiredAuthError as e:
                    logger.error(
                        f"Event stream credentials expired, closing: {e}",
                        extra={"stream_position": self._position},
                    )
                    await self._sink.on_error(e)
                    break
                except Exception as e:
                    self.error_count += 1
                    logger.warning(
                        f"Event stream attempt failed: {e}",
                        extra={
                            "stream_position": self._position,
                            "error_type": type(e).__name__,
                            "delay_seconds": self.options.retry_delay_seconds,
                        },
                    )
                    await self._sink.on_error(e)
                    self._long_poll_info = None
                    await self._sleep(self.options.retry_delay_seconds)
        finally:
            await self._close()

    async def _iterate(self) -> None:
        if self._position is None:
            self._position = await self._events_api.get_current_stream_position()

        if (
            self._long_poll_info is None
            or self._long_poll_retries > self._long_poll_info.max_retries
        ):
            self._long_poll_info = await self._events_api.get_long_poll_info()
            self._long_poll_retries = 0

        self._status = StreamStatus.POLLING
        self._long_poll_retries += 1
        message = await self._events_api.long_poll(self._long_poll_info, self._position)

        if message == "reconnect":
            self._long_poll_info = None
            return
        if message != "new_change":
            return
        if self.paused or self._shutdown_event.is_set():
            return

        await self._wait_for_fetch_slot()
        chunk = await self._events_api.get({"stream_position": self._position})
        self._last_fetch = asyncio.get_running_loop().time()

        entries = chunk.get("entries")
        next_position = chunk.get("next_stream_position")
        if not isinstance(entries, list) or next_position is None or next_position == "":
            logger.warning(
                "Malformed events chunk, polling again",
                extra={"stream_position": self._position},
            )
            return

        await self._deliver(entries)
        self._position = next_position

    async def _deliver(self, entries: list[dict[str, Any]]) -> None:
        delivered = 0
        for event in entries:
            event_id = event.get("event_id") if isinstance(event, dict) else None
            if event_id is not None and event_id in self._dedup:
                self.events_dropped += 1
                continue

            self._status = StreamStatus.DELIVERING
            await self._sink.write(event)
            # Mark seen only after the write; unwritten events must survive a refetch
            if event_id is not None:
                self._dedup.add(event_id)
            self.events_delivered += 1
            delivered += 1

        if delivered:
            logger.debug(
                "Delivered events",
                extra={
                    "events_received": len(entries),
                    "events_delivered": delivered,
                    "stream_position": self._position,
                },
            )

    async def _wait_for_fetch_slot(self) -> None:
        if self._last_fetch is None:
            return
        elapsed = asyncio.get_running_loop().time() - self._last_fetch
        remaining = self.options.fetch_interval_seconds - elapsed
        if remaining > 0:
            await self._sleep(remaining)

    async def _sleep(self, delay: float) -> None:
        """Sleep that returns early on stop()."""
        if delay <= 0:
            return
        try:
            await asyncio.wait_for(self._shutdown_event.wait(), timeout=delay)
        except TimeoutError:
            pass

    async def _close(self) -> None:
        if self._status == StreamStatus.CLOSED:
            return
        self._status = StreamStatus.CLOSED
        self._shutdown_event.set()
        await self._sink.close()
        logger.info(
            "Event stream closed",
            extra={
                "stream_position": self._position,
                "events_delivered": self.events_delivered,
                "events_dropped": self.events_dropped,
            },
        )

    async def __aenter__(self) -> "EventStream":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()


__all__ = [
    "EventStream",
    "EventStreamOptions",
    "StreamStatus",
]
