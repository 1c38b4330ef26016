"""
Enterprise event stream (interval polling).

State machine::

    IDLE -> FETCHING -> WAITING -> FETCHING -> ... -> DONE | IDLE (paused)

Each fetch asks for one bounded chunk at the current cursor. A non-empty
chunk advances the cursor, is delivered in order and is followed by a state
notification (and a save to the state store, when one is configured). An
empty chunk or a failed fetch leaves the cursor where it was; with a polling
interval of 0 the stream then ends, otherwise it waits and fetches again.
"""

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from eventlog_sdk.errors.exceptions import InvalidConfigurationError, MalformedResponseError
from eventlog_sdk.events.api import CURRENT_STREAM_POSITION, EnterpriseStreamType
from eventlog_sdk.events.sinks import EventSink
from eventlog_sdk.events.state_store import (
    EnterpriseStreamState,
    StreamStateStore,
    StreamStateStoreError,
)
from eventlog_sdk.logging.context import set_log_context

logger = logging.getLogger(__name__)

DEFAULT_POLLING_INTERVAL_SECONDS = 60
MAX_CHUNK_SIZE = 500


class EnterpriseStreamStatus(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    WAITING = "waiting"
    DONE = "done"


def format_event_date(value: datetime | str | None) -> str | None:
    """Format a date filter as an RFC 3339 string; strings pass through."""
    if value is None or isinstance(value, str):
        return value
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="seconds")


@dataclass
class EnterpriseEventStreamOptions:
    """
    Cursor, filters and pacing for EnterpriseEventStream.

    Without a stream_position or start_date the stream starts at the current
    time: admin_logs gets start_date = now, admin_logs_streaming gets
    stream_position = "now".
    """

    stream_position: str | int | None = None
    start_date: datetime | str | None = None
    end_date: datetime | str | None = None
    # 0 drains the available events once, then closes
    polling_interval_seconds: float = DEFAULT_POLLING_INTERVAL_SECONDS
    event_type_filter: list[str] | None = None
    chunk_size: int = MAX_CHUNK_SIZE
    stream_type: EnterpriseStreamType = EnterpriseStreamType.ADMIN_LOGS

    def __post_init__(self):
        self.stream_type = EnterpriseStreamType(self.stream_type)
        self.polling_interval_seconds = float(self.polling_interval_seconds)
        self.chunk_size = int(self.chunk_size)
        self.start_date = format_event_date(self.start_date)
        self.end_date = format_event_date(self.end_date)
        if self.event_type_filter is not None:
            if isinstance(self.event_type_filter, str):
                self.event_type_filter = [self.event_type_filter]
            self.event_type_filter = list(self.event_type_filter)
        self.validate()

    def validate(self) -> None:
        if not 1 <= self.chunk_size <= MAX_CHUNK_SIZE:
            raise InvalidConfigurationError(
                f"chunk_size must be between 1 and {MAX_CHUNK_SIZE}, got {self.chunk_size}"
            )
        if self.polling_interval_seconds < 0:
            raise InvalidConfigurationError(
                f"polling_interval_seconds must be >= 0, got {self.polling_interval_seconds}"
            )
        if self.stream_type == EnterpriseStreamType.ADMIN_LOGS_STREAMING and (
            self.start_date or self.end_date
        ):
            raise InvalidConfigurationError(
                "start_date and end_date are not supported by admin_logs_streaming"
            )


class EnterpriseEventStream:
    """
    Interval-polling consumer of the enterprise event log.

    The low-latency streaming type may repeat events at chunk boundaries;
    they are delivered as returned.

    Usage:
        options = EnterpriseEventStreamOptions(stream_position="0", polling_interval_seconds=0)
        sink = QueueEventSink()
        stream = EnterpriseEventStream(events_api, sink, options)
        await stream.start()
        async for event in sink:
            ...
    """

    def __init__(
        self,
        events_api,
        sink: EventSink,
        options: EnterpriseEventStreamOptions | None = None,
        state_store: StreamStateStore | None = None,
        clock=None,
    ):
        self._events_api = events_api
        self._sink = sink
        self.options = options or EnterpriseEventStreamOptions()
        self._state_store = state_store
        self._clock = clock or (lambda: datetime.now(UTC))

        self._position = self.options.stream_position
        self._start_date = self.options.start_date
        self._end_date = self.options.end_date
        self._event_types = self.options.event_type_filter

        if self._position is None and not self._start_date:
            if self.options.stream_type == EnterpriseStreamType.ADMIN_LOGS_STREAMING:
                self._position = CURRENT_STREAM_POSITION
            else:
                self._start_date = format_event_date(self._clock())

        self._status = EnterpriseStreamStatus.IDLE
        self._resume_event = asyncio.Event()
        self._resume_event.set()
        self._shutdown_event = asyncio.Event()
        self._task: asyncio.Task | None = None
        self._finished = False

        self.events_delivered = 0
        self.fetch_count = 0

    @property
    def status(self) -> EnterpriseStreamStatus:
        return self._status

    @property
    def stream_position(self) -> str | int | None:
        return self._position

    @property
    def paused(self) -> bool:
        return not self._resume_event.is_set()

    def get_stream_state(self) -> EnterpriseStreamState:
        """
        Current cursor and filters.

        The position is None until the first non-empty chunk, so the dates
        are part of the state too.
        """
        return EnterpriseStreamState(
            stream_position=self._position,
            start_date=self._start_date,
            end_date=self._end_date,
            event_type_filter=list(self._event_types) if self._event_types else None,
        )

    def set_stream_state(self, state: EnterpriseStreamState) -> None:
        """Resume from a previously saved state."""
        self._position = state.stream_position
        self._start_date = state.start_date
        self._end_date = state.end_date
        self._event_types = list(state.event_type_filter) if state.event_type_filter else None
        logger.debug(
            "Stream state set",
            extra={"stream_position": self._position, "stream_type": self.options.stream_type.value},
        )

    async def start(self) -> asyncio.Task:
        """Run the stream in a background task."""
        if self._task is None:
            self._task = asyncio.create_task(self.run())
        return self._task

    def pause(self) -> None:
        """Stop fetching before the next suspension point."""
        if not self._finished:
            self._resume_event.clear()
            logger.info("Enterprise event stream paused", extra={"stream_position": self._position})

    def resume(self) -> None:
        if self.paused:
            self._resume_event.set()
            logger.info("Enterprise event stream resumed", extra={"stream_position": self._position})

    async def stop(self) -> None:
        """End the stream; the sink receives close()."""
        self._shutdown_event.set()
        self._resume_event.set()
        task = self._task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        await self._finish()

    async def run(self) -> None:
        """Main polling loop; returns once the stream is done."""
        set_log_context(stream=self.options.stream_type.value)
        try:
            await self._restore_state()
            logger.info(
                "Enterprise event stream started",
                extra={
                    "stream_type": self.options.stream_type.value,
                    "stream_position": self._position,
                    "polling_interval": self.options.polling_interval_seconds,
                    "chunk_size": self.options.chunk_size,
                },
            )

            while not self._shutdown_event.is_set():
                if self.paused:
                    self._status = EnterpriseStreamStatus.IDLE
                    await self._resume_event.wait()
                    continue

                self._status = EnterpriseStreamStatus.FETCHING
                try:
                    events = await self._fetch()
                except Exception as e:
                    # ExpiredAuthError too; CCG and JWT sessions re-acquire on the next fetch
                    logger.warning(
                        f"Enterprise events fetch failed: {e}",
                        extra={"stream_position": self._position, "error_type": type(e).__name__},
                    )
                    await self._sink.on_error(e)
                    events = None

                if events:
                    await self._deliver(events)
                    continue

                interval = self.options.polling_interval_seconds
                if not interval:
                    logger.info(
                        "No more enterprise events, closing stream",
                        extra={"stream_position": self._position},
                    )
                    break

                self._status = EnterpriseStreamStatus.WAITING
                await self._sink.on_wait(interval)
                await self._sleep(interval)
        finally:
            await self._finish()

    async def _restore_state(self) -> None:
        if self._state_store is None:
            return
        saved = await self._state_store.load()
        if saved is not None:
            self.set_stream_state(saved)
            logger.info(
                "Resuming enterprise event stream from saved state",
                extra={"stream_position": self._position},
            )

    def _build_params(self) -> dict[str, Any]:
        params: dict[str, Any] = {"stream_type": self.options.stream_type.value}
        # 0 is a valid position
        if self._position is not None and self._position != "":
            params["stream_position"] = self._position
        if self._start_date:
            params["created_after"] = self._start_date
        if self._end_date:
            params["created_before"] = self._end_date
        if self._event_types:
            params["event_type"] = ",".join(self._event_types)
        params["limit"] = self.options.chunk_size
        return params

    async def _fetch(self) -> list[dict[str, Any]] | None:
        """
        Fetch one chunk and advance the cursor when it holds events.

        Returns:
            The chunk's events, or None when it was empty
        """
        self.fetch_count += 1
        result = await self._events_api.get(self._build_params())

        entries = result.get("entries")
        if not entries:
            logger.debug("Empty enterprise events chunk", extra={"stream_position": self._position})
            return None

        next_position = result.get("next_stream_position")
        if not isinstance(entries, list) or next_position is None or next_position == "":
            raise MalformedResponseError(
                "Enterprise events response is missing entries or next_stream_position",
                response_body=result,
            )

        self._position = next_position
        return entries

    async def _deliver(self, events: Iterable[dict[str, Any]]) -> None:
        count = 0
        for event in events:
            await self._sink.write(event)
            count += 1
        self.events_delivered += count

        state = self.get_stream_state()
        await self._sink.on_state(state)
        if self._state_store is not None:
            try:
                await self._state_store.save(state)
            except StreamStateStoreError as e:
                logger.warning(f"Failed to save stream state: {e}")
                await self._sink.on_error(e)

        logger.debug(
            "Delivered enterprise events",
            extra={"events_delivered": count, "next_stream_position": self._position},
        )

    async def _sleep(self, delay: float) -> None:
        """Sleep that returns early on stop()."""
        try:
            await asyncio.wait_for(self._shutdown_event.wait(), timeout=delay)
        except TimeoutError:
            pass

    async def _finish(self) -> None:
        if self._finished:
            return
        self._finished = True
        self._status = EnterpriseStreamStatus.DONE
        self._shutdown_event.set()
        await self._sink.close()
        logger.info(
            "Enterprise event stream done",
            extra={"stream_position": self._position, "events_delivered": self.events_delivered},
        )

    async def __aenter__(self) -> "EnterpriseEventStream":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()


__all__ = [
    "EnterpriseEventStream",
    "EnterpriseEventStreamOptions",
    "EnterpriseStreamStatus",
    "format_event_date",
    "DEFAULT_POLLING_INTERVAL_SECONDS",
    "MAX_CHUNK_SIZE",
]
