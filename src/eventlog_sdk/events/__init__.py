"""
Event log consumers.

Usage:
    events_api = EventsAPI(HttpApiRequester(config, session))

    # User events, long-poll
    sink = QueueEventSink()
    stream = events_api.get_event_stream(sink)
    await stream.start()

    # Enterprise events, interval polling with a persisted cursor
    stream = events_api.get_enterprise_event_stream(
        JsonLinesEventSink("admin_logs.jsonl"),
        EnterpriseEventStreamOptions(polling_interval_seconds=30),
        state_store=JsonStreamStateStore("admin_logs_state.json"),
    )
    await stream.run()
"""

from eventlog_sdk.events.api import (
    CURRENT_STREAM_POSITION,
    EnterpriseStreamType,
    EventsAPI,
    LongPollInfo,
)
from eventlog_sdk.events.dedup import DedupCache
from eventlog_sdk.events.enterprise import (
    EnterpriseEventStream,
    EnterpriseEventStreamOptions,
    EnterpriseStreamStatus,
)
from eventlog_sdk.events.sinks import (
    BaseEventSink,
    EventSink,
    JsonLinesEventSink,
    QueueEventSink,
)
from eventlog_sdk.events.state_store import (
    EnterpriseStreamState,
    JsonStreamStateStore,
    MemoryStreamStateStore,
    StreamStateStore,
    StreamStateStoreError,
)
from eventlog_sdk.events.stream import EventStream, EventStreamOptions, StreamStatus

__all__ = [
    "EventsAPI",
    "LongPollInfo",
    "EnterpriseStreamType",
    "CURRENT_STREAM_POSITION",
    "DedupCache",
    "EventSink",
    "BaseEventSink",
    "QueueEventSink",
    "JsonLinesEventSink",
    "EventStream",
    "EventStreamOptions",
    "StreamStatus",
    "EnterpriseEventStream",
    "EnterpriseEventStreamOptions",
    "EnterpriseStreamStatus",
    "EnterpriseStreamState",
    "StreamStateStore",
    "StreamStateStoreError",
    "MemoryStreamStateStore",
    "JsonStreamStateStore",
]
