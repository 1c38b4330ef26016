"""Tests for event sinks."""

import asyncio
import json

import pytest

from eventlog_sdk.events.sinks import BaseEventSink, EventSink, JsonLinesEventSink, QueueEventSink
from eventlog_sdk.events.state_store import EnterpriseStreamState


class TestQueueEventSink:
    """Tests for QueueEventSink."""

    def test_satisfies_protocol(self):
        assert isinstance(QueueEventSink(), EventSink)
        assert isinstance(BaseEventSink(), EventSink)

    @pytest.mark.asyncio
    async def test_iterates_until_closed(self):
        sink = QueueEventSink()
        await sink.write({"event_id": "1"})
        await sink.write({"event_id": "2"})
        await sink.close()

        events = [event async for event in sink]

        assert events == [{"event_id": "1"}, {"event_id": "2"}]
        assert await sink.get() is None

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self):
        sink = QueueEventSink()
        await sink.close()
        await sink.close()
        assert sink.qsize() == 1

    @pytest.mark.asyncio
    async def test_write_blocks_when_full(self):
        sink = QueueEventSink(maxsize=1)
        await sink.write({"event_id": "1"})

        pending = asyncio.create_task(sink.write({"event_id": "2"}))
        await asyncio.sleep(0)
        assert not pending.done()

        assert await sink.get() == {"event_id": "1"}
        await pending
        assert sink.qsize() == 1

    @pytest.mark.asyncio
    async def test_records_notifications(self):
        sink = QueueEventSink()
        error = RuntimeError("boom")
        state = EnterpriseStreamState(stream_position="9")

        await sink.on_error(error)
        await sink.on_wait(60)
        await sink.on_state(state)

        assert sink.errors == [error]
        assert sink.waits == [60]
        assert sink.states == [state]


class TestJsonLinesEventSink:
    @pytest.mark.asyncio
    async def test_appends_lines(self, tmp_path):
        path = tmp_path / "out" / "events.jsonl"
        sink = JsonLinesEventSink(path)

        await sink.write({"event_id": "1"})
        await sink.on_wait(1)
        await sink.write({"event_id": "2"})
        await sink.close()

        lines = path.read_text().splitlines()
        assert [json.loads(line) for line in lines] == [{"event_id": "1"}, {"event_id": "2"}]
        assert sink.count == 2

    @pytest.mark.asyncio
    async def test_close_without_events(self, tmp_path):
        sink = JsonLinesEventSink(tmp_path / "events.jsonl")
        await sink.on_error(RuntimeError("x"))
        await sink.close()
        assert not sink.path.exists()
