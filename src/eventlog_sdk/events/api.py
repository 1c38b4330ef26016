"""
Events endpoint helpers.

Thin wrapper over the /events endpoint: fetch a chunk of events, resolve the
current stream position and look up the long-poll (realtime) server.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any
from urllib.parse import parse_qsl, urlsplit, urlunsplit

from eventlog_sdk.errors.exceptions import MalformedResponseError
from eventlog_sdk.transport import ApiRequester

logger = logging.getLogger(__name__)

EVENTS_PATH = "/events"

# Stream position meaning "from now on"
CURRENT_STREAM_POSITION = "now"


class EnterpriseStreamType(str, Enum):
    """Enterprise event stream flavours.

    ADMIN_LOGS is complete and ordered and accepts a date range.
    ADMIN_LOGS_STREAMING is low latency with about two weeks of retention;
    the server may repeat or reorder events at chunk boundaries.
    """

    ADMIN_LOGS = "admin_logs"
    ADMIN_LOGS_STREAMING = "admin_logs_streaming"


@dataclass
class LongPollInfo:
    """Connection info for one realtime server."""

    url: str
    retry_timeout: float
    max_retries: int

    @classmethod
    def from_entry(cls, entry: dict[str, Any]) -> "LongPollInfo":
        try:
            return cls(
                url=str(entry["url"]),
                retry_timeout=float(entry.get("retry_timeout", 610)),
                max_retries=int(entry.get("max_retries", 10)),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise MalformedResponseError(
                "Long poll server entry is malformed", cause=e, response_body=entry
            ) from e


class EventsAPI:
    """
    Events endpoint operations on top of an ApiRequester.

    Usage:
        events_api = EventsAPI(requester)
        position = await events_api.get_current_stream_position()
        chunk = await events_api.get({"stream_position": position})
    """

    def __init__(self, requester: ApiRequester):
        self.requester = requester

    async def get(self, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """
        Fetch one chunk of events.

        Returns:
            Response body, normally with ``entries`` and ``next_stream_position``

        Raises:
            MalformedResponseError: If the body is not a JSON object
        """
        response = await self.requester.request("GET", EVENTS_PATH, params=params)
        if not isinstance(response.body, dict):
            raise MalformedResponseError(
                "Events response is not a JSON object",
                status_code=response.status,
                response_body=response.body,
            )
        return response.body

    async def get_current_stream_position(self) -> str | int:
        """Resolve the "now" position to a concrete cursor."""
        body = await self.get({"stream_position": CURRENT_STREAM_POSITION})
        position = body.get("next_stream_position")
        if position is None or position == "":
            raise MalformedResponseError(
                "Events response is missing next_stream_position", response_body=body
            )
        logger.debug("Resolved current stream position", extra={"stream_position": position})
        return position

    async def get_long_poll_info(self) -> LongPollInfo:
        """
        Ask the API which realtime server to long-poll.

        Raises:
            MalformedResponseError: If no realtime_server entry is returned
        """
        response = await self.requester.request("OPTIONS", EVENTS_PATH)
        body = response.body
        entries = body.get("entries") if isinstance(body, dict) else None
        for entry in entries or []:
            if isinstance(entry, dict) and entry.get("type") == "realtime_server":
                return LongPollInfo.from_entry(entry)

        raise MalformedResponseError(
            "No valid long poll server specified",
            status_code=response.status,
            response_body=body,
        )

    async def long_poll(self, info: LongPollInfo, stream_position: str | int) -> str | None:
        """
        Hold a connection to the realtime server until it signals.

        The realtime URL carries its own query string; stream_position is
        merged into it.

        Returns:
            The server's ``message`` (``new_change``, ``reconnect``, ...)
        """
        parts = urlsplit(info.url)
        query = dict(parse_qsl(parts.query, keep_blank_values=True))
        query["stream_position"] = str(stream_position)
        url = urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))

        response = await self.requester.request(
            "GET", url, params=query, timeout=info.retry_timeout
        )
        body = response.body
        message = body.get("message") if isinstance(body, dict) else None
        logger.debug("Long poll returned", extra={"poll_message": message})
        return message

    def get_event_stream(self, sink, stream_position: str | int | None = None, options=None):
        """Build a user EventStream; "now" is resolved when it starts."""
        from eventlog_sdk.events.stream import EventStream

        return EventStream(self, sink, stream_position=stream_position, options=options)

    def get_enterprise_event_stream(self, sink, options=None, state_store=None):
        """Build an EnterpriseEventStream."""
        from eventlog_sdk.events.enterprise import EnterpriseEventStream

        return EnterpriseEventStream(self, sink, options=options, state_store=state_store)


__all__ = [
    "EventsAPI",
    "LongPollInfo",
    "EnterpriseStreamType",
    "CURRENT_STREAM_POSITION",
    "EVENTS_PATH",
]
