"""
pytest configuration for eventlog_sdk tests.

Adds src directory to Python path for imports and provides in-memory fakes
for the token endpoint, the API requester and the events endpoint.
"""

import asyncio
import sys
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

# Add src directory to Python path
src_dir = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_dir))

from eventlog_sdk.config.config import AppAuthConfig, ClientConfig  # noqa: E402
from eventlog_sdk.events.api import LongPollInfo  # noqa: E402
from eventlog_sdk.events.sinks import BaseEventSink  # noqa: E402
from eventlog_sdk.resilience.retry import RetryConfig  # noqa: E402
from eventlog_sdk.transport import ApiResponse  # noqa: E402

T0 = datetime(2026, 1, 15, 12, 0, 0, tzinfo=UTC)


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeTokenEndpoint:
    """
    Token endpoint that mints numbered tokens.

    Scripted responses (dicts or exceptions) are consumed first; afterwards
    every request gets access-<n>, plus refresh-<n> for grants that return
    refresh tokens. Set ``gate`` to hold requests until it is set.
    """

    def __init__(self, responses=None, expires_in: int = 3600):
        self.responses = list(responses or [])
        self.expires_in = expires_in
        self.requests: list[dict] = []
        self.options: list = []
        self.revoked: list[str] = []
        self.gate: asyncio.Event | None = None
        self.closed = False

    @property
    def grant_types(self) -> list[str]:
        return [params["grant_type"] for params in self.requests]

    async def request_token(self, params, options=None):
        self.requests.append(dict(params))
        self.options.append(options)
        n = len(self.requests)
        if self.gate is not None:
            await self.gate.wait()
        if self.responses:
            item = self.responses.pop(0)
            if isinstance(item, BaseException):
                raise item
            return item

        body = {"access_token": f"access-{n}", "expires_in": self.expires_in, "token_type": "bearer"}
        if params["grant_type"] in ("refresh_token", "authorization_code"):
            body["refresh_token"] = f"refresh-{n}"
        return body

    async def revoke(self, token, options=None):
        self.revoked.append(token)

    async def close(self):
        self.closed = True


class FakeRequester:
    """ApiRequester returning scripted ApiResponses (or raising scripted errors)."""

    def __init__(self, responses=None):
        self.responses = list(responses or [])
        self.calls: list[dict] = []

    async def request(self, method, path_or_url, params=None, headers=None, json_body=None, timeout=None):
        self.calls.append(
            {"method": method, "url": path_or_url, "params": params, "timeout": timeout}
        )
        item = self.responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        if isinstance(item, ApiResponse):
            return item
        return ApiResponse(status=200, body=item)


class FakeEventsAPI:
    """
    Scripted events endpoint.

    ``long_polls`` holds long-poll outcomes (message strings or exceptions)
    and ``chunks`` holds get() outcomes (dicts or exceptions). Once the
    long-poll script runs out, long_poll blocks until cancelled. Once the
    chunk script runs out, get() returns an empty chunk.
    """

    def __init__(self, long_polls=None, chunks=None, infos=None, current_position="1000"):
        self.long_polls = list(long_polls or [])
        self.chunks = list(chunks or [])
        self.infos = list(infos or [])
        self.current_position = current_position
        self.get_params: list[dict] = []
        self.poll_positions: list = []
        self.info_calls = 0
        self.exhausted = asyncio.Event()

    async def get_current_stream_position(self):
        return self.current_position

    async def get_long_poll_info(self):
        self.info_calls += 1
        if self.infos:
            item = self.infos.pop(0)
            if isinstance(item, BaseException):
                raise item
            return item
        return LongPollInfo(
            url="https://realtime.example.com/subscribe?channel=abc", retry_timeout=610, max_retries=10
        )

    async def long_poll(self, info, stream_position):
        self.poll_positions.append(stream_position)
        if not self.long_polls:
            self.exhausted.set()
            await asyncio.Event().wait()
        item = self.long_polls.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    async def get(self, params=None):
        self.get_params.append(dict(params or {}))
        if not self.chunks:
            self.exhausted.set()
            return {"entries": [], "next_stream_position": params.get("stream_position")}
        item = self.chunks.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item


class RecordingSink(BaseEventSink):
    """Unbounded sink that keeps everything it receives."""

    def __init__(self):
        self.events: list[dict] = []
        self.errors: list[Exception] = []
        self.waits: list[float] = []
        self.states: list = []
        self.close_count = 0

    @property
    def closed(self) -> bool:
        return self.close_count > 0

    async def write(self, event):
        self.events.append(event)

    async def on_error(self, error):
        self.errors.append(error)

    async def on_wait(self, delay):
        self.waits.append(delay)

    async def on_state(self, state):
        self.states.append(state)

    async def close(self):
        self.close_count += 1


def make_events(start: int, count: int) -> list[dict]:
    return [{"event_id": f"evt-{i}", "event_type": "ITEM_UPLOAD"} for i in range(start, start + count)]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fast_retry():
    return RetryConfig(max_attempts=3, base_delay=0.001, max_delay=0.005)


@pytest.fixture
def config():
    return ClientConfig(
        client_id="client-id",
        client_secret="client-secret",
        enterprise_id="11111",
        retry_interval_seconds=0.001,
        num_max_retries=2,
    )


@pytest.fixture
def endpoint():
    return FakeTokenEndpoint()


@pytest.fixture(scope="session")
def rsa_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def rsa_pem(rsa_key):
    return rsa_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()


@pytest.fixture
def app_config(config, rsa_pem):
    return config.extend(app_auth=AppAuthConfig(key_id="key-1", private_key=rsa_pem))
