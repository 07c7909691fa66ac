"""Fakes standing in for the clock, the websocket and the HTTP client."""

from __future__ import annotations

import asyncio

import aiohttp
import pytest

from ndt7py.config import Config
from ndt7py.errors import TransportError


class FakeClock:
    def __init__(self, t: float = 100.0) -> None:
        self.t = t

    def __call__(self) -> float:
        return self.t

    def advance(self, dt: float) -> None:
        self.t += dt


class FakeConnection:
    """Frames pushed with feed() are returned by recv() in order.

    None in the queue is a clean close, an exception instance is raised.
    With drain=False every sent byte stays in buffered_amount until drain().
    """

    def __init__(self, drain: bool = True) -> None:
        self.queue: asyncio.Queue = asyncio.Queue()
        self.auto_drain = drain
        self.buffered_amount = 0
        self.sent: list[int] = []
        self.closed = False
        self.close_calls = 0

    def feed(self, frame) -> None:
        self.queue.put_nowait(frame)

    def peer_close(self) -> None:
        self.closed = True
        self.queue.put_nowait(None)

    def drain(self, nbytes: int | None = None) -> None:
        if nbytes is None:
            self.buffered_amount = 0
        else:
            self.buffered_amount = max(0, self.buffered_amount - nbytes)

    async def recv(self):
        item = await self.queue.get()
        if isinstance(item, Exception):
            raise item
        return item

    async def send(self, data) -> bool:
        if self.closed:
            return False
        self.sent.append(len(data))
        if not self.auto_drain:
            self.buffered_amount += len(data)
        return True

    async def close(self) -> None:
        self.close_calls += 1
        if not self.closed:
            self.closed = True
            self.queue.put_nowait(None)


class Connector:
    """Connector handing out prepared connections, remembering the URLs."""

    def __init__(self, *connections, fail_for: str | None = None) -> None:
        self.connections = list(connections)
        self.fail_for = fail_for
        self.urls: list[str] = []
        self.subprotocols: list[str] = []

    async def __call__(self, url: str, subprotocol: str):
        self.urls.append(url)
        self.subprotocols.append(subprotocol)
        if self.fail_for is not None and self.fail_for in url:
            raise TransportError("cannot connect to %s" % url)
        return self.connections.pop(0)


class FakeResponse:
    def __init__(self, payload, status: int = 200) -> None:
        self.payload = payload
        self.status = status

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False

    def raise_for_status(self) -> None:
        if self.status >= 400:
            raise aiohttp.ClientConnectionError("HTTP %d" % self.status)

    async def json(self, content_type=None):
        if isinstance(self.payload, Exception):
            raise self.payload
        return self.payload


class FakeHttp:
    def __init__(self, payload=None, status: int = 200, error: Exception | None = None) -> None:
        self.payload = payload
        self.status = status
        self.error = error
        self.requests: list[str] = []

    def get(self, url):
        self.requests.append(url)
        if self.error is not None:
            raise self.error
        return FakeResponse(self.payload, self.status)


class Recorder:
    """Callable collecting (name, payload) pairs in call order."""

    def __init__(self) -> None:
        self.events: list[tuple[str, object]] = []

    def handler(self, name: str):
        def record(payload=None):
            self.events.append((name, payload))
        return record

    def named(self, name: str) -> list:
        return [payload for event, payload in self.events if event == name]

    def names(self) -> list[str]:
        return [event for event, _ in self.events]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def config() -> Config:
    return Config(user_accepted_data_policy=True, server="ndt.example.org")
