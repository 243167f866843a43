"""Shared test fixtures and fakes for rxcord tests."""

import asyncio
import json
from collections.abc import Callable

import pytest
from opentelemetry.sdk._logs import LoggerProvider

from rxcord.gateway import TransportClosed, TransportError


class FakeTransport:
    """In-memory :class:`~rxcord.gateway.Transport`.

    Frames pushed with :meth:`feed` are returned by ``recv``; every sent frame
    is decoded and kept in ``sent``. Closing (locally or via :meth:`drop`)
    makes the pending ``recv`` raise :class:`TransportClosed`.
    """

    def __init__(self, fail_connect: bool = False):
        self.fail_connect = fail_connect
        self.url: str | None = None
        self.sent: list[dict] = []
        self.closed_with: int | None = None
        self._inbox: asyncio.Queue = asyncio.Queue()
        self._open = False

    @property
    def open(self) -> bool:
        return self._open

    async def connect(self, url: str) -> None:
        self.url = url
        if self.fail_connect:
            raise TransportError("connection refused")
        self._open = True

    async def send(self, text: str) -> None:
        if not self._open:
            raise TransportClosed(reason="not connected")
        self.sent.append(json.loads(text))

    async def recv(self):
        item = await self._inbox.get()
        if isinstance(item, TransportClosed):
            self._open = False
            raise item
        return item

    async def close(self, code: int = 1000, reason: str = "") -> None:
        if not self._open:
            return
        self._open = False
        self.closed_with = code
        self._inbox.put_nowait(TransportClosed(code, reason))

    # ---------------- test controls ---------------- #

    def feed(self, payload) -> None:
        """Queue an inbound frame: dicts are sent as JSON text, bytes as-is."""
        if isinstance(payload, dict):
            payload = json.dumps(payload)
        self._inbox.put_nowait(payload)

    def drop(self, code: int | None = None, reason: str = "") -> None:
        """Simulate the server closing the socket."""
        self._open = False
        self._inbox.put_nowait(TransportClosed(code, reason))

    def sent_ops(self) -> list[int]:
        return [frame["op"] for frame in self.sent]


class TransportFactory:
    """Creates FakeTransports and remembers them in order."""

    def __init__(self, failures: int = 0):
        self.failures = failures
        self.created: list[FakeTransport] = []

    def __call__(self) -> FakeTransport:
        transport = FakeTransport(fail_connect=len(self.created) < self.failures)
        self.created.append(transport)
        return transport

    @property
    def last(self) -> FakeTransport:
        return self.created[-1]


class InstantSleep:
    """Sleep replacement that records delays and only yields once."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


class StepSleep:
    """Sleep replacement that blocks until :meth:`release` is called."""

    def __init__(self):
        self.delays: list[float] = []
        self._gate: asyncio.Queue | None = None

    async def __call__(self, delay: float) -> None:
        if self._gate is None:
            self._gate = asyncio.Queue()
        self.delays.append(delay)
        await self._gate.get()

    def release(self, times: int = 1) -> None:
        if self._gate is None:
            self._gate = asyncio.Queue()
        for _ in range(times):
            self._gate.put_nowait(None)


async def wait_until(predicate: Callable[[], bool], max_steps: int = 500) -> None:
    """Yield to the loop until ``predicate()`` holds."""
    for _ in range(max_steps):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition not reached")


def hello(interval_ms: int = 41250) -> dict:
    return {"op": 10, "d": {"heartbeat_interval": interval_ms}}


def dispatch(name: str, data, seq: int) -> dict:
    return {"op": 0, "t": name, "s": seq, "d": data}


@pytest.fixture
def logger_provider():
    """A LoggerProvider without processors, keeping test output quiet."""
    return LoggerProvider()
