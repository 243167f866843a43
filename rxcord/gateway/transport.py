"""Transport contract for the gateway and its websockets implementation.

The gateway only needs a message-framed, bidirectional socket:
    - connect: open the socket to a URL
    - send/recv: exchange whole text or binary frames
    - close: close with a websocket close code

Anything implementing :class:`Transport` can be injected into a
:class:`~rxcord.gateway.Gateway` through its ``transport_factory``.
"""

import asyncio
from typing import Protocol, runtime_checkable

import websockets
from websockets import ClientConnection
from websockets.protocol import State

from ..utils import get_short_error_info


class TransportError(Exception):
    """The socket could not be opened."""


class TransportClosed(TransportError):
    """The socket is closed; ``code`` is the close code when one was received."""

    def __init__(self, code: int | None = None, reason: str = ""):
        super().__init__(f"closed (code={code}, reason={reason!r})")
        self.code = code
        self.reason = reason


@runtime_checkable
class Transport(Protocol):
    """Protocol for one physical gateway socket."""

    @property
    def open(self) -> bool:
        """True while frames can be sent."""
        ...

    async def connect(self, url: str) -> None:
        """Open the socket.

        Raises:
            TransportError: If the socket cannot be opened.
        """
        ...

    async def send(self, text: str) -> None:
        """Send one text frame.

        Raises:
            TransportClosed: If the socket is closed.
        """
        ...

    async def recv(self) -> str | bytes:
        """Wait for the next frame.

        Raises:
            TransportClosed: When the socket closes, for whatever reason.
        """
        ...

    async def close(self, code: int = 1000, reason: str = "") -> None:
        """Close the socket. Safe to call on a closed socket."""
        ...


class WebSocketTransport:
    """:class:`Transport` backed by the ``websockets`` asyncio client.

    Websocket-level pings are disabled; liveness is the gateway heartbeat's
    job. A close that the peer never acknowledges aborts the socket after
    ``close_timeout`` seconds, which unblocks a pending ``recv``.
    """

    def __init__(self, connect_timeout: float = 10.0, close_timeout: float = 1.0):
        self.connect_timeout = connect_timeout
        self.close_timeout = close_timeout
        self.ws: ClientConnection | None = None

    @property
    def open(self) -> bool:
        return self.ws is not None and self.ws.state is State.OPEN

    async def connect(self, url: str) -> None:
        try:
            self.ws = await asyncio.wait_for(
                websockets.connect(
                    url,
                    ping_interval=None,
                    max_size=None,
                    close_timeout=self.close_timeout,
                ),
                self.connect_timeout,
            )
        except (
            TimeoutError,
            OSError,
            websockets.InvalidHandshake,
            websockets.InvalidURI,
        ) as e:
            raise TransportError(get_short_error_info(e)) from e

    async def send(self, text: str) -> None:
        if self.ws is None:
            raise TransportClosed(reason="not connected")
        try:
            await self.ws.send(text)
        except websockets.ConnectionClosed as e:
            raise self._closed_from(e) from e
        except OSError as e:
            raise TransportClosed(reason=get_short_error_info(e)) from e

    async def recv(self) -> str | bytes:
        if self.ws is None:
            raise TransportClosed(reason="not connected")
        try:
            return await self.ws.recv()
        except websockets.ConnectionClosed as e:
            raise self._closed_from(e) from e
        except OSError as e:
            raise TransportClosed(reason=get_short_error_info(e)) from e

    async def close(self, code: int = 1000, reason: str = "") -> None:
        if self.ws is None:
            return
        # not wrapped in wait_for: cancelling close() skips the abort
        try:
            await self.ws.close(code=code, reason=reason)
        except (OSError, websockets.ConnectionClosed):
            pass

    @staticmethod
    def _closed_from(e: websockets.ConnectionClosed) -> TransportClosed:
        if e.rcvd is not None:
            return TransportClosed(e.rcvd.code, e.rcvd.reason)
        return TransportClosed(reason=get_short_error_info(e))
