"""Tests for WebSocketTransport against local sockets.

Covers:
- send/recv and the open flag against a websockets echo server
- server close codes surfacing as TransportClosed.code
- refused connections raising TransportError
- close() on a peer that never answers the closing handshake
"""

import asyncio
import base64
import hashlib
import socket
import time

import pytest
import websockets

from rxcord.gateway import TransportClosed, TransportError, WebSocketTransport

WS_GUID = b"258EAFA5-E914-47DA-95CA-C5AB0DC85B11"


def _url(server) -> str:
    port = server.sockets[0].getsockname()[1]
    return f"ws://127.0.0.1:{port}"


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


async def _echo(ws):
    async for message in ws:
        await ws.send(message)


def test_send_and_recv_round_trip():
    async def scenario():
        async with websockets.serve(_echo, "127.0.0.1", 0) as server:
            transport = WebSocketTransport()
            assert not transport.open

            await transport.connect(_url(server))
            assert transport.open

            await transport.send('{"op":1,"d":null}')
            assert await transport.recv() == '{"op":1,"d":null}'

            await transport.close(1000, "done")
            assert not transport.open

    asyncio.run(scenario())


def test_server_close_code_is_reported():
    async def handler(ws):
        await ws.close(4004, "auth failed")

    async def scenario():
        async with websockets.serve(handler, "127.0.0.1", 0) as server:
            transport = WebSocketTransport()
            await transport.connect(_url(server))

            with pytest.raises(TransportClosed) as exc_info:
                await transport.recv()

        assert exc_info.value.code == 4004
        assert exc_info.value.reason == "auth failed"

    asyncio.run(scenario())


def test_refused_connection_raises_transport_error():
    async def scenario():
        transport = WebSocketTransport(connect_timeout=2.0)
        with pytest.raises(TransportError):
            await transport.connect(f"ws://127.0.0.1:{_free_port()}")
        assert not transport.open

    asyncio.run(scenario())


def test_unconnected_transport_is_closed():
    async def scenario():
        transport = WebSocketTransport()
        with pytest.raises(TransportClosed):
            await transport.send("x")
        with pytest.raises(TransportClosed):
            await transport.recv()
        await transport.close()

    asyncio.run(scenario())


def test_close_unblocks_recv_when_peer_never_answers():
    release = None

    async def silent_peer(reader, writer):
        # complete the upgrade, then never read or write again
        request = await reader.readuntil(b"\r\n\r\n")
        key = next(
            line.split(b":", 1)[1].strip()
            for line in request.split(b"\r\n")
            if line.lower().startswith(b"sec-websocket-key:")
        )
        accept = base64.b64encode(hashlib.sha1(key + WS_GUID).digest())
        writer.write(
            b"HTTP/1.1 101 Switching Protocols\r\n"
            b"Upgrade: websocket\r\n"
            b"Connection: Upgrade\r\n"
            b"Sec-WebSocket-Accept: " + accept + b"\r\n\r\n"
        )
        await writer.drain()
        await release.wait()
        writer.close()

    async def scenario():
        nonlocal release
        release = asyncio.Event()
        server = await asyncio.start_server(silent_peer, "127.0.0.1", 0)
        try:
            transport = WebSocketTransport(close_timeout=0.2)
            await transport.connect(_url(server))
            receiving = asyncio.create_task(transport.recv())
            await asyncio.sleep(0.05)
            assert not receiving.done()

            started = time.monotonic()
            await transport.close(4000, "heartbeat timeout")
            with pytest.raises(TransportClosed):
                await asyncio.wait_for(receiving, 3.0)

            assert time.monotonic() - started < 2.0
            assert not transport.open
        finally:
            release.set()
            server.close()
            await server.wait_closed()

    asyncio.run(scenario())
