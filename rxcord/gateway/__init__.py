"""Gateway connection: codec, heartbeat, session and the reconnecting client.

Usage::

    from rxcord.gateway import Gateway, Intents

    gateway = Gateway(token, Intents.default())
    gateway.subscribe(lambda evt: print(evt.tag))
    gateway.start()
"""

from .backoff import RetryPolicy
from .codec import MISSING, ZLIB_SUFFIX, Envelope, Opcode, PayloadCodec
from .config import GATEWAY_VERSION, GatewayConfig, Intents
from .gateway import (
    FATAL_CLOSE_CODES,
    PRESENCE_STATUSES,
    RECONNECT_CLOSE_CODE,
    SESSION_RESET_CLOSE_CODES,
    Gateway,
)
from .heartbeat import HeartbeatScheduler
from .session import Connection, GatewayState, Session
from .transport import Transport, TransportClosed, TransportError, WebSocketTransport

__all__ = [
    # gateway
    "Gateway",
    "GatewayState",
    "PRESENCE_STATUSES",
    "RECONNECT_CLOSE_CODE",
    "SESSION_RESET_CLOSE_CODES",
    "FATAL_CLOSE_CODES",
    # config
    "GatewayConfig",
    "Intents",
    "GATEWAY_VERSION",
    "RetryPolicy",
    # codec
    "Envelope",
    "Opcode",
    "PayloadCodec",
    "MISSING",
    "ZLIB_SUFFIX",
    # session
    "Session",
    "Connection",
    "HeartbeatScheduler",
    # transport
    "Transport",
    "TransportError",
    "TransportClosed",
    "WebSocketTransport",
]
