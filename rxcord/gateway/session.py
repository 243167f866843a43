"""Session and connection state owned by a :class:`~rxcord.gateway.Gateway`.

Gateway states:
    DISCONNECTED → CONNECTING: start requested
    CONNECTING → AWAITING_HELLO: transport open
    AWAITING_HELLO → IDENTIFYING | RESUMING: HELLO received
    IDENTIFYING | RESUMING → CONNECTED: READY / RESUMED dispatch
    any → DISCONNECTED: transport closed
    DISCONNECTED → RECONNECTING: reopening after a close
    any → CLOSED: explicit stop or unrecoverable close (terminal)
"""

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum

from .codec import PayloadCodec
from .transport import Transport


class GatewayState(Enum):
    """Observable states of the gateway lifecycle."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AWAITING_HELLO = "awaiting_hello"
    IDENTIFYING = "identifying"
    RESUMING = "resuming"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    CLOSED = "closed"  # terminal


@dataclass
class Session:
    """One logical gateway session.

    ``session_id`` decides between resume and identify; it is only ever
    cleared together with ``sequence``.
    """

    session_id: str | None = None
    sequence: int | None = None
    ready: bool = False

    @property
    def resumable(self) -> bool:
        return self.session_id is not None and self.sequence is not None

    def observe_sequence(self, sequence: int | None) -> None:
        """Record a sequence number from the server. Never moves backwards."""
        if sequence is None:
            return
        if self.sequence is None or sequence > self.sequence:
            self.sequence = sequence

    def invalidate(self) -> None:
        """Forget the session so the next handshake is a fresh identify."""
        self.session_id = None
        self.sequence = None
        self.ready = False


@dataclass
class Connection:
    """One live transport and the parameters negotiated on it.

    A new Connection (with a new codec) is created for every reconnect.

    Attributes:
        transport: The socket carrying this connection.
        codec: Frame codec, holding this connection's inflate stream.
        conn_id: Short random identifier used in logs.
        heartbeat_interval_ms: From the server's HELLO; None until then.
        awaiting_ack: True between sending a heartbeat and its ACK.
        last_heartbeat: ``time.monotonic()`` of the last heartbeat sent.
        latency: Seconds between the last heartbeat and its ACK.
        created_at: Timestamp when the connection was created.
    """

    transport: Transport
    codec: PayloadCodec
    conn_id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    heartbeat_interval_ms: float | None = None
    awaiting_ack: bool = False
    last_heartbeat: float | None = None
    latency: float | None = None
    created_at: float = field(default_factory=time.time)
