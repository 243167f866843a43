"""Wire envelope encoding and decoding for the gateway.

Every gateway message is a JSON object ``{"op", "d", "s", "t"}``. Outbound
messages are always text. Inbound messages arrive either as text or, with
``compress=zlib-stream``, as binary chunks of one continuous zlib stream
that spans the whole connection; a chunk is complete once it ends with the
``Z_SYNC_FLUSH`` marker.
"""

import json
import zlib
from dataclasses import dataclass
from enum import IntEnum
from typing import Any

from ..telemetry import OTelLogger
from ..utils import get_short_error_info

ZLIB_SUFFIX = b"\x00\x00\xff\xff"
MAX_BUFFER_SIZE = 16 * 1024 * 1024


class Opcode(IntEnum):
    """Gateway operation codes."""

    DISPATCH = 0
    HEARTBEAT = 1
    IDENTIFY = 2
    PRESENCE_UPDATE = 3
    VOICE_STATE_UPDATE = 4
    RESUME = 6
    RECONNECT = 7
    REQUEST_GUILD_MEMBERS = 8
    INVALID_SESSION = 9
    HELLO = 10
    HEARTBEAT_ACK = 11


class _Missing:
    """Marks a field that is absent from the wire, as opposed to ``null``."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "MISSING"


MISSING: Any = _Missing()


@dataclass(frozen=True)
class Envelope:
    """One gateway message.

    Attributes:
        op: Operation code.
        data: The ``d`` field; ``MISSING`` when absent.
        sequence: The ``s`` field, dispatch only.
        event_name: The ``t`` field, dispatch only.
    """

    op: int
    data: Any = MISSING
    sequence: int | None = None
    event_name: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Wire representation containing only the populated fields."""
        payload: dict[str, Any] = {"op": int(self.op)}
        if self.data is not MISSING:
            payload["d"] = self.data
        if self.sequence is not None:
            payload["s"] = self.sequence
        if self.event_name is not None:
            payload["t"] = self.event_name
        return payload


class PayloadCodec:
    """Encodes outbound envelopes and decodes inbound frames.

    A codec holds the inflate state of one connection and must not be
    reused after that connection is gone.

    Decoding never raises: malformed frames are logged and ``None`` is
    returned so the caller can drop them. Compressed chunks are buffered
    until the zlib flush suffix arrives; a buffer that grows past
    ``max_buffer_size`` without one is discarded.
    """

    def __init__(
        self, logger: OTelLogger | None = None, max_buffer_size: int = MAX_BUFFER_SIZE
    ):
        self._logger = logger
        self.max_buffer_size = max_buffer_size
        self._inflator = zlib.decompressobj()
        self._buffer = bytearray()

    def encode(self, envelope: Envelope) -> str:
        return json.dumps(envelope.to_dict(), separators=(",", ":"))

    def decode(self, frame: str | bytes) -> Envelope | None:
        if isinstance(frame, (bytes, bytearray)):
            text = self._inflate(bytes(frame))
            if text is None:
                return None
        else:
            text = frame

        try:
            message = json.loads(text)
        except ValueError as e:
            self._warn(f"Failed to parse frame: {get_short_error_info(e)}")
            return None

        if not isinstance(message, dict):
            self._warn(f"Dropping non-object frame: {text[:80]!r}")
            return None

        op = message.get("op")
        if not isinstance(op, int) or isinstance(op, bool):
            self._warn(f"Dropping frame without a valid opcode: {text[:80]!r}")
            return None

        sequence = message.get("s")
        event_name = message.get("t")
        return Envelope(
            op=op,
            data=message.get("d", MISSING),
            sequence=sequence if isinstance(sequence, int) else None,
            event_name=event_name if isinstance(event_name, str) else None,
        )

    def _inflate(self, chunk: bytes) -> str | None:
        self._buffer.extend(chunk)
        if len(self._buffer) < 4 or self._buffer[-4:] != ZLIB_SUFFIX:
            if len(self._buffer) > self.max_buffer_size:
                self._warn(
                    f"Discarding {len(self._buffer)} buffered bytes without a "
                    "zlib flush suffix"
                )
                self._buffer.clear()
            # partial message, wait for the rest
            return None

        data = bytes(self._buffer)
        self._buffer.clear()
        try:
            return self._inflator.decompress(data).decode("utf-8")
        except (zlib.error, UnicodeDecodeError) as e:
            self._warn(f"Failed to decompress frame: {get_short_error_info(e)}")
            return None

    def _warn(self, message: str) -> None:
        if self._logger is not None:
            self._logger.warning(message)
