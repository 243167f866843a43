"""Tests for the gateway payload codec."""

import json
import zlib
from unittest.mock import MagicMock

from rxcord.gateway import MISSING, ZLIB_SUFFIX, Envelope, Opcode, PayloadCodec


def _compressor():
    comp = zlib.compressobj()

    def chunk(message: dict) -> bytes:
        return comp.compress(json.dumps(message).encode()) + comp.flush(zlib.Z_SYNC_FLUSH)

    return chunk


class TestEncode:
    def test_heartbeat_with_null_sequence(self):
        codec = PayloadCodec()
        assert codec.encode(Envelope(Opcode.HEARTBEAT, None)) == '{"op":1,"d":null}'

    def test_missing_data_is_omitted(self):
        codec = PayloadCodec()
        assert codec.encode(Envelope(Opcode.HEARTBEAT)) == '{"op":1}'

    def test_dispatch_fields(self):
        envelope = Envelope(Opcode.DISPATCH, {"a": 1}, sequence=3, event_name="X")
        assert envelope.to_dict() == {"op": 0, "d": {"a": 1}, "s": 3, "t": "X"}


class TestDecodeText:
    def test_dispatch(self):
        codec = PayloadCodec()
        envelope = codec.decode('{"op":0,"s":5,"t":"MESSAGE_CREATE","d":{"id":"1"}}')
        assert envelope == Envelope(0, {"id": "1"}, sequence=5, event_name="MESSAGE_CREATE")

    def test_absent_data_differs_from_null(self):
        codec = PayloadCodec()
        assert codec.decode('{"op":11}').data is MISSING
        assert codec.decode('{"op":11,"d":null}').data is None

    def test_missing_is_falsy(self):
        assert not MISSING
        assert repr(MISSING) == "MISSING"

    def test_malformed_json_is_dropped_and_logged(self):
        logger = MagicMock()
        codec = PayloadCodec(logger=logger)
        assert codec.decode("{not json") is None
        logger.warning.assert_called_once()

    def test_non_object_is_dropped(self):
        codec = PayloadCodec(logger=MagicMock())
        assert codec.decode("[1, 2, 3]") is None

    def test_invalid_opcode_is_dropped(self):
        codec = PayloadCodec(logger=MagicMock())
        assert codec.decode('{"d":{}}') is None
        assert codec.decode('{"op":"10"}') is None
        assert codec.decode('{"op":true}') is None

    def test_unknown_opcode_is_kept(self):
        codec = PayloadCodec()
        assert codec.decode('{"op":42}').op == 42


class TestDecodeZlibStream:
    def test_messages_share_one_inflate_context(self):
        chunk = _compressor()
        codec = PayloadCodec()

        first = codec.decode(chunk({"op": 10, "d": {"heartbeat_interval": 100}}))
        second = codec.decode(chunk({"op": 11}))

        assert first.op == Opcode.HELLO
        assert first.data == {"heartbeat_interval": 100}
        assert second.op == Opcode.HEARTBEAT_ACK

    def test_partial_message_is_buffered(self):
        chunk = _compressor()
        codec = PayloadCodec()
        data = chunk({"op": 0, "t": "READY", "s": 1, "d": {"session_id": "abc"}})
        assert data.endswith(ZLIB_SUFFIX)

        assert codec.decode(data[:5]) is None
        envelope = codec.decode(data[5:])

        assert envelope.event_name == "READY"
        assert envelope.data == {"session_id": "abc"}

    def test_corrupt_stream_is_dropped(self):
        logger = MagicMock()
        codec = PayloadCodec(logger=logger)
        assert codec.decode(b"not zlib at all" + ZLIB_SUFFIX) is None
        logger.warning.assert_called_once()

    def test_oversized_partial_message_is_discarded(self):
        logger = MagicMock()
        codec = PayloadCodec(logger=logger, max_buffer_size=16)

        assert codec.decode(b"\x01" * 32) is None

        logger.warning.assert_called_once()
        assert codec.decode(b"\x01" * 8) is None
        logger.warning.assert_called_once()
