#!/usr/bin/env python3
"""
Test suite for the WebSocket connection state machine and close handshake
"""
import asyncio
import unittest
from typing import List

from httpwire.core.stream import ByteStream
from httpwire.websocket.codec import decode_frame, encode_frame, parse_header
from httpwire.websocket.connection import (
    BinaryReceived,
    Closed,
    ConnectionState,
    ContinuationReceived,
    FrameReceived,
    PingReceived,
    PongReceived,
    QueueHandler,
    TextReceived,
    WebSocket,
    WebSocketHandler,
    parse_close_payload,
)
from httpwire.websocket.frame import Frame, InvalidClosePayload, InvalidFramePayload, OpCode

CLIENT_MASK = b"\x01\x02\x03\x04"


class MockStreamWriter:
    def __init__(self):
        self.buffer = bytearray()
        self.closed = False

    def write(self, data):
        self.buffer.extend(data)

    async def drain(self):
        pass

    def close(self):
        self.closed = True

    async def wait_closed(self):
        pass

    def is_closing(self):
        return self.closed

    def get_extra_info(self, name):
        return ('127.0.0.1', 8000) if name == 'peername' else None


def client_frame(opcode: OpCode, payload: bytes = b"", fin: bool = True) -> bytes:
    """Encode a frame the way a client sends it: masked."""
    return encode_frame(Frame.build(opcode, payload, fin=fin, masking_key=CLIENT_MASK))


def close_payload(code: int, reason: str = "") -> bytes:
    return code.to_bytes(2, "big") + reason.encode("utf-8")


def split_frames(data: bytes) -> List[Frame]:
    frames = []
    while data:
        header, offset = parse_header(data)
        end = offset + header.payload_length
        frames.append(decode_frame(data[:end]))
        data = data[end:]
    return frames


class RecordingHandler(WebSocketHandler):
    def __init__(self):
        self.calls = []

    async def on_frame(self, ws, frame):
        self.calls.append(("frame", frame.opcode))

    async def on_text(self, ws, text):
        self.calls.append(("text", text))

    async def on_binary(self, ws, data):
        self.calls.append(("binary", data))

    async def on_ping(self, ws, payload):
        self.calls.append(("ping", payload))

    async def on_pong(self, ws, payload):
        self.calls.append(("pong", payload))

    async def on_continuation(self, ws, data, fin, text=None):
        self.calls.append(("continuation", data, fin, text))

    async def on_close(self, ws, code, reason, cleanly):
        self.calls.append(("close", code, reason, cleanly))


class WebSocketTests(unittest.TestCase):
    def setUp(self):
        self.loop = asyncio.new_event_loop()
        asyncio.set_event_loop(self.loop)

    def tearDown(self):
        self.loop.close()

    def _run(self, incoming: bytes, before_listen=None, eof: bool = True, **kwargs):
        """Feed ``incoming`` to a server-side connection and listen until closed.

        Returns (websocket, events, frames written to the peer).
        """
        async def run():
            reader = asyncio.StreamReader()
            reader.feed_data(incoming)
            if eof:
                reader.feed_eof()
            writer = MockStreamWriter()
            handler = QueueHandler()
            ws = WebSocket(ByteStream(reader, writer), handler, **kwargs)
            if before_listen is not None:
                await before_listen(ws)
            await ws.listen()
            events = []
            while not handler.queue.empty():
                events.append(handler.queue.get_nowait())
            return ws, events, split_frames(bytes(writer.buffer))

        return self.loop.run_until_complete(run())

    def _non_frame_events(self, events):
        return [event for event in events if not isinstance(event, FrameReceived)]

    def test_clean_close_from_peer(self):
        payload = close_payload(1000, "bye")
        ws, events, sent = self._run(client_frame(OpCode.CLOSE, payload))

        self.assertIs(ws.state, ConnectionState.CLOSED)
        self.assertIsInstance(events[0], FrameReceived)
        self.assertEqual(events[-1], Closed(1000, "bye", True))
        # The close frame is echoed back unmasked
        self.assertEqual(len(sent), 1)
        self.assertIs(sent[0].opcode, OpCode.CLOSE)
        self.assertEqual(sent[0].payload, payload)
        self.assertFalse(sent[0].header.is_masked)

    def test_close_without_status(self):
        ws, events, sent = self._run(client_frame(OpCode.CLOSE))
        self.assertEqual(events[-1], Closed(1005, "", True))
        self.assertEqual(sent[0].payload, b"")

    def test_local_close_then_acknowledgement(self):
        async def close_first(ws):
            await ws.close(1000, "done")
            self.assertIs(ws.state, ConnectionState.CLOSING)

        ws, events, sent = self._run(
            client_frame(OpCode.CLOSE, close_payload(1000)),
            before_listen=close_first,
        )
        self.assertIs(ws.state, ConnectionState.CLOSED)
        self.assertEqual(events[-1], Closed(1000, "", True))
        # Only our own close frame; the acknowledgement is not echoed
        self.assertEqual(len(sent), 1)
        self.assertEqual(sent[0].payload, close_payload(1000, "done"))

    def test_abrupt_eof_is_unclean(self):
        ws, events, sent = self._run(b"")
        self.assertIs(ws.state, ConnectionState.CLOSED)
        self.assertEqual(events, [Closed(1006, "", False)])
        self.assertEqual(sent, [])

    def test_eof_after_messages_is_unclean(self):
        ws, events, sent = self._run(client_frame(OpCode.TEXT, b"hello"))
        self.assertEqual(self._non_frame_events(events), [TextReceived("hello", True), Closed(1006, "", False)])

    def test_text_and_binary_events(self):
        incoming = (
            client_frame(OpCode.TEXT, "héllo".encode("utf-8"))
            + client_frame(OpCode.BINARY, b"\x00\xff")
            + client_frame(OpCode.CLOSE, close_payload(1001))
        )
        ws, events, sent = self._run(incoming)
        self.assertEqual(
            self._non_frame_events(events),
            [TextReceived("héllo", True), BinaryReceived(b"\x00\xff", True), Closed(1001, "", True)],
        )
        self.assertEqual(
            [event.frame.opcode for event in events if isinstance(event, FrameReceived)],
            [OpCode.TEXT, OpCode.BINARY, OpCode.CLOSE],
        )

    def test_ping_gets_pong(self):
        incoming = client_frame(OpCode.PING, b"abc") + client_frame(OpCode.CLOSE)
        ws, events, sent = self._run(incoming)
        self.assertIn(PingReceived(b"abc"), events)
        self.assertEqual([frame.opcode for frame in sent], [OpCode.PONG, OpCode.CLOSE])
        self.assertEqual(sent[0].payload, b"abc")

    def test_pong_event(self):
        incoming = client_frame(OpCode.PONG, b"ok") + client_frame(OpCode.CLOSE)
        ws, events, sent = self._run(incoming)
        self.assertIn(PongReceived(b"ok"), events)
        self.assertEqual([frame.opcode for frame in sent], [OpCode.CLOSE])

    def test_continuation_frames_are_surfaced(self):
        incoming = (
            client_frame(OpCode.TEXT, b"Hel", fin=False)
            + client_frame(OpCode.CONTINUATION, b"lo", fin=True)
            + client_frame(OpCode.CLOSE)
        )
        ws, events, sent = self._run(incoming)
        self.assertEqual(
            self._non_frame_events(events),
            [TextReceived("Hel", False), ContinuationReceived(b"lo", True, "lo"), Closed(1005, "", True)],
        )

    def test_code_point_split_across_fragments(self):
        incoming = (
            client_frame(OpCode.TEXT, b"h\xc3", fin=False)
            + client_frame(OpCode.CONTINUATION, b"\xa9", fin=False)
            + client_frame(OpCode.CONTINUATION, b"!", fin=True)
            + client_frame(OpCode.CLOSE)
        )
        ws, events, sent = self._run(incoming)
        received = self._non_frame_events(events)
        self.assertEqual(received, [
            TextReceived("h", False),
            ContinuationReceived(b"\xa9", False, "é"),
            ContinuationReceived(b"!", True, "!"),
            Closed(1005, "", True),
        ])
        text = received[0].text + "".join(event.text for event in received[1:3])
        self.assertEqual(text.encode("utf-8"), b"h\xc3\xa9!")

    def test_incomplete_code_point_at_end_of_message_fails_connection(self):
        incoming = (
            client_frame(OpCode.TEXT, b"h\xc3", fin=False)
            + client_frame(OpCode.CONTINUATION, b"", fin=True)
        )
        ws, events, sent = self._run(incoming)
        self.assertEqual(events[-1].code, 1007)
        self.assertFalse(events[-1].cleanly)

    def test_binary_continuation_carries_no_text(self):
        incoming = (
            client_frame(OpCode.BINARY, b"\xc3", fin=False)
            + client_frame(OpCode.CONTINUATION, b"\xff", fin=True)
            + client_frame(OpCode.CLOSE)
        )
        ws, events, sent = self._run(incoming)
        self.assertIn(ContinuationReceived(b"\xff", True, None), events)
        self.assertEqual(events[-1], Closed(1005, "", True))

    def test_connection_reset_while_reading_is_unclean(self):
        class ResetReader:
            def at_eof(self):
                return False

            async def read(self, n=-1):
                raise ConnectionResetError("reset by peer")

        async def run():
            handler = QueueHandler()
            ws = WebSocket(ByteStream(ResetReader(), MockStreamWriter()), handler)
            await ws.listen()
            return ws, handler.queue.get_nowait()

        ws, event = self.loop.run_until_complete(run())
        self.assertIs(ws.state, ConnectionState.CLOSED)
        self.assertEqual(event, Closed(1006, "", False))

    def test_connection_reset_while_sending_pong_is_unclean(self):
        class BrokenWriter(MockStreamWriter):
            def write(self, data):
                raise ConnectionResetError("reset by peer")

        async def run():
            reader = asyncio.StreamReader()
            reader.feed_data(client_frame(OpCode.PING, b"p"))
            handler = QueueHandler()
            ws = WebSocket(ByteStream(reader, BrokenWriter()), handler)
            await ws.listen()
            events = []
            while not handler.queue.empty():
                events.append(handler.queue.get_nowait())
            return ws, events

        ws, events = self.loop.run_until_complete(run())
        self.assertIs(ws.state, ConnectionState.CLOSED)
        self.assertEqual(events[-1], Closed(1006, "", False))

    def test_close_echo_failure_still_finalizes(self):
        class BrokenWriter(MockStreamWriter):
            def write(self, data):
                raise BrokenPipeError("pipe closed")

        async def run():
            reader = asyncio.StreamReader()
            reader.feed_data(client_frame(OpCode.CLOSE, close_payload(1000, "bye")))
            handler = QueueHandler()
            ws = WebSocket(ByteStream(reader, BrokenWriter()), handler)
            await ws.listen()
            events = []
            while not handler.queue.empty():
                events.append(handler.queue.get_nowait())
            return ws, events

        ws, events = self.loop.run_until_complete(run())
        self.assertIs(ws.state, ConnectionState.CLOSED)
        self.assertEqual(events[-1], Closed(1000, "bye", True))

    def test_invalid_utf8_fails_connection(self):
        ws, events, sent = self._run(client_frame(OpCode.TEXT, b"\xff\xfe") + client_frame(OpCode.CLOSE))
        self.assertIs(ws.state, ConnectionState.CLOSED)
        self.assertEqual(events[-1].code, 1007)
        self.assertFalse(events[-1].cleanly)
        self.assertEqual(sent[-1].payload[:2], (1007).to_bytes(2, "big"))

    def test_reserved_opcode_fails_connection(self):
        ws, events, sent = self._run(bytes([0x83, 0x00]))
        self.assertEqual(events[-1].code, 1002)
        self.assertFalse(events[-1].cleanly)
        self.assertIs(sent[-1].opcode, OpCode.CLOSE)

    def test_truncated_frame_is_unclean(self):
        ws, events, sent = self._run(client_frame(OpCode.TEXT, b"hello")[:4])
        self.assertEqual(events, [Closed(1002, events[0].reason, False)])

    def test_invalid_close_code_fails_connection(self):
        ws, events, sent = self._run(client_frame(OpCode.CLOSE, close_payload(1005)))
        self.assertEqual(events[-1].code, 1002)
        self.assertFalse(events[-1].cleanly)

    def test_parse_close_payload(self):
        self.assertEqual(parse_close_payload(b""), (1005, ""))
        self.assertEqual(parse_close_payload(close_payload(4000, "later")), (4000, "later"))
        for payload in (b"\x03", close_payload(1006), close_payload(2999)):
            with self.assertRaises(InvalidClosePayload):
                parse_close_payload(payload)
        with self.assertRaises(InvalidFramePayload):
            parse_close_payload(close_payload(1000) + b"\xff")

    def test_payload_limit(self):
        ws, events, sent = self._run(client_frame(OpCode.BINARY, b"x" * 32), max_payload_size=16)
        self.assertEqual(events[-1].code, 1009)

    def test_close_is_noop_unless_open(self):
        async def run():
            reader = asyncio.StreamReader()
            writer = MockStreamWriter()
            ws = WebSocket(ByteStream(reader, writer))
            await ws.close()
            await ws.close(1000, "again")
            return split_frames(bytes(writer.buffer))

        sent = self.loop.run_until_complete(run())
        self.assertEqual(len(sent), 1)
        self.assertEqual(sent[0].payload, b"")

    def test_close_rejects_reserved_code(self):
        async def run():
            ws = WebSocket(ByteStream(asyncio.StreamReader(), MockStreamWriter()))
            with self.assertRaises(ValueError):
                await ws.close(1006)
            self.assertIs(ws.state, ConnectionState.OPEN)

        self.loop.run_until_complete(run())

    def test_masked_outgoing_frames(self):
        async def run():
            writer = MockStreamWriter()
            ws = WebSocket(ByteStream(asyncio.StreamReader(), writer), mask_outgoing=True)
            await ws.send_text("hi")
            await ws.send_binary(b"\x01")
            await ws.ping(b"p")
            return split_frames(bytes(writer.buffer))

        sent = self.loop.run_until_complete(run())
        self.assertTrue(all(frame.header.is_masked for frame in sent))
        self.assertEqual([(f.opcode, f.payload) for f in sent],
                         [(OpCode.TEXT, b"hi"), (OpCode.BINARY, b"\x01"), (OpCode.PING, b"p")])

    def test_handler_routing(self):
        async def run():
            reader = asyncio.StreamReader()
            reader.feed_data(
                client_frame(OpCode.TEXT, b"t")
                + client_frame(OpCode.BINARY, b"b")
                + client_frame(OpCode.PING, b"i")
                + client_frame(OpCode.PONG, b"o")
                + client_frame(OpCode.CONTINUATION, b"c")
                + client_frame(OpCode.CLOSE, close_payload(1000, "x"))
            )
            handler = RecordingHandler()
            ws = WebSocket(ByteStream(reader, MockStreamWriter()), handler)
            await ws.listen()
            return handler.calls

        calls = [call for call in self.loop.run_until_complete(run()) if call[0] != "frame"]
        self.assertEqual(calls, [
            ("text", "t"),
            ("binary", b"b"),
            ("ping", b"i"),
            ("pong", b"o"),
            ("continuation", b"c", True, None),
            ("close", 1000, "x", True),
        ])

    def test_handler_can_reply_while_listening(self):
        class Echo(WebSocketHandler):
            async def on_text(self, ws, text):
                await ws.send_text(text.upper())

        async def run():
            reader = asyncio.StreamReader()
            reader.feed_data(client_frame(OpCode.TEXT, b"shout") + client_frame(OpCode.CLOSE))
            writer = MockStreamWriter()
            await WebSocket(ByteStream(reader, writer), Echo()).listen()
            return split_frames(bytes(writer.buffer))

        sent = self.loop.run_until_complete(run())
        self.assertEqual([(f.opcode, f.payload) for f in sent], [(OpCode.TEXT, b"SHOUT"), (OpCode.CLOSE, b"")])


if __name__ == '__main__':
    unittest.main()
