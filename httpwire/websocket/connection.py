"""
WebSocket connection state machine.

This module provides:
- The OPEN -> CLOSING -> CLOSED connection state
- Event dataclasses delivered to a single handler object
- ``WebSocket``: the receive loop, automatic pong replies, and the close
  handshake (RFC 6455 section 7)

Fragmented messages are not reassembled: continuation frames reach the
handler as ``ContinuationReceived`` events. Continuations of a text message
are decoded with the decoder that started on its first frame, so a code
point split across frames arrives intact.
"""

"""
Copyright 2025 Chris Bunting
File: connection.py | Purpose: WebSocket connection and close handshake
@author Chris Bunting | @version 1.2.0

CHANGELOG:
2025-09-14 - Chris Bunting: Decode text continuations, close uncleanly on transport errors
2025-09-10 - Chris Bunting: Parse close payload, send status code and reason
2025-09-08 - Chris Bunting: Initial implementation
"""

import asyncio
import codecs
import enum
import logging
from dataclasses import dataclass
from typing import Optional, Tuple, Union

from ..core.stream import ByteStream
from .codec import FrameCodec, new_masking_key
from .frame import (
    Frame,
    FrameError,
    InvalidClosePayload,
    InvalidFramePayload,
    OpCode,
    UnexpectedCloseOpCode,
)

logger = logging.getLogger("httpwire.websocket")

CLOSE_NORMAL = 1000
CLOSE_NO_STATUS = 1005
CLOSE_ABNORMAL = 1006


class ConnectionState(enum.Enum):
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


# Events


@dataclass
class FrameReceived:
    """Emitted for every frame, before the opcode-specific event."""
    frame: Frame


@dataclass
class TextReceived:
    text: str
    fin: bool = True


@dataclass
class BinaryReceived:
    data: bytes
    fin: bool = True


@dataclass
class PingReceived:
    payload: bytes


@dataclass
class PongReceived:
    payload: bytes


@dataclass
class ContinuationReceived:
    data: bytes
    fin: bool
    # Decoded text when the fragmented message started with a TEXT frame
    text: Optional[str] = None


@dataclass
class Closed:
    code: int
    reason: str
    cleanly: bool


Event = Union[
    FrameReceived, TextReceived, BinaryReceived, PingReceived,
    PongReceived, ContinuationReceived, Closed,
]


class WebSocketHandler:
    """Receives connection events; override the ``on_*`` coroutines you need."""

    async def handle_event(self, ws: "WebSocket", event: Event) -> None:
        if isinstance(event, FrameReceived):
            await self.on_frame(ws, event.frame)
        elif isinstance(event, TextReceived):
            await self.on_text(ws, event.text)
        elif isinstance(event, BinaryReceived):
            await self.on_binary(ws, event.data)
        elif isinstance(event, PingReceived):
            await self.on_ping(ws, event.payload)
        elif isinstance(event, PongReceived):
            await self.on_pong(ws, event.payload)
        elif isinstance(event, ContinuationReceived):
            await self.on_continuation(ws, event.data, event.fin, event.text)
        elif isinstance(event, Closed):
            await self.on_close(ws, event.code, event.reason, event.cleanly)

    async def on_frame(self, ws: "WebSocket", frame: Frame) -> None:
        pass

    async def on_text(self, ws: "WebSocket", text: str) -> None:
        pass

    async def on_binary(self, ws: "WebSocket", data: bytes) -> None:
        pass

    async def on_ping(self, ws: "WebSocket", payload: bytes) -> None:
        pass

    async def on_pong(self, ws: "WebSocket", payload: bytes) -> None:
        pass

    async def on_continuation(
        self, ws: "WebSocket", data: bytes, fin: bool, text: Optional[str] = None
    ) -> None:
        pass

    async def on_close(self, ws: "WebSocket", code: int, reason: str, cleanly: bool) -> None:
        pass


class QueueHandler(WebSocketHandler):
    """Pushes every event, unrouted, onto an ``asyncio.Queue``."""

    def __init__(self, queue: Optional[asyncio.Queue] = None):
        self.queue = queue if queue is not None else asyncio.Queue()

    async def handle_event(self, ws: "WebSocket", event: Event) -> None:
        await self.queue.put(event)


def is_valid_close_code(code: int) -> bool:
    # 1004-1006 and 1015 are reserved and never sent on the wire
    if 1000 <= code <= 1014:
        return code not in (1004, 1005, 1006)
    return 3000 <= code <= 4999


def parse_close_payload(payload: bytes) -> Tuple[int, str]:
    """Split a close frame payload into status code and reason.

    Raises:
        InvalidClosePayload: If the payload is one byte long or the code is not allowed
        InvalidFramePayload: If the reason is not valid UTF-8
    """
    if not payload:
        return CLOSE_NO_STATUS, ""
    if len(payload) == 1:
        raise InvalidClosePayload("Close payload must be empty or at least 2 bytes")
    code = int.from_bytes(payload[:2], "big")
    if not is_valid_close_code(code):
        raise InvalidClosePayload(f"Invalid close code {code}")
    try:
        reason = payload[2:].decode("utf-8")
    except UnicodeDecodeError as e:
        raise InvalidFramePayload("Close reason is not valid UTF-8") from e
    return code, reason


def build_close_payload(code: Optional[int] = None, reason: Optional[str] = None) -> bytes:
    if code is None:
        if reason:
            code = CLOSE_NORMAL
        else:
            return b""
    if not is_valid_close_code(code):
        raise ValueError(f"Close code {code} cannot be sent")
    payload = code.to_bytes(2, "big") + (reason or "").encode("utf-8")
    if len(payload) > 125:
        raise ValueError("Close reason too long")
    return payload


class WebSocket:
    """One WebSocket connection over an upgraded stream.

    Args:
        stream: Stream the handshake was completed on
        handler: Receives every event of this connection
        mask_outgoing: Mask sent frames with a fresh key (client role)
        max_payload_size: Largest accepted frame payload
    """

    def __init__(
        self,
        stream: ByteStream,
        handler: Optional[WebSocketHandler] = None,
        mask_outgoing: bool = False,
        max_payload_size: Optional[int] = None,
    ):
        self.stream = stream
        self.handler = handler or WebSocketHandler()
        self.mask_outgoing = mask_outgoing
        self.codec = FrameCodec(stream, max_payload_size=max_payload_size)
        self.state = ConnectionState.OPEN
        self.close_code: Optional[int] = None
        self.close_reason: Optional[str] = None
        self._text_decoder = codecs.getincrementaldecoder("utf-8")()
        self._text_fragmented = False

    # Receiving

    async def listen(self) -> None:
        """Receive and dispatch frames until the connection is CLOSED."""
        while self.state is not ConnectionState.CLOSED:
            # Peer hung up without a close handshake
            if self.stream.closed and not self.codec.buffered:
                await self._finalize(CLOSE_ABNORMAL, "", cleanly=False)
                break

            try:
                frame = await self.codec.read_frame()
                if frame is None:
                    await self._finalize(CLOSE_ABNORMAL, "", cleanly=False)
                    break
                await self._received(frame)
            except FrameError as e:
                logger.warning("WebSocket failed with error: %s", e)
                await self._fail(e.close_code, str(e))
                break
            except (ConnectionError, OSError) as e:
                if self.state is ConnectionState.CLOSED:
                    raise
                logger.warning("WebSocket transport lost: %s", e)
                await self._finalize(CLOSE_ABNORMAL, "", cleanly=False)
                break

    async def _received(self, frame: Frame) -> None:
        await self._emit(FrameReceived(frame))

        opcode = frame.opcode
        if opcode is OpCode.TEXT:
            self._text_decoder.reset()
            self._text_fragmented = not frame.fin
            text = self._decode_text(frame)
            await self._emit(TextReceived(text, frame.fin))
        elif opcode is OpCode.BINARY:
            self._text_fragmented = False
            await self._emit(BinaryReceived(frame.payload, frame.fin))
        elif opcode is OpCode.PING:
            await self._emit(PingReceived(frame.payload))
            if self.state is ConnectionState.OPEN:
                await self.send(Frame.build(OpCode.PONG, frame.payload))
        elif opcode is OpCode.PONG:
            await self._emit(PongReceived(frame.payload))
        elif opcode is OpCode.CLOSE:
            await self._received_close(frame)
        elif opcode is OpCode.CONTINUATION:
            logger.debug("Continuation frame of %d bytes (fin=%s)", len(frame.payload), frame.fin)
            text = None
            if self._text_fragmented:
                text = self._decode_text(frame)
                self._text_fragmented = not frame.fin
            await self._emit(ContinuationReceived(frame.payload, frame.fin, text))

    def _decode_text(self, frame: Frame) -> str:
        # A partial code point at the end of a non-final frame stays buffered
        try:
            return self._text_decoder.decode(frame.payload, final=frame.fin)
        except UnicodeDecodeError as e:
            raise InvalidFramePayload("Text frame is not valid UTF-8") from e

    async def _received_close(self, frame: Frame) -> None:
        if frame.opcode is not OpCode.CLOSE:
            raise UnexpectedCloseOpCode(f"Expected a close frame, got {frame.opcode.name}")

        code, reason = parse_close_payload(frame.payload)

        if self.state is ConnectionState.OPEN:
            # Peer started the handshake; echo its payload back
            self.state = ConnectionState.CLOSING
            try:
                await self._send_close_frame(frame.payload)
            except (ConnectionError, OSError):
                logger.debug("Could not echo close frame to peer", exc_info=True)
            await self._finalize(code, reason, cleanly=True)
        elif self.state is ConnectionState.CLOSING:
            # Peer acknowledged our close
            await self._finalize(code, reason, cleanly=True)
        else:
            logger.info("Received close frame (code=%d) on a closed connection", code)

    # Sending

    async def send(self, frame: Frame) -> None:
        """Write ``frame``, masking it first when this side masks."""
        if self.mask_outgoing and not frame.header.is_masked:
            frame = Frame.build(frame.opcode, frame.payload, fin=frame.fin, masking_key=new_masking_key())
        await self.codec.write_frame(frame)

    async def send_text(self, text: str) -> None:
        await self.send(Frame.build(OpCode.TEXT, text.encode("utf-8")))

    async def send_binary(self, data: bytes) -> None:
        await self.send(Frame.build(OpCode.BINARY, bytes(data)))

    async def ping(self, payload: bytes = b"") -> None:
        await self.send(Frame.build(OpCode.PING, payload))

    async def close(self, status_code: Optional[int] = None, reason: Optional[str] = None) -> None:
        """Start the close handshake; does nothing unless the connection is OPEN.

        Raises:
            ValueError: If ``status_code`` may not be sent or the payload exceeds 125 bytes
        """
        if self.state is not ConnectionState.OPEN:
            return
        payload = build_close_payload(status_code, reason)
        self.state = ConnectionState.CLOSING
        await self._send_close_frame(payload)

    async def _send_close_frame(self, payload: bytes) -> None:
        await self.send(Frame.build(OpCode.CLOSE, payload))

    # Closing

    async def _fail(self, code: int, reason: str) -> None:
        if self.state is ConnectionState.OPEN:
            self.state = ConnectionState.CLOSING
            try:
                await self._send_close_frame(build_close_payload(code))
            except (ConnectionError, OSError):
                logger.debug("Could not send close frame to failed peer", exc_info=True)
        await self._finalize(code, reason, cleanly=False)

    async def _finalize(self, code: int, reason: str, cleanly: bool) -> None:
        self.state = ConnectionState.CLOSED
        self.close_code = code
        self.close_reason = reason
        logger.debug("WebSocket closed code=%d cleanly=%s", code, cleanly)
        await self._emit(Closed(code, reason, cleanly))

    async def _emit(self, event: Event) -> None:
        await self.handler.handle_event(self, event)
