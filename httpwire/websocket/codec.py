"""
WebSocket frame encoding and decoding.

This module provides:
- ``decode_frame``/``encode_frame``: pure conversions between one complete
  frame's bytes and a :class:`Frame`
- ``FrameCodec``: reads frames off a live stream through a read-ahead buffer
  and writes them back, one instance per connection
"""

"""
Copyright 2025 Chris Bunting
File: codec.py | Purpose: WebSocket frame codec
@author Chris Bunting | @version 1.0.1

CHANGELOG:
2025-09-14 - Chris Bunting: Add InvalidPayloadLength
2025-09-08 - Chris Bunting: Initial implementation
"""

import logging
import os
from typing import Optional, Tuple

from ..core.stream import ByteStream
from .frame import (
    MASK_SIZE,
    Frame,
    FrameHeader,
    InvalidPayloadLength,
    OpCode,
    PayloadLengthMismatch,
    PayloadTooLarge,
    TruncatedFrame,
    apply_mask,
)

logger = logging.getLogger("httpwire.websocket")

MAX_7BIT_LENGTH = 125
MAX_16BIT_LENGTH = 0xFFFF
LENGTH_16BIT = 126
LENGTH_64BIT = 127


def parse_header(data: bytes) -> Optional[Tuple[FrameHeader, int]]:
    """Parse the frame header at the start of ``data``.

    Returns:
        ``(header, header_size)``, or None if ``data`` is too short to hold
        the whole header

    Raises:
        ReservedOpCode, InvalidOpCode: For opcodes outside the defined set
        ReservedBitsSet: If any RSV bit is set
    """
    if len(data) < 2:
        return None

    first, second = data[0], data[1]
    opcode = OpCode.from_bits(first & 0x0F)
    masked = bool(second & 0x80)
    length = second & 0x7F
    offset = 2

    if length == LENGTH_16BIT:
        if len(data) < offset + 2:
            return None
        length = int.from_bytes(data[offset:offset + 2], "big")
        offset += 2
    elif length == LENGTH_64BIT:
        if len(data) < offset + 8:
            return None
        length = int.from_bytes(data[offset:offset + 8], "big")
        if length >> 63:
            raise InvalidPayloadLength("Most significant bit of a 64-bit length must be 0")
        offset += 8

    masking_key = None
    if masked:
        if len(data) < offset + MASK_SIZE:
            return None
        masking_key = bytes(data[offset:offset + MASK_SIZE])
        offset += MASK_SIZE

    header = FrameHeader(
        opcode=opcode,
        payload_length=length,
        fin=bool(first & 0x80),
        rsv1=bool(first & 0x40),
        rsv2=bool(first & 0x20),
        rsv3=bool(first & 0x10),
        masking_key=masking_key,
    )
    return header, offset


def decode_frame(data: bytes) -> Frame:
    """Decode exactly one frame from ``data``.

    The payload is returned unmasked.

    Raises:
        TruncatedFrame: If ``data`` ends inside the header
        PayloadLengthMismatch: If the bytes after the header are not exactly
            the declared payload length
        FrameError: For any other protocol violation
    """
    parsed = parse_header(data)
    if parsed is None:
        raise TruncatedFrame(f"Frame header incomplete ({len(data)} bytes)")
    header, offset = parsed

    payload = bytes(data[offset:])
    if len(payload) != header.payload_length:
        raise PayloadLengthMismatch(
            f"Header declares {header.payload_length} bytes, got {len(payload)}"
        )
    if header.masking_key is not None:
        payload = apply_mask(payload, header.masking_key)

    frame = Frame(header, payload)
    frame.check_control()
    return frame


def encode_frame(frame: Frame) -> bytes:
    """Encode ``frame`` using the shortest length form; the payload is masked
    when the header carries a key."""
    header = frame.header
    first = (
        (0x80 if header.fin else 0)
        | (0x40 if header.rsv1 else 0)
        | (0x20 if header.rsv2 else 0)
        | (0x10 if header.rsv3 else 0)
        | int(header.opcode)
    )
    mask_bit = 0x80 if header.is_masked else 0

    length = len(frame.payload)
    output = bytearray([first])
    if length <= MAX_7BIT_LENGTH:
        output.append(mask_bit | length)
    elif length <= MAX_16BIT_LENGTH:
        output.append(mask_bit | LENGTH_16BIT)
        output += length.to_bytes(2, "big")
    else:
        output.append(mask_bit | LENGTH_64BIT)
        output += length.to_bytes(8, "big")

    if header.masking_key is not None:
        output += header.masking_key
        output += apply_mask(frame.payload, header.masking_key)
    else:
        output += frame.payload
    return bytes(output)


class FrameCodec:
    """Reads and writes frames on one connection's stream.

    Bytes read past the end of a frame stay in the read-ahead buffer for the
    next call, so the codec must live as long as the connection.

    Constants:
        MAX_PAYLOAD_SIZE: Default largest accepted payload (10MB)
    """
    MAX_PAYLOAD_SIZE = 10485760  # 10MB limit
    READ_SIZE = 65536

    def __init__(self, stream: ByteStream, max_payload_size: Optional[int] = None):
        if max_payload_size is not None and max_payload_size <= 0:
            raise ValueError("max_payload_size must be positive")
        self.stream = stream
        self.max_payload_size = max_payload_size or self.MAX_PAYLOAD_SIZE
        self._buffer = bytearray()

    @property
    def buffered(self) -> int:
        """Bytes read from the stream but not yet decoded."""
        return len(self._buffer)

    async def _fill(self) -> bool:
        data = await self.stream.receive_some(self.READ_SIZE)
        if not data:
            return False
        self._buffer += data
        return True

    async def read_frame(self) -> Optional[Frame]:
        """Read the next frame.

        Returns:
            The frame, or None when the stream ended cleanly between frames

        Raises:
            TruncatedFrame: If the stream ends inside a frame
            FrameError: For any protocol violation in the frame
        """
        while True:
            parsed = parse_header(self._buffer)
            if parsed is not None:
                break
            if not await self._fill():
                if self._buffer:
                    raise TruncatedFrame("Stream ended inside a frame header")
                return None

        header, offset = parsed
        if header.payload_length > self.max_payload_size:
            raise PayloadTooLarge(
                f"Payload of {header.payload_length} bytes exceeds {self.max_payload_size}"
            )

        total = offset + header.payload_length
        while len(self._buffer) < total:
            if not await self._fill():
                raise TruncatedFrame(
                    f"Stream ended after {len(self._buffer) - offset} of {header.payload_length} payload bytes"
                )

        data = bytes(self._buffer[:total])
        del self._buffer[:total]
        return decode_frame(data)

    async def write_frame(self, frame: Frame) -> None:
        self.stream.send(encode_frame(frame))
        await self.stream.flush()


def new_masking_key() -> bytes:
    return os.urandom(MASK_SIZE)
