"""
WebSocket frame model (RFC 6455 section 5.2).

This module provides:
- The opcode set, with control/data classification
- Frame header and frame types whose invariants hold by construction
- Payload masking
- The frame-level exception hierarchy, each error carrying the close code
  a connection should fail with
"""

"""
Copyright 2025 Chris Bunting
File: frame.py | Purpose: WebSocket frame types, masking and frame errors
@author Chris Bunting | @version 1.0.1

CHANGELOG:
2025-09-14 - Chris Bunting: Add InvalidPayloadLength and InvalidClosePayload
2025-09-08 - Chris Bunting: Initial implementation
"""

import enum
import sys
from dataclasses import dataclass
from typing import Optional


class FrameError(Exception):
    """Base class for frame decoding and validation errors."""
    close_code = 1002  # protocol error


class ReservedOpCode(FrameError):
    """Opcodes 0x3-0x7 are reserved for further non-control frames."""
    pass


class InvalidOpCode(FrameError):
    """Opcodes 0xB-0xF are reserved for further control frames."""
    pass


class ReservedBitsSet(FrameError):
    """RSV1-3 set while no extension has been negotiated."""
    pass


class TruncatedFrame(FrameError):
    pass


class PayloadLengthMismatch(FrameError):
    pass


class InvalidPayloadLength(FrameError):
    """A 64-bit payload length with its most significant bit set."""
    pass


class FragmentedControlFrame(FrameError):
    pass


class ControlFrameTooLarge(FrameError):
    pass


class PayloadTooLarge(FrameError):
    close_code = 1009  # message too big


class InvalidFramePayload(FrameError):
    close_code = 1007  # inconsistent data, e.g. invalid UTF-8


class InvalidClosePayload(FrameError):
    """A one-byte close payload or a status code that may not appear on the wire."""
    pass


class UnexpectedCloseOpCode(FrameError):
    """Close handshake requested for a frame that is not a close frame."""
    pass


class OpCode(enum.IntEnum):
    CONTINUATION = 0x0
    TEXT = 0x1
    BINARY = 0x2
    CLOSE = 0x8
    PING = 0x9
    PONG = 0xA

    @property
    def is_control(self) -> bool:
        return bool(self & 0x8)

    @classmethod
    def from_bits(cls, value: int) -> "OpCode":
        """Decode the low nibble of the first frame byte.

        Raises:
            ReservedOpCode: For 0x3-0x7
            InvalidOpCode: For 0xB-0xF
        """
        if 0x3 <= value <= 0x7:
            raise ReservedOpCode(f"Reserved opcode {value:#x}")
        try:
            return cls(value)
        except ValueError as e:
            raise InvalidOpCode(f"Invalid opcode {value:#x}") from e


MASK_SIZE = 4


def apply_mask(data: bytes, mask: bytes) -> bytes:
    """XOR ``data`` with the 4-byte ``mask`` repeated; applying it twice is a no-op."""
    if len(mask) != MASK_SIZE:
        raise ValueError("mask must contain 4 bytes")

    data_len = len(data)
    if data_len == 0:
        return b""
    data_int = int.from_bytes(data, sys.byteorder)
    mask_repeated = mask * (data_len // MASK_SIZE) + mask[: data_len % MASK_SIZE]
    mask_int = int.from_bytes(mask_repeated, sys.byteorder)
    return (data_int ^ mask_int).to_bytes(data_len, sys.byteorder)


@dataclass(frozen=True)
class FrameHeader:
    """First 2-14 bytes of a frame.

    ``is_masked`` is derived from ``masking_key`` so a masked header without
    a key cannot be built.
    """
    opcode: OpCode
    payload_length: int
    fin: bool = True
    rsv1: bool = False
    rsv2: bool = False
    rsv3: bool = False
    masking_key: Optional[bytes] = None

    def __post_init__(self):
        if self.rsv1 or self.rsv2 or self.rsv3:
            raise ReservedBitsSet("Reserved bits must be 0 without extensions")
        if self.masking_key is not None and len(self.masking_key) != MASK_SIZE:
            raise ValueError("masking_key must contain 4 bytes")
        if self.payload_length < 0 or self.payload_length > 0x7FFFFFFFFFFFFFFF:
            raise ValueError(f"Invalid payload length {self.payload_length}")

    @property
    def is_masked(self) -> bool:
        return self.masking_key is not None


@dataclass(frozen=True)
class Frame:
    """A header plus its unmasked payload."""
    header: FrameHeader
    payload: bytes = b""

    def __post_init__(self):
        if self.header.payload_length != len(self.payload):
            raise PayloadLengthMismatch(
                f"Header declares {self.header.payload_length} bytes, payload has {len(self.payload)}"
            )

    @classmethod
    def build(cls, opcode: OpCode, payload: bytes = b"", fin: bool = True, masking_key: Optional[bytes] = None) -> "Frame":
        """Build a frame whose header length matches ``payload``."""
        header = FrameHeader(opcode=opcode, payload_length=len(payload), fin=fin, masking_key=masking_key)
        return cls(header, payload)

    @property
    def opcode(self) -> OpCode:
        return self.header.opcode

    @property
    def fin(self) -> bool:
        return self.header.fin

    def check_control(self) -> None:
        """Validate control frame rules (RFC 6455 section 5.5).

        Raises:
            FragmentedControlFrame: If a control frame has ``fin`` cleared
            ControlFrameTooLarge: If a control payload exceeds 125 bytes
        """
        if not self.opcode.is_control:
            return
        if not self.fin:
            raise FragmentedControlFrame(f"Fragmented {self.opcode.name} frame")
        if len(self.payload) > 125:
            raise ControlFrameTooLarge(f"{self.opcode.name} payload of {len(self.payload)} bytes")
