"""
WebSocket wire engine components
"""

from .codec import FrameCodec, decode_frame, encode_frame
from .connection import (
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
)
from .frame import (
    ControlFrameTooLarge,
    Frame,
    FrameError,
    FrameHeader,
    FragmentedControlFrame,
    InvalidClosePayload,
    InvalidFramePayload,
    InvalidOpCode,
    InvalidPayloadLength,
    OpCode,
    PayloadLengthMismatch,
    PayloadTooLarge,
    ReservedBitsSet,
    ReservedOpCode,
    TruncatedFrame,
    UnexpectedCloseOpCode,
    apply_mask,
)
from .handshake import HandshakeError, accept_key, build_handshake_response, is_websocket_upgrade

# Expose public interface
__all__ = [
    "Frame", "FrameHeader", "OpCode", "apply_mask",
    "FrameCodec", "decode_frame", "encode_frame",
    "WebSocket", "ConnectionState", "WebSocketHandler", "QueueHandler",
    "FrameReceived", "TextReceived", "BinaryReceived", "PingReceived",
    "PongReceived", "ContinuationReceived", "Closed",
    "HandshakeError", "accept_key", "build_handshake_response", "is_websocket_upgrade",
    "FrameError", "ReservedOpCode", "InvalidOpCode", "ReservedBitsSet",
    "TruncatedFrame", "PayloadLengthMismatch", "InvalidPayloadLength", "FragmentedControlFrame",
    "ControlFrameTooLarge", "PayloadTooLarge", "InvalidFramePayload", "InvalidClosePayload",
    "UnexpectedCloseOpCode",
]
