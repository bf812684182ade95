from .core import (
    ByteStream, Headers, FixedBody, StreamingBody, Sender, URI, URIParser,
    Request, Response, Method, Version, HTTPMessageParser, HTTPMessageSerializer,
    HTTPParserError, HTTPSerializerError,
)
from .websocket import (
    Frame, FrameHeader, OpCode, FrameCodec, decode_frame, encode_frame,
    WebSocket, WebSocketHandler, QueueHandler, ConnectionState, FrameError,
)
from .server import WireServer, ConnectionHandler

__version__ = '1.0.0'

__all__ = [
    # HTTP engine
    'ByteStream',
    'Headers',
    'FixedBody',
    'StreamingBody',
    'Sender',
    'URI',
    'URIParser',
    'Request',
    'Response',
    'Method',
    'Version',
    'HTTPMessageParser',
    'HTTPMessageSerializer',
    'HTTPParserError',
    'HTTPSerializerError',

    # WebSocket engine
    'Frame',
    'FrameHeader',
    'OpCode',
    'FrameCodec',
    'decode_frame',
    'encode_frame',
    'WebSocket',
    'WebSocketHandler',
    'QueueHandler',
    'ConnectionState',
    'FrameError',

    # Server
    'WireServer',
    'ConnectionHandler',
]
