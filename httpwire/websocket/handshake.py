"""
WebSocket opening handshake (RFC 6455 section 4.2).

Decides whether a parsed request asks for a WebSocket upgrade and builds the
``101 Switching Protocols`` response that completes it.
"""

"""
Copyright 2025 Chris Bunting
File: handshake.py | Purpose: WebSocket upgrade request validation and response
@author Chris Bunting | @version 1.0.0

CHANGELOG:
2025-09-09 - Chris Bunting: Initial implementation
"""

import base64
import binascii
import hashlib

from ..core.headers import Headers
from ..core.message import Method, Request, Response

WEBSOCKET_GUID = "258EAFA5-E914-47DA-95CA-C5AB0DC85B11"
SUPPORTED_VERSION = "13"


class HandshakeError(Exception):
    """Raised when an upgrade request cannot be accepted."""
    status = 400


def accept_key(client_key: str) -> str:
    """Compute ``Sec-WebSocket-Accept`` for a ``Sec-WebSocket-Key``.

    SHA-1 of the key and the protocol GUID, base64 encoded.
    """
    digest = hashlib.sha1((client_key + WEBSOCKET_GUID).encode("ascii")).digest()
    return base64.b64encode(digest).decode("ascii")


def _tokens(value: str) -> list:
    return [token.strip().lower() for token in value.split(",")]


def is_websocket_upgrade(request: Request) -> bool:
    """True if the request carries ``Upgrade: websocket`` and ``Connection: upgrade``."""
    upgrade = request.headers.get("Upgrade", "")
    connection = request.headers.get("Connection", "")
    return "websocket" in _tokens(upgrade) and "upgrade" in _tokens(connection)


def build_handshake_response(request: Request) -> Response:
    """Validate an upgrade request and return the 101 response for it.

    Raises:
        HandshakeError: If the method, version or key does not allow the upgrade
    """
    if request.method != Method.GET:
        raise HandshakeError(f"WebSocket upgrade requires GET, got {request.method}")
    if not is_websocket_upgrade(request):
        raise HandshakeError("Missing Upgrade: websocket / Connection: upgrade")

    version = request.headers.get("Sec-WebSocket-Version")
    if version is None or version.strip() != SUPPORTED_VERSION:
        raise HandshakeError(f"Unsupported Sec-WebSocket-Version: {version!r}")

    key = request.headers.get("Sec-WebSocket-Key")
    if key is None:
        raise HandshakeError("Missing Sec-WebSocket-Key")
    key = key.strip()
    try:
        decoded = base64.b64decode(key, validate=True)
    except binascii.Error as e:
        raise HandshakeError(f"Sec-WebSocket-Key is not base64: {key!r}") from e
    if len(decoded) != 16:
        raise HandshakeError("Sec-WebSocket-Key must decode to 16 bytes")

    headers = Headers()
    headers.set("Upgrade", "websocket")
    headers.set("Connection", "Upgrade")
    headers.set("Sec-WebSocket-Accept", accept_key(key))
    return Response(status=101, version=request.version, headers=headers)
