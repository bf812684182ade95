"""
HTTP/1.x message serializer.

Writes the start line, a working copy of the headers with framing metadata
injected, and the body, then flushes the stream.
"""

"""
Copyright 2025 Chris Bunting
File: serializer.py | Purpose: HTTP/1.x message serializer
@author Chris Bunting | @version 1.0.0

CHANGELOG:
2025-09-03 - Chris Bunting: Refuse CR/LF inside header fields
2025-09-02 - Chris Bunting: Initial implementation
"""

import logging

from .body import FixedBody, Sender, StreamingBody
from .errors import HTTPSerializerError
from .headers import Headers
from .message import HTTPMessage
from .stream import CRLF, ByteStream

logger = logging.getLogger("httpwire.http")


class HTTPMessageSerializer:
    """Serializes Request or Response messages onto a :class:`ByteStream`."""

    def __init__(self, stream: ByteStream):
        self.stream = stream

    async def serialize(self, message: HTTPMessage) -> None:
        """Write ``message`` and flush.

        Raises:
            HTTPSerializerError: If the start line or a header would inject a line break
        """
        start_line = message.make_start_line()
        self._check_line(start_line)
        headers = message.make_headers()

        # Validate everything before the first byte goes out
        for name, value in headers.fields():
            self._check_line(name)
            self._check_line(value)

        self.stream.send(start_line.encode("latin-1") + CRLF)
        self._serialize_headers(headers)
        await self._serialize_body(message.body)
        await self.stream.flush()

    def _serialize_headers(self, headers: Headers) -> None:
        # Insertion order is kept; control headers are not moved first
        lines = [f"{name}: {value}".encode("latin-1") + CRLF for name, value in headers.fields()]
        # trailing CRLF ends the header section
        lines.append(CRLF)
        self.stream.send(b"".join(lines))

    async def _serialize_body(self, body) -> None:
        if isinstance(body, FixedBody):
            if body.data:
                self.stream.send(body.data)
        elif isinstance(body, StreamingBody):
            await body.producer(Sender(self.stream))
        else:
            raise HTTPSerializerError(f"Unsupported body type: {type(body).__name__}")

    @staticmethod
    def _check_line(text: str) -> None:
        if "\r" in text or "\n" in text:
            logger.warning("Refusing to serialize header text containing a line break")
            raise HTTPSerializerError(f"Line break in header text: {text[:100]!r}")
