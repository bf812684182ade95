"""
HTTP/1.x message parser reading from a line-oriented byte stream.

This module provides a strict HTTP message parser with:
- Start-line splitting that keeps multi-word reason phrases intact
- Header parsing with obs-fold support and rejection of whitespace before colons
- Content-Length and chunked body decoding, including trailer fields
- Strict size limits for security
"""

"""
Copyright 2025 Chris Bunting
File: http_parser.py | Purpose: HTTP/1.x message parser
@author Chris Bunting | @version 1.3.0

CHANGELOG:
2025-09-14 - Chris Bunting: Reject header sections cut short by end of stream
2025-09-05 - Chris Bunting: Reject conflicting Content-Length values
2025-09-04 - Chris Bunting: Parse chunked trailer section
2025-09-02 - Chris Bunting: Rewrite on top of ByteStream, drop httptools callbacks
2025-07-10 - Chris Bunting: Initial implementation
"""

import logging
import re
from typing import Generic, Optional, Type, TypeVar

from .body import FixedBody
from .errors import (
    BodyTooLarge,
    HeaderLimitExceeded,
    InvalidChunkedBody,
    InvalidContentLength,
    InvalidHeaderLine,
    InvalidKeyWhitespace,
    InvalidRequest,
    InvalidStartLine,
    StreamEmpty,
    TruncatedBody,
    TruncatedHeaders,
)
from .headers import Headers
from .message import HTTPMessage, StartLine
from .stream import CRLF, ByteStream

logger = logging.getLogger("httpwire.http")

MessageType = TypeVar("MessageType", bound=HTTPMessage)

HEX_RE = re.compile(rb"^[0-9A-Fa-f]+$")
WHITESPACE = b" \t"


class HTTPMessageParser(Generic[MessageType]):
    """Parses one HTTP message of type ``message_class`` per :meth:`parse` call.

    Constants:
        MAX_BODY_SIZE: Maximum allowed body size (10MB)
        MAX_HEADERS: Maximum number of header field lines (100)
    """
    MAX_BODY_SIZE = 10485760  # 10MB limit
    MAX_HEADERS = 100         # Maximum number of headers

    def __init__(self, stream: ByteStream, message_class: Type[MessageType]):
        self.stream = stream
        self.message_class = message_class

    async def parse(self) -> MessageType:
        """Read start line, headers and body and build the message.

        Returns:
            A Request or Response, depending on ``message_class``

        Raises:
            HTTPParserError: On any grammar violation; nothing is retried
        """
        start_line = await self.parse_start_line()
        headers = await self.parse_headers()
        trailers = Headers()
        if self.message_class.expects_body(start_line):
            body = await self.parse_body(headers, trailers)
        else:
            body = FixedBody()
        message = self.message_class.from_start_line(start_line, headers, body)
        message.trailers = trailers
        logger.debug("Parsed %s: %s", self.message_class.__name__, " ".join(start_line))
        return message

    async def parse_start_line(self) -> StartLine:
        """Split the start line into exactly three tokens.

        The last token keeps any remaining spaces so a reason phrase such as
        ``Not Found`` survives intact.

        Raises:
            StreamEmpty: If the line is empty or the stream has ended
            InvalidStartLine: If the line does not have three tokens
        """
        line = await self.stream.receive_line()
        if not line:
            raise StreamEmpty("No start line received")

        tokens = line.decode("latin-1").split(" ", 2)
        if len(tokens) != 3 or not tokens[0] or not tokens[1]:
            raise InvalidStartLine(f"Invalid start line: {line[:100]!r}")
        return tokens[0], tokens[1], tokens[2]

    async def parse_headers(self) -> Headers:
        """Read header field lines up to the empty line ending the section.

        Raises:
            InvalidRequest: If a continuation line precedes the first field
            InvalidKeyWhitespace: If whitespace separates a field name from its colon
            InvalidHeaderLine: If a line has no colon or no field name
            HeaderLimitExceeded: If the section holds too many field lines
            TruncatedHeaders: If the stream ends before the empty line
        """
        headers = Headers()
        last_field: Optional[str] = None
        count = 0

        while True:
            line = await self.stream.receive_line()
            if not line:
                if self.stream.eof_reached:
                    raise TruncatedHeaders("Stream ended inside the header section")
                break

            if line[:1] in (b" ", b"\t"):
                # obs-fold: continuation of the previous field value
                if last_field is None:
                    raise InvalidRequest("Whitespace before the first header field")
                headers.append_to_last(line.strip(WHITESPACE).decode("latin-1"))
                continue

            name, sep, value = line.partition(b":")
            if not sep or not name:
                raise InvalidHeaderLine(f"Malformed header line: {line[:100]!r}")
            if name[-1:] in (b" ", b"\t"):
                raise InvalidKeyWhitespace(f"Whitespace before colon in {name!r}")

            count += 1
            if count > self.MAX_HEADERS:
                raise HeaderLimitExceeded("Too many headers")

            last_field = name.decode("latin-1")
            headers.add(last_field, value.strip(WHITESPACE).decode("latin-1"))

        return headers

    async def parse_body(self, headers: Headers, trailers: Optional[Headers] = None) -> FixedBody:
        """Decode the body framed by ``headers``.

        Content-Length wins over Transfer-Encoding; a message with neither has
        an empty body.
        """
        content_length = self._content_length(headers)
        if content_length is not None:
            if content_length > self.MAX_BODY_SIZE:
                raise BodyTooLarge(f"Body of {content_length} bytes exceeds limit")
            data = await self.stream.receive(content_length)
            if len(data) != content_length:
                raise TruncatedBody(f"Expected {content_length} body bytes, got {len(data)}")
            return FixedBody(data)

        transfer_encoding = headers.get("Transfer-Encoding")
        if transfer_encoding is not None:
            codings = [c.strip().lower() for c in transfer_encoding.split(",")]
            # chunked MUST be the final coding
            if codings[-1] == "chunked":
                return FixedBody(await self._parse_chunked(trailers))

        return FixedBody()

    def _content_length(self, headers: Headers) -> Optional[int]:
        values = headers.get_list("Content-Length")
        if not values:
            return None

        lengths = set()
        for value in values:
            for item in value.split(","):
                item = item.strip()
                if not item.isascii() or not item.isdigit():
                    raise InvalidContentLength(f"Invalid Content-Length: {value!r}")
                lengths.add(int(item))

        if len(lengths) != 1:
            raise InvalidContentLength(f"Conflicting Content-Length values: {values!r}")
        return lengths.pop()

    async def _parse_chunked(self, trailers: Optional[Headers]) -> bytes:
        buffer = bytearray()

        while True:
            size_line = await self.stream.receive_line()
            if not size_line:
                break

            # Chunk extensions after ';' are ignored
            size_token = size_line.split(b";", 1)[0].strip(WHITESPACE)
            if not HEX_RE.match(size_token):
                logger.debug("Chunked body ended on invalid size line %r", size_line[:40])
                break
            size = int(size_token, 16)
            if size == 0:
                last_chunk = await self.parse_headers()
                if trailers is not None:
                    for name, value in last_chunk.fields():
                        trailers.add(name, value)
                break

            if len(buffer) + size > self.MAX_BODY_SIZE:
                raise BodyTooLarge("Chunked body too large")

            chunk = await self.stream.receive(size + len(CRLF))
            if len(chunk) != size + len(CRLF):
                raise TruncatedBody("Stream ended inside a chunk")
            if not chunk.endswith(CRLF):
                raise InvalidChunkedBody("Chunk data not followed by CRLF")
            buffer += chunk[:-len(CRLF)]

        return bytes(buffer)
