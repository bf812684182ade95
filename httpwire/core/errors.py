"""
Errors raised while parsing or serializing HTTP/1.x messages.

Every parse error aborts the message being parsed. ``status`` is the response
code a server should answer with; none of these are retried or corrected.
"""

"""
Copyright 2025 Chris Bunting
File: errors.py | Purpose: HTTP parser and serializer exceptions
@author Chris Bunting | @version 1.2.0

CHANGELOG:
2025-09-14 - Chris Bunting: Add TruncatedHeaders
2025-09-05 - Chris Bunting: Add InvalidContentLength for conflicting values
2025-09-02 - Chris Bunting: Initial implementation
"""


class HTTPParserError(Exception):
    """Base class for HTTP message parsing errors."""
    status = 400


class StreamEmpty(HTTPParserError):
    """No message: the stream ended or sent an empty start line."""
    pass


class InvalidStartLine(HTTPParserError):
    pass


class InvalidRequest(HTTPParserError):
    """Whitespace-prefixed line before the first header field."""
    pass


class InvalidHeaderLine(HTTPParserError):
    pass


class InvalidKeyWhitespace(HTTPParserError):
    """Whitespace between a field name and its colon."""
    pass


class HeaderLimitExceeded(HTTPParserError):
    status = 431


class InvalidVersion(HTTPParserError):
    pass


class InvalidVersionMajor(InvalidVersion):
    pass


class InvalidVersionMinor(InvalidVersion):
    pass


class InvalidMethod(HTTPParserError):
    pass


class InvalidStatusCode(HTTPParserError):
    pass


class InvalidURI(HTTPParserError):
    pass


class InvalidContentLength(HTTPParserError):
    pass


class InvalidChunkedBody(HTTPParserError):
    pass


class TruncatedHeaders(HTTPParserError):
    """The stream ended before the empty line closing the header section."""
    pass


class TruncatedBody(HTTPParserError):
    """The stream ended before the declared body length arrived."""
    pass


class BodyTooLarge(HTTPParserError):
    status = 413


class HTTPSerializerError(ValueError):
    """A message cannot be written without corrupting the stream."""
    pass
