"""
HTTP/1.x wire engine components
"""

from .body import Body, FixedBody, Sender, StreamingBody
from .errors import (
    BodyTooLarge,
    HeaderLimitExceeded,
    HTTPParserError,
    HTTPSerializerError,
    InvalidChunkedBody,
    InvalidContentLength,
    InvalidHeaderLine,
    InvalidKeyWhitespace,
    InvalidMethod,
    InvalidRequest,
    InvalidStartLine,
    InvalidStatusCode,
    InvalidURI,
    InvalidVersion,
    InvalidVersionMajor,
    InvalidVersionMinor,
    StreamEmpty,
    TruncatedBody,
    TruncatedHeaders,
)
from .headers import Headers
from .http_parser import HTTPMessageParser
from .message import HTTPMessage, Method, Request, Response, Version
from .serializer import HTTPMessageSerializer
from .stream import ByteStream, StreamError
from .uri import URI, URIError, URIParser

# Expose public interface
__all__ = [
    "ByteStream", "StreamError",
    "Headers",
    "Body", "FixedBody", "StreamingBody", "Sender",
    "URI", "URIParser", "URIError",
    "HTTPMessage", "Request", "Response", "Method", "Version",
    "HTTPMessageParser", "HTTPMessageSerializer",
    "HTTPParserError", "HTTPSerializerError",
    "StreamEmpty", "InvalidStartLine", "InvalidRequest", "InvalidHeaderLine",
    "InvalidKeyWhitespace", "HeaderLimitExceeded", "InvalidVersion",
    "InvalidVersionMajor", "InvalidVersionMinor", "InvalidMethod",
    "InvalidStatusCode", "InvalidURI", "InvalidContentLength",
    "InvalidChunkedBody", "TruncatedHeaders", "TruncatedBody", "BodyTooLarge",
]
