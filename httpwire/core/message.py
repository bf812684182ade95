"""
HTTP message model.

Request and Response share one capability: build their start line and the
headers to put on the wire, and construct themselves from the three start
line tokens produced by the parser.
"""

"""
Copyright 2025 Chris Bunting
File: message.py | Purpose: Request/Response model for the HTTP engine
@author Chris Bunting | @version 1.0.0

CHANGELOG:
2025-09-04 - Chris Bunting: Carry Set-Cookie lines as cookie_headers on responses
2025-09-02 - Chris Bunting: Initial implementation
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from http import HTTPStatus
from typing import List, Optional, Tuple, Union

from .body import Body, FixedBody
from .errors import (
    InvalidMethod,
    InvalidStatusCode,
    InvalidURI,
    InvalidVersion,
    InvalidVersionMajor,
    InvalidVersionMinor,
)
from .headers import Headers
from .uri import URI, URIError, URIParser

# RFC 7230 token characters
TOKEN_RE = re.compile(r"^[!#$%&'*+\-.^_`|~0-9A-Za-z]+$")
DIGITS_RE = re.compile(r"^[0-9]+$")


class Method(str, Enum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"
    OPTIONS = "OPTIONS"
    HEAD = "HEAD"
    CONNECT = "CONNECT"
    TRACE = "TRACE"

    def __str__(self) -> str:
        return self.value


def parse_method(token: str) -> Union[Method, str]:
    """Map a method token to :class:`Method`, keeping unknown verbs verbatim.

    Raises:
        InvalidMethod: If the token contains non-token characters
    """
    if not TOKEN_RE.match(token):
        raise InvalidMethod(f"Invalid method token: {token!r}")
    try:
        return Method(token.upper())
    except ValueError:
        return token


@dataclass(frozen=True)
class Version:
    major: int = 1
    minor: int = 1

    @classmethod
    def parse(cls, token: str) -> "Version":
        """Parse ``HTTP/<major>.<minor>``."""
        protocol, sep, numbers = token.partition("/")
        if not sep or protocol != "HTTP":
            raise InvalidVersion(f"Invalid HTTP version: {token!r}")
        major, sep, minor = numbers.partition(".")
        if not sep:
            raise InvalidVersion(f"Invalid HTTP version: {token!r}")
        if not DIGITS_RE.match(major):
            raise InvalidVersionMajor(f"Invalid major version: {token!r}")
        if not DIGITS_RE.match(minor):
            raise InvalidVersionMinor(f"Invalid minor version: {token!r}")
        return cls(int(major), int(minor))

    def __str__(self) -> str:
        return f"HTTP/{self.major}.{self.minor}"


StartLine = Tuple[str, str, str]


class HTTPMessage(ABC):
    """Capability shared by requests and responses."""

    headers: Headers
    body: Body
    version: Version

    @abstractmethod
    def make_start_line(self) -> str:
        ...

    @abstractmethod
    def make_headers(self) -> Headers:
        """Return a working copy of the headers ready for the wire."""
        ...

    @classmethod
    @abstractmethod
    def from_start_line(cls, start_line: StartLine, headers: Headers, body: Body) -> "HTTPMessage":
        ...

    @classmethod
    def expects_body(cls, start_line: StartLine) -> bool:
        return True


@dataclass
class Request(HTTPMessage):
    method: Union[Method, str] = Method.GET
    uri: URI = field(default_factory=lambda: URI(path="/"))
    version: Version = field(default_factory=Version)
    headers: Headers = field(default_factory=Headers)
    body: Body = field(default_factory=FixedBody)
    trailers: Headers = field(default_factory=Headers)

    @property
    def path(self) -> str:
        return self.uri.path or "/"

    def make_start_line(self) -> str:
        if self.method == Method.CONNECT and self.uri.host:
            target = self.uri.authority
        elif self.uri.path == "*":
            target = "*"
        else:
            target = self.uri.path or "/"
            if self.uri.query:
                target += f"?{self.uri.query}"
            if self.uri.fragment:
                target += f"#{self.uri.fragment}"
            # Origin-form only; absolute-form is accepted but never generated
            if not target.startswith("/"):
                target = "/" + target
        return f"{self.method} {target} {self.version}"

    def make_headers(self) -> Headers:
        headers = self.headers.copy()
        headers.append_host(self.uri)
        headers.append_metadata(self.body)
        headers.ensure_connection(self.version)
        return headers

    @classmethod
    def from_start_line(cls, start_line: StartLine, headers: Headers, body: Body) -> "Request":
        method_token, target, version_token = start_line
        method = parse_method(method_token)
        parser = URIParser(target.encode("latin-1"), existing_host=headers.get("Host"), existing_scheme="http")
        try:
            uri = parser.parse()
        except URIError as e:
            raise InvalidURI(str(e)) from e
        return cls(
            method=method,
            uri=uri,
            version=Version.parse(version_token),
            headers=headers,
            body=body,
        )


@dataclass
class Response(HTTPMessage):
    status: int = 200
    reason: Optional[str] = None
    version: Version = field(default_factory=Version)
    headers: Headers = field(default_factory=Headers)
    body: Body = field(default_factory=FixedBody)
    cookie_headers: List[str] = field(default_factory=list)
    trailers: Headers = field(default_factory=Headers)

    def __post_init__(self):
        if self.reason is None:
            try:
                self.reason = HTTPStatus(self.status).phrase
            except ValueError:
                self.reason = ""

    def make_start_line(self) -> str:
        return f"{self.version} {self.status} {self.reason}"

    def make_headers(self) -> Headers:
        headers = self.headers.copy()
        for cookie in self.cookie_headers:
            headers.add("Set-Cookie", cookie)
        if self.has_body_semantics(self.status):
            headers.append_metadata(self.body)
        headers.ensure_connection(self.version)
        return headers

    @staticmethod
    def has_body_semantics(status: int) -> bool:
        """1xx, 204 and 304 responses never carry a body."""
        return not (100 <= status < 200 or status in (204, 304))

    @classmethod
    def expects_body(cls, start_line: StartLine) -> bool:
        status = start_line[1]
        if len(status) == 3 and DIGITS_RE.match(status):
            return cls.has_body_semantics(int(status))
        return True

    @classmethod
    def from_start_line(cls, start_line: StartLine, headers: Headers, body: Body) -> "Response":
        version_token, status_token, reason = start_line
        version = Version.parse(version_token)
        if len(status_token) != 3 or not DIGITS_RE.match(status_token):
            raise InvalidStatusCode(f"Invalid status code: {status_token!r}")
        cookies = headers.get_list("Set-Cookie")
        headers.pop("Set-Cookie")
        return cls(
            status=int(status_token),
            reason=reason,
            version=version,
            headers=headers,
            body=body,
            cookie_headers=cookies,
        )
