"""
Request-target resolution.

Turns the raw request-target of a request line into a URI, filling in the
host and scheme the target itself does not carry (origin-form targets get
them from the ``Host`` header).
"""

"""
Copyright 2025 Chris Bunting
File: uri.py | Purpose: Request-target parsing on top of httptools.parse_url
@author Chris Bunting | @version 1.0.0

CHANGELOG:
2025-09-02 - Chris Bunting: Initial implementation
"""

from dataclasses import dataclass
from typing import Optional, Tuple

import httptools

DEFAULT_PORTS = {"http": 80, "https": 443, "ws": 80, "wss": 443}


class URIError(ValueError):
    """Raised when a request-target cannot be parsed."""
    pass


@dataclass
class URI:
    scheme: str = "http"
    host: Optional[str] = None
    port: Optional[int] = None
    path: Optional[str] = None
    query: Optional[str] = None
    fragment: Optional[str] = None
    userinfo: Optional[str] = None

    @property
    def authority(self) -> str:
        """``host[:port]``, omitting the port when it is the scheme default."""
        host = self.host or ""
        if ":" in host and not host.startswith("["):
            host = f"[{host}]"
        if self.port is None or DEFAULT_PORTS.get(self.scheme) == self.port:
            return host
        return f"{host}:{self.port}"


def split_host_port(value: str) -> Tuple[str, Optional[int]]:
    """Split a ``Host`` style value (``example.com:8080``, ``[::1]:80``).

    Raises:
        URIError: If the port is not a decimal number
    """
    value = value.strip()
    if value.startswith("["):
        end = value.find("]")
        if end == -1:
            raise URIError(f"Unterminated IPv6 literal: {value!r}")
        host, rest = value[1:end], value[end + 1:]
        if not rest:
            return host, None
        if not rest.startswith(":"):
            raise URIError(f"Invalid authority: {value!r}")
        port_text = rest[1:]
    else:
        host, sep, port_text = value.rpartition(":")
        if not sep:
            return value, None

    if not (port_text.isascii() and port_text.isdigit()) or int(port_text) > 65535:
        raise URIError(f"Invalid port in {value!r}")
    return host, int(port_text)


def _text(value: Optional[bytes]) -> Optional[str]:
    return value.decode("latin-1") if value is not None else None


class URIParser:
    """Parses a request-target, seeded with the message's ``Host`` header."""

    def __init__(self, raw: bytes, existing_host: Optional[str] = None, existing_scheme: str = "http"):
        self.raw = raw
        self.existing_host = existing_host
        self.existing_scheme = existing_scheme

    def parse(self) -> URI:
        if not self.raw:
            raise URIError("Empty request-target")

        if self._is_authority_form():
            host, port = split_host_port(self.raw.decode("latin-1"))
            return URI(scheme=self.existing_scheme, host=host, port=port)

        if self.raw == b"*":
            uri = URI(scheme=self.existing_scheme, path="*")
            if self.existing_host:
                uri.host, uri.port = split_host_port(self.existing_host)
            return uri

        try:
            parsed = httptools.parse_url(self.raw)
        except httptools.HttpParserInvalidURLError as e:
            raise URIError(f"Invalid request-target {self.raw!r}") from e

        uri = URI(
            scheme=_text(parsed.schema) or self.existing_scheme,
            host=_text(parsed.host),
            port=parsed.port,
            path=_text(parsed.path),
            query=_text(parsed.query),
            fragment=_text(parsed.fragment),
            userinfo=_text(parsed.userinfo),
        )

        if uri.host is None and self.existing_host:
            uri.host, uri.port = split_host_port(self.existing_host)
        return uri

    def _is_authority_form(self) -> bool:
        # CONNECT targets: host:port with no scheme and no path
        if self.raw.startswith((b"/", b"*")) or b"://" in self.raw:
            return False
        return b":" in self.raw and b"/" not in self.raw
