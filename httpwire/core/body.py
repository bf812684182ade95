"""
HTTP message bodies.

A body is either fixed (the whole payload is known up front) or streaming
(a producer coroutine writes it to the connection through a ``Sender``).
"""

"""
Copyright 2025 Chris Bunting
File: body.py | Purpose: Fixed and streaming HTTP message bodies
@author Chris Bunting | @version 1.0.0

CHANGELOG:
2025-09-03 - Chris Bunting: Split bodies out of the message model
"""

from dataclasses import dataclass
from typing import Awaitable, Callable, Union

from .stream import CRLF, ByteStream


class Sender:
    """Write handle given to a streaming body's producer.

    ``send`` writes raw bytes. ``write_chunk``/``finish`` are there for
    producers that want chunked framing without formatting it themselves.
    """

    def __init__(self, stream: ByteStream):
        self._stream = stream

    def send(self, data: bytes) -> None:
        self._stream.send(data)

    def write_chunk(self, data: bytes) -> None:
        if not data:
            # A zero-size chunk would terminate the body
            return
        self._stream.send(f"{len(data):X}".encode("ascii") + CRLF + data + CRLF)

    def finish(self) -> None:
        self._stream.send(b"0" + CRLF + CRLF)

    async def flush(self) -> None:
        await self._stream.flush()


@dataclass
class FixedBody:
    data: bytes = b""

    def __len__(self) -> int:
        return len(self.data)


@dataclass
class StreamingBody:
    producer: Callable[[Sender], Awaitable[None]]


Body = Union[FixedBody, StreamingBody]
