"""
Line-oriented byte stream over asyncio streams.

This module provides the single transport abstraction used by both wire
engines:
- CRLF-terminated line reads
- Bounded reads of exactly N bytes (fewer only when the peer hangs up)
- Raw sends with explicit flushing
- Detection of peer-initiated closure
"""

"""
Copyright 2025 Chris Bunting
File: stream.py | Purpose: Byte stream abstraction for the HTTP and WebSocket engines
@author Chris Bunting | @version 1.0.1

CHANGELOG:
2025-09-14 - Chris Bunting: Track end of stream for short reads
2025-09-02 - Chris Bunting: Initial implementation
"""

import asyncio
import logging

logger = logging.getLogger("httpwire.stream")

CRLF = b"\r\n"


class StreamError(Exception):
    """Raised when the underlying transport cannot satisfy a read."""
    pass


class ByteStream:
    """Wraps an ``asyncio.StreamReader``/``StreamWriter`` pair.

    Every await in this class is a stream boundary; the parsers built on top
    of it never suspend anywhere else.
    """

    def __init__(self, reader: asyncio.StreamReader, writer):
        self.reader = reader
        self.writer = writer
        self._closed = False
        # Set once a read came back short because the peer stopped sending
        self.eof_reached = False

    async def receive_line(self) -> bytes:
        """Read one line and return it without its line terminator.

        Returns ``b""`` both for an empty line and for end of stream; callers
        that need to tell them apart check :attr:`eof_reached`.

        Raises:
            StreamError: If the line exceeds the reader's buffer limit
        """
        try:
            line = await self.reader.readuntil(b"\n")
        except asyncio.IncompleteReadError as e:
            # Peer closed mid-line, hand back what arrived
            self.eof_reached = True
            line = e.partial
        except asyncio.LimitOverrunError as e:
            raise StreamError(f"Line exceeds {e.consumed} bytes") from e

        if line.endswith(b"\n"):
            line = line[:-1]
            if line.endswith(b"\r"):
                line = line[:-1]
        return line

    async def receive(self, count: int) -> bytes:
        """Read exactly ``count`` bytes, or fewer if the stream ends first."""
        if count <= 0:
            return b""
        try:
            return await self.reader.readexactly(count)
        except asyncio.IncompleteReadError as e:
            self.eof_reached = True
            return e.partial

    async def receive_some(self, max_bytes: int = 65536) -> bytes:
        """Read whatever is available, up to ``max_bytes``."""
        return await self.reader.read(max_bytes)

    def send(self, data: bytes) -> None:
        """Queue bytes on the writer; call :meth:`flush` to push them out."""
        if data:
            self.writer.write(data)

    async def flush(self) -> None:
        await self.writer.drain()

    @property
    def closed(self) -> bool:
        """True once the peer has hung up or the stream was closed locally."""
        if self._closed or self.reader.at_eof():
            return True
        return self.writer.is_closing()

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.writer.close()
        try:
            await self.writer.wait_closed()
        except (ConnectionError, OSError):
            logger.debug("Peer dropped the connection before close completed", exc_info=True)
