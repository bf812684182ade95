"""
asyncio connection server for the HTTP/1.x and WebSocket wire engines.

This module provides:
- ``WireServer``: listener on ``asyncio.start_server``, uvloop when available
- ``ConnectionHandler``: per-connection keep-alive loop that parses requests,
  answers parse failures with a 4xx response, and hands upgraded connections
  to a WebSocket handler
- Structured JSON access logs with per-request request IDs
- Graceful shutdown on SIGINT/SIGTERM
- ``main``: console entry point serving an echo app
"""

"""
Copyright 2025 Chris Bunting
File: server.py | Purpose: Connection server for the wire engines
@author Chris Bunting | @version 1.3.0

CHANGELOG:
2025-09-12 - Chris Bunting: WebSocket upgrade support
2025-09-11 - Chris Bunting: Parse with HTTPMessageParser, answer parse errors with 4xx
2025-08-20 - Chris Bunting: Add graceful shutdown, JSON logs, request IDs
2025-07-10 - Chris Bunting: Initial implementation
"""

import argparse
import asyncio
import logging
import os
import signal
import sys
import uuid
from http import HTTPStatus
from typing import Awaitable, Callable, List, Optional

from .core.body import FixedBody
from .core.errors import HTTPParserError, StreamEmpty
from .core.headers import Headers
from .core.http_parser import HTTPMessageParser
from .core.message import Request, Response
from .core.serializer import HTTPMessageSerializer
from .core.server_utils import access_log_payload, configure_logging, get_server_kwargs, setup_uvloop
from .core.stream import ByteStream, StreamError
from .websocket.connection import WebSocket, WebSocketHandler
from .websocket.handshake import HandshakeError, build_handshake_response, is_websocket_upgrade

logger = logging.getLogger("httpwire.server")

App = Callable[[Request], Awaitable[Response]]
HandlerFactory = Callable[[Request], WebSocketHandler]

MAX_LINE_SIZE = 65536  # longest start line or header line accepted


class WireServer:
    def __init__(
        self,
        app: App,
        host: str = "127.0.0.1",
        port: int = 8000,
        ws_handler_factory: Optional[HandlerFactory] = None,
        read_timeout: float = 10.0,
        max_requests: int = 1000,
        max_line_size: int = MAX_LINE_SIZE,
        max_body_size: Optional[int] = None,
        max_payload_size: Optional[int] = None,
    ):
        """
        app: coroutine function taking a Request and returning a Response
        ws_handler_factory: builds the WebSocketHandler for an upgraded request;
            upgrades are refused as plain requests when None
        read_timeout: seconds allowed for one whole request to arrive
        max_requests: max requests per connection (keep-alive)
        max_line_size: StreamReader limit, caps a single start/header line
        max_body_size: request body limit, defaults to the parser's
        max_payload_size: WebSocket frame payload limit, defaults to the codec's
        """
        if not 0 <= port <= 65535:
            raise ValueError(f"Invalid port {port}")
        if read_timeout <= 0:
            raise ValueError("read_timeout must be positive")
        if max_requests <= 0:
            raise ValueError("max_requests must be positive")
        if max_line_size <= 0:
            raise ValueError("max_line_size must be positive")

        self.app = app
        self.host = host
        self.port = port
        self.ws_handler_factory = ws_handler_factory
        self.read_timeout = read_timeout
        self.max_requests = max_requests
        self.max_line_size = max_line_size
        self.max_body_size = max_body_size
        self.max_payload_size = max_payload_size

        # Graceful shutdown coordination
        self._shutdown_event: Optional[asyncio.Event] = None
        self._server: Optional[asyncio.AbstractServer] = None

    def run(self) -> None:
        setup_uvloop()
        asyncio.run(self.serve())

    async def start(self) -> asyncio.AbstractServer:
        """Bind the listener and start accepting connections."""
        self._shutdown_event = asyncio.Event()
        self._server = await asyncio.start_server(
            self._handle_client,
            self.host,
            self.port,
            **get_server_kwargs(limit=self.max_line_size),
        )

        bound = f"{self.host}:{self.port}"
        if self._server.sockets:
            addr = self._server.sockets[0].getsockname()
            bound = f"{addr[0]}:{addr[1]}"
        logger.info("Serving on %s pid=%s", bound, os.getpid())
        return self._server

    async def serve(self) -> None:
        server = await self.start()

        # Attach signal handlers for graceful shutdown (POSIX)
        if sys.platform != "win32":
            loop = asyncio.get_running_loop()

            def _handle_signal():
                logger.info("Shutdown signal received, initiating graceful shutdown")
                loop.create_task(self.shutdown())

            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.add_signal_handler(sig, _handle_signal)

        async with server:
            await self._shutdown_event.wait()

    async def shutdown(self) -> None:
        # Stop accepting new connections, allow existing to drain
        if self._server is not None:
            self._server.close()
            logger.info("Server stopped accepting new connections, waiting for close")
            await self._server.wait_closed()

        # Connection handlers check the event before reading the next request
        if self._shutdown_event and not self._shutdown_event.is_set():
            self._shutdown_event.set()

    @property
    def sockets(self) -> list:
        return list(self._server.sockets) if self._server else []

    async def _handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        handler = ConnectionHandler(
            self.app,
            ws_handler_factory=self.ws_handler_factory,
            read_timeout=self.read_timeout,
            max_requests=self.max_requests,
            max_body_size=self.max_body_size,
            max_payload_size=self.max_payload_size,
            shutdown_event=self._shutdown_event,
        )
        try:
            await handler.handle_connection(reader, writer)
        except Exception:
            logger.exception("Connection handler raised an unexpected exception")
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except (ConnectionError, OSError):
                logger.debug("Error closing writer", exc_info=True)


class ConnectionHandler:
    def __init__(
        self,
        app: App,
        ws_handler_factory: Optional[HandlerFactory] = None,
        read_timeout: float = 10.0,
        max_requests: int = 1000,
        max_body_size: Optional[int] = None,
        max_payload_size: Optional[int] = None,
        shutdown_event: Optional[asyncio.Event] = None,
    ):
        self.app = app
        self.ws_handler_factory = ws_handler_factory
        self.read_timeout = read_timeout
        self.max_requests = max_requests
        self.max_body_size = max_body_size
        self.max_payload_size = max_payload_size
        self.shutdown_event = shutdown_event

    async def handle_connection(self, reader: asyncio.StreamReader, writer) -> None:
        """Handle keep-alive connection with multiple requests"""
        stream = ByteStream(reader, writer)
        parser = HTTPMessageParser(stream, Request)
        if self.max_body_size is not None:
            parser.MAX_BODY_SIZE = self.max_body_size
        serializer = HTTPMessageSerializer(stream)

        peer = writer.get_extra_info("peername")
        client = f"{peer[0]}:{peer[1]}" if peer else "unknown"

        keep_alive = True
        requests_handled = 0

        while keep_alive and requests_handled < self.max_requests:
            # If server is shutting down, stop accepting new requests on this connection
            if self.shutdown_event and self.shutdown_event.is_set():
                logger.info("Shutdown in progress - closing connection to %s", client)
                break

            try:
                request = await asyncio.wait_for(parser.parse(), timeout=self.read_timeout)
            except asyncio.TimeoutError:
                logger.warning("Read timeout while receiving request from %s", client)
                break
            except StreamEmpty:
                break
            except HTTPParserError as e:
                logger.warning("Malformed HTTP request from %s: %s", client, e)
                await self._send_error(serializer, e.status)
                break
            except StreamError as e:
                logger.warning("Request line too long from %s: %s", client, e)
                await self._send_error(serializer, HTTPStatus.REQUEST_HEADER_FIELDS_TOO_LARGE)
                break

            request_id = str(uuid.uuid4())

            if self.ws_handler_factory is not None and is_websocket_upgrade(request):
                await self._upgrade(stream, serializer, request, client, request_id)
                break

            start_time = asyncio.get_running_loop().time()
            try:
                response = await self.app(request)
            except Exception:
                logger.exception("Error processing request %s", request_id)
                # Return generic 500 without leaking internals
                response = error_response(HTTPStatus.INTERNAL_SERVER_ERROR)

            keep_alive = self._should_keep_alive(request, response)
            response.headers.set("X-Request-ID", request_id)
            if not keep_alive:
                response.headers.set("Connection", "close")

            await serializer.serialize(response)
            requests_handled += 1

            duration = asyncio.get_running_loop().time() - start_time
            length = len(response.body) if isinstance(response.body, FixedBody) else -1
            payload = access_log_payload(str(request.method), request.path, response.status, length, duration, client, request_id)
            logger.info("%s %s %d", request.method, request.path, response.status, extra=payload)

    async def _upgrade(self, stream: ByteStream, serializer: HTTPMessageSerializer, request: Request, client: str, request_id: str) -> None:
        try:
            response = build_handshake_response(request)
        except HandshakeError as e:
            logger.warning("Rejected WebSocket upgrade from %s: %s", client, e)
            await self._send_error(serializer, e.status)
            return

        await serializer.serialize(response)
        logger.info("WebSocket %s", request.path, extra=access_log_payload(
            str(request.method), request.path, response.status, 0, 0.0, client, request_id))

        ws = WebSocket(stream, self.ws_handler_factory(request), max_payload_size=self.max_payload_size)
        await ws.listen()

    @staticmethod
    def _should_keep_alive(request: Request, response: Response) -> bool:
        for headers in (request.headers, response.headers):
            connection = [token.strip().lower() for token in headers.get("Connection", "").split(",")]
            if "close" in connection:
                return False
        if (request.version.major, request.version.minor) < (1, 1):
            return "keep-alive" in request.headers.get("Connection", "").lower()
        return True

    async def _send_error(self, serializer: HTTPMessageSerializer, status: int) -> None:
        try:
            await serializer.serialize(error_response(status))
        except (ConnectionError, OSError):
            logger.debug("Could not send %d response", status, exc_info=True)


def error_response(status: int) -> Response:
    phrase = HTTPStatus(status).phrase
    headers = Headers([("Content-Type", "text/plain"), ("Connection", "close")])
    return Response(status=int(status), headers=headers, body=FixedBody(phrase.encode("ascii")))


# Echo app served by the console entry point


async def echo_app(request: Request) -> Response:
    body = request.body.data if isinstance(request.body, FixedBody) else b""
    if not body:
        body = f"{request.method} {request.path}\n".encode("latin-1")
    headers = Headers([("Content-Type", request.headers.get("Content-Type", "text/plain"))])
    return Response(status=200, headers=headers, body=FixedBody(body))


class EchoHandler(WebSocketHandler):
    async def on_text(self, ws: WebSocket, text: str) -> None:
        await ws.send_text(text)

    async def on_binary(self, ws: WebSocket, data: bytes) -> None:
        await ws.send_binary(data)

    async def on_close(self, ws: WebSocket, code: int, reason: str, cleanly: bool) -> None:
        logger.info("WebSocket closed code=%d cleanly=%s", code, cleanly)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="httpwire echo server")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    parser.add_argument("--log-file", help="Also write logs to this file")
    parser.add_argument("--text-logs", action="store_true", help="Plain text logs instead of JSON")
    parser.add_argument("--read-timeout", type=float, default=10.0)
    parser.add_argument("--max-requests", type=int, default=1000)
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> None:
    args = parse_args(argv)
    configure_logging(getattr(logging, args.log_level), args.log_file, json_format=not args.text_logs)
    server = WireServer(
        echo_app,
        host=args.host,
        port=args.port,
        ws_handler_factory=lambda request: EchoHandler(),
        read_timeout=args.read_timeout,
        max_requests=args.max_requests,
    )
    server.run()


if __name__ == "__main__":
    main()
