"""
Utility functions for server configuration and operation.

This module provides core functionality for:
- Logging setup with structured JSON output (python-json-logger)
- Event loop setup with uvloop
- Server kwargs generation for different platforms
- Access log payloads
"""

"""
Copyright 2025 Chris Bunting
File: server_utils.py | Purpose: Logging, event loop and listener helpers
@author Chris Bunting | @version 1.1.0

CHANGELOG:
2025-09-06 - Chris Bunting: JSON logging via python-json-logger, access log payloads
2025-07-10 - Chris Bunting: Initial implementation
"""

import asyncio
import logging
import socket
import sys
from typing import Any, Dict, Optional

from pythonjsonlogger.json import JsonFormatter

if sys.platform != "win32":
    import uvloop

TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
JSON_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

logger = logging.getLogger("httpwire.server")


class ServerConfigError(Exception):
    """Custom exception for server configuration errors"""

    pass


def configure_logging(level=logging.INFO, log_file: Optional[str] = None, json_format: bool = True) -> logging.Logger:
    """Configure logging for every ``httpwire`` logger.

    Args:
        level: Logging level (default: INFO)
        log_file: Optional path to log file
        json_format: Emit one JSON object per record instead of plain text

    Returns:
        The ``httpwire`` parent logger
    """
    root = logging.getLogger("httpwire")
    root.setLevel(level)

    if json_format:
        formatter = JsonFormatter(JSON_FORMAT)
    else:
        formatter = logging.Formatter(TEXT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    # Replace handlers so repeated calls do not duplicate output
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    root.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    return root


def setup_uvloop() -> bool:
    """Install uvloop as the event loop policy on POSIX platforms.

    Returns:
        True when uvloop is in use, False on Windows

    Raises:
        ServerConfigError: If uvloop setup fails
    """
    if sys.platform == "win32":
        logger.info("uvloop unsupported on Windows, using default event loop")
        return False
    try:
        asyncio.set_event_loop_policy(uvloop.EventLoopPolicy())
    except (RuntimeError, TypeError) as e:
        logger.error(f"Failed to setup uvloop: {e}")
        raise ServerConfigError("Failed to initialize event loop") from e
    logger.info("Using uvloop event loop")
    return True


def get_server_kwargs(backlog: int = 2048, limit: Optional[int] = None) -> Dict[str, Any]:
    """Get platform-specific ``asyncio.start_server`` arguments.

    Args:
        backlog: Listen backlog
        limit: StreamReader buffer limit, which caps the length of a single line

    Returns:
        Dict of keyword arguments for ``asyncio.start_server``
    """
    kwargs: Dict[str, Any] = {
        "reuse_address": True,
        "backlog": backlog,  # Increased from default 100
    }

    if hasattr(socket, "SO_REUSEPORT") and sys.platform != "win32":
        kwargs["reuse_port"] = True

    if limit is not None:
        kwargs["limit"] = limit

    return kwargs


def access_log_payload(method: str, path: str, status: int, length: int, duration: float, client: str, request_id: str) -> Dict[str, Any]:
    payload = {
        "method": method,
        "path": path,
        "status": status,
        "length": length,
        "duration_s": round(duration, 6),
        "client": client,
        "request_id": request_id,
    }
    return payload
