"""
HTTP request framing and request-line parsing.
"""

import logging
from typing import NamedTuple, Optional

from minihttpd import config
from minihttpd.connection import Connection

logger = logging.getLogger(__name__)

HEADER_TERMINATOR = b"\r\n\r\n"
DEFAULT_ENCODING = "utf-8"


class FramingError(Exception):
    """The header block could not be read from the connection."""


class ConnectionClosed(FramingError):
    """Peer went away, a read failed, or a read timed out before the blank line."""


class HeaderTooLarge(FramingError):
    """Header block exceeded the size ceiling."""


class Request(NamedTuple):
    method: str
    target: str
    version: str


def read_header_block(connection: Connection, limit: int = config.MAX_HEADER_BYTES,
                      timeout: Optional[float] = config.RECV_TIMEOUT) -> bytes:
    """
    Read from the connection until the end of the header block.

    Args:
        connection: Connection to read from
        limit: Maximum size of the header block, terminator included
        timeout: Per-read inactivity deadline in seconds

    Returns:
        Header block including the terminating blank line. Bytes the peer
        sent after it are discarded.

    Raises:
        ConnectionClosed: End of stream, read error or timeout first
        HeaderTooLarge: No terminator within limit bytes
    """
    buffer = b""
    while True:
        try:
            chunk = connection.recv(config.READ_CHUNK, timeout)
        except OSError as e:
            raise ConnectionClosed(f"read failed: {e}") from e
        if not chunk:
            raise ConnectionClosed("connection closed by peer")

        # Terminator may straddle two chunks
        search_from = max(0, len(buffer) - len(HEADER_TERMINATOR) + 1)
        buffer += chunk
        end = buffer.find(HEADER_TERMINATOR, search_from)
        if end != -1:
            end += len(HEADER_TERMINATOR)
            if end > limit:
                raise HeaderTooLarge(f"header block of {end} bytes exceeds {limit}")
            return buffer[:end]

        if len(buffer) > limit:
            raise HeaderTooLarge(f"no header terminator within {limit} bytes")


def parse_request_line(data: bytes) -> Request:
    """
    Split the first line of a header block into method, target and version.

    Missing tokens become empty strings; extra tokens are ignored.
    """
    first_line = data.split(b"\r\n", 1)[0].decode(DEFAULT_ENCODING, errors="replace")
    parts = first_line.split()
    parts += [""] * (3 - len(parts))
    return Request(parts[0], parts[1], parts[2])


def parse_request(connection: Connection, limit: int = config.MAX_HEADER_BYTES,
                  timeout: Optional[float] = config.RECV_TIMEOUT) -> Request:
    """Read one request from the connection. Raises FramingError subclasses."""
    data = read_header_block(connection, limit, timeout)
    request = parse_request_line(data)
    logger.debug(f"[{connection.peer}] Request line: {request.method} {request.target} {request.version}")
    return request
