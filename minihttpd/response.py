"""
Response rendering: fixed error responses and file responses.

Every response closes the connection; nothing has a Content-Type.
"""

import logging
from typing import BinaryIO, Dict

from minihttpd.connection import Connection

logger = logging.getLogger(__name__)

STATUS_RESPONSES: Dict[int, bytes] = {
    400: (b"HTTP/1.1 400 Bad Request\r\n"
          b"Connection: close\r\n"
          b"Content-Length: 0\r\n"
          b"\r\n"),
    404: (b"HTTP/1.1 404 Not Found\r\n"
          b"Connection: close\r\n"
          b"Content-Length: 0\r\n"
          b"\r\n"),
    405: (b"HTTP/1.1 405 Method Not Allowed\r\n"
          b"Allow: GET, HEAD\r\n"
          b"Connection: close\r\n"
          b"Content-Length: 0\r\n"
          b"\r\n"),
}


def status_response(status: int) -> bytes:
    """Return the complete response for an error status. KeyError if unknown."""
    return STATUS_RESPONSES[status]


def ok_headers(length: int) -> bytes:
    return (
        b"HTTP/1.1 200 OK\r\n"
        b"Connection: close\r\n"
        b"Content-Length: " + str(length).encode("ascii") + b"\r\n"
        b"\r\n"
    )


def write_error(connection: Connection, status: int) -> None:
    connection.sendall(status_response(status))


def write_file(connection: Connection, file: BinaryIO, length: int, include_body: bool) -> int:
    """
    Send a 200 response for an open file.

    Args:
        connection: Connection to write to
        file: File opened for binary reading
        length: Size reported in Content-Length
        include_body: False for HEAD, headers only

    Returns:
        Number of body bytes sent

    Raises:
        OSError: On a write error; the transfer is not retried
    """
    connection.sendall(ok_headers(length))
    if not include_body or length == 0:
        return 0

    sent = connection.sendfile(file, length)
    if sent < length:
        logger.warning(f"[{connection.peer}] File ended early: sent {sent} of {length} bytes")
    return sent
