"""
Per-connection request handling.

A ConnectionHandler takes one accepted connection through
READING_REQUEST -> VALIDATING -> SERVING -> DONE, sends at most one
response and always closes the connection. Handlers share no state, so
the same code runs unchanged in a thread or in a forked child.
"""

import enum
import logging
import os
from typing import BinaryIO, Optional

from minihttpd import config
from minihttpd.connection import Connection
from minihttpd.paths import is_safe, resolve
from minihttpd.request import ConnectionClosed, HeaderTooLarge, Request, parse_request
from minihttpd.response import write_error, write_file

logger = logging.getLogger(__name__)

ALLOWED_METHODS = ("GET", "HEAD")


class State(enum.Enum):
    READING_REQUEST = "reading_request"
    VALIDATING = "validating"
    SERVING = "serving"
    DONE = "done"


class ConnectionHandler:
    """
    Serve exactly one request on one connection.

    Attributes:
        state: Current state; DONE once handle() returns
        request: Parsed request, or None if framing failed
        status: Status code of the response sent, or None if none was sent
        bytes_sent: Body bytes transmitted for a 200 response
    """

    def __init__(self, connection: Connection, document_root: str = config.DOCUMENT_ROOT,
                 recv_timeout: Optional[float] = config.RECV_TIMEOUT,
                 max_header_bytes: int = config.MAX_HEADER_BYTES):
        self.connection = connection
        self.document_root = document_root
        self.recv_timeout = recv_timeout
        self.max_header_bytes = max_header_bytes
        self.state = State.READING_REQUEST
        self.request: Optional[Request] = None
        self.status: Optional[int] = None
        self.bytes_sent = 0

    def handle(self) -> None:
        """Run the state machine to completion. Never raises OSError."""
        peer = self.connection.peer
        try:
            self._read_request()
            if self.state is State.VALIDATING:
                path = self._validate()
                if self.state is State.SERVING:
                    self._serve(path)
        except OSError as e:
            # Transport failure while writing; no second response
            logger.info(f"[{peer}] Connection aborted: {e}")
        except Exception:
            logger.exception(f"[{peer}] Unexpected error while handling connection")
        finally:
            self.connection.close()
            self.state = State.DONE

        if self.request is not None:
            logger.info(f'[{peer}] "{self.request.method} {self.request.target}" '
                        f'{self.status if self.status is not None else "-"} {self.bytes_sent}')

    def _finish(self, status: Optional[int] = None) -> None:
        if status is not None:
            self.status = status
            write_error(self.connection, status)
        self.state = State.DONE

    def _read_request(self) -> None:
        try:
            self.request = parse_request(self.connection, self.max_header_bytes, self.recv_timeout)
        except ConnectionClosed as e:
            logger.info(f"[{self.connection.peer}] Closed before a complete request: {e}")
            self._finish()
            return
        except HeaderTooLarge as e:
            logger.warning(f"[{self.connection.peer}] {e}")
            self._finish(400)
            return
        self.state = State.VALIDATING

    def _validate(self) -> Optional[str]:
        method, target = self.request.method, self.request.target
        if method not in ALLOWED_METHODS:
            logger.warning(f"[{self.connection.peer}] Method not allowed: {method!r}")
            self._finish(405)
            return None
        if not target.startswith("/") or not is_safe(target):
            logger.warning(f"[{self.connection.peer}] Rejected request-target: {target!r}")
            self._finish(400)
            return None
        self.state = State.SERVING
        return resolve(target, self.document_root)

    def _serve(self, path: str) -> None:
        try:
            file = open(path, "rb")
        except (OSError, ValueError) as e:
            # ValueError: embedded NUL in the path
            logger.info(f"[{self.connection.peer}] Cannot open {path}: {e}")
            self._finish(404)
            return

        with file:
            length = os.fstat(file.fileno()).st_size
            self._send_file(file, length)
        self.state = State.DONE

    def _send_file(self, file: BinaryIO, length: int) -> None:
        self.status = 200
        self.bytes_sent = write_file(self.connection, file, length,
                                     include_body=self.request.method == "GET")


def handle_connection(connection: Connection, document_root: str = config.DOCUMENT_ROOT,
                      recv_timeout: Optional[float] = config.RECV_TIMEOUT) -> ConnectionHandler:
    """Handle one connection to completion and return the finished handler."""
    handler = ConnectionHandler(connection, document_root, recv_timeout)
    handler.handle()
    return handler
