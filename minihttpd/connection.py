"""
Connection wrapper handed from the supervisor to the connection handler.

Reads carry an explicit deadline; writes block without one.
"""

import logging
import os
import socket
from typing import BinaryIO, Optional, Tuple

from minihttpd import config

logger = logging.getLogger(__name__)


class Connection:
    """
    One accepted client connection, exclusively owned by one handler.
    """

    def __init__(self, sock: socket.socket, address: Optional[Tuple] = None,
                 use_sendfile: bool = config.USE_SENDFILE):
        self.socket = sock
        self.address = address
        self.use_sendfile = use_sendfile and hasattr(os, "sendfile")
        self.closed = False

    @property
    def peer(self) -> str:
        if not self.address:
            return "-"
        if isinstance(self.address, tuple):
            return f"{self.address[0]}:{self.address[1]}"
        return str(self.address)

    def recv(self, size: int, timeout: Optional[float] = config.RECV_TIMEOUT) -> bytes:
        """
        Read up to size bytes, waiting at most timeout seconds.

        Returns b"" at end of stream. Raises socket.timeout (an OSError)
        when the deadline passes and OSError on any other read failure.
        """
        self.socket.settimeout(timeout)
        return self.socket.recv(size)

    def sendall(self, data: bytes) -> None:
        self.socket.settimeout(None)
        self.socket.sendall(data)

    def sendfile(self, file: BinaryIO, count: int) -> int:
        """
        Send count bytes of file, starting at offset 0.

        Uses os.sendfile when available, otherwise buffered read/send.
        Short writes are continued; a write error propagates. Stops early
        if the file ends before count bytes.

        Args:
            file: File object opened in binary mode
            count: Number of bytes to transmit

        Returns:
            Number of bytes actually sent
        """
        self.socket.settimeout(None)
        if self.use_sendfile:
            return self._sendfile_kernel(file, count)
        return self._sendfile_buffered(file, count)

    def _sendfile_kernel(self, file: BinaryIO, count: int) -> int:
        out_fd = self.socket.fileno()
        in_fd = file.fileno()
        offset = 0
        while offset < count:
            sent = os.sendfile(out_fd, in_fd, offset, count - offset)
            if sent == 0:
                # File shrank after it was measured
                break
            offset += sent
        return offset

    def _sendfile_buffered(self, file: BinaryIO, count: int) -> int:
        file.seek(0)
        total = 0
        while total < count:
            chunk = file.read(min(config.SEND_CHUNK, count - total))
            if not chunk:
                break
            view = memoryview(chunk)
            while view:
                sent = self.socket.send(view)
                view = view[sent:]
                total += sent
        return total

    def close(self) -> None:
        """Close the underlying socket. Safe to call more than once."""
        if self.closed:
            return
        self.closed = True
        try:
            self.socket.close()
        except OSError as e:
            logger.debug(f"Error closing connection {self.peer}: {e}")
