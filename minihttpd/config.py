"""
Configuration defaults and listen address parsing.
"""

import os
from typing import List, Tuple

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8080

# Files are served from here; "/" maps to DEFAULT_DOCUMENT
DOCUMENT_ROOT = os.curdir
DEFAULT_DOCUMENT = "index.html"

MAX_HEADER_BYTES = 8192  # request line + headers + blank line
READ_CHUNK = 4096
RECV_TIMEOUT = 15.0  # seconds of inactivity per read
SEND_CHUNK = 64 * 1024  # buffered fallback when sendfile is unavailable
USE_SENDFILE = True

BACKLOG = 128
ACCEPT_POLL_INTERVAL = 1.0

# Set to a path to log to a file as well as stdout
LOG_FILE = None
LOG_FORMAT = "%(asctime)s [%(levelname)s] [%(process)d/%(threadName)s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def parse_port(value: str) -> int:
    try:
        port = int(value)
    except ValueError:
        raise ValueError(f"Port must be an integer: {value!r}")
    if not (1 <= port <= 65535):
        raise ValueError(f"Port must be between 1 and 65535: {port}")
    return port


def parse_address(args: List[str]) -> Tuple[str, int]:
    """
    Parse the listen address from command line arguments.

    Accepted forms:
        <host> <port>
        <host>:<port>
        [<ipv6>]:<port>

    Args:
        args: Positional arguments (without program name)

    Returns:
        (host, port) tuple

    Raises:
        ValueError: If the arguments match none of the forms
    """
    if len(args) == 2:
        host, port = args
        if not host:
            raise ValueError("Host must not be empty")
        return host, parse_port(port)

    if len(args) != 1:
        raise ValueError("Expected <host> <port> or <host>:<port>")

    address = args[0]
    if address.startswith("["):
        end = address.find("]")
        if end == -1 or address[end + 1:end + 2] != ":":
            raise ValueError(f"Invalid IPv6 address form: {address!r}")
        host = address[1:end]
        port = address[end + 2:]
    else:
        host, sep, port = address.rpartition(":")
        if not sep:
            raise ValueError(f"Missing port in {address!r}")
        if ":" in host:
            raise ValueError(f"IPv6 addresses must be bracketed: {address!r}")

    if not host:
        raise ValueError(f"Missing host in {address!r}")
    return host, parse_port(port)
