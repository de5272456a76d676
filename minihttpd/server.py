"""
Connection supervisors: the listening socket and the accept loop.

Two variants hand each accepted connection to a ConnectionHandler:
- ThreadingHTTPServer: one thread per connection
- ForkingHTTPServer: one forked child process per connection

Neither waits on or coordinates with its handlers.
"""

import logging
import os
import signal
import socket
import sys
import threading
from typing import List, Optional, Set, Tuple

from minihttpd import config
from minihttpd.connection import Connection
from minihttpd.handler import handle_connection
from minihttpd.log import setup_logging

logger = logging.getLogger(__name__)


class HTTPServer:
    """
    Accept loop shared by both concurrency variants.
    Subclasses implement dispatch() to run a handler in its own context.
    """

    mode = "abstract"

    def __init__(self, host: str = config.DEFAULT_HOST, port: int = config.DEFAULT_PORT,
                 document_root: str = config.DOCUMENT_ROOT,
                 recv_timeout: Optional[float] = config.RECV_TIMEOUT,
                 use_sendfile: bool = config.USE_SENDFILE,
                 backlog: int = config.BACKLOG):
        """
        Initialize the HTTP server with configuration parameters.

        Args:
            host: Host name or address to bind (IPv4 or IPv6)
            port: Port number; 0 picks a free port
            document_root: Directory files are served from
            recv_timeout: Per-read deadline for client connections
            use_sendfile: Use os.sendfile for file bodies when available
            backlog: Listen queue length
        """
        self.host = host
        self.port = port
        self.document_root = document_root
        self.recv_timeout = recv_timeout
        self.use_sendfile = use_sendfile
        self.backlog = backlog
        self.server_socket: Optional[socket.socket] = None
        self.running = False
        self.ready = threading.Event()

        # Statistics tracking (accept loop only)
        self.total_connections = 0

    @property
    def server_address(self) -> Tuple:
        return self.server_socket.getsockname()

    def bind(self) -> socket.socket:
        """
        Resolve host:port and bind the first address that works.

        Raises:
            OSError: If resolution fails or no address can be bound
        """
        infos = socket.getaddrinfo(self.host, self.port, socket.AF_UNSPEC,
                                   socket.SOCK_STREAM, 0, socket.AI_PASSIVE)
        last_error: Optional[OSError] = None
        for family, socktype, proto, _canonname, sockaddr in infos:
            sock = socket.socket(family, socktype, proto)
            try:
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
                sock.bind(sockaddr)
                sock.listen(self.backlog)
            except OSError as e:
                logger.warning(f"Bind to {sockaddr} failed: {e}")
                sock.close()
                last_error = e
                continue
            return sock
        raise last_error or OSError(f"No usable address for {self.host}:{self.port}")

    def start(self) -> None:
        """Bind, then accept connections until stop() is called."""
        self.server_socket = self.bind()
        self.server_socket.settimeout(config.ACCEPT_POLL_INTERVAL)
        self.running = True
        address = self.server_address
        logger.info(f"Server started on {address[0]}:{address[1]} ({self.mode}), "
                    f"serving {os.path.abspath(self.document_root)}")
        self.ready.set()

        try:
            while self.running:
                self.poll()
                try:
                    client_socket, client_address = self.server_socket.accept()
                except socket.timeout:
                    continue
                except OSError as e:
                    if self.running:
                        logger.error(f"Error accepting connection: {e}")
                    break

                self.total_connections += 1
                logger.debug(f"New connection from {client_address[0]}:{client_address[1]}")
                self.dispatch(client_socket, client_address)
        finally:
            self.server_close()

    def poll(self) -> None:
        """Housekeeping run once per accept loop iteration."""

    def dispatch(self, client_socket: socket.socket, client_address: Tuple) -> None:
        raise NotImplementedError

    def run_handler(self, client_socket: socket.socket, client_address: Tuple) -> None:
        connection = Connection(client_socket, client_address, self.use_sendfile)
        handle_connection(connection, self.document_root, self.recv_timeout)

    def stop(self) -> None:
        """Ask the accept loop to finish; it notices within one poll interval."""
        if self.running:
            logger.info("Stopping HTTP server...")
        self.running = False

    def server_close(self) -> None:
        self.running = False
        if self.server_socket:
            try:
                self.server_socket.close()
            except OSError as e:
                logger.debug(f"Error closing listening socket: {e}")
        logger.info(f"Server stopped. Total connections: {self.total_connections}")


class ThreadingHTTPServer(HTTPServer):
    """One daemon thread per accepted connection."""

    mode = "thread"

    def dispatch(self, client_socket: socket.socket, client_address: Tuple) -> None:
        thread = threading.Thread(target=self.run_handler, args=(client_socket, client_address),
                                  name=f"conn-{self.total_connections}")
        thread.daemon = True
        try:
            thread.start()
        except RuntimeError as e:
            logger.error(f"Thread start failed, dropping connection from {client_address[0]}: {e}")
            client_socket.close()
            return
        # The thread owns the socket from here on


class ForkingHTTPServer(HTTPServer):
    """
    One child process per accepted connection.

    The parent closes its copy of each client socket right after forking
    and collects exited children with waitpid on every loop iteration.
    """

    mode = "fork"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.children: Set[int] = set()

    def dispatch(self, client_socket: socket.socket, client_address: Tuple) -> None:
        try:
            pid = os.fork()
        except OSError as e:
            logger.error(f"fork failed, dropping connection from {client_address[0]}: {e}")
            client_socket.close()
            return

        if pid == 0:
            self._run_child(client_socket, client_address)

        self.children.add(pid)
        client_socket.close()

    def _run_child(self, client_socket: socket.socket, client_address: Tuple) -> None:
        status = 0
        try:
            self.server_socket.close()
            self.run_handler(client_socket, client_address)
        except BaseException:
            logger.exception("Child process failed")
            status = 1
        finally:
            logging.shutdown()
            os._exit(status)

    def poll(self) -> None:
        self.collect_children()

    def collect_children(self) -> None:
        """Reap handler children that have exited, without blocking."""
        for child in list(self.children):
            try:
                pid, _status = os.waitpid(child, os.WNOHANG)
            except ChildProcessError:
                # Already reaped elsewhere
                self.children.discard(child)
                continue
            if pid == child:
                self.children.discard(child)

    def server_close(self) -> None:
        super().server_close()
        self.collect_children()


SERVER_CLASSES = {
    "thread": ThreadingHTTPServer,
    "fork": ForkingHTTPServer,
}


def usage(prog: str, mode_flags: bool = True) -> str:
    flags = "[--thread|--fork] " if mode_flags else ""
    return (f"Usage: {prog} {flags}<host> <port>\n"
            f"       {prog} {flags}<host>:<port>\n"
            f"       {prog} {flags}[<ipv6>]:<port>")


def main(argv: Optional[List[str]] = None, mode: Optional[str] = None) -> int:
    """
    Main entry point for the HTTP server.
    Parses command line arguments and starts the server.

    Args:
        argv: Arguments without the program name (default: sys.argv[1:])
        mode: "thread" or "fork"; when None, --thread/--fork may be given

    Returns:
        Process exit status
    """
    prog = os.path.basename(sys.argv[0]) if sys.argv and sys.argv[0] else "minihttpd"
    args = list(sys.argv[1:] if argv is None else argv)

    mode_flags = mode is None
    if mode_flags:
        mode = "thread"
        while args and args[0] in ("--thread", "--fork"):
            mode = args.pop(0)[2:]

    if mode == "fork" and not hasattr(os, "fork"):
        print("Error: fork mode is not supported on this platform", file=sys.stderr)
        return 1

    try:
        host, port = config.parse_address(args)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        print(usage(prog, mode_flags), file=sys.stderr)
        return 1

    setup_logging()
    server = SERVER_CLASSES[mode](host, port)

    def _signal_handler(signum, frame):
        logger.info(f"Received signal {signum}, initiating graceful shutdown...")
        server.stop()

    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)

    try:
        server.start()
    except OSError as e:
        logger.error(f"Failed to start server on {host}:{port}: {e}")
        return 1
    return 0


def main_thread() -> None:
    sys.exit(main(mode="thread"))


def main_fork() -> None:
    sys.exit(main(mode="fork"))


def run() -> None:
    sys.exit(main())
