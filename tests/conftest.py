import logging
import socket
import threading

import pytest

from minihttpd.connection import Connection
from minihttpd.handler import handle_connection
from minihttpd.log import LOGGER_NAME

INDEX_BODY = b"<html><body>Hello minihttpd!</body></html>"


@pytest.fixture
def docroot(tmp_path):
    (tmp_path / "index.html").write_bytes(INDEX_BODY)
    (tmp_path / "hello.txt").write_bytes(b"hello world\n")
    (tmp_path / "empty.txt").write_bytes(b"")
    (tmp_path / "sub").mkdir()
    (tmp_path / "sub" / "nested.txt").write_bytes(b"nested")
    return tmp_path


@pytest.fixture
def socket_pair():
    server_sock, client_sock = socket.socketpair()
    yield server_sock, client_sock
    server_sock.close()
    client_sock.close()


@pytest.fixture(autouse=True)
def reset_package_logger():
    yield
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


def recv_all(sock, timeout=5.0):
    sock.settimeout(timeout)
    chunks = []
    while True:
        try:
            chunk = sock.recv(65536)
        except ConnectionResetError:
            # Server closed with request bytes still unread
            break
        if not chunk:
            break
        chunks.append(chunk)
    return b"".join(chunks)


def exchange(raw, root, close_write=False, **kwargs):
    """
    Run one handler over a socket pair with raw as the client's request.

    Returns (response bytes, finished handler).
    """
    server_sock, client_sock = socket.socketpair()
    use_sendfile = kwargs.pop("use_sendfile", True)
    result = {}

    def serve():
        connection = Connection(server_sock, ("test", 0), use_sendfile)
        result["handler"] = handle_connection(connection, str(root), **kwargs)

    thread = threading.Thread(target=serve, daemon=True)
    thread.start()
    try:
        client_sock.sendall(raw)
        if close_write:
            client_sock.shutdown(socket.SHUT_WR)
        response = recv_all(client_sock)
    finally:
        client_sock.close()
    thread.join(5)
    assert not thread.is_alive()
    return response, result["handler"]


def split_response(response):
    head, sep, body = response.partition(b"\r\n\r\n")
    assert sep, f"no header terminator in {response!r}"
    return head + sep, body
