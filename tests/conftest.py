from __future__ import annotations

import socket
import threading

import pytest

from options import Endpoint, ProbeConfig


class Listener:
    """Loopback TCP server that hands every accepted connection to ``handler``."""

    def __init__(self, handler):
        self.handler = handler
        self.accepted = 0
        self.sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self.sock.bind(("127.0.0.1", 0))
        self.sock.listen(8)
        self.port = self.sock.getsockname()[1]
        self._thread = threading.Thread(target=self._serve, daemon=True)
        self._thread.start()

    def _serve(self) -> None:
        while True:
            try:
                conn, _ = self.sock.accept()
            except OSError:
                return
            self.accepted += 1
            with conn:
                self.handler(conn)

    def close(self) -> None:
        try:
            self.sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        self.sock.close()


@pytest.fixture
def tcp_listener():
    created: list[Listener] = []

    def start(handler=lambda conn: None) -> Listener:
        listener = Listener(handler)
        created.append(listener)
        return listener

    yield start
    for listener in created:
        listener.close()


@pytest.fixture
def closed_port() -> int:
    """A loopback port with nothing listening on it."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return port


@pytest.fixture
def make_config():
    def build(port: int, **overrides) -> ProbeConfig:
        values = {
            "remote": Endpoint(socket.AF_INET, "127.0.0.1", port),
            "connect_timeout": 2,
            "retry_interval": 1,
            "keepalive": None,
            "fastopen": False,
            "buffer_size": 16,
        }
        values.update(overrides)
        return ProbeConfig(**values)

    return build
