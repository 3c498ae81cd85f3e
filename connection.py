"""One connection attempt: open, optional bind, non-blocking connect, verify.

A non-blocking connect only says "in progress". The outcome is known after
polling for writability and reading SO_ERROR; a refused connection still
becomes writable, so the SO_ERROR check is what reports it.
"""

import enum
import errno
import logging

import tcp_socket
from errors import ConnectTimeoutError, ProbeError

log = logging.getLogger(__name__)

_IN_PROGRESS = (0, errno.EINPROGRESS)


class ConnectionState(enum.Enum):
    INIT = "init"
    OPEN = "open"
    BOUND = "bound"
    CONNECTING = "connecting"
    VERIFIED = "verified"
    FAILED = "failed"


class Connection:
    def __init__(self, cfg, socket_factory=None):
        self.cfg = cfg
        self._socket_factory = socket_factory or tcp_socket.create_socket
        self.sock = None
        self.state = ConnectionState.INIT

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def _fail(self, error: ProbeError):
        self.state = ConnectionState.FAILED
        raise error

    def _expect(self, *states):
        if self.state not in states:
            raise RuntimeError(f"connection is {self.state.value}, expected one of "
                               f"{', '.join(s.value for s in states)}")

    def open(self):
        self._expect(ConnectionState.INIT)
        try:
            self.sock = self._socket_factory(self.cfg)
        except ProbeError as exc:
            self._fail(exc)
        self.state = ConnectionState.OPEN

    def bind(self):
        self._expect(ConnectionState.OPEN)
        if self.cfg.local is None:
            return
        try:
            self.sock.bind(self.cfg.local.sockaddr)
        except OSError as exc:
            self._fail(ProbeError.from_os_error("bind", exc))
        self.state = ConnectionState.BOUND
        log.debug("Bound to %s", self.cfg.local)

    def connect(self):
        self._expect(ConnectionState.OPEN, ConnectionState.BOUND)
        code = self.sock.connect_ex(self.cfg.remote.sockaddr)
        if code not in _IN_PROGRESS:
            self._fail(ProbeError("connect", code))
        self.state = ConnectionState.CONNECTING

        try:
            revents = tcp_socket.wait_for(self.sock, tcp_socket.POLLOUT, self.cfg.connect_timeout)
        except ProbeError as exc:
            self._fail(exc)
        if not revents:
            self._fail(ConnectTimeoutError())

        try:
            pending = tcp_socket.pending_error(self.sock)
        except ProbeError as exc:
            self._fail(exc)
        if pending:
            self._fail(ProbeError("connect", pending))
        if not revents & tcp_socket.POLLOUT:
            self._fail(ProbeError("connect", errno.ENOTCONN))

        self.state = ConnectionState.VERIFIED
        log.info("Connected to %s", self.cfg.remote)

    def establish(self):
        self.open()
        self.bind()
        self.connect()
        return self.sock

    def close(self):
        if self.sock is not None:
            self.sock.close()
            self.sock = None
