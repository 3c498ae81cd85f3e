import errno
import logging
import select
import socket

from errors import ProbeError

log = logging.getLogger(__name__)

POLLIN = select.POLLIN
POLLOUT = select.POLLOUT
POLLERR = select.POLLERR
POLLHUP = select.POLLHUP
POLLNVAL = select.POLLNVAL
# Linux only; elsewhere a half-close is seen through POLLIN and a zero read.
POLLRDHUP = getattr(select, "POLLRDHUP", 0)

# setsockopt raises OverflowError/TypeError for values outside a C int.
_OPTION_ERRORS = (OSError, OverflowError, TypeError)


def _set_option(sock, level, name, value):
    option = getattr(socket, name, None)
    if option is None:
        raise OSError(errno.ENOPROTOOPT, f"{name} is not supported on this platform")
    sock.setsockopt(level, option, value)


def apply_keepalive(sock, keepalive) -> bool:
    """Enable keepalive probes; idle, interval and count are set only when > 0."""
    try:
        _set_option(sock, socket.SOL_SOCKET, "SO_KEEPALIVE", 1)
        if keepalive.count > 0:
            _set_option(sock, socket.IPPROTO_TCP, "TCP_KEEPCNT", keepalive.count)
        if keepalive.idle > 0:
            _set_option(sock, socket.IPPROTO_TCP, "TCP_KEEPIDLE", keepalive.idle)
        if keepalive.interval > 0:
            _set_option(sock, socket.IPPROTO_TCP, "TCP_KEEPINTVL", keepalive.interval)
    except _OPTION_ERRORS as exc:
        log.warning("couldn't setup keepalive: %s", exc)
        return False
    return True


def apply_fastopen(sock) -> bool:
    try:
        _set_option(sock, socket.IPPROTO_TCP, "TCP_FASTOPEN", 1)
    except _OPTION_ERRORS as exc:
        log.warning("couldn't setup fastopen: %s", exc)
        return False
    return True


def create_socket(cfg):
    """Open a non-blocking TCP socket for ``cfg.remote`` and tune it.

    Socket creation failure raises ProbeError; option failures are only
    logged.
    """
    try:
        sock = socket.socket(cfg.remote.family, socket.SOCK_STREAM, socket.IPPROTO_TCP)
    except OSError as exc:
        raise ProbeError.from_os_error("socket", exc) from exc
    try:
        sock.setblocking(False)
    except OSError as exc:
        sock.close()
        raise ProbeError.from_os_error("socket", exc) from exc

    if cfg.keepalive is not None:
        apply_keepalive(sock, cfg.keepalive)
    if cfg.fastopen:
        apply_fastopen(sock)
    return sock


def wait_for(sock, events: int, timeout=None) -> int:
    """Poll a single socket; return its revents, or 0 if ``timeout`` expired.

    ``timeout`` is in seconds; None waits forever.
    """
    poller = select.poll()
    poller.register(sock, events)
    try:
        ready = poller.poll(None if timeout is None else timeout * 1000)
    except OSError as exc:
        raise ProbeError.from_os_error("poll", exc) from exc
    if not ready:
        return 0
    return ready[0][1]


def pending_error(sock) -> int:
    try:
        return sock.getsockopt(socket.SOL_SOCKET, socket.SO_ERROR)
    except OSError as exc:
        raise ProbeError.from_os_error("getsockopt", exc) from exc
