"""Watch an established connection until the peer closes it.

Received data is read into a scratch buffer and dropped; only the close
matters. Readable data is always drained before a hang-up is reported.

A read error reported together with POLLHUP means the kernel has already
torn the connection down (a reset, or keepalive probes that went
unanswered). That ends the cycle like any other hang-up. A read error
without POLLHUP is fatal.
"""

import enum
import errno
import logging

import tcp_socket
from errors import ProbeError

log = logging.getLogger(__name__)

WATCH_EVENTS = tcp_socket.POLLIN | tcp_socket.POLLRDHUP
HANGUP_EVENTS = tcp_socket.POLLHUP | tcp_socket.POLLRDHUP


class CloseReason(enum.Enum):
    PEER_CLOSED = "peer closed the connection"
    HANG_UP = "connection hung up"
    PEER_RESET = "connection reset by peer"
    ABORTED = "connection aborted"


def watch(sock, buffer, wait=tcp_socket.wait_for) -> CloseReason:
    """Block until the connection closes and return why.

    Raises ProbeError when polling fails, or when a read fails while the
    connection is not hung up.
    """
    discarded = 0
    while True:
        revents = wait(sock, WATCH_EVENTS)
        if revents & tcp_socket.POLLNVAL:
            raise ProbeError("poll", errno.EBADF)

        if revents & (tcp_socket.POLLIN | tcp_socket.POLLERR):
            try:
                count = sock.recv_into(buffer)
            except BlockingIOError:
                continue
            except OSError as exc:
                if not revents & tcp_socket.POLLHUP:
                    raise ProbeError.from_os_error("read", exc) from exc
                log.info("read: %s after %d discarded bytes", exc.strerror or exc, discarded)
                if exc.errno == errno.ECONNRESET:
                    return CloseReason.PEER_RESET
                return CloseReason.ABORTED
            if count == 0:
                log.debug("Zero-length read after %d discarded bytes", discarded)
                return CloseReason.PEER_CLOSED
            discarded += count
            continue

        if revents & HANGUP_EVENTS:
            return CloseReason.HANG_UP
