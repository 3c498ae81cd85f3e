import logging

import tcp_socket
from errors import ProbeError

log = logging.getLogger(__name__)


def _wait_writable(sock):
    tcp_socket.wait_for(sock, tcp_socket.POLLOUT)


def send_payload(sock, payload, wait_writable=_wait_writable) -> int:
    """Write every byte of ``payload``, resuming after partial writes.

    A would-block result waits for writability and retries; any other
    failure raises ProbeError. Returns the number of bytes sent.
    """
    if not payload:
        return 0
    view = memoryview(payload)
    sent = 0
    while sent < len(view):
        try:
            sent += sock.send(view[sent:])
        except BlockingIOError:
            wait_writable(sock)
        except OSError as exc:
            raise ProbeError.from_os_error("send", exc) from exc
    log.debug("Sent %d payload bytes", sent)
    return sent
