import errno as _errno
import os


class ConfigError(ValueError):
    """Raised when the probe configuration is missing or invalid."""


class ProbeError(Exception):
    """A fatal failure of one socket operation.

    Renders as ``<syscall>: <system error text>`` so the message can be
    written out as-is.
    """

    def __init__(self, syscall: str, errno: int):
        self.syscall = syscall
        self.errno = errno
        super().__init__(f"{syscall}: {os.strerror(errno)}")

    @classmethod
    def from_os_error(cls, syscall: str, exc: OSError) -> "ProbeError":
        return cls(syscall, exc.errno if exc.errno is not None else _errno.EIO)


class ConnectTimeoutError(ProbeError):
    """The connect handshake did not complete within the configured timeout."""

    def __init__(self, syscall: str = "poll"):
        super().__init__(syscall, _errno.ETIMEDOUT)
