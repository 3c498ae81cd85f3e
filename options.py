"""Probe configuration: endpoints, the immutable ProbeConfig and its loader.

Options come from the command line in keyword-word form
(``htrack host 192.0.2.1 port 443 oneshot``), then ``HTRACK_*`` environment
variables, then the JSONC config file, then the defaults below.
"""

import ipaddress
import logging
import math
import re
import socket
from dataclasses import dataclass
from typing import Optional

from config import get_setting
from errors import ConfigError

log = logging.getLogger(__name__)

DEFAULT_PORT = 80
DEFAULT_TIMEOUT = 5
DEFAULT_COUNT = 3
DEFAULT_BUFSIZE = 4096

INT_MAX = 2**31 - 1
# poll() takes its timeout as a C int of milliseconds.
MAX_SECONDS = INT_MAX // 1000

VALUE_OPTIONS = (
    "host",
    "port",
    "bind",
    "send",
    "timeout",
    "retry",
    "idle",
    "interval",
    "count",
    "keepalive",
    "fastopen",
    "bufsize",
)
FLAG_OPTIONS = ("oneshot",)

_TRUE_WORDS = ("1", "true", "yes", "on")
_FALSE_WORDS = ("0", "false", "no", "off")
# strtol(..., 0) reads a leading 0 as octal; int(..., 0) rejects it.
_OCTAL = re.compile(r"[+-]?0[0-7]+\Z")


@dataclass(frozen=True)
class Endpoint:
    family: int
    address: str
    port: int

    @classmethod
    def parse(cls, text: str, port: int = 0) -> "Endpoint":
        """Build an endpoint from an IPv4 or IPv6 literal. Hostnames are rejected."""
        addr = ipaddress.ip_address(text.strip())
        family = socket.AF_INET if addr.version == 4 else socket.AF_INET6
        return cls(family=family, address=str(addr), port=port)

    @property
    def sockaddr(self):
        return (self.address, self.port)

    def __str__(self):
        if self.family == socket.AF_INET6:
            return f"[{self.address}]:{self.port}"
        return f"{self.address}:{self.port}"


@dataclass(frozen=True)
class Keepalive:
    idle: int = 0
    interval: int = 0
    count: int = 0


@dataclass(frozen=True)
class ProbeConfig:
    remote: Endpoint
    local: Optional[Endpoint] = None
    connect_timeout: float = DEFAULT_TIMEOUT
    retry_interval: float = DEFAULT_TIMEOUT
    keepalive: Optional[Keepalive] = None
    fastopen: bool = True
    payload: Optional[bytes] = None
    buffer_size: int = DEFAULT_BUFSIZE
    oneshot: bool = False

    def __post_init__(self):
        if self.remote.family not in (socket.AF_INET, socket.AF_INET6):
            raise ConfigError("option 'host' is mandatory")
        if self.local is not None and self.local.family != self.remote.family:
            raise ConfigError("host and bind are not compatible")
        if self.buffer_size <= 0:
            raise ConfigError(_bad_value("bufsize"))
        if not 0 <= self.connect_timeout <= MAX_SECONDS:
            raise ConfigError(_bad_value("timeout"))
        if not 0 <= self.retry_interval <= MAX_SECONDS:
            raise ConfigError(_bad_value("retry"))


def _bad_value(name):
    return f"bad value for option '{name}'"


def _to_int(value, low=0, high=None):
    if isinstance(value, bool):
        raise ValueError(value)
    if isinstance(value, str):
        text = value.strip()
        result = int(text, 8) if _OCTAL.match(text) else int(text, 0)
    elif isinstance(value, int):
        result = value
    else:
        raise ValueError(value)
    if result < low or (high is not None and result > high):
        raise ValueError(value)
    return result


def _to_port(value):
    return _to_int(value, 0, 0xFFFF)


def _to_positive(value):
    return _to_int(value, 1)


def _to_sockopt(value):
    return _to_int(value, 0, INT_MAX)


def _to_seconds(value):
    if isinstance(value, bool):
        raise ValueError(value)
    result = float(value)
    if math.isnan(result) or math.isinf(result) or not 0 <= result <= MAX_SECONDS:
        raise ValueError(value)
    return result


def _to_bool(value):
    if isinstance(value, bool):
        return value
    word = str(value).strip().lower()
    if word in _TRUE_WORDS:
        return True
    if word in _FALSE_WORDS:
        return False
    raise ValueError(value)


def _to_payload(value):
    if not isinstance(value, str):
        raise ValueError(value)
    return value.encode("utf-8") or None


def parse_argv(argv):
    """Collect ``name value`` pairs and bare flags from the command line.

    The first occurrence of an option wins. A value option with nothing
    after it is a bad value.
    """
    options = {}
    words = list(argv)
    i = 0
    while i < len(words):
        word = words[i]
        if word in FLAG_OPTIONS:
            options.setdefault(word, True)
            i += 1
        elif word in VALUE_OPTIONS:
            if i + 1 >= len(words):
                raise ConfigError(_bad_value(word))
            options.setdefault(word, words[i + 1])
            i += 2
        else:
            raise ConfigError(f"unknown option '{word}'")
    return options


def load_probe_config(argv, env=None, file_config=None) -> ProbeConfig:
    cli = parse_argv(argv)

    def lookup(name, default=None):
        if name in cli:
            return cli[name]
        return get_setting(name, default, env=env, file_config=file_config)

    def convert(name, default, parser):
        raw = lookup(name, default)
        try:
            value = parser(raw)
        except (TypeError, ValueError):
            raise ConfigError(_bad_value(name)) from None
        log.debug("option %s = %r", name, value)
        return value

    host = lookup("host")
    if host is None or host == "":
        raise ConfigError("option 'host' is mandatory")
    port = convert("port", DEFAULT_PORT, _to_port)
    remote = convert("host", None, lambda raw: Endpoint.parse(str(raw), port))

    local = None
    if lookup("bind") not in (None, ""):
        local = convert("bind", None, lambda raw: Endpoint.parse(str(raw)))

    timeout = convert("timeout", DEFAULT_TIMEOUT, _to_seconds)
    retry = convert("retry", timeout, _to_seconds)

    keepalive = None
    if convert("keepalive", True, _to_bool):
        keepalive = Keepalive(
            idle=convert("idle", int(timeout), _to_sockopt),
            interval=convert("interval", int(timeout), _to_sockopt),
            count=convert("count", DEFAULT_COUNT, _to_sockopt),
        )

    payload = None
    if lookup("send") is not None:
        payload = convert("send", None, _to_payload)

    return ProbeConfig(
        remote=remote,
        local=local,
        connect_timeout=timeout,
        retry_interval=retry,
        keepalive=keepalive,
        fastopen=convert("fastopen", True, _to_bool),
        payload=payload,
        buffer_size=convert("bufsize", DEFAULT_BUFSIZE, _to_positive),
        oneshot=convert("oneshot", False, _to_bool),
    )
