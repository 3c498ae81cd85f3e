#!/usr/bin/env python3
"""Track a TCP endpoint: connect, wait for the connection to drop, repeat.

Usage:
  htrack host <ip> [port <n>] [bind <ip>] [send <text>] [timeout <s>]
         [retry <s>] [idle <s>] [interval <s>] [count <n>]
         [keepalive on|off] [fastopen on|off] [bufsize <n>] [oneshot]

Example:
  htrack host 192.0.2.10 port 443 timeout 10
"""
import logging
import sys
import time

from connection import Connection
from errors import ConfigError, ProbeError
from liveness import watch
from options import load_probe_config
from payload import send_payload

log = logging.getLogger(__name__)


def run_cycle(cfg, buffer):
    """Connect, send the payload and watch until close.

    Returns the CloseReason, or None when ``cfg.oneshot`` skips watching.
    The socket is closed before returning.
    """
    with Connection(cfg) as conn:
        sock = conn.establish()
        send_payload(sock, cfg.payload)
        if cfg.oneshot:
            return None
        return watch(sock, buffer)


def run(cfg, sleep=None) -> int:
    sleep = sleep or time.sleep
    buffer = bytearray(cfg.buffer_size)
    while True:
        reason = run_cycle(cfg, buffer)
        if reason is None:
            log.info("Connected to %s once; exiting", cfg.remote)
            return 0
        log.info("%s: %s, reconnecting in %ss", cfg.remote, reason.value, cfg.retry_interval)
        sleep(cfg.retry_interval)


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    try:
        cfg = load_probe_config(argv)
    except ConfigError as exc:
        log.error("%s", exc)
        sys.exit(1)

    log.info(
        "Tracking %s (timeout %ss, retry %ss%s)",
        cfg.remote,
        cfg.connect_timeout,
        cfg.retry_interval,
        ", oneshot" if cfg.oneshot else "",
    )
    try:
        status = run(cfg)
    except ProbeError as exc:
        log.error("%s", exc)
        sys.exit(1)
    except KeyboardInterrupt:
        log.info("Interrupted")
        sys.exit(130)
    sys.exit(status)


if __name__ == "__main__":
    main()
