"""Readiness probes: bounded, blocking checks that a service is reachable.

A probe is any callable ``probe(address, timeout) -> bool`` where address is
``host:port``. Both probes here poll every ``interval`` seconds until they
succeed or ``timeout`` runs out; every socket operation is limited to the
remaining time, so a probe never blocks much past its deadline.
"""
import socket
import time
from typing import Callable, Tuple

from loguru import logger


ReadinessProbe = Callable[[str, float], bool]

DEFAULT_INTERVAL = 0.1


def split_address(address: str) -> Tuple[str, int]:
    """Split ``host:port`` (IPv6 hosts may be bracketed)."""
    host, sep, port = address.rpartition(":")
    if not sep or not host or not port.isdigit():
        raise ValueError(f"invalid address: {address!r}")
    return host.strip("[]"), int(port)


def _poll(address: str, timeout: float, interval: float, attempt) -> bool:
    host, port = split_address(address)
    deadline = time.monotonic() + timeout
    attempts = 0

    while True:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            break
        attempts += 1
        try:
            if attempt(host, port, remaining):
                logger.debug("Endpoint ready", address=address, attempts=attempts)
                return True
        except OSError:
            # not listening yet
            pass
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            break
        time.sleep(min(interval, remaining))

    logger.debug("Endpoint not ready before deadline", address=address, timeout=timeout, attempts=attempts)
    return False


def _connect(host: str, port: int, remaining: float) -> bool:
    with socket.create_connection((host, port), timeout=remaining):
        return True


def _stats(host: str, port: int, remaining: float) -> bool:
    with socket.create_connection((host, port), timeout=remaining) as conn:
        conn.sendall(b"stats\r\n")
        reply = b""
        while b"\r\n" not in reply:
            chunk = conn.recv(4096)
            if not chunk:
                break
            reply += chunk
        return reply.startswith(b"STAT ")


def is_endpoint_listening(address: str, timeout: float, interval: float = DEFAULT_INTERVAL) -> bool:
    """Return True once a TCP connection to ``address`` succeeds within ``timeout``."""
    return _poll(address, timeout, interval, _connect)


def is_memcached_responding(address: str, timeout: float, interval: float = DEFAULT_INTERVAL) -> bool:
    """Return True once memcached at ``address`` answers a ``stats`` command within ``timeout``."""
    return _poll(address, timeout, interval, _stats)


def probe_from_config(readiness_cfg) -> ReadinessProbe:
    """Select the probe named by the ``readiness`` config section."""
    probes = {
        "tcp": is_endpoint_listening,
        "stats": is_memcached_responding,
    }
    try:
        probe = probes[readiness_cfg.probe]
    except KeyError:
        raise ValueError(f"Unknown readiness probe: {readiness_cfg.probe}")

    interval = readiness_cfg.interval

    def configured_probe(address: str, timeout: float) -> bool:
        return probe(address, timeout, interval=interval)

    configured_probe.__name__ = probe.__name__
    return configured_probe
