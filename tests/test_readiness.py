import socket
import threading
import time
from types import SimpleNamespace

import pytest

import readiness
from readiness import is_endpoint_listening, is_memcached_responding, probe_from_config, split_address


@pytest.fixture
def listener():
    server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    server.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    server.bind(("127.0.0.1", 0))
    server.listen(5)
    yield server
    server.close()


def _free_port():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


def test_split_address():
    assert split_address("127.0.0.1:11211") == ("127.0.0.1", 11211)
    assert split_address("[::1]:11211") == ("::1", 11211)
    with pytest.raises(ValueError):
        split_address("127.0.0.1")


def test_listening_endpoint_is_ready(listener):
    port = listener.getsockname()[1]
    assert is_endpoint_listening(f"127.0.0.1:{port}", 1.0) is True


def test_closed_endpoint_times_out():
    port = _free_port()
    started = time.monotonic()

    assert is_endpoint_listening(f"127.0.0.1:{port}", 0.3, interval=0.05) is False
    assert time.monotonic() - started < 2.0


def test_probe_retries_until_connect_succeeds(monkeypatch):
    attempts = {'n': 0}

    def fake_connect(host, port, remaining):
        attempts['n'] += 1
        if attempts['n'] < 3:
            raise ConnectionRefusedError()
        return True

    monkeypatch.setattr(readiness, '_connect', fake_connect)

    assert is_endpoint_listening("127.0.0.1:11211", 2.0, interval=0.01) is True
    assert attempts['n'] == 3


def test_memcached_stats_probe(listener):
    port = listener.getsockname()[1]

    def serve():
        conn, _ = listener.accept()
        with conn:
            if conn.recv(64) == b"stats\r\n":
                conn.sendall(b"STAT pid 1\r\nEND\r\n")

    thread = threading.Thread(target=serve, daemon=True)
    thread.start()

    assert is_memcached_responding(f"127.0.0.1:{port}", 2.0) is True
    thread.join(timeout=2)


def test_probe_from_config_passes_interval(monkeypatch):
    seen = {}

    def fake_probe(address, timeout, interval=0.1):
        seen.update(address=address, timeout=timeout, interval=interval)
        return True

    monkeypatch.setattr(readiness, 'is_memcached_responding', fake_probe)

    probe = probe_from_config(SimpleNamespace(probe="stats", interval=0.5))

    assert probe("127.0.0.1:11211", 3.0) is True
    assert seen == {"address": "127.0.0.1:11211", "timeout": 3.0, "interval": 0.5}


def test_probe_from_config_rejects_unknown_probe():
    with pytest.raises(ValueError):
        probe_from_config(SimpleNamespace(probe="http", interval=0.1))


def test_memcached_stats_probe_reads_split_reply(listener):
    port = listener.getsockname()[1]

    def serve():
        conn, _ = listener.accept()
        with conn:
            conn.recv(64)
            conn.sendall(b"STA")
            time.sleep(0.2)
            conn.sendall(b"T pid 1\r\nEND\r\n")

    thread = threading.Thread(target=serve, daemon=True)
    thread.start()

    # a second attempt would have to wait out the interval past the deadline
    assert is_memcached_responding(f"127.0.0.1:{port}", 2.0, interval=5.0) is True
    thread.join(timeout=2)
