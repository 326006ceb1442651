"""Shared pytest fixtures for the stdin-nsq-shipper test suite."""

import threading
import time

import pytest

from nsq_shipper.identity import ProcessIdentity
from nsq_shipper.server import SimpleNSQServer


_ENV_VARS = (
    "NSQ_TOPIC", "NSQ_ENDPOINT", "APP_NAME", "SERVICE_NAME",
    "MAX_RETRIES", "NSQ_TIMEOUT", "LOG_LEVEL", "CONFIG_PATH",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture()
def identity() -> ProcessIdentity:
    return ProcessIdentity(hostname="test-host", ctx_id="2f1c9a52-7b0e-4d0c-9a53-3c2f0f6d8e11")


@pytest.fixture()
def nsq_server():
    """Run a SimpleNSQServer on a random port. Yields (server, host, port)."""
    shutdown = threading.Event()
    server = SimpleNSQServer("127.0.0.1", 0, shutdown)
    t = threading.Thread(target=server.start, daemon=True)
    t.start()
    for _ in range(100):
        if server.server_address:
            break
        time.sleep(0.02)
    host, port = server.server_address
    yield server, host, port
    server.stop()
