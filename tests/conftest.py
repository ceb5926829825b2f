"""Shared fixtures: isolated apps built through create_app, never the module-level one."""

import logging
import random
import time

import pytest
from fastapi.testclient import TestClient

from probeapp.config import Settings
from probeapp.main import create_app
from probeapp.metrics import FailureMetrics


class FixedRandom(random.Random):
    """Random source whose random() always returns the same draw."""

    def __init__(self, value):
        super().__init__()
        self.value = value

    def random(self):
        return self.value


@pytest.fixture
def settings():
    # Long warm-up so the app stays "not ready" for the whole test
    return Settings(startup_delay=60.0, hostname="test-pod")


@pytest.fixture
def make_app(settings):
    def _make(**kwargs):
        kwargs.setdefault("metrics", FailureMetrics(runtime_collectors=False))
        return create_app(kwargs.pop("settings", settings), **kwargs)

    return _make


@pytest.fixture
def app(make_app):
    return make_app()


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def eventually():
    """Poll ``check`` until it returns truthy or ``timeout`` elapses."""

    def _eventually(check, timeout=5.0, interval=0.02):
        deadline = time.monotonic() + timeout
        while True:
            result = check()
            if result or time.monotonic() >= deadline:
                return result
            time.sleep(interval)

    return _eventually


@pytest.fixture
def uvicorn_log(caplog):
    """Capture the uvicorn.error logger even after uvicorn turned propagation off."""
    logger = logging.getLogger("uvicorn.error")
    caplog.set_level(logging.INFO, logger="uvicorn.error")
    logger.addHandler(caplog.handler)
    try:
        yield caplog
    finally:
        logger.removeHandler(caplog.handler)
