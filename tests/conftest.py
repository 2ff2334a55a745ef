"""Shared fixtures for beacon tests."""
import threading

import pytest

from beacon.core.config_service import ENV_VAR_MAP, reset_config_service
from beacon.telemetry.consent import OPTOUT_ENV_VAR
from beacon.telemetry.context import DISTRIBUTION_CHANNEL_ENV_VAR
from beacon.telemetry.service import reset_telemetry


@pytest.fixture(autouse=True)
def beacon_home(tmp_path_factory, monkeypatch):
    """Point HOME, the cache dir and cwd at a temporary directory for every test.

    This ensures tests never touch a real identifier file or config, and
    never inherit an opt-out or endpoint from the developer's shell.
    """
    sandbox = tmp_path_factory.mktemp("beacon")
    home = sandbox / "home"
    home.mkdir()
    workdir = sandbox / "work"
    workdir.mkdir()

    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("XDG_CACHE_HOME", str(home / ".cache"))
    monkeypatch.chdir(workdir)
    for env_var in (*ENV_VAR_MAP, OPTOUT_ENV_VAR, DISTRIBUTION_CHANNEL_ENV_VAR, "BEACON_DEBUG"):
        monkeypatch.delenv(env_var, raising=False)

    reset_config_service()
    reset_telemetry()
    yield home
    reset_telemetry()
    reset_config_service()


class CountingTransport:
    """Records every batch it is given instead of sending it."""

    name = "counting"

    def __init__(self):
        self.batches = []
        self.closed = False
        self._lock = threading.Lock()

    def send(self, entries):
        with self._lock:
            self.batches.append(list(entries))

    def close(self, timeout):
        self.closed = True

    @property
    def events(self):
        with self._lock:
            return [entry.event for batch in self.batches for entry in batch]


class FailingTransport(CountingTransport):
    """Raises on every send, like an unreachable collector."""

    name = "failing"

    def send(self, entries):
        from beacon.errors import TransportError

        raise TransportError("collector unreachable", transport=self.name)


class StuckTransport(CountingTransport):
    """Blocks in send until released, like a collector that never answers."""

    name = "stuck"

    def __init__(self):
        super().__init__()
        self.release = threading.Event()
        self.entered = threading.Event()

    def send(self, entries):
        self.entered.set()
        self.release.wait(timeout=30)
        super().send(entries)


@pytest.fixture
def counting_transport():
    return CountingTransport()


@pytest.fixture
def failing_transport():
    return FailingTransport()


@pytest.fixture
def stuck_transport():
    transport = StuckTransport()
    yield transport
    transport.release.set()
