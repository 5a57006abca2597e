"""
Shared fixtures for the reporter tests.
"""
from datetime import datetime

import pytest
import pytz

from influx_reporter.config import ReporterConfig
from influx_reporter.exceptions import WriteError
from influx_reporter.registry import Registry


class FakeClient:
    """Wire client double recording every batch it is asked to write."""

    def __init__(self, failures: int = 0, version: str = '1.8.10'):
        self.failures = failures
        self.version = version
        self.batches = []
        self.write_calls = 0
        self.pings = 0
        self.closed = False

    def write(self, batch):
        self.write_calls += 1
        if self.failures > 0:
            self.failures -= 1
            raise WriteError("connection refused")
        self.batches.append(batch)

    def ping(self, timeout=1):
        self.pings += 1
        return self.version

    def close(self):
        self.closed = True


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class SteppingEvent:
    """Stop event whose wait() advances a FakeClock instead of sleeping."""

    def __init__(self, clock: FakeClock, stop_at: float):
        self.clock = clock
        self.stop_at = stop_at
        self.waits = []

    def is_set(self) -> bool:
        return self.clock.now >= self.stop_at

    def wait(self, timeout: float) -> bool:
        self.waits.append(timeout)
        self.clock.now += timeout
        return self.is_set()

    def set(self):
        self.clock.now = self.stop_at

    def clear(self):
        pass


@pytest.fixture
def base_tags():
    return {'host': 'web-1', 'region': 'eu'}


@pytest.fixture
def timestamp():
    return datetime(2024, 1, 1, 12, 0, 7, tzinfo=pytz.UTC)


@pytest.fixture
def registry():
    return Registry()


@pytest.fixture
def fake_client():
    return FakeClient()


@pytest.fixture
def reporter_config(base_tags):
    return ReporterConfig(
        url='http://localhost:8086',
        database='metrics',
        measurement='app',
        username='user',
        password='secret',
        tags=base_tags,
        interval=1,
        align=False,
    )


@pytest.fixture
def client_factory():
    return FakeClient


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def stepping_event(fake_clock):
    def make(stop_at):
        return SteppingEvent(fake_clock, stop_at)
    return make
