"""Pytest configuration and fixtures."""

import random
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from chargesim.collector import CollectorClient
from chargesim.config import SimulatorConfig
from chargesim.session import ChargingSessionMachine


class FakeClock:
    """Controllable wall clock."""

    def __init__(self, start: datetime | None = None):
        self.current = start or datetime(2025, 1, 15, 12, 0, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: float):
        self.current += timedelta(seconds=seconds)


class ManualScheduler:
    """Scheduler stand-in: fires once on start, then only when fire() is called."""

    def __init__(self):
        self.callback = None
        self.period = None
        self.active = False
        self.starts = 0
        self.cancels = 0
        self.ticks = 0

    def start(self, callback, period_seconds):
        self.callback = callback
        self.period = period_seconds
        self.active = True
        self.starts += 1
        self.fire()

    def fire(self):
        if self.active:
            self.ticks += 1
            self.callback()

    def cancel(self):
        self.cancels += 1
        self.active = False


@pytest.fixture
def config():
    """Default simulator configuration."""
    return SimulatorConfig(collector_url="http://collector.test")


@pytest.fixture
def rng():
    """Seeded randomness source for reproducible telemetry."""
    return random.Random(1234)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def collector():
    """Collector client double with every call succeeding."""
    mock = MagicMock(spec=CollectorClient)
    mock.start_session = AsyncMock(return_value="tx-001")
    mock.send_update = AsyncMock(return_value=None)
    mock.end_session = AsyncMock(return_value=None)
    mock.close = AsyncMock(return_value=None)
    return mock


@pytest.fixture
def machine(config, collector, scheduler, clock, rng):
    """Session machine wired to test doubles."""
    return ChargingSessionMachine(
        config,
        collector,
        scheduler=scheduler,
        clock=clock,
        rng=rng,
    )
