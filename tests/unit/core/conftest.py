"""Shared fixtures for the sleep alarm core."""

import pytest
from sleep_doubles import FixedClock, ManualAlarmScheduler

from sleepcore.config import AlarmConfig, AppConfig
from sleepcore.services.session_store import InMemorySessionStore
from sleepcore.services.sleep_monitor import SleepMonitor


@pytest.fixture
def alarm_config() -> AlarmConfig:
    return AlarmConfig()


@pytest.fixture
def scheduler() -> ManualAlarmScheduler:
    return ManualAlarmScheduler()


@pytest.fixture
def store() -> InMemorySessionStore:
    return InMemorySessionStore()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def monitor(
    scheduler: ManualAlarmScheduler, store: InMemorySessionStore, clock: FixedClock
) -> SleepMonitor:
    return SleepMonitor(
        scheduler=scheduler,
        store=store,
        config=AppConfig(environment="development"),
        clock=clock,
    )
