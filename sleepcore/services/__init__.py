"""
Core services for the application.

This package contains the sleep state machine, the alarm scheduler boundary,
session persistence and the monitoring service that ties them together.
"""

from .alarm_scheduler import AlarmScheduler, AsyncioAlarmScheduler, Result
from .session_store import InMemorySessionStore, JsonFileSessionStore, SessionStore
from .sleep_monitor import ActivitySource, AlarmPresenter, SleepMonitor
from .sleep_state_machine import SleepStateMachine

__all__ = [
    "ActivitySource",
    "AlarmPresenter",
    "AlarmScheduler",
    "AsyncioAlarmScheduler",
    "InMemorySessionStore",
    "JsonFileSessionStore",
    "Result",
    "SessionStore",
    "SleepMonitor",
    "SleepStateMachine",
]
