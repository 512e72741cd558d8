"""
Sleep monitoring service: the single writer of the session record.

Pipeline for every activity event:
1. Read the full record from the store
2. Reduce it through the sleep state machine
3. Persist the next record
4. Apply the scheduling intent through the alarm scheduler

Activity callbacks and deadline callbacks come from independent contexts,
so every read-modify-write runs under one asyncio.Lock.
"""

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any, Protocol

import structlog

from sleepcore.config import AppConfig, get_config
from sleepcore.domain.errors import (
    InconsistentStateError,
    PermissionDeniedError,
    SchedulingFailureError,
)
from sleepcore.domain.models import (
    ActivityEvent,
    AlarmAlert,
    MonitorStatus,
    ScheduleAt,
    SchedulingIntent,
    SessionPhase,
    SleepSession,
    Transition,
)
from sleepcore.services.alarm_scheduler import AlarmScheduler, Result
from sleepcore.services.session_store import SessionStore
from sleepcore.services.sleep_state_machine import SleepStateMachine

logger = structlog.get_logger(__name__)

ActivityCallback = Callable[[ActivityEvent], Awaitable[Any]]


class ActivitySource(Protocol):
    """
    The classifier that turns sensor data into activity events.

    subscribe() raises PermissionDeniedError when its data source is unavailable.
    """

    source_name: str

    async def subscribe(self, callback: ActivityCallback) -> None: ...

    async def unsubscribe(self) -> None: ...


class AlarmPresenter(Protocol):
    """Presentation layer taking over once the alarm fires."""

    def on_alarm_fired(self, alert: AlarmAlert) -> Awaitable[None] | None: ...


class SleepMonitor:
    """
    Owns the session record, the state machine and the single live alarm.

    The record is written before the deadline is registered, so a crash in
    between leaves at worst a record without a deadline. The alarm-fired
    handler tolerates a missing or unrelated record.
    """

    def __init__(
        self,
        scheduler: AlarmScheduler,
        store: SessionStore,
        config: AppConfig | None = None,
        presenters: list[AlarmPresenter] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.config = config or get_config()
        self.scheduler = scheduler
        self.store = store
        self.presenters: list[AlarmPresenter] = list(presenters or [])
        self.state_machine = SleepStateMachine(self.config.alarm)
        self.logger = logger.bind(component="sleep_monitor")

        self._clock = clock or (lambda: datetime.now(UTC))
        self._lock = asyncio.Lock()
        self._source: ActivitySource | None = None
        self._registration_restored = False

        self.scheduler.set_deadline_handler(self.on_deadline_reached)

    def add_presenter(self, presenter: AlarmPresenter) -> None:
        self.presenters.append(presenter)
        self.logger.info("presenter_added", presenter_type=type(presenter).__name__)

    async def handle_activity(
        self, event: ActivityEvent
    ) -> Result[Transition, SchedulingFailureError]:
        """
        Process one activity event to completion.

        The record is persisted even when the scheduler rejects the intent;
        the failure is returned to the caller and not retried.
        """
        async with self._lock:
            session = self.store.load()
            restored = self._restore_registration(session)
            transition = self.state_machine.apply(session, event, self._clock())
            self.store.save(transition.session)
            scheduling = self._apply_intent(transition.intent)
            if scheduling is None:
                scheduling = restored

        self.logger.info(
            "activity_processed",
            activity=event.state.value,
            event_time=event.timestamp.isoformat(),
            rule=transition.rule,
            phase_before=transition.phase_before.value,
            phase_after=transition.phase_after.value,
            intent=type(transition.intent).__name__ if transition.intent else None,
        )

        if scheduling is not None and scheduling.is_err():
            return Result.err(scheduling.unwrap_err())
        return Result.ok(transition)

    async def on_deadline_reached(self) -> None:
        """Deadline consumed: reset the record, then hand over to the presenters."""
        async with self._lock:
            session = self.store.load()
            reset = self.state_machine.reset_after_alarm(session)
            self.store.save(reset)

        self.logger.info("alarm_fired", session_count=reset.session_count)
        await self._dispatch(AlarmAlert(fired_at=self._clock(), session_count=reset.session_count))

    async def acknowledge_alarm(self) -> SleepSession:
        """User dismissed the alarm. Clears transient fields again; idempotent."""
        async with self._lock:
            session = self.state_machine.reset_after_alarm(self.store.load())
            self.store.save(session)

        self.logger.info("alarm_acknowledged")
        return session

    async def set_test_mode(self, enabled: bool) -> Result[SleepSession, SchedulingFailureError]:
        """
        Toggle test mode.

        Any pending alarm is cancelled and session-scoped fields are reset,
        because the sleep duration they were computed with no longer applies.
        """
        async with self._lock:
            session = self.store.load().cleared().model_copy(update={"test_mode_enabled": enabled})
            self.store.save(session)
            cancelled = self.scheduler.cancel()

        self.logger.info("test_mode_changed", enabled=enabled)
        if cancelled.is_err():
            self.logger.error("alarm_cancel_failed", error=str(cancelled.unwrap_err()))
            return Result.err(cancelled.unwrap_err())
        return Result.ok(session)

    async def start_monitoring(
        self, source: ActivitySource
    ) -> Result[SleepSession, SchedulingFailureError]:
        """
        Subscribe to the activity source.

        A deadline persisted by an earlier process is registered again with
        this process's scheduler; one already in the past fires right away.

        Raises:
            PermissionDeniedError: the source's data is unavailable; monitoring stays off
        """
        try:
            await source.subscribe(self.handle_activity)
        except PermissionDeniedError as e:
            self.logger.error("monitoring_start_denied", source=source.source_name, error=str(e))
            raise

        self._source = source
        async with self._lock:
            session = self.store.load().model_copy(update={"monitoring_active": True})
            self.store.save(session)
            restored = self._restore_registration(session)

        self.logger.info("monitoring_started", source=source.source_name)
        if restored is not None and restored.is_err():
            return Result.err(restored.unwrap_err())
        return Result.ok(session)

    async def stop_monitoring(self) -> Result[SleepSession, SchedulingFailureError]:
        """Unsubscribe, cancel any alarm and reset the session."""
        if self._source is not None:
            await self._source.unsubscribe()
            self._source = None

        async with self._lock:
            session = self.store.load().cleared().model_copy(update={"monitoring_active": False})
            self.store.save(session)
            cancelled = self.scheduler.cancel()

        self.logger.info("monitoring_stopped")
        if cancelled.is_err():
            self.logger.error("alarm_cancel_failed", error=str(cancelled.unwrap_err()))
            return Result.err(cancelled.unwrap_err())
        return Result.ok(session)

    def status(self, now: datetime | None = None) -> MonitorStatus:
        """Snapshot of the record for display."""
        session = self.store.load()
        now = now or self._clock()

        try:
            phase = session.phase
        except InconsistentStateError:
            phase = SessionPhase.IDLE

        time_until_alarm = None
        if session.scheduled_alarm_time is not None:
            time_until_alarm = session.scheduled_alarm_time - now

        return MonitorStatus(
            phase=phase,
            monitoring_active=session.monitoring_active,
            test_mode_enabled=session.test_mode_enabled,
            session_count=session.session_count,
            last_activity_label=session.last_activity_label,
            scheduled_alarm_time=session.scheduled_alarm_time,
            time_until_alarm=time_until_alarm,
        )

    def _restore_registration(
        self, session: SleepSession
    ) -> Result[datetime, SchedulingFailureError] | None:
        """Register the persisted deadline once per process. Caller holds the lock."""
        if self._registration_restored:
            return None

        alarm_at = session.scheduled_alarm_time
        if alarm_at is None or self.scheduler.scheduled_at == alarm_at:
            self._registration_restored = True
            return None

        result = self.scheduler.schedule(alarm_at)
        if result.is_err():
            self.logger.error(
                "alarm_restore_failed", at=alarm_at.isoformat(), error=str(result.unwrap_err())
            )
            return result

        self._registration_restored = True
        self.logger.info("alarm_restored", at=alarm_at.isoformat())
        return result

    def _apply_intent(
        self, intent: SchedulingIntent | None
    ) -> Result[Any, SchedulingFailureError] | None:
        if intent is None:
            return None

        result: Result[Any, SchedulingFailureError]
        if isinstance(intent, ScheduleAt):
            result = self.scheduler.schedule(intent.at)
        else:
            result = self.scheduler.cancel()

        if result.is_err():
            # The record keeps the optimistic alarm time; no reconciliation here
            self.logger.error(
                "scheduling_failed",
                intent=type(intent).__name__,
                error=str(result.unwrap_err()),
            )
        return result

    async def _dispatch(self, alert: AlarmAlert) -> None:
        if not self.presenters:
            self.logger.warning("alarm_fired_without_presenter")
            return

        for presenter in self.presenters:
            try:
                outcome = presenter.on_alarm_fired(alert)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as e:
                self.logger.error(
                    "alarm_presentation_failed",
                    error=str(e),
                    presenter_type=type(presenter).__name__,
                )
