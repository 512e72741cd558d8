"""
Sleep state machine: activity events in, session record and scheduling intent out.

The machine is a pure reducer. It never touches storage or timers; the
caller persists `Transition.session` and then applies `Transition.intent`.

Phases are derived from the record:

  idle          -> no session
  sleeping      -> start_time set, alarm scheduled
  grace_window  -> wake_time set, the session may still resume

A short interruption (shorter than the grace window) resumes the logical
session so the deadline stays anchored at original_start_time + sleep_duration.
"""

from datetime import datetime

import structlog

from sleepcore.config import AlarmConfig
from sleepcore.domain.errors import InconsistentStateError
from sleepcore.domain.models import (
    ActivityEvent,
    ActivityState,
    Cancel,
    ScheduleAt,
    SessionPhase,
    SleepSession,
    Transition,
)

logger = structlog.get_logger(__name__)


class SleepStateMachine:
    """Grace-window aware sleep/wake reducer."""

    def __init__(self, config: AlarmConfig | None = None) -> None:
        self.config = config or AlarmConfig()
        self.logger = logger.bind(component="sleep_state_machine")

    def apply(self, session: SleepSession, event: ActivityEvent, now: datetime) -> Transition:
        """
        Feed one activity event through the transition table.

        Args:
            session: Record as read from the store
            event: Classified activity with the time the state changed
            now: Wall clock used for deadlines measured from the present

        Returns:
            Transition carrying the next record and at most one intent
        """
        session = self._recover(session)
        phase_before = session.phase
        session = session.model_copy(update={"last_activity_label": event.state})

        if session.test_mode_enabled and event.state is ActivityState.EXERCISE:
            return self._test_mode_override(session, phase_before, now)

        if event.state is ActivityState.UNKNOWN:
            return self._unchanged(session, phase_before, "unknown_activity")

        # past the sleeping check, a wake_time means the grace window
        wake_time = session.wake_time

        if event.state is ActivityState.ASLEEP:
            if phase_before is SessionPhase.SLEEPING:
                return self._unchanged(session, phase_before, "already_sleeping")
            if wake_time is not None:
                return self._return_to_sleep(session, wake_time, event, now)
            return self._start_session(session, event, phase_before)

        # passive or exercise
        if phase_before is SessionPhase.SLEEPING:
            return self._wake(session, event)
        if wake_time is not None:
            return self._stay_awake(session, wake_time, event)
        return self._unchanged(session, phase_before, "already_awake")

    def reset_after_alarm(self, session: SleepSession) -> SleepSession:
        """Record after the deadline was consumed. Safe to call on any record."""
        return session.cleared()

    def _test_mode_override(
        self, session: SleepSession, phase_before: SessionPhase, now: datetime
    ) -> Transition:
        """
        Verification side-channel: exercise schedules a short alarm.

        Bypasses the grace-period logic entirely and leaves the session
        timestamps alone; only scheduled_alarm_time moves.
        """
        if session.scheduled_alarm_time is not None:
            self.logger.debug(
                "test_alarm_already_scheduled", at=session.scheduled_alarm_time.isoformat()
            )
            return self._unchanged(session, phase_before, "test_mode_already_scheduled")

        alarm_at = now + self.config.test_sleep_duration
        self.logger.info("test_alarm_requested", at=alarm_at.isoformat())
        return Transition(
            session=session.model_copy(update={"scheduled_alarm_time": alarm_at}),
            intent=ScheduleAt(at=alarm_at),
            phase_before=phase_before,
            phase_after=phase_before,
            rule="test_mode_schedule",
        )

    def _start_session(
        self, session: SleepSession, event: ActivityEvent, phase_before: SessionPhase
    ) -> Transition:
        duration = self.config.effective_sleep_duration(session.test_mode_enabled)
        alarm_at = event.timestamp + duration
        next_session = session.model_copy(
            update={
                "start_time": event.timestamp,
                "original_start_time": event.timestamp,
                "wake_time": None,
                "scheduled_alarm_time": alarm_at,
                "session_count": session.session_count + 1,
            }
        )

        self.logger.info(
            "sleep_session_started",
            session_number=next_session.session_count,
            alarm_at=alarm_at.isoformat(),
        )
        return Transition(
            session=next_session,
            intent=ScheduleAt(at=alarm_at),
            phase_before=phase_before,
            phase_after=SessionPhase.SLEEPING,
            rule="new_session",
        )

    def _return_to_sleep(
        self, session: SleepSession, wake_time: datetime, event: ActivityEvent, now: datetime
    ) -> Transition:
        awake_for = event.timestamp - wake_time

        if awake_for >= self.config.grace_window or session.original_start_time is None:
            self.logger.info("grace_window_missed", awake_seconds=awake_for.total_seconds())
            return self._start_session(session, event, SessionPhase.GRACE_WINDOW)

        duration = self.config.effective_sleep_duration(session.test_mode_enabled)
        remaining = duration - (event.timestamp - session.original_start_time)
        if remaining.total_seconds() > 0:
            alarm_at = now + remaining
        else:
            alarm_at = now + self.config.immediate_delay

        self.logger.info(
            "sleep_session_resumed",
            awake_seconds=awake_for.total_seconds(),
            remaining_seconds=remaining.total_seconds(),
            alarm_at=alarm_at.isoformat(),
        )
        return Transition(
            session=session.model_copy(
                update={
                    "start_time": session.original_start_time,
                    "wake_time": None,
                    "scheduled_alarm_time": alarm_at,
                }
            ),
            intent=ScheduleAt(at=alarm_at),
            phase_before=SessionPhase.GRACE_WINDOW,
            phase_after=SessionPhase.SLEEPING,
            rule="resume_session",
        )

    def _wake(self, session: SleepSession, event: ActivityEvent) -> Transition:
        self.logger.info("user_woke", wake_time=event.timestamp.isoformat())
        # original_start_time survives for a possible resume
        return Transition(
            session=session.model_copy(
                update={
                    "start_time": None,
                    "wake_time": event.timestamp,
                    "scheduled_alarm_time": None,
                }
            ),
            intent=Cancel(),
            phase_before=SessionPhase.SLEEPING,
            phase_after=SessionPhase.GRACE_WINDOW,
            rule="wake_up",
        )

    def _stay_awake(
        self, session: SleepSession, wake_time: datetime, event: ActivityEvent
    ) -> Transition:
        awake_for = event.timestamp - wake_time
        if awake_for < self.config.grace_window:
            return self._unchanged(session, SessionPhase.GRACE_WINDOW, "within_grace_window")

        self.logger.info("grace_window_expired", awake_seconds=awake_for.total_seconds())
        return Transition(
            session=session.model_copy(update={"original_start_time": None, "wake_time": None}),
            intent=None,
            phase_before=SessionPhase.GRACE_WINDOW,
            phase_after=SessionPhase.IDLE,
            rule="session_abandoned",
        )

    def _unchanged(self, session: SleepSession, phase: SessionPhase, rule: str) -> Transition:
        return Transition(
            session=session, intent=None, phase_before=phase, phase_after=phase, rule=rule
        )

    def _recover(self, session: SleepSession) -> SleepSession:
        """Treat a record violating the start/wake exclusion as idle."""
        try:
            _ = session.phase
        except InconsistentStateError as e:
            self.logger.warning("inconsistent_state_recovered", error=str(e))
            return session.model_copy(
                update={"start_time": None, "wake_time": None, "original_start_time": None}
            )
        return session
