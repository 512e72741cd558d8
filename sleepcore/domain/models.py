"""
Domain models for sleep tracking and the wake-up alarm.

These models represent the core business concepts and are framework-agnostic.
They use Pydantic for validation and JSON serialization of the persisted record.
"""

from datetime import UTC, datetime, timedelta
from enum import Enum

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field

from sleepcore.domain.errors import InconsistentStateError


class ActivityState(str, Enum):
    """Coarse activity classifications delivered by the classifier."""

    ASLEEP = "asleep"
    PASSIVE = "passive"
    EXERCISE = "exercise"
    UNKNOWN = "unknown"


class SessionPhase(str, Enum):
    """Phase of the sleep session, derived from the persisted record."""

    IDLE = "idle"
    SLEEPING = "sleeping"
    GRACE_WINDOW = "grace_window"


class ActivityEvent(BaseModel):
    """A single timestamped activity classification."""

    model_config = ConfigDict(frozen=True)

    state: ActivityState
    timestamp: AwareDatetime = Field(default_factory=lambda: datetime.now(UTC))


class SleepSession(BaseModel):
    """
    The single persisted session record.

    Only one session is ever active, so this is a record rather than a collection.
    """

    model_config = ConfigDict(frozen=True)

    start_time: AwareDatetime | None = Field(
        default=None, description="Start of the current continuous sleep interval"
    )
    original_start_time: AwareDatetime | None = Field(
        default=None, description="Start of the logical session, kept across grace periods"
    )
    wake_time: AwareDatetime | None = Field(default=None, description="Most recent wake-up")
    scheduled_alarm_time: AwareDatetime | None = Field(
        default=None, description="Currently registered alarm deadline"
    )
    session_count: int = Field(default=0, ge=0)
    last_activity_label: ActivityState | None = Field(
        default=None, description="Most recent classification, display only"
    )
    test_mode_enabled: bool = False
    monitoring_active: bool = False

    @property
    def phase(self) -> SessionPhase:
        if self.start_time is not None and self.wake_time is not None:
            raise InconsistentStateError(
                f"start_time={self.start_time.isoformat()} and "
                f"wake_time={self.wake_time.isoformat()} are both set"
            )
        if self.start_time is not None:
            return SessionPhase.SLEEPING
        if self.wake_time is not None:
            return SessionPhase.GRACE_WINDOW
        return SessionPhase.IDLE

    def cleared(self) -> "SleepSession":
        """Copy with every session-scoped field dropped (counters and flags kept)."""
        return self.model_copy(
            update={
                "start_time": None,
                "original_start_time": None,
                "wake_time": None,
                "scheduled_alarm_time": None,
            }
        )


class ScheduleAt(BaseModel):
    """Intent: register the one-shot alarm deadline at `at`."""

    model_config = ConfigDict(frozen=True)

    at: AwareDatetime


class Cancel(BaseModel):
    """Intent: remove any registered alarm deadline."""

    model_config = ConfigDict(frozen=True)


SchedulingIntent = ScheduleAt | Cancel


class Transition(BaseModel):
    """Result of feeding one event through the state machine."""

    model_config = ConfigDict(frozen=True)

    session: SleepSession
    intent: SchedulingIntent | None = None
    phase_before: SessionPhase
    phase_after: SessionPhase
    rule: str = Field(description="Short label of the rule that fired, for logging")


class AlarmAlert(BaseModel):
    """What the presentation layer receives when the alarm fires."""

    model_config = ConfigDict(frozen=True)

    fired_at: AwareDatetime = Field(default_factory=lambda: datetime.now(UTC))
    session_count: int = Field(ge=0)
    title: str = "Time to wake up"
    # Repeating "SOS" waveform in milliseconds: short, short, short, long, long, long
    vibration_pattern_ms: tuple[int, ...] = (0, 200, 100, 200, 100, 200, 500, 500, 500, 500, 500)
    audio_usage: str = Field(default="alarm", description="Alarm-class usage bypasses DND")


class MonitorStatus(BaseModel):
    """Status snapshot for display."""

    phase: SessionPhase
    monitoring_active: bool
    test_mode_enabled: bool
    session_count: int
    last_activity_label: ActivityState | None
    scheduled_alarm_time: datetime | None
    time_until_alarm: timedelta | None
