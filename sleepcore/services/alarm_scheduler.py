"""
Alarm scheduler boundary: one-shot, cancellable, exact-time deadlines.

Key patterns:
- Protocol-based dependency injection (the host timer facility is swappable)
- Generic Result type for expected failures
- Exactly-once delivery per successful schedule, never for a cancelled one
"""

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Generic, Protocol

import structlog
from typing_extensions import TypeVar

from sleepcore.domain.errors import SchedulingFailureError

# Configure structured logging (production-ready observability)
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer(),
    ],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger(__name__)

# Generic Result type for explicit error handling
ValueT = TypeVar("ValueT")
ErrorT = TypeVar("ErrorT", bound=BaseException, default=Exception)

DeadlineHandler = Callable[[], Awaitable[None] | None]


class Result(Generic[ValueT, ErrorT]):
    """
    Explicit error handling without exceptions for expected failures.

    A failed schedule or cancel is business as usual for a timer boundary,
    so it is returned rather than raised.
    """

    def __init__(self, value: ValueT | None = None, error: ErrorT | None = None) -> None:
        if value is not None and error is not None:
            raise ValueError("Result cannot have both value and error")
        if value is None and error is None:
            raise ValueError("Result must have either value or error")
        self._value: ValueT | None = value
        self._error: ErrorT | None = error

    @classmethod
    def ok(cls, value: ValueT) -> "Result[ValueT, ErrorT]":
        return cls(value=value)

    @classmethod
    def err(cls, error: ErrorT) -> "Result[ValueT, ErrorT]":
        return cls(error=error)

    def is_ok(self) -> bool:
        return self._error is None

    def is_err(self) -> bool:
        return self._error is not None

    def unwrap(self) -> ValueT:
        if self._error:
            raise self._error
        return self._value  # type: ignore

    def unwrap_or(self, default: ValueT) -> ValueT:
        return self._value if self._error is None else default  # type: ignore

    def unwrap_err(self) -> ErrorT:
        if self._error is None:
            raise ValueError("Called unwrap_err() on an Ok value")
        return self._error


class AlarmScheduler(Protocol):
    """
    Capability the state machine's owner depends on to hold the single live deadline.

    Contract:
    - schedule() replaces any registration; re-scheduling the same time is a no-op
    - cancel() removes any registration; no-op when none exists
    - the deadline handler runs exactly once per successful schedule
    """

    @property
    def scheduled_at(self) -> datetime | None: ...

    def set_deadline_handler(self, handler: DeadlineHandler) -> None: ...

    def schedule(self, at: datetime) -> Result[datetime, SchedulingFailureError]: ...

    def cancel(self) -> Result[bool, SchedulingFailureError]: ...


class AsyncioAlarmScheduler:
    """
    Deadline registration on the running asyncio event loop.

    The wall-clock deadline is converted to a delay at registration time and
    handed to loop.call_later. Async handlers are run as tracked tasks.
    """

    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        self._clock = clock or (lambda: datetime.now(UTC))
        self._handler: DeadlineHandler | None = None
        self._handle: asyncio.TimerHandle | None = None
        self._scheduled_at: datetime | None = None
        self._tasks: set[asyncio.Task[None]] = set()
        self._closed = False
        self.logger = logger.bind(component="alarm_scheduler")

    @property
    def scheduled_at(self) -> datetime | None:
        return self._scheduled_at

    def set_deadline_handler(self, handler: DeadlineHandler) -> None:
        self._handler = handler

    def schedule(self, at: datetime) -> Result[datetime, SchedulingFailureError]:
        if self._closed:
            return Result.err(SchedulingFailureError("scheduler is closed"))

        if at.tzinfo is None:
            return Result.err(SchedulingFailureError(f"deadline {at.isoformat()} has no timezone"))

        if self._handle is not None and self._scheduled_at == at:
            self.logger.debug("alarm_already_scheduled", at=at.isoformat())
            return Result.ok(at)

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return Result.err(SchedulingFailureError("no running event loop to register with"))

        self._clear_registration()
        delay_seconds = max(0.0, (at - self._clock()).total_seconds())
        self._handle = loop.call_later(delay_seconds, self._fire, at)
        self._scheduled_at = at

        self.logger.info(
            "alarm_scheduled", at=at.isoformat(), in_seconds=round(delay_seconds, 3)
        )
        return Result.ok(at)

    def cancel(self) -> Result[bool, SchedulingFailureError]:
        if self._closed:
            return Result.err(SchedulingFailureError("scheduler is closed"))

        had_registration = self._handle is not None
        self._clear_registration()
        if had_registration:
            self.logger.info("alarm_cancelled")
        return Result.ok(had_registration)

    def close(self) -> None:
        """Drop any registration and refuse further requests."""
        self._clear_registration()
        self._closed = True
        for task in list(self._tasks):
            task.cancel()
        self.logger.info("alarm_scheduler_closed")

    def _clear_registration(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
        self._handle = None
        self._scheduled_at = None

    def _fire(self, at: datetime) -> None:
        # A replaced registration's handle is cancelled, so this is the live one
        self._handle = None
        self._scheduled_at = None
        self.logger.info("alarm_deadline_reached", at=at.isoformat())

        if self._handler is None:
            self.logger.warning("alarm_fired_without_handler", at=at.isoformat())
            return

        try:
            outcome = self._handler()
        except Exception as e:
            self.logger.exception("deadline_handler_failed", error=str(e))
            return

        if inspect.isawaitable(outcome):
            task = asyncio.ensure_future(outcome)
            self._tasks.add(task)
            task.add_done_callback(self._on_handler_done)

    def _on_handler_done(self, task: "asyncio.Task[None]") -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self.logger.error("deadline_handler_failed", error=str(error))
