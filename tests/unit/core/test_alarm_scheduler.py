"""
Tests for the alarm scheduler boundary.

Covers:
- Result type for explicit error handling
- AsyncioAlarmScheduler: exactly-once firing, cancellation, replacement,
  idempotent re-scheduling, failure reporting
"""

import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from sleepcore.domain.errors import SchedulingFailureError
from sleepcore.services.alarm_scheduler import AsyncioAlarmScheduler, Result


class TestResult:
    """Test the Result type for explicit error handling."""

    def test_result_ok_creates_successful_result(self) -> None:
        result: Result[str, Exception] = Result.ok("success")
        assert result.is_ok()
        assert not result.is_err()
        assert result.unwrap() == "success"

    def test_result_error_creates_failed_result(self) -> None:
        error = SchedulingFailureError("permission revoked")
        result: Result[str, SchedulingFailureError] = Result.err(error)
        assert not result.is_ok()
        assert result.is_err()
        assert result.unwrap_or("default") == "default"
        assert result.unwrap_err() is error

    def test_unwrap_raises_on_error_result(self) -> None:
        result: Result[str, SchedulingFailureError] = Result.err(
            SchedulingFailureError("permission revoked")
        )

        with pytest.raises(SchedulingFailureError, match="permission revoked"):
            result.unwrap()

    def test_false_is_a_valid_ok_value(self) -> None:
        result: Result[bool, Exception] = Result.ok(False)
        assert result.is_ok()
        assert result.unwrap() is False

    def test_result_requires_exactly_one_side(self) -> None:
        with pytest.raises(ValueError, match="either value or error"):
            Result()
        with pytest.raises(ValueError, match="both value and error"):
            Result(value=1, error=ValueError("x"))


def soon(seconds: float) -> datetime:
    return datetime.now(UTC) + timedelta(seconds=seconds)


class TestAsyncioAlarmScheduler:
    """Deadline registration on a live event loop with short real delays."""

    @pytest.fixture
    def fired(self) -> list[datetime]:
        return []

    @pytest.fixture
    def scheduler(self, fired: list[datetime]) -> AsyncioAlarmScheduler:
        scheduler = AsyncioAlarmScheduler()
        scheduler.set_deadline_handler(lambda: fired.append(datetime.now(UTC)))
        return scheduler

    async def test_fires_exactly_once(
        self, scheduler: AsyncioAlarmScheduler, fired: list[datetime]
    ) -> None:
        at = soon(0.05)
        result = scheduler.schedule(at)

        assert result.is_ok()
        assert scheduler.scheduled_at == at
        await asyncio.sleep(0.2)

        assert len(fired) == 1
        assert scheduler.scheduled_at is None

    async def test_cancelled_registration_never_fires(
        self, scheduler: AsyncioAlarmScheduler, fired: list[datetime]
    ) -> None:
        scheduler.schedule(soon(0.05))
        result = scheduler.cancel()
        await asyncio.sleep(0.2)

        assert result.unwrap() is True
        assert fired == []

    async def test_cancel_without_registration_is_noop(
        self, scheduler: AsyncioAlarmScheduler
    ) -> None:
        result = scheduler.cancel()

        assert result.is_ok()
        assert result.unwrap() is False

    async def test_new_schedule_replaces_previous(
        self, scheduler: AsyncioAlarmScheduler, fired: list[datetime]
    ) -> None:
        scheduler.schedule(soon(0.05))
        later = soon(0.15)
        scheduler.schedule(later)

        await asyncio.sleep(0.1)
        assert fired == []
        assert scheduler.scheduled_at == later

        await asyncio.sleep(0.15)
        assert len(fired) == 1

    async def test_identical_schedule_is_idempotent(
        self, scheduler: AsyncioAlarmScheduler, fired: list[datetime]
    ) -> None:
        at = soon(0.05)
        scheduler.schedule(at)
        second = scheduler.schedule(at)
        await asyncio.sleep(0.2)

        assert second.unwrap() == at
        assert len(fired) == 1

    async def test_past_deadline_fires_promptly(
        self, scheduler: AsyncioAlarmScheduler, fired: list[datetime]
    ) -> None:
        scheduler.schedule(datetime.now(UTC) - timedelta(minutes=5))
        await asyncio.sleep(0.05)

        assert len(fired) == 1

    async def test_async_handler_is_awaited(self) -> None:
        done = asyncio.Event()

        async def handler() -> None:
            done.set()

        scheduler = AsyncioAlarmScheduler()
        scheduler.set_deadline_handler(handler)
        scheduler.schedule(soon(0.01))

        await asyncio.wait_for(done.wait(), timeout=1.0)

    async def test_closed_scheduler_reports_failure(
        self, scheduler: AsyncioAlarmScheduler, fired: list[datetime]
    ) -> None:
        scheduler.schedule(soon(0.05))
        scheduler.close()
        await asyncio.sleep(0.1)

        assert fired == []
        assert scheduler.schedule(soon(1)).is_err()
        assert isinstance(scheduler.cancel().unwrap_err(), SchedulingFailureError)

    def test_schedule_without_running_loop_fails(self) -> None:
        scheduler = AsyncioAlarmScheduler()

        result = scheduler.schedule(soon(60))

        assert result.is_err()
        assert "no running event loop" in str(result.unwrap_err())
        assert scheduler.scheduled_at is None

    async def test_naive_deadline_is_rejected(self, scheduler: AsyncioAlarmScheduler) -> None:
        result = scheduler.schedule(datetime(2026, 3, 15, 6, 0))

        assert result.is_err()
        assert "no timezone" in str(result.unwrap_err())
        assert scheduler.scheduled_at is None
