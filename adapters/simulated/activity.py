"""
Simulated activity classifier.

In production the events come from the wearable's passive activity listener.
This source replays a script of classifications so the whole alarm path can
be exercised without a device.
"""

import asyncio
from collections.abc import Sequence
from datetime import UTC, datetime, timedelta

import structlog

from sleepcore.domain.errors import PermissionDeniedError
from sleepcore.domain.models import ActivityEvent, ActivityState
from sleepcore.services.sleep_monitor import ActivityCallback

logger = structlog.get_logger(__name__)


class ScriptedActivitySource:
    """
    Replays (offset, state) pairs relative to a base time.

    Args:
        source_name: Name used in logs
        script: Offsets from `base_time` paired with the classification at that time
        base_time: Anchor for the offsets, defaults to now
        delay_seconds: Real pause between deliveries
        available: False simulates a revoked sensor permission
    """

    def __init__(
        self,
        source_name: str,
        script: Sequence[tuple[timedelta, ActivityState]],
        base_time: datetime | None = None,
        delay_seconds: float = 0.0,
        available: bool = True,
    ) -> None:
        self.source_name = source_name
        self.base_time = base_time or datetime.now(UTC)
        self.script = list(script)
        self.delay_seconds = delay_seconds
        self.available = available
        self.delivered: list[ActivityEvent] = []
        self.logger = logger.bind(source=source_name)
        self._task: asyncio.Task[None] | None = None

    @property
    def is_subscribed(self) -> bool:
        return self._task is not None

    def events(self) -> list[ActivityEvent]:
        return [
            ActivityEvent(state=state, timestamp=self.base_time + offset)
            for offset, state in self.script
        ]

    async def subscribe(self, callback: ActivityCallback) -> None:
        if not self.available:
            raise PermissionDeniedError(f"Activity data unavailable for {self.source_name}")
        if self._task is not None:
            raise RuntimeError(f"{self.source_name} already has a subscriber")

        self._task = asyncio.create_task(self._replay(callback))
        self.logger.info("activity_source_subscribed", events=len(self.script))

    async def unsubscribe(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        self.logger.info("activity_source_unsubscribed", delivered=len(self.delivered))

    async def wait_until_replayed(self) -> None:
        """Block until every scripted event has been delivered."""
        if self._task is not None:
            await asyncio.shield(self._task)

    async def _replay(self, callback: ActivityCallback) -> None:
        for event in self.events():
            if self.delay_seconds > 0:
                await asyncio.sleep(self.delay_seconds)
            await callback(event)
            self.delivered.append(event)
            self.logger.debug("activity_delivered", activity=event.state.value)
