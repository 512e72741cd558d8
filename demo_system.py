"""
End-to-end walkthrough of the sleep alarm pipeline.

This script exercises:
1. Configuration loading and validation
2. The documented grace-window scenarios through the state machine
3. A real alarm firing on the asyncio scheduler in test mode
4. Permission failures when the activity source is unavailable

Run with: uv run python demo_system.py
"""

import asyncio
import tempfile
from datetime import UTC, datetime, timedelta
from pathlib import Path

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from adapters.simulated.activity import ScriptedActivitySource
from adapters.simulated.presenter import ConsoleAlarmPresenter
from sleepcore.config import (
    AlarmConfig,
    AppConfig,
    configure_logging,
    get_config,
    print_config_summary,
    validate_config,
)
from sleepcore.domain.errors import PermissionDeniedError
from sleepcore.domain.models import ActivityEvent, ActivityState, ScheduleAt, SleepSession
from sleepcore.services.alarm_scheduler import AsyncioAlarmScheduler
from sleepcore.services.session_store import JsonFileSessionStore
from sleepcore.services.sleep_state_machine import SleepStateMachine

console = Console()

SCENARIOS: dict[str, list[tuple[timedelta, ActivityState]]] = {
    "fall asleep": [(timedelta(0), ActivityState.ASLEEP)],
    "short bathroom break": [
        (timedelta(0), ActivityState.ASLEEP),
        (timedelta(hours=7, minutes=50), ActivityState.EXERCISE),
        (timedelta(hours=7, minutes=55), ActivityState.ASLEEP),
    ],
    "up for good": [
        (timedelta(0), ActivityState.ASLEEP),
        (timedelta(hours=7, minutes=50), ActivityState.EXERCISE),
        (timedelta(hours=8, minutes=51), ActivityState.EXERCISE),
    ],
}


def check_configuration() -> bool:
    console.print(Panel("🔧 Testing Configuration", style="blue"))
    try:
        validate_config()
        print_config_summary()
        return True
    except Exception as e:
        console.print(f"❌ Configuration failed: {e}", style="red")
        return False


def check_scenarios() -> bool:
    console.print(Panel("😴 Grace Window Scenarios", style="blue"))
    machine = SleepStateMachine(AlarmConfig())
    base = datetime(2026, 1, 1, 22, 0, tzinfo=UTC)

    for name, script in SCENARIOS.items():
        table = Table(title=name)
        table.add_column("At")
        table.add_column("Activity")
        table.add_column("Rule")
        table.add_column("Phase")
        table.add_column("Intent")

        session = SleepSession()
        for offset, state in script:
            event = ActivityEvent(state=state, timestamp=base + offset)
            transition = machine.apply(session, event, now=event.timestamp)
            session = transition.session
            intent = transition.intent
            if intent is None:
                intent_text = "-"
            elif isinstance(intent, ScheduleAt):
                intent_text = f"schedule +{intent.at - base}"
            else:
                intent_text = "cancel"
            table.add_row(
                str(offset), state.value, transition.rule, transition.phase_after.value, intent_text
            )

        console.print(table)
    return True


async def check_live_alarm() -> bool:
    console.print(Panel("⏰ Live Alarm (test mode)", style="blue"))

    from sleepcore.services.sleep_monitor import SleepMonitor

    config = AppConfig(alarm=AlarmConfig(test_sleep_duration=timedelta(seconds=2)))
    with tempfile.TemporaryDirectory() as tmp:
        scheduler = AsyncioAlarmScheduler()
        store = JsonFileSessionStore(Path(tmp) / "session.json")
        monitor = SleepMonitor(scheduler=scheduler, store=store, config=config)
        fired = asyncio.Event()

        async def dismiss() -> SleepSession:
            session = await monitor.acknowledge_alarm()
            fired.set()
            return session

        monitor.add_presenter(ConsoleAlarmPresenter(on_dismiss=dismiss, auto_dismiss=True))
        await monitor.set_test_mode(True)

        source = ScriptedActivitySource(
            "demo-watch", [(timedelta(0), ActivityState.EXERCISE)], delay_seconds=0.1
        )
        await monitor.start_monitoring(source)
        await source.wait_until_replayed()
        console.print(f"Status: {monitor.status().model_dump(mode='json')}")

        try:
            await asyncio.wait_for(fired.wait(), timeout=5.0)
        except TimeoutError:
            console.print("❌ Alarm never fired", style="red")
            return False
        finally:
            await monitor.stop_monitoring()
            scheduler.close()

    console.print("✅ Alarm delivered and dismissed", style="green")
    return True


async def check_permission_denied() -> bool:
    console.print(Panel("🔒 Permission Denied", style="blue"))

    from sleepcore.services.session_store import InMemorySessionStore
    from sleepcore.services.sleep_monitor import SleepMonitor

    monitor = SleepMonitor(
        scheduler=AsyncioAlarmScheduler(), store=InMemorySessionStore(), config=AppConfig()
    )
    try:
        await monitor.start_monitoring(ScriptedActivitySource("revoked", [], available=False))
    except PermissionDeniedError as e:
        console.print(f"✅ Monitoring refused to start: {e}", style="green")
        return not monitor.status().monitoring_active
    console.print("❌ Monitoring started without permission", style="red")
    return False


async def main() -> None:
    configure_logging(get_config().logging)

    results = {
        "configuration": check_configuration(),
        "scenarios": check_scenarios(),
        "live alarm": await check_live_alarm(),
        "permission denied": await check_permission_denied(),
    }

    summary = Table(title="Summary")
    summary.add_column("Check")
    summary.add_column("Result")
    for name, ok in results.items():
        summary.add_row(name, "✅" if ok else "❌")
    console.print(summary)


if __name__ == "__main__":
    asyncio.run(main())
