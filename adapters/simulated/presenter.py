"""
Console stand-in for the full-screen wake-up alert.

The real presentation layer shows a full-screen activity, starts a repeating
vibration tagged with alarm-class audio usage (so do-not-disturb does not
mute it) and offers a dismiss button. Here the alert is rendered with rich
and dismissal can be automatic.
"""

from collections.abc import Awaitable, Callable

from rich.console import Console
from rich.panel import Panel

from sleepcore.domain.models import AlarmAlert, SleepSession


class ConsoleAlarmPresenter:
    """Renders the alarm and optionally dismisses it right away."""

    def __init__(
        self,
        on_dismiss: Callable[[], Awaitable[SleepSession]] | None = None,
        auto_dismiss: bool = False,
        console: Console | None = None,
    ) -> None:
        self.on_dismiss = on_dismiss
        self.auto_dismiss = auto_dismiss
        self.console = console or Console()
        self.alerts: list[AlarmAlert] = []

    async def on_alarm_fired(self, alert: AlarmAlert) -> None:
        self.alerts.append(alert)
        pattern = ", ".join(str(ms) for ms in alert.vibration_pattern_ms)
        self.console.print(
            Panel(
                f"[bold]{alert.title}[/bold]\n"
                f"Fired at {alert.fired_at.strftime('%Y-%m-%d %H:%M:%S UTC')}\n"
                f"Session #{alert.session_count}\n"
                f"Vibration ({alert.audio_usage}): [{pattern}] repeating",
                title="⏰ ALARM",
                style="red",
            )
        )

        if self.auto_dismiss:
            await self.dismiss()

    async def dismiss(self) -> None:
        if self.on_dismiss is not None:
            await self.on_dismiss()
        self.console.print("[green]Alarm dismissed[/green]")
