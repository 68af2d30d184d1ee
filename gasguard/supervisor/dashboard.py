"""
Terminal dashboard for the supervisory node.
Full-screen live view using the Rich library.
"""

import logging
from collections import deque
from datetime import datetime
from typing import Deque, Optional, Tuple

from rich.align import Align
from rich.console import Console, Group
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from gasguard.shared.models import AlertLevel, MirroredState, RelayState

from .observers import Observer

logger = logging.getLogger(__name__)

LEVEL_STYLES = {
    AlertLevel.NORMAL: "green",
    AlertLevel.WARNING: "yellow",
    AlertLevel.CRITICAL: "bold red",
}


class TerminalDashboard(Observer):
    """Renders the mirrored state whenever it changes"""

    name = "dashboard"

    def __init__(self, title: str, console: Optional[Console] = None, max_alerts: int = 8):
        self.title = title
        self.console = console or Console()
        self.alerts: Deque[Tuple[datetime, AlertLevel, str]] = deque(maxlen=max_alerts)
        self.state = MirroredState()
        self.live: Optional[Live] = None

    async def start(self) -> None:
        self.live = Live(self.render(), console=self.console, auto_refresh=False)
        self.live.start()

    async def stop(self) -> None:
        if self.live:
            self.live.stop()
            self.live = None

    def on_state_updated(self, state: MirroredState) -> None:
        self.state = state
        self._refresh()

    def on_alert(self, level: AlertLevel, message: str) -> None:
        self.alerts.appendleft((datetime.now(), level, message))
        self._refresh()

    def _refresh(self) -> None:
        if self.live:
            self.live.update(self.render(), refresh=True)

    def render(self) -> Group:
        return Group(
            self._create_header(),
            self._create_readings_panel(),
            self._create_alerts_panel(),
        )

    def _create_header(self) -> Panel:
        """Title, clock and freshness indicator"""
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        state = self.state

        header_text = Text()
        header_text.append(self.title.upper(), style="bold cyan")
        header_text.append(f" - {timestamp}", style="white")
        if state.last_updated_at is None:
            header_text.append(" - WAITING FOR DATA", style="yellow")
        elif state.stale:
            header_text.append(" - STALE", style="bold red")
        else:
            header_text.append(" - LIVE", style="green")

        return Panel(Align.center(header_text), style="cyan")

    def _create_readings_panel(self) -> Panel:
        state = self.state
        sample = state.last_sample

        table = Table(show_header=False, box=None)
        table.add_column("Name", style="white", width=14)
        table.add_column("Value", width=20)

        def fmt(value, suffix):
            return f"{value:.1f}{suffix}" if value is not None else "---"

        table.add_row("Gas", str(sample.gas_level) if sample else "---")
        table.add_row("Temperature", fmt(sample.temperature if sample else None, "°C"))
        table.add_row("Humidity", fmt(sample.humidity if sample else None, "%"))
        table.add_row("Alert", Text(state.last_alert.name, style=LEVEL_STYLES[state.last_alert]))

        if state.last_relay is None:
            relay_text = Text("UNKNOWN", style="yellow")
        else:
            relay_text = Text(state.last_relay.value, style="green" if state.last_relay == RelayState.ON else "red")
        table.add_row("Relay", relay_text)

        age = state.age()
        table.add_row("Last update", f"{int(age)}s ago" if age is not None else "never")
        if state.malformed_count:
            table.add_row("Bad messages", Text(str(state.malformed_count), style="yellow"))

        border = "red" if state.stale else LEVEL_STYLES[state.last_alert]
        return Panel(table, title="SENSING NODE", style=border)

    def _create_alerts_panel(self) -> Panel:
        if not self.alerts:
            return Panel(Text("No alerts", style="green"), title="ALERTS", style="cyan")

        lines = Text()
        for when, level, message in self.alerts:
            lines.append(f"{when.strftime('%H:%M:%S')} ", style="white")
            lines.append(f"{message}\n", style=LEVEL_STYLES[level])
        return Panel(lines, title="ALERTS", style="cyan")
