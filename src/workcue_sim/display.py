"""Rich-based display for workcue-sim.

This module provides visual output for the simulator using Rich library.
It's decoupled from the simulation logic - it just renders data.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime

from rich.console import Console
from rich.layout import Layout
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text


@dataclass
class LaneStatus:
    """Status of one scheduler or queue for display."""

    name: str
    kind: str  # "workers" or "concurrent"
    capacity: int
    current: int = 0
    waiting: int = 0
    backing_off: int = 0

    # Throughput tracking
    total_completed: int = 0
    total_failed: int = 0
    total_retries: int = 0
    start_time: float = 0.0

    @property
    def total_processed(self) -> int:
        """Items settled (completed + failed)."""
        return self.total_completed + self.total_failed

    @property
    def throughput(self) -> float:
        """Items settled per second."""
        if self.start_time <= 0:
            return 0.0
        elapsed = time.time() - self.start_time
        if elapsed > 0:
            return self.total_processed / elapsed
        return 0.0


@dataclass
class EventRecord:
    """A recent event for display."""

    timestamp: datetime
    event_type: str
    work_id: str
    lane: str | None = None
    details: str = ""


@dataclass
class SimulationState:
    """Current state of the simulation for display.

    This is the data contract between the runner and display.
    The runner updates this; the display renders it.
    """

    # Work counts
    submitted: int = 0
    queued: int = 0
    running: int = 0
    retrying: int = 0
    completed: int = 0
    failed: int = 0

    # Timing
    start_time: float = 0.0
    elapsed: float = 0.0

    lanes: dict[str, LaneStatus] = field(default_factory=dict)

    # Recent events (most recent first)
    events: list[EventRecord] = field(default_factory=list)
    max_events: int = 10

    # Config display
    target_count: int = 0
    latency_ms: int = 0
    latency_jitter: float = 0.2
    outlier_chance: float = 0.0
    error_rate: float = 0.0

    scenario_name: str = "scheduler"

    @property
    def throughput(self) -> float:
        """Work items completed per second."""
        if self.elapsed > 0:
            return self.completed / self.elapsed
        return 0.0

    @property
    def progress(self) -> float:
        """Fraction settled (0.0 to 1.0)."""
        if self.submitted > 0:
            return (self.completed + self.failed) / self.submitted
        return 0.0

    def add_event(self, event_type: str, work_id: str, lane: str | None = None, details: str = "") -> None:
        """Add an event to the display log."""
        self.events.insert(0, EventRecord(
            timestamp=datetime.now(),
            event_type=event_type,
            work_id=work_id,
            lane=lane,
            details=details,
        ))
        if len(self.events) > self.max_events:
            self.events = self.events[:self.max_events]


class SimulatorDisplay:
    """Rich-based TUI display for the simulator.

    Layout:
    - Work stats panel
    - Lanes panel with capacity bars
    - Recent events log
    - Config footer
    """

    def __init__(self, state: SimulationState, console: Console | None = None):
        self.state = state
        self.console = console or Console()
        self._live: Live | None = None

    def __enter__(self) -> SimulatorDisplay:
        self._live = Live(
            self._build_layout(),
            console=self.console,
            refresh_per_second=10,
            screen=False,
        )
        self._live.__enter__()
        return self

    def __exit__(self, *args) -> None:
        if self._live:
            self._live.__exit__(*args)
            self._live = None

    def refresh(self) -> None:
        """Update the display with current state."""
        if self._live:
            self._live.update(self._build_layout())

    def _build_layout(self) -> Panel:
        s = self.state

        layout = Layout()
        layout.split_column(
            Layout(name="work", size=4),
            Layout(name="lanes", size=3 + max(1, len(s.lanes))),
            Layout(name="events", size=7),
            Layout(name="config", size=3),
        )
        layout["work"].update(self._build_work_section())
        layout["lanes"].update(self._build_lanes_section())
        layout["events"].update(self._build_events_section())
        layout["config"].update(self._build_config_section())

        return Panel(
            layout,
            title=f"[bold cyan]workcue-sim[/bold cyan] [dim]{s.scenario_name}[/dim]",
            border_style="cyan",
        )

    def _build_work_section(self) -> Panel:
        s = self.state

        stats = Table.grid(expand=True, padding=(0, 2))
        for _ in range(5):
            stats.add_column(justify="left")
        stats.add_row(
            f"[dim]Queued:[/dim] [bold]{s.queued:,}[/bold]",
            f"[dim]Running:[/dim] [bold yellow]{s.running}[/bold yellow]",
            f"[dim]Retrying:[/dim] [bold magenta]{s.retrying}[/bold magenta]",
            f"[dim]Completed:[/dim] [bold green]{s.completed:,}[/bold green]",
            f"[dim]Failed:[/dim] [bold red]{s.failed}[/bold red]",
        )

        stats2 = Table.grid(expand=True, padding=(0, 2))
        stats2.add_column(justify="left")
        stats2.add_column(justify="left")
        stats2.add_column(justify="left")
        stats2.add_row(
            f"[dim]Progress:[/dim] [bold]{s.progress * 100:.0f}%[/bold]",
            f"[dim]Throughput:[/dim] [bold]{s.throughput:.1f}/s[/bold]",
            f"[dim]Elapsed:[/dim] [bold]{s.elapsed:.1f}s[/bold]",
        )

        content = Table.grid(expand=True)
        content.add_row(stats)
        content.add_row(stats2)
        return Panel(content, title="[bold]Work[/bold]", border_style="blue")

    def _build_lanes_section(self) -> Panel:
        s = self.state

        table = Table(box=None, expand=True, padding=(0, 1), show_header=False)
        table.add_column("Lane", width=12)
        table.add_column("Capacity", width=26)
        table.add_column("Waiting", width=12, justify="right")
        table.add_column("Processed", width=12, justify="right")
        table.add_column("Throughput", width=10, justify="right")

        for name, lane in s.lanes.items():
            pct = lane.current / lane.capacity if lane.capacity else 0.0
            bar = self._progress_bar(pct, 8)
            capacity = f"{bar} {lane.current}/{lane.capacity} {lane.kind}"

            waiting = f"{lane.waiting}"
            if lane.backing_off:
                waiting += f" [magenta]+{lane.backing_off}[/magenta]"

            processed = f"[green]{lane.total_completed}[/green]"
            if lane.total_failed > 0:
                processed += f"/[red]{lane.total_failed}[/red]"

            table.add_row(f"[bold]{name}[/bold]", capacity, waiting, processed, f"{lane.throughput:.1f}/s")

        if not s.lanes:
            table.add_row("[dim]No lanes configured[/dim]", "", "", "", "")

        return Panel(table, title="[bold]Lanes[/bold]", border_style="blue")

    def _build_events_section(self) -> Panel:
        s = self.state

        table = Table(box=None, expand=True, padding=(0, 1), show_header=False)
        table.add_column("Time", width=10, style="dim")
        table.add_column("Event", width=12)
        table.add_column("ID", width=14)
        table.add_column("Lane", width=10)
        table.add_column("Details")

        event_styles = {
            "completed": "green",
            "failed": "red",
            "started": "yellow",
            "retrying": "magenta",
            "queued": "dim",
        }
        for event in s.events[:5]:
            style = event_styles.get(event.event_type, "white")
            table.add_row(
                event.timestamp.strftime("%H:%M:%S"),
                f"[{style}]{event.event_type}[/{style}]",
                event.work_id[:12],
                event.lane or "",
                event.details[:30],
            )

        if not s.events:
            table.add_row("[dim]No events yet[/dim]", "", "", "", "")

        return Panel(table, title="[bold]Recent Events[/bold]", border_style="blue")

    def _build_config_section(self) -> Panel:
        s = self.state

        text = Text()
        text.append("Latency: ", style="dim")
        text.append(f"{s.latency_ms}ms", style="bold")
        if s.latency_jitter > 0:
            text.append(f" ±{s.latency_jitter*100:.0f}%", style="dim")
        if s.outlier_chance > 0:
            text.append("  Outliers: ", style="dim")
            text.append(f"{s.outlier_chance*100:.0f}%", style="bold yellow")
        text.append("  Error: ", style="dim")
        text.append(f"{s.error_rate*100:.0f}%", style="bold red" if s.error_rate > 0 else "bold")
        text.append("  Target: ", style="dim")
        text.append(f"{s.target_count:,}", style="bold")
        text.append("    Ctrl+C to stop", style="dim")

        return Panel(text, title="[bold]Config[/bold]", border_style="dim")

    @staticmethod
    def _progress_bar(pct: float, width: int = 10) -> str:
        """Create a mini progress bar."""
        pct = min(1.0, max(0.0, pct))
        filled = int(pct * width)
        empty = width - filled

        if pct >= 0.9:
            color = "red"
        elif pct >= 0.7:
            color = "yellow"
        else:
            color = "green"

        return f"[{color}]{'█' * filled}{'░' * empty}[/{color}]"


def print_simple_stats(state: SimulationState) -> None:
    """Print a one-line progress update."""
    s = state
    done = s.completed + s.failed
    pct = (done / s.submitted * 100) if s.submitted > 0 else 0

    print(
        f"\r[{done}/{s.submitted}] "
        f"Q:{s.queued} R:{s.running} W:{s.retrying} ✓:{s.completed} ✗:{s.failed} "
        f"({pct:.0f}%) {s.throughput:.1f}/s",
        end="",
        flush=True,
    )


def print_final_summary(state: SimulationState, console: Console | None = None) -> None:
    """Print final summary after simulation."""
    console = console or Console()
    console.print()

    table = Table(title="Simulation Results", show_header=False, border_style="green")
    table.add_column("Metric", style="dim")
    table.add_column("Value", style="bold")

    table.add_row("Scenario", state.scenario_name)
    table.add_row("Submitted", str(state.submitted))
    table.add_row("Completed", f"[green]{state.completed}[/green]")
    table.add_row("Failed", f"[red]{state.failed}[/red]" if state.failed else "0")
    table.add_row("Retries", str(sum(lane.total_retries for lane in state.lanes.values())))
    table.add_row("Duration", f"{state.elapsed:.2f}s")
    table.add_row("Throughput", f"{state.throughput:.2f}/s")

    console.print(table)
