"""
Manages a Rich Live display driven by the queue's lifecycle events.
Shows the overall queue progress, the item being downloaded, and session
statistics.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any

from rich.console import Console, Group
from rich.layout import Layout
from rich.live import Live
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table
from rich.text import Text

from streamq_cli.core.events import EventBus, EventType, QueueEvent

from .formatters import format_elapsed

log = logging.getLogger("streamq_cli")


class ProgressManager:
    """Renders queue events; subscribe it to a controller's `EventBus`."""

    def __init__(self, console: Console, titles: dict[Any, str] | None = None):
        self.console = console
        self._titles = titles or {}

        self.progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}", justify="left"),
            BarColumn(bar_width=30),
            "[progress.percentage]{task.percentage:>3.0f}%",
            "•",
            TimeElapsedColumn(),
            console=console,
            transient=False,
        )
        self.overall_progress = Progress(
            TextColumn("[bold blue]{task.description}"),
            BarColumn(bar_width=40),
            "[progress.percentage]{task.percentage:>3.0f}%",
            console=console,
        )

        self._live: Live | None = None
        self._layout: Layout | None = None
        self._overall_task_id: TaskID | None = None
        self._active_tasks: dict[str, TaskID] = {}
        self._unsubscribe = None

        self._stats = {
            "total": 0,
            "completed": 0,
            "failed": 0,
            "removed": 0,
            "paused": False,
            "start_time": None,
        }

    def attach(self, events: EventBus) -> None:
        """Starts listening to queue events."""
        self._unsubscribe = events.subscribe(self.handle_event)

    def detach(self) -> None:
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None

    def set_title(self, video_id: Any, title: str) -> None:
        self._titles[str(video_id)] = title

    def handle_event(self, event: QueueEvent) -> None:
        """Updates the display for one lifecycle event."""
        key = str(event.video_id)
        if event.type == EventType.ADD:
            self._stats["total"] += 1
        elif event.type == EventType.REMOVE:
            self._stats["removed"] += 1
        elif event.type == EventType.CLEAR_QUEUE:
            self._stats["removed"] += max(0, self._remaining())
        elif event.type == EventType.START:
            description = self._titles.get(key) or key
            if len(description) > 50:
                description = description[:47] + "..."
            self._active_tasks[key] = self.progress.add_task(description, total=100)
        elif event.type == EventType.PROGRESS:
            if (task_id := self._active_tasks.get(key)) is not None:
                self.progress.update(task_id, completed=event.payload.get("value") or 0)
        elif event.type in (EventType.FINISH, EventType.FAIL):
            success = event.type == EventType.FINISH
            self._stats["completed" if success else "failed"] += 1
            if (task_id := self._active_tasks.pop(key, None)) is not None:
                self.progress.remove_task(task_id)
            mark = "[green]✓[/green]" if success else "[red]✗[/red]"
            self.console.print(f"{mark} {self._titles.get(key) or key}")
        elif event.type == EventType.PAUSE:
            self._stats["paused"] = True
        elif event.type == EventType.RESUME:
            self._stats["paused"] = False
        elif event.type == EventType.FFMPEG_DANGER:
            self.console.print(
                "[bold red]⚠️  ffmpeg was not found. Install it or switch the engine "
                "to 'internal'.[/bold red]"
            )
        self._update_overall()
        self._update_display()

    def _remaining(self) -> int:
        return (
            self._stats["total"]
            - self._stats["completed"]
            - self._stats["failed"]
            - self._stats["removed"]
            - len(self._active_tasks)
        )

    def _update_overall(self) -> None:
        if self._overall_task_id is None:
            return
        self.overall_progress.update(
            self._overall_task_id,
            total=max(self._stats["total"] - self._stats["removed"], 1),
            completed=self._stats["completed"] + self._stats["failed"],
        )

    def _create_layout(self) -> Layout:
        layout = Layout()
        layout.split_column(
            Layout(name="header", size=3),
            Layout(name="stats", size=7),
            Layout(name="progress", ratio=1),
        )
        return layout

    def _generate_header(self) -> Panel:
        if self._stats["start_time"]:
            elapsed = (datetime.now() - self._stats["start_time"]).total_seconds()
            elapsed_str = format_elapsed(elapsed)
        else:
            elapsed_str = format_elapsed(0)
        header_text = Text()
        header_text.append("📼 Stream Queue ", style="bold cyan")
        header_text.append("│ ", style="dim")
        header_text.append(f"Session: {elapsed_str}", style="yellow")
        if self._stats["paused"]:
            header_text.append(" │ ", style="dim")
            header_text.append("⏸ Paused", style="bold yellow")
        return Panel(header_text, border_style="cyan")

    def _generate_stats_panel(self) -> Panel:
        stats_table = Table.grid(padding=(0, 2))
        stats_table.add_column(style="bold cyan", justify="right")
        stats_table.add_column(style="white")
        stats_table.add_column(style="bold cyan", justify="right")
        stats_table.add_column(style="white")
        stats_table.add_row(
            "Downloaded:",
            f"[green]{self._stats['completed']}[/green]",
            "Failed:",
            f"[red]{self._stats['failed']}[/red]",
        )
        stats_table.add_row(
            "Active:",
            f"[cyan]{len(self._active_tasks)}[/cyan]",
            "Remaining:",
            f"[cyan]{max(0, self._remaining())}[/cyan]",
        )
        combined = Group(stats_table, Text(""), self.overall_progress)
        return Panel(
            combined, title="[bold]📊 Session Statistics[/bold]", border_style="blue"
        )

    def _generate_progress_panel(self) -> Panel:
        if not self._active_tasks:
            return Panel(
                Text(
                    "Waiting for downloads to start...",
                    style="dim italic",
                    justify="center",
                ),
                title="[bold]📥 Active Download[/bold]",
                border_style="green",
            )
        return Panel(
            self.progress,
            title="[bold]📥 Active Download[/bold]",
            border_style="green",
        )

    def _update_display(self) -> None:
        if not self._layout:
            return
        self._layout["header"].update(self._generate_header())
        self._layout["stats"].update(self._generate_stats_panel())
        self._layout["progress"].update(self._generate_progress_panel())

    def get_statistics(self) -> dict:
        return self._stats.copy()

    async def __aenter__(self):
        self._stats["start_time"] = datetime.now()
        self._overall_task_id = self.overall_progress.add_task(
            "Queue Progress", total=max(self._stats["total"], 1)
        )
        self._layout = self._create_layout()
        self._update_display()
        self._live = Live(
            self._layout,
            console=self.console,
            refresh_per_second=8,
            vertical_overflow="visible",
        )
        self._live.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self.detach()
        if self._live:
            await asyncio.sleep(0.2)
            self._live.stop()
