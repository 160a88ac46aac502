"""
Functions for formatting and displaying data in the console using Rich.
"""

from pathlib import Path
from typing import Any

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from streamq_cli.models.config import TEMPLATE_PLACEHOLDERS, DownloadSettings
from streamq_cli.models.queue_item import Identifier, QueueItem


def format_elapsed(seconds: float) -> str:
    """Formats a session length as `H:MM:SS`, or `M:SS` under an hour."""
    minutes, secs = divmod(max(int(seconds), 0), 60)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def format_error_with_suggestions(
    error: Exception, context: dict | None = None
) -> Panel:
    """Formats an error with actionable suggestions into a Rich Panel."""
    error_type = type(error).__name__
    error_msg = str(error)

    suggestions_map = {
        "ConfigurationError": [
            "• Run `streamq-cli init` to create a configuration file.",
            "• Check the [downloads] section of your config.ini.",
            "• Use `streamq-cli --show-config` to see the current values.",
        ],
        "InvalidQueueItemError": [
            "• Every download needs a video id and a URL.",
            "• Pass them with `--video-id` and the URL argument.",
        ],
        "TranscoderError": [
            "• Make sure ffmpeg is installed and on your PATH.",
            "• Switch the engine to 'internal' with `--engine internal`.",
        ],
    }

    suggestions = suggestions_map.get(
        error_type, ["• Run the command with -vv for detailed logs."]
    )

    error_text = Text()
    error_text.append(f"{error_type}: ", style="bold red")
    error_text.append(error_msg)

    content = Table.grid(padding=(1, 0))
    content.add_row(error_text)
    content.add_row()
    content.add_row(Text("Suggestions", style="bold yellow"))
    content.add_row(Text("\n".join(suggestions)))

    if context:
        content.add_row()
        content.add_row(Text(f"Context: {context}", style="dim"))

    return Panel(
        content,
        title="[bold red]An Error Occurred[/bold red]",
        border_style="red",
        expand=False,
    )


def print_config(config_path: Path, config_data: dict[str, Any]):
    """Displays the current configuration."""
    console = Console()
    content = "\n".join(f"{key} = {value}" for key, value in config_data.items())
    console.print(
        Panel(
            content.strip() or "[dim]No [downloads] section.[/dim]",
            title=f"Configuration ([dim]{config_path}[/dim])",
            border_style="cyan",
        )
    )


def print_settings_table(settings: DownloadSettings, ffmpeg_available: bool):
    """Displays a summary of the current settings."""
    console = Console()
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold cyan")
    table.add_column()

    table.add_row("Engine:", settings.engine.value)
    table.add_row(
        "ffmpeg:", "[green]✓ Available[/green]" if ffmpeg_available else "[red]✗ Missing[/red]"
    )
    table.add_row("Directory:", f"[dim]{settings.directory}[/dim]")
    table.add_row("File Mode:", "Template" if settings.uses_template else "Remote name")
    table.add_row("File Template:", f"[dim]{settings.filetemplate}[/dim]")
    table.add_row("History:", "✓ Enabled" if settings.history else "✗ Disabled")

    console.print(
        Panel(
            table,
            title="[bold green]✓ Validated Settings[/bold green]",
            border_style="green",
        )
    )


def print_queue_table(items: tuple[QueueItem, ...]):
    """Displays the pending downloads in processing order."""
    console = Console()
    if not items:
        console.print("[dim]The download queue is empty.[/dim]")
        return

    table = Table(title=f"Download Queue ({len(items)})", box=box.ROUNDED)
    table.add_column("#", style="dim", justify="right")
    table.add_column("Video ID", style="cyan")
    table.add_column("User", style="yellow")
    table.add_column("Title")
    table.add_column("URL", style="dim", overflow="fold")
    for position, item in enumerate(items, 1):
        table.add_row(
            str(position),
            str(item.video.id),
            item.user.name or str(item.user.id),
            item.video.title or "[dim]untitled[/dim]",
            item.video.url,
        )
    console.print(table)


def print_history_summary(history: tuple[Identifier, ...], enabled: bool):
    console = Console()
    if not enabled:
        console.print("[yellow]Download history is disabled in the settings.[/yellow]")
        return
    console.print(
        f"\n[bold]Downloads in History:[/] [green]{len(history)}[/green]\n"
    )


def print_summary_panel(progress_stats: dict[str, Any], duration_s: float):
    """Displays the final summary of a processing session."""
    console = Console()

    stats_table = Table(show_header=False, box=None, padding=(0, 2))
    stats_table.add_column(style="bold cyan", justify="right", width=16)
    stats_table.add_column(style="white", justify="left")

    stats_table.add_row(
        "✓ Downloaded:", f"[bold green]{progress_stats.get('completed', 0)}[/bold green]"
    )
    if failed := progress_stats.get("failed", 0):
        stats_table.add_row("✗ Failed:", f"[bold red]{failed}[/bold red]")
    if removed := progress_stats.get("removed", 0):
        stats_table.add_row("○ Removed:", f"[yellow]{removed}[/yellow]")
    stats_table.add_row("Time Elapsed:", f"[blue]{format_elapsed(duration_s)}[/blue]")

    if progress_stats.get("paused"):
        title = "⏸ [bold]Queue Paused[/bold]"
        border_color = "yellow"
    else:
        title = "📼 [bold]Queue Complete![/bold]"
        border_color = "green"

    console.print()
    console.print(
        Panel(
            stats_table,
            title=title,
            border_style=border_color,
            box=box.DOUBLE,
            expand=False,
            padding=(1, 2),
        )
    )


def print_file_template_help():
    """Displays the placeholders available in file templates."""
    console = Console()
    table = Table(
        box=box.ROUNDED,
        title="[bold]File Template Placeholders[/bold]",
        title_style="",
    )
    table.add_column("Placeholder", style="cyan")
    table.add_column("Description")
    for placeholder, description in TEMPLATE_PLACEHOLDERS.items():
        table.add_row(placeholder, description)
    console.print(table)
    console.print(
        "[dim]Templates apply when filemode is not 0. The characters "
        ':*?"<>| are replaced with "_" and ".ts" is appended.[/dim]'
    )
