"""
Defines the command-line interface for the application using Typer.
"""

import asyncio
import logging
import os
import shutil
import time
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from streamq_cli import __version__
from streamq_cli.core.queue_controller import QueueController
from streamq_cli.exceptions import StreamqCliError
from streamq_cli.models.config import DownloadSettings, EngineKind
from streamq_cli.models.queue_item import QueueItem, UserInfo, VideoInfo
from streamq_cli.storage.config_manager import ConfigManager

from .formatters import (
    print_config,
    print_file_template_help,
    print_history_summary,
    print_queue_table,
    print_settings_table,
    print_summary_panel,
)
from .progress_manager import ProgressManager

console = Console()

logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[
        RichHandler(
            console=console,
            rich_tracebacks=True,
            show_path=False,
            show_level=False,
            markup=True,
        )
    ],
)
log = logging.getLogger("streamq_cli")

app = typer.Typer(
    name="streamq-cli",
    help=(
        "A durable, sequential download queue for HLS streams and media files. "
        "Use 'sqcli <command> --help' for more info."
    ),
    rich_markup_mode="rich",
    pretty_exceptions_show_locals=False,
    add_completion=False,
)


def get_config_dir() -> Path:
    if os.name == "nt":
        base_dir = Path(os.getenv("APPDATA", "~\\AppData\\Roaming"))
    else:
        base_dir = Path(os.getenv("XDG_CONFIG_HOME", "~/.config"))
    return base_dir.expanduser() / "streamq-cli"


CONFIG_DIR = get_config_dir()
CONFIG_FILE = CONFIG_DIR / "config.ini"


def _load_settings(cli_options: dict | None = None) -> DownloadSettings:
    try:
        return ConfigManager(CONFIG_FILE).load_settings(cli_options)
    except StreamqCliError as e:
        console.print(f"[bold red]Error: {e}[/bold red]")
        raise typer.Exit(code=1) from e


def _open_queue(
    settings: DownloadSettings, progress: ProgressManager | None = None
) -> QueueController:
    """Opens the persisted queue without starting any downloads."""
    controller = QueueController(CONFIG_DIR, settings=settings, paused=True)
    if progress:
        progress.attach(controller.events)
    controller.load()
    return controller


def _label_items(progress: ProgressManager, items: tuple[QueueItem, ...]) -> None:
    for item in items:
        progress.set_title(item.video.id, item.video.title or str(item.video.id))


async def _process_queue(controller: QueueController):
    """Runs the queue until it drains or is paused; Ctrl+C pauses it."""
    controller.resume()
    try:
        await controller.join()
    except asyncio.CancelledError:
        controller.pause()
        console.print(
            "\n[yellow]⏸  Finishing the current download before stopping. "
            "Press Ctrl+C again to abort.[/yellow]"
        )
        await controller.close()
        raise
    await controller.close()


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase logging verbosity (-vv for debug).",
    ),
    version: bool = typer.Option(
        False, "--version", help="Show version and exit.", is_eager=True
    ),
    show_config: bool = typer.Option(
        False, "--show-config", help="Display the current configuration."
    ),
    template_help: bool = typer.Option(
        False,
        "--template-help",
        help="Show the placeholders available in file templates and exit.",
        is_eager=True,
    ),
):
    """Stream Queue Downloader CLI"""
    if template_help:
        print_file_template_help()
        raise typer.Exit()

    if version:
        console.print(f"[bold]streamq-cli[/bold] version [cyan]{__version__}[/cyan]")
        raise typer.Exit()

    log_level = "INFO"
    if verbose >= 2:
        log_level = "DEBUG"
    logging.getLogger("streamq_cli").setLevel(log_level)

    if show_config:
        if not CONFIG_FILE.is_file():
            console.print(
                "[red]✗ Config file not found.[/] Run [cyan]streamq-cli init[/cyan]"
                " first."
            )
            raise typer.Exit(code=1)
        config_manager = ConfigManager(CONFIG_FILE)
        config_manager.load_settings()
        print_config(CONFIG_FILE, config_manager.get_settings_as_dict())
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@app.command()
def init(
    directory: Path = typer.Option(  # noqa: B008
        Path.home() / "Downloads" / "streamq",
        "--directory",
        "-d",
        help="Folder where downloads are saved.",
    ),
    engine: EngineKind = typer.Option(
        EngineKind.INTERNAL, "--engine", "-e", help="Download engine to use."
    ),
    filemode: int = typer.Option(
        0, "--filemode", help="0 keeps the remote file name, 1 uses the template."
    ),
    template: str = typer.Option(
        DownloadSettings().filetemplate,
        "--template",
        "-t",
        help="File name template. See --template-help for placeholders.",
    ),
    history: bool = typer.Option(
        True, "--history/--no-history", help="Remember completed downloads."
    ),
    force: bool = typer.Option(
        False, "--force", "-f", help="Overwrite an existing configuration."
    ),
):
    """Create the configuration file."""
    if (
        CONFIG_FILE.exists()
        and not force
        and not typer.confirm("Configuration file already exists. Overwrite it?")
    ):
        raise typer.Abort()

    try:
        ConfigManager(CONFIG_FILE).save_new_config(
            {
                "directory": directory,
                "engine": engine,
                "filemode": filemode,
                "filetemplate": template,
                "history": history,
            }
        )
    except StreamqCliError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(code=1) from e

    console.print(f"\n[bold green]✓ Configuration saved to '{CONFIG_FILE}'[/bold green]")
    console.print("Ready to download! Try: [cyan]streamq-cli add <URL> --video-id 1[/cyan]")


@app.command()
def add(
    url: str = typer.Argument(..., help="Playlist (.m3u8) or media URL."),
    video_id: str = typer.Option(..., "--video-id", "-i", help="Unique video id."),
    title: str | None = typer.Option(None, "--title", help="Video title."),
    video_time: int | None = typer.Option(
        None, "--time", help="Timestamp or duration attached to the video."
    ),
    user_id: str = typer.Option("", "--user-id", help="Id of the video's owner."),
    user_name: str = typer.Option("", "--user-name", "-u", help="Owner's name."),
    run: bool = typer.Option(
        False, "--run", "-r", help="Start processing the queue right away."
    ),
):
    """Add a download to the queue."""
    settings = _load_settings()
    item = QueueItem(
        user=UserInfo(id=user_id, name=user_name),
        video=VideoInfo(id=video_id, url=url, title=title, time=video_time),
    )

    async def _add_async():
        if not run:
            controller = _open_queue(settings)
            _queue_item(controller, item)
            await controller.flush()
            return

        async with ProgressManager(console) as progress:
            controller = _open_queue(settings, progress)
            _queue_item(controller, item)
            await asyncio.to_thread(controller.init, settings)
            _label_items(progress, controller.queue)
            await _process_queue(controller)

    asyncio.run(_add_async())


def _queue_item(controller: QueueController, item: QueueItem) -> None:
    if controller.has_been_downloaded(item.video.id):
        console.print(
            f"[yellow]○ Video '{item.video.id}' was downloaded before; "
            "queueing it again.[/yellow]"
        )
    controller.add(item)
    console.print(
        f"[green]✓ Queued[/] [cyan]{escape(str(item.video.id))}[/cyan] "
        f"(position {len(controller.queue)})"
    )


@app.command()
def remove(video_id: str = typer.Argument(..., help="Video id to remove.")):
    """Remove a pending download from the queue."""
    settings = _load_settings()

    async def _remove_async() -> bool:
        controller = _open_queue(settings)
        removed = controller.remove(video_id)
        await controller.flush()
        return removed

    if asyncio.run(_remove_async()):
        console.print(f"[green]✓ Removed '{video_id}' from the queue.[/green]")
    else:
        console.print(f"[yellow]○ '{video_id}' is not in the queue.[/yellow]")
        raise typer.Exit(code=1)


@app.command(name="list")
def list_queue():
    """Show the pending downloads."""
    controller = _open_queue(_load_settings())
    print_queue_table(controller.queue)


@app.command()
def run(
    engine: EngineKind | None = typer.Option(
        None, "--engine", "-e", help="Override the configured download engine."
    ),
):
    """Download everything in the queue, one item at a time."""
    cli_options = {"engine": engine} if engine is not None else None
    settings = _load_settings(cli_options)

    async def _run_async():
        if not _open_queue(settings).queue:
            console.print("[dim]The download queue is empty. Nothing to do.[/dim]")
            return None, 0.0

        start_time = time.monotonic()
        async with ProgressManager(console) as progress:
            controller = _open_queue(settings, progress)
            await asyncio.to_thread(controller.init, settings)
            log.info(
                f"[bold cyan]📼 Processing {len(controller.queue)} queued "
                "downloads...[/bold cyan]"
            )
            _label_items(progress, controller.queue)
            await _process_queue(controller)
        return progress.get_statistics(), time.monotonic() - start_time

    stats, duration = asyncio.run(_run_async())
    if stats:
        print_summary_panel(stats, duration)


@app.command()
def history(
    check: str | None = typer.Option(
        None, "--check", "-c", help="Report whether a video id was downloaded."
    ),
    purge: bool = typer.Option(False, "--purge", help="Forget all completed downloads."),
    force: bool = typer.Option(
        False, "--force", "-f", help="Bypass the confirmation prompt."
    ),
):
    """Inspect or clear the download history."""
    settings = _load_settings()
    controller = _open_queue(settings)

    if purge:
        if not force and not typer.confirm(
            "Are you sure you want to clear the download history?"
        ):
            console.print("[yellow]Operation cancelled.[/yellow]")
            raise typer.Abort()
        controller.purge_history()
        console.print("[green]✓ Download history cleared.[/green]")
        return

    if check is not None:
        if controller.has_been_downloaded(check):
            console.print(f"[green]✓ '{check}' has been downloaded.[/green]")
        else:
            console.print(f"[yellow]○ '{check}' has not been downloaded.[/yellow]")
            raise typer.Exit(code=1)
        return

    print_history_summary(controller.history, settings.history)


@app.command(name="clear-queue")
def clear_queue(
    force: bool = typer.Option(
        False, "--force", "-f", help="Bypass the confirmation prompt."
    ),
):
    """Remove every pending download from the queue."""
    if not force and not typer.confirm("Remove every pending download?"):
        console.print("[yellow]Operation cancelled.[/yellow]")
        raise typer.Abort()
    controller = _open_queue(_load_settings())
    count = len(controller.queue)
    controller.purge_queue()
    console.print(f"[green]✓ Cleared {count} pending downloads.[/green]")


@app.command()
def diagnose():
    """Diagnose common configuration and environment issues."""
    console.print("\n[bold cyan]Running diagnostics...[/bold cyan]\n")
    issues_found = False
    if CONFIG_FILE.is_file():
        console.print(f"[green]✓[/] Config file exists at: [dim]{CONFIG_FILE}[/dim]")
    else:
        console.print(
            "[red]✗ Config file not found.[/] Run [cyan]streamq-cli init[/cyan]."
        )
        raise typer.Exit(code=1)

    settings = _load_settings()
    controller = QueueController(CONFIG_DIR, settings=settings, paused=True)
    controller.init(settings)
    print_settings_table(settings, controller.is_engine_available())

    if settings.engine == EngineKind.FFMPEG and not controller.is_engine_available():
        console.print("[red]✗ The ffmpeg engine is selected but ffmpeg is missing.[/red]")
        issues_found = True

    directory = Path(settings.directory).expanduser()
    try:
        directory.mkdir(parents=True, exist_ok=True)
        if not os.access(directory, os.W_OK):
            raise PermissionError(f"'{directory}' is not writable")
        free_bytes = shutil.disk_usage(directory).free
        console.print(
            f"[green]✓[/] Download directory is writable "
            f"([dim]{free_bytes // (1024 ** 3)} GB free[/dim])."
        )
    except OSError as e:
        console.print(f"[red]✗ Download directory problem: {e}[/red]")
        issues_found = True

    console.print()
    if not issues_found:
        console.print(
            "[bold green]✓ All checks passed! Your setup looks good.[/bold green]\n"
        )
    else:
        console.print(
            "[bold red]✗ Some issues were found. "
            "Please review the messages above.[/bold red]\n"
        )
        raise typer.Exit(code=1)
