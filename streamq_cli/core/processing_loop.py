"""
The sequential worker that drains the download queue one item at a time.
"""

import logging
from collections.abc import Callable, Mapping

from rich.markup import escape

from streamq_cli.media.engine import (
    DownloadEngine,
    EngineFailed,
    EngineFinished,
    EngineProgress,
    EngineStarted,
)
from streamq_cli.models.config import DownloadSettings, EngineKind
from streamq_cli.models.queue_item import QueueItem
from streamq_cli.storage.queue_store import QueueStore
from streamq_cli.utils.path import PathResolver

from .events import EventBus, EventType
from .state import QueueState, RunState

log = logging.getLogger(__name__)


class ProcessingLoop:
    """
    Runs drain cycles over the queue owned by a `QueueController`.

    A cycle pops items while the queue is non-empty and pausing has not been
    requested, so a pause takes effect after the item in flight. Each item gets
    exactly one attempt; failures are reported as `fail` events and the cycle
    moves on.
    """

    def __init__(
        self,
        queue_state: QueueState,
        run_state: RunState,
        settings: Callable[[], DownloadSettings],
        engines: Mapping[EngineKind, DownloadEngine],
        store: QueueStore,
        events: EventBus,
    ):
        self.queue_state = queue_state
        self.run_state = run_state
        self._settings = settings
        self.engines = engines
        self.store = store
        self.events = events

    async def run(self) -> None:
        """Executes one drain cycle."""
        settings = self._settings()
        if settings.engine == EngineKind.FFMPEG and not self.run_state.ffmpeg_available:
            log.error(
                "[red]✗ ffmpeg is not available. The queue has been paused.[/red]"
            )
            self.events.emit(EventType.FFMPEG_DANGER)
            self.run_state.can_run = False
            self.events.emit(EventType.PAUSE)
            return

        try:
            while self.queue_state.items and self.run_state.can_run:
                self.run_state.is_running = True
                item = self.queue_state.pop_next()
                await self.process_item(item)
                self._persist()
        finally:
            self.run_state.is_running = False

    async def process_item(self, item: QueueItem) -> bool:
        """
        Downloads one item with the configured engine.

        Returns:
            True if the engine reported success, False otherwise.
        """
        settings = self._settings()
        video = item.video
        display_name = escape(video.title or str(video.id))

        try:
            local_path = PathResolver.from_settings(settings).resolve(item)
        except OSError as e:
            return self._fail_unstarted(item, f"cannot prepare path: {e}")

        engine = self.engines.get(settings.engine)
        if engine is None:
            return self._fail_unstarted(
                item, f"no '{settings.engine.value}' engine is configured"
            )

        started = finished = False
        reason = "engine stopped without a result"
        try:
            async for event in engine.start(video.url, local_path):
                if isinstance(event, EngineStarted):
                    started = True
                    log.info(
                        f"[bold cyan]▶ Downloading:[/] {display_name} "
                        f"[dim]→ {escape(str(event.output_path))}[/dim]"
                    )
                    self.events.emit(EventType.START, id=video.id, url=video.url)
                elif isinstance(event, EngineProgress):
                    self.events.emit(
                        EventType.PROGRESS, id=video.id, url=video.url, value=event.percent
                    )
                elif isinstance(event, EngineFinished):
                    finished = True
                elif isinstance(event, EngineFailed):
                    reason = event.reason
        except Exception as e:
            reason = str(e) or type(e).__name__
            log.debug("Engine raised instead of reporting a failure.", exc_info=True)

        if finished:
            if self._settings().history:
                self.queue_state.record_download(video.id)
            log.info(f"  [green]✓ Finished:[/] {display_name}")
            self.events.emit(EventType.FINISH, id=video.id)
        elif not started:
            return self._fail_unstarted(item, reason)
        else:
            log.error(f"  [red]✗ Failed:[/] {display_name} ({escape(reason)})")
            self.events.emit(EventType.FAIL, id=video.id)
        return finished

    def _fail_unstarted(self, item: QueueItem, reason: str) -> bool:
        """Reports an item that failed before its engine could begin."""
        video = item.video
        self.events.emit(EventType.START, id=video.id, url=video.url)
        log.error(
            f"  [red]✗ Failed:[/] {escape(video.title or str(video.id))} "
            f"({escape(reason)})"
        )
        self.events.emit(EventType.FAIL, id=video.id)
        return False

    def _persist(self) -> None:
        self.store.save_queue(self.queue_state.items)
        if self._settings().history:
            self.store.save_history(self.queue_state.history)
