"""
The public face of the download queue: owns the queue, the history and the run
flags, persists every mutation, and starts drain cycles when appropriate.
"""

import asyncio
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from streamq_cli.media.engine import DownloadEngine
from streamq_cli.media.registry import default_engines
from streamq_cli.models.config import DownloadSettings, EngineKind
from streamq_cli.models.queue_item import Identifier, QueueItem
from streamq_cli.storage.queue_store import QueueStore

from .events import EventBus, EventType
from .processing_loop import ProcessingLoop
from .state import QueueState, RunState

log = logging.getLogger(__name__)


class QueueController:
    """
    Owns the download queue and runs it through a single sequential worker.

    All methods are meant to be called from one event loop. Drain cycles only
    start from inside a running loop; without one, `start()` must be called
    again later.

    Persistence is best-effort: mutations schedule background writes that are
    not awaited, so a crash can lose the most recent change. Call `close()` (or
    `force_save()` followed by `flush()`) on shutdown.
    """

    def __init__(
        self,
        data_dir: Path,
        settings: DownloadSettings | None = None,
        engines: Mapping[EngineKind, DownloadEngine] | None = None,
        paused: bool = False,
    ):
        self.settings = settings or DownloadSettings()
        self.events = EventBus()
        self.store = QueueStore(data_dir)
        self.engines = dict(engines) if engines is not None else default_engines()
        self._queue_state = QueueState()
        self._run_state = RunState(can_run=not paused)
        self._processing_loop = ProcessingLoop(
            self._queue_state,
            self._run_state,
            lambda: self.settings,
            self.engines,
            self.store,
            self.events,
        )
        self._drain_task: asyncio.Task | None = None

    # --- Lifecycle ---

    def init(self, settings: DownloadSettings | Mapping[str, Any]) -> None:
        """
        Applies settings and probes the transcoder once.

        The probe runs ffmpeg and blocks; inside an event loop call this through
        `asyncio.to_thread`.
        """
        if not isinstance(settings, DownloadSettings):
            settings = DownloadSettings.model_validate(settings)
        self.settings = settings

        transcoder = self.engines.get(EngineKind.FFMPEG)
        self._run_state.ffmpeg_available = bool(
            transcoder and transcoder.probe_available()
        )
        log.debug(f"ffmpeg available: {self._run_state.ffmpeg_available}")

    def load(self) -> None:
        """
        Reloads the persisted queue (and history, if enabled), announces every
        reloaded item with an `add` event, and starts processing if possible.
        """
        self._queue_state.items = self.store.load_queue()
        if self.settings.history:
            self._queue_state.replace_history(self.store.load_history())

        for item in self._queue_state.items:
            self.events.emit(EventType.ADD, id=item.video.id, value=item.video.url)

        if self._queue_state.items:
            log.info(f"Loaded {len(self._queue_state.items)} queued downloads.")
            self._trigger()

    def force_save(self) -> None:
        """Schedules a write of both the queue and the history."""
        self.store.save_queue(self._queue_state.items)
        if self.settings.history:
            self.store.save_history(self._queue_state.history)

    async def flush(self) -> None:
        """Waits for all scheduled writes to land on disk."""
        await self.store.flush()

    async def join(self) -> None:
        """Waits until the current drain cycle, if any, has ended."""
        while self._cycle_active():
            await self._drain_task

    async def close(self) -> None:
        """Waits for processing to stop, saves state and releases engine resources."""
        await self.join()
        self.force_save()
        await self.flush()
        for engine in self.engines.values():
            await engine.close()

    # --- Queue operations ---

    def add(self, item: QueueItem | Mapping[str, Any]) -> QueueItem:
        """
        Appends a download request to the queue.

        Duplicate or previously downloaded ids are accepted.

        Raises:
            InvalidQueueItemError: If a mapping does not describe a queue item.
        """
        item = QueueItem.from_data(item)
        self._queue_state.items.append(item)
        self.store.save_queue(self._queue_state.items)
        self.events.emit(EventType.ADD, id=item.video.id, value=item.video.url)
        self._trigger()
        return item

    def remove(self, video_id: Identifier) -> bool:
        """
        Removes the first pending item with this video id.

        The item currently being downloaded is no longer pending and cannot be
        removed.
        """
        if self._queue_state.remove_first(video_id) is None:
            return False
        self.store.save_queue(self._queue_state.items)
        self.events.emit(EventType.REMOVE, id=video_id)
        return True

    def start(self) -> None:
        """Starts processing unless already running or paused."""
        self._trigger()

    def pause(self) -> None:
        """Stops processing after the item currently being downloaded."""
        self._run_state.can_run = False
        self.events.emit(EventType.PAUSE)

    def resume(self) -> None:
        self._run_state.can_run = True
        self.events.emit(EventType.RESUME)
        self._trigger()

    def purge_queue(self) -> None:
        """Drops every pending item. An item in flight still completes."""
        self._queue_state.items.clear()
        self.store.save_queue(self._queue_state.items)
        self.events.emit(EventType.CLEAR_QUEUE)

    def purge_history(self) -> None:
        self._queue_state.history.clear()
        self.store.delete_history()

    # --- Queries ---

    def has_been_downloaded(self, video_id: Identifier) -> bool:
        return self._queue_state.in_history(video_id)

    def is_running(self) -> bool:
        return self._run_state.is_running

    def is_paused(self) -> bool:
        return not self._run_state.can_run

    def is_engine_available(self) -> bool:
        """Whether the ffmpeg engine was found by `init`."""
        return self._run_state.ffmpeg_available

    is_ffmpeg_available = is_engine_available

    @property
    def queue(self) -> tuple[QueueItem, ...]:
        """A snapshot of the pending items, in processing order."""
        return tuple(self._queue_state.items)

    @property
    def history(self) -> tuple[Identifier, ...]:
        return tuple(self._queue_state.history)

    # --- Internals ---

    def _cycle_active(self) -> bool:
        return self._drain_task is not None and not self._drain_task.done()

    def _trigger(self) -> None:
        if self._cycle_active() or not self._run_state.can_run:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            log.debug("No running event loop; processing starts on the next start().")
            return
        self._drain_task = loop.create_task(self._processing_loop.run())
