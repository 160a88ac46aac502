"""
Persists the download queue and the download history as JSON lists in the data
directory.

Reads are tolerant: a missing or unreadable file loads as an empty list.
Writes are best-effort and fire-and-forget: inside a running event loop they
are scheduled as background tasks and failures are only logged. There is no
durability guarantee; a crash before a scheduled write completes loses it.
"""

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Any, Iterable

import aiofiles
from pydantic import ValidationError

from streamq_cli.models.queue_item import Identifier, QueueItem

log = logging.getLogger(__name__)

QUEUE_FILENAME = "download_queue.json"
HISTORY_FILENAME = "download_history.json"


class QueueStore:
    """Loads and saves the queue and history files."""

    def __init__(self, data_dir: Path):
        self.data_dir = Path(data_dir)
        self.queue_path = self.data_dir / QUEUE_FILENAME
        self.history_path = self.data_dir / HISTORY_FILENAME
        self._file_locks: dict[Path, asyncio.Lock] = {}
        self._pending_writes: set[asyncio.Task] = set()

    def _read_list(self, path: Path) -> list[Any]:
        """Reads a JSON list, returning an empty list on any read or parse error."""
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return []
        except (json.JSONDecodeError, UnicodeDecodeError, OSError) as e:
            log.debug(f"Could not read '{path.name}', starting empty: {e}")
            return []

        if not isinstance(data, list):
            log.debug(f"'{path.name}' does not contain a list, starting empty.")
            return []
        return data

    def load_queue(self) -> list[QueueItem]:
        """Loads the persisted queue in its stored order."""
        items = []
        for record in self._read_list(self.queue_path):
            try:
                items.append(QueueItem.model_validate(record))
            except ValidationError as e:
                log.warning(f"[yellow]Skipping unreadable queue entry: {e}[/yellow]")
        return items

    def load_history(self) -> list[Identifier]:
        """Loads the ids of previously completed downloads."""
        return [
            entry
            for entry in self._read_list(self.history_path)
            if isinstance(entry, (int, str)) and not isinstance(entry, bool)
        ]

    def save_queue(self, items: Iterable[QueueItem]) -> None:
        """Schedules a write of the queue. The snapshot is taken immediately."""
        payload = json.dumps([item.to_record() for item in items])
        self._schedule(self.queue_path, payload)

    def save_history(self, video_ids: Iterable[Identifier]) -> None:
        """Schedules a write of the history. The snapshot is taken immediately."""
        payload = json.dumps(list(video_ids))
        self._schedule(self.history_path, payload)

    def delete_history(self) -> None:
        """Schedules removal of the history file, after any pending history writes."""
        self._schedule(self.history_path, None)

    async def flush(self) -> None:
        """Waits until every scheduled write has completed."""
        while self._pending_writes:
            await asyncio.gather(*list(self._pending_writes), return_exceptions=True)

    @property
    def has_pending_writes(self) -> bool:
        return bool(self._pending_writes)

    def _schedule(self, path: Path, payload: str | None) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._apply_sync(path, payload)
            return

        task = loop.create_task(self._apply_async(path, payload))
        self._pending_writes.add(task)
        task.add_done_callback(self._pending_writes.discard)

    def _apply_sync(self, path: Path, payload: str | None) -> None:
        try:
            if payload is None:
                path.unlink(missing_ok=True)
                return
            path.parent.mkdir(parents=True, exist_ok=True)
            temp_path = path.with_suffix(".json.tmp")
            with open(temp_path, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(temp_path, path)
        except OSError as e:
            log.warning(f"[yellow]Could not write '{path.name}':[/] {e}")

    async def _apply_async(self, path: Path, payload: str | None) -> None:
        # Writes to the same file are applied in the order they were scheduled
        lock = self._file_locks.setdefault(path, asyncio.Lock())
        async with lock:
            try:
                if payload is None:
                    await asyncio.to_thread(path.unlink, missing_ok=True)
                    return
                await asyncio.to_thread(path.parent.mkdir, parents=True, exist_ok=True)
                temp_path = path.with_suffix(".json.tmp")
                async with aiofiles.open(temp_path, "w", encoding="utf-8") as f:
                    await f.write(payload)
                await asyncio.to_thread(os.replace, temp_path, path)
            except OSError as e:
                log.warning(f"[yellow]Could not write '{path.name}':[/] {e}")
