"""
The mutable state shared by the queue controller and its processing loop.
"""

from dataclasses import dataclass, field

from streamq_cli.models.queue_item import Identifier, QueueItem, same_id


@dataclass
class RunState:
    """Pause flag, activity flag and transcoder availability."""

    can_run: bool = True
    is_running: bool = False
    ffmpeg_available: bool = False


@dataclass
class QueueState:
    """Pending items in processing order, and the ids already downloaded."""

    items: list[QueueItem] = field(default_factory=list)
    history: list[Identifier] = field(default_factory=list)

    def pop_next(self) -> QueueItem | None:
        """Removes and returns the head of the queue."""
        return self.items.pop(0) if self.items else None

    def remove_first(self, video_id: Identifier) -> QueueItem | None:
        """Removes the first pending item with the given video id."""
        for index, item in enumerate(self.items):
            if same_id(item.video.id, video_id):
                return self.items.pop(index)
        return None

    def in_history(self, video_id: Identifier) -> bool:
        return any(same_id(entry, video_id) for entry in self.history)

    def record_download(self, video_id: Identifier) -> None:
        if not self.in_history(video_id):
            self.history.append(video_id)

    def replace_history(self, video_ids: list[Identifier]) -> None:
        self.history = []
        for video_id in video_ids:
            self.record_download(video_id)
