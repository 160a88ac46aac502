import asyncio
from pathlib import Path

from streamq_cli.exceptions import EngineError
from streamq_cli.media.engine import DownloadEngine
from streamq_cli.models.config import EngineKind
from streamq_cli.models.queue_item import QueueItem


class FakeEngine(DownloadEngine):
    """An engine that writes a few bytes, optionally waiting on a gate first."""

    def __init__(
        self,
        kind: EngineKind = EngineKind.INTERNAL,
        fail_urls: set[str] | None = None,
        gate: asyncio.Event | None = None,
    ):
        self.kind = kind
        self.fail_urls = fail_urls or set()
        self.gate = gate
        self.calls: list[tuple[str, Path]] = []
        self.closed = False

    async def transfer(self, remote_url, output_path):
        self.calls.append((remote_url, output_path))
        output_path.write_bytes(b"partial")
        yield 50
        if self.gate is not None:
            await self.gate.wait()
        if remote_url in self.fail_urls:
            raise EngineError("remote stream went away")
        output_path.write_bytes(b"complete")
        yield 100

    async def close(self):
        self.closed = True


def make_item(video_id, url=None, name="Bob", title=None, time=None) -> QueueItem:
    return QueueItem.model_validate(
        {
            "user": {"id": 7, "name": name},
            "video": {
                "id": video_id,
                "url": url or f"http://streams.example/{video_id}/index.m3u8",
                "title": title,
                "time": time,
            },
        }
    )


def names(events) -> list[tuple[str, object]]:
    return [(event.name, event.payload.get("id")) for event in events]


async def wait_for(predicate, attempts: int = 200) -> None:
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition was never met")
