"""
The contract shared by all download engines.

An engine turns one remote URL into one local file and reports what happens as
a stream of events: exactly one `EngineStarted` first, any number of
`EngineProgress`, then exactly one terminal `EngineFinished` or `EngineFailed`.
`DownloadEngine.start` never raises for transfer errors; they are reported as
`EngineFailed` and the partially written output is removed.
"""

import asyncio
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, Union

from streamq_cli.models.config import EngineKind

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class EngineStarted:
    output_path: Path


@dataclass(frozen=True)
class EngineProgress:
    percent: float


@dataclass(frozen=True)
class EngineFinished:
    output_path: Path


@dataclass(frozen=True)
class EngineFailed:
    reason: str


EngineEvent = Union[EngineStarted, EngineProgress, EngineFinished, EngineFailed]
TERMINAL_EVENTS = (EngineFinished, EngineFailed)


class DownloadEngine(ABC):
    """Base class for the streaming and transcoding engines."""

    kind: EngineKind

    def output_path(self, local_path: Path) -> Path:
        """The file this engine actually writes for a resolved local path."""
        return Path(local_path)

    def probe_available(self) -> bool:
        """Reports whether the engine can run on this machine."""
        return True

    async def close(self) -> None:
        """Releases resources held between transfers."""

    @abstractmethod
    def transfer(self, remote_url: str, output_path: Path) -> AsyncIterator[float]:
        """
        Performs the transfer, yielding progress percentages as it goes.

        Raises on any failure; `start` turns the exception into `EngineFailed`.
        """

    async def start(
        self, remote_url: str, local_path: Path
    ) -> AsyncIterator[EngineEvent]:
        """Runs one transfer and yields its lifecycle events."""
        output_path = self.output_path(local_path)
        yield EngineStarted(output_path)

        try:
            async for percent in self.transfer(remote_url, output_path):
                yield EngineProgress(percent)
        except asyncio.CancelledError:
            await self._discard_partial(output_path)
            raise
        except Exception as e:
            log.debug(
                f"{self.kind.value} engine failed for '{remote_url}': {e}",
                exc_info=log.getEffectiveLevel() == logging.DEBUG,
            )
            await self._discard_partial(output_path)
            yield EngineFailed(str(e) or type(e).__name__)
            return

        yield EngineFinished(output_path)

    @staticmethod
    async def _discard_partial(output_path: Path) -> None:
        try:
            await asyncio.to_thread(os.remove, output_path)
            log.debug(f"Removed partial file '{output_path.name}'.")
        except FileNotFoundError:
            pass
        except OSError as e:
            log.warning(f"[yellow]Could not remove partial file '{output_path}':[/] {e}")
