"""
The ffmpeg engine: remuxes a remote stream into an MP4 container with an
external ffmpeg process, reporting the progress ffmpeg writes to stdout.
"""

import asyncio
import logging
import re
import shutil
import subprocess
from collections import deque
from pathlib import Path
from typing import AsyncIterator

from streamq_cli.exceptions import TranscoderError
from streamq_cli.models.config import EngineKind

from .engine import DownloadEngine

log = logging.getLogger(__name__)

DURATION_PATTERN = re.compile(r"Duration:\s*(\d+):(\d{2}):(\d{2}(?:\.\d+)?)")

# Stream copy, ADTS to ASC for AAC audio, variable frame rate timestamps
OUTPUT_OPTIONS = ["-c", "copy", "-bsf:a", "aac_adtstoasc", "-fps_mode", "vfr"]


def parse_duration(line: str) -> float | None:
    """Extracts the input duration in seconds from an ffmpeg stderr line."""
    match = DURATION_PATTERN.search(line)
    if not match:
        return None
    hours, minutes, seconds = match.groups()
    return int(hours) * 3600 + int(minutes) * 60 + float(seconds)


class _ProcessOutput:
    """What has been learned from ffmpeg's stderr so far."""

    def __init__(self) -> None:
        self.duration: float | None = None
        self.tail: deque[str] = deque(maxlen=10)


class TranscodingEngine(DownloadEngine):
    """Runs ffmpeg to copy a remote stream into a local MP4 file."""

    kind = EngineKind.FFMPEG

    def __init__(self, ffmpeg_path: str = "ffmpeg", probe_timeout: float = 15.0):
        self.ffmpeg_path = ffmpeg_path
        self.probe_timeout = probe_timeout

    def output_path(self, local_path: Path) -> Path:
        return Path(local_path).with_suffix(".mp4")

    def probe_available(self) -> bool:
        """Checks that ffmpeg can be found and can list its codecs."""
        executable = shutil.which(self.ffmpeg_path)
        if not executable:
            log.debug(f"ffmpeg executable '{self.ffmpeg_path}' not found on PATH.")
            return False
        try:
            result = subprocess.run(  # noqa: S603
                [executable, "-hide_banner", "-codecs"],
                capture_output=True,
                timeout=self.probe_timeout,
                check=False,
            )
        except (OSError, subprocess.SubprocessError) as e:
            log.debug(f"ffmpeg probe failed: {e}")
            return False
        return result.returncode == 0

    def build_command(self, remote_url: str, output_path: Path) -> list[str]:
        return [
            self.ffmpeg_path,
            "-hide_banner",
            "-nostats",
            "-y",
            "-i",
            remote_url,
            *OUTPUT_OPTIONS,
            "-progress",
            "pipe:1",
            str(output_path),
        ]

    async def transfer(self, remote_url: str, output_path: Path) -> AsyncIterator[float]:
        command = self.build_command(remote_url, output_path)
        log.debug(f"Running: {' '.join(command)}")
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise TranscoderError(f"Could not start ffmpeg: {e}") from e

        output = _ProcessOutput()
        stderr_task = asyncio.create_task(self._watch_stderr(process.stderr, output))
        try:
            async for raw_line in process.stdout:
                percent = self._parse_progress(raw_line, output.duration)
                if percent is not None:
                    yield percent
            await stderr_task
            return_code = await process.wait()
        finally:
            if process.returncode is None:
                process.kill()
                await process.wait()
            if not stderr_task.done():
                stderr_task.cancel()

        if return_code != 0:
            details = " | ".join(output.tail) or "no output"
            raise TranscoderError(f"ffmpeg exited with code {return_code}: {details}")

    @staticmethod
    async def _watch_stderr(stream: asyncio.StreamReader, output: _ProcessOutput) -> None:
        async for raw_line in stream:
            line = raw_line.decode("utf-8", errors="replace").strip()
            if not line:
                continue
            if output.duration is None:
                output.duration = parse_duration(line)
            output.tail.append(line)

    @staticmethod
    def _parse_progress(raw_line: bytes, duration: float | None) -> float | None:
        """Turns an `out_time_us=` progress line into a percentage of the input."""
        key, _, value = raw_line.decode("utf-8", errors="replace").strip().partition("=")
        if key != "out_time_us" or not duration:
            return None
        try:
            seconds = int(value) / 1_000_000
        except ValueError:
            return None
        return round(min(max(seconds / duration * 100, 0.0), 100.0), 2)
