"""
The internal streaming engine: downloads HLS playlists segment by segment, or
plain media files in chunks, over a pooled aiohttp session.
"""

import asyncio
import logging
import re
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import AsyncIterator
from urllib.parse import urljoin

import aiofiles
import aiohttp

from streamq_cli.exceptions import PlaylistError
from streamq_cli.models.config import EngineKind

from .engine import DownloadEngine

log = logging.getLogger(__name__)

PLAYLIST_CONTENT_TYPES = ("mpegurl", "x-mpegurl", "vnd.apple.mpegurl")
BANDWIDTH_PATTERN = re.compile(r"[:,]BANDWIDTH=(\d+)")
KEY_METHOD_PATTERN = re.compile(r"METHOD=([A-Z0-9-]+)")


@dataclass
class Playlist:
    """The parts of an HLS playlist needed to download it."""

    url: str
    segments: list[str] = field(default_factory=list)
    variants: list[tuple[int, str]] = field(default_factory=list)
    target_duration: float = 0.0
    ended: bool = False

    @property
    def is_master(self) -> bool:
        return bool(self.variants)

    def best_variant(self) -> str:
        """Returns the URL of the highest-bandwidth variant stream."""
        return max(self.variants, key=lambda variant: variant[0])[1]


def parse_playlist(text: str, base_url: str) -> Playlist:
    """
    Parses an M3U8 playlist. Relative URIs are resolved against `base_url`.

    Raises:
        PlaylistError: If the text is not an M3U8 playlist or uses encryption.
    """
    lines = [line.strip() for line in text.splitlines() if line.strip()]
    if not lines or not lines[0].startswith("#EXTM3U"):
        raise PlaylistError(f"Not an M3U8 playlist: {base_url}")

    playlist = Playlist(url=base_url)
    pending_bandwidth: int | None = None

    for line in lines[1:]:
        if line.startswith("#EXT-X-STREAM-INF"):
            match = BANDWIDTH_PATTERN.search(line)
            pending_bandwidth = int(match.group(1)) if match else 0
        elif line.startswith("#EXT-X-TARGETDURATION:"):
            try:
                playlist.target_duration = float(line.split(":", 1)[1])
            except ValueError:
                log.debug(f"Ignoring malformed target duration: {line}")
        elif line.startswith("#EXT-X-ENDLIST"):
            playlist.ended = True
        elif line.startswith("#EXT-X-KEY"):
            match = KEY_METHOD_PATTERN.search(line)
            if match and match.group(1) != "NONE":
                raise PlaylistError(
                    f"Encrypted playlists ({match.group(1)}) are not supported."
                )
        elif line.startswith("#"):
            continue
        elif pending_bandwidth is not None:
            playlist.variants.append((pending_bandwidth, urljoin(base_url, line)))
            pending_bandwidth = None
        else:
            playlist.segments.append(urljoin(base_url, line))

    return playlist


def _is_playlist_response(response: aiohttp.ClientResponse) -> bool:
    content_type = response.headers.get("Content-Type", "").lower()
    if any(kind in content_type for kind in PLAYLIST_CONTENT_TYPES):
        return True
    return response.url.path.lower().endswith(".m3u8")


class StreamingEngine(DownloadEngine):
    """Downloads a remote stream into a single local file."""

    kind = EngineKind.INTERNAL

    CHUNK_SIZE = 262144  # 256 KB
    MAX_IDLE_REFRESHES = 3
    DEFAULT_REFRESH_SECONDS = 5.0

    def __init__(self, session: aiohttp.ClientSession | None = None):
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Ensures an active aiohttp session is available."""
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(
                limit=4,
                ttl_dns_cache=300,
                enable_cleanup_closed=True,
            )
            # Socket timeouts only; a transfer has no overall limit
            timeout = aiohttp.ClientTimeout(total=None, sock_connect=15, sock_read=90)
            self._session = aiohttp.ClientSession(connector=connector, timeout=timeout)
            self._owns_session = True
            log.debug("Created streaming engine HTTP session.")
        return self._session

    async def close(self) -> None:
        """Closes the HTTP session if this engine created it."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()
            log.debug("Streaming engine HTTP session closed.")
        if self._owns_session:
            self._session = None

    async def transfer(self, remote_url: str, output_path: Path) -> AsyncIterator[float]:
        session = await self._get_session()
        async with session.get(remote_url, allow_redirects=True) as response:
            response.raise_for_status()
            if _is_playlist_response(response):
                text = await response.text(errors="replace")
                playlist = parse_playlist(text, str(response.url))
            else:
                async for percent in self._copy_body(response, output_path):
                    yield percent
                return

        async for percent in self._download_playlist(session, playlist, output_path):
            yield percent

    async def _copy_body(
        self, response: aiohttp.ClientResponse, output_path: Path
    ) -> AsyncIterator[float]:
        """Streams a plain media file to disk, reporting whole-percent steps."""
        total_size = int(response.headers.get("Content-Length", 0) or 0)
        bytes_downloaded = 0
        last_percent = -1

        async with aiofiles.open(output_path, "wb") as f:
            async for chunk in response.content.iter_chunked(self.CHUNK_SIZE):
                await f.write(chunk)
                bytes_downloaded += len(chunk)
                if total_size > 0:
                    percent = round(bytes_downloaded / total_size * 100)
                    if percent != last_percent:
                        last_percent = percent
                        yield percent

    async def _fetch_playlist(
        self, session: aiohttp.ClientSession, url: str
    ) -> Playlist:
        async with session.get(url, allow_redirects=True) as response:
            response.raise_for_status()
            text = await response.text(errors="replace")
            return parse_playlist(text, str(response.url))

    async def _download_playlist(
        self, session: aiohttp.ClientSession, playlist: Playlist, output_path: Path
    ) -> AsyncIterator[float]:
        if playlist.is_master:
            variant_url = playlist.best_variant()
            log.debug(f"Selected variant stream '{variant_url}'.")
            playlist = await self._fetch_playlist(session, variant_url)
            if playlist.is_master:
                raise PlaylistError("Nested master playlists are not supported.")

        seen: set[str] = set()
        pending: deque[str] = deque()
        completed = 0
        idle_refreshes = 0

        async with aiofiles.open(output_path, "wb") as f:
            while True:
                new_segments = [s for s in playlist.segments if s not in seen]
                seen.update(new_segments)
                pending.extend(new_segments)

                while pending:
                    await self._copy_segment(session, pending.popleft(), f)
                    completed += 1
                    yield round(completed / len(seen) * 100)

                if playlist.ended:
                    break

                # Live playlist: poll until it ends or stops growing
                idle_refreshes = 0 if new_segments else idle_refreshes + 1
                if idle_refreshes > self.MAX_IDLE_REFRESHES:
                    log.debug("Live playlist stopped growing, finishing download.")
                    break
                await asyncio.sleep(
                    playlist.target_duration or self.DEFAULT_REFRESH_SECONDS
                )
                playlist = await self._fetch_playlist(session, playlist.url)

        if not seen:
            raise PlaylistError("Playlist does not contain any media segments.")

    async def _copy_segment(
        self, session: aiohttp.ClientSession, segment_url: str, f
    ) -> None:
        async with session.get(segment_url, allow_redirects=True) as response:
            response.raise_for_status()
            async for chunk in response.content.iter_chunked(self.CHUNK_SIZE):
                await f.write(chunk)
