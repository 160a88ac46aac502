"""
Utilities for computing local destination paths from queue items and templates.
"""

import logging
import posixpath
import re
from pathlib import Path
from urllib.parse import unquote, urlsplit

from pathvalidate import sanitize_filename

from streamq_cli.models.config import DownloadSettings
from streamq_cli.models.queue_item import QueueItem

log = logging.getLogger(__name__)

# Characters that are illegal in file names on at least one supported platform
ILLEGAL_CHARS_PATTERN = re.compile(r'[:*?"<>|]')

# Generic manifest names shared by sibling streams on most CDNs
GENERIC_PLAYLIST_NAMES = ("playlist.ts", "playlist_eof.ts")

OUTPUT_EXTENSION = ".ts"


def create_dir(directory_path: Path) -> None:
    """Creates a directory if it does not already exist."""
    directory_path.mkdir(parents=True, exist_ok=True)


def url_path(url: str) -> str:
    """Returns the decoded path component of a URL, without query or fragment."""
    return unquote(urlsplit(url).path)


def remote_basename(url: str) -> str:
    """Returns the last path segment of a URL."""
    return posixpath.basename(url_path(url))


def _render_template(template: str, item: QueueItem) -> str:
    user, video = item.user, item.video
    substitutions = {
        "%%username%%": user.name,
        "%%userid%%": user.id,
        "%%videoid%%": video.id,
        "%%videotitle%%": video.title or "untitled",
        "%%videotime%%": video.time,
    }
    rendered = template
    for placeholder, value in substitutions.items():
        value = "" if value is None else str(value)
        rendered = rendered.replace(
            placeholder, sanitize_filename(value, replacement_text="_")
        )
    return rendered


def _is_within(path: Path, directory: Path) -> bool:
    return path.resolve().is_relative_to(directory.resolve())


def default_filename(item: QueueItem) -> str:
    """The simple-mode file name: the remote basename with `.m3u8` turned into `.ts`."""
    name = sanitize_filename(remote_basename(item.video.url))
    if not name:
        return sanitize_filename(
            f"{item.video.id}{OUTPUT_EXTENSION}", replacement_text="_"
        )
    if name.endswith(".m3u8"):
        name = name[: -len(".m3u8")] + OUTPUT_EXTENSION
    return name


def resolve_local_path(
    item: QueueItem, template: str, mode: int, base_directory: Path
) -> Path:
    """
    Computes the local destination path for a queue item.

    Mode 0 uses the remote file name. Any other mode renders the template with
    each value cleaned to a single file name component, replaces characters
    that are illegal in file names with '_' and appends '.ts'; an empty
    rendering falls back to the mode 0 name. A path that would leave
    `base_directory` also falls back to the mode 0 name. Generic playlist
    names are then replaced with the name of the stream's parent directory.

    The destination's parent directory is created if needed.
    """
    base_directory = Path(base_directory)
    default_path = base_directory / default_filename(item)

    if mode == 0:
        full_path = default_path
    else:
        rendered = _render_template(template or "", item).lstrip("/\\")
        if not rendered:
            full_path = default_path
        else:
            full_path = base_directory / (
                ILLEGAL_CHARS_PATTERN.sub("_", rendered) + OUTPUT_EXTENSION
            )

    if full_path.name in GENERIC_PLAYLIST_NAMES:
        parent_name = sanitize_filename(
            posixpath.basename(posixpath.dirname(url_path(item.video.url)))
        )
        if parent_name:
            full_path = full_path.with_name(parent_name + OUTPUT_EXTENSION)

    if not _is_within(full_path, base_directory):
        log.warning(
            f"[yellow]Path '{full_path}' leaves the download directory, "
            "using the remote file name instead.[/yellow]"
        )
        full_path = default_path

    create_dir(full_path.parent)
    return full_path


class PathResolver:
    """
    Resolves destination paths for queue items from a fixed template, mode and
    download directory.
    """

    def __init__(self, template: str, mode: int, base_directory: Path) -> None:
        self.template = template
        self.mode = mode
        self.base_directory = Path(base_directory)

    @classmethod
    def from_settings(cls, settings: DownloadSettings) -> "PathResolver":
        return cls(settings.filetemplate, settings.filemode, settings.directory)

    def resolve(self, item: QueueItem) -> Path:
        return resolve_local_path(item, self.template, self.mode, self.base_directory)
