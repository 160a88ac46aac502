"""
Maps engine kinds to engine instances.
"""

from streamq_cli.models.config import EngineKind

from .engine import DownloadEngine
from .streaming import StreamingEngine
from .transcoder import TranscodingEngine

ENGINE_CLASSES: dict[EngineKind, type[DownloadEngine]] = {
    EngineKind.INTERNAL: StreamingEngine,
    EngineKind.FFMPEG: TranscodingEngine,
}


def create_engine(kind: EngineKind | str) -> DownloadEngine:
    """Creates an engine of the given kind with its default options."""
    return ENGINE_CLASSES[EngineKind(kind)]()


def default_engines() -> dict[EngineKind, DownloadEngine]:
    """Creates one engine of every kind."""
    return {kind: create_engine(kind) for kind in EngineKind}
