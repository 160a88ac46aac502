"""
Media Engines Layer.

This package contains the download engines that turn a remote stream into a
local file: the internal HLS/HTTP streaming engine and the ffmpeg engine.
"""

from .engine import (
    DownloadEngine,
    EngineEvent,
    EngineFailed,
    EngineFinished,
    EngineProgress,
    EngineStarted,
)
from .registry import create_engine, default_engines
from .streaming import StreamingEngine
from .transcoder import TranscodingEngine

__all__ = [
    "DownloadEngine",
    "EngineEvent",
    "EngineFailed",
    "EngineFinished",
    "EngineProgress",
    "EngineStarted",
    "StreamingEngine",
    "TranscodingEngine",
    "create_engine",
    "default_engines",
]
