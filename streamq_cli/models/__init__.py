"""
Data Models Layer.

This package contains Pydantic models that define the core data structures
used throughout the application, such as settings and queue items.
"""

from .config import DownloadSettings, EngineKind
from .queue_item import QueueItem, UserInfo, VideoInfo

__all__ = ["DownloadSettings", "EngineKind", "QueueItem", "UserInfo", "VideoInfo"]
