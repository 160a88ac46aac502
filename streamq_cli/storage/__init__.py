"""
Storage Layer.

This package handles all data persistence: the configuration file and the
queue and history files.
"""

from .config_manager import ConfigManager
from .queue_store import QueueStore

__all__ = ["ConfigManager", "QueueStore"]
