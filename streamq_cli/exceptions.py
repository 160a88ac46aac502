"""
Defines custom exceptions for the application to allow for more specific error handling.
"""


class StreamqCliError(Exception):
    """Base exception for all application-specific errors."""


class ConfigurationError(StreamqCliError):
    """Raised for issues related to configuration loading or validation."""


class InvalidQueueItemError(StreamqCliError):
    """Raised when a download request does not describe a valid queue item."""


class EngineError(StreamqCliError):
    """Raised by a download engine when a transfer cannot be completed."""


class PlaylistError(EngineError):
    """Raised when an HLS playlist is malformed or contains no media segments."""


class TranscoderError(EngineError):
    """Raised when the ffmpeg process cannot be started or exits with an error."""
