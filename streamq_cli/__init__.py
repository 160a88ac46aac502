"""
streamq-cli: a durable, sequential download queue for streaming media.
"""

__version__ = "1.0.0"
