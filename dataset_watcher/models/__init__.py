"""
Data Models Layer.

This package contains the Pydantic models and small value types that define the
core data structures used throughout the application, such as configuration and
the persisted watcher state.
"""

from .config import WatcherConfig
from .state import DownloadEvent, DownloadState, ProbeResult, SequenceState

__all__ = [
    "DownloadEvent",
    "DownloadState",
    "ProbeResult",
    "SequenceState",
    "WatcherConfig",
]
