"""
Storage Layer.

This package handles all data persistence: the INI configuration file and the
JSON file that holds the watcher's sequence state across restarts.
"""

from .config_manager import ConfigManager
from .state_store import StateStore

__all__ = ["ConfigManager", "StateStore"]
