"""
Core watcher engine.

The `Watcher` owns the sequence state and runs every check cycle and download
event under one lock. `PeriodicTimer` drives the cycles on a cadence and the
notifier reports what happened.
"""

from .notifier import ConsoleNotifier
from .scheduler import PeriodicTimer
from .watcher import ALARM_NAME, Watcher

__all__ = ["ALARM_NAME", "ConsoleNotifier", "PeriodicTimer", "Watcher"]
