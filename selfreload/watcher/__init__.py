"""
selfreload Watcher Package.

Debounced watching of the program file and additional directories.
Requires Python 3.11+.
"""

from selfreload.watcher.debouncer import DEBOUNCE_DELAY_MS, DebounceTimer
from selfreload.watcher.event_loop import EventLoop
from selfreload.watcher.registry import ActionKind, WatchDir, WatchedPath, WatchRegistry
from selfreload.watcher.source import CLOSED, EventKind, FsEvent, NotificationSource, WatchdogSource

__all__ = [
    "DEBOUNCE_DELAY_MS",
    "DebounceTimer",
    "EventLoop",
    "ActionKind",
    "WatchDir",
    "WatchedPath",
    "WatchRegistry",
    "CLOSED",
    "EventKind",
    "FsEvent",
    "NotificationSource",
    "WatchdogSource",
]
