"""
selfreload Event Loop.

Classifies notification items and arms the matching debounce timers.
Requires Python 3.11+.
"""

import os
from collections.abc import Callable

from selfreload.errors import SubscriptionError
from selfreload.utils.logger import LoggerMixin
from selfreload.watcher.registry import WatchRegistry
from selfreload.watcher.source import EventKind, FsEvent, NotificationSource, StreamClosed

LogFunc = Callable[..., object]

# Only these kinds can mean "new program content"; a recompile usually
# renames the old file away and creates a new one.
TRIGGER_KINDS = frozenset({EventKind.WRITE, EventKind.CREATE})


def relpath(path: str) -> str:
    """Show a path relative to the working directory when it is inside it."""
    try:
        cwd = os.getcwd()
    except OSError:
        return path

    if path == cwd:
        return "."
    if path.startswith(cwd.rstrip(os.sep) + os.sep):
        return "./" + path[len(cwd):].lstrip(os.sep)
    return path


class EventLoop(LoggerMixin):
    """
    Consumes a notification source and drives the registry's timers.

    The loop owns the source. It is never cancelled: ``run`` only returns
    once the source reports that it was closed.
    """

    def __init__(self, source: NotificationSource, registry: WatchRegistry, log: LogFunc) -> None:
        """
        Initialize the event loop.

        Args:
            source: Notification source to read from
            registry: Fully built registry of watched paths
            log: printf-style sink for the startup line and stream errors
        """
        self._source = source
        self._registry = registry
        self._sink = log
        self._events_seen = 0
        self._triggers = 0

    @property
    def source(self) -> NotificationSource:
        """The notification source owned by this loop."""
        return self._source

    @property
    def stats(self) -> dict[str, int]:
        """Counters for events read and timers armed."""
        return {"events": self._events_seen, "triggers": self._triggers}

    def subscribe(self) -> None:
        """
        Register every watched directory with the source.

        Raises:
            SubscriptionError: If any directory cannot be watched; the source
                is closed before raising
        """
        dirs = self._registry.directories
        try:
            for d in dirs:
                self._source.add(d)
        except Exception as e:
            self._source.close()
            if isinstance(e, SubscriptionError):
                raise
            raise SubscriptionError(f"cannot add {d!r} to watcher: {e}") from e

        extra = ""
        if self._registry.additional:
            extra = " (additional dirs: %s)" % ", ".join(relpath(a.path) for a in self._registry.additional)
        self._sink('restarting "%s" when it changes%s', relpath(self._registry.program.target or ""), extra)

    def run(self) -> None:
        """Process items until the stream is closed."""
        self.log.debug("event_loop_started", directories=self._registry.directories)
        while True:
            item = self._source.get()

            if isinstance(item, StreamClosed):
                break
            if isinstance(item, Exception):
                self._sink("reload error: %s", item)
                continue
            self.handle(item)

        self.log.debug("event_loop_stopped", **self.stats)

    def handle(self, event: FsEvent) -> bool:
        """
        Arm the timer for a qualifying event.

        Args:
            event: Event read from the source

        Returns:
            True if a timer was (re)armed
        """
        self._events_seen += 1
        if event.kind not in TRIGGER_KINDS:
            return False

        entry = self._registry.lookup(event.path)
        if entry is None:
            return False

        self._registry.timer_for(entry).reset()
        self._triggers += 1
        return True
