"""
selfreload Notification Source.

Turns watchdog observer callbacks into a blocking stream of items.
Requires Python 3.11+.
"""

import os
import queue
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from watchdog.events import (
    EVENT_TYPE_CLOSED,
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer
from watchdog.observers.polling import PollingObserver

from selfreload.errors import StreamError, SubscriptionError
from selfreload.utils.logger import LoggerMixin


class EventKind(str, Enum):
    """Kinds of change reported for a path."""

    WRITE = "write"
    CREATE = "create"
    REMOVE = "remove"
    RENAME = "rename"
    CLOSE = "close"
    OTHER = "other"


@dataclass(frozen=True)
class FsEvent:
    """A single change to a path inside a watched directory."""

    path: str
    kind: EventKind
    is_directory: bool = False


class StreamClosed:
    """Marker item returned once the source has been closed."""

    def __repr__(self) -> str:
        return "CLOSED"


CLOSED = StreamClosed()

StreamItem = FsEvent | Exception | StreamClosed


class NotificationSource(Protocol):
    """What the event loop needs from a filesystem notification backend."""

    def add(self, path: str) -> None:
        """Watch a directory, non-recursively."""
        ...

    def get(self) -> StreamItem:
        """Block until the next event, error or CLOSED marker."""
        ...

    def close(self) -> None:
        """Release every registration; later calls are no-ops."""
        ...


_KINDS = {
    EVENT_TYPE_MODIFIED: EventKind.WRITE,
    EVENT_TYPE_CREATED: EventKind.CREATE,
    EVENT_TYPE_DELETED: EventKind.REMOVE,
    EVENT_TYPE_CLOSED: EventKind.CLOSE,
}


class WatchdogSource(FileSystemEventHandler, LoggerMixin):
    """
    Notification source backed by a watchdog observer.

    The observer calls back on its own thread; events are translated and
    queued here, and the event loop consumes them with ``get``.
    """

    def __init__(self, polling: bool = False, polling_interval: float = 1.0) -> None:
        """
        Initialize the source.

        Args:
            polling: Use watchdog's PollingObserver instead of OS events
            polling_interval: Seconds between polls when polling
        """
        super().__init__()
        self._queue: queue.Queue[StreamItem] = queue.Queue()
        self._observer = PollingObserver(timeout=polling_interval) if polling else Observer()
        self._roots: set[str] = set()
        self._lock = threading.Lock()
        self._started = False
        self._closed = False

    @property
    def closed(self) -> bool:
        """Check if the source has been closed."""
        return self._closed

    def add(self, path: str) -> None:
        """
        Watch a directory, non-recursively.

        Args:
            path: Absolute directory path

        Raises:
            SubscriptionError: If the observer cannot watch the directory
        """
        with self._lock:
            if self._closed:
                raise SubscriptionError(f"cannot add {path!r} to watcher: source is closed")
            try:
                if not self._started:
                    self._observer.start()
                    self._started = True
                self._observer.schedule(self, path, recursive=False)
            except OSError as e:
                raise SubscriptionError(f"cannot add {path!r} to watcher: {e}") from e
            self._roots.add(os.path.normpath(path))

        self.log.debug("subscription_added", path=path)

    def get(self, timeout: float | None = None) -> StreamItem:
        """
        Block until the next item is available.

        Raises:
            queue.Empty: If ``timeout`` elapses first
        """
        return self._queue.get(timeout=timeout)

    def close(self) -> None:
        """Stop the observer and end the stream."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            started = self._started

        try:
            if started:
                self._observer.stop()
                if threading.current_thread() is not self._observer:
                    self._observer.join(timeout=2.0)
        finally:
            self._queue.put(CLOSED)
            self.log.debug("source_closed")

    def on_any_event(self, event: FileSystemEvent) -> None:
        """Translate a watchdog event and queue it."""
        src = os.path.normpath(os.fsdecode(event.src_path))

        if event.is_directory and src in self._roots:
            if event.event_type in (EVENT_TYPE_DELETED, EVENT_TYPE_MOVED):
                self._queue.put(StreamError(f"watched directory {src!r} was removed"))
            # Modifications of the watched directory itself duplicate child events
            return

        if event.event_type == EVENT_TYPE_MOVED:
            self._queue.put(FsEvent(src, EventKind.RENAME, event.is_directory))
            dest = os.fsdecode(event.dest_path)
            if dest:
                self._queue.put(FsEvent(os.path.normpath(dest), EventKind.CREATE, event.is_directory))
            return

        kind = _KINDS.get(event.event_type, EventKind.OTHER)
        self._queue.put(FsEvent(src, kind, event.is_directory))
