"""
selfreload Reloader.

Wires the registry, event loop and restart protocol into one service.
Requires Python 3.11+.
"""

import os
import threading
import time
from collections.abc import Callable
from typing import Any, NoReturn

from selfreload.errors import RestartError, SubscriptionError
from selfreload.restart import RestartContext
from selfreload.utils.config import Settings, get_settings
from selfreload.utils.logger import LoggerMixin, get_logger
from selfreload.watcher.event_loop import EventLoop, LogFunc
from selfreload.watcher.registry import WatchDir, WatchRegistry
from selfreload.watcher.source import NotificationSource, WatchdogSource

SourceFactory = Callable[[], NotificationSource]


def default_log() -> LogFunc:
    """printf-style sink writing to the selfreload structlog logger."""
    return get_logger("selfreload").info


class Reloader(LoggerMixin):
    """
    Restart the current process when its program file changes.

    One instance owns the notification source, the registry of timers and
    the restart context. ``start`` sets everything up and runs the event
    loop on a background thread; ``wait`` blocks until the stream ends;
    ``restart`` replaces the process on demand.

    Usage:
        reloader = Reloader()
        reloader.start(WatchDir("templates", reload_templates))
        reloader.wait()
    """

    def __init__(
        self,
        settings: Settings | None = None,
        source_factory: SourceFactory | None = None,
        context: RestartContext | None = None,
        abort: Callable[[int], Any] | None = None,
    ) -> None:
        """
        Initialize the reloader.

        Args:
            settings: Settings to use; defaults to get_settings()
            source_factory: Builds the notification source; defaults to a
                watchdog observer configured from settings
            context: Restart context; a fresh one captures sys.argv
            abort: Terminates the process when a timer-triggered restart
                fails; defaults to os._exit
        """
        self._settings = settings or get_settings()
        self._source_factory = source_factory or self._default_source
        self._context = context or RestartContext()
        self._abort = abort or os._exit
        self._lock = threading.Lock()
        self._registry: WatchRegistry | None = None
        self._loop: EventLoop | None = None
        self._thread: threading.Thread | None = None
        # Cleared while a restart is in progress; exec or abort ends it
        self._settled = threading.Event()
        self._settled.set()

    @property
    def context(self) -> RestartContext:
        """Restart context shared by the timer path and manual restarts."""
        return self._context

    @property
    def registry(self) -> WatchRegistry | None:
        """Registry built by ``start``."""
        return self._registry

    @property
    def event_loop(self) -> EventLoop | None:
        """Event loop built by ``start``."""
        return self._loop

    @property
    def is_running(self) -> bool:
        """Check if the event loop thread is alive."""
        return self._thread is not None and self._thread.is_alive()

    @property
    def is_restarting(self) -> bool:
        """Check if a restart has begun and not yet failed."""
        return not self._settled.is_set()

    @property
    def on_exec(self) -> Callable[[], Any] | None:
        """Hook run immediately before the process is replaced."""
        return self._context.on_exec

    @on_exec.setter
    def on_exec(self, hook: Callable[[], Any] | None) -> None:
        self._context.on_exec = hook

    def start(self, *additional: WatchDir, log: LogFunc | None = None) -> None:
        """
        Set up watching and start the event loop thread.

        Args:
            additional: Extra directories with their callbacks
            log: printf-style sink for the startup line and stream errors

        Raises:
            RuntimeError: If already started
            ConfigurationError: If an additional directory is invalid
            RestartError: If the program file cannot be determined
            SubscriptionError: If a directory cannot be watched
        """
        with self._lock:
            if self._thread is not None:
                raise RuntimeError("reloader already started")

            program = self._context.setup()
            registry = WatchRegistry(program.path, additional, on_restart=self.restart_or_exit)

            try:
                source = self._source_factory()
            except OSError as e:
                raise SubscriptionError(f"cannot set up watcher: {e}") from e

            loop = EventLoop(source, registry, log or default_log())
            loop.subscribe()
            self._context.set_closer(source.close)

            self._registry = registry
            self._loop = loop
            self._thread = threading.Thread(
                target=loop.run,
                name="selfreload-event-loop",
                daemon=True,
            )
            self._thread.start()

        self.log.info(
            "reloader_started",
            program=program.path,
            directories=registry.directories,
        )

    def wait(self, timeout: float | None = None) -> bool:
        """
        Block until the event loop ends.

        A stream closed by a restart does not release the caller: the
        process is replaced by exec, or terminated when the restart fails
        on the timer path. A failed manual restart releases it.

        Args:
            timeout: Seconds to wait; None waits for the stream to close

        Returns:
            True if the loop has ended and no restart is in progress
        """
        thread = self._thread
        if thread is None:
            return True
        deadline = None if timeout is None else time.monotonic() + timeout
        thread.join(timeout)
        if thread.is_alive():
            return False
        remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
        return self._settled.wait(remaining)

    def stop(self) -> None:
        """Close the notification stream and cancel pending timers."""
        if self._registry is not None:
            self._registry.stop_all()
        if self._loop is not None:
            self._loop.source.close()

    def restart(self) -> NoReturn:
        """
        Replace the process with a new copy of itself now.

        Raises:
            RestartError: If the restart cannot be performed
        """
        self._settled.clear()
        try:
            self._context.restart()
        finally:
            self._settled.set()

    def restart_or_exit(self) -> None:
        """
        Restart, or end the process when that is impossible.

        Used as the program file's timer action: an exception raised on a
        timer thread would be lost and leave stale code running.
        """
        self._settled.clear()
        try:
            self._context.restart()
        except Exception as e:
            if not isinstance(e, RestartError):
                e = RestartError(f"cannot restart: pre-exec hook failed: {e}")
            self.log.critical("restart_aborted", error=str(e), exit_code=self._settings.exit_code)
            self._abort(self._settings.exit_code)
        finally:
            self._settled.set()

    def _default_source(self) -> NotificationSource:
        watcher = self._settings.watcher
        return WatchdogSource(polling=watcher.polling, polling_interval=watcher.polling_interval)


_default_reloader: Reloader | None = None
_default_lock = threading.Lock()


def get_reloader() -> Reloader:
    """
    Get the process-wide reloader.

    Module-level ``start``, ``restart`` and ``set_on_exec`` use this one
    instance so the timer path and manual restarts share a context.
    """
    global _default_reloader
    with _default_lock:
        if _default_reloader is None:
            _default_reloader = Reloader()
        return _default_reloader


def set_reloader(reloader: Reloader | None) -> None:
    """Replace the process-wide reloader (None resets it)."""
    global _default_reloader
    with _default_lock:
        _default_reloader = reloader


def watch_dir(
    path: str | os.PathLike[str],
    on_change: Callable[[], Any],
    loop: Any = None,
) -> WatchDir:
    """
    Describe an additional directory to watch, non-recursively.

    ``on_change`` runs when a file in the directory is written or created;
    the process is not restarted. Call ``restart()`` from it to restart.
    """
    return WatchDir(path, on_change, loop)


def start(*additional: WatchDir, log: LogFunc | None = None, wait: bool = True) -> Reloader:
    """
    Restart the current process when its program file changes.

    The log function receives the startup line and runtime errors. Only
    setup errors are raised; once watching, errors go to ``log``.

    Args:
        additional: Extra directories with their callbacks
        log: printf-style sink; defaults to the selfreload logger
        wait: Block until the watch stream ends

    Returns:
        The process-wide reloader
    """
    reloader = get_reloader()
    reloader.start(*additional, log=log)
    if wait:
        reloader.wait()
    return reloader


def set_on_exec(hook: Callable[[], Any] | None) -> None:
    """Set the hook run before the current process is replaced."""
    get_reloader().on_exec = hook


def restart() -> NoReturn:
    """Replace the current process with a new copy of itself."""
    get_reloader().restart()
