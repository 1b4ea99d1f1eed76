"""
selfreload Watch Registry.

Maps watched directories to their debounce timers and trigger actions.
Requires Python 3.11+.
"""

import asyncio
import inspect
import os
import stat
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any

from selfreload.errors import ConfigurationError
from selfreload.utils.logger import LoggerMixin
from selfreload.watcher.debouncer import DEBOUNCE_DELAY_MS, DebounceTimer


class ActionKind(str, Enum):
    """What a watched path does when its timer fires."""

    RESTART = "restart"
    CALLBACK = "callback"


@dataclass(frozen=True)
class WatchDir:
    """
    An additional directory to watch, non-recursively.

    ``on_change`` runs when any direct child is written or created. It may be
    a coroutine function; it is then scheduled on ``loop`` when given, or run
    with ``asyncio.run`` otherwise.
    """

    path: str | os.PathLike[str]
    on_change: Callable[[], Any]
    loop: asyncio.AbstractEventLoop | None = None


@dataclass(frozen=True)
class WatchedPath:
    """A registered directory and the action its events trigger."""

    path: str
    kind: ActionKind
    # Exact file to match for RESTART entries; None for callback directories
    target: str | None = None
    source: WatchDir | None = None

    def matches(self, event_path: str) -> bool:
        """Check if an event path belongs to this entry."""
        if self.kind is ActionKind.RESTART:
            return event_path == self.target
        return event_path == self.path or event_path.startswith(self.path.rstrip(os.sep) + os.sep)


def _resolve_directory(raw: str | os.PathLike[str]) -> str:
    """Return the absolute path of an existing directory."""
    try:
        path = os.path.abspath(os.fspath(raw))
    except (OSError, TypeError, ValueError) as e:
        raise ConfigurationError(f"cannot get absolute path to {raw!r}: {e}") from e

    try:
        st = os.stat(path)
    except OSError as e:
        raise ConfigurationError(f"cannot watch {raw!r}: {e}") from e

    if not stat.S_ISDIR(st.st_mode):
        raise ConfigurationError(f"not a directory: {os.fspath(raw)!r}; can only watch directories")
    return path


class WatchRegistry(LoggerMixin):
    """
    Registry of watched paths.

    The first entry is always the directory containing the program file,
    with a restart action. Additional directories follow in the order given,
    each with its callback. All entries and timers are built in the
    constructor and never added or removed afterwards, so the event loop and
    timer threads can read the mapping without a lock.
    """

    def __init__(
        self,
        program_path: str,
        additional: Iterable[WatchDir],
        on_restart: Callable[[], Any],
        delay_ms: int = DEBOUNCE_DELAY_MS,
    ) -> None:
        """
        Validate every entry and create the (stopped) timers.

        Args:
            program_path: Absolute path of the running program file
            additional: Extra directories with their callbacks
            on_restart: Called when the program file's timer fires
            delay_ms: Debounce delay in milliseconds

        Raises:
            ConfigurationError: If an additional entry is invalid or repeated
        """
        program_path = os.path.normpath(program_path)
        self_entry = WatchedPath(
            path=os.path.dirname(program_path),
            kind=ActionKind.RESTART,
            target=program_path,
        )

        # Validate everything before creating any timer
        extra: list[tuple[WatchedPath, WatchDir]] = []
        seen: set[str] = set()
        for watch in additional:
            path = _resolve_directory(watch.path)
            if path in seen:
                raise ConfigurationError(f"directory {os.fspath(watch.path)!r} is registered more than once")
            seen.add(path)
            extra.append((WatchedPath(path=path, kind=ActionKind.CALLBACK, source=watch), watch))

        self._program = self_entry
        self._additional = tuple(entry for entry, _ in extra)

        timers: dict[str, DebounceTimer] = {
            program_path: DebounceTimer(on_restart, delay_ms=delay_ms, name=program_path),
        }
        for entry, watch in extra:
            timers[entry.path] = DebounceTimer(
                self._callback_runner(entry.path, watch),
                delay_ms=delay_ms,
                name=entry.path,
            )
        self._timers: Mapping[str, DebounceTimer] = MappingProxyType(timers)

    @property
    def program(self) -> WatchedPath:
        """Entry for the program file's directory."""
        return self._program

    @property
    def additional(self) -> tuple[WatchedPath, ...]:
        """Entries for the additional directories, in registration order."""
        return self._additional

    @property
    def timers(self) -> Mapping[str, DebounceTimer]:
        """Read-only mapping of key -> timer (program file or directory)."""
        return self._timers

    @property
    def directories(self) -> list[str]:
        """Ordered, de-duplicated directories to subscribe to."""
        dirs: list[str] = []
        for entry in (self._program, *self._additional):
            if entry.path not in dirs:
                dirs.append(entry.path)
        return dirs

    def lookup(self, event_path: str) -> WatchedPath | None:
        """
        Find the entry an event path belongs to.

        An exact match on the program file always wins. Otherwise the most
        specific additional directory containing the path is returned.

        Args:
            event_path: Path reported by the notification source

        Returns:
            The matching entry, or None when the event should be ignored
        """
        event_path = os.path.normpath(event_path)
        if self._program.matches(event_path):
            return self._program

        best: WatchedPath | None = None
        for entry in self._additional:
            if entry.matches(event_path) and (best is None or len(entry.path) > len(best.path)):
                best = entry
        return best

    def timer_for(self, entry: WatchedPath) -> DebounceTimer:
        """Get the timer wired to an entry."""
        key = entry.target if entry.kind is ActionKind.RESTART else entry.path
        return self._timers[key]

    def stop_all(self) -> None:
        """Cancel every pending fire."""
        for timer in self._timers.values():
            timer.stop()

    def _callback_runner(self, path: str, watch: WatchDir) -> Callable[[], None]:
        """Build the timer action for an additional directory."""

        def run() -> None:
            try:
                if inspect.iscoroutinefunction(watch.on_change):
                    if watch.loop is not None:
                        asyncio.run_coroutine_threadsafe(watch.on_change(), watch.loop)
                    else:
                        asyncio.run(watch.on_change())
                else:
                    watch.on_change()
            except Exception as e:
                self.log.error("callback_failed", path=path, error=str(e))
            else:
                self.log.debug("callback_ran", path=path)

        return run
