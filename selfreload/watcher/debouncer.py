"""
selfreload Debouncer.

Resettable per-path timers that collapse bursts of file events.
Requires Python 3.11+.
"""

import threading
from collections.abc import Callable
from typing import Any

from selfreload.utils.logger import LoggerMixin

# Quiet period after the last qualifying event before an action fires
DEBOUNCE_DELAY_MS = 100


class DebounceTimer(LoggerMixin):
    """
    A single reusable timer for one watched path.

    The timer is created stopped. Every call to ``reset`` supersedes any
    pending deadline with a fresh one, so a burst of events yields exactly
    one call to ``action``, ``delay_ms`` after the last event.

    ``threading.Timer`` is one-shot, so each arm gets a generation number;
    an expiry whose generation no longer matches the current one is stale
    and is dropped.
    """

    def __init__(
        self,
        action: Callable[[], Any],
        delay_ms: int = DEBOUNCE_DELAY_MS,
        name: str = "",
    ) -> None:
        """
        Initialize a stopped timer.

        Args:
            action: Function to call when the timer fires
            delay_ms: Delay in milliseconds after the latest reset
            name: Label used in log entries (usually the watched path)
        """
        self._action = action
        self._delay = delay_ms / 1000.0
        self._name = name
        self._lock = threading.Lock()
        self._timer: threading.Timer | None = None
        self._generation = 0

    @property
    def name(self) -> str:
        """Label of the watched path this timer belongs to."""
        return self._name

    @property
    def delay(self) -> float:
        """Debounce delay in seconds."""
        return self._delay

    @property
    def is_pending(self) -> bool:
        """Check if a fire is scheduled."""
        with self._lock:
            return self._timer is not None

    def reset(self) -> None:
        """(Re)arm the timer with a fresh deadline."""
        with self._lock:
            self._generation += 1
            if self._timer is not None:
                self._timer.cancel()

            self._timer = threading.Timer(self._delay, self._fire, args=(self._generation,))
            self._timer.name = f"selfreload-timer-{self._generation}"
            self._timer.daemon = True
            self._timer.start()

        self.log.debug("timer_armed", path=self._name, delay_ms=int(self._delay * 1000))

    def stop(self) -> bool:
        """
        Cancel a pending fire.

        Returns:
            True if a fire was pending
        """
        with self._lock:
            self._generation += 1
            timer, self._timer = self._timer, None

        if timer is None:
            return False
        timer.cancel()
        return True

    def _fire(self, generation: int) -> None:
        """Run the action unless a later reset superseded this expiry."""
        with self._lock:
            if generation != self._generation:
                return
            self._timer = None

        self.log.debug("timer_fired", path=self._name)
        self._action()
