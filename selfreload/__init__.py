"""
selfreload: restart a running process when its program file changes.

    import threading
    import selfreload

    threading.Thread(target=selfreload.start, daemon=True).start()

Additional directories run a callback instead of restarting:

    selfreload.start(selfreload.watch_dir("templates", reload_templates))

The process is replaced with ``os.execve``; finally blocks, atexit handlers
and signal handlers do not run. Use ``set_on_exec`` to run code right
before the process is replaced.
"""

from selfreload.errors import (
    ConfigurationError,
    ReloadError,
    RestartError,
    StreamError,
    SubscriptionError,
)
from selfreload.reloader import (
    Reloader,
    get_reloader,
    restart,
    set_on_exec,
    set_reloader,
    start,
    watch_dir,
)
from selfreload.restart import Program, RestartContext
from selfreload.watcher.registry import WatchDir

__version__ = "0.1.0"

__all__ = [
    "ConfigurationError",
    "ReloadError",
    "RestartError",
    "StreamError",
    "SubscriptionError",
    "Reloader",
    "get_reloader",
    "restart",
    "set_on_exec",
    "set_reloader",
    "start",
    "watch_dir",
    "Program",
    "RestartContext",
    "WatchDir",
]
