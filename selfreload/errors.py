"""
selfreload Errors.

Exception hierarchy for setup, runtime and restart failures.
Requires Python 3.11+.
"""


class ReloadError(Exception):
    """Base class for all selfreload errors."""


class ConfigurationError(ReloadError):
    """An additional directory is missing, not a directory, or unresolvable."""


class SubscriptionError(ReloadError):
    """A directory could not be registered with the notification source."""


class StreamError(ReloadError):
    """Asynchronous error reported by the notification source while running."""


class RestartError(ReloadError):
    """
    The process cannot be replaced.

    Raised when the program file cannot be resolved or when exec fails.
    Nothing is left to fall back on, so this is always terminal.
    """
