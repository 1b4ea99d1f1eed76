"""
selfreload Utilities Package.

Configuration and logging shared across the package.
Requires Python 3.11+.
"""

from selfreload.utils.config import Settings, get_settings
from selfreload.utils.logger import configure_logging, get_logger, logger, LoggerMixin

__all__ = [
    "Settings",
    "get_settings",
    "configure_logging",
    "get_logger",
    "logger",
    "LoggerMixin",
]
