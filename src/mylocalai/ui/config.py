"""UI configuration constants."""

import logging


class LogLevel:
    """Log level constants for the debug panel.

    Values match the ``logging`` module so records can be filtered directly.
    """

    DEBUG = logging.DEBUG
    INFO = logging.INFO
    WARNING = logging.WARNING
    ERROR = logging.ERROR

    _names = {
        DEBUG: "DEBUG",
        INFO: "INFO",
        WARNING: "WARN",
        ERROR: "ERROR",
    }

    _from_string = {
        "debug": DEBUG,
        "info": INFO,
        "warning": WARNING,
        "error": ERROR,
    }

    @classmethod
    def threshold(cls, level: int) -> int:
        """Map any numeric level to the nearest known level at or below it."""
        for known in (cls.ERROR, cls.WARNING, cls.INFO):
            if level >= known:
                return known
        return cls.DEBUG

    @classmethod
    def name(cls, level: int) -> str:
        """Get the display name for a log level."""
        return cls._names[cls.threshold(level)]

    @classmethod
    def from_string(cls, level_str: str) -> int:
        """Convert string to log level. Returns DEBUG if invalid."""
        return cls._from_string.get(level_str.lower(), cls.DEBUG)


# Conversation sidebar
THREAD_LIST_LIMIT = 50
THREAD_PREVIEW_WIDTH = 28

# Debug panel
LOG_TIMESTAMP_FORMAT = "%H:%M:%S"
LOG_MAX_MESSAGE_LENGTH = 500

# Chat display
MESSAGE_TIME_FORMAT = "%H:%M:%S"
