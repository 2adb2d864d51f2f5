# Author: Omi Shrestha

import logging
from logging.config import dictConfig

from settings import get_settings

# Record attributes passed via `extra=` that are shown after the message
CONTEXT_KEYS = ("device", "state", "mode", "reason", "command", "payload")

_configured = False


class SensorLogFormatter(logging.Formatter):
    """Formats records as '[HH:MM:SS] LEVEL name: message  (key=value ...)'."""

    def format(self, record):
        line = super().format(record)
        context = [
            f"{key}={getattr(record, key)}"
            for key in CONTEXT_KEYS
            if getattr(record, key, None) is not None
        ]
        if not context:
            return line
        return f"{line}  ({' '.join(context)})"


def configure_logging(level=None):
    """Send all log output to stderr once; later calls are ignored."""
    global _configured
    if _configured:
        return

    level = level or get_settings().log_level
    dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "sensor": {
                "()": SensorLogFormatter,
                "fmt": "[%(asctime)s] %(levelname)-7s %(name)s: %(message)s",
                "datefmt": "%H:%M:%S",
            }
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "sensor",
            }
        },
        "root": {"handlers": ["console"], "level": level},
        # bleak's backend chatter drowns out session events at DEBUG
        "loggers": {"bleak": {"level": "WARNING"}},
    })
    _configured = True
