# Author: Omi Shrestha

import os
from dataclasses import dataclass
from functools import lru_cache

from ble_utils import DEVICE_NAME

# Retained readings; two minutes of realtime data or ten hours of periodic.
DEFAULT_HISTORY_CAPACITY = 120


@dataclass(frozen=True)
class Settings:
    """Runtime configuration, read from MOISTURE_* environment variables."""
    device_name: str            # Exact advertised name to connect to
    history_capacity: int       # Readings kept in the rolling history
    scan_timeout: float         # Seconds spent scanning for the sensor
    connect_timeout: float      # Seconds allowed for the GATT connect
    api_host: str
    api_port: int
    log_level: str


def _env(name):
    """Stripped value of an environment variable, or None if unset/blank."""
    value = os.getenv(name, "").strip()
    return value or None


def _positive(name, convert, default):
    value = _env(name)
    if value is None:
        return default
    try:
        parsed = convert(value)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


@lru_cache
def get_settings():
    return Settings(
        device_name=_env("MOISTURE_DEVICE_NAME") or DEVICE_NAME,
        history_capacity=_positive("MOISTURE_HISTORY_CAPACITY", int, DEFAULT_HISTORY_CAPACITY),
        scan_timeout=_positive("MOISTURE_SCAN_TIMEOUT", float, 10.0),
        connect_timeout=_positive("MOISTURE_CONNECT_TIMEOUT", float, 10.0),
        api_host=_env("MOISTURE_API_HOST") or "0.0.0.0",
        api_port=_positive("MOISTURE_API_PORT", int, 5000),
        log_level=(_env("LOG_LEVEL") or "INFO").upper(),
    )
