"""
Moisture sensor data model
Typed readings, session states and device modes shared by the client modules
"""

from enum import Enum
from typing import Optional
from dataclasses import dataclass


class MoistureState(str, Enum):
    """Sensor classification of package saturation"""
    DRY = "dry"
    WET = "wet"
    MIXED = "mixed"
    UNKNOWN = "unknown"

    @classmethod
    def from_token(cls, token: str) -> "MoistureState":
        """Map a raw moisture token (any case) onto a state, Unknown if unrecognized"""
        normalized = token.strip().lower()
        for state in (cls.DRY, cls.WET, cls.MIXED):
            if state.value == normalized:
                return state
        return cls.UNKNOWN


class Mode(str, Enum):
    """Device reporting mode, toggled with a command write"""
    PERIODIC = "periodic"
    REALTIME = "realtime"


class ConnectionState(str, Enum):
    IDLE = "idle"
    REQUESTING = "requesting"
    CONNECTED = "connected"
    RECEIVING = "receiving"
    DISCONNECTED = "disconnected"
    FAILED = "failed"


# States in which the peripheral link is live
LINKED_STATES = frozenset({ConnectionState.CONNECTED, ConnectionState.RECEIVING})


@dataclass(frozen=True)
class Reading:
    """A single decoded telemetry notification"""
    observed_at: float                      # Arrival time (epoch seconds), set by the receiver
    moisture_state: MoistureState
    temperature_celsius: Optional[float]    # None when the payload's number did not parse
    raw: str = ""                           # Decoded payload text, kept for diagnostics

    def to_dict(self) -> dict:
        return {
            "observed_at": self.observed_at,
            "moisture": self.moisture_state.value,
            "temperature_celsius": self.temperature_celsius,
            "raw": self.raw,
        }


@dataclass(frozen=True)
class SessionStatus:
    """Point-in-time view of a connection session for display"""
    state: ConnectionState
    mode: Mode
    failure_reason: Optional[str]
    last_seen_at: Optional[float]
    next_update_in: float
    device_name: Optional[str]
    device_address: Optional[str]
    history_size: int

    def to_dict(self) -> dict:
        return {
            "state": self.state.value,
            "mode": self.mode.value,
            "failure_reason": self.failure_reason,
            "last_seen_at": self.last_seen_at,
            "next_update_in": self.next_update_in,
            "device": {"name": self.device_name, "address": self.device_address},
            "history_size": self.history_size,
        }
