"""
Wet-reading alerts
Decides whether a reading warrants an alert, then routes it through the
available delivery channels: system notification, then a foreground prompt,
otherwise the alert is dropped.
"""

import logging
from enum import Enum
from typing import Callable, Optional, Protocol
from dataclasses import dataclass

from sensor_models import MoistureState, Reading

logger = logging.getLogger(__name__)

ALERT_TITLE = "Moisture alert"

CHANNEL_SYSTEM = "system"
CHANNEL_PROMPT = "prompt"


class AlertAction(Enum):
    NONE = "none"
    RAISE_ALERT = "raise_alert"


class SystemNotifier(Protocol):
    """Platform notification service (desktop notifications, push, ...)"""

    def request_permission(self) -> bool:
        ...

    def notify(self, title: str, message: str) -> None:
        ...


@dataclass(frozen=True)
class Alert:
    reading: Reading
    message: str
    channel: Optional[str]      # None when no channel could deliver it


def alert_message(reading: Reading) -> str:
    if reading.temperature_celsius is None:
        return "Moisture detected: package is WET"
    return f"Moisture detected: package is WET ({reading.temperature_celsius:.1f} °C)"


class AlertDispatcher:
    """
    Stateless per reading: every Wet reading raises an alert, consecutive
    ones included.
    """

    def __init__(
        self,
        system_notifier: Optional[SystemNotifier] = None,
        prompt: Optional[Callable[[str], None]] = None,
        is_foreground: Optional[Callable[[], bool]] = None,
    ):
        self.system_notifier = system_notifier
        self.prompt = prompt
        self.is_foreground = is_foreground or (lambda: False)
        self._permission: Optional[bool] = None

    @property
    def permission_granted(self) -> bool:
        return bool(self._permission)

    def request_permission(self) -> bool:
        """Ask the system notifier for permission once; later calls reuse the answer."""
        if self._permission is not None:
            return self._permission
        if self.system_notifier is None:
            self._permission = False
            return False
        try:
            self._permission = bool(self.system_notifier.request_permission())
        except Exception as e:
            logger.warning("[ALERT] Notification permission request failed: %s", e)
            self._permission = False
        logger.info("[ALERT] System notifications %s",
                    "granted" if self._permission else "denied")
        return self._permission

    @staticmethod
    def on_reading(reading: Reading) -> AlertAction:
        if reading.moisture_state is MoistureState.WET:
            return AlertAction.RAISE_ALERT
        return AlertAction.NONE

    def dispatch(self, reading: Reading) -> Optional[Alert]:
        """Evaluate a reading and deliver the alert if one is raised."""
        if self.on_reading(reading) is AlertAction.NONE:
            return None
        message = alert_message(reading)
        channel = self._deliver(message)
        if channel is None:
            logger.info("[ALERT] Dropped, no delivery channel available",
                        extra={"reason": "no_channel"})
        return Alert(reading=reading, message=message, channel=channel)

    def _deliver(self, message: str) -> Optional[str]:
        if self.permission_granted and self.system_notifier is not None:
            try:
                self.system_notifier.notify(ALERT_TITLE, message)
                return CHANNEL_SYSTEM
            except Exception as e:
                logger.warning("[ALERT] System notification failed: %s", e)

        if self.prompt is not None and self.is_foreground():
            try:
                self.prompt(message)
                return CHANNEL_PROMPT
            except Exception as e:
                logger.warning("[ALERT] Prompt failed: %s", e)

        return None
