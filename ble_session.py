"""
Connection session for the moisture sensor
Owns the peripheral link and drives discovery, connect, mode toggling and
disconnect. Decoded notifications are fed into the reading history, the
alert dispatcher and the cadence countdown.
"""

import asyncio
import logging
import time
from typing import Callable, Dict, List, Optional

from bleak import BleakClient

from alerts import AlertDispatcher
from ble_device import SensorDevice
from ble_utils import (
    CMD_REALTIME_OFF,
    CMD_REALTIME_ON,
    TRANSPORT_ERRORS,
    ConnectError,
    SessionError,
    WriteError,
    discover_device,
    disconnect_device,
    resolve_characteristic,
    write_command,
)
from cadence import CadenceTicker, next_update_in
from notification_handler import DecodeError, decode
from reading_history import ReadingHistory
from sensor_models import LINKED_STATES, ConnectionState, Mode, SessionStatus
from settings import Settings, get_settings

logger = logging.getLogger(__name__)

EVENTS = ("status", "reading", "alert", "tick")


class InvalidStateError(SessionError):
    """Operation not allowed in the session's current state."""


class ConnectionSession:
    """
    One session with one sensor.

    Lifecycle: create -> connect() -> [toggle_mode()] -> disconnect() ... -> dispose().
    All methods run on a single asyncio event loop; bleak delivers notification
    and disconnect callbacks on that same loop.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        history: Optional[ReadingHistory] = None,
        dispatcher: Optional[AlertDispatcher] = None,
        discover=discover_device,
        client_factory=BleakClient,
        choose_device=None,
        clock: Callable[[], float] = time.time,
    ):
        self.settings = settings or get_settings()
        self.history = history if history is not None else ReadingHistory(self.settings.history_capacity)
        self.dispatcher = dispatcher or AlertDispatcher()
        self._discover = discover
        self._client_factory = client_factory
        self._choose_device = choose_device
        self._clock = clock

        self.state = ConnectionState.IDLE
        self.failure_reason: Optional[str] = None
        self.mode = Mode.PERIODIC
        self.last_seen_at: Optional[float] = None

        self._device: Optional[SensorDevice] = None
        self._ticker = CadenceTicker(self._on_tick)
        self._listeners: Dict[str, List[Callable]] = {event: [] for event in EVENTS}

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    def subscribe(self, event: str, callback: Callable) -> None:
        """Register a callback for 'status', 'reading', 'alert' or 'tick'."""
        if event not in self._listeners:
            raise ValueError(f"Unknown session event: {event}")
        self._listeners[event].append(callback)

    def _emit(self, event: str, payload) -> None:
        for callback in list(self._listeners[event]):
            try:
                callback(payload)
            except Exception:
                logger.exception("[SESSION] %s listener failed", event)

    def next_update_in(self, now: Optional[float] = None) -> float:
        return next_update_in(self.last_seen_at, self.mode, self._clock() if now is None else now)

    def status(self) -> SessionStatus:
        device = self._device
        return SessionStatus(
            state=self.state,
            mode=self.mode,
            failure_reason=self.failure_reason,
            last_seen_at=self.last_seen_at,
            next_update_in=self.next_update_in(),
            device_name=device.name if device else None,
            device_address=device.address if device else None,
            history_size=len(self.history),
        )

    @property
    def is_linked(self) -> bool:
        return self.state in LINKED_STATES

    def _set_state(self, state: ConnectionState, reason: Optional[str] = None) -> None:
        if state is self.state and reason == self.failure_reason:
            return
        self.state = state
        self.failure_reason = reason
        logger.info("[SESSION] State -> %s", state.value,
                    extra={"state": state.value, "reason": reason})
        self._emit("status", self.status())

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def connect(self) -> SessionStatus:
        """
        Discover the sensor, connect, and subscribe to its notifications.

        Raises:
            InvalidStateError: A connect is already in progress or the link is up
            TransportUnavailable, DiscoveryCancelled, ConnectError: The attempt
                failed; the session is left in FAILED with the reason recorded
        """
        if self.state is ConnectionState.REQUESTING:
            raise InvalidStateError("connect already in progress")
        if self.is_linked:
            raise InvalidStateError(f"already {self.state.value}")

        self.history.clear()
        self.last_seen_at = None
        self.mode = Mode.PERIODIC
        self._set_state(ConnectionState.REQUESTING)

        # Only ask for notification permission in response to a user connect
        self.dispatcher.request_permission()

        try:
            await self._open_link()
        except SessionError as e:
            await self._release_link()
            logger.error("[BLE] Connect failed: %s", e, extra={"reason": type(e).__name__})
            self._set_state(ConnectionState.FAILED, reason=str(e))
            raise
        except Exception as e:
            await self._release_link()
            logger.exception("[BLE] Connect failed unexpectedly")
            self._set_state(ConnectionState.FAILED, reason=str(e) or type(e).__name__)
            raise ConnectError(f"connect failed: {e}") from e
        except asyncio.CancelledError:
            await self._release_link()
            self._set_state(ConnectionState.FAILED, reason="connect cancelled")
            raise

        self._ticker.start()
        self._set_state(ConnectionState.CONNECTED)
        return self.status()

    async def _open_link(self):
        ble_device = await self._discover(
            self.settings.device_name,
            self.settings.scan_timeout,
            self._choose_device,
        )

        try:
            client = self._client_factory(
                ble_device,
                disconnected_callback=self._handle_disconnected,
                timeout=self.settings.connect_timeout,
            )
            self._device = SensorDevice(ble_device.name, ble_device.address, client)
            await client.connect()
            logger.info("[BLE] Connected to %s", ble_device.address,
                        extra={"device": ble_device.name})
            self._device.characteristic = resolve_characteristic(client)
            await client.start_notify(self._device.characteristic, self._handle_notify)
        except TRANSPORT_ERRORS as e:
            raise ConnectError(f"connect to {ble_device.address} failed: {e}") from e

        # Disconnect callbacks are ignored while Requesting
        if not client.is_connected:
            raise ConnectError(f"{ble_device.address} dropped the link during setup")
        self._device.connected = True
        logger.info("[BLE] Subscribed to notifications for %s", ble_device.address)

    async def _release_link(self):
        device, self._device = self._device, None
        if device is not None:
            device.connected = False
            await disconnect_device(device.client)

    async def toggle_mode(self) -> Mode:
        """
        Switch the sensor between periodic and realtime reporting.

        Raises:
            InvalidStateError: No live link
            WriteError: The command write failed; mode is unchanged
        """
        if not self.is_linked:
            raise InvalidStateError(f"cannot toggle mode while {self.state.value}")

        target = Mode.REALTIME if self.mode is Mode.PERIODIC else Mode.PERIODIC
        command = CMD_REALTIME_ON if target is Mode.REALTIME else CMD_REALTIME_OFF

        try:
            await write_command(self._device.client, command)
        except WriteError as e:
            logger.error("[BLE] Mode toggle failed: %s", e, extra={"command": command})
            raise

        # The link may have dropped while the write was in flight
        if not self.is_linked:
            logger.warning("[BLE] Link lost during mode toggle, mode left as %s", self.mode.value)
            return self.mode

        self.mode = target
        logger.info("[SESSION] Mode -> %s", target.value, extra={"mode": target.value})
        self._emit("status", self.status())
        return self.mode

    async def disconnect(self) -> None:
        """Release the sensor link. Does nothing if no link is up."""
        if self.state is ConnectionState.REQUESTING:
            raise InvalidStateError("cannot disconnect while a connect is in progress")
        if not self.is_linked:
            logger.debug("[SESSION] Disconnect ignored while %s", self.state.value)
            return

        self._ticker.stop()
        client = self._device.client if self._device else None
        self._device = None
        self.mode = Mode.PERIODIC
        # Transition before awaiting so bleak's disconnect callback sees no live link
        self._set_state(ConnectionState.DISCONNECTED)
        await disconnect_device(client)

    async def dispose(self) -> None:
        """Tear the session down; the instance should not be reused."""
        if self.is_linked:
            await self.disconnect()
        self._ticker.stop()
        for callbacks in self._listeners.values():
            callbacks.clear()

    # ------------------------------------------------------------------
    # Peripheral events
    # ------------------------------------------------------------------

    def _handle_notify(self, sender, data: bytearray):
        if not self.is_linked:
            logger.debug("[BLE] Notification ignored while %s", self.state.value)
            return

        try:
            reading = decode(data, observed_at=self._clock())
        except DecodeError as e:
            logger.warning("[BLE] Dropped notification: %s", e, extra={"payload": bytes(data)})
            return

        self.history.append(reading)
        self.last_seen_at = reading.observed_at
        self._set_state(ConnectionState.RECEIVING)
        logger.debug("[NOTIFICATION] %s", reading.raw, extra={"payload": reading.raw})
        self._emit("reading", reading)

        alert = self.dispatcher.dispatch(reading)
        if alert is not None:
            self._emit("alert", alert)

    def _handle_disconnected(self, client):
        device = self._device
        if not self.is_linked or device is None or client is not device.client:
            return
        logger.warning("[BLE] %s disconnected by peripheral", device.address,
                       extra={"device": device.name})
        self._ticker.stop()
        device.connected = False
        self._device = None
        self.mode = Mode.PERIODIC
        self._set_state(ConnectionState.DISCONNECTED)

    def _on_tick(self):
        self._emit("tick", self.next_update_in())
