# Author: Omi Shrestha

import asyncio
import logging
from bleak import BleakClient, BleakScanner
from bleak.exc import BleakError

logger = logging.getLogger(__name__)

# Moisture sensor GATT layout (must match the peripheral firmware)
DEVICE_NAME = "XIAO-C3-BLE"
SERVICE_UUID = "12345678-1234-5678-1234-56789abcdef0"
CHAR_UUID = "12345678-1234-5678-1234-56789abcdef1"   # read / notify / write

# Mode commands written to CHAR_UUID
CMD_REALTIME_ON = "REALTIME_ON"
CMD_REALTIME_OFF = "REALTIME_OFF"

# Errors raised by the transport layer
TRANSPORT_ERRORS = (BleakError, OSError, asyncio.TimeoutError)


class SessionError(Exception):
    """Base class for connection session failures."""


class TransportUnavailable(SessionError):
    """No usable Bluetooth adapter on this host."""


class DiscoveryCancelled(SessionError):
    """No sensor was selected (none found, or the user cancelled the choice)."""


class ConnectError(SessionError):
    """Connecting, or resolving the sensor's service/characteristic, failed."""


class WriteError(SessionError):
    """A command write to the sensor failed."""


# Discover the sensor near the host
async def discover_device(device_name=DEVICE_NAME, timeout=10.0, choose=None):
    """
    Scan for BLE devices whose name exactly matches the sensor name.

    Args:
        device_name: Advertised name to match
        timeout: Scan duration in seconds
        choose: Optional async callable picking one device from several
            matches; returning None cancels discovery

    Returns:
        The selected bleak BLEDevice
    """
    logger.info("[BLE] Scanning for %s...", device_name)
    try:
        found = await BleakScanner.discover(timeout=timeout)
    except TRANSPORT_ERRORS as e:
        raise TransportUnavailable(f"Bluetooth unavailable: {e}") from e

    discovered = [d for d in found if d.name == device_name]

    if not discovered:
        raise DiscoveryCancelled(f"no device named {device_name!r} found")

    # If multiple devices found, let the user choose one to connect
    if len(discovered) > 1 and choose is not None:
        selected = await choose(discovered)
        if selected is None:
            raise DiscoveryCancelled("device selection cancelled")
    else:
        selected = discovered[0]

    logger.info("[BLE] Found %s - MAC: %s", selected.name, selected.address)
    return selected


def resolve_characteristic(client: BleakClient):
    """
    Find the sensor's notify/write characteristic on a connected client.

    Raises:
        ConnectError: Service or characteristic missing
    """
    service = client.services.get_service(SERVICE_UUID)
    if service is None:
        raise ConnectError(f"service {SERVICE_UUID} not found on device")

    characteristic = service.get_characteristic(CHAR_UUID)
    if characteristic is None:
        raise ConnectError(f"characteristic {CHAR_UUID} not found on device")
    return characteristic


async def write_command(client: BleakClient, command: str):
    """
    Write an ASCII command to the sensor characteristic.

    Raises:
        WriteError: The link is down or the write was rejected
    """
    if client is None or not client.is_connected:
        raise WriteError(f"cannot send {command}: not connected")
    try:
        await client.write_gatt_char(CHAR_UUID, command.encode('utf-8'), response=True)
    except TRANSPORT_ERRORS as e:
        raise WriteError(f"failed to send {command}: {e}") from e
    logger.info("[SEND] %s", command, extra={"command": command})


async def disconnect_device(client: BleakClient):
    """
    Safely disconnect from the sensor.

    Args:
        client: BleakClient to disconnect
    """
    if client is None:
        return
    try:
        if client.is_connected:
            await client.disconnect()
            logger.info("[BLE] Disconnected from %s", client.address)
    except EOFError:
        # D-Bus connection already closed
        logger.debug("[BLE] D-Bus connection already closed")
    except TRANSPORT_ERRORS as e:
        logger.warning("[BLE] Disconnect error: %s", e)
