# Author: Omi Shrestha

class SensorDevice:
    """The live link to the moisture sensor, owned by a single ConnectionSession."""

    def __init__(self, name, address, client):
        self.name = name                    # Advertised device name
        self.address = address              # BLE address of the device
        self.client = client                # GATT client instance
        self.characteristic = None          # Resolved notify/write characteristic
        self.connected = False              # Connection status

    def __repr__(self):
        return f"SensorDevice(name={self.name!r}, address={self.address!r}, connected={self.connected})"
