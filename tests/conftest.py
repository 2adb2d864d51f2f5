from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, List, Optional

import pytest
from bleak.exc import BleakError

from ble_utils import CHAR_UUID, DEVICE_NAME, SERVICE_UUID, DiscoveryCancelled
from settings import Settings


@dataclass
class FakeBLEDevice:
    name: str
    address: str


class FakeCharacteristic:
    def __init__(self, uuid: str) -> None:
        self.uuid = uuid


class FakeService:
    def __init__(self, uuid: str, characteristics: List[FakeCharacteristic]) -> None:
        self.uuid = uuid
        self.characteristics = characteristics

    def get_characteristic(self, uuid: str) -> Optional[FakeCharacteristic]:
        for char in self.characteristics:
            if char.uuid == uuid:
                return char
        return None


class FakeServices:
    def __init__(self, services: List[FakeService]) -> None:
        self._services = services

    def get_service(self, uuid: str) -> Optional[FakeService]:
        for service in self._services:
            if service.uuid == uuid:
                return service
        return None


class FakeClient:
    """Stands in for bleak.BleakClient."""

    def __init__(
        self,
        device: Any,
        disconnected_callback: Optional[Callable] = None,
        timeout: float = 10.0,
        *,
        with_service: bool = True,
        connect_error: Optional[Exception] = None,
        write_error: Optional[Exception] = None,
        notify_error: Optional[Exception] = None,
        during_notify: Optional[Callable[["FakeClient"], None]] = None,
        during_write: Optional[Callable[["FakeClient"], None]] = None,
    ) -> None:
        self.address = device.address
        self.timeout = timeout
        self.disconnected_callback = disconnected_callback
        self.is_connected = False
        self.connect_error = connect_error
        self.write_error = write_error
        self.notify_error = notify_error
        self.during_notify = during_notify
        self.during_write = during_write
        self.writes: List[tuple[str, bytes, bool]] = []
        self.notify_callback: Optional[Callable] = None
        self.characteristic = FakeCharacteristic(CHAR_UUID)
        services = [FakeService(SERVICE_UUID, [self.characteristic])] if with_service else []
        self.services = FakeServices(services)
        self.disconnect_calls = 0

    async def connect(self) -> None:
        if self.connect_error is not None:
            raise self.connect_error
        self.is_connected = True

    async def start_notify(self, char: Any, callback: Callable) -> None:
        if self.notify_error is not None:
            raise self.notify_error
        self.notify_callback = callback
        if self.during_notify is not None:
            self.during_notify(self)

    async def write_gatt_char(self, uuid: str, data: bytes, response: bool = False) -> None:
        if self.write_error is not None:
            raise self.write_error
        self.writes.append((uuid, bytes(data), response))
        if self.during_write is not None:
            self.during_write(self)

    async def disconnect(self) -> None:
        self.disconnect_calls += 1
        was_connected = self.is_connected
        self.is_connected = False
        if was_connected and self.disconnected_callback is not None:
            self.disconnected_callback(self)

    def push(self, payload: bytes | str) -> None:
        if isinstance(payload, str):
            payload = payload.encode("utf-8")
        assert self.notify_callback is not None
        self.notify_callback(self.characteristic, bytearray(payload))

    def drop_link(self) -> None:
        self.is_connected = False
        if self.disconnected_callback is not None:
            self.disconnected_callback(self)


class FakeTransport:
    """Discovery and client factory pair injected into ConnectionSession."""

    def __init__(self) -> None:
        self.devices = [FakeBLEDevice(DEVICE_NAME, "AA:BB:CC:DD:EE:01")]
        self.discover_error: Optional[Exception] = None
        self.client_options: dict = {}
        self.clients: List[FakeClient] = []
        self.discover_calls = 0

    async def discover(self, device_name, timeout, choose):
        self.discover_calls += 1
        if self.discover_error is not None:
            raise self.discover_error
        matches = [d for d in self.devices if d.name == device_name]
        if not matches:
            raise DiscoveryCancelled(f"no device named {device_name!r} found")
        return matches[0]

    def client_factory(self, device, disconnected_callback=None, timeout=10.0):
        client = FakeClient(device, disconnected_callback, timeout, **self.client_options)
        self.clients.append(client)
        return client

    @property
    def client(self) -> FakeClient:
        return self.clients[-1]


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        device_name=DEVICE_NAME,
        history_capacity=5,
        scan_timeout=0.1,
        connect_timeout=0.1,
        api_host="127.0.0.1",
        api_port=5000,
        log_level="DEBUG",
    )


@pytest.fixture()
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def bleak_error() -> BleakError:
    return BleakError("GATT operation failed")
