"""Pytest fixtures for tests.

The fakes here stand in for the radio: ``FakeFirmware`` keeps the strip's
zones in memory and answers the JSON protocol the way the controller does,
``FakeBleakClient`` exposes it through GATT-shaped services and
characteristics so the real ``LedZoneClient`` runs unchanged on top.
"""
from __future__ import annotations

import asyncio
import json
from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock, patch

import pytest
from bleak.exc import BleakError

from custom_components.ledzone_ble.client import LedZoneClient
from custom_components.ledzone_ble.const import (
    ADD_ZONE_CHAR_UUID,
    ALL_ZONES_CHAR_UUID,
    BRIGHTNESS_CHAR_UUID,
    EDIT_MODE_CHAR_UUID,
    EDIT_ZONE_CHAR_UUID,
    ENDPOINTS,
    STATUS_CHAR_UUID,
    ZONE_DETAILS_CHAR_UUID,
    ZONE_NAMES_CHAR_UUID,
)
from custom_components.ledzone_ble.orchestrator import SyncSettings, ZoneSyncOrchestrator

DEVICE_ADDRESS = "AA:BB:CC:DD:EE:FF"
DEVICE_NAME = "Strip-01"


def make_zone(
    key: str,
    name: str,
    start: int,
    end: int,
    is_active: Any = "true",
    mode: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Build a zone document as the firmware stores it."""
    return {
        "name": name,
        "key": key,
        "start": start,
        "end": end,
        "isActive": is_active,
        "currentMode": mode,
    }


class FakeFirmware:
    """In-memory strip controller speaking the JSON protocol."""

    def __init__(
        self,
        zones: list[dict[str, Any]] | None = None,
        is_on: bool = True,
        brightness: int = 128,
    ) -> None:
        self.is_on = is_on
        self.brightness = brightness
        self.zones: dict[str, dict[str, Any]] = {zone["key"]: zone for zone in zones or []}

        # ("read" | "write", characteristic uuid, payload)
        self.events: list[tuple[str, str, bytes]] = []
        self.fail_reads: set[str] = set()
        self.fail_writes: set[str] = set()
        self.hang_writes: set[str] = set()
        self.write_started = asyncio.Event()
        # Number of details reads that still show a zone as it was before an edit
        self.edit_lag = 0

        self._details_key: str | None = None
        self._pending_edits: dict[str, tuple[dict[str, Any], int]] = {}
        self._next_key = 1

    def writes_to(self, uuid: str) -> list[bytes]:
        return [data for op, char, data in self.events if op == "write" and char == uuid]

    def json_writes_to(self, uuid: str) -> list[dict[str, Any]]:
        return [json.loads(data) for data in self.writes_to(uuid)]

    def reads_of(self, uuid: str) -> int:
        return sum(1 for op, char, _ in self.events if op == "read" and char == uuid)

    # ----- GATT side -----

    def read(self, uuid: str) -> bytes:
        self.events.append(("read", uuid, b""))
        if uuid in self.fail_reads:
            raise BleakError(f"read of {uuid} failed")
        if uuid == STATUS_CHAR_UUID:
            return b"true" if self.is_on else b"false"
        if uuid == BRIGHTNESS_CHAR_UUID:
            return str(self.brightness).encode()
        if uuid == ALL_ZONES_CHAR_UUID:
            zones = list(self.zones.values())
            return json.dumps({"data": zones, "length": len(zones)}).encode()
        if uuid == ZONE_NAMES_CHAR_UUID:
            names = [
                {"name": zone["name"], "key": zone["key"], "isActive": zone["isActive"]}
                for zone in self.zones.values()
            ]
            return json.dumps({"data": names, "length": len(names)}).encode()
        if uuid == ZONE_DETAILS_CHAR_UUID:
            return self._read_details()
        raise BleakError(f"characteristic {uuid} is not readable")

    async def write(self, uuid: str, data: bytes) -> None:
        self.events.append(("write", uuid, data))
        if uuid in self.hang_writes:
            self.write_started.set()
            await asyncio.Event().wait()
        if uuid in self.fail_writes:
            raise BleakError(f"write to {uuid} failed")
        if uuid == STATUS_CHAR_UUID:
            self.is_on = data == b"true"
        elif uuid == BRIGHTNESS_CHAR_UUID:
            self.brightness = int(data)
        elif uuid == ADD_ZONE_CHAR_UUID:
            self._add_zone(json.loads(data))
        elif uuid == EDIT_ZONE_CHAR_UUID:
            self._edit_zone(json.loads(data))
        elif uuid == EDIT_MODE_CHAR_UUID:
            self._edit_mode(json.loads(data))
        elif uuid == ZONE_DETAILS_CHAR_UUID:
            self._details_key = data.decode()
        else:
            raise BleakError(f"characteristic {uuid} is not writable")

    # ----- Firmware behaviour -----

    def _add_zone(self, payload: dict[str, Any]) -> None:
        # The request key is ignored; the device keys zones itself
        key = f"dev{self._next_key}"
        self._next_key += 1
        self.zones[key] = make_zone(
            key, payload["name"], payload["start"], payload["end"], is_active="false"
        )

    def _edit_zone(self, payload: dict[str, Any]) -> None:
        if self.edit_lag:
            self._pending_edits[payload["key"]] = (payload, self.edit_lag)
            return
        self._apply_edit(payload)

    def _apply_edit(self, payload: dict[str, Any]) -> None:
        zone = self.zones.get(payload["key"])
        if zone is None:
            return
        zone.update(
            name=payload["name"],
            start=payload["start"],
            end=payload["end"],
            isActive=payload["isActive"],
        )

    def _edit_mode(self, payload: dict[str, Any]) -> None:
        zone = self.zones.get(payload["key"])
        if zone is None:
            return
        if payload["type"] == "editCurrentMode":
            zone["currentMode"] = {**payload["mode"], "start": zone["start"], "end": zone["end"]}
        elif payload["type"] == "setCurrentToNull":
            zone["currentMode"] = None

    def _read_details(self) -> bytes:
        key = self._details_key
        pending = self._pending_edits.get(key)
        if pending is not None:
            edit, remaining = pending
            if remaining > 0:
                self._pending_edits[key] = (edit, remaining - 1)
            else:
                del self._pending_edits[key]
                self._apply_edit(edit)
        zone = self.zones.get(key)
        if zone is None:
            return b"{}"
        return json.dumps(zone).encode()


class FakeCharacteristic:
    def __init__(self, uuid: str) -> None:
        self.uuid = uuid

    def __repr__(self) -> str:
        return f"FakeCharacteristic({self.uuid})"


class FakeService:
    def __init__(self, uuid: str, char_uuids: list[str]) -> None:
        self.uuid = uuid
        self.characteristics = {char: FakeCharacteristic(char) for char in char_uuids}

    def get_characteristic(self, uuid: str) -> FakeCharacteristic | None:
        return self.characteristics.get(uuid)


class FakeServices:
    def __init__(self, missing: set[str] | None = None) -> None:
        missing = missing or set()
        grouped: dict[str, list[str]] = {}
        for service_uuid, char_uuid in ENDPOINTS.values():
            chars = grouped.setdefault(service_uuid, [])
            if char_uuid not in missing:
                chars.append(char_uuid)
        self.services = {
            uuid: FakeService(uuid, chars) for uuid, chars in grouped.items() if uuid not in missing
        }

    def get_service(self, uuid: str) -> FakeService | None:
        return self.services.get(uuid)


class FakeBleakClient:
    """The slice of BleakClientWithServiceCache the client uses."""

    def __init__(self, firmware: FakeFirmware, services: FakeServices | None = None) -> None:
        self.firmware = firmware
        self.services = services or FakeServices()
        self.is_connected = True
        self.disconnected_callback = None
        self.disconnect_calls = 0

    async def read_gatt_char(self, char: FakeCharacteristic) -> bytearray:
        return bytearray(self.firmware.read(char.uuid))

    async def write_gatt_char(
        self, char: FakeCharacteristic, data: bytes, response: bool | None = None
    ) -> None:
        await self.firmware.write(char.uuid, bytes(data))

    async def disconnect(self) -> bool:
        self.disconnect_calls += 1
        self.is_connected = False
        return True

    def drop_link(self) -> None:
        """Simulate the radio link going away."""
        self.is_connected = False
        if self.disconnected_callback is not None:
            self.disconnected_callback(self)


@pytest.fixture
def firmware():
    """Firmware with one active zone running a static mode and one inactive zone."""
    return FakeFirmware(
        zones=[
            make_zone(
                "z1",
                "Desk",
                0,
                50,
                is_active="true",
                mode={"key": "m1", "type": "static", "speed": 1, "colors": [[255, 0, 0]]},
            ),
            make_zone("z2", "Shelf", 60, 100, is_active=False),
        ]
    )


@pytest.fixture
def gatt_client(firmware):
    return FakeBleakClient(firmware)


@pytest.fixture
def ble_device():
    return SimpleNamespace(address=DEVICE_ADDRESS, name=DEVICE_NAME)


@pytest.fixture
def mock_establish_connection(gatt_client):
    """Patch bleak_retry_connector so connecting hands out the fake GATT client."""

    async def _establish(client_class, device, name, disconnected_callback=None, **kwargs):
        gatt_client.disconnected_callback = disconnected_callback
        gatt_client.is_connected = True
        return gatt_client

    mock = AsyncMock(side_effect=_establish)
    with patch("custom_components.ledzone_ble.client.establish_connection", mock):
        yield mock


@pytest.fixture
def mock_scanner(ble_device):
    """Patch BleakScanner so scans find the fake strip."""
    with patch("custom_components.ledzone_ble.client.BleakScanner") as scanner:
        scanner.find_device_by_address = AsyncMock(return_value=ble_device)
        scanner.find_device_by_filter = AsyncMock(return_value=ble_device)
        yield scanner


@pytest.fixture
def client(mock_establish_connection, mock_scanner):
    return LedZoneClient(
        DEVICE_ADDRESS,
        name=DEVICE_NAME,
        operation_timeout=2.0,
        scan_timeout=1.0,
        zone_query_delay=0,
    )


@pytest.fixture
def settings():
    """Settings without settle delays or error expiry."""
    return SyncSettings(
        zone_fetch_pacing=0,
        connect_settle=0,
        add_zone_settle=0,
        edit_zone_settle=0,
        mode_settle=0,
        error_display_duration=None,
    )


@pytest.fixture
def orchestrator(client, settings):
    return ZoneSyncOrchestrator(client, settings)
