"""BLE session for LED Zone strip controllers.

Owns the single GATT connection, resolves the three service groups and
exposes one coroutine per device capability. The firmware handles one
request at a time and never acknowledges JSON writes, so every operation
runs under one lock and each wireless call is bounded by a timeout.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Callable

from bleak import BleakScanner
from bleak.backends.characteristic import BleakGATTCharacteristic
from bleak.backends.device import BLEDevice
from bleak.backends.scanner import AdvertisementData
from bleak.backends.service import BleakGATTServiceCollection
from bleak.exc import BleakError
from bleak_retry_connector import BleakClientWithServiceCache, establish_connection

from .const import (
    DEFAULT_NAME,
    DEFAULT_OPERATION_TIMEOUT,
    DEFAULT_SCAN_TIMEOUT,
    DEFAULT_ZONE_QUERY_DELAY,
    ENDPOINTS,
    MAIN_SERVICE_UUID,
    Endpoint,
    ModeType,
)
from .exceptions import LedZoneError, NotConnected, TransportFailure, UnsupportedPlatform
from .models import Color, ConnectResult, Zone, ZoneNameEntry
from . import protocol

_LOGGER = logging.getLogger(__name__)

# Errors bleak and the OS raise for a broken link
TRANSPORT_EXCEPTIONS = (BleakError, EOFError, OSError)

# Lowercased fragments of the errors bleak backends raise when the host has no
# usable adapter at all
ADAPTER_MISSING_MESSAGES = (
    "no bluetooth adapters",
    "bluetooth adapter not found",
    "bluetooth device is turned off",
    "bluetooth is unsupported",
    "ble is unsupported",
)


def _advertises_main_service(device: BLEDevice, adv: AdvertisementData) -> bool:
    return MAIN_SERVICE_UUID in [uuid.lower() for uuid in adv.service_uuids]


def _scan_failure(ex: Exception) -> TransportFailure:
    """Map a scanner error to UnsupportedPlatform only when no adapter exists."""
    # BlueZ without a D-Bus system socket
    if isinstance(ex, FileNotFoundError):
        return UnsupportedPlatform(f"Bluetooth is not available: {ex}")
    message = str(ex).lower()
    if isinstance(ex, BleakError) and any(part in message for part in ADAPTER_MISSING_MESSAGES):
        return UnsupportedPlatform(f"Bluetooth is not available: {ex}")
    return TransportFailure(f"Scanning failed: {ex}")


class LedZoneClient:
    """Protocol client for one LED Zone strip controller."""

    def __init__(
        self,
        address: str | None = None,
        *,
        name: str | None = None,
        ble_device_lookup: Callable[[str], BLEDevice | None] | None = None,
        operation_timeout: float = DEFAULT_OPERATION_TIMEOUT,
        scan_timeout: float = DEFAULT_SCAN_TIMEOUT,
        zone_query_delay: float = DEFAULT_ZONE_QUERY_DELAY,
    ) -> None:
        """Initialize the client.

        Args:
            address: BLE address of a previously authorized device, if any
            name: Display name used in logs
            ble_device_lookup: Resolves an address to a BLEDevice without scanning
            operation_timeout: Maximum seconds for a single wireless call
            scan_timeout: Maximum seconds to wait for the device during connect
            zone_query_delay: Seconds between the details query write and read
        """
        self._address = address
        self._name = name or address or DEFAULT_NAME
        self._ble_device_lookup = ble_device_lookup
        self._operation_timeout = operation_timeout
        self._scan_timeout = scan_timeout
        self._zone_query_delay = zone_query_delay

        self._client: BleakClientWithServiceCache | None = None
        self._ble_device: BLEDevice | None = None
        self._chars: dict[Endpoint, BleakGATTCharacteristic] = {}
        self._lock = asyncio.Lock()
        self._expected_disconnect = False

        self._disconnect_callbacks: list[Callable[[], None]] = []

    @property
    def address(self) -> str | None:
        """Return the BLE address of the bound (or last known) device."""
        return self._address

    @property
    def name(self) -> str:
        return self._name

    @property
    def is_connected(self) -> bool:
        return bool(self._client and self._client.is_connected and self._chars)

    def register_disconnect_callback(self, callback_fn: Callable[[], None]) -> None:
        """Register a callback for unexpected link loss."""
        self._disconnect_callbacks.append(callback_fn)

    def unregister_disconnect_callback(self, callback_fn: Callable[[], None]) -> None:
        if callback_fn in self._disconnect_callbacks:
            self._disconnect_callbacks.remove(callback_fn)

    # ----- Session -----

    async def connect(self) -> ConnectResult:
        """Find the strip by scanning and bind a fresh session to it.

        With a known address only that device is accepted, otherwise the
        first controller advertising the main service is used.
        """
        try:
            if self._address:
                _LOGGER.debug("Scanning for %s", self._address)
                device = await BleakScanner.find_device_by_address(
                    self._address, timeout=self._scan_timeout
                )
            else:
                _LOGGER.debug("Scanning for any device advertising %s", MAIN_SERVICE_UUID)
                device = await BleakScanner.find_device_by_filter(
                    _advertises_main_service, timeout=self._scan_timeout
                )
        except TRANSPORT_EXCEPTIONS as ex:
            raise _scan_failure(ex) from ex

        if device is None:
            raise TransportFailure("No device selected.")
        return await self._bind_device(device)

    async def auto_connect(self) -> ConnectResult:
        """Re-bind to the previously authorized device without scanning for others."""
        if not self._address:
            raise TransportFailure("No known devices found.")

        device: BLEDevice | None = None
        if self._ble_device_lookup is not None:
            device = self._ble_device_lookup(self._address)
        if device is None and self._ble_device is not None:
            device = self._ble_device
        if device is None:
            try:
                device = await BleakScanner.find_device_by_address(
                    self._address, timeout=self._scan_timeout
                )
            except TRANSPORT_EXCEPTIONS as ex:
                raise _scan_failure(ex) from ex
        if device is None:
            raise TransportFailure(f"Known device {self._address} is not reachable.")
        return await self._bind_device(device)

    async def _bind_device(self, device: BLEDevice) -> ConnectResult:
        """Connect to ``device``, resolve every endpoint and read the initial state."""
        async with self._lock:
            await self._disconnect_client()

            _LOGGER.debug("Connecting to %s (%s)", device.name, device.address)
            self._ble_device = device
            try:
                client = await asyncio.wait_for(
                    establish_connection(
                        BleakClientWithServiceCache,
                        device,
                        device.name or device.address,
                        disconnected_callback=self._on_disconnected,
                        use_services_cache=True,
                        ble_device_callback=lambda: self._ble_device,
                    ),
                    timeout=self._operation_timeout * 3,
                )
            except asyncio.TimeoutError as ex:
                _LOGGER.error("Timed out connecting to %s", device.address)
                raise TransportFailure(f"Timed out connecting to {device.address}") from ex
            except TRANSPORT_EXCEPTIONS as ex:
                _LOGGER.error("Failed to connect to %s: %s", device.address, ex)
                raise TransportFailure(f"Unable to connect to {device.address}: {ex}") from ex

            self._client = client
            self._expected_disconnect = False
            try:
                self._chars = self._resolve_characteristics(client.services)
                is_on = protocol.parse_power(await self._read(Endpoint.STATUS))
                brightness = protocol.parse_brightness(await self._read(Endpoint.BRIGHTNESS))
            except (LedZoneError, asyncio.CancelledError):
                await self._disconnect_client()
                raise

            self._address = device.address
            if device.name:
                self._name = device.name
            _LOGGER.info("Connected to %s (%s)", self._name, self._address)
            return ConnectResult(
                is_on=is_on,
                brightness=brightness,
                device_name=device.name or DEFAULT_NAME,
            )

    def _resolve_characteristics(
        self, services: BleakGATTServiceCollection
    ) -> dict[Endpoint, BleakGATTCharacteristic]:
        """Resolve every endpoint to its characteristic, or fail."""
        chars: dict[Endpoint, BleakGATTCharacteristic] = {}
        for endpoint, (service_uuid, char_uuid) in ENDPOINTS.items():
            service = services.get_service(service_uuid)
            if service is None:
                raise TransportFailure(f"Service {service_uuid} not found")
            char = service.get_characteristic(char_uuid)
            if char is None:
                raise TransportFailure(
                    f"Characteristic {char_uuid} not found in service {service_uuid}"
                )
            _LOGGER.debug("Resolved %s endpoint: %s", endpoint.value, char)
            chars[endpoint] = char
        return chars

    async def disconnect(self) -> None:
        """Close the session."""
        async with self._lock:
            await self._disconnect_client()

    async def _disconnect_client(self) -> None:
        client = self._client
        self._expected_disconnect = True
        self._client = None
        self._chars = {}
        if client and client.is_connected:
            _LOGGER.debug("Disconnecting from %s", self._name)
            try:
                await client.disconnect()
            except TRANSPORT_EXCEPTIONS as ex:
                _LOGGER.debug("Error while disconnecting from %s: %s", self._name, ex)
            _LOGGER.info("Disconnected from %s", self._name)

    def _on_disconnected(self, client: BleakClientWithServiceCache) -> None:
        """Handle link loss reported by bleak."""
        if self._expected_disconnect or client is not self._client:
            _LOGGER.debug("Disconnected from %s", self._name)
            return
        _LOGGER.warning("%s unexpectedly disconnected", self._name)
        self._client = None
        self._chars = {}
        for callback_fn in self._disconnect_callbacks:
            try:
                callback_fn()
            except Exception as ex:
                _LOGGER.exception("Error in disconnect callback: %s", ex)

    # ----- Raw I/O -----

    def _require(self, endpoint: Endpoint) -> tuple[BleakClientWithServiceCache, BleakGATTCharacteristic]:
        if self._client is None or not self._client.is_connected or endpoint not in self._chars:
            raise NotConnected("Device is not connected.")
        return self._client, self._chars[endpoint]

    async def _read(self, endpoint: Endpoint) -> bytes:
        client, char = self._require(endpoint)
        try:
            data = bytes(
                await asyncio.wait_for(
                    client.read_gatt_char(char), timeout=self._operation_timeout
                )
            )
        except asyncio.TimeoutError as ex:
            raise TransportFailure(f"Timed out reading {endpoint.value}") from ex
        except TRANSPORT_EXCEPTIONS as ex:
            raise TransportFailure(f"Failed to read {endpoint.value}: {ex}") from ex
        _LOGGER.debug("Read %d bytes from %s: %r", len(data), endpoint.value, data)
        return data

    async def _write(self, endpoint: Endpoint, payload: bytes) -> None:
        client, char = self._require(endpoint)
        _LOGGER.debug("Writing %d bytes to %s: %r", len(payload), endpoint.value, payload)
        try:
            await asyncio.wait_for(
                client.write_gatt_char(char, payload, response=True),
                timeout=self._operation_timeout,
            )
        except asyncio.TimeoutError as ex:
            raise TransportFailure(f"Timed out writing {endpoint.value}") from ex
        except TRANSPORT_EXCEPTIONS as ex:
            raise TransportFailure(f"Failed to write {endpoint.value}: {ex}") from ex

    # ----- Public command methods -----

    async def set_power(self, turn_on: bool) -> None:
        async with self._lock:
            await self._write(Endpoint.STATUS, protocol.build_power_request(turn_on))

    async def set_brightness(self, brightness: int) -> None:
        payload = protocol.build_brightness_request(brightness)
        async with self._lock:
            await self._write(Endpoint.BRIGHTNESS, payload)

    async def get_power(self) -> bool:
        async with self._lock:
            return protocol.parse_power(await self._read(Endpoint.STATUS))

    async def get_brightness(self) -> int:
        async with self._lock:
            return protocol.parse_brightness(await self._read(Endpoint.BRIGHTNESS))

    async def get_zones(self) -> list[Zone]:
        """Read the full zone listing."""
        async with self._lock:
            return protocol.parse_zone_list(await self._read(Endpoint.ALL_ZONES))

    async def add_zone(self, name: str, start: int, end: int) -> None:
        """Request a new zone. The device assigns its key; list zones to learn it."""
        payload = protocol.build_add_zone_request(name, start, end)
        async with self._lock:
            await self._write(Endpoint.ADD_ZONE, payload)

    async def edit_zone(
        self, key: str, name: str, start: int, end: int, is_active: bool
    ) -> None:
        payload = protocol.build_edit_zone_request(key, name, start, end, is_active)
        async with self._lock:
            await self._write(Endpoint.EDIT_ZONE, payload)

    async def set_zone_mode(
        self, zone_key: str, mode_type: ModeType | str, speed: int, colors: list[Color]
    ) -> None:
        payload = protocol.build_set_mode_request(zone_key, mode_type, speed, colors)
        async with self._lock:
            await self._write(Endpoint.EDIT_MODE, payload)

    async def clear_zone_mode(self, zone_key: str) -> None:
        payload = protocol.build_clear_mode_request(zone_key)
        async with self._lock:
            await self._write(Endpoint.EDIT_MODE, payload)

    async def get_zone_names(self) -> list[ZoneNameEntry]:
        """Read the lightweight name/active listing."""
        async with self._lock:
            return protocol.parse_zone_names(await self._read(Endpoint.ZONE_NAMES))

    async def get_zone_details(self, key: str) -> Zone:
        """Query one zone: write its key, wait, then read the zone document back."""
        query = protocol.build_zone_details_query(key)
        async with self._lock:
            await self._write(Endpoint.ZONE_DETAILS, query)
            # No completion signal from the device
            await asyncio.sleep(self._zone_query_delay)
            zone = protocol.parse_zone(await self._read(Endpoint.ZONE_DETAILS))
        if zone.key != key:
            _LOGGER.warning("Asked for zone %s but the device answered with %s", key, zone.key)
        return zone
