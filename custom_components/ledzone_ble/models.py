"""Immutable value types mirroring the strip controller state.

Every type here is frozen: the orchestrator never mutates a snapshot, it
builds a new one with ``dataclasses.replace`` and keeps the old reference
around when it needs to roll back.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Iterable, Sequence

from .const import DEFAULT_BRIGHTNESS, LOG_LIMIT, ModeType

Color = tuple[int, int, int]


def clamp_byte(value: int | float) -> int:
    """Clamp a number into 0-255."""
    return min(255, max(0, int(value)))


def clamp_color(color: Sequence[int | float]) -> Color:
    """Clamp all three components of a color into 0-255."""
    red, green, blue = color
    return (clamp_byte(red), clamp_byte(green), clamp_byte(blue))


@dataclass(frozen=True)
class Mode:
    """A lighting pattern assigned to a zone."""

    key: str
    type: ModeType
    speed: int
    colors: tuple[Color, ...] = ()

    @property
    def color_length(self) -> int:
        """Return the number of colors, as sent in ``colorLength``."""
        return len(self.colors)


@dataclass(frozen=True)
class ZoneNameEntry:
    """Lightweight projection of a zone from the names listing."""

    name: str
    key: str
    is_active: bool


@dataclass(frozen=True)
class Zone:
    """A named pixel range [start, end) on the strip."""

    name: str
    key: str
    start: int
    end: int
    is_active: bool
    current_mode: Mode | None = None

    def overlaps(self, start: int, end: int) -> bool:
        """Return True if [start, end) shares a pixel with this zone."""
        return start < self.end and self.start < end

    def as_name_entry(self) -> ZoneNameEntry:
        return ZoneNameEntry(name=self.name, key=self.key, is_active=self.is_active)


@dataclass(frozen=True)
class ConnectResult:
    """Initial device state read while binding a session."""

    is_on: bool
    brightness: int
    device_name: str


@dataclass(frozen=True)
class DeviceState:
    """Snapshot of everything the orchestrator mirrors from the device."""

    supports_ble: bool = False
    is_connected: bool = False
    is_connecting: bool = False
    is_on: bool = False
    brightness: int = DEFAULT_BRIGHTNESS
    zones: tuple[Zone, ...] = ()
    zone_names: tuple[ZoneNameEntry, ...] = ()
    selected_zone_key: str | None = None
    selected_zone_details: Zone | None = None
    is_loading_zones: bool = False
    error: str | None = None
    logs: tuple[str, ...] = ()

    def with_log(self, message: str) -> DeviceState:
        """Return a copy with ``message`` prepended to the bounded log."""
        return replace(self, logs=(message, *self.logs)[:LOG_LIMIT])

    def find_zone(self, key: str) -> Zone | None:
        for zone in self.zones:
            if zone.key == key:
                return zone
        return None


def upsert_zone(zones: Iterable[Zone], zone: Zone) -> tuple[Zone, ...]:
    """Replace the zone with the same key, or append it."""
    result = list(zones)
    for index, existing in enumerate(result):
        if existing.key == zone.key:
            result[index] = zone
            return tuple(result)
    result.append(zone)
    return tuple(result)


def find_overlapping_zone(
    zones: Iterable[Zone], start: int, end: int, exclude_key: str | None = None
) -> Zone | None:
    """Return the first active zone (other than ``exclude_key``) overlapping [start, end)."""
    for zone in zones:
        if zone.is_active and zone.key != exclude_key and zone.overlaps(start, end):
            return zone
    return None


def is_valid_range(start: int, end: int, led_count: int) -> bool:
    """Check 0 <= start < end <= led_count."""
    return 0 <= start < end <= led_count


def free_ranges(zones: Iterable[Zone], led_count: int) -> list[tuple[int, int]]:
    """List contiguous [start, end) pixel ranges not covered by an active zone."""
    occupied = [False] * led_count
    for zone in zones:
        if zone.is_active:
            for pixel in range(max(0, zone.start), min(led_count, zone.end)):
                occupied[pixel] = True

    ranges: list[tuple[int, int]] = []
    range_start: int | None = None
    for pixel, used in enumerate(occupied):
        if not used and range_start is None:
            range_start = pixel
        elif used and range_start is not None:
            ranges.append((range_start, pixel))
            range_start = None
    if range_start is not None:
        ranges.append((range_start, led_count))
    return ranges
