"""Zone synchronization for LED Zone strip controllers.

The orchestrator is the only owner of the mirrored device state. It turns
user intents into sequences of client calls, waits out the firmware's
settle times, and publishes a new immutable ``DeviceState`` after every
step. Failures never escape a workflow: each one sets the error slot to a
fixed message, adds an activity log entry and returns False.
"""
from __future__ import annotations

import asyncio
import logging
import weakref
from dataclasses import dataclass, replace
from typing import Any, Callable, Coroutine, Mapping, Sequence

from .client import LedZoneClient
from .const import (
    CONF_ADD_ZONE_SETTLE,
    CONF_EDIT_ZONE_SETTLE,
    CONF_LED_COUNT,
    CONF_MODE_SETTLE,
    CONF_RECONCILE_ATTEMPTS,
    CONF_ZONE_FETCH_PACING,
    DEFAULT_ADD_ZONE_SETTLE,
    DEFAULT_CONNECT_SETTLE,
    DEFAULT_EDIT_ZONE_SETTLE,
    DEFAULT_ERROR_DISPLAY_DURATION,
    DEFAULT_LED_COUNT,
    DEFAULT_MODE_SETTLE,
    DEFAULT_RECONCILE_ATTEMPTS,
    DEFAULT_ZONE_FETCH_PACING,
    MSG_ADD_ZONE_FAILED,
    MSG_AUTO_CONNECT_FAILED,
    MSG_CLEAR_MODE_FAILED,
    MSG_CONNECTION_FAILED,
    MSG_EDIT_ZONE_FAILED,
    MSG_LOAD_DETAILS_FAILED,
    MSG_LOAD_NAMES_FAILED,
    MSG_LOAD_ZONES_FAILED,
    MSG_SET_MODE_FAILED,
    MSG_WRITE_FAILED,
    MSG_ZONE_OVERLAP,
    ModeType,
)
from .exceptions import InvalidRequest, LedZoneError, UnsupportedPlatform
from .models import (
    Color,
    ConnectResult,
    DeviceState,
    Zone,
    clamp_byte,
    find_overlapping_zone,
    is_valid_range,
    upsert_zone,
)

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class SyncSettings:
    """Tunable timing and geometry for the orchestrator.

    The settle delays are heuristics: the firmware gives no completion
    signal, so reads after writes are simply postponed.
    """

    led_count: int = DEFAULT_LED_COUNT
    zone_fetch_pacing: float = DEFAULT_ZONE_FETCH_PACING
    connect_settle: float = DEFAULT_CONNECT_SETTLE
    add_zone_settle: float = DEFAULT_ADD_ZONE_SETTLE
    edit_zone_settle: float = DEFAULT_EDIT_ZONE_SETTLE
    mode_settle: float = DEFAULT_MODE_SETTLE
    reconcile_attempts: int = DEFAULT_RECONCILE_ATTEMPTS
    error_display_duration: float | None = DEFAULT_ERROR_DISPLAY_DURATION

    @classmethod
    def from_options(cls, options: Mapping[str, Any]) -> SyncSettings:
        """Build settings from config entry options, defaulting missing keys."""
        return cls(
            led_count=int(options.get(CONF_LED_COUNT, DEFAULT_LED_COUNT)),
            zone_fetch_pacing=float(options.get(CONF_ZONE_FETCH_PACING, DEFAULT_ZONE_FETCH_PACING)),
            add_zone_settle=float(options.get(CONF_ADD_ZONE_SETTLE, DEFAULT_ADD_ZONE_SETTLE)),
            edit_zone_settle=float(options.get(CONF_EDIT_ZONE_SETTLE, DEFAULT_EDIT_ZONE_SETTLE)),
            mode_settle=float(options.get(CONF_MODE_SETTLE, DEFAULT_MODE_SETTLE)),
            reconcile_attempts=max(
                1, int(options.get(CONF_RECONCILE_ATTEMPTS, DEFAULT_RECONCILE_ATTEMPTS))
            ),
        )


class ZoneSyncOrchestrator:
    """Sequences client calls into workflows and owns the device state."""

    def __init__(self, client: LedZoneClient, settings: SyncSettings | None = None) -> None:
        self._client = client
        self._settings = settings or SyncSettings()
        self._state = DeviceState()

        self._callbacks: list[Callable[[], None]] = []
        self._background_tasks: set[asyncio.Task] = set()
        self._zone_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )
        self._error_timer: asyncio.TimerHandle | None = None

        client.register_disconnect_callback(self._on_link_lost)

    @property
    def state(self) -> DeviceState:
        """Return the current immutable state snapshot."""
        return self._state

    @property
    def settings(self) -> SyncSettings:
        return self._settings

    @property
    def client(self) -> LedZoneClient:
        return self._client

    def register_callback(self, callback_fn: Callable[[], None]) -> None:
        """Register a callback for state updates."""
        self._callbacks.append(callback_fn)

    def unregister_callback(self, callback_fn: Callable[[], None]) -> None:
        """Unregister a callback."""
        if callback_fn in self._callbacks:
            self._callbacks.remove(callback_fn)

    def _notify_callbacks(self) -> None:
        for callback_fn in self._callbacks:
            try:
                callback_fn()
            except Exception as ex:
                _LOGGER.exception("Error in callback: %s", ex)

    # ----- State helpers -----

    def _set_state(self, state: DeviceState) -> None:
        self._state = state
        self._notify_callbacks()

    def _update(self, log: str | None = None, **changes: Any) -> None:
        state = replace(self._state, **changes) if changes else self._state
        if log is not None:
            state = state.with_log(log)
        self._set_state(state)

    def _fail(self, message: str, ex: Exception | None = None, **changes: Any) -> bool:
        """Record a failed workflow: error slot, activity log, Python log."""
        if ex is not None:
            _LOGGER.warning("%s (%s: %s)", message, type(ex).__name__, ex)
        else:
            _LOGGER.warning("%s", message)
        self._update(log=f"Error: {message}", error=message, **changes)
        self._schedule_error_expiry(message)
        return False

    def _schedule_error_expiry(self, message: str) -> None:
        if self._error_timer:
            self._error_timer.cancel()
            self._error_timer = None
        duration = self._settings.error_display_duration
        if duration is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Set from outside the event loop, nothing can expire it
            return
        self._error_timer = loop.call_later(duration, self._expire_error, message)

    def _expire_error(self, message: str) -> None:
        self._error_timer = None
        if self._state.error == message:
            self._update(error=None)

    def _create_background_task(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)
        return task

    async def wait_for_background_tasks(self) -> None:
        """Wait until work started in the background (e.g. post-connect loading) is done."""
        while self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)

    # ----- Presentation-only reducers -----

    def set_supports_ble(self, supported: bool) -> None:
        self._update(supports_ble=supported)

    def set_brightness_local(self, brightness: int) -> None:
        """Preview a brightness without writing it (slider drag)."""
        self._update(brightness=clamp_byte(brightness))

    def set_error(self, message: str) -> None:
        self._update(error=message)
        self._schedule_error_expiry(message)

    def clear_error(self) -> None:
        if self._error_timer:
            self._error_timer.cancel()
            self._error_timer = None
        self._update(error=None)

    def select_zone(self, key: str | None) -> None:
        """Select a zone for editing; its details arrive with the next refresh."""
        self._update(selected_zone_key=key, selected_zone_details=None)

    # ----- Connection workflows -----

    async def connect(self) -> bool:
        """Scan for the strip and connect; zone loading continues in the background."""
        return await self._connect(self._client.connect, MSG_CONNECTION_FAILED, "Connected to")

    async def auto_connect(self) -> bool:
        """Reconnect to the previously authorized strip without scanning for others."""
        return await self._connect(
            self._client.auto_connect, MSG_AUTO_CONNECT_FAILED, "Restored connection to"
        )

    async def _connect(
        self,
        connect_fn: Callable[[], Coroutine[Any, Any, ConnectResult]],
        failure_message: str,
        log_prefix: str,
    ) -> bool:
        self._update(is_connecting=True, is_connected=False, error=None)
        try:
            result = await connect_fn()
        except UnsupportedPlatform as ex:
            return self._fail(
                failure_message, ex, is_connecting=False, is_connected=False, supports_ble=False
            )
        except LedZoneError as ex:
            return self._fail(failure_message, ex, is_connecting=False, is_connected=False)

        self._update(
            log=f"{log_prefix} {result.device_name}",
            supports_ble=True,
            is_connecting=False,
            is_connected=True,
            is_on=result.is_on,
            brightness=result.brightness,
        )
        self._create_background_task(self._load_after_connect())
        return True

    async def _load_after_connect(self) -> None:
        await asyncio.sleep(self._settings.connect_settle)
        await self.load_all_zone_details()

    async def disconnect(self) -> None:
        """Close the session and stop background work."""
        for task in list(self._background_tasks):
            task.cancel()
        await self.wait_for_background_tasks()
        await self._client.disconnect()
        if self._state.is_connected or self._state.is_connecting:
            self._update(
                log="Disconnected from device.", is_connected=False, is_connecting=False
            )

    async def stop(self) -> None:
        """Disconnect and drop all listeners."""
        if self._error_timer:
            self._error_timer.cancel()
            self._error_timer = None
        await self.disconnect()
        self._client.unregister_disconnect_callback(self._on_link_lost)
        self._callbacks.clear()

    def _on_link_lost(self) -> None:
        self._update(log="Disconnected from device.", is_connected=False, is_connecting=False)

    # ----- Power and brightness -----

    async def set_power(self, turn_on: bool) -> bool:
        try:
            await self._client.set_power(turn_on)
        except LedZoneError as ex:
            return self._fail(MSG_WRITE_FAILED, ex)
        self._update(log="Power on" if turn_on else "Power off", is_on=turn_on)
        return True

    async def set_brightness(self, brightness: int) -> bool:
        value = clamp_byte(brightness)
        try:
            await self._client.set_brightness(value)
        except LedZoneError as ex:
            return self._fail(MSG_WRITE_FAILED, ex)
        self._update(log=f"Brightness {value}", brightness=value)
        return True

    # ----- Zone loading -----

    async def refresh_zones(self) -> bool:
        """Replace the zone list from the all-zones listing."""
        try:
            zones = await self._client.get_zones()
        except LedZoneError as ex:
            return self._fail(MSG_LOAD_ZONES_FAILED, ex)
        self._update(log=f"Loaded {len(zones)} zones.", zones=tuple(zones))
        return True

    async def load_all_zone_details(self) -> bool:
        """Fetch the names listing, then every zone's details one by one.

        The zone list and the name list are replaced together once every
        fetch succeeded; a failure part way through keeps the old lists.
        """
        self._update(is_loading_zones=True)
        zones: list[Zone] = []
        try:
            names = await self._client.get_zone_names()
            for entry in names:
                zones.append(await self._client.get_zone_details(entry.key))
                # Pace requests, the device drops back-to-back queries
                await asyncio.sleep(self._settings.zone_fetch_pacing)
        except LedZoneError as ex:
            return self._fail(MSG_LOAD_DETAILS_FAILED, ex, is_loading_zones=False)
        except asyncio.CancelledError:
            self._update(is_loading_zones=False)
            raise

        changes: dict[str, Any] = {}
        selected = self._state.selected_zone_key
        if selected is not None:
            details = next((zone for zone in zones if zone.key == selected), None)
            if details is not None:
                changes["selected_zone_details"] = details
        self._update(
            log=f"Loaded details for {len(zones)} zones.",
            zones=tuple(zones),
            zone_names=tuple(zone.as_name_entry() for zone in zones),
            is_loading_zones=False,
            **changes,
        )
        return True

    async def refresh_zone_names(self) -> bool:
        try:
            names = await self._client.get_zone_names()
        except LedZoneError as ex:
            return self._fail(MSG_LOAD_NAMES_FAILED, ex)
        self._update(log=f"Loaded {len(names)} zone names.", zone_names=tuple(names))
        return True

    async def refresh_zone_details(self, key: str) -> bool:
        """Fetch one zone and merge it into the zone list (insert or replace)."""
        try:
            zone = await self._client.get_zone_details(key)
        except LedZoneError as ex:
            return self._fail(MSG_LOAD_DETAILS_FAILED, ex)
        self._merge_zone(zone, log=f"Loaded details for {zone.name}")
        return True

    def _merge_zone(self, zone: Zone, log: str | None = None) -> None:
        changes: dict[str, Any] = {"zones": upsert_zone(self._state.zones, zone)}
        if self._state.selected_zone_key == zone.key:
            changes["selected_zone_details"] = zone
        self._update(log=log, **changes)

    # ----- Zone editing -----

    async def add_zone(self, name: str, start: int, end: int) -> bool:
        """Create a zone, let the device assign its key, then reload every zone."""
        if not name or not is_valid_range(start, end, self._settings.led_count):
            return self._fail(
                MSG_ADD_ZONE_FAILED,
                InvalidRequest(f"Invalid zone {name!r} [{start}, {end})"),
            )
        try:
            await self._client.add_zone(name, start, end)
        except LedZoneError as ex:
            return self._fail(MSG_ADD_ZONE_FAILED, ex)
        self._update(log=f"Added zone {name}")

        await asyncio.sleep(self._settings.add_zone_settle)
        await self.load_all_zone_details()
        return True

    def _zone_lock(self, key: str) -> asyncio.Lock:
        # Dropped once no edit holds or waits on it
        return self._zone_locks.setdefault(key, asyncio.Lock())

    async def edit_zone(
        self, key: str, name: str, start: int, end: int, is_active: bool
    ) -> bool:
        """Edit a zone optimistically, then reconcile with the device.

        The edit shows up in ``state`` before the write. If the write or
        the follow-up reads fail (or the task is cancelled), ``zones`` and
        ``zone_names`` go back to the snapshot taken before the edit.
        Edits to the same key run one after another.
        """
        async with self._zone_lock(key):
            previous = self._state

            if not name or not is_valid_range(start, end, self._settings.led_count):
                return self._fail(
                    MSG_EDIT_ZONE_FAILED,
                    InvalidRequest(f"Invalid zone {name!r} [{start}, {end})"),
                )
            if is_active:
                conflict = find_overlapping_zone(previous.zones, start, end, exclude_key=key)
                if conflict is not None:
                    _LOGGER.debug("Zone %s would overlap active zone %s", key, conflict.key)
                    return self._fail(MSG_ZONE_OVERLAP.format(name=name, start=start, end=end))

            self._set_state(
                _apply_zone_edit(previous, key, name, start, end, is_active)
            )
            try:
                await self._client.edit_zone(key, name, start, end, is_active)
                await asyncio.sleep(self._settings.edit_zone_settle)
                names = await self._client.get_zone_names()
                self._update(zone_names=tuple(names))
                zone = await self._reconcile_zone(key, name, start, end, is_active)
            except LedZoneError as ex:
                return self._fail(
                    MSG_EDIT_ZONE_FAILED,
                    ex,
                    zones=previous.zones,
                    zone_names=previous.zone_names,
                )
            except asyncio.CancelledError:
                self._update(zones=previous.zones, zone_names=previous.zone_names)
                raise

            self._merge_zone(zone, log=f"Updated zone {zone.name}")
            return True

    async def _reconcile_zone(
        self, key: str, name: str, start: int, end: int, is_active: bool
    ) -> Zone:
        """Read the zone back until it reflects the edit or attempts run out.

        The last reading wins either way; the device is the source of truth.
        """
        attempts = self._settings.reconcile_attempts
        backoff = self._settings.edit_zone_settle
        for attempt in range(1, attempts + 1):
            zone = await self._client.get_zone_details(key)
            if (zone.name, zone.start, zone.end, zone.is_active) == (name, start, end, is_active):
                return zone
            if attempt == attempts:
                break
            _LOGGER.debug(
                "Zone %s not settled yet (attempt %d/%d), retrying in %.2fs",
                key, attempt, attempts, backoff,
            )
            await asyncio.sleep(backoff)
            backoff *= 2
        _LOGGER.debug("Accepting device state for zone %s after %d reads", key, attempts)
        return zone

    async def toggle_zone(self, key: str) -> bool:
        """Flip a known zone's active flag."""
        zone = self._state.find_zone(key)
        if zone is None:
            return self._fail(MSG_EDIT_ZONE_FAILED, InvalidRequest(f"Unknown zone {key}"))
        return await self.edit_zone(zone.key, zone.name, zone.start, zone.end, not zone.is_active)

    # ----- Modes -----

    async def set_zone_mode(
        self,
        zone_key: str,
        mode_type: ModeType | str,
        speed: int,
        colors: Sequence[Color],
    ) -> bool:
        """Assign a mode, wait for the device to apply it, refresh the selected zone."""
        try:
            await self._client.set_zone_mode(zone_key, mode_type, speed, list(colors))
        except LedZoneError as ex:
            return self._fail(MSG_SET_MODE_FAILED, ex)
        type_name = mode_type.value if isinstance(mode_type, ModeType) else mode_type
        self._update(log=f"Set {type_name} mode on {zone_key}")
        await self._refresh_selected_after_settle(zone_key)
        return True

    async def clear_zone_mode(self, zone_key: str) -> bool:
        try:
            await self._client.clear_zone_mode(zone_key)
        except LedZoneError as ex:
            return self._fail(MSG_CLEAR_MODE_FAILED, ex)
        self._update(log=f"Cleared mode on {zone_key}")
        await self._refresh_selected_after_settle(zone_key)
        return True

    async def _refresh_selected_after_settle(self, zone_key: str) -> None:
        await asyncio.sleep(self._settings.mode_settle)
        if self._state.selected_zone_key == zone_key:
            await self.refresh_zone_details(zone_key)


def _apply_zone_edit(
    state: DeviceState, key: str, name: str, start: int, end: int, is_active: bool
) -> DeviceState:
    """Return ``state`` with the edit applied to both zone views."""
    zones = tuple(
        replace(zone, name=name, start=start, end=end, is_active=is_active)
        if zone.key == key
        else zone
        for zone in state.zones
    )
    zone_names = tuple(
        replace(entry, name=name, is_active=is_active) if entry.key == key else entry
        for entry in state.zone_names
    )
    return replace(state, zones=zones, zone_names=zone_names)
