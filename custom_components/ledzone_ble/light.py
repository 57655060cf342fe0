"""Light platform for LED Zone BLE integration."""
from __future__ import annotations

import logging
from typing import Any

import voluptuous as vol

from homeassistant.components.light import ATTR_BRIGHTNESS, ColorMode, LightEntity
from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant, callback
from homeassistant.exceptions import HomeAssistantError
from homeassistant.helpers import config_validation as cv, entity_platform
from homeassistant.helpers.device_registry import DeviceInfo
from homeassistant.helpers.entity_platform import AddEntitiesCallback

from .const import (
    ATTR_ACTIVE,
    ATTR_COLORS,
    ATTR_END,
    ATTR_MODE_TYPE,
    ATTR_SPEED,
    ATTR_START,
    ATTR_ZONE_KEY,
    ATTR_ZONE_NAME,
    DOMAIN,
    SERVICE_ADD_ZONE,
    SERVICE_CLEAR_ZONE_MODE,
    SERVICE_EDIT_ZONE,
    SERVICE_REFRESH_ZONES,
    SERVICE_SELECT_ZONE,
    SERVICE_SET_ZONE_MODE,
    SERVICE_TOGGLE_ZONE,
    ModeType,
)
from .models import free_ranges
from .orchestrator import ZoneSyncOrchestrator

_LOGGER = logging.getLogger(__name__)

RGB_COLOR = vol.All(
    vol.ExactSequence([cv.byte, cv.byte, cv.byte]), vol.Coerce(tuple)
)

ZONE_RANGE_SCHEMA = {
    vol.Required(ATTR_ZONE_NAME): cv.string,
    vol.Required(ATTR_START): cv.positive_int,
    vol.Required(ATTR_END): cv.positive_int,
}

SERVICE_SCHEMAS: dict[str, tuple[dict, str]] = {
    SERVICE_ADD_ZONE: (ZONE_RANGE_SCHEMA, "async_add_zone"),
    SERVICE_EDIT_ZONE: (
        {
            vol.Required(ATTR_ZONE_KEY): cv.string,
            **ZONE_RANGE_SCHEMA,
            vol.Optional(ATTR_ACTIVE, default=True): cv.boolean,
        },
        "async_edit_zone",
    ),
    SERVICE_TOGGLE_ZONE: ({vol.Required(ATTR_ZONE_KEY): cv.string}, "async_toggle_zone"),
    SERVICE_SELECT_ZONE: (
        {vol.Optional(ATTR_ZONE_KEY): vol.Any(None, cv.string)},
        "async_select_zone",
    ),
    SERVICE_SET_ZONE_MODE: (
        {
            vol.Required(ATTR_ZONE_KEY): cv.string,
            vol.Required(ATTR_MODE_TYPE): vol.In([mode.value for mode in ModeType]),
            vol.Optional(ATTR_SPEED, default=1): cv.positive_int,
            vol.Optional(ATTR_COLORS, default=[]): vol.All(cv.ensure_list, [RGB_COLOR]),
        },
        "async_set_zone_mode",
    ),
    SERVICE_CLEAR_ZONE_MODE: (
        {vol.Required(ATTR_ZONE_KEY): cv.string},
        "async_clear_zone_mode",
    ),
    SERVICE_REFRESH_ZONES: ({}, "async_refresh_zones"),
}


async def async_setup_entry(
    hass: HomeAssistant,
    entry: ConfigEntry,
    async_add_entities: AddEntitiesCallback,
) -> None:
    """Set up the light platform and its zone services."""
    orchestrator: ZoneSyncOrchestrator = hass.data[DOMAIN][entry.entry_id]

    async_add_entities([LedZoneLight(orchestrator, entry)])

    platform = entity_platform.async_get_current_platform()
    for service, (schema, method) in SERVICE_SCHEMAS.items():
        platform.async_register_entity_service(service, schema, method)


class LedZoneLight(LightEntity):
    """The whole strip as one dimmable light, with zone state as attributes."""

    _attr_has_entity_name = True
    _attr_name = None  # Use device name
    _attr_should_poll = False
    _attr_color_mode = ColorMode.BRIGHTNESS
    _attr_supported_color_modes = {ColorMode.BRIGHTNESS}

    def __init__(self, orchestrator: ZoneSyncOrchestrator, entry: ConfigEntry) -> None:
        """Initialize the light."""
        self._orchestrator = orchestrator
        self._entry = entry

        self._attr_unique_id = orchestrator.client.address or entry.entry_id

    async def async_added_to_hass(self) -> None:
        """Subscribe to state changes."""
        self._orchestrator.register_callback(self._handle_state_update)

    async def async_will_remove_from_hass(self) -> None:
        """Handle entity removal."""
        self._orchestrator.unregister_callback(self._handle_state_update)

    @callback
    def _handle_state_update(self) -> None:
        """Handle state updates from the orchestrator."""
        self.async_write_ha_state()

    @property
    def device_info(self) -> DeviceInfo:
        """Return device info."""
        return DeviceInfo(
            identifiers={(DOMAIN, self._attr_unique_id)},
            name=self._orchestrator.client.name,
            manufacturer="LED Zone",
            model="BLE zone strip",
        )

    @property
    def available(self) -> bool:
        """Return True if the strip is connected."""
        return self._orchestrator.state.is_connected

    @property
    def is_on(self) -> bool | None:
        return self._orchestrator.state.is_on

    @property
    def brightness(self) -> int | None:
        return self._orchestrator.state.brightness

    @property
    def extra_state_attributes(self) -> dict[str, Any]:
        """Expose zones, activity log and error slot."""
        state = self._orchestrator.state
        return {
            "zones": [
                {
                    "key": zone.key,
                    "name": zone.name,
                    "start": zone.start,
                    "end": zone.end,
                    "active": zone.is_active,
                    "mode": zone.current_mode.type.value if zone.current_mode else None,
                }
                for zone in state.zones
            ],
            "free_ranges": [
                list(free) for free in free_ranges(state.zones, self._orchestrator.settings.led_count)
            ],
            "selected_zone": state.selected_zone_key,
            "loading_zones": state.is_loading_zones,
            "activity_log": list(state.logs),
            "error": state.error,
        }

    async def async_turn_on(self, **kwargs: Any) -> None:
        """Turn the light on."""
        _LOGGER.debug("turn_on called with kwargs: %s", kwargs)

        if not self._orchestrator.state.is_on:
            await self._orchestrator.set_power(True)

        if ATTR_BRIGHTNESS in kwargs:
            await self._orchestrator.set_brightness(kwargs[ATTR_BRIGHTNESS])

    async def async_turn_off(self, **kwargs: Any) -> None:
        """Turn the light off."""
        await self._orchestrator.set_power(False)

    # ----- Zone services -----

    def _check(self, succeeded: bool) -> None:
        if not succeeded:
            raise HomeAssistantError(self._orchestrator.state.error or "Operation failed.")

    async def async_add_zone(self, zone_name: str, start: int, end: int) -> None:
        self._check(await self._orchestrator.add_zone(zone_name, start, end))

    async def async_edit_zone(
        self, zone_key: str, zone_name: str, start: int, end: int, active: bool = True
    ) -> None:
        self._check(await self._orchestrator.edit_zone(zone_key, zone_name, start, end, active))

    async def async_toggle_zone(self, zone_key: str) -> None:
        self._check(await self._orchestrator.toggle_zone(zone_key))

    async def async_select_zone(self, zone_key: str | None = None) -> None:
        """Select a zone and load its details, or clear the selection."""
        self._orchestrator.select_zone(zone_key)
        if zone_key is not None:
            self._check(await self._orchestrator.refresh_zone_details(zone_key))

    async def async_set_zone_mode(
        self, zone_key: str, mode_type: str, speed: int = 1, colors: list | None = None
    ) -> None:
        self._check(
            await self._orchestrator.set_zone_mode(zone_key, mode_type, speed, colors or [])
        )

    async def async_clear_zone_mode(self, zone_key: str) -> None:
        self._check(await self._orchestrator.clear_zone_mode(zone_key))

    async def async_refresh_zones(self) -> None:
        self._check(await self._orchestrator.refresh_zones())
